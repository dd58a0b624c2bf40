"""Tests for the command-line entry point."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from restreamer.cli import COMMAND_SERVICES, build_controller, build_parser, main, run_controller
from restreamer.controller import BOT, MONITOR, RELAY, NothingToRun, ServiceController
from shared.config import Quality


class TestParser:
    """Test argument parsing."""

    def test_defaults(self):
        args = build_parser().parse_args(["run"])

        assert args.config == "../config.json"
        assert args.command == "run"
        assert args.verbose is False

    def test_monitor_options(self):
        args = build_parser().parse_args(["-c", "conf.json", "monitor", "-i", "1m", "-v"])

        assert args.config == "conf.json"
        assert args.interval == "1m"
        assert args.verbose is True

    def test_relay_quality(self):
        args = build_parser().parse_args(["relay", "-q", "720p"])

        assert args.quality == "720p"

    def test_invalid_quality(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["relay", "-q", "4k"])

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_command_services(self):
        assert COMMAND_SERVICES["monitor"] == (MONITOR,)
        assert COMMAND_SERVICES["relay"] == (RELAY,)
        assert COMMAND_SERVICES["run"] == (MONITOR, RELAY, BOT)


class TestBuildController:
    """Test mapping parsed options onto the controller."""

    def test_relay_quality_override(self, app_config):
        args = build_parser().parse_args(["relay", "-q", "worst"])

        with patch("restreamer.cli.ServiceController") as controller_class:
            build_controller(args, app_config)

        kwargs = controller_class.call_args.kwargs
        assert kwargs["services"] == (RELAY,)
        assert kwargs["quality"] == Quality.WORST
        assert kwargs["interval"] is None

    def test_monitor_interval(self, app_config):
        args = build_parser().parse_args(["monitor", "-i", "1h30m"])

        with patch("restreamer.cli.ServiceController") as controller_class:
            build_controller(args, app_config)

        kwargs = controller_class.call_args.kwargs
        assert kwargs["services"] == (MONITOR,)
        assert kwargs["interval"] == 5400.0
        assert kwargs["quality"] is None


class TestRunController:
    """Test the exit code of a controller run."""

    @pytest.fixture
    def controller(self):
        controller = MagicMock(spec=ServiceController)
        controller.run = AsyncMock()
        controller.status.return_value.has_errors = False
        return controller

    @pytest.mark.asyncio
    async def test_clean_exit(self, controller):
        assert await run_controller(controller) == 0
        controller.run.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_nothing_to_run(self, controller):
        controller.run.side_effect = NothingToRun("nothing to run for services: monitor")

        assert await run_controller(controller) == 1

    @pytest.mark.asyncio
    async def test_service_error(self, controller):
        status = controller.status.return_value
        status.has_errors = True
        status.monitor.error = ""
        status.relay.error = "no relay configurations found"

        assert await run_controller(controller) == 1


class TestMain:
    """Test the main entry point."""

    def test_invalid_config(self, tmp_path, capsys):
        path = tmp_path / "config.json"
        path.write_text("{", encoding="utf-8")

        assert main(["-c", str(path), "run"]) == 1
        assert "Error:" in capsys.readouterr().err

    def test_runs_controller(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"interval": "10s", "logger": {"log_file": ""}}), encoding="utf-8")

        with patch("restreamer.cli.setup_logging") as setup, patch(
            "restreamer.cli.ServiceController"
        ) as controller_class, patch("restreamer.cli.run_controller", new=AsyncMock(return_value=0)) as run:
            assert main(["-c", str(path), "monitor", "-v"]) == 0

        assert setup.call_args.kwargs["verbose"] is True
        assert controller_class.call_args.kwargs["services"] == (MONITOR,)
        run.assert_awaited_once_with(controller_class.return_value)

    def test_invalid_logging_config(self, tmp_path, capsys):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"logger": {"level": "LOUD"}}), encoding="utf-8")

        with patch("restreamer.cli.ServiceController"):
            assert main(["-c", str(path), "run"]) == 1

        assert "Error:" in capsys.readouterr().err

    def test_controller_built_inside_event_loop(self, tmp_path):
        """Test the controller is constructed in the loop that runs it."""
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"interval": "10s"}), encoding="utf-8")
        loops = []

        def construct(*args, **kwargs):
            loops.append(asyncio.get_running_loop())
            return MagicMock(spec=ServiceController)

        async def run(controller):
            loops.append(asyncio.get_running_loop())
            return 0

        with patch("restreamer.cli.setup_logging"), patch(
            "restreamer.cli.ServiceController", side_effect=construct
        ), patch("restreamer.cli.run_controller", new=run):
            assert main(["-c", str(path), "run"]) == 0

        assert len(loops) == 2
        assert loops[0] is loops[1]

    def test_invalid_controller_options(self, tmp_path, capsys):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"interval": "10s"}), encoding="utf-8")

        with patch("restreamer.cli.setup_logging"), patch(
            "restreamer.cli.ServiceController", side_effect=ValueError("check_interval must be positive")
        ):
            assert main(["-c", str(path), "monitor"]) == 1

        assert "check_interval must be positive" in capsys.readouterr().err
