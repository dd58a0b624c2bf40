"""
Tests for single relay supervision.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from relay_manager.process import DestinationProcessError
from relay_manager.scope import CancelScope
from relay_manager.stream_relay import (
    RelayConfigurationError,
    RelayEventKind,
    RelayState,
    SourceUnavailableError,
    StreamRelay,
)
from shared.config import Quality, RelayDefinition, SourceDefinition


@pytest.fixture
def make_relay(relay_definition, fake_source, relay_settings, process_factory):
    """Build a relay wired to the fake source and process factory."""

    def _make(definition=None, source=None, **kwargs):
        return StreamRelay(
            definition or relay_definition,
            source or fake_source,
            settings=relay_settings,
            process_factory=process_factory,
            **kwargs,
        )

    return _make


async def stop_and_wait(relay: StreamRelay, task: asyncio.Task) -> None:
    relay.stop()
    await asyncio.wait_for(task, timeout=2)


class TestStreamRelayConstruction:
    """Test relay construction."""

    def test_initial_status(self, make_relay):
        relay = make_relay()
        status = relay.get_status()

        assert status.name == "demo"
        assert status.state == RelayState.IDLE
        assert status.is_running is False
        assert status.restart_count == 0
        assert status.process_count == 0
        assert status.last_error is None
        assert status.start_time is None

    def test_no_destinations_rejected(self, make_relay):
        """Test a relay without destinations cannot be built."""
        definition = RelayDefinition(
            name="empty",
            source=SourceDefinition(platform="bilibili", room_id="1"),
        )

        with pytest.raises(RelayConfigurationError):
            make_relay(definition=definition)


class TestStreamRelayWaiting:
    """Test behaviour while the source is offline."""

    @pytest.mark.asyncio
    async def test_source_never_live(self, make_relay, fake_source, process_factory, wait_for):
        """Test no process is launched while the source is offline."""
        fake_source.live = False
        relay = make_relay()
        task = asyncio.create_task(relay.start())

        await wait_for(lambda: fake_source.live_checks >= 3)

        assert relay.state == RelayState.WAITING_FOR_SOURCE
        assert relay.is_running
        assert fake_source.listening
        assert process_factory.processes == []
        assert fake_source.url_requests == 0

        await stop_and_wait(relay, task)

        assert relay.state == RelayState.STOPPED
        assert relay.restart_count == 0
        assert not fake_source.listening

    @pytest.mark.asyncio
    async def test_liveness_error_treated_as_offline(self, make_relay, fake_source, process_factory, wait_for):
        """Test an exception from the source is logged and polled again."""
        fake_source.is_live = AsyncMock(side_effect=RuntimeError("network down"))
        relay = make_relay()
        task = asyncio.create_task(relay.start())

        await wait_for(lambda: fake_source.is_live.await_count >= 2)

        assert process_factory.processes == []
        assert relay.restart_count == 0
        await stop_and_wait(relay, task)

    @pytest.mark.asyncio
    async def test_url_failure_not_counted(self, make_relay, fake_source, process_factory, wait_for):
        """Test an empty playable URL is recorded without a restart."""
        fake_source.url = ""
        relay = make_relay()
        task = asyncio.create_task(relay.start())

        await wait_for(lambda: fake_source.url_requests >= 2)

        assert process_factory.processes == []
        assert relay.restart_count == 0
        assert isinstance(relay.last_error, SourceUnavailableError)
        assert "failed to get source stream URL" in relay.get_status().last_error

        await stop_and_wait(relay, task)


class TestStreamRelayStreaming:
    """Test streaming cycles."""

    @pytest.mark.asyncio
    async def test_one_process_per_destination(self, make_relay, process_factory):
        """Test every destination gets its own FFmpeg process."""
        relay = make_relay()
        task = asyncio.create_task(relay.start())

        first, second = await process_factory.wait_for(2)

        assert relay.state == RelayState.STREAMING
        assert first.command[0] == "ffmpeg"
        assert first.command[-1] == "rtmp://a.example/live/key1"
        assert second.command[-1] == "rtmp://b.example/app/key2"

        status = relay.get_status()
        assert status.is_running
        assert status.process_count == 2
        assert {p.destination for p in status.processes} == {"youtube", "twitch"}
        assert status.to_dict()["state"] == "streaming"

        await stop_and_wait(relay, task)

    @pytest.mark.asyncio
    async def test_quality_applied(self, relay_definition, make_relay, process_factory):
        """Test the relay quality reaches the command line."""
        definition = relay_definition.model_copy(update={"quality": Quality.P720})
        relay = make_relay(definition=definition)
        task = asyncio.create_task(relay.start())

        first, _ = await process_factory.wait_for(2)

        assert first.command[-5:-1] == ["-s", "1280x720", "-b:v", "2000k"]
        await stop_and_wait(relay, task)

    @pytest.mark.asyncio
    async def test_one_failure_kills_all(self, make_relay, process_factory, wait_for):
        """Test a single failing destination tears down the whole set."""
        relay = make_relay()
        task = asyncio.create_task(relay.start())

        first, second = await process_factory.wait_for(2)
        first.exit(1)

        await wait_for(lambda: relay.restart_count == 1)

        assert second.killed
        assert isinstance(relay.last_error, DestinationProcessError)
        assert "youtube" in str(relay.last_error)

        # Relaunched after the backoff with fresh processes
        third, fourth = (await process_factory.wait_for(4))[2:]
        assert not third.killed
        assert not fourth.killed

        await stop_and_wait(relay, task)

    @pytest.mark.asyncio
    async def test_restart_count_monotonic(self, make_relay, process_factory, wait_for):
        """Test each failed cycle increments the restart count."""
        relay = make_relay()
        task = asyncio.create_task(relay.start())

        seen = []
        for cycle in range(3):
            processes = await process_factory.wait_for(2 * (cycle + 1))
            processes[-1].exit(2)
            await wait_for(lambda: relay.restart_count == cycle + 1)
            seen.append(relay.restart_count)

        assert seen == [1, 2, 3]
        await stop_and_wait(relay, task)
        assert relay.get_status().restart_count == 3

    @pytest.mark.asyncio
    async def test_clean_exit_not_counted(self, make_relay, process_factory, wait_for):
        """Test a cycle where every process exits cleanly is not a failure."""
        relay = make_relay()
        task = asyncio.create_task(relay.start())

        first, second = await process_factory.wait_for(2)
        first.exit(0)
        second.exit(0)

        await process_factory.wait_for(4)

        assert relay.restart_count == 0
        assert relay.last_error is None
        await stop_and_wait(relay, task)

    @pytest.mark.asyncio
    async def test_stop_while_streaming(self, make_relay, fake_source, process_factory):
        """Test stop kills every process and ends supervision."""
        relay = make_relay()
        task = asyncio.create_task(relay.start())

        processes = await process_factory.wait_for(2)
        await stop_and_wait(relay, task)

        assert all(p.killed for p in processes)
        status = relay.get_status()
        assert status.state == RelayState.STOPPED
        assert status.is_running is False
        assert status.process_count == 0
        assert status.restart_count == 0
        assert len(process_factory.processes) == 2
        assert not fake_source.listening


class TestStreamRelayLifecycle:
    """Test start/stop semantics."""

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, make_relay, process_factory):
        relay = make_relay()
        task = asyncio.create_task(relay.start())
        await process_factory.wait_for(2)

        relay.stop()
        relay.stop()
        await asyncio.wait_for(task, timeout=2)
        relay.stop()

        assert relay.state == RelayState.STOPPED

    @pytest.mark.asyncio
    async def test_start_after_stop_is_noop(self, make_relay, fake_source):
        """Test a stopped relay cannot be started again."""
        relay = make_relay()
        relay.stop()

        await asyncio.wait_for(relay.start(), timeout=1)

        assert fake_source.live_checks == 0
        assert relay.state == RelayState.STOPPED

    @pytest.mark.asyncio
    async def test_start_while_running_is_noop(self, make_relay, process_factory):
        relay = make_relay()
        task = asyncio.create_task(relay.start())
        await process_factory.wait_for(2)

        await asyncio.wait_for(relay.start(), timeout=1)

        assert len(process_factory.processes) == 2
        await stop_and_wait(relay, task)

    @pytest.mark.asyncio
    async def test_parent_scope_cancellation(self, make_relay, process_factory):
        """Test cancelling the owning scope stops the relay."""
        parent = CancelScope()
        relay = make_relay(parent_scope=parent)
        task = asyncio.create_task(relay.start())
        processes = await process_factory.wait_for(2)

        parent.cancel()
        await asyncio.wait_for(task, timeout=2)

        assert all(p.killed for p in processes)
        assert relay.state == RelayState.STOPPED
        assert relay.restart_count == 0


class TestStreamRelayEvents:
    """Test lifecycle event delivery."""

    @pytest.mark.asyncio
    async def test_event_sequence(self, make_relay, process_factory, wait_for):
        """Test events for a failure, a restart and a stop."""
        events = []
        relay = make_relay(on_event=events.append)
        task = asyncio.create_task(relay.start())

        first, _ = await process_factory.wait_for(2)
        first.exit(1)
        await process_factory.wait_for(4)
        await stop_and_wait(relay, task)

        kinds = [event.kind for event in events]
        assert kinds[:5] == [
            RelayEventKind.STARTED,
            RelayEventKind.STREAMING,
            RelayEventKind.ERROR,
            RelayEventKind.RESTARTED,
            RelayEventKind.STREAMING,
        ]
        assert kinds[-1] == RelayEventKind.STOPPED
        assert all(event.relay_name == "demo" for event in events)
        assert events[2].details["restart_count"] == 1

    @pytest.mark.asyncio
    async def test_async_callback(self, make_relay, process_factory):
        callback = AsyncMock()
        relay = make_relay(on_event=callback)
        task = asyncio.create_task(relay.start())
        await process_factory.wait_for(2)
        await stop_and_wait(relay, task)

        assert callback.await_count >= 3

    @pytest.mark.asyncio
    async def test_callback_errors_do_not_stop_relay(self, make_relay, process_factory):
        """Test a failing callback is logged and ignored."""

        def broken(event):
            raise RuntimeError("boom")

        relay = make_relay(on_event=broken)
        task = asyncio.create_task(relay.start())

        await process_factory.wait_for(2)
        assert relay.state == RelayState.STREAMING

        await stop_and_wait(relay, task)
