"""
Command-line entry point.

Usage:
    restreamer -c config.json monitor -i 1m
    restreamer relay -q 720p
    restreamer run
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional

from logging_module import LoggingConfig, setup_logging
from restreamer.controller import BOT, MONITOR, RELAY, NothingToRun, ServiceController
from shared.config import ConfigError, Quality, load_config, parse_interval

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = "../config.json"

COMMAND_SERVICES = {
    "monitor": (MONITOR,),
    "relay": (RELAY,),
    "run": (MONITOR, RELAY, BOT),
}


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with its subcommands."""
    parser = argparse.ArgumentParser(
        prog="restreamer", description="Monitor live rooms and relay live streams to RTMP destinations"
    )
    parser.add_argument(
        "-c", "--config", default=DEFAULT_CONFIG, help=f"Config file path (default: {DEFAULT_CONFIG})"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    monitor = subparsers.add_parser("monitor", help="Watch rooms and notify on live status changes")
    monitor.add_argument("-i", "--interval", help="Check interval, e.g. 30s, 1m (default: from config)")
    monitor.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    relay = subparsers.add_parser("relay", help="Relay live streams to the configured destinations")
    relay.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    relay.add_argument(
        "-q",
        "--quality",
        choices=[q.value for q in Quality],
        help="Stream quality for every relay (best, worst, 720p, 480p)",
    )

    run = subparsers.add_parser("run", help="Run the monitor, the relays and the Telegram bot together")
    run.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    return parser


def build_controller(args: argparse.Namespace, config) -> ServiceController:
    """Create the controller for the parsed command."""
    interval = getattr(args, "interval", None)
    quality = getattr(args, "quality", None)

    return ServiceController(
        config,
        services=COMMAND_SERVICES[args.command],
        quality=Quality(quality) if quality else None,
        interval=parse_interval(interval) if interval else None,
        verbose=args.verbose,
    )


async def run_controller(controller: ServiceController) -> int:
    """Run until SIGINT/SIGTERM, returning the process exit code."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, controller.cancel)

    try:
        await controller.run()
    except NothingToRun as e:
        logger.error(str(e))
        return 1
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)

    status = controller.status()
    if status.has_errors:
        for name, info in ((MONITOR, status.monitor), (RELAY, status.relay), (BOT, status.bot)):
            if info.error:
                logger.error(f"{name} exited with error: {info.error}")
        return 1
    return 0


async def serve(args: argparse.Namespace, config) -> int:
    """Build the controller inside the running loop and run it."""
    try:
        controller = build_controller(args, config)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return await run_controller(controller)


def main(argv: Optional[List[str]] = None) -> int:
    """Main function."""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        setup_logging(LoggingConfig.from_env(config.logger), verbose=args.verbose or config.verbose)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return asyncio.run(serve(args, config))


if __name__ == "__main__":
    sys.exit(main())
