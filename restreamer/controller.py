"""
Service controller.

Wires the notifier, metrics, room monitor, relay manager and Telegram
bot together and runs the selected services until cancelled. The
monitor and the relay manager can be stopped and restarted individually
while the controller keeps running.
"""

import asyncio
import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Set

import psutil

from monitoring.config import MonitoringConfig
from monitoring.metrics import RelayMetrics
from monitoring.room_monitor import LiveStatusChange, NoSourcesConfigured, RoomMonitor
from notifier.bot import TelegramBot
from notifier.config import NotificationConfig
from notifier.notifier import Notifier
from relay_manager.config import RelaySettings
from relay_manager.manager import NoRelaysConfigured, RelayManager
from relay_manager.scope import CancelScope
from relay_manager.stream_relay import ProcessFactory, RelayEvent
from restreamer.commands import register_commands
from shared.config import AppConfig, Quality, RelayDefinition
from stream_source.factory import SourceFactory, create_stream_source

logger = logging.getLogger(__name__)

MONITOR = "monitor"
RELAY = "relay"
BOT = "bot"
ALL_SERVICES = (MONITOR, RELAY, BOT)
CONTROLLABLE_SERVICES = (MONITOR, RELAY)


class NothingToRun(RuntimeError):
    """None of the requested services has anything configured."""


@dataclass
class ServiceInfo:
    """Runtime state of one service."""

    running: bool = False
    start_time: Optional[datetime] = None
    stop_time: Optional[datetime] = None
    error: str = ""

    @property
    def uptime_seconds(self) -> float:
        if self.start_time is None:
            return 0.0
        end = self.stop_time if not self.running and self.stop_time else datetime.now(timezone.utc)
        return (end - self.start_time).total_seconds()

    def to_dict(self) -> Dict:
        return {
            "running": self.running,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "uptime_seconds": round(self.uptime_seconds, 1),
            "error": self.error,
        }


@dataclass
class SystemInfo:
    """Host resource usage."""

    cpu_percent: float = 0.0
    memory_percent: float = 0.0
    process_memory_mb: float = 0.0
    uptime_seconds: float = 0.0

    @classmethod
    def collect(cls, started_at: float) -> "SystemInfo":
        process = psutil.Process()
        return cls(
            cpu_percent=psutil.cpu_percent(interval=None),
            memory_percent=psutil.virtual_memory().percent,
            process_memory_mb=round(process.memory_info().rss / 1024 / 1024, 2),
            uptime_seconds=round(time.monotonic() - started_at, 1),
        )


@dataclass
class ServiceStatus:
    """Snapshot returned by ServiceController.status()."""

    monitor: ServiceInfo
    relay: ServiceInfo
    system: SystemInfo
    bot: ServiceInfo = field(default_factory=ServiceInfo)
    relays: Dict[str, Dict] = field(default_factory=dict)
    rooms: Dict[str, bool] = field(default_factory=dict)

    @property
    def has_errors(self) -> bool:
        return bool(self.monitor.error or self.relay.error or self.bot.error)

    def to_dict(self) -> Dict:
        return {
            "monitor": self.monitor.to_dict(),
            "relay": self.relay.to_dict(),
            "bot": self.bot.to_dict(),
            "system": asdict(self.system),
            "relays": self.relays,
            "rooms": self.rooms,
        }


class ServiceController:
    """
    Runs the room monitor, the relay manager and the bot side by side.

    Live status changes go to the notifier and metrics; relay lifecycle
    events are recorded in metrics and forwarded to the notifier in the
    background so a slow Telegram call never stalls a relay.
    """

    def __init__(
        self,
        config: AppConfig,
        services: Iterable[str] = ALL_SERVICES,
        quality: Optional[Quality] = None,
        interval: Optional[float] = None,
        verbose: bool = False,
        notifier: Optional[Notifier] = None,
        metrics: Optional[RelayMetrics] = None,
        monitoring_config: Optional[MonitoringConfig] = None,
        relay_settings: Optional[RelaySettings] = None,
        source_factory: SourceFactory = create_stream_source,
        process_factory: Optional[ProcessFactory] = None,
        bot: Optional[TelegramBot] = None,
    ):
        """
        Initialize the controller.

        Args:
            config: Loaded application configuration
            services: Which services to run (``monitor``, ``relay``, ``bot``)
            quality: Overrides the quality of every relay when set
            interval: Overrides the monitor interval in seconds
            verbose: Verbose monitor logging
            notifier: Notifier (defaults to one built from ``config.telegram``)
            metrics: Metrics collector (defaults to the global registry)
            monitoring_config: Monitor cadence and metrics endpoint
            relay_settings: Settings shared by all relays
            source_factory: Builds a source from (platform, room_id)
            process_factory: Destination process factory for relays
            bot: Command bot (defaults to one built from ``config.telegram``
                when admins are configured and ``bot`` is among the services)
        """
        unknown = set(services) - set(ALL_SERVICES)
        if unknown:
            raise ValueError(f"Unknown services: {sorted(unknown)}")

        self.config = config
        self.services = tuple(services)
        self.quality = quality
        self.verbose = verbose or config.verbose
        self.monitoring_config = monitoring_config or MonitoringConfig.from_env(config.interval_seconds)
        if interval is not None:
            self.monitoring_config.check_interval = interval
        self.monitoring_config.validate()

        notification_config = NotificationConfig(config.telegram)
        self.notifier = notifier or Notifier(notification_config)
        self.metrics = metrics or RelayMetrics()
        self.relay_settings = relay_settings
        self.source_factory = source_factory
        self.process_factory = process_factory

        if bot is None and BOT in self.services and notification_config.commands_enabled():
            bot = TelegramBot(notification_config)
        self.bot = bot if BOT in self.services else None
        if self.bot is not None:
            register_commands(self.bot, self)

        self.monitor: Optional[RoomMonitor] = None
        self.relay_manager: Optional[RelayManager] = None
        self._info = {name: ServiceInfo() for name in ALL_SERVICES}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._scope = CancelScope()
        self._background: Set[asyncio.Task] = set()
        self._started_at = time.monotonic()

    def relay_definitions(self) -> List[RelayDefinition]:
        """Relay definitions with the quality override applied."""
        if self.quality is None:
            return list(self.config.relays)
        return [relay.model_copy(update={"quality": self.quality}) for relay in self.config.relays]

    async def run(self) -> None:
        """Run the selected services until cancelled or all of them exit."""
        started = [name for name in CONTROLLABLE_SERVICES if name in self.services and self._start(name)]
        if not started:
            raise NothingToRun(f"nothing to run for services: {', '.join(self.services)}")

        if self.bot is not None:
            self._tasks[BOT] = asyncio.create_task(self._run_service(BOT, self.bot.run), name=BOT)
            started.append(BOT)

        if self.monitoring_config.metrics_enabled:
            self.metrics.serve(self.monitoring_config.metrics_port, self.monitoring_config.metrics_addr)

        running = ", ".join(started)
        logger.info(f"Services started: {running}")
        await self.notifier.send_system(f"Restreamer started: {running}")

        cancel_waiter = asyncio.create_task(self._scope.wait())
        try:
            while not self._scope.cancelled:
                live = {task for task in self._tasks.values() if not task.done()}
                if not live:
                    break
                done, _ = await asyncio.wait(live | {cancel_waiter}, return_when=asyncio.FIRST_COMPLETED)
                if cancel_waiter in done:
                    # Raises if the waiter itself failed
                    cancel_waiter.result()
                    break
        finally:
            cancel_waiter.cancel()
            await self._shutdown()

    def _start(self, name: str) -> bool:
        run: Callable[[], Awaitable[None]]

        if name == MONITOR:
            if not self.config.rooms:
                logger.warning("Monitor requested but no rooms are configured")
                return False
            self.monitor = RoomMonitor(
                self.config.rooms,
                interval=self.monitoring_config.check_interval,
                source_factory=self.source_factory,
                verbose=self.verbose or self.monitoring_config.verbose,
            )
            self.monitor.add_listener(self._on_live_status)
            run = self.monitor.run
        else:
            if not self.config.relays:
                logger.warning("Relay requested but no relays are configured")
                return False
            self.relay_manager = RelayManager(
                self.relay_definitions(),
                settings=self.relay_settings,
                source_factory=self.source_factory,
                process_factory=self.process_factory,
                on_event=self._on_relay_event,
            )
            run = self.relay_manager.run

        self._tasks[name] = asyncio.create_task(self._run_service(name, run), name=name)
        return True

    async def _run_service(self, name: str, run: Callable[[], Awaitable[None]]) -> None:
        info = self._info[name]
        info.running = True
        info.start_time = datetime.now(timezone.utc)
        info.stop_time = None
        info.error = ""

        try:
            await run()
        except (NoSourcesConfigured, NoRelaysConfigured) as e:
            info.error = str(e)
            logger.error(f"{name} service has nothing to run: {e}")
        except Exception as e:
            info.error = str(e)
            logger.error(f"{name} service failed: {e}", exc_info=True)
            await self.notifier.send_error(f"{name} service failed", e)
        finally:
            info.running = False
            info.stop_time = datetime.now(timezone.utc)

    def is_service_running(self, name: str) -> bool:
        task = self._tasks.get(name)
        return task is not None and not task.done()

    async def stop_service(self, name: str) -> bool:
        """
        Stop the monitor or the relay manager, leaving everything else running.

        Returns:
            False if the service was not running

        Raises:
            ValueError: If the service cannot be controlled individually
        """
        self._check_controllable(name)
        task = self._tasks.get(name)
        if task is None or task.done():
            return False

        logger.info(f"Stopping {name} service")
        if name == MONITOR and self.monitor:
            self.monitor.stop()
        elif name == RELAY and self.relay_manager:
            self.relay_manager.cancel()
        await task

        await self.notifier.send_system(f"{name} service stopped")
        return True

    async def start_service(self, name: str) -> bool:
        """
        Start a stopped monitor or relay manager with a fresh instance.

        Returns:
            False if the service is already running, was not selected,
            has nothing configured or the controller is shutting down
        """
        self._check_controllable(name)
        if self._scope.cancelled or name not in self.services or self.is_service_running(name):
            return False
        if not self._start(name):
            return False

        logger.info(f"Started {name} service")
        await self.notifier.send_system(f"{name} service started")
        return True

    async def restart_service(self, name: str) -> bool:
        """Stop the service if it is running, then start it again."""
        await self.stop_service(name)
        return await self.start_service(name)

    def _check_controllable(self, name: str) -> None:
        if name not in CONTROLLABLE_SERVICES:
            raise ValueError(f"Unknown service: {name}")

    async def _shutdown(self) -> None:
        logger.info("Stopping services...")

        if self.monitor:
            self.monitor.stop()
        if self.relay_manager:
            self.relay_manager.cancel()
        if self.bot:
            self.bot.stop()

        await asyncio.gather(*self._tasks.values(), return_exceptions=True)

        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

        await self.notifier.send_system("Restreamer stopped")
        logger.info("All services stopped")

    def cancel(self) -> None:
        """Request shutdown. Safe to call from a signal handler."""
        self._scope.cancel()

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _on_live_status(self, change: LiveStatusChange) -> None:
        self.metrics.record_live_status(change)
        self._spawn(self.notifier.send_live_status(change))

    def _on_relay_event(self, event: RelayEvent) -> None:
        self.metrics.record_relay_event(event)
        self._spawn(self.notifier.send_relay_event(event))

    def status(self) -> ServiceStatus:
        """Current state of every service plus host resource usage."""
        relays = {}
        if self.relay_manager:
            for name, relay_status in self.relay_manager.get_all_status().items():
                self.metrics.update_from_relay_status(relay_status)
                relays[name] = relay_status.to_dict()

        return ServiceStatus(
            monitor=self._info[MONITOR],
            relay=self._info[RELAY],
            system=SystemInfo.collect(self._started_at),
            bot=self._info[BOT],
            relays=relays,
            rooms=self.monitor.get_status() if self.monitor else {},
        )
