"""
Supervision of one relay: a source mirrored to one or more destinations.

The relay waits for its source to go live, launches one FFmpeg process
per destination and tears the whole set down as soon as any of them
exits. A failed cycle is counted, followed by a fixed backoff, and the
relay goes back to waiting for the source.
"""

import asyncio
import inspect
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from logging_module import get_logger
from relay_manager.command_builder import RelayCommandBuilder
from relay_manager.config import RelaySettings, get_settings
from relay_manager.process import DestinationProcess, DestinationProcessError
from relay_manager.scope import CancelScope
from shared.config import DestinationDefinition, RelayDefinition
from stream_source.base import StreamSource


class RelayState(str, Enum):
    """Supervision state of a relay."""

    IDLE = "idle"
    WAITING_FOR_SOURCE = "waiting_for_source"
    STREAMING = "streaming"
    BACKOFF = "backoff"
    STOPPED = "stopped"


class RelayConfigurationError(ValueError):
    """A relay definition cannot be supervised."""


class SourceUnavailableError(Exception):
    """The source reported live but no playable URL could be resolved."""


class RelayEventKind(str, Enum):
    STARTED = "started"
    STREAMING = "streaming"
    ERROR = "error"
    RESTARTED = "restarted"
    STOPPED = "stopped"


@dataclass(frozen=True)
class RelayEvent:
    """Lifecycle notification emitted by a relay."""

    relay_name: str
    kind: RelayEventKind
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class ProcessSnapshot:
    destination: str
    pid: Optional[int]
    started_at: Optional[datetime]
    cpu_percent: Optional[float] = None
    memory_mb: Optional[float] = None

    @classmethod
    def from_process(cls, process: DestinationProcess) -> "ProcessSnapshot":
        usage = process.resource_usage() or {}
        return cls(
            destination=process.name,
            pid=process.pid,
            started_at=process.started_at,
            cpu_percent=usage.get("cpu_percent"),
            memory_mb=usage.get("memory_mb"),
        )


@dataclass(frozen=True)
class RelayStatus:
    """Point-in-time view of a relay, safe to hand to other threads."""

    name: str
    is_running: bool
    state: RelayState
    start_time: Optional[datetime]
    last_error: Optional[str]
    restart_count: int
    process_count: int
    processes: Tuple[ProcessSnapshot, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        data["start_time"] = self.start_time.isoformat() if self.start_time else None
        data["processes"] = [
            {**p, "started_at": p["started_at"].isoformat() if p["started_at"] else None}
            for p in data["processes"]
        ]
        return data


ProcessFactory = Callable[[DestinationDefinition, List[str]], DestinationProcess]
EventCallback = Callable[[RelayEvent], Union[None, Awaitable[None]]]


class StreamRelay:
    """Supervises the FFmpeg processes of a single relay definition."""

    def __init__(
        self,
        definition: RelayDefinition,
        source: StreamSource,
        parent_scope: Optional[CancelScope] = None,
        settings: Optional[RelaySettings] = None,
        process_factory: Optional[ProcessFactory] = None,
        on_event: Optional[EventCallback] = None,
    ):
        """
        Initialize relay.

        Args:
            definition: Relay definition
            source: Source the relay pulls from
            parent_scope: Scope whose cancellation also stops this relay
            settings: Relay settings (defaults from environment)
            process_factory: Creates destination processes; overridable for tests
            on_event: Optional sync or async callback for lifecycle events

        Raises:
            RelayConfigurationError: If the definition has no destinations
        """
        if not definition.destinations:
            raise RelayConfigurationError(f"relay {definition.name} has no destinations")

        self.definition = definition
        self.source = source
        self.settings = settings or get_settings()
        self.command_builder = RelayCommandBuilder(self.settings)
        self._process_factory = process_factory or self._default_process_factory
        self._on_event = on_event
        self._scope = parent_scope.child() if parent_scope else CancelScope()

        self._lock = threading.Lock()
        self._processes: Dict[str, DestinationProcess] = {}
        self._running = False
        self._state = RelayState.IDLE
        self._start_time: Optional[datetime] = None
        self._last_error: Optional[Exception] = None
        self._restart_count = 0

        self.logger = get_logger(__name__, component="relay", relay=definition.name)

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def state(self) -> RelayState:
        with self._lock:
            return self._state

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._running

    @property
    def restart_count(self) -> int:
        with self._lock:
            return self._restart_count

    @property
    def last_error(self) -> Optional[Exception]:
        with self._lock:
            return self._last_error

    def _default_process_factory(
        self, destination: DestinationDefinition, command: List[str]
    ) -> DestinationProcess:
        return DestinationProcess(destination, command, log_output=self.settings.log_output)

    async def start(self) -> None:
        """
        Run the supervision loop until the relay is stopped.

        Returns immediately if the relay is already running or was stopped.
        """
        with self._lock:
            if self._running or self._state == RelayState.STOPPED:
                return
            self._running = True
            self._start_time = datetime.now()
            self._state = RelayState.WAITING_FOR_SOURCE

        self.logger.info(f"Starting relay {self.name}")
        self.source.start_listener()
        await self._emit(RelayEventKind.STARTED, {
            "source": f"{self.definition.source.platform}:{self.definition.source.room_id}",
            "destinations": [d.name for d in self.definition.destinations],
        })

        try:
            await self._supervise()
        finally:
            self.source.stop_listener()
            with self._lock:
                self._running = False
                self._state = RelayState.STOPPED
                self._processes = {}
            self.logger.info(f"Relay {self.name} stopped")
            await self._emit(RelayEventKind.STOPPED, {"restart_count": self.restart_count})

    def stop(self) -> None:
        """Stop the relay and kill its processes. Idempotent, callable from any thread."""
        with self._lock:
            if self._state == RelayState.STOPPED and not self._running:
                return
            was_running = self._running
            self._running = False
            self._state = RelayState.STOPPED
            processes = list(self._processes.values())
            self._processes = {}

        if was_running:
            self.logger.info(f"Stopping relay {self.name}")
        self._scope.cancel()
        for process in processes:
            process.kill()

    def get_status(self) -> RelayStatus:
        """Consistent snapshot of the relay state."""
        with self._lock:
            processes = list(self._processes.values())
            running = self._running
            state = self._state
            start_time = self._start_time
            last_error = str(self._last_error) if self._last_error else None
            restart_count = self._restart_count

        return RelayStatus(
            name=self.name,
            is_running=running,
            state=state,
            start_time=start_time,
            last_error=last_error,
            restart_count=restart_count,
            process_count=len(processes),
            processes=tuple(ProcessSnapshot.from_process(p) for p in processes),
        )

    def _set_state(self, state: RelayState) -> None:
        with self._lock:
            if self._state != RelayState.STOPPED:
                self._state = state

    async def _supervise(self) -> None:
        while not self._scope.cancelled:
            self._set_state(RelayState.WAITING_FOR_SOURCE)

            if not await self._check_live():
                self.logger.debug("Source is not live, waiting...")
                if await self._scope.sleep(self.settings.poll_interval):
                    break
                continue

            url = await self._resolve_url()
            if not url:
                error = SourceUnavailableError("failed to get source stream URL")
                with self._lock:
                    self._last_error = error
                self.logger.warning(f"Relay {self.name}: {error}")
                if await self._scope.sleep(self.settings.poll_interval):
                    break
                continue

            try:
                await self._run_cycle(url)
            except DestinationProcessError as e:
                with self._lock:
                    self._last_error = e
                    self._restart_count += 1
                    restart_count = self._restart_count
                self.logger.error(f"Relay {self.name} failed: {e}, restarting in {self.settings.backoff_delay}s")
                await self._emit(RelayEventKind.ERROR, {"error": str(e), "restart_count": restart_count})

                self._set_state(RelayState.BACKOFF)
                if await self._scope.sleep(self.settings.backoff_delay):
                    break
                await self._emit(RelayEventKind.RESTARTED, {"restart_count": restart_count})

    async def _check_live(self) -> bool:
        try:
            return await self.source.is_live()
        except Exception as e:
            self.logger.warning(f"Failed to check source status: {e}")
            return False

    async def _resolve_url(self) -> str:
        try:
            return await self.source.playable_url()
        except Exception as e:
            self.logger.warning(f"Failed to get source stream URL: {e}")
            return ""

    async def _run_cycle(self, url: str) -> None:
        """
        Run one streaming cycle: every destination at once, all or nothing.

        Returns when every process exited cleanly or the relay was
        cancelled. Raises the first failure otherwise, after all
        processes are gone.
        """
        processes = [
            self._process_factory(
                destination,
                self.command_builder.build_command(url, self.definition.quality, destination),
            )
            for destination in self.definition.destinations
        ]

        with self._lock:
            if not self._running:
                return
            self._processes = {p.name: p for p in processes}

        self._set_state(RelayState.STREAMING)
        self.logger.info(f"Relay {self.name} streaming to {len(processes)} destinations")
        await self._emit(RelayEventKind.STREAMING, {"destinations": [p.name for p in processes]})

        tasks = {
            asyncio.create_task(p.run(), name=f"{self.name}:{p.name}"): p
            for p in processes
        }
        cancel_waiter = asyncio.create_task(self._scope.wait())
        failure: Optional[DestinationProcessError] = None

        try:
            pending = set(tasks)
            while pending:
                done, _ = await asyncio.wait(
                    pending | {cancel_waiter}, return_when=asyncio.FIRST_COMPLETED
                )
                for task in done:
                    if task is cancel_waiter or task.cancelled():
                        continue
                    pending.discard(task)
                    error = task.exception()
                    if error is not None and failure is None:
                        if not isinstance(error, DestinationProcessError):
                            error = DestinationProcessError(tasks[task].name, str(error))
                        failure = error
                if failure is not None or cancel_waiter.done():
                    break
        finally:
            cancel_waiter.cancel()
            await self._teardown(tasks)

        if failure is not None and not self._scope.cancelled:
            raise failure

    async def _teardown(self, tasks: Dict[asyncio.Task, DestinationProcess]) -> None:
        for process in tasks.values():
            process.kill()

        with self._lock:
            self._processes = {}

        if not tasks:
            return

        done, pending = await asyncio.wait(tasks, timeout=self.settings.kill_timeout)
        for task in pending:
            self.logger.warning(f"FFmpeg for {tasks[task].name} did not exit after kill")
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        for task in done:
            if not task.cancelled():
                task.exception()

    async def _emit(self, kind: RelayEventKind, details: Optional[Dict[str, Any]] = None) -> None:
        if self._on_event is None:
            return
        event = RelayEvent(relay_name=self.name, kind=kind, details=details or {})
        try:
            result = self._on_event(event)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            self.logger.error(f"Relay event callback failed: {e}")
