"""Live room monitor.

Polls every configured room and reports live status transitions to
registered listeners.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Union

from relay_manager.scope import CancelScope
from shared.config import RoomConfig
from stream_source.base import RoomInfo, SourceConfigurationError, StreamSource
from stream_source.factory import SourceFactory, create_stream_source

logger = logging.getLogger(__name__)


class NoSourcesConfigured(RuntimeError):
    """No room could be monitored."""


@dataclass(frozen=True)
class LiveStatusChange:
    """A room went live, went offline, or was observed for the first time."""

    key: str
    room_info: RoomInfo
    is_live: bool
    previous: Optional[bool] = None

    @property
    def first_observation(self) -> bool:
        return self.previous is None


StatusListener = Callable[[LiveStatusChange], Union[None, Awaitable[None]]]


def source_key(platform: str, room_id: str) -> str:
    return f"{platform}:{room_id}"


class RoomMonitor:
    """Watches live rooms and fires listeners on status edges."""

    def __init__(
        self,
        rooms: Sequence[RoomConfig],
        interval: float = 30.0,
        source_factory: SourceFactory = create_stream_source,
        verbose: bool = False,
    ):
        """Initialize room monitor.

        Args:
            rooms: Rooms from the configuration (disabled ones are skipped)
            interval: Seconds between checks
            source_factory: Builds a source from (platform, room_id)
            verbose: Log every check, not only live rooms
        """
        self.interval = interval
        self.verbose = verbose
        self.sources: Dict[str, StreamSource] = {}
        self._last_status: Dict[str, bool] = {}
        self._listeners: List[StatusListener] = []
        self._scope = CancelScope()
        self._running = False

        for room in rooms:
            if not room.enabled:
                continue

            key = source_key(room.platform, room.room_id)
            try:
                self.sources[key] = source_factory(room.platform, room.room_id)
            except SourceConfigurationError as e:
                logger.error(f"Failed to create source for room {key}: {e}")

    @property
    def is_running(self) -> bool:
        return self._running

    def add_listener(self, listener: StatusListener) -> None:
        """Register a sync or async callback for status changes."""
        self._listeners.append(listener)

    def get_status(self) -> Dict[str, bool]:
        """Last observed live status per room."""
        return dict(self._last_status)

    async def run(self) -> None:
        """Check all rooms every interval until stopped.

        Raises:
            NoSourcesConfigured: If no room could be set up
        """
        if not self.sources:
            raise NoSourcesConfigured("no valid stream sources configured")

        logger.info(f"Starting monitor with {len(self.sources)} sources, checking every {self.interval}s")
        self._running = True

        for key, source in self.sources.items():
            if self.verbose:
                logger.info(f"Starting message listener for {key}")
            source.start_listener()

        try:
            while not self._scope.cancelled:
                await self.check_all_sources()
                if await self._scope.sleep(self.interval):
                    break
        finally:
            logger.info("Monitor stopping...")
            await self._cleanup()
            self._running = False

    def stop(self) -> None:
        """Request the monitoring loop to exit."""
        self._scope.cancel()

    async def check_all_sources(self) -> List[LiveStatusChange]:
        """Check every room once and notify listeners of changes.

        Returns:
            The changes detected during this pass
        """
        results = await asyncio.gather(
            *(self._check_source(key, source) for key, source in self.sources.items())
        )
        changes = [change for change in results if change is not None]

        for change in changes:
            await self._notify(change)

        return changes

    async def _check_source(self, key: str, source: StreamSource) -> Optional[LiveStatusChange]:
        if self.verbose:
            logger.debug(f"Checking status for {key}")

        try:
            status = await source.is_live()
        except Exception as e:
            logger.error(f"Failed to check status for {key}: {e}")
            status = False

        previous = self._last_status.get(key)
        if self.verbose or status:
            logger.info(f"Room {key}: {'live' if status else 'offline'}")

        if previous is not None and previous == status:
            return None

        self._last_status[key] = status
        try:
            room_info = replace(await source.get_room_info(), is_live=status)
        except Exception as e:
            logger.error(f"Failed to get room info for {key}: {e}")
            platform, _, room_id = key.partition(":")
            room_info = RoomInfo(platform=platform, room_id=room_id, is_live=status)

        return LiveStatusChange(key=key, room_info=room_info, is_live=status, previous=previous)

    async def _notify(self, change: LiveStatusChange) -> None:
        for listener in self._listeners:
            try:
                result = listener(change)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Status listener failed for {change.key}: {e}")

    async def _cleanup(self) -> None:
        logger.info("Cleaning up monitor resources...")
        for key, source in self.sources.items():
            if self.verbose:
                logger.info(f"Closing message listener for {key}")
            source.stop_listener()
            try:
                await source.close()
            except Exception as e:
                logger.warning(f"Failed to close source {key}: {e}")
