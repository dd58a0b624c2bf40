"""
Relay manager: runs every configured relay concurrently.

Builds one StreamRelay per enabled definition, supervises them under a
shared cancellation scope and stops all of them on shutdown.
"""

import asyncio
import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from relay_manager.config import RelaySettings, get_settings
from relay_manager.scope import CancelScope
from relay_manager.stream_relay import (
    EventCallback,
    ProcessFactory,
    RelayConfigurationError,
    RelayStatus,
    StreamRelay,
)
from shared.config import RelayDefinition, load_config
from stream_source.base import SourceConfigurationError
from stream_source.factory import SourceFactory, create_stream_source

logger = logging.getLogger(__name__)


class NoRelaysConfigured(RuntimeError):
    """No runnable relay was built from the configuration."""


class RelayManager:
    """
    Owns and supervises the set of relays.

    Relays that cannot be constructed (unknown platform, bad room id,
    no destinations) are logged and skipped. A relay that fails at run
    time never affects the others.
    """

    def __init__(
        self,
        definitions: Sequence[RelayDefinition],
        settings: Optional[RelaySettings] = None,
        source_factory: SourceFactory = create_stream_source,
        process_factory: Optional[ProcessFactory] = None,
        on_event: Optional[EventCallback] = None,
    ):
        """
        Initialize relay manager.

        Args:
            definitions: Relay definitions from the configuration
            settings: Relay settings shared by all relays
            source_factory: Builds a source from (platform, room_id)
            process_factory: Passed through to every relay
            on_event: Lifecycle event callback passed to every relay
        """
        self.settings = settings or get_settings()
        self.relays: Dict[str, StreamRelay] = {}
        self._scope = CancelScope()
        self._tasks: Dict[str, asyncio.Task] = {}
        self._stopped = False
        self._sources_closed = False

        for definition in definitions:
            if not definition.enabled:
                logger.info(f"Relay {definition.name} is disabled, skipping")
                continue
            if definition.name in self.relays:
                logger.error(f"Duplicate relay name {definition.name}, skipping")
                continue

            try:
                source = source_factory(definition.source.platform, definition.source.room_id)
                relay = StreamRelay(
                    definition,
                    source,
                    parent_scope=self._scope,
                    settings=self.settings,
                    process_factory=process_factory,
                    on_event=on_event,
                )
            except (SourceConfigurationError, RelayConfigurationError) as e:
                logger.error(f"Failed to create relay {definition.name}: {e}")
                continue

            self.relays[definition.name] = relay

        logger.info(f"Relay manager initialized with {len(self.relays)} relays")

    @classmethod
    def from_config_file(cls, config_file: Union[str, Path], **kwargs) -> "RelayManager":
        """
        Build a manager from a JSON configuration file.

        Raises:
            ConfigError: If the file cannot be read or parsed
        """
        config = load_config(config_file)
        return cls(config.relays, **kwargs)

    def relay_names(self) -> List[str]:
        return list(self.relays)

    async def run(self) -> None:
        """
        Start every relay and block until the manager is cancelled.

        Raises:
            NoRelaysConfigured: If there is no relay to run
        """
        if not self.relays:
            raise NoRelaysConfigured("no relay configurations found")
        if self._tasks:
            raise RuntimeError("relay manager is already running")

        logger.info(f"Starting relay manager with {len(self.relays)} relays")
        for name, relay in self.relays.items():
            self._tasks[name] = asyncio.create_task(
                self._run_relay(name, relay), name=f"relay:{name}"
            )

        try:
            await self._scope.wait()
        finally:
            await self.stop()

    async def _run_relay(self, name: str, relay: StreamRelay) -> None:
        try:
            await relay.start()
        except Exception as e:
            logger.error(f"Relay {name} terminated unexpectedly: {e}", exc_info=True)

    def cancel(self) -> None:
        """Request shutdown. run() returns once every relay has stopped."""
        self._scope.cancel()

    async def stop(self) -> None:
        """Stop all relays and wait for them to finish. Idempotent."""
        if not self._stopped:
            self._stopped = True
            logger.info("Stopping relay manager...")
            for relay in self.relays.values():
                relay.stop()
            self._scope.cancel()

        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        if not self._sources_closed:
            self._sources_closed = True
            for name, relay in self.relays.items():
                try:
                    await relay.source.close()
                except Exception as e:
                    logger.warning(f"Failed to close source of relay {name}: {e}")
            logger.info("Relay manager stopped")

    def get_status(self, name: str) -> Optional[RelayStatus]:
        relay = self.relays.get(name)
        return relay.get_status() if relay else None

    def get_all_status(self) -> Dict[str, RelayStatus]:
        return {name: relay.get_status() for name, relay in self.relays.items()}
