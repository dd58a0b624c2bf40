"""
Relay Manager

Supervises FFmpeg relays that mirror live sources to one or more
RTMP destinations, restarting them when a destination fails.
"""

__version__ = "1.0.0"

from relay_manager.command_builder import RelayCommandBuilder, build_relay_args
from relay_manager.config import RelaySettings, get_settings
from relay_manager.manager import NoRelaysConfigured, RelayManager
from relay_manager.process import DestinationProcess, DestinationProcessError, ProcessState
from relay_manager.scope import CancelScope
from relay_manager.stream_relay import (
    RelayConfigurationError,
    RelayEvent,
    RelayEventKind,
    RelayState,
    RelayStatus,
    SourceUnavailableError,
    StreamRelay,
)

__all__ = [
    "RelayCommandBuilder",
    "build_relay_args",
    "RelaySettings",
    "get_settings",
    "NoRelaysConfigured",
    "RelayManager",
    "DestinationProcess",
    "DestinationProcessError",
    "ProcessState",
    "CancelScope",
    "RelayConfigurationError",
    "RelayEvent",
    "RelayEventKind",
    "RelayState",
    "RelayStatus",
    "SourceUnavailableError",
    "StreamRelay",
]
