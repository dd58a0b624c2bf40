"""Stream sources: live origins the monitor watches and relays pull from."""

from stream_source.base import (
    InvalidRoomIDError,
    RoomInfo,
    SourceConfigurationError,
    StreamSource,
    UnsupportedPlatformError,
)
from stream_source.bilibili import BilibiliAPIError, BilibiliService, BilibiliStreamSource
from stream_source.factory import SourceFactory, create_stream_source, supported_platforms

__all__ = [
    "StreamSource",
    "RoomInfo",
    "SourceConfigurationError",
    "UnsupportedPlatformError",
    "InvalidRoomIDError",
    "BilibiliAPIError",
    "BilibiliService",
    "BilibiliStreamSource",
    "SourceFactory",
    "create_stream_source",
    "supported_platforms",
]
