"""Stream source capability shared by all platforms."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class RoomInfo:
    """Live room information."""

    platform: str
    room_id: str
    uid: str = ""
    uname: str = ""
    real_room_id: str = ""
    is_live: bool = False
    user_cover: str = ""
    keyframe: str = ""
    title: str = ""
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None


class SourceConfigurationError(ValueError):
    """A source cannot be built from its configuration."""


class UnsupportedPlatformError(SourceConfigurationError):
    """The configured platform has no source implementation."""


class InvalidRoomIDError(SourceConfigurationError):
    """The configured room identifier is malformed."""


class StreamSource(ABC):
    """A live origin that can be checked and relayed.

    ``is_live`` and ``playable_url`` never raise: network and parse
    errors are logged by the implementation and reported as "not live"
    or an empty URL respectively.
    """

    platform: str = ""

    @abstractmethod
    async def is_live(self) -> bool:
        """Whether the origin is currently broadcasting."""

    @abstractmethod
    async def playable_url(self) -> str:
        """A media URL ffmpeg can read, or an empty string."""

    @abstractmethod
    async def get_room_info(self) -> RoomInfo:
        """Room metadata used for notifications."""

    @abstractmethod
    def start_listener(self) -> None:
        """Start listening for live room messages."""

    @abstractmethod
    def stop_listener(self) -> None:
        """Stop listening for live room messages."""

    async def close(self) -> None:
        """Release network resources held by the source."""
