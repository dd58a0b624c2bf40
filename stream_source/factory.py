"""Build stream sources from platform names."""

from typing import Callable, Dict

from stream_source.base import StreamSource, UnsupportedPlatformError
from stream_source.bilibili import BilibiliStreamSource

SourceFactory = Callable[[str, str], StreamSource]

_PLATFORMS: Dict[str, Callable[[str], StreamSource]] = {
    "bilibili": BilibiliStreamSource,
}


def supported_platforms() -> list:
    return sorted(_PLATFORMS)


def create_stream_source(platform: str, room_id: str) -> StreamSource:
    """Create the stream source for a platform.

    Args:
        platform: Platform name from the configuration (e.g. ``"bilibili"``)
        room_id: Room identifier on that platform

    Returns:
        A StreamSource for the room

    Raises:
        UnsupportedPlatformError: If the platform is unknown
        InvalidRoomIDError: If the room id is malformed for the platform
    """
    try:
        source_class = _PLATFORMS[platform]
    except KeyError:
        raise UnsupportedPlatformError(f"unsupported platform: {platform}") from None

    return source_class(room_id)
