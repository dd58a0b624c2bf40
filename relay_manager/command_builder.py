"""
FFmpeg command builder for relays.

Constructs the argument list that copies one resolved source stream to
one destination, with optional quality presets and per-destination
options.
"""

import logging
from typing import Dict, List, Optional, Union
from urllib.parse import urlsplit, urlunsplit

from relay_manager.config import RelaySettings
from shared.config import DestinationDefinition, Quality

logger = logging.getLogger(__name__)


# Appended after the fixed copy/container arguments
QUALITY_ARGS: Dict[Quality, List[str]] = {
    Quality.BEST: [],
    Quality.WORST: ["-b:v", "500k"],
    Quality.P720: ["-s", "1280x720", "-b:v", "2000k"],
    Quality.P480: ["-s", "854x480", "-b:v", "1000k"],
}


def build_relay_args(
    source_url: str,
    quality: Union[Quality, str, None],
    destination: DestinationDefinition,
) -> List[str]:
    """
    Build FFmpeg arguments relaying ``source_url`` to one destination.

    Order: input and stream copy to FLV, quality preset, destination
    options as ``-key value`` pairs, destination URL last.

    Args:
        source_url: Resolved playable URL of the source
        quality: Quality preset, or None to keep the source quality
        destination: Destination definition

    Returns:
        List of arguments (without the FFmpeg binary)

    Raises:
        ValueError: If quality is not a known preset
    """
    args = [
        "-i", source_url,
        "-c", "copy",  # Copy streams without re-encoding
        "-f", "flv",
    ]

    if quality:
        args.extend(QUALITY_ARGS[Quality(quality)])

    for key, value in destination.options.items():
        args.extend([f"-{key}", value])

    args.append(destination.url)
    return args


def mask_url(url: str) -> str:
    """Hide the last path segment of a URL (usually the stream key)."""
    parts = urlsplit(url)
    head, sep, tail = parts.path.rpartition("/")
    if not sep or not tail:
        return url
    return urlunsplit((parts.scheme, parts.netloc, f"{head}/***", "", ""))


class RelayCommandBuilder:
    """Builds complete FFmpeg commands for relay destinations."""

    def __init__(self, settings: RelaySettings):
        """
        Initialize command builder.

        Args:
            settings: Relay settings (provides the FFmpeg binary)
        """
        self.settings = settings

    def build_command(
        self,
        source_url: str,
        quality: Optional[Quality],
        destination: DestinationDefinition,
    ) -> List[str]:
        """
        Build the full command line for one destination.

        Raises:
            ValueError: If source_url is empty
        """
        if not source_url or not source_url.strip():
            raise ValueError("source_url cannot be empty")

        cmd = [self.settings.ffmpeg_binary]
        cmd.extend(build_relay_args(source_url, quality, destination))

        logger.debug(f"Built FFmpeg command for {destination.name}: {self.get_log_string(cmd)}")
        return cmd

    @staticmethod
    def get_log_string(cmd: List[str]) -> str:
        """Command as a single string with the output stream key masked."""
        if not cmd:
            return ""
        return " ".join(cmd[:-1] + [mask_url(cmd[-1])])
