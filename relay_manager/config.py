"""
Relay engine settings.

Timing and ffmpeg invocation parameters shared by every relay, loaded
from environment variables with the ``RELAY_`` prefix.
"""

from pydantic import ConfigDict, Field
from pydantic_settings import BaseSettings


class RelaySettings(BaseSettings):
    """Relay supervision settings from environment variables."""

    # FFmpeg binary
    ffmpeg_binary: str = Field(
        default="ffmpeg",
        description="Path to FFmpeg binary",
    )

    # Supervision timing
    poll_interval: float = Field(
        default=10.0,
        description="Seconds between source liveness checks while the source is offline",
        ge=0.0,
        le=3600.0,
    )

    backoff_delay: float = Field(
        default=5.0,
        description="Seconds to wait after a failed streaming cycle before retrying",
        ge=0.0,
        le=3600.0,
    )

    kill_timeout: float = Field(
        default=5.0,
        description="Seconds to wait for killed FFmpeg processes to exit",
        ge=0.01,
        le=300.0,
    )

    # Process output
    log_output: bool = Field(
        default=True,
        description="Forward FFmpeg stdout/stderr to the service output instead of discarding it",
    )

    model_config = ConfigDict(
        env_prefix="RELAY_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


def get_settings() -> RelaySettings:
    """
    Get relay settings from environment variables.

    Returns:
        RelaySettings: Settings instance
    """
    return RelaySettings()
