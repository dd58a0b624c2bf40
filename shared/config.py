"""Application configuration shared by all services.

Loads the JSON configuration file describing monitored rooms, relay
definitions, Telegram notifications and logging. All models are
immutable once loaded.
"""

import json
import logging
import re
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from logging_module.config import LoggingConfig

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = "30s"
DEFAULT_INTERVAL_SECONDS = 30.0

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


class ConfigError(Exception):
    """Raised when the configuration file cannot be read or parsed."""


class Quality(str, Enum):
    """Relay output quality presets."""

    BEST = "best"
    WORST = "worst"
    P720 = "720p"
    P480 = "480p"


class SourceDefinition(BaseModel):
    """Upstream live room a relay pulls from."""

    model_config = ConfigDict(frozen=True)

    platform: str
    room_id: str

    @field_validator("room_id", mode="before")
    @classmethod
    def _coerce_room_id(cls, value):
        # Room ids are sometimes written as JSON numbers
        return str(value) if isinstance(value, int) else value


class DestinationDefinition(BaseModel):
    """One sink endpoint and its encoder/sink parameters."""

    model_config = ConfigDict(frozen=True)

    name: str
    url: str
    protocol: str = "rtmp"
    options: Dict[str, str] = Field(default_factory=dict)


class RelayDefinition(BaseModel):
    """Declarative description of one relay pipeline."""

    model_config = ConfigDict(frozen=True)

    name: str
    source: SourceDefinition
    destinations: List[DestinationDefinition] = Field(default_factory=list)
    enabled: bool = True
    quality: Optional[Quality] = None

    @field_validator("quality", mode="before")
    @classmethod
    def _empty_quality(cls, value):
        return None if value == "" else value


class RoomConfig(BaseModel):
    """A live room watched by the monitor."""

    model_config = ConfigDict(frozen=True)

    platform: str
    room_id: str
    enabled: bool = True

    @field_validator("room_id", mode="before")
    @classmethod
    def _coerce_room_id(cls, value):
        return str(value) if isinstance(value, int) else value


class NotificationToggles(BaseModel):
    """Which event categories are delivered."""

    system_events: bool = True
    monitor_events: bool = True
    relay_events: bool = True
    error_events: bool = True


class TelegramConfig(BaseModel):
    """Telegram bot delivery settings."""

    bot_token: str = ""
    chat_ids: List[int] = Field(default_factory=list)
    admin_ids: List[int] = Field(default_factory=list)
    enabled: bool = False
    enabled_commands: List[str] = Field(default_factory=list)
    notifications: NotificationToggles = Field(default_factory=NotificationToggles)


class AppConfig(BaseModel):
    """Root of the JSON configuration file."""

    rooms: List[RoomConfig] = Field(default_factory=list)
    relays: List[RelayDefinition] = Field(default_factory=list)
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    interval: str = DEFAULT_INTERVAL
    verbose: bool = False
    logger: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def interval_seconds(self) -> float:
        """Monitor polling interval in seconds."""
        return parse_interval(self.interval)

    def enabled_relays(self) -> List[RelayDefinition]:
        """Relay definitions with ``enabled`` set."""
        return [relay for relay in self.relays if relay.enabled]


def parse_interval(value: str) -> float:
    """Parse a duration such as ``30s``, ``1m``, ``1h30m`` or ``500ms``.

    Invalid or non-positive values fall back to 30 seconds.

    Args:
        value: Duration string

    Returns:
        Duration in seconds
    """
    text = (value or "").strip()
    position = 0
    total = 0.0

    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()

    if not text or position != len(text) or total <= 0:
        logger.warning(f"Invalid interval {value!r}, using default {DEFAULT_INTERVAL}")
        return DEFAULT_INTERVAL_SECONDS

    return total


def load_config(config_file: Union[str, Path, None]) -> AppConfig:
    """Load configuration from a JSON file.

    A missing path or a file that does not exist yields the default
    configuration.

    Args:
        config_file: Path to the JSON configuration file

    Returns:
        AppConfig instance

    Raises:
        ConfigError: If the file cannot be read or is not a valid configuration
    """
    if not config_file:
        logger.info("No config file specified, using default configuration")
        return AppConfig()

    path = Path(config_file)
    if not path.exists():
        logger.info(f"Config file {path} not found, using default configuration")
        return AppConfig()

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"failed to read config file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"failed to parse config file {path}: {e}") from e

    try:
        return AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"invalid config file {path}: {e}") from e
