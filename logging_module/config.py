"""Configuration management for the logging module.

Settings come from the ``logger`` section of the JSON config file and can
be overridden via environment variables.
"""

import os
from dataclasses import dataclass
from typing import Optional


VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


@dataclass
class LoggingConfig:
    """Configuration for application logging.

    Attributes:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path of the rotating JSON log file, empty to disable
        console: Whether to log to stdout
        max_size: Maximum size of the log file in MB before rotation
        max_backups: Number of rotated log files to keep
        app_name: Application name attached to every record
        app_version: Application version attached to every record
        environment: Runtime environment (development/production)
    """

    level: str = "INFO"
    log_file: str = "logs/restreamer-monitor.log"
    console: bool = True
    max_size: int = 100  # MB
    max_backups: int = 10
    app_name: str = "RestreamerMonitor"
    app_version: str = "1.0.0"
    environment: str = "production"

    @property
    def max_bytes(self) -> int:
        """Rotation threshold in bytes."""
        return self.max_size * 1024 * 1024

    @classmethod
    def from_env(cls, base: Optional["LoggingConfig"] = None) -> "LoggingConfig":
        """Create configuration from environment variables.

        Environment variables:
            LOG_LEVEL: Logging level
            LOG_FILE: Log file path (empty string disables file logging)
            LOG_CONSOLE: Console output (true/false)
            LOG_MAX_SIZE_MB: Rotation threshold in MB
            LOG_MAX_BACKUPS: Number of rotated files to keep
            ENVIRONMENT: Runtime environment

        Args:
            base: Values to fall back on (defaults when omitted)

        Returns:
            LoggingConfig instance
        """
        base = base or cls()
        return cls(
            level=os.getenv("LOG_LEVEL", base.level).upper(),
            log_file=os.getenv("LOG_FILE", base.log_file),
            console=os.getenv("LOG_CONSOLE", str(base.console)).lower() == "true",
            max_size=int(os.getenv("LOG_MAX_SIZE_MB", str(base.max_size))),
            max_backups=int(os.getenv("LOG_MAX_BACKUPS", str(base.max_backups))),
            app_name=base.app_name,
            app_version=base.app_version,
            environment=os.getenv("ENVIRONMENT", base.environment),
        )

    def validate(self) -> None:
        """Validate configuration values.

        Raises:
            ValueError: If configuration is invalid
        """
        if self.level.upper() not in VALID_LOG_LEVELS:
            raise ValueError(
                f"Invalid log level: {self.level}. Must be one of {VALID_LOG_LEVELS}"
            )

        if self.max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {self.max_size}")

        if self.max_backups < 1:
            raise ValueError(f"max_backups must be >= 1, got {self.max_backups}")

        if not self.console and not self.log_file:
            raise ValueError("At least one of console or log_file must be enabled")
