"""Logger setup - console and rotating JSON file logging.

Configures the root logger once at startup and hands out component
loggers that carry structured context fields (component, platform,
room_id, relay) into every record.
"""

import json
import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, MutableMapping, Tuple

from logging_module.config import LoggingConfig

CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Attributes every LogRecord has; anything else was passed via ``extra``
_RESERVED_ATTRS = frozenset(
    [
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "taskName",
        "asctime",
        "exc_info",
        "exc_text",
        "stack_info",
    ]
)


class ContextFilter(logging.Filter):
    """Attach static application fields (app, version, environment) to records."""

    def __init__(self, app: str, version: str, environment: str):
        super().__init__()
        self.app = app
        self.version = version
        self.environment = environment

    def filter(self, record: logging.LogRecord) -> bool:
        record.app = self.app
        record.version = self.version
        record.environment = self.environment
        return True


class ComponentLogger(logging.LoggerAdapter):
    """Logger adapter that merges fixed context fields into ``extra``."""

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> Tuple[Any, MutableMapping[str, Any]]:
        extra = dict(self.extra or {})
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs

    def bind(self, **fields: Any) -> "ComponentLogger":
        """Return a new adapter with additional context fields."""
        merged: Dict[str, Any] = dict(self.extra or {})
        merged.update(fields)
        return ComponentLogger(self.logger, merged)


def setup_logging(config: LoggingConfig, verbose: bool = False) -> logging.Logger:
    """Configure the root logger from configuration.

    Installs a console handler (plain text) and, when ``log_file`` is set,
    a rotating file handler writing one JSON object per line. Calling it
    again replaces the handlers installed previously.

    Args:
        config: Logging configuration
        verbose: Force DEBUG level regardless of ``config.level``

    Returns:
        The configured root logger

    Raises:
        ValueError: If configuration is invalid
    """
    config.validate()
    level = logging.DEBUG if verbose else getattr(logging, config.level.upper())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    context = ContextFilter(config.app_name, config.app_version, config.environment)

    if config.console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        console_handler.addFilter(context)
        root.addHandler(console_handler)

    if config.log_file:
        try:
            log_dir = os.path.dirname(config.log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)

            file_handler = RotatingFileHandler(
                config.log_file,
                maxBytes=config.max_bytes,
                backupCount=config.max_backups,
                encoding="utf-8",
            )
            file_handler.setLevel(level)
            file_handler.setFormatter(JsonFormatter())
            file_handler.addFilter(context)
            root.addHandler(file_handler)
        except (OSError, PermissionError) as e:
            if not root.handlers:
                root.addHandler(logging.StreamHandler(sys.stderr))
            root.warning(f"Could not create log file: {e}. Logging to console only.")

    root.debug(
        "Logging initialized",
        extra={"log_level": logging.getLevelName(level), "log_file": config.log_file},
    )
    return root


def get_logger(name: str, **fields: Any) -> ComponentLogger:
    """Get a logger carrying the given context fields.

    Example:
        >>> log = get_logger(__name__, component="relay", relay="demo")
        >>> log.info("Starting relay")
    """
    return ComponentLogger(logging.getLogger(name), fields)


class JsonFormatter(logging.Formatter):
    """JSON log formatter for structured logging.

    Formats log records as JSON with timestamp, level, message, and extra fields.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON-formatted string
        """
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and key not in log_data:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str, ensure_ascii=False)
