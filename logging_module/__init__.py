"""Logging module for Restreamer Monitor.

Main Components:
    - setup_logging: Configure console and rotating JSON file output
    - get_logger: Component logger carrying structured context fields
    - LoggingConfig: Configuration management

Example:
    >>> from logging_module import LoggingConfig, setup_logging, get_logger
    >>> setup_logging(LoggingConfig.from_env())
    >>> log = get_logger(__name__, component="monitor", room_id="76")
    >>> log.info("Room is live")
"""

from logging_module.config import LoggingConfig
from logging_module.logger import ComponentLogger, JsonFormatter, get_logger, setup_logging

__version__ = "1.0.0"
__all__ = ["LoggingConfig", "ComponentLogger", "JsonFormatter", "get_logger", "setup_logging"]
