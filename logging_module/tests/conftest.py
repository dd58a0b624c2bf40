"""Pytest configuration and fixtures for logging_module tests."""

import logging

import pytest

from logging_module.config import LoggingConfig


@pytest.fixture
def test_config(tmp_path):
    """Logging configuration writing to a temporary file."""
    return LoggingConfig(
        level="DEBUG",
        log_file=str(tmp_path / "logs" / "test.log"),
        console=True,
        max_size=1,
        max_backups=2,
        environment="test",
    )


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Restore root handlers and level after each test."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
