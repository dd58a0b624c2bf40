"""
Configuration management for the notification system.

Built from the ``telegram`` section of the application config, with
environment overrides for secrets, timeouts and rate limits.
"""

import os
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from shared.config import TelegramConfig


class NotificationType(Enum):
    """Categories of notifications, each toggled independently."""

    SYSTEM = "system"
    MONITOR = "monitor"
    RELAY = "relay"
    ERROR = "error"


@dataclass
class RateLimitConfig:
    """Rate limiting configuration for a specific notification type."""

    max_per_minute: int = 10
    max_per_hour: int = 100
    exponential_backoff: bool = True
    backoff_multiplier: float = 2.0


DEFAULT_RATE_LIMITS = {
    NotificationType.SYSTEM: RateLimitConfig(max_per_minute=5, max_per_hour=60),
    NotificationType.MONITOR: RateLimitConfig(max_per_minute=10, max_per_hour=200),
    NotificationType.RELAY: RateLimitConfig(max_per_minute=10, max_per_hour=200),
    NotificationType.ERROR: RateLimitConfig(max_per_minute=5, max_per_hour=100),
}


class NotificationConfig:
    """Configuration for Telegram notifications."""

    def __init__(self, telegram: Optional[TelegramConfig] = None) -> None:
        """
        Initialize configuration.

        Args:
            telegram: Telegram section of the application config
        """
        telegram = telegram or TelegramConfig()

        # Bot settings
        self.bot_token: str = os.getenv("TELEGRAM_BOT_TOKEN", telegram.bot_token)
        self.chat_ids: List[int] = list(telegram.chat_ids)
        self.admin_ids: List[int] = list(telegram.admin_ids)
        self.enabled_commands: List[str] = [name.lstrip("/").lower() for name in telegram.enabled_commands]
        self.api_url: str = os.getenv("TELEGRAM_API_URL", "https://api.telegram.org")

        # General settings
        self.enabled: bool = self._get_bool_env("NOTIFICATION_ENABLED", telegram.enabled)
        self.timeout_seconds: int = int(os.getenv("NOTIFICATION_TIMEOUT", "10"))

        # Rate limiting
        self.rate_limit_enabled: bool = self._get_bool_env("RATE_LIMIT_ENABLED", True)
        self._rate_limits = self._load_rate_limits()

        # Notification type filtering
        toggles = telegram.notifications
        self._type_enabled: Dict[NotificationType, bool] = {
            NotificationType.SYSTEM: toggles.system_events,
            NotificationType.MONITOR: toggles.monitor_events,
            NotificationType.RELAY: toggles.relay_events,
            NotificationType.ERROR: toggles.error_events,
        }

    def _get_bool_env(self, key: str, default: bool = False) -> bool:
        """Parse boolean environment variable."""
        value = os.getenv(key, str(default)).lower()
        return value in ("true", "1", "yes", "on")

    def _load_rate_limits(self) -> Dict[NotificationType, RateLimitConfig]:
        """Load rate limit configurations for each notification type."""
        limits = {}
        for notification_type, default in DEFAULT_RATE_LIMITS.items():
            type_name = notification_type.name
            limits[notification_type] = RateLimitConfig(
                max_per_minute=int(
                    os.getenv(f"RATE_LIMIT_{type_name}_PER_MINUTE", str(default.max_per_minute))
                ),
                max_per_hour=int(
                    os.getenv(f"RATE_LIMIT_{type_name}_PER_HOUR", str(default.max_per_hour))
                ),
                exponential_backoff=default.exponential_backoff,
                backoff_multiplier=default.backoff_multiplier,
            )
        return limits

    def get_rate_limit(self, notification_type: NotificationType) -> RateLimitConfig:
        """Get rate limit configuration for a notification type."""
        return self._rate_limits.get(notification_type, RateLimitConfig())

    def is_type_enabled(self, notification_type: NotificationType) -> bool:
        """Check if a notification type is enabled."""
        return self._type_enabled.get(notification_type, True)

    def commands_enabled(self) -> bool:
        """Check that interactive bot commands can be served to at least one admin."""
        return bool(self.enabled and self.bot_token and self.admin_ids)

    def is_command_enabled(self, name: str) -> bool:
        """An empty allow-list enables every command."""
        return not self.enabled_commands or name in self.enabled_commands

    def has_chats_configured(self) -> bool:
        """Check that a bot token and at least one chat are configured."""
        return bool(self.bot_token and self.chat_ids)
