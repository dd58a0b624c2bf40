"""
Notification System for the restreamer.

Sends Telegram notifications for live status changes, relay lifecycle
events, system events and errors, with rate limiting.

Main components:
- Notifier: Unified notification interface
- TelegramClient: Telegram Bot API client
- TelegramBot: Interactive admin commands over long polling
- RateLimiter: Rate limiting with exponential backoff
- NotificationConfig: Configuration management

Example:
    from notifier import Notifier, NotificationConfig, NotificationType

    notifier = Notifier(NotificationConfig(app_config.telegram))
    await notifier.send_system("Restreamer started")
"""

from .bot import TelegramBot
from .config import NotificationConfig, NotificationType
from .notifier import Notifier
from .telegram import TelegramClient

__version__ = "1.0.0"
__all__ = ["Notifier", "NotificationConfig", "NotificationType", "TelegramBot", "TelegramClient"]
