"""
Unified notification interface for the restreamer.

This is the main entry point for sending notifications. It handles:
- Per-category toggles
- Rate limiting
- Delivery to every configured Telegram chat
- Error handling without blocking the relays or the monitor
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from monitoring.room_monitor import LiveStatusChange
from notifier.config import NotificationConfig, NotificationType
from notifier.formatting import (
    format_error,
    format_live_end,
    format_live_start,
    format_relay_status,
    format_system,
)
from notifier.rate_limiter import RateLimiter
from notifier.telegram import TelegramClient
from relay_manager.stream_relay import RelayEvent

logger = logging.getLogger(__name__)


class Notifier:
    """Unified notification interface."""

    def __init__(
        self,
        config: Optional[NotificationConfig] = None,
        client: Optional[TelegramClient] = None,
    ):
        """
        Initialize the notifier.

        Args:
            config: Optional configuration. If not provided, uses default config.
            client: Optional Telegram client (defaults to one built from config)
        """
        self.config = config or NotificationConfig()
        self.rate_limiter = RateLimiter()
        self.client = client or TelegramClient(self.config)

        # Statistics
        self.stats = self._empty_stats()

    @staticmethod
    def _empty_stats() -> Dict[str, int]:
        return {
            "sent": 0,
            "failed": 0,
            "rate_limited": 0,
            "disabled": 0,
        }

    async def send(
        self,
        notification_type: NotificationType,
        text: str,
        photo_url: Optional[str] = None,
        force: bool = False,
    ) -> bool:
        """
        Send a notification to every configured chat.

        Args:
            notification_type: Type of notification
            text: MarkdownV2 formatted text
            photo_url: Optional image sent with the text as caption
            force: If True, bypass type toggles and rate limiting

        Returns:
            True if at least one chat received the notification
        """
        # Check if notifications are enabled
        if not self.config.enabled:
            logger.debug("Notifications are disabled")
            return False

        # Check if this notification type is enabled
        if not self.config.is_type_enabled(notification_type) and not force:
            logger.debug(f"Notification type {notification_type.value} is disabled")
            self.stats["disabled"] += 1
            return False

        if not self.config.has_chats_configured():
            logger.warning("No Telegram chats configured, cannot send notification")
            return False

        # Check rate limiting
        rate_config = self.config.get_rate_limit(notification_type)
        if self.config.rate_limit_enabled and not force:
            can_send, reason = self.rate_limiter.can_send(notification_type, rate_config, content=text)
            if not can_send:
                logger.debug(f"Rate limit blocked notification: {reason}")
                self.stats["rate_limited"] += 1
                return False

        results = await asyncio.gather(
            *(self._deliver(chat_id, text, photo_url) for chat_id in self.config.chat_ids)
        )

        if any(results):
            self.stats["sent"] += 1
            if self.config.rate_limit_enabled and not force:
                self.rate_limiter.record_sent(notification_type, rate_config, content=text)
            return True

        self.stats["failed"] += 1
        return False

    async def _deliver(self, chat_id: int, text: str, photo_url: Optional[str]) -> bool:
        try:
            if photo_url:
                if await self.client.send_photo(chat_id, photo_url, caption=text):
                    return True
                logger.warning(f"Failed to send photo to {chat_id}, falling back to text")
            return await self.client.send_message(chat_id, text)
        except Exception as e:
            logger.error(f"Error sending Telegram notification to {chat_id}: {e}")
            return False

    async def send_live_status(self, change: LiveStatusChange) -> bool:
        """
        Notify a room going live or offline.

        A room first observed offline is not reported.
        """
        if change.is_live:
            text, photo_url = format_live_start(change.room_info)
            return await self.send(NotificationType.MONITOR, text, photo_url=photo_url or None)

        if change.first_observation:
            return False
        return await self.send(NotificationType.MONITOR, format_live_end(change.room_info))

    async def send_relay_event(self, event: RelayEvent) -> bool:
        """Notify a relay lifecycle event."""
        text = format_relay_status(event.relay_name, event.kind.value, event.details)
        return await self.send(NotificationType.RELAY, text)

    async def send_system(self, message: str) -> bool:
        return await self.send(NotificationType.SYSTEM, format_system(message))

    async def send_error(self, message: str, error: Optional[Any] = None) -> bool:
        """
        Convenience method for error notifications.

        Args:
            message: Error message
            error: Optional exception or error text

        Returns:
            True if sent successfully
        """
        return await self.send(NotificationType.ERROR, format_error(message, error))

    def get_stats(self) -> Dict[str, int]:
        """
        Get notification statistics.

        Returns:
            Dictionary with statistics
        """
        return self.stats.copy()

    def reset_stats(self) -> None:
        """Reset notification statistics."""
        self.stats = self._empty_stats()
