"""
Rate limiting for notifications with exponential backoff.

Enforces per-type per-minute and per-hour caps. Repeating the same
message (e.g. a relay failing in a loop) doubles the required delay
between copies, up to one hour.
"""

import time
from collections import deque
from threading import Lock
from typing import Deque, Dict, Optional, Tuple

from notifier.config import NotificationType, RateLimitConfig

MAX_BACKOFF_SECONDS = 3600.0
BASE_BACKOFF_SECONDS = 1.0

ContentKey = Tuple[NotificationType, str]


class RateLimiter:
    """Rate limiter with per-type limits and exponential backoff."""

    def __init__(self, clock=time.monotonic) -> None:
        """
        Initialize the rate limiter.

        Args:
            clock: Monotonic time source in seconds
        """
        self._clock = clock
        self._lock = Lock()
        self._sent: Dict[NotificationType, Deque[float]] = {}
        self._last_sent: Dict[ContentKey, float] = {}
        self._backoff: Dict[ContentKey, float] = {}

    def can_send(
        self,
        notification_type: NotificationType,
        config: RateLimitConfig,
        content: Optional[str] = None,
    ) -> Tuple[bool, Optional[str]]:
        """
        Check if a notification can be sent based on rate limits.

        Args:
            notification_type: Type of notification
            config: Rate limit configuration
            content: Optional content for duplicate backoff

        Returns:
            Tuple of (can_send, reason). reason explains a refusal.
        """
        with self._lock:
            now = self._clock()
            sent = self._prune(notification_type, now)

            minute_count = sum(1 for t in sent if now - t < 60)
            if minute_count >= config.max_per_minute:
                return False, f"Rate limit: {minute_count}/{config.max_per_minute} per minute"

            if len(sent) >= config.max_per_hour:
                return False, f"Rate limit: {len(sent)}/{config.max_per_hour} per hour"

            if content and config.exponential_backoff:
                key = (notification_type, content)
                last = self._last_sent.get(key)
                if last is not None:
                    required = self._backoff.get(key, BASE_BACKOFF_SECONDS)
                    elapsed = now - last
                    if elapsed < required:
                        return False, f"Backoff: {required - elapsed:.1f}s remaining"

            return True, None

    def record_sent(
        self,
        notification_type: NotificationType,
        config: RateLimitConfig,
        content: Optional[str] = None,
    ) -> None:
        """Record that a notification was sent."""
        with self._lock:
            now = self._clock()
            self._sent.setdefault(notification_type, deque()).append(now)

            if content and config.exponential_backoff:
                key = (notification_type, content)
                if key in self._last_sent:
                    self._backoff[key] = min(
                        self._backoff.get(key, BASE_BACKOFF_SECONDS) * config.backoff_multiplier,
                        MAX_BACKOFF_SECONDS,
                    )
                else:
                    self._backoff[key] = BASE_BACKOFF_SECONDS
                self._last_sent[key] = now

    def _prune(self, notification_type: NotificationType, now: float) -> Deque[float]:
        """Drop records older than an hour and return the type's queue."""
        sent = self._sent.setdefault(notification_type, deque())
        while sent and now - sent[0] >= 3600:
            sent.popleft()

        expired = [key for key, t in self._last_sent.items() if now - t > MAX_BACKOFF_SECONDS]
        for key in expired:
            del self._last_sent[key]
            self._backoff.pop(key, None)

        return sent

    def get_stats(self, notification_type: NotificationType) -> Dict[str, int]:
        """Counts of notifications sent in the last minute and hour."""
        with self._lock:
            now = self._clock()
            sent = self._prune(notification_type, now)
            return {
                "minute_count": sum(1 for t in sent if now - t < 60),
                "hour_count": len(sent),
            }

    def reset(self, notification_type: Optional[NotificationType] = None) -> None:
        """Reset records for one type, or everything."""
        with self._lock:
            if notification_type:
                self._sent.pop(notification_type, None)
            else:
                self._sent.clear()
                self._last_sent.clear()
                self._backoff.clear()
