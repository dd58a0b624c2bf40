"""
Telegram Bot API client.

Sends MarkdownV2 messages and photos to chats and long-polls for
incoming commands through the HTTP Bot API.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from notifier.config import NotificationConfig

logger = logging.getLogger(__name__)

PARSE_MODE = "MarkdownV2"


class TelegramClient:
    """Telegram Bot API client."""

    def __init__(self, config: NotificationConfig):
        """
        Initialize Telegram client.

        Args:
            config: Notification configuration
        """
        self.config = config

    @property
    def base_url(self) -> str:
        return f"{self.config.api_url}/bot{self.config.bot_token}"

    async def _call(self, method: str, payload: Dict[str, Any]) -> bool:
        """
        Call a Bot API method.

        Returns:
            True if Telegram accepted the request, False otherwise
        """
        if not self.config.bot_token:
            logger.warning("Telegram bot token not configured")
            return False

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    f"{self.base_url}/{method}",
                    json=payload,
                    timeout=aiohttp.ClientTimeout(total=self.config.timeout_seconds),
                ) as response:
                    if response.status == 200:
                        logger.debug(f"Telegram {method} to {payload.get('chat_id')} succeeded")
                        return True
                    elif response.status == 429:
                        # Rate limited by Telegram
                        body = await response.json()
                        retry_after = (body.get("parameters") or {}).get("retry_after", 1)
                        logger.warning(f"Telegram rate limit hit, retry after {retry_after}s")
                        return False
                    else:
                        error_text = await response.text()
                        logger.error(f"Telegram {method} failed: {response.status} - {error_text}")
                        return False

        except asyncio.TimeoutError:
            logger.error(f"Telegram {method} timed out")
            return False
        except aiohttp.ClientError as e:
            logger.error(f"Telegram {method} failed: {e}")
            return False

    async def send_message(self, chat_id: int, text: str) -> bool:
        """
        Send a text message.

        Args:
            chat_id: Target chat
            text: MarkdownV2 formatted text

        Returns:
            True if successful, False otherwise
        """
        return await self._call(
            "sendMessage",
            {
                "chat_id": chat_id,
                "text": text,
                "parse_mode": PARSE_MODE,
                "disable_web_page_preview": False,
            },
        )

    async def send_photo(self, chat_id: int, photo_url: str, caption: Optional[str] = None) -> bool:
        """
        Send a photo by URL with an optional caption.

        Args:
            chat_id: Target chat
            photo_url: Public URL of the image
            caption: MarkdownV2 formatted caption

        Returns:
            True if successful, False otherwise
        """
        payload: Dict[str, Any] = {"chat_id": chat_id, "photo": photo_url}
        if caption:
            payload["caption"] = caption
            payload["parse_mode"] = PARSE_MODE
        return await self._call("sendPhoto", payload)

    async def get_updates(self, offset: Optional[int] = None, timeout: int = 60) -> Optional[List[Dict[str, Any]]]:
        """
        Long-poll for incoming message updates.

        Args:
            offset: Identifier of the first update to return
            timeout: Long-poll timeout in seconds

        Returns:
            Updates received (possibly empty), or None if the request failed
        """
        if not self.config.bot_token:
            logger.warning("Telegram bot token not configured")
            return None

        payload: Dict[str, Any] = {"timeout": timeout, "allowed_updates": ["message"]}
        if offset is not None:
            payload["offset"] = offset

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    f"{self.base_url}/getUpdates",
                    json=payload,
                    timeout=aiohttp.ClientTimeout(total=timeout + self.config.timeout_seconds),
                ) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        logger.error(f"Telegram getUpdates failed: {response.status} - {error_text}")
                        return None
                    body = await response.json()

        except asyncio.TimeoutError:
            logger.warning("Telegram getUpdates timed out")
            return None
        except (aiohttp.ClientError, ValueError) as e:
            logger.error(f"Telegram getUpdates failed: {e}")
            return None

        if not isinstance(body, dict) or not body.get("ok"):
            logger.error(f"Telegram getUpdates returned an error: {body}")
            return None
        result = body.get("result")
        return [update for update in result if isinstance(update, dict)] if isinstance(result, list) else []
