"""
Interactive Telegram bot commands.

Long-polls ``getUpdates`` and dispatches ``/command`` messages sent by
admins to registered handlers. Every reply goes back to the chat the
command came from.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple

from notifier.config import NotificationConfig
from notifier.formatting import escape_markdown, format_error
from notifier.telegram import TelegramClient
from relay_manager.scope import CancelScope

logger = logging.getLogger(__name__)

CommandHandler = Callable[[List[str]], Awaitable[str]]

UNAUTHORIZED_REPLY = "❌ 您没有权限使用此功能"
DISABLED_REPLY = "❌ 此命令已禁用"
UNKNOWN_REPLY = "❌ 未知命令。使用 /help 查看可用命令"


@dataclass(frozen=True)
class BotCommand:
    """A ``/command arg ...`` message."""

    name: str
    args: Tuple[str, ...]
    chat_id: int
    user_id: Optional[int] = None

    @classmethod
    def from_update(cls, update: Mapping[str, Any]) -> Optional["BotCommand"]:
        """Parse an update, returning None for anything but a command message."""
        message = update.get("message")
        if not isinstance(message, dict):
            return None

        text = message.get("text")
        chat_id = (message.get("chat") or {}).get("id")
        if not isinstance(text, str) or not text.startswith("/") or chat_id is None:
            return None

        parts = text.split()
        # /status@my_bot -> status
        name = parts[0][1:].split("@", 1)[0].lower()
        if not name:
            return None

        sender = message.get("from") or {}
        return cls(name=name, args=tuple(parts[1:]), chat_id=chat_id, user_id=sender.get("id"))


class TelegramBot:
    """Serves bot commands to the admins listed in the notification config."""

    def __init__(
        self,
        config: NotificationConfig,
        client: Optional[TelegramClient] = None,
        poll_timeout: int = 60,
        retry_delay: float = 5.0,
    ):
        """
        Initialize the bot.

        Args:
            config: Notification configuration (token, admins, allow-list)
            client: Bot API client (defaults to one built from ``config``)
            poll_timeout: Long-poll timeout in seconds
            retry_delay: Pause after a failed poll
        """
        self.config = config
        self.client = client or TelegramClient(config)
        self.poll_timeout = poll_timeout
        self.retry_delay = retry_delay
        self._handlers: Dict[str, Tuple[CommandHandler, str]] = {}
        self._offset: Optional[int] = None
        self._scope = CancelScope()

    def register(self, name: str, handler: CommandHandler, description: str = "") -> None:
        """Register ``handler`` for ``/name``. It returns the MarkdownV2 reply."""
        self._handlers[name.lower()] = (handler, description)

    @property
    def commands(self) -> List[str]:
        return ["start", "help", *self._handlers]

    def is_authorized(self, user_id: Optional[int]) -> bool:
        return user_id is not None and user_id in self.config.admin_ids

    def help_text(self) -> str:
        lines = ["🤖 *可用命令*", ""]
        for name, (_, description) in self._handlers.items():
            if self.config.is_command_enabled(name):
                lines.append(escape_markdown(f"/{name} - {description}" if description else f"/{name}"))
        lines.append(escape_markdown("/help - 显示帮助信息"))
        return "\n".join(lines)

    async def run(self) -> None:
        """Poll for commands until stopped."""
        logger.info("Telegram bot started")
        try:
            while not self._scope.cancelled:
                updates = await self._poll()
                if updates is None:
                    if await self._scope.sleep(self.retry_delay):
                        break
                    continue

                for update in updates:
                    update_id = update.get("update_id")
                    if isinstance(update_id, int):
                        self._offset = update_id + 1
                    command = BotCommand.from_update(update)
                    if command is not None:
                        await self.handle(command)
        finally:
            logger.info("Telegram bot stopped")

    def stop(self) -> None:
        """Request the polling loop to exit, abandoning an in-flight poll."""
        self._scope.cancel()

    async def _poll(self) -> Optional[List[Dict[str, Any]]]:
        poll = asyncio.create_task(self.client.get_updates(self._offset, self.poll_timeout))
        cancel_waiter = asyncio.create_task(self._scope.wait())
        try:
            await asyncio.wait({poll, cancel_waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancel_waiter.cancel()

        if not poll.done():
            poll.cancel()
            await asyncio.gather(poll, return_exceptions=True)
            return []
        return poll.result()

    async def handle(self, command: BotCommand) -> None:
        """Answer one command in the chat it was sent from."""
        logger.info(f"Bot command /{command.name} from user {command.user_id}")
        reply = await self._reply(command)
        await self.client.send_message(command.chat_id, reply)

    async def _reply(self, command: BotCommand) -> str:
        if not self.is_authorized(command.user_id):
            logger.warning(f"Unauthorized bot command /{command.name} from user {command.user_id}")
            return escape_markdown(UNAUTHORIZED_REPLY)

        if not self.config.is_command_enabled(command.name):
            return escape_markdown(DISABLED_REPLY)

        if command.name in ("start", "help"):
            return self.help_text()

        entry = self._handlers.get(command.name)
        if entry is None:
            return escape_markdown(UNKNOWN_REPLY)

        handler, _ = entry
        try:
            return await handler(list(command.args))
        except Exception as e:
            logger.error(f"Bot command /{command.name} failed: {e}", exc_info=True)
            return format_error(f"命令 /{command.name} 执行失败", e)
