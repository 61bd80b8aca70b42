"""
Telegram Bot API operations used by the admission flow.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Iterable

from telegram import Bot
from telegram.error import TelegramError

from gatebot.core.exceptions import GatewayError
from gatebot.core.logging import get_logger

logger = get_logger(__name__)


class TelegramGateway:
    """Thin wrapper over telegram.Bot that raises GatewayError on API failures."""

    def __init__(self, bot: Bot):
        self._bot = bot

    async def send_message(self, chat_id: int, text: str) -> int:
        """
        Send a message to a chat.

        Returns:
            ID of the sent message

        Raises:
            GatewayError: If the API call fails
        """
        try:
            message = await self._bot.send_message(chat_id=chat_id, text=text)
        except TelegramError as e:
            raise GatewayError(f"Failed to send message to chat {chat_id}: {e}") from e
        return message.message_id

    async def edit_message(self, chat_id: int, message_id: int, text: str) -> None:
        """
        Replace the text of a message sent by the bot.

        Raises:
            GatewayError: If the message is gone or the API call fails
        """
        try:
            await self._bot.edit_message_text(text=text, chat_id=chat_id, message_id=message_id)
        except TelegramError as e:
            raise GatewayError(f"Failed to edit message {message_id} in chat {chat_id}: {e}") from e

    async def delete_messages(self, chat_id: int, message_ids: Iterable[int | None]) -> None:
        """
        Delete messages one by one. Failures are logged and never raised.

        Args:
            chat_id: Chat the messages belong to
            message_ids: Message IDs; None entries are skipped
        """
        ids = [message_id for message_id in dict.fromkeys(message_ids) if message_id is not None]
        if not ids:
            return

        results = await asyncio.gather(
            *(self._bot.delete_message(chat_id=chat_id, message_id=message_id) for message_id in ids),
            return_exceptions=True,
        )
        for message_id, result in zip(ids, results):
            if isinstance(result, TelegramError):
                logger.warning("Failed to delete message %s in chat %s: %s", message_id, chat_id, result)
            elif isinstance(result, BaseException):
                raise result

    async def ban_member(self, chat_id: int, user_id: int, until: datetime | None = None) -> None:
        """
        Ban a user from a chat.

        Args:
            chat_id: Chat to ban from
            user_id: User to ban
            until: End of the ban; None bans permanently

        Raises:
            GatewayError: If the API call fails
        """
        try:
            await self._bot.ban_chat_member(chat_id=chat_id, user_id=user_id, until_date=until)
        except TelegramError as e:
            raise GatewayError(f"Failed to ban user {user_id} in chat {chat_id}: {e}") from e

    async def unban_member(self, chat_id: int, user_id: int) -> None:
        """
        Lift a ban so the user may join again.

        Raises:
            GatewayError: If the API call fails
        """
        try:
            await self._bot.unban_chat_member(chat_id=chat_id, user_id=user_id, only_if_banned=True)
        except TelegramError as e:
            raise GatewayError(f"Failed to unban user {user_id} in chat {chat_id}: {e}") from e
