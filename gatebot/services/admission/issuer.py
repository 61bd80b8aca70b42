"""
Issues the admission challenge to members joining a guarded chat.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Iterable

from gatebot.core.exceptions import AdmitError, GatewayError
from gatebot.core.logging import get_logger
from gatebot.models.pending import ChatUser, MemberKey, PendingMember, utcnow
from gatebot.services.admission.texts import AdmissionTexts
from gatebot.services.gateway import TelegramGateway
from gatebot.state.members import MemberRecordStore
from gatebot.state.whitelist import WhitelistStore

logger = get_logger(__name__)


class ChallengeIssuer:
    """Sends the challenge prompt and records the member as pending."""

    def __init__(
        self,
        store: MemberRecordStore,
        gateway: TelegramGateway,
        texts: AdmissionTexts,
        *,
        timeout: timedelta,
        max_retries: int,
        whitelist: WhitelistStore | None = None,
        whitelist_ids: Iterable[int] = (),
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._gateway = gateway
        self._texts = texts
        self._timeout = timeout
        self._max_retries = max_retries
        self._whitelist = whitelist
        self._whitelist_ids = frozenset(whitelist_ids)
        self._clock = clock

    async def should_challenge(self, chat_id: int, user: ChatUser) -> bool:
        """Bots and whitelisted members join without a challenge."""
        if user.is_bot or user.id in self._whitelist_ids:
            return False
        if self._whitelist is not None and await self._whitelist.contains(MemberKey(user.id, chat_id)):
            logger.info("Whitelisted member %s joined chat %s", user.id, chat_id)
            return False
        return True

    async def admit(self, chat_id: int, user: ChatUser) -> PendingMember:
        """
        Challenge a member who just joined.

        Args:
            chat_id: Chat the user joined
            user: The new member

        Returns:
            The created pending member record

        Raises:
            AdmitError: If the member already has an open challenge or the
                prompt could not be sent
        """
        key = MemberKey(user.id, chat_id)
        if await self._store.get(key) is not None:
            raise AdmitError(f"User {user.id} already has an open challenge in chat {chat_id}")

        now = self._clock()
        deadline = now + self._timeout
        text = self._texts.welcome(user.display_name, self._timeout, self._max_retries)

        try:
            prompt_message_id = await self._gateway.send_message(chat_id, text)
        except GatewayError as e:
            raise AdmitError(f"Failed to send challenge to {user.display_name} in chat {chat_id}: {e}") from e

        record = PendingMember(
            user_id=user.id,
            chat_id=chat_id,
            display_name=user.display_name,
            prompt_message_id=prompt_message_id,
            joined_at=now,
            deadline=deadline,
        )
        if not await self._store.insert_if_absent(record):
            # A concurrent join for the same key won; drop our duplicate prompt
            await self._gateway.delete_messages(chat_id, [prompt_message_id])
            raise AdmitError(f"User {user.id} already has an open challenge in chat {chat_id}")

        logger.info(
            "Challenge sent to %s (%s) in chat %s, deadline %s",
            user.display_name, user.id, chat_id, deadline.isoformat(),
        )
        return record
