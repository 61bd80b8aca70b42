"""
Evaluates chat messages from pending members against the expected answer.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable

from gatebot.core.exceptions import GatewayError
from gatebot.core.logging import get_logger
from gatebot.models.admission import Action, Outcome, Resolution
from gatebot.models.messages import IncomingMessage, TextMessage
from gatebot.models.pending import MemberKey, PendingMember, utcnow
from gatebot.services.admission.executor import AdmissionOutcomeExecutor
from gatebot.services.admission.texts import AdmissionTexts
from gatebot.services.gateway import TelegramGateway
from gatebot.state.members import MemberRecordStore

logger = get_logger(__name__)


def normalize_answer(text: str) -> str:
    """Case-insensitive form of an answer."""
    return text.strip().casefold()


class AnswerEvaluator:
    """Drives a pending member to pass, retry or ban based on their message."""

    def __init__(
        self,
        store: MemberRecordStore,
        gateway: TelegramGateway,
        executor: AdmissionOutcomeExecutor,
        texts: AdmissionTexts,
        *,
        expected_answer: str,
        max_retries: int,
        timeout: timedelta,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._gateway = gateway
        self._executor = executor
        self._texts = texts
        self._expected = normalize_answer(expected_answer)
        self._max_retries = max_retries
        self._timeout = timeout
        self._clock = clock

    def is_answer(self, message: IncomingMessage) -> bool:
        """Only text can answer the challenge."""
        return isinstance(message, TextMessage) and normalize_answer(message.text) == self._expected

    async def evaluate(self, chat_id: int, user_id: int, message: IncomingMessage) -> Outcome:
        """
        Evaluate a chat message for an open challenge.

        Args:
            chat_id: Chat the message was sent to
            user_id: Sender
            message: The classified message

        Returns:
            NOT_APPLICABLE when the sender has no open challenge (or it was
            resolved concurrently), otherwise PASSED, RETRIED or BANNED
        """
        record = await self._store.get(MemberKey(user_id, chat_id))
        if record is None:
            return Outcome.NOT_APPLICABLE

        if self.is_answer(message):
            resolution = await self._executor.resolve(record, Action.ADMIT, message.message_id)
            return Outcome.PASSED if resolution is Resolution.CLAIMED else Outcome.NOT_APPLICABLE

        return await self._wrong_answer(record, message)

    async def _wrong_answer(self, record: PendingMember, message: IncomingMessage) -> Outcome:
        now = self._clock()
        seen: list[PendingMember] = []
        retried: list[PendingMember] = []

        # Retry or ban is decided on the stored record inside the atomic update
        def consume_attempt(current: PendingMember) -> PendingMember:
            seen.append(current)
            if current.retry_count + 1 >= self._max_retries:
                return current
            member = replace(current, retry_count=current.retry_count + 1, deadline=now + self._timeout)
            retried.append(member)
            return member

        if not await self._store.update_if_present(record.key, consume_attempt):
            logger.info("User %s in chat %s was resolved before retry", record.user_id, record.chat_id)
            return Outcome.NOT_APPLICABLE

        current = seen[-1]
        logger.info(
            "User %s failed challenge in chat %s (attempt %s of %s)",
            current.user_id, current.chat_id, current.retry_count + 1, self._max_retries,
        )
        if not retried:
            resolution = await self._executor.resolve(current, Action.BAN, message.message_id)
            return Outcome.BANNED if resolution is Resolution.CLAIMED else Outcome.NOT_APPLICABLE

        member = retried[-1]
        await asyncio.gather(
            self._show_remaining(member, self._max_retries - member.retry_count),
            self._gateway.delete_messages(member.chat_id, [message.message_id]),
        )
        return Outcome.RETRIED

    async def _show_remaining(self, member: PendingMember, remaining: int) -> None:
        text = self._texts.retry(member.display_name, remaining)
        try:
            await self._gateway.edit_message(member.chat_id, member.prompt_message_id, text)
        except GatewayError as exc:
            logger.warning(
                "Failed to update challenge for user %s in chat %s: %s",
                member.user_id, member.chat_id, exc,
            )
