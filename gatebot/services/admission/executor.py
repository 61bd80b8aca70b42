"""
Terminal actions for pending members: admit or ban.

Both the answer evaluator and the expiry sweep end up here. A member is only
acted on by the caller that manages to delete its record; everyone else sees
``Resolution.LOST_RACE`` and does nothing.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Awaitable, Callable

from gatebot.core.exceptions import GatewayError, StoreError
from gatebot.core.logging import get_logger
from gatebot.models.admission import Action, Resolution
from gatebot.models.pending import PendingMember, utcnow
from gatebot.services.admission.texts import AdmissionTexts
from gatebot.services.gateway import TelegramGateway
from gatebot.state.members import MemberRecordStore
from gatebot.state.whitelist import WhitelistStore

logger = get_logger(__name__)


class AdmissionOutcomeExecutor:
    """Claims pending member records and performs the admit/ban side effects."""

    def __init__(
        self,
        store: MemberRecordStore,
        gateway: TelegramGateway,
        texts: AdmissionTexts,
        *,
        whitelist: WhitelistStore | None = None,
        ban_duration: timedelta | None = None,
        kick: bool = False,
        grace_seconds: float = 5.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._gateway = gateway
        self._texts = texts
        self._whitelist = whitelist
        self._ban_duration = ban_duration
        self._kick = kick
        self._grace_seconds = grace_seconds
        self._clock = clock

    async def resolve(
        self,
        record: PendingMember,
        action: Action,
        message_id: int | None = None,
    ) -> Resolution:
        """
        Claim a pending member and apply a terminal action.

        Args:
            record: Member to resolve
            action: Admit or ban
            message_id: The member's answer (admit) or offending message (ban), if any

        Returns:
            CLAIMED if this call removed the record and ran the side effects,
            LOST_RACE if the record was already gone
        """
        if not await self._store.delete_if_present(record.key):
            logger.info(
                "Skip %s for user %s in chat %s: already resolved",
                action.value, record.user_id, record.chat_id,
            )
            return Resolution.LOST_RACE

        logger.info("Claimed user %s in chat %s for %s", record.user_id, record.chat_id, action.value)

        # Record is already deleted: side effects outlive a cancelled caller for the grace period
        effects = asyncio.ensure_future(self._apply(record, action, message_id))
        try:
            await asyncio.shield(effects)
        except asyncio.CancelledError:
            await self._finish_after_cancel(effects, record, action)
            raise
        return Resolution.CLAIMED

    async def _finish_after_cancel(
        self,
        effects: asyncio.Future,
        record: PendingMember,
        action: Action,
    ) -> None:
        if effects.done():
            return
        logger.warning(
            "Shutdown during %s of user %s in chat %s, waiting up to %.1fs",
            action.value, record.user_id, record.chat_id, self._grace_seconds,
        )
        try:
            await asyncio.wait_for(effects, timeout=self._grace_seconds)
        except asyncio.TimeoutError:
            logger.error(
                "Abandoned %s of user %s in chat %s after grace period",
                action.value, record.user_id, record.chat_id,
            )
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "%s of user %s in chat %s failed during shutdown: %s",
                action.value, record.user_id, record.chat_id, exc,
            )

    async def _apply(self, record: PendingMember, action: Action, message_id: int | None) -> None:
        if action is Action.ADMIT:
            await self._admit(record, message_id)
        else:
            await self._ban(record, message_id)

    async def _admit(self, record: PendingMember, message_id: int | None) -> None:
        await asyncio.gather(
            self._attempt(
                "delete challenge messages",
                record,
                Action.ADMIT,
                lambda: self._gateway.delete_messages(record.chat_id, [record.prompt_message_id, message_id]),
            ),
            self._attempt(
                "send join message",
                record,
                Action.ADMIT,
                lambda: self._gateway.send_message(record.chat_id, self._texts.join(record.display_name)),
            ),
            self._remember(record),
        )
        logger.info("User %s passed the challenge in chat %s", record.user_id, record.chat_id)

    async def _ban(self, record: PendingMember, message_id: int | None) -> None:
        await asyncio.gather(
            self._attempt(
                "delete challenge messages",
                record,
                Action.BAN,
                lambda: self._gateway.delete_messages(record.chat_id, [record.prompt_message_id, message_id]),
            ),
            self._ban_member(record),
        )

        notice = self._texts.ban(record.display_name)
        if notice:
            await self._attempt(
                "send ban message",
                record,
                Action.BAN,
                lambda: self._gateway.send_message(record.chat_id, notice),
            )

    async def _ban_member(self, record: PendingMember) -> None:
        until = self._clock() + self._ban_duration if self._ban_duration else None
        banned = await self._attempt(
            "ban member",
            record,
            Action.BAN,
            lambda: self._gateway.ban_member(record.chat_id, record.user_id, until),
        )
        if not banned:
            return
        logger.info("User %s banned after failed challenge in chat %s", record.display_name, record.chat_id)

        if self._kick:
            await self._attempt(
                "unban kicked member",
                record,
                Action.BAN,
                lambda: self._gateway.unban_member(record.chat_id, record.user_id),
            )

    async def _remember(self, record: PendingMember) -> None:
        if self._whitelist is None:
            return
        try:
            await self._whitelist.add(record.key)
        except StoreError as exc:
            logger.error("Failed to whitelist user %s in chat %s: %s", record.user_id, record.chat_id, exc)

    async def _attempt(
        self,
        description: str,
        record: PendingMember,
        action: Action,
        call: Callable[[], Awaitable[object]],
    ) -> bool:
        try:
            await call()
        except GatewayError as exc:
            logger.error(
                "Failed to %s for user %s in chat %s (%s): %s",
                description, record.user_id, record.chat_id, action.value, exc,
            )
            return False
        return True
