"""
New member admission: challenge on join, answer evaluation, expiry sweep.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Callable

from telegram import Bot

from gatebot.models.pending import utcnow
from gatebot.services.admission.evaluator import AnswerEvaluator
from gatebot.services.admission.executor import AdmissionOutcomeExecutor
from gatebot.services.admission.issuer import ChallengeIssuer
from gatebot.services.admission.sweep import SweepScheduler
from gatebot.services.admission.texts import AdmissionTexts
from gatebot.services.gateway import TelegramGateway
from gatebot.state.members import InMemoryMemberStore, MemberRecordStore
from gatebot.state.sqlite import SqliteDatabase, SqliteMemberStore, SqliteWhitelist
from gatebot.state.whitelist import InMemoryWhitelist, WhitelistStore

if TYPE_CHECKING:
    from gatebot.core.config import Settings

__all__ = [
    "Admission",
    "AdmissionOutcomeExecutor",
    "AdmissionTexts",
    "AnswerEvaluator",
    "ChallengeIssuer",
    "SweepScheduler",
    "build_admission",
]


@dataclass
class Admission:
    """The admission components of one bot process."""

    issuer: ChallengeIssuer
    evaluator: AnswerEvaluator
    executor: AdmissionOutcomeExecutor
    sweep: SweepScheduler
    guarded_chats: set[int] = field(default_factory=set)
    update_expiration_seconds: int = 60

    def guards(self, chat_id: int) -> bool:
        """Whether new members of this chat are challenged."""
        return not self.guarded_chats or chat_id in self.guarded_chats


def create_stores(settings: "Settings") -> tuple[MemberRecordStore, WhitelistStore]:
    """SQLite stores when STORAGE_PATH is set, otherwise in-memory ones."""
    if settings.storage_path:
        database = SqliteDatabase(settings.storage_path)
        return SqliteMemberStore(database), SqliteWhitelist(database)
    return InMemoryMemberStore(), InMemoryWhitelist()


def build_admission(
    bot: Bot,
    settings: "Settings",
    *,
    store: MemberRecordStore | None = None,
    whitelist: WhitelistStore | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> Admission:
    """Assemble the admission components from settings."""
    if store is None or whitelist is None:
        default_store, default_whitelist = create_stores(settings)
        if store is None:
            store = default_store
        if whitelist is None:
            whitelist = default_whitelist

    gateway = TelegramGateway(bot)
    texts = AdmissionTexts(
        answer=settings.captcha_answer,
        welcome_template=settings.captcha_welcome_message,
        retry_template=settings.captcha_retry_message,
        join_template=settings.captcha_join_message,
        ban_template=settings.captcha_ban_message,
    )
    executor = AdmissionOutcomeExecutor(
        store,
        gateway,
        texts,
        whitelist=whitelist,
        ban_duration=settings.ban_duration,
        kick=settings.captcha_kick,
        grace_seconds=settings.shutdown_grace_seconds,
        clock=clock,
    )
    issuer = ChallengeIssuer(
        store,
        gateway,
        texts,
        timeout=settings.challenge_timeout,
        max_retries=settings.captcha_max_retries,
        whitelist=whitelist,
        whitelist_ids=settings.whitelist,
        clock=clock,
    )
    evaluator = AnswerEvaluator(
        store,
        gateway,
        executor,
        texts,
        expected_answer=settings.captcha_answer,
        max_retries=settings.captcha_max_retries,
        timeout=settings.challenge_timeout,
        clock=clock,
    )
    sweep = SweepScheduler(
        store,
        executor,
        settings.sweep_interval_seconds,
        chat_scope=settings.guarded_chats,
        clock=clock,
    )
    return Admission(
        issuer=issuer,
        evaluator=evaluator,
        executor=executor,
        sweep=sweep,
        guarded_chats=settings.guarded_chats,
        update_expiration_seconds=settings.update_expiration_seconds,
    )
