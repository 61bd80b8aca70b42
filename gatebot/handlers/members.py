"""
Handlers for new chat members and their messages.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from telegram import ChatMember, ChatMemberUpdated, Update
from telegram.ext import ApplicationHandlerStop, ContextTypes

from gatebot.core.exceptions import BotError
from gatebot.core.logging import get_logger
from gatebot.models.admission import Outcome
from gatebot.models.messages import from_telegram
from gatebot.models.pending import ChatUser, utcnow
from gatebot.services.admission import Admission

logger = get_logger(__name__)

ADMISSION_KEY = "admission"


def get_admission(context: ContextTypes.DEFAULT_TYPE) -> Admission:
    return context.bot_data[ADMISSION_KEY]


def _is_member(member: ChatMember) -> bool:
    if member.status in (ChatMember.MEMBER, ChatMember.OWNER, ChatMember.ADMINISTRATOR):
        return True
    return member.status == ChatMember.RESTRICTED and bool(getattr(member, "is_member", False))


def _joined(change: ChatMemberUpdated) -> bool:
    """Was not a member before the update and is one after it."""
    return not _is_member(change.old_chat_member) and _is_member(change.new_chat_member)


def _is_stale(date: datetime | None, max_age_seconds: int) -> bool:
    if date is None:
        return False
    return utcnow() - date > timedelta(seconds=max_age_seconds)


async def handle_chat_member(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Challenge users who join a guarded chat."""
    change = update.chat_member
    if change is None or not _joined(change):
        return
    if change.via_join_request:
        return

    admission = get_admission(context)
    chat_id = change.chat.id
    if not admission.guards(chat_id):
        return

    user = ChatUser.from_telegram(change.new_chat_member.user)
    try:
        if not await admission.issuer.should_challenge(chat_id, user):
            return
        await admission.issuer.admit(chat_id, user)
    except BotError as e:
        logger.error(f"Failed to challenge {user.display_name} ({user.id}) in chat {chat_id}: {e}")


async def handle_chat_message(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Check group messages against open challenges.

    Messages that belonged to a challenge are not passed to other handler groups.
    """
    message = update.effective_message
    user = update.effective_user
    chat = update.effective_chat
    if message is None or user is None or chat is None:
        return

    admission = get_admission(context)
    if not admission.guards(chat.id):
        return
    incoming = from_telegram(message)
    if _is_stale(incoming.date, admission.update_expiration_seconds):
        return

    try:
        outcome = await admission.evaluator.evaluate(chat.id, user.id, incoming)
    except BotError as e:
        logger.error(f"Captcha check failed for user {user.id} in chat {chat.id}: {e}")
        return

    if outcome is not Outcome.NOT_APPLICABLE:
        raise ApplicationHandlerStop
