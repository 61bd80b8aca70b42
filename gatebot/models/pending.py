"""
Data model for members waiting to pass the admission challenge.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import NamedTuple


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MemberKey(NamedTuple):
    """Identifies a pending member: one record per user per chat."""

    user_id: int
    chat_id: int


@dataclass(frozen=True)
class PendingMember:
    """A new member who joined a guarded chat and has not answered yet."""

    user_id: int
    chat_id: int
    display_name: str
    prompt_message_id: int
    joined_at: datetime
    deadline: datetime
    retry_count: int = 0

    @property
    def key(self) -> MemberKey:
        return MemberKey(self.user_id, self.chat_id)

    def is_expired(self, now: datetime) -> bool:
        return self.deadline <= now


@dataclass(frozen=True)
class ChatUser:
    """The part of a Telegram user the admission flow needs."""

    id: int
    display_name: str
    is_bot: bool = False

    @classmethod
    def from_telegram(cls, user) -> "ChatUser":
        """Build from a telegram.User: @username when set, otherwise the first name."""
        name = f"@{user.username}" if user.username else (user.first_name or str(user.id))
        return cls(id=user.id, display_name=name, is_bot=bool(user.is_bot))
