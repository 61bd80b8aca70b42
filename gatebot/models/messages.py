"""
Incoming chat message kinds seen by the admission flow.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Union

from telegram import Message


@dataclass(frozen=True)
class TextMessage:
    """Plain text, or the caption of a media message."""

    message_id: int
    text: str
    date: datetime | None = None


@dataclass(frozen=True)
class StickerMessage:
    message_id: int
    date: datetime | None = None


@dataclass(frozen=True)
class OtherMessage:
    message_id: int
    date: datetime | None = None


IncomingMessage = Union[TextMessage, StickerMessage, OtherMessage]


def from_telegram(message: Message) -> IncomingMessage:
    """Classify a telegram.Message into one of the incoming message kinds."""
    if message.text is not None:
        return TextMessage(message.message_id, message.text, message.date)
    if message.caption is not None:
        return TextMessage(message.message_id, message.caption, message.date)
    if message.sticker is not None:
        return StickerMessage(message.message_id, message.date)
    return OtherMessage(message.message_id, message.date)
