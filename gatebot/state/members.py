"""
Storage for members with an open admission challenge.

Every mutating operation is conditional and reports whether it took effect.
``delete_if_present`` is the claim: whoever gets ``True`` owns the member and
is the only caller allowed to act on it.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Protocol

from gatebot.models.pending import MemberKey, PendingMember

Mutator = Callable[[PendingMember], PendingMember]


class MemberRecordStore(Protocol):
    """Keyed store of pending members with atomic conditional mutation."""

    async def get(self, key: MemberKey) -> PendingMember | None: ...

    async def insert_if_absent(self, record: PendingMember) -> bool: ...

    async def update_if_present(self, key: MemberKey, mutator: Mutator) -> bool: ...

    async def delete_if_present(self, key: MemberKey) -> bool: ...

    async def find_expired(
        self,
        chat_scope: set[int] | None,
        deadline_before: datetime,
    ) -> list[PendingMember]: ...


class InMemoryMemberStore:
    """Process-local storage for pending members.

    Each operation checks and mutates without yielding to the event loop, so it
    is atomic with respect to every other coroutine.
    """

    def __init__(self):
        self._members: dict[MemberKey, PendingMember] = {}

    async def get(self, key: MemberKey) -> PendingMember | None:
        """Get a pending member without removing."""
        return self._members.get(key)

    async def insert_if_absent(self, record: PendingMember) -> bool:
        """Add a pending member unless one already exists for its key."""
        if record.key in self._members:
            return False
        self._members[record.key] = record
        return True

    async def update_if_present(self, key: MemberKey, mutator: Mutator) -> bool:
        """Replace a pending member with ``mutator(current)`` if it still exists."""
        current = self._members.get(key)
        if current is None:
            return False
        updated = mutator(current)
        if updated.key != key:
            raise ValueError("mutator must not change the member key")
        self._members[key] = updated
        return True

    async def delete_if_present(self, key: MemberKey) -> bool:
        """Remove a pending member; True only for the caller that removed it."""
        return self._members.pop(key, None) is not None

    async def find_expired(
        self,
        chat_scope: set[int] | None,
        deadline_before: datetime,
    ) -> list[PendingMember]:
        """Get all members whose deadline is at or before ``deadline_before``."""
        return [
            member
            for member in self._members.values()
            if member.is_expired(deadline_before)
            and (not chat_scope or member.chat_id in chat_scope)
        ]

    def __contains__(self, key: MemberKey) -> bool:
        return key in self._members

    def __len__(self) -> int:
        return len(self._members)
