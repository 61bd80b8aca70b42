"""
Members who passed the challenge and are not challenged again in that chat.
"""

from __future__ import annotations

from typing import Protocol

from gatebot.models.pending import MemberKey


class WhitelistStore(Protocol):
    async def contains(self, key: MemberKey) -> bool: ...

    async def add(self, key: MemberKey) -> bool: ...


class InMemoryWhitelist:
    """Process-local whitelist."""

    def __init__(self):
        self._members: set[MemberKey] = set()

    async def contains(self, key: MemberKey) -> bool:
        return key in self._members

    async def add(self, key: MemberKey) -> bool:
        """Add a member; False if already whitelisted."""
        if key in self._members:
            return False
        self._members.add(key)
        return True
