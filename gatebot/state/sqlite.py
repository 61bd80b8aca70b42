"""
SQLite-backed storage for pending members and the whitelist.

Statements run in a worker thread with a connection per operation. Conditional
operations are single statements judged by ``rowcount``; update-if-present
reads and writes inside one ``BEGIN IMMEDIATE`` transaction. This keeps the
claim atomic even when several bot processes share one database file.
"""

from __future__ import annotations

import asyncio
import sqlite3
from contextlib import closing
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, TypeVar

from gatebot.core.exceptions import StoreError
from gatebot.core.logging import get_logger
from gatebot.models.pending import MemberKey, PendingMember
from gatebot.state.members import Mutator

logger = get_logger(__name__)

T = TypeVar("T")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MICROSECOND = timedelta(microseconds=1)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS pending_members (
        user_id INTEGER NOT NULL,
        chat_id INTEGER NOT NULL,
        display_name TEXT NOT NULL,
        prompt_message_id INTEGER NOT NULL,
        joined_at INTEGER NOT NULL,
        deadline INTEGER NOT NULL,
        retry_count INTEGER NOT NULL DEFAULT 0,
        PRIMARY KEY (user_id, chat_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS pending_members_deadline ON pending_members (deadline)",
    """
    CREATE TABLE IF NOT EXISTS whitelist_members (
        user_id INTEGER NOT NULL,
        chat_id INTEGER NOT NULL,
        PRIMARY KEY (user_id, chat_id)
    )
    """,
)

_COLUMNS = "user_id, chat_id, display_name, prompt_message_id, joined_at, deadline, retry_count"


def _to_micros(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - _EPOCH) // _MICROSECOND


def _from_micros(value: int) -> datetime:
    return _EPOCH + timedelta(microseconds=value)


def _row_to_member(row: sqlite3.Row) -> PendingMember:
    return PendingMember(
        user_id=row["user_id"],
        chat_id=row["chat_id"],
        display_name=row["display_name"],
        prompt_message_id=row["prompt_message_id"],
        joined_at=_from_micros(row["joined_at"]),
        deadline=_from_micros(row["deadline"]),
        retry_count=row["retry_count"],
    )


def _member_params(record: PendingMember) -> tuple[Any, ...]:
    return (
        record.user_id,
        record.chat_id,
        record.display_name,
        record.prompt_message_id,
        _to_micros(record.joined_at),
        _to_micros(record.deadline),
        record.retry_count,
    )


class SqliteDatabase:
    """Opens connections to one SQLite file and runs work off the event loop."""

    def __init__(self, db_path: str, timeout: float = 5.0) -> None:
        self._db_path = db_path
        self._timeout = timeout
        self._initialized = False
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=self._timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_schema(self) -> None:
        with closing(self._connect()) as conn:
            for statement in _SCHEMA:
                conn.execute(statement)
        self._initialized = True

    def _call(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        if not self._initialized:
            self._init_schema()
        with closing(self._connect()) as conn:
            return fn(conn)

    async def run(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        """Run ``fn(connection)`` in a worker thread."""
        try:
            return await asyncio.to_thread(self._call, fn)
        except sqlite3.Error as exc:
            logger.error("SQLite error on %s: %s", self._db_path, exc)
            raise StoreError(f"SQLite error: {exc}") from exc


class SqliteMemberStore:
    """Pending members in a SQLite table keyed by (user_id, chat_id)."""

    def __init__(self, database: SqliteDatabase) -> None:
        self._db = database

    async def get(self, key: MemberKey) -> PendingMember | None:
        def _get(conn: sqlite3.Connection) -> PendingMember | None:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM pending_members WHERE user_id = ? AND chat_id = ?",
                (key.user_id, key.chat_id),
            ).fetchone()
            return _row_to_member(row) if row else None

        return await self._db.run(_get)

    async def insert_if_absent(self, record: PendingMember) -> bool:
        def _insert(conn: sqlite3.Connection) -> bool:
            cursor = conn.execute(
                f"INSERT OR IGNORE INTO pending_members ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                _member_params(record),
            )
            return cursor.rowcount > 0

        return await self._db.run(_insert)

    async def update_if_present(self, key: MemberKey, mutator: Mutator) -> bool:
        def _update(conn: sqlite3.Connection) -> bool:
            conn.execute("BEGIN IMMEDIATE")
            try:
                row = conn.execute(
                    f"SELECT {_COLUMNS} FROM pending_members WHERE user_id = ? AND chat_id = ?",
                    (key.user_id, key.chat_id),
                ).fetchone()
                if row is None:
                    conn.execute("ROLLBACK")
                    return False
                updated = mutator(_row_to_member(row))
                if updated.key != key:
                    raise ValueError("mutator must not change the member key")
                conn.execute(
                    """
                    UPDATE pending_members
                    SET display_name = ?, prompt_message_id = ?, joined_at = ?,
                        deadline = ?, retry_count = ?
                    WHERE user_id = ? AND chat_id = ?
                    """,
                    _member_params(updated)[2:] + (key.user_id, key.chat_id),
                )
                conn.execute("COMMIT")
                return True
            except BaseException:
                conn.execute("ROLLBACK")
                raise

        return await self._db.run(_update)

    async def delete_if_present(self, key: MemberKey) -> bool:
        def _delete(conn: sqlite3.Connection) -> bool:
            cursor = conn.execute(
                "DELETE FROM pending_members WHERE user_id = ? AND chat_id = ?",
                (key.user_id, key.chat_id),
            )
            return cursor.rowcount > 0

        return await self._db.run(_delete)

    async def find_expired(
        self,
        chat_scope: set[int] | None,
        deadline_before: datetime,
    ) -> list[PendingMember]:
        def _find(conn: sqlite3.Connection) -> list[PendingMember]:
            query = f"SELECT {_COLUMNS} FROM pending_members WHERE deadline <= ?"
            params: list[Any] = [_to_micros(deadline_before)]
            if chat_scope:
                placeholders = ", ".join("?" for _ in chat_scope)
                query += f" AND chat_id IN ({placeholders})"
                params.extend(sorted(chat_scope))
            return [_row_to_member(row) for row in conn.execute(query, params).fetchall()]

        return await self._db.run(_find)


class SqliteWhitelist:
    """Whitelisted members in a SQLite table keyed by (user_id, chat_id)."""

    def __init__(self, database: SqliteDatabase) -> None:
        self._db = database

    async def contains(self, key: MemberKey) -> bool:
        def _contains(conn: sqlite3.Connection) -> bool:
            row = conn.execute(
                "SELECT 1 FROM whitelist_members WHERE user_id = ? AND chat_id = ?",
                (key.user_id, key.chat_id),
            ).fetchone()
            return row is not None

        return await self._db.run(_contains)

    async def add(self, key: MemberKey) -> bool:
        def _add(conn: sqlite3.Connection) -> bool:
            cursor = conn.execute(
                "INSERT OR IGNORE INTO whitelist_members (user_id, chat_id) VALUES (?, ?)",
                (key.user_id, key.chat_id),
            )
            return cursor.rowcount > 0

        return await self._db.run(_add)
