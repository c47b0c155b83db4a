# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Durable storage of queued messages.

:class:`QueueStore` owns the queue table. Rows hold the JSON-encoded message,
a priority (higher first), a due time, the time of the last failed attempt
and the number of failed attempts. Times are stored as UTC epoch seconds.

Example::

    store = QueueStore(get_adapter("/data/mail_queue.db"))
    await store.init_db()
    entry_id = await store.insert(message, priority=7)
    for entry in await store.due_entries(limit=10):
        ...
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from .exceptions import StorageError
from .models import Message, QueueEntry
from .sql import DbAdapter

DEFAULT_TABLE = "mail_queue"
DEFAULT_PRIORITY = 5

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def to_epoch(value: datetime) -> int:
    """Convert a datetime to UTC epoch seconds (naive values are UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp())


def from_epoch(value: int | None) -> datetime | None:
    """Convert stored epoch seconds back to an aware UTC datetime."""
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class QueueStore:
    """CRUD access to the queue table."""

    def __init__(self, adapter: DbAdapter, table_name: str = DEFAULT_TABLE):
        """Bind the store to a database adapter and table name.

        Raises:
            ValueError: If ``table_name`` is not a plain SQL identifier.
        """
        if not _IDENTIFIER.match(table_name or ""):
            raise ValueError(f"Invalid queue table name: {table_name!r}")
        self.adapter = adapter
        self.table = table_name

    async def init_db(self) -> None:
        """Create the queue table and its ordering index if absent."""
        await self.adapter.connect()
        await self.adapter.execute_script(
            f"""
            CREATE TABLE IF NOT EXISTS {self.table} (
                {self.adapter.pk_column("id")},
                message TEXT NOT NULL,
                priority INTEGER NOT NULL DEFAULT {DEFAULT_PRIORITY},
                date_due BIGINT NOT NULL,
                date_attempted BIGINT,
                attempts INTEGER NOT NULL DEFAULT 0
            );
            CREATE INDEX IF NOT EXISTS idx_{self.table}_due
                ON {self.table} (priority, date_due);
            """
        )

    async def close(self) -> None:
        await self.adapter.close()

    # ------------------------------------------------------------------ rows
    def _decode_row(self, row: dict[str, Any]) -> QueueEntry:
        entry_id = row.get("id")
        try:
            message = Message.from_json(row["message"])
        except (ValidationError, TypeError, KeyError) as exc:
            raise StorageError(f"Unable to decode message of queue entry {entry_id}: {exc}") from exc
        return QueueEntry(
            id=int(entry_id),
            message=message,
            priority=int(row["priority"]),
            date_due=from_epoch(row["date_due"]),
            date_attempted=from_epoch(row.get("date_attempted")),
            attempts=int(row.get("attempts") or 0),
        )

    async def insert(
        self,
        message: Message,
        due: datetime | None = None,
        priority: int = DEFAULT_PRIORITY,
    ) -> int:
        """Queue a message and return the identifier assigned to it.

        Args:
            message: Message to store.
            due: Earliest delivery time; defaults to now.
            priority: Higher values are delivered first.
        """
        return await self.adapter.insert(
            f"""
            INSERT INTO {self.table} (message, priority, date_due, attempts)
            VALUES (:message, :priority, :date_due, 0)
            """,
            {
                "message": message.to_json(),
                "priority": int(priority),
                "date_due": to_epoch(due or utc_now()),
            },
        )

    async def remove(self, entry_id: int) -> bool:
        """Delete an entry. Returns ``False`` when it did not exist."""
        rowcount = await self.adapter.execute(
            f"DELETE FROM {self.table} WHERE id = :id",
            {"id": int(entry_id)},
        )
        return rowcount > 0

    async def due_entries(self, limit: int = 0, now: datetime | None = None) -> list[QueueEntry]:
        """Return the entries due at ``now`` in delivery order.

        Entries are sorted by priority (highest first), then due time (oldest
        first), then id.

        Args:
            limit: Maximum number of entries, 0 for all.
            now: Reference time; defaults to the current time.

        Raises:
            ValueError: If ``limit`` is negative.
            StorageError: If the query fails or a stored message is corrupt.
        """
        if limit < 0:
            raise ValueError("limit must be >= 0")
        query = f"""
            SELECT id, message, priority, date_due, date_attempted, attempts
            FROM {self.table}
            WHERE date_due <= :now
            ORDER BY priority DESC, date_due ASC, id ASC
        """
        params: dict[str, Any] = {"now": to_epoch(now or utc_now())}
        if limit:
            query += " LIMIT :limit"
            params["limit"] = int(limit)
        rows = await self.adapter.fetch_all(query, params)
        return [self._decode_row(row) for row in rows]

    async def mark_attempt_failed(
        self,
        entry_id: int,
        attempts: int,
        attempted_at: datetime | None = None,
    ) -> bool:
        """Record a failed delivery attempt. Returns ``False`` if the entry is gone."""
        rowcount = await self.adapter.execute(
            f"""
            UPDATE {self.table}
            SET date_attempted = :date_attempted, attempts = :attempts
            WHERE id = :id
            """,
            {
                "id": int(entry_id),
                "attempts": int(attempts),
                "date_attempted": to_epoch(attempted_at or utc_now()),
            },
        )
        return rowcount > 0

    # ------------------------------------------------------------ inspection
    async def get(self, entry_id: int) -> QueueEntry | None:
        """Return a single entry, due or not."""
        row = await self.adapter.fetch_one(
            f"""
            SELECT id, message, priority, date_due, date_attempted, attempts
            FROM {self.table}
            WHERE id = :id
            """,
            {"id": int(entry_id)},
        )
        return self._decode_row(row) if row else None

    async def list_entries(self, limit: int = 0) -> list[QueueEntry]:
        """Return every entry, due or not, in delivery order."""
        if limit < 0:
            raise ValueError("limit must be >= 0")
        query = f"""
            SELECT id, message, priority, date_due, date_attempted, attempts
            FROM {self.table}
            ORDER BY priority DESC, date_due ASC, id ASC
        """
        params: dict[str, Any] = {}
        if limit:
            query += " LIMIT :limit"
            params["limit"] = int(limit)
        rows = await self.adapter.fetch_all(query, params)
        return [self._decode_row(row) for row in rows]

    async def count(self, *, due_only: bool = False, now: datetime | None = None) -> int:
        """Return the number of queued entries (only due ones if ``due_only``)."""
        query = f"SELECT COUNT(*) AS total FROM {self.table}"
        params: dict[str, Any] = {}
        if due_only:
            query += " WHERE date_due <= :now"
            params["now"] = to_epoch(now or utc_now())
        row = await self.adapter.fetch_one(query, params)
        return int(row["total"]) if row else 0

    async def purge(self) -> int:
        """Delete every entry and return how many were removed."""
        return await self.adapter.execute(f"DELETE FROM {self.table}")
