# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""SQLite async adapter using aiosqlite."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import aiosqlite

from ..exceptions import StorageError
from .base import DbAdapter


class SqliteAdapter(DbAdapter):
    """SQLite async adapter.

    File databases open a connection per operation so that several processes
    can share the queue file. ``:memory:`` databases keep a single connection
    between :meth:`connect` and :meth:`close`, since every new connection would
    see an empty database.
    """

    def __init__(self, db_path: str, timeout: float = 30.0):
        """Initialize SQLite adapter.

        Args:
            db_path: Path to SQLite file, or ":memory:" for in-memory DB.
            timeout: Seconds to wait for a lock held by another connection.
        """
        self.db_path = db_path or ":memory:"
        self.timeout = timeout
        self._shared: aiosqlite.Connection | None = None

    @property
    def in_memory(self) -> bool:
        return self.db_path == ":memory:"

    def pk_column(self, name: str) -> str:
        """Return SQL definition for autoincrement primary key column (SQLite)."""
        return f'"{name}" INTEGER PRIMARY KEY AUTOINCREMENT'

    async def connect(self) -> None:
        """Open the shared connection for in-memory databases."""
        if self.in_memory and self._shared is None:
            try:
                self._shared = await aiosqlite.connect(self.db_path)
            except aiosqlite.Error as exc:
                raise StorageError(f"Unable to open SQLite database: {exc}") from exc

    async def close(self) -> None:
        """Close the shared in-memory connection, if any."""
        if self._shared is not None:
            await self._shared.close()
            self._shared = None

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[aiosqlite.Connection]:
        try:
            if self.in_memory:
                if self._shared is None:
                    await self.connect()
                yield self._shared
            else:
                async with aiosqlite.connect(self.db_path, timeout=self.timeout) as db:
                    yield db
        except aiosqlite.Error as exc:
            raise StorageError(f"SQLite error: {exc}") from exc

    async def execute(self, query: str, params: dict[str, Any] | None = None) -> int:
        """Execute query, return affected row count."""
        async with self._connection() as db:
            cursor = await db.execute(query, params or {})
            await db.commit()
            return cursor.rowcount

    async def insert(self, query: str, params: dict[str, Any] | None = None, pk: str = "id") -> int:
        """Execute an INSERT statement, return ``lastrowid``."""
        async with self._connection() as db:
            cursor = await db.execute(query, params or {})
            await db.commit()
            return int(cursor.lastrowid)

    async def fetch_one(
        self, query: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any] | None:
        """Execute query, return single row as dict or None."""
        async with self._connection() as db:
            async with db.execute(query, params or {}) as cursor:
                row = await cursor.fetchone()
                if row is None:
                    return None
                cols = [c[0] for c in cursor.description]
                return dict(zip(cols, row, strict=True))

    async def fetch_all(
        self, query: str, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """Execute query, return all rows as list of dicts."""
        async with self._connection() as db:
            async with db.execute(query, params or {}) as cursor:
                rows = await cursor.fetchall()
                cols = [c[0] for c in cursor.description]
                return [dict(zip(cols, row, strict=True)) for row in rows]

    async def execute_script(self, script: str) -> None:
        """Execute multiple statements (for schema creation)."""
        async with self._connection() as db:
            await db.executescript(script)
            await db.commit()
