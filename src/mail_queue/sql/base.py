# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Base adapter class for async database backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class DbAdapter(ABC):
    """Abstract base class for async database adapters.

    All queries use :name placeholders. Driver errors surface as
    :class:`mail_queue.exceptions.StorageError`.
    """

    @abstractmethod
    def pk_column(self, name: str) -> str:
        """Return SQL definition for an autoincrement primary key column."""
        ...

    @abstractmethod
    async def connect(self) -> None:
        """Establish database connection."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close database connection."""
        ...

    @abstractmethod
    async def execute(self, query: str, params: dict[str, Any] | None = None) -> int:
        """Execute query, return affected row count."""
        ...

    @abstractmethod
    async def insert(self, query: str, params: dict[str, Any] | None = None, pk: str = "id") -> int:
        """Execute an INSERT statement, return the generated primary key."""
        ...

    @abstractmethod
    async def fetch_one(
        self, query: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any] | None:
        """Execute query, return single row as dict or None."""
        ...

    @abstractmethod
    async def fetch_all(
        self, query: str, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """Execute query, return all rows as list of dicts."""
        ...

    @abstractmethod
    async def execute_script(self, script: str) -> None:
        """Execute multiple statements (for schema creation)."""
        ...
