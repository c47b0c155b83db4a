# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Mail queue facade.

:class:`MailQueue` ties together the store, the drain and a sender:

    queue = MailQueue.from_config(load_config())
    await queue.init()
    builder = queue.builder()
    builder.set_from("noreply@example.com").add_address("alice@example.com")
    builder.set_subject("Report").set_body("<p>Attached</p>")
    await queue.enqueue(builder, priority=8)
    result = await queue.drain(limit=50)
    await queue.close()
"""

from __future__ import annotations

from datetime import datetime

from .builder import MessageBuilder
from .config import QueueConfig
from .drain import QueueDrain
from .exceptions import MailQueueError
from .logger import get_logger
from .models import DrainResult, Message, QueueEntry
from .prometheus import QueueMetrics
from .senders import Sender, get_sender
from .sql import get_adapter
from .store import QueueStore


class MailQueue:
    """Queue messages for deferred delivery and drain them through a sender."""

    def __init__(
        self,
        store: QueueStore,
        sender: Sender | None = None,
        config: QueueConfig | None = None,
        metrics: QueueMetrics | None = None,
    ):
        self.store = store
        self.sender = sender
        self.config = config or QueueConfig(table_name=store.table)
        self.metrics = metrics
        self.logger = get_logger("MailQueue")

    @classmethod
    def from_config(cls, config: QueueConfig, metrics: QueueMetrics | None = None) -> MailQueue:
        """Build the storage adapter, store and sender described by ``config``.

        The sender is only created when sender options are present.
        """
        store = QueueStore(get_adapter(config.db), config.table_name)
        sender = get_sender(config.sender) if config.sender else None
        return cls(store, sender, config, metrics)

    async def init(self) -> None:
        """Connect the storage and create the queue table."""
        await self.store.init_db()

    async def close(self) -> None:
        if self.sender is not None:
            await self.sender.close()
        await self.store.close()

    async def __aenter__(self) -> MailQueue:
        await self.init()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _require_sender(self) -> Sender:
        if self.sender is None:
            raise MailQueueError("No sender configured")
        return self.sender

    def builder(self) -> MessageBuilder:
        """Return a new builder bound to the queue's sender."""
        return MessageBuilder(self.sender)

    async def enqueue(
        self,
        message: Message | MessageBuilder,
        due: datetime | None = None,
        priority: int | None = None,
    ) -> int:
        """Store a message for delivery at or after ``due`` and return its id.

        When ``message`` is a builder, its draft is discarded once stored.

        Raises:
            MessageValidationError: If a required field is missing.
            StorageError: If the insert fails.
        """
        builder = message if isinstance(message, MessageBuilder) else None
        payload = builder.message if builder is not None else message
        payload.validate_sendable(action="enqueue")
        if priority is None:
            priority = self.config.default_priority
        entry_id = await self.store.insert(payload, due=due, priority=priority)
        self.logger.debug("Queued entry %s (priority %d)", entry_id, priority)
        if builder is not None:
            builder.discard()
        return entry_id

    async def send_now(self, message: Message) -> None:
        """Deliver ``message`` immediately, bypassing the queue."""
        sender = self._require_sender()
        message.validate_sendable()
        await sender.send(message)

    async def drain(self, limit: int = 0) -> DrainResult:
        """Run one drain pass over up to ``limit`` due entries (0 for all)."""
        drain = QueueDrain(
            self.store,
            self._require_sender(),
            max_attempts=self.config.max_attempts,
            exhaustion_policy=self.config.exhaustion_policy,
            metrics=self.metrics,
        )
        return await drain.run(limit=limit)

    async def remove(self, entry_id: int) -> bool:
        return await self.store.remove(entry_id)

    async def list_due(self, limit: int = 0) -> list[QueueEntry]:
        return await self.store.due_entries(limit=limit)

    async def list_all(self, limit: int = 0) -> list[QueueEntry]:
        return await self.store.list_entries(limit=limit)

    async def get(self, entry_id: int) -> QueueEntry | None:
        return await self.store.get(entry_id)

    async def count(self, due_only: bool = False) -> int:
        return await self.store.count(due_only=due_only)

    async def verify(self) -> bool:
        """Check that the sender backend is reachable."""
        return await self._require_sender().verify()
