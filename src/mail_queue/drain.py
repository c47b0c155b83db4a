# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Queue drain: deliver due entries and account for failures.

A drain pass takes a snapshot of the due entries, in queue order, and
processes each of them once:

- entries that already used up their attempts are removed without being
  sent; the ``exhaustion_policy`` decides whether the pass then continues
  (``"skip"``) or stops there (``"stop"``);
- delivered entries are removed;
- failed entries get their attempt counter and attempt time updated and
  stay queued for a later pass.

Storage errors abort the pass. No state is kept between passes.
"""

from __future__ import annotations

import logging

from .exceptions import DeliveryError, MessageValidationError
from .logger import get_logger
from .models import DrainResult, QueueEntry
from .prometheus import QueueMetrics
from .senders import Sender
from .store import QueueStore, utc_now

EXHAUSTION_POLICIES = ("skip", "stop")


class QueueDrain:
    """Run drain passes over a :class:`QueueStore` with a :class:`Sender`."""

    def __init__(
        self,
        store: QueueStore,
        sender: Sender,
        *,
        max_attempts: int = 3,
        exhaustion_policy: str = "skip",
        metrics: QueueMetrics | None = None,
        logger: logging.Logger | None = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if exhaustion_policy not in EXHAUSTION_POLICIES:
            raise ValueError(
                f"Unknown exhaustion policy: '{exhaustion_policy}'. "
                f"Supported: {', '.join(EXHAUSTION_POLICIES)}"
            )
        self.store = store
        self.sender = sender
        self.max_attempts = max_attempts
        self.exhaustion_policy = exhaustion_policy
        self.metrics = metrics
        self.logger = logger or get_logger("MailQueue.drain")

    @property
    def _sender_name(self) -> str:
        return getattr(self.sender, "name", "sender")

    async def run(self, limit: int = 0) -> DrainResult:
        """Process up to ``limit`` due entries (0 for all) and return the summary.

        Raises:
            ValueError: If ``limit`` is negative.
            StorageError: If the store fails; the pass stops immediately.
        """
        result = DrainResult()
        entries = await self.store.due_entries(limit=limit)
        self.logger.debug("Drain started: %d due entries (limit=%d)", len(entries), limit)

        for entry in entries:
            if entry.attempts >= self.max_attempts:
                await self._drop_exhausted(entry, result)
                if self.exhaustion_policy == "stop":
                    self.logger.info("Drain stopped at exhausted entry %s", entry.id)
                    break
                continue
            await self._deliver(entry, result)

        await self._refresh_pending()
        self.logger.info(
            "Drain completed: sent=%d removed=%d failed=%d",
            result.sent,
            result.removed,
            result.failed,
        )
        return result

    async def _drop_exhausted(self, entry: QueueEntry, result: DrainResult) -> None:
        removed = await self.store.remove(entry.id)
        if not removed:
            self.logger.info("Exhausted entry %s was already removed", entry.id)
        else:
            self.logger.warning(
                "Dropping entry %s after %d failed attempts", entry.id, entry.attempts
            )
        result.removed += 1
        result.removed_ids.append(entry.id)
        if self.metrics:
            self.metrics.inc_removed(self._sender_name)

    async def _deliver(self, entry: QueueEntry, result: DrainResult) -> None:
        try:
            entry.message.validate_sendable()
            await self.sender.send(entry.message)
        except (DeliveryError, MessageValidationError) as exc:
            attempts = entry.attempts + 1
            if not await self.store.mark_attempt_failed(entry.id, attempts, attempted_at=utc_now()):
                self.logger.info("Failed entry %s was already removed", entry.id)
            self.logger.warning(
                "Delivery of entry %s failed (attempt %d/%d): %s",
                entry.id,
                attempts,
                self.max_attempts,
                exc,
            )
            result.failed += 1
            result.failed_ids.append(entry.id)
            if self.metrics:
                self.metrics.inc_failed(self._sender_name)
            return

        if not await self.store.remove(entry.id):
            self.logger.info("Delivered entry %s was already removed", entry.id)
        self.logger.debug("Delivered entry %s (priority %d)", entry.id, entry.priority)
        result.sent += 1
        if self.metrics:
            self.metrics.inc_sent(self._sender_name)

    async def _refresh_pending(self) -> None:
        if self.metrics:
            self.metrics.set_pending(await self.store.count())
