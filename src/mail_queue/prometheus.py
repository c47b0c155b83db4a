# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Prometheus metrics for the mail queue.

All metrics use the ``mq_`` prefix and are labeled by sender backend.

Metrics exposed:
    - ``mq_sent_total``: Counter of delivered messages.
    - ``mq_failed_total``: Counter of failed delivery attempts.
    - ``mq_removed_total``: Counter of entries dropped after exhausting attempts.
    - ``mq_pending_messages``: Gauge of entries currently in the queue.
"""

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest


class QueueMetrics:
    """Prometheus collector for drain outcomes.

    Attributes:
        registry: The CollectorRegistry holding all metrics.
        sent: Counter of delivered messages.
        failed: Counter of failed attempts.
        removed: Counter of exhausted entries dropped from the queue.
        pending: Gauge showing the current queue depth.
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry or CollectorRegistry()
        self.sent = Counter(
            "mq_sent_total",
            "Total delivered messages",
            ["sender"],
            registry=self.registry,
        )
        self.failed = Counter(
            "mq_failed_total",
            "Total failed delivery attempts",
            ["sender"],
            registry=self.registry,
        )
        self.removed = Counter(
            "mq_removed_total",
            "Total entries dropped after exhausting their attempts",
            ["sender"],
            registry=self.registry,
        )
        self.pending = Gauge(
            "mq_pending_messages",
            "Current queued messages",
            registry=self.registry,
        )

    def inc_sent(self, sender: str) -> None:
        self.sent.labels(sender=sender or "default").inc()

    def inc_failed(self, sender: str) -> None:
        self.failed.labels(sender=sender or "default").inc()

    def inc_removed(self, sender: str) -> None:
        self.removed.labels(sender=sender or "default").inc()

    def set_pending(self, value: int) -> None:
        self.pending.set(value)

    def generate_latest(self) -> bytes:
        """Export all metrics in Prometheus text exposition format."""
        return generate_latest(self.registry)
