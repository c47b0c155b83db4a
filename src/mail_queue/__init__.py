# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Persistent outbound mail queue.

Messages are drafted with a :class:`MessageBuilder`, either sent right away or
stored with a priority and a due time, and later delivered in priority order
by a drain pass. Entries that keep failing are dropped after a bounded number
of attempts.

Features:

- SQLite (aiosqlite) or PostgreSQL (psycopg) storage
- SMTP delivery (aiosmtplib) and HTTP API delivery (aiohttp)
- Plain-text alternatives derived from HTML bodies
- Prometheus metrics and a click command line

Example::

    from mail_queue import MailQueue, load_config

    async with MailQueue.from_config(load_config()) as queue:
        builder = queue.builder()
        builder.set_from("noreply@example.com").add_address("alice@example.com")
        builder.set_subject("Hello").set_body("<p>Hi Alice</p>")
        await queue.enqueue(builder)
        await queue.drain(limit=100)
"""

from .builder import MessageBuilder
from .config import QueueConfig, load_config
from .drain import QueueDrain
from .exceptions import (
    AdapterConfigurationError,
    DeliveryError,
    MailQueueError,
    MessageValidationError,
    StorageError,
)
from .models import Address, Attachment, DrainResult, Message, QueueEntry
from .queue import MailQueue
from .senders import HttpApiSender, Sender, SmtpSender, get_sender
from .store import QueueStore

__version__ = "0.1.0"

__all__ = [
    "AdapterConfigurationError",
    "Address",
    "Attachment",
    "DeliveryError",
    "DrainResult",
    "HttpApiSender",
    "MailQueue",
    "MailQueueError",
    "Message",
    "MessageBuilder",
    "MessageValidationError",
    "QueueConfig",
    "QueueDrain",
    "QueueEntry",
    "QueueStore",
    "Sender",
    "SmtpSender",
    "StorageError",
    "get_sender",
    "load_config",
]
