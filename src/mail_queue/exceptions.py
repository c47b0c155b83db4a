# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Exception hierarchy for the mail queue.

Every error raised by the package derives from :class:`MailQueueError` and
carries a short machine-readable ``code``:

- :class:`MessageValidationError`: a message is not sendable.
- :class:`DeliveryError`: a sender could not deliver a message.
- :class:`StorageError`: the persistence layer failed.
- :class:`AdapterConfigurationError`: a sender or storage adapter was
  configured with missing or invalid options.
"""

from __future__ import annotations

from collections.abc import Sequence


class MailQueueError(Exception):
    """Base class for all mail queue errors."""

    code = "mail_queue_error"

    def __init__(self, message: str = "Mail queue error"):
        super().__init__(message)
        self.message = message


class MessageValidationError(MailQueueError):
    """Raised when a message is missing one of its required fields."""

    code = "invalid_message"

    def __init__(self, message: str = "Message is not sendable", missing: Sequence[str] = ()):
        super().__init__(message)
        self.missing = list(missing)


class DeliveryError(MailQueueError):
    """Raised by a sender when a message could not be delivered."""

    code = "delivery_failed"

    def __init__(
        self,
        message: str = "Unable to deliver message",
        *,
        smtp_code: int | None = None,
        status: int | None = None,
    ):
        super().__init__(message)
        self.smtp_code = smtp_code
        self.status = status


class StorageError(MailQueueError):
    """Raised when the queue storage cannot complete an operation."""

    code = "storage_failed"


class AdapterConfigurationError(MailQueueError):
    """Raised when an adapter is created with an invalid configuration."""

    code = "invalid_adapter_configuration"

    def __init__(self, message: str = "Invalid adapter configuration", missing: Sequence[str] = ()):
        super().__init__(message)
        self.missing = list(missing)
