# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Pydantic models for queued mail.

Models:
    - Address: a mailbox (address plus optional display name)
    - Attachment: a file reference attached to a message
    - Message: the outbound message payload
    - QueueEntry: a persisted queue row with its decoded message
    - DrainResult: summary of one drain pass
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .exceptions import MessageValidationError

REQUIRED_FIELDS = ("to.0.address", "from.address", "subject", "body")


class Address(BaseModel):
    """Email address with an optional display name.

    Attributes:
        address: Mailbox address (``user@example.com``).
        name: Display name shown by mail clients.
    """

    model_config = ConfigDict(extra="forbid")

    address: Annotated[str, Field(description="Mailbox address")]
    name: Annotated[str | None, Field(default=None, description="Display name")]


class Attachment(BaseModel):
    """Attachment reference.

    Attributes:
        file_path: Path of the file to attach, read at delivery time.
        display_name: File name presented to the recipient. Defaults to the
            base name of ``file_path``.
    """

    model_config = ConfigDict(extra="forbid")

    file_path: Annotated[str, Field(min_length=1, description="Path of the file to attach")]
    display_name: Annotated[
        str | None,
        Field(default=None, description="File name presented to the recipient"),
    ]


class Message(BaseModel):
    """Outbound message payload.

    A message may be incomplete while it is being drafted; use
    :meth:`is_sendable` or :meth:`validate_sendable` before handing it to a
    sender or to the queue.

    Attributes:
        from_addr: Sender mailbox (serialized as ``from``).
        reply_to: Optional Reply-To mailbox.
        to: Primary recipients, in order.
        cc: Carbon-copy recipients.
        bcc: Blind carbon-copy recipients.
        attachments: File attachments, in order.
        subject: Subject line.
        body: Message body, HTML when ``is_html`` is true.
        is_html: Whether ``body`` is HTML. A plain-text alternative is derived
            from HTML bodies at delivery time.
        headers: Additional headers to set on the message.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    from_addr: Annotated[
        Address | None,
        Field(default=None, alias="from", description="Sender mailbox"),
    ]
    reply_to: Annotated[Address | None, Field(default=None, description="Reply-To mailbox")]
    to: Annotated[list[Address], Field(default_factory=list, description="Primary recipients")]
    cc: Annotated[list[Address], Field(default_factory=list, description="CC recipients")]
    bcc: Annotated[list[Address], Field(default_factory=list, description="BCC recipients")]
    attachments: Annotated[
        list[Attachment],
        Field(default_factory=list, description="File attachments"),
    ]
    subject: Annotated[str, Field(default="", description="Subject line")]
    body: Annotated[str, Field(default="", description="Message body")]
    is_html: Annotated[bool, Field(default=True, description="Body is HTML")]
    headers: Annotated[
        dict[str, str],
        Field(default_factory=dict, description="Additional message headers"),
    ]

    @model_validator(mode="before")
    @classmethod
    def accept_legacy_keys(cls, data: Any) -> Any:
        """Map the ``attachment`` and ``reply`` keys of older payloads."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "attachment" in data and "attachments" not in data:
            data["attachments"] = data.pop("attachment")
        if "reply" in data and "reply_to" not in data:
            data["reply_to"] = data.pop("reply")
        return data

    @field_validator("from_addr", "reply_to", mode="before")
    @classmethod
    def normalize_mailbox(cls, v: Any) -> Any:
        """Accept a bare address string for single mailboxes."""
        if isinstance(v, str):
            return {"address": v}
        return v

    @field_validator("to", "cc", "bcc", mode="before")
    @classmethod
    def normalize_recipients(cls, v: Any) -> Any:
        """Accept comma separated strings and bare address strings."""
        if v is None:
            return []
        if isinstance(v, str):
            v = [addr.strip() for addr in v.split(",") if addr.strip()]
        if isinstance(v, (list, tuple)):
            return [{"address": item} if isinstance(item, str) else item for item in v]
        return v

    @field_validator("attachments", mode="before")
    @classmethod
    def normalize_attachments(cls, v: Any) -> Any:
        """Accept ``{"file", "name"}`` entries and bare paths."""
        if v is None:
            return []
        if not isinstance(v, (list, tuple)):
            return v
        items = []
        for item in v:
            if isinstance(item, str):
                item = {"file_path": item}
            elif isinstance(item, dict) and "file" in item:
                item = dict(item)
                item["file_path"] = item.pop("file")
                if "name" in item:
                    item["display_name"] = item.pop("name")
            items.append(item)
        return items

    # ------------------------------------------------------------ sendability
    def missing_fields(self) -> list[str]:
        """Return the dotted names of the required fields that are missing."""
        missing: list[str] = []
        if not self.to or not self.to[0].address:
            missing.append("to.0.address")
        if self.from_addr is None or not self.from_addr.address:
            missing.append("from.address")
        if not self.subject:
            missing.append("subject")
        if not self.body:
            missing.append("body")
        return missing

    def is_sendable(self) -> bool:
        """Return ``True`` when every required field is present."""
        return not self.missing_fields()

    def validate_sendable(self, action: str = "send") -> None:
        """Raise :class:`MessageValidationError` unless the message is sendable."""
        missing = self.missing_fields()
        if missing:
            raise MessageValidationError(
                f"Unable to {action} message: missing required keys ({', '.join(missing)})",
                missing=missing,
            )

    # ---------------------------------------------------------- serialization
    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        """Build a message from a nested key/value payload."""
        return cls.model_validate(data)

    def to_dict(self) -> dict[str, Any]:
        """Return the nested key/value payload (``from`` key included)."""
        return self.model_dump(by_alias=True, mode="json")

    def to_json(self) -> str:
        """Serialize the message for storage."""
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, text: str | bytes) -> Message:
        """Rebuild a message serialized with :meth:`to_json`."""
        return cls.model_validate_json(text)

    def recipients(self) -> list[str]:
        """Return every envelope recipient address (to + cc + bcc)."""
        return [a.address for a in (*self.to, *self.cc, *self.bcc) if a.address]


class QueueEntry(BaseModel):
    """A message stored in the queue.

    Attributes:
        id: Storage-assigned identifier.
        message: Decoded message payload.
        priority: Higher values are delivered first.
        date_due: The entry is eligible for delivery once this time is reached.
        date_attempted: Time of the most recent failed attempt.
        attempts: Number of failed delivery attempts.
    """

    id: int
    message: Message
    priority: int = 5
    date_due: datetime
    date_attempted: datetime | None = None
    attempts: int = 0


class DrainResult(BaseModel):
    """Summary of one drain pass.

    Attributes:
        sent: Entries delivered and removed.
        removed: Entries dropped after exhausting their attempts.
        failed: Entries whose delivery failed in this pass.
        failed_ids: Identifiers of the failed entries.
        removed_ids: Identifiers of the dropped entries.
    """

    sent: int = 0
    removed: int = 0
    failed: int = 0
    failed_ids: list[int] = Field(default_factory=list)
    removed_ids: list[int] = Field(default_factory=list)
