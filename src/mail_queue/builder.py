# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Incremental construction of outbound messages.

Example::

    builder = MessageBuilder(sender)
    builder.set_from("noreply@example.com", "Example")
    builder.add_address("alice@example.com", "Alice").add_cc("bob@example.com")
    builder.set_subject("Welcome").set_body("<p>Hello</p>")
    await builder.send()
"""

from __future__ import annotations

from typing import Any

from .exceptions import DeliveryError, MailQueueError
from .models import Address, Attachment, Message
from .senders import Sender


class MessageBuilder:
    """Hold one draft message and optionally send it immediately.

    The draft may be incomplete while it is assembled; sendability is only
    enforced by :meth:`create`, :meth:`send` and the queue.
    """

    def __init__(self, sender: Sender | None = None):
        self.sender = sender
        self._message = Message()

    @property
    def message(self) -> Message:
        """The pending draft."""
        return self._message

    def create(self, payload: Message | dict[str, Any]) -> MessageBuilder:
        """Replace the draft with a complete message.

        Raises:
            MessageValidationError: If a required field is missing; the
                previous draft is kept.
        """
        message = payload if isinstance(payload, Message) else Message.from_dict(payload)
        message.validate_sendable(action="create")
        self._message = message.model_copy(deep=True)
        return self

    def add_address(self, address: str, name: str | None = None) -> MessageBuilder:
        self._message.to.append(Address(address=address, name=name))
        return self

    def add_cc(self, address: str, name: str | None = None) -> MessageBuilder:
        self._message.cc.append(Address(address=address, name=name))
        return self

    def add_bcc(self, address: str, name: str | None = None) -> MessageBuilder:
        self._message.bcc.append(Address(address=address, name=name))
        return self

    def add_attachment(self, file_path: str, name: str | None = None) -> MessageBuilder:
        self._message.attachments.append(Attachment(file_path=file_path, display_name=name))
        return self

    def set_from(self, address: str, name: str | None = None) -> MessageBuilder:
        self._message.from_addr = Address(address=address, name=name)
        return self

    def set_reply_to(self, address: str, name: str | None = None) -> MessageBuilder:
        self._message.reply_to = Address(address=address, name=name)
        return self

    def set_subject(self, subject: str) -> MessageBuilder:
        self._message.subject = subject
        return self

    def set_body(self, body: str, is_html: bool = True) -> MessageBuilder:
        self._message.body = body
        self._message.is_html = is_html
        return self

    def set_header(self, name: str, value: str) -> MessageBuilder:
        self._message.headers[name] = value
        return self

    def discard(self) -> MessageBuilder:
        """Drop the draft and start from an empty message."""
        self._message = Message()
        return self

    async def send(self) -> None:
        """Deliver the draft through the bound sender.

        The draft is consumed once the sender has been called, whether it
        succeeded or raised :class:`DeliveryError`.

        Raises:
            MessageValidationError: The draft is not sendable (kept as is).
            DeliveryError: The sender failed.
            MailQueueError: No sender is bound to this builder.
        """
        if self.sender is None:
            raise MailQueueError("Unable to send message: no sender configured")
        self._message.validate_sendable()
        try:
            await self.sender.send(self._message)
        except DeliveryError:
            self.discard()
            raise
        self.discard()
