# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""SMTP delivery backend built on aiosmtplib."""

from __future__ import annotations

import asyncio
import contextlib
import mimetypes
import time
from collections.abc import Mapping
from email.message import EmailMessage
from pathlib import Path
from typing import Any

import aiosmtplib

from ..exceptions import AdapterConfigurationError, DeliveryError
from ..logger import get_logger
from ..models import Message
from ..plaintext import html_to_text
from .base import Sender, format_address, format_addresses, require_keys

SECURE_MODES = ("tls", "ssl", "none")


def read_attachment(file_path: str) -> tuple[bytes, str, str]:
    """Read an attachment from disk, returning content and MIME type parts."""
    try:
        content = Path(file_path).read_bytes()
    except OSError as exc:
        raise DeliveryError(f"Unable to read attachment {file_path}: {exc}") from exc
    mime, _ = mimetypes.guess_type(file_path)
    maintype, _, subtype = (mime or "application/octet-stream").partition("/")
    return content, maintype, subtype


def build_email(message: Message) -> EmailMessage:
    """Translate a :class:`Message` into an :class:`EmailMessage`.

    Bcc recipients are left out of the headers; they only belong to the
    SMTP envelope.
    """
    msg = EmailMessage()
    msg["From"] = format_address(message.from_addr)
    msg["To"] = format_addresses(message.to)
    if message.cc:
        msg["Cc"] = format_addresses(message.cc)
    if message.reply_to is not None:
        msg["Reply-To"] = format_address(message.reply_to)
    msg["Subject"] = message.subject

    if message.is_html:
        msg.set_content(html_to_text(message.body))
        msg.add_alternative(message.body, subtype="html")
    else:
        msg.set_content(message.body)

    for header, value in message.headers.items():
        if header in msg:
            msg.replace_header(header, value)
        else:
            msg[header] = value

    for att in message.attachments:
        content, maintype, subtype = read_attachment(att.file_path)
        filename = att.display_name or Path(att.file_path).name
        msg.add_attachment(content, maintype=maintype, subtype=subtype, filename=filename)
    return msg


class SmtpSender(Sender):
    """Deliver messages over SMTP.

    Configuration keys:

    - ``host``, ``port``: SMTP server (required).
    - ``username``, ``password``: credentials (required unless ``auth`` is false).
    - ``auth``: authenticate after connecting (default true).
    - ``secure``: ``"tls"`` for STARTTLS, ``"ssl"`` for implicit TLS,
      ``"none"`` for plain SMTP. When omitted STARTTLS is used if offered.
    - ``timeout``: socket timeout in seconds (default 30).
    - ``ttl``: seconds a connection may be reused (default 300).

    One connection is kept open and reused while it is fresh and answers
    NOOP; sends are serialized on it.
    """

    name = "smtp"

    def __init__(self, config: Mapping[str, Any]):
        config = dict(config)
        self.auth = _as_bool(config.get("auth", True))
        required = ["host", "port"] + (["username", "password"] if self.auth else [])
        require_keys(config, required, "SMTP")

        secure = config.get("secure")
        if secure is not None:
            secure = str(secure).lower()
            if secure not in SECURE_MODES:
                raise AdapterConfigurationError(
                    f"Unable to create SMTP sender: invalid secure mode '{secure}' "
                    f"(expected one of {', '.join(SECURE_MODES)})"
                )
        try:
            self.port = int(config["port"])
        except (TypeError, ValueError) as exc:
            raise AdapterConfigurationError(
                f"Unable to create SMTP sender: invalid port {config['port']!r}"
            ) from exc

        self.host = str(config["host"])
        self.username = config.get("username")
        self.password = config.get("password")
        self.secure = secure
        self.timeout = float(config.get("timeout", 30.0))
        self.ttl = float(config.get("ttl", 300))
        self.logger = get_logger("MailQueue.smtp")

        self._smtp: aiosmtplib.SMTP | None = None
        self._last_used = 0.0
        self._lock = asyncio.Lock()

    def _tls_options(self) -> dict[str, Any]:
        if self.secure == "ssl":
            return {"use_tls": True, "start_tls": False}
        if self.secure == "tls":
            return {"use_tls": False, "start_tls": True}
        if self.secure == "none":
            return {"use_tls": False, "start_tls": False}
        return {"use_tls": False, "start_tls": None}

    async def _connect(self) -> aiosmtplib.SMTP:
        """Open a new SMTP connection and authenticate if needed."""
        smtp = aiosmtplib.SMTP(
            hostname=self.host,
            port=self.port,
            timeout=self.timeout,
            **self._tls_options(),
        )

        async def _do_connect():
            await smtp.connect()
            if self.auth and self.username:
                await smtp.login(self.username, self.password or "")

        await asyncio.wait_for(_do_connect(), timeout=self.timeout + 5.0)
        return smtp

    async def _is_alive(self, smtp: aiosmtplib.SMTP) -> bool:
        """Return ``True`` when the connection responds correctly to NOOP."""
        try:
            response = await asyncio.wait_for(smtp.noop(), timeout=5.0)
        except (aiosmtplib.SMTPException, OSError, TimeoutError):
            return False
        return response.code == 250

    async def _drop(self) -> None:
        smtp, self._smtp = self._smtp, None
        if smtp is not None:
            with contextlib.suppress(aiosmtplib.SMTPException, OSError, TimeoutError):
                await smtp.quit()

    async def _get_connection(self) -> aiosmtplib.SMTP:
        """Return the cached connection or open a new one."""
        if self._smtp is not None:
            fresh_enough = (time.monotonic() - self._last_used) < self.ttl
            if fresh_enough and await self._is_alive(self._smtp):
                return self._smtp
            await self._drop()
        self._smtp = await self._connect()
        return self._smtp

    async def send(self, message: Message) -> None:
        """Deliver ``message`` through the SMTP server."""
        try:
            email_msg = build_email(message)
        except ValueError as exc:
            raise DeliveryError(f"Unable to build message (SMTP): {exc}") from exc
        sender = message.from_addr.address
        recipients = message.recipients()
        async with self._lock:
            try:
                smtp = await self._get_connection()
                await smtp.send_message(email_msg, sender=sender, recipients=recipients)
            except (aiosmtplib.SMTPException, OSError, TimeoutError) as exc:
                await self._drop()
                smtp_code = getattr(exc, "code", None)
                detail = f"{exc} (SMTP {smtp_code})" if smtp_code else str(exc) or type(exc).__name__
                raise DeliveryError(f"Unable to send message (SMTP): {detail}", smtp_code=smtp_code) from exc
            self._last_used = time.monotonic()
        self.logger.debug("Delivered message to %s via %s:%s", ", ".join(recipients), self.host, self.port)

    async def verify(self) -> bool:
        """Connect, authenticate and disconnect, raising ``DeliveryError`` on failure."""
        try:
            smtp = await self._connect()
        except (aiosmtplib.SMTPException, OSError, TimeoutError) as exc:
            raise DeliveryError(f"SMTP connection check failed for {self.host}:{self.port}: {exc}") from exc
        with contextlib.suppress(aiosmtplib.SMTPException, OSError, TimeoutError):
            await smtp.quit()
        return True

    async def close(self) -> None:
        async with self._lock:
            await self._drop()


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)
