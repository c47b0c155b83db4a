# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""HTTP API delivery backend (Mailgun-style ``/messages`` endpoint)."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import aiohttp

from ..exceptions import DeliveryError
from ..logger import get_logger
from ..models import Message
from ..plaintext import html_to_text
from .base import Sender, format_address, require_keys
from .smtp import read_attachment

DEFAULT_BASE_URL = "https://api.mailgun.net/v3"


class HttpApiSender(Sender):
    """Deliver messages by posting multipart forms to an HTTP mail API.

    Configuration keys: ``api_key`` and ``domain`` (required), ``base_url``
    (default ``https://api.mailgun.net/v3``) and ``timeout`` in seconds.
    """

    name = "http"

    def __init__(self, config: Mapping[str, Any], session: aiohttp.ClientSession | None = None):
        config = dict(config)
        require_keys(config, ("api_key", "domain"), "HTTP API")
        self.api_key = str(config["api_key"])
        self.domain = str(config["domain"])
        self.base_url = str(config.get("base_url") or DEFAULT_BASE_URL).rstrip("/")
        self.timeout = float(config.get("timeout", 30.0))
        self.logger = get_logger("MailQueue.http")
        self._session = session
        self._owns_session = session is None

    @property
    def url(self) -> str:
        return f"{self.base_url}/{self.domain}/messages"

    def form_fields(self, message: Message) -> list[tuple[str, Any, dict[str, str]]]:
        """Return ``(name, value, options)`` triples describing the form.

        ``options`` carries ``filename`` and ``content_type`` for attachments.
        """
        fields: list[tuple[str, Any, dict[str, str]]] = [
            ("from", format_address(message.from_addr), {}),
        ]
        for key, addresses in (("to", message.to), ("cc", message.cc), ("bcc", message.bcc)):
            for addr in addresses:
                if addr.address:
                    fields.append((key, format_address(addr), {}))
        fields.append(("subject", message.subject, {}))
        if message.is_html:
            fields.append(("text", html_to_text(message.body), {}))
            fields.append(("html", message.body, {}))
        else:
            fields.append(("text", message.body, {}))
        if message.reply_to is not None:
            fields.append(("h:Reply-To", format_address(message.reply_to), {}))
        for header, value in message.headers.items():
            fields.append((f"h:{header}", value, {}))
        for att in message.attachments:
            content, maintype, subtype = read_attachment(att.file_path)
            filename = att.display_name or Path(att.file_path).name
            fields.append(
                ("attachment", content, {"filename": filename, "content_type": f"{maintype}/{subtype}"})
            )
        return fields

    def build_form(self, message: Message) -> aiohttp.FormData:
        form = aiohttp.FormData()
        for name, value, options in self.form_fields(message):
            form.add_field(name, value, **options)
        return form

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def send(self, message: Message) -> None:
        """Post ``message`` to the API, raising ``DeliveryError`` on failure."""
        try:
            form = self.build_form(message)
        except ValueError as exc:
            raise DeliveryError(f"Unable to build message (HTTP): {exc}") from exc
        session = self._get_session()
        try:
            async with session.post(
                self.url,
                data=form,
                auth=aiohttp.BasicAuth("api", self.api_key),
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as resp:
                if resp.status >= 400:
                    detail = (await resp.text())[:200]
                    raise DeliveryError(
                        f"Unable to send message (HTTP {resp.status}): {detail}",
                        status=resp.status,
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise DeliveryError(f"Unable to send message (HTTP): {exc}") from exc
        self.logger.debug("Delivered message to %s via %s", ", ".join(message.recipients()), self.url)

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None
