# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Delivery backends.

Usage:
    sender = get_sender({"type": "smtp", "host": "smtp.example.com", "port": 587,
                         "username": "user", "password": "secret", "secure": "tls"})
    async with sender:
        await sender.send(message)
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ..exceptions import AdapterConfigurationError
from .base import Sender
from .http import HttpApiSender
from .smtp import SmtpSender, build_email

__all__ = ["Sender", "SmtpSender", "HttpApiSender", "build_email", "get_sender"]

SENDER_TYPES: dict[str, type[Sender]] = {
    "smtp": SmtpSender,
    "http": HttpApiSender,
    "mailgun": HttpApiSender,
}


def get_sender(config: Mapping[str, Any]) -> Sender:
    """Create a sender from its configuration.

    The ``type`` key selects the backend (``smtp`` by default); the remaining
    keys are passed to the backend constructor.

    Raises:
        AdapterConfigurationError: Unknown type or invalid backend options.
    """
    options = dict(config)
    sender_type = str(options.pop("type", "smtp") or "smtp").lower()
    sender_cls = SENDER_TYPES.get(sender_type)
    if sender_cls is None:
        raise AdapterConfigurationError(
            f"Unknown sender type: '{sender_type}'. Supported: {', '.join(SENDER_TYPES)}"
        )
    return sender_cls(options)
