# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Sender capability shared by every delivery backend."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from email.utils import formataddr
from typing import Any

from ..exceptions import AdapterConfigurationError
from ..models import Address, Message


class Sender(ABC):
    """Deliver a fully formed :class:`Message`.

    Implementations raise :class:`mail_queue.exceptions.DeliveryError` for any
    transport or protocol failure and must accept repeated calls with
    different messages.
    """

    name = "sender"

    @abstractmethod
    async def send(self, message: Message) -> None:
        """Deliver ``message`` or raise ``DeliveryError``."""
        ...

    async def verify(self) -> bool:
        """Check that the backend is reachable with the configured credentials."""
        return True

    async def close(self) -> None:
        """Release network resources held by the sender."""
        return None

    async def __aenter__(self) -> Sender:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


def require_keys(config: Mapping[str, Any], keys: Iterable[str], adapter: str) -> None:
    """Raise :class:`AdapterConfigurationError` naming the missing keys."""
    missing = [key for key in keys if config.get(key) in (None, "")]
    if missing:
        raise AdapterConfigurationError(
            f"Unable to create {adapter} sender: missing configuration ({', '.join(missing)})",
            missing=missing,
        )


def format_address(address: Address) -> str:
    """Render a mailbox as ``"Name" <address>`` or a bare address."""
    return formataddr((address.name or "", address.address))


def format_addresses(addresses: Iterable[Address]) -> str:
    return ", ".join(format_address(a) for a in addresses if a.address)
