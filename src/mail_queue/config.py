# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Configuration for the mail queue.

Settings come from an INI file (default: ``config.ini``) with environment
variables as fallbacks.

Environment variables (all prefixed with MQ_):
  MQ_CONFIG - Path to config.ini file (default: config.ini)
  MQ_LOG_LEVEL - Logging level used by the command line (default: INFO)
  MQ_DB - Database connection string (default: /data/mail_queue.db)
  MQ_TABLE_NAME - Queue table name (default: mail_queue)
  MQ_MAX_ATTEMPTS - Failed attempts before an entry is dropped (default: 3)
  MQ_EXHAUSTION_POLICY - skip or stop (default: skip)
  MQ_DEFAULT_PRIORITY - Priority of entries queued without one (default: 5)
  MQ_SENDER_<KEY> - Sender option <key>, e.g. MQ_SENDER_HOST

Config file sections/keys:
  [storage] db
  [queue] table_name, max_attempts, exhaustion_policy, default_priority
  [sender] type, host, port, username, password, secure, auth, timeout, ttl,
           api_key, domain, base_url
"""

from __future__ import annotations

import configparser
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .drain import EXHAUSTION_POLICIES
from .store import DEFAULT_PRIORITY, DEFAULT_TABLE

SENDER_ENV_PREFIX = "MQ_SENDER_"


@dataclass
class QueueConfig:
    """Mail queue settings."""

    table_name: str = DEFAULT_TABLE
    """Name of the queue table."""

    max_attempts: int = 3
    """Failed attempts after which an entry is dropped."""

    exhaustion_policy: str = "skip"
    """What a drain does after dropping an exhausted entry: skip or stop."""

    default_priority: int = DEFAULT_PRIORITY
    """Priority of entries queued without an explicit one."""

    db: str = "/data/mail_queue.db"
    """Database connection string (SQLite path or postgresql:// URL)."""

    sender: dict[str, Any] = field(default_factory=dict)
    """Sender options, ``type`` selecting the backend."""

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.exhaustion_policy not in EXHAUSTION_POLICIES:
            raise ValueError(
                f"Unknown exhaustion policy: '{self.exhaustion_policy}'. "
                f"Supported: {', '.join(EXHAUSTION_POLICIES)}"
            )


def load_config(path: str | os.PathLike[str] | None = None) -> QueueConfig:
    """Load the configuration from an INI file with environment fallbacks.

    Args:
        path: INI file to read; defaults to ``MQ_CONFIG`` or ``config.ini``.
            A missing file is not an error.

    Raises:
        ValueError: If a value cannot be parsed or is out of range.
    """
    config_path = Path(path or os.getenv("MQ_CONFIG", "config.ini"))
    parser = configparser.ConfigParser(interpolation=None)
    parser.read(config_path)

    def get(section: str, option: str, fallback: str | None = None) -> str | None:
        if parser.has_option(section, option):
            return parser.get(section, option)
        return fallback

    def get_int(section: str, option: str, fallback: str | None = None, default: int = 0) -> int:
        value = get(section, option, fallback)
        if value is None or value == "":
            return default
        try:
            return int(value)
        except ValueError as exc:
            raise ValueError(f"Invalid integer for [{section}] {option}: {value!r}") from exc

    sender: dict[str, Any] = {}
    for key, value in os.environ.items():
        if key.startswith(SENDER_ENV_PREFIX) and len(key) > len(SENDER_ENV_PREFIX):
            sender[key[len(SENDER_ENV_PREFIX):].lower()] = value
    if parser.has_section("sender"):
        sender.update(parser.items("sender"))

    return QueueConfig(
        table_name=get("queue", "table_name", os.getenv("MQ_TABLE_NAME")) or DEFAULT_TABLE,
        max_attempts=get_int("queue", "max_attempts", os.getenv("MQ_MAX_ATTEMPTS"), 3),
        exhaustion_policy=(
            get("queue", "exhaustion_policy", os.getenv("MQ_EXHAUSTION_POLICY")) or "skip"
        ).strip().lower(),
        default_priority=get_int(
            "queue", "default_priority", os.getenv("MQ_DEFAULT_PRIORITY"), DEFAULT_PRIORITY
        ),
        db=get("storage", "db", os.getenv("MQ_DB")) or "/data/mail_queue.db",
        sender=sender,
    )
