from typing import Any

import pytest
import pytest_asyncio

from mail_queue.exceptions import DeliveryError
from mail_queue.models import Message
from mail_queue.senders import Sender
from mail_queue.sql import SqliteAdapter
from mail_queue.store import QueueStore


def _message(**overrides: Any) -> Message:
    payload: dict[str, Any] = {
        "from": {"address": "noreply@example.com", "name": "Example"},
        "to": [{"address": "alice@example.com", "name": "Alice"}],
        "subject": "Hello",
        "body": "<p>Hello Alice</p>",
    }
    payload.update(overrides)
    return Message.from_dict(payload)


class RecordingSender(Sender):
    """Sender double that records messages and fails for selected subjects."""

    name = "recording"

    def __init__(self):
        self.sent: list[Message] = []
        self.calls = 0
        self.fail_subjects: set[str] = set()
        self.closed = False

    async def send(self, message: Message) -> None:
        self.calls += 1
        if message.subject in self.fail_subjects:
            raise DeliveryError("550 mailbox unavailable", smtp_code=550)
        self.sent.append(message)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def make_message():
    return _message


@pytest.fixture
def sender():
    return RecordingSender()


@pytest_asyncio.fixture
async def store(tmp_path):
    queue_store = QueueStore(SqliteAdapter(str(tmp_path / "queue.db")))
    await queue_store.init_db()
    yield queue_store
    await queue_store.close()
