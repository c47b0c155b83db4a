from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from mail_queue.config import QueueConfig
from mail_queue.exceptions import MailQueueError, MessageValidationError
from mail_queue.models import Message
from mail_queue.queue import MailQueue
from mail_queue.senders import HttpApiSender, SmtpSender


@pytest_asyncio.fixture
async def queue(store, sender):
    return MailQueue(store, sender, QueueConfig(db=":memory:"))


@pytest.mark.asyncio
async def test_drain_limit_two_delivers_highest_then_oldest(queue, sender, make_message):
    now = datetime.now(timezone.utc)
    older = await queue.enqueue(make_message(subject="first five"), due=now - timedelta(minutes=2), priority=5)
    newer = await queue.enqueue(make_message(subject="second five"), due=now - timedelta(minutes=1), priority=5)
    urgent = await queue.enqueue(make_message(subject="ten"), due=now - timedelta(minutes=1), priority=10)

    result = await queue.drain(limit=2)

    assert (result.sent, result.removed, result.failed) == (2, 0, 0)
    assert [m.subject for m in sender.sent] == ["ten", "first five"]
    assert await queue.get(urgent) is None
    assert await queue.get(older) is None
    assert [e.id for e in await queue.list_due()] == [newer]
    assert await queue.count() == 1


@pytest.mark.asyncio
async def test_enqueue_uses_default_priority(store, sender, make_message):
    queue = MailQueue(store, sender, QueueConfig(default_priority=8))
    entry_id = await queue.enqueue(make_message())
    assert (await queue.get(entry_id)).priority == 8


@pytest.mark.asyncio
async def test_enqueue_rejects_unsendable_message(queue, make_message):
    with pytest.raises(MessageValidationError) as exc_info:
        await queue.enqueue(make_message(body=""))
    assert exc_info.value.missing == ["body"]
    assert await queue.count() == 0


@pytest.mark.asyncio
async def test_enqueue_builder_discards_draft(queue):
    builder = queue.builder()
    builder.set_from("noreply@example.com").add_address("alice@example.com")
    builder.set_subject("Queued").set_body("Plain body", is_html=False)

    entry_id = await queue.enqueue(builder, priority=2)

    assert builder.message == Message()
    entry = await queue.get(entry_id)
    assert entry.message.subject == "Queued"
    assert entry.message.is_html is False


@pytest.mark.asyncio
async def test_failed_enqueue_keeps_builder_draft(queue):
    builder = queue.builder().add_address("alice@example.com")
    with pytest.raises(MessageValidationError):
        await queue.enqueue(builder)
    assert builder.message.to[0].address == "alice@example.com"


@pytest.mark.asyncio
async def test_send_now_bypasses_queue(queue, sender, make_message):
    await queue.send_now(make_message(subject="now"))
    assert [m.subject for m in sender.sent] == ["now"]
    assert await queue.count() == 0


@pytest.mark.asyncio
async def test_remove(queue, make_message):
    entry_id = await queue.enqueue(make_message())
    assert await queue.remove(entry_id) is True
    assert await queue.remove(entry_id) is False


@pytest.mark.asyncio
async def test_operations_needing_a_sender(store, make_message):
    queue = MailQueue(store)
    await queue.enqueue(make_message())
    with pytest.raises(MailQueueError):
        await queue.drain()
    with pytest.raises(MailQueueError):
        await queue.send_now(make_message())


@pytest.mark.asyncio
async def test_close_releases_sender(queue, sender):
    await queue.close()
    assert sender.closed is True


@pytest.mark.asyncio
async def test_from_config_builds_components(tmp_path, make_message):
    config = QueueConfig(
        db=str(tmp_path / "queue.db"),
        table_name="outbox",
        max_attempts=5,
        sender={"type": "smtp", "host": "smtp.example.com", "port": "587", "username": "u", "password": "p"},
    )
    async with MailQueue.from_config(config) as queue:
        assert isinstance(queue.sender, SmtpSender)
        assert queue.store.table == "outbox"
        await queue.enqueue(make_message())
        assert await queue.count() == 1


def test_from_config_selects_http_sender(tmp_path):
    config = QueueConfig(
        db=str(tmp_path / "queue.db"),
        sender={"type": "mailgun", "api_key": "key", "domain": "mg.example.com"},
    )
    assert isinstance(MailQueue.from_config(config).sender, HttpApiSender)


def test_from_config_without_sender(tmp_path):
    assert MailQueue.from_config(QueueConfig(db=str(tmp_path / "q.db"))).sender is None
