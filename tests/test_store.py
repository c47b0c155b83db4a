from datetime import datetime, timedelta, timezone

import pytest

from mail_queue.exceptions import StorageError
from mail_queue.sql import SqliteAdapter
from mail_queue.store import QueueStore, from_epoch, to_epoch

T0 = datetime(2025, 1, 1, 8, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_insert_and_get(store, make_message):
    entry_id = await store.insert(make_message(), due=T0, priority=7)
    entry = await store.get(entry_id)
    assert entry.id == entry_id
    assert entry.priority == 7
    assert entry.date_due == T0
    assert entry.attempts == 0
    assert entry.date_attempted is None
    assert entry.message == make_message()


@pytest.mark.asyncio
async def test_get_missing_entry(store):
    assert await store.get(999) is None


@pytest.mark.asyncio
async def test_due_entries_order_by_priority_then_due(store, make_message):
    t = [T0 + timedelta(minutes=i) for i in range(4)]
    ids = {}
    for priority, due, subject in [(3, t[0], "p3"), (7, t[1], "p7-early"), (7, t[2], "p7-late"), (1, t[3], "p1")]:
        ids[subject] = await store.insert(make_message(subject=subject), due=due, priority=priority)

    entries = await store.due_entries(now=T0 + timedelta(hours=1))
    assert [e.message.subject for e in entries] == ["p7-early", "p7-late", "p3", "p1"]
    assert [e.id for e in entries] == [ids["p7-early"], ids["p7-late"], ids["p3"], ids["p1"]]


@pytest.mark.asyncio
async def test_due_entries_ties_broken_by_id(store, make_message):
    first = await store.insert(make_message(subject="first"), due=T0)
    second = await store.insert(make_message(subject="second"), due=T0)
    entries = await store.due_entries(now=T0)
    assert [e.id for e in entries] == [first, second]


@pytest.mark.asyncio
async def test_due_entries_excludes_future_and_honours_limit(store, make_message):
    await store.insert(make_message(subject="a"), due=T0)
    await store.insert(make_message(subject="b"), due=T0)
    await store.insert(make_message(subject="later"), due=T0 + timedelta(days=1))

    assert len(await store.due_entries(now=T0)) == 2
    assert len(await store.due_entries(limit=1, now=T0)) == 1
    assert len(await store.due_entries(now=T0 - timedelta(seconds=1))) == 0


@pytest.mark.asyncio
async def test_due_entries_rejects_negative_limit(store):
    with pytest.raises(ValueError):
        await store.due_entries(limit=-1)


@pytest.mark.asyncio
async def test_remove_is_idempotent(store, make_message):
    entry_id = await store.insert(make_message())
    assert await store.remove(999) is False
    assert await store.remove(entry_id) is True
    assert await store.remove(entry_id) is False


@pytest.mark.asyncio
async def test_mark_attempt_failed(store, make_message):
    entry_id = await store.insert(make_message(), due=T0)
    attempted = T0 + timedelta(minutes=5)
    assert await store.mark_attempt_failed(entry_id, 1, attempted_at=attempted) is True

    entry = await store.get(entry_id)
    assert entry.attempts == 1
    assert entry.date_attempted == attempted
    # a failed attempt does not postpone the entry
    assert [e.id for e in await store.due_entries(now=T0)] == [entry_id]

    assert await store.mark_attempt_failed(999, 1) is False


@pytest.mark.asyncio
async def test_nested_payload_round_trip(store, make_message):
    message = make_message(
        to=[{"address": "a@example.com", "name": "A"}, {"address": "b@example.com"}],
        cc=[{"address": "c@example.com", "name": "C"}],
        bcc=[{"address": "d@example.com"}],
        attachments=[
            {"file_path": "/srv/one.pdf", "display_name": "One.pdf"},
            {"file_path": "/srv/two.txt"},
        ],
    )
    await store.insert(message, due=T0)
    [entry] = await store.due_entries(now=T0)
    assert entry.message == message
    assert [a.address for a in entry.message.to] == ["a@example.com", "b@example.com"]
    assert entry.message.attachments[0].display_name == "One.pdf"


@pytest.mark.asyncio
async def test_count_list_and_purge(store, make_message):
    await store.insert(make_message(), due=T0)
    await store.insert(make_message(), due=T0 + timedelta(days=1), priority=9)

    assert await store.count() == 2
    assert await store.count(due_only=True, now=T0) == 1
    assert [e.priority for e in await store.list_entries()] == [9, 5]
    assert len(await store.list_entries(limit=1)) == 1

    assert await store.purge() == 2
    assert await store.count() == 0


@pytest.mark.asyncio
async def test_corrupt_row_raises_storage_error(store, make_message):
    entry_id = await store.insert(make_message(), due=T0)
    await store.adapter.execute(
        "UPDATE mail_queue SET message = :message WHERE id = :id",
        {"message": "not json", "id": entry_id},
    )
    with pytest.raises(StorageError, match=str(entry_id)):
        await store.due_entries(now=T0)


@pytest.mark.asyncio
async def test_missing_database_directory_raises_storage_error(tmp_path):
    store = QueueStore(SqliteAdapter(str(tmp_path / "missing" / "queue.db")))
    with pytest.raises(StorageError):
        await store.init_db()


@pytest.mark.asyncio
async def test_custom_table_name(tmp_path, make_message):
    store = QueueStore(SqliteAdapter(str(tmp_path / "custom.db")), table_name="outbox")
    await store.init_db()
    await store.insert(make_message())
    rows = await store.adapter.fetch_all("SELECT id FROM outbox")
    assert len(rows) == 1


def test_invalid_table_name_rejected():
    with pytest.raises(ValueError):
        QueueStore(SqliteAdapter(":memory:"), table_name="mail_queue; DROP TABLE x")


@pytest.mark.asyncio
async def test_in_memory_database_keeps_rows_between_operations(make_message):
    store = QueueStore(SqliteAdapter(":memory:"))
    await store.init_db()
    await store.insert(make_message())
    assert await store.count() == 1
    await store.close()


def test_epoch_conversion_treats_naive_values_as_utc():
    naive = datetime(2025, 1, 1, 8, 0)
    assert to_epoch(naive) == to_epoch(T0)
    assert from_epoch(to_epoch(T0)) == T0
    assert from_epoch(None) is None
