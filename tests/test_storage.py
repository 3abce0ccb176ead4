"""Test the key-value stores that hold queue snapshots."""
import pytest
from datetime import datetime, timezone

from relayq.config import QueueConfig
from relayq.models.request import Request
from relayq.resilience.queue import DurableOrderedQueue
from relayq.storage.base import InMemoryStore, KeyValueStore
from relayq.storage.file import JsonFileStore
from relayq.storage.sql import SqlKeyValueStore


def test_stores_satisfy_protocol(tmp_path):
    assert isinstance(InMemoryStore(), KeyValueStore)
    assert isinstance(JsonFileStore(tmp_path), KeyValueStore)


@pytest.mark.asyncio
async def test_in_memory_store():
    store = InMemoryStore({"a": "1"})
    assert await store.get("a") == "1"
    await store.set("a", "2")
    assert await store.get("a") == "2"
    await store.remove("a")
    await store.remove("a")
    assert await store.get("a") is None
    assert "a" not in store


@pytest.mark.asyncio
async def test_json_file_store(tmp_path):
    store = JsonFileStore(tmp_path / "snapshots")
    assert await store.get("relayq_queue") is None

    await store.set("relayq_queue", '[{"id": "r1"}]')
    assert await store.get("relayq_queue") == '[{"id": "r1"}]'
    assert (tmp_path / "snapshots" / "relayq_queue.json").exists()

    await store.set("relayq_queue", "[]")
    assert await store.get("relayq_queue") == "[]"
    assert [p.name for p in (tmp_path / "snapshots").iterdir()] == ["relayq_queue.json"]

    await store.remove("relayq_queue")
    await store.remove("relayq_queue")
    assert await store.get("relayq_queue") is None


@pytest.mark.asyncio
async def test_json_file_store_sanitizes_keys(tmp_path):
    store = JsonFileStore(tmp_path)
    await store.set("tenant/../queue", "x")
    assert await store.get("tenant/../queue") == "x"
    assert all(p.parent == tmp_path for p in tmp_path.iterdir())


@pytest.mark.asyncio
async def test_sql_store(tmp_path):
    store = SqlKeyValueStore.from_url(f"sqlite+aiosqlite:///{tmp_path}/kv.db")
    await store.create_tables()
    try:
        assert await store.get("relayq_queue") is None
        await store.set("relayq_queue", "[]")
        await store.set("relayq_queue", '[{"id": "r1"}]')
        assert await store.get("relayq_queue") == '[{"id": "r1"}]'
        await store.remove("relayq_queue")
        assert await store.get("relayq_queue") is None
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_queue_survives_restart_on_disk(tmp_path):
    created = datetime.now(timezone.utc)
    first = DurableOrderedQueue(JsonFileStore(tmp_path), QueueConfig())
    await first.initialize()
    await first.enqueue(Request(id="A", url="https://a", priority=1, created_at=created))
    await first.enqueue(Request(id="B", url="https://b", priority=3, created_at=created))
    await first.dispose()

    second = DurableOrderedQueue(JsonFileStore(tmp_path), QueueConfig())
    await second.initialize()
    assert [r.id for r in second.get_all()] == ["B", "A"]


@pytest.mark.asyncio
async def test_queue_survives_restart_in_database(tmp_path):
    url = f"sqlite+aiosqlite:///{tmp_path}/relayq.db"
    store = SqlKeyValueStore.from_url(url)
    await store.create_tables()
    queue = DurableOrderedQueue(store, QueueConfig(dead_letter_enabled=True))
    await queue.initialize()
    await queue.enqueue(Request(id="A", url="https://a", max_retries=0))
    await queue.handle_failed_request(queue.get("A"), None, 500)
    await queue.dispose()
    await store.close()

    store = SqlKeyValueStore.from_url(url)
    queue = DurableOrderedQueue(store, QueueConfig(dead_letter_enabled=True))
    await queue.initialize()
    try:
        assert queue.is_empty
        assert queue.dead_letter_store.get("A").last_status_code == 500
    finally:
        await queue.dispose()
        await store.close()
