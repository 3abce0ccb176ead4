"""Test the durable ordered queue."""
import json
import random
import pytest
from datetime import datetime, timedelta, timezone

from relayq.config import QueueConfig
from relayq.exceptions import (
    CapacityExceededError,
    DuplicateIdError,
    NotInitializedError,
    PersistenceError,
)
from relayq.models.request import Request
from relayq.resilience.queue import DurableOrderedQueue
from relayq.resilience.snapshot import QueueState, SnapshotCollection
from relayq.storage.base import InMemoryStore

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def clock():
    return T0


def make_request(id: str, priority: int = 0, offset: float = 0, **fields) -> Request:
    return Request(
        id=id,
        url=f"https://api.example.com/{id}",
        priority=priority,
        created_at=T0 + timedelta(seconds=offset),
        **fields,
    )


async def make_queue(store=None, **config) -> DurableOrderedQueue:
    queue = DurableOrderedQueue(
        store if store is not None else InMemoryStore(),
        QueueConfig(**config),
        clock=clock,
    )
    await queue.initialize()
    return queue


class FailingStore(InMemoryStore):
    async def set(self, key: str, value: str) -> None:
        raise OSError("disk full")


# --- Ordering ---

@pytest.mark.asyncio
async def test_higher_priority_first():
    queue = await make_queue()
    await queue.enqueue(make_request("A", priority=1, offset=0))
    await queue.enqueue(make_request("B", priority=5, offset=1))
    assert [r.id for r in queue.get_all()] == ["B", "A"]
    assert queue.get_next().id == "B"


@pytest.mark.asyncio
async def test_older_first_on_equal_priority():
    queue = await make_queue()
    await queue.enqueue(make_request("late", offset=10))
    await queue.enqueue(make_request("early", offset=0))
    assert [r.id for r in queue.get_all()] == ["early", "late"]


@pytest.mark.asyncio
async def test_ordering_holds_for_any_insert_sequence():
    rng = random.Random(1234)
    queue = await make_queue(max_queue_size=100)
    for i in range(60):
        await queue.enqueue(make_request(f"r{i}", priority=rng.randint(-2, 3), offset=rng.randint(0, 50)))
    items = queue.get_all()
    assert list(items) == sorted(items, key=lambda r: r.sort_key)


@pytest.mark.asyncio
async def test_update_restores_ordering():
    queue = await make_queue()
    await queue.enqueue(make_request("A", priority=1))
    await queue.enqueue(make_request("B", priority=5))
    updated = queue.get("A").model_copy(update={"priority": 10})
    assert await queue.update(updated)
    assert queue.get_next().id == "A"
    assert not await queue.update(make_request("missing"))


@pytest.mark.asyncio
async def test_get_by_priority():
    queue = await make_queue()
    await queue.enqueue(make_request("low", priority=0))
    await queue.enqueue(make_request("high", priority=9))
    assert [r.id for r in queue.get_by_priority()] == ["high", "low"]


# --- Constraints ---

@pytest.mark.asyncio
async def test_duplicate_id_rejected():
    queue = await make_queue()
    await queue.enqueue(make_request("A"))
    with pytest.raises(DuplicateIdError):
        await queue.enqueue(make_request("A", priority=9))
    assert queue.size == 1
    assert queue.get("A").priority == 0


@pytest.mark.asyncio
async def test_capacity_enforced():
    queue = await make_queue(max_queue_size=2)
    await queue.enqueue(make_request("A"))
    await queue.enqueue(make_request("B"))
    with pytest.raises(CapacityExceededError):
        await queue.enqueue(make_request("C"))
    assert queue.size == 2
    assert queue.get("C") is None


@pytest.mark.asyncio
async def test_full_queue_reports_capacity_before_duplicate():
    queue = await make_queue(max_queue_size=1)
    await queue.enqueue(make_request("A"))
    with pytest.raises(CapacityExceededError):
        await queue.enqueue(make_request("A"))


@pytest.mark.asyncio
async def test_use_before_initialize_rejected():
    queue = DurableOrderedQueue(InMemoryStore(), QueueConfig())
    assert queue.state == QueueState.UNINITIALIZED
    with pytest.raises(NotInitializedError):
        await queue.enqueue(make_request("A"))
    with pytest.raises(NotInitializedError):
        queue.get_all()


@pytest.mark.asyncio
async def test_initialize_is_idempotent():
    store = InMemoryStore()
    queue = await make_queue(store)
    await queue.enqueue(make_request("A"))
    await queue.initialize()
    assert queue.size == 1


# --- Mutations ---

@pytest.mark.asyncio
async def test_dequeue_and_remove():
    queue = await make_queue()
    assert await queue.dequeue() is None
    assert queue.get_next() is None

    await queue.enqueue(make_request("A", priority=1))
    await queue.enqueue(make_request("B"))
    head = await queue.dequeue()
    assert head.id == "A"
    assert await queue.remove("B")
    assert not await queue.remove("B")
    assert queue.is_empty


@pytest.mark.asyncio
async def test_clear():
    queue = await make_queue()
    await queue.enqueue(make_request("A"))
    await queue.enqueue(make_request("B"))
    await queue.clear()
    assert queue.size == 0


@pytest.mark.asyncio
async def test_cleanup_expired_keeps_boundary():
    queue = await make_queue()
    await queue.enqueue(make_request("aged", offset=0))
    await queue.enqueue(make_request("boundary", offset=50))
    await queue.enqueue(make_request("fresh", offset=50.1))

    removed = await queue.cleanup_expired(T0 + timedelta(seconds=100), timedelta(seconds=50))
    assert removed == 1
    assert {r.id for r in queue.get_all()} == {"boundary", "fresh"}


@pytest.mark.asyncio
async def test_ready_for_retry():
    queue = await make_queue()
    now = T0 + timedelta(minutes=1)
    await queue.enqueue(make_request("new"))
    await queue.enqueue(make_request(
        "waiting", retry_count=1,
        last_retry_time=now - timedelta(seconds=5), retry_delay=timedelta(seconds=10),
    ))
    await queue.enqueue(make_request(
        "due", retry_count=1,
        last_retry_time=now - timedelta(seconds=10), retry_delay=timedelta(seconds=10),
    ))
    await queue.enqueue(make_request("exhausted", retry_count=3, max_retries=3))

    ready = {r.id for r in queue.get_ready_for_retry(now)}
    assert ready == {"new", "due"}


# --- Persistence ---

@pytest.mark.asyncio
async def test_snapshot_survives_reload():
    store = InMemoryStore()
    queue = await make_queue(store)
    await queue.enqueue(make_request("A", priority=1, metadata={"k": "v"}))
    await queue.enqueue(make_request("B", priority=5, retry_count=2, failure_reason="HTTP 503: Service Unavailable"))
    await queue.enqueue(make_request("C", priority=1, offset=5))
    before = queue.get_all()

    reloaded = await make_queue(store)
    assert reloaded.get_all() == before


@pytest.mark.asyncio
async def test_dispose_persists_and_blocks_use():
    store = InMemoryStore()
    queue = await make_queue(store)
    await queue.enqueue(make_request("A"))
    await queue.dispose()
    assert queue.state == QueueState.DISPOSED
    assert "relayq_queue" in store
    with pytest.raises(NotInitializedError):
        queue.get_all()

    await queue.initialize()
    assert queue.size == 1


@pytest.mark.asyncio
async def test_corrupt_snapshot_discarded():
    store = InMemoryStore({"relayq_queue": "{not json"})
    queue = await make_queue(store)
    assert queue.is_empty
    assert "relayq_queue" not in store


@pytest.mark.asyncio
async def test_non_list_snapshot_discarded():
    store = InMemoryStore({"relayq_queue": json.dumps({"id": "A"})})
    queue = await make_queue(store)
    assert queue.is_empty
    assert "relayq_queue" not in store


@pytest.mark.asyncio
async def test_malformed_and_duplicate_entries_skipped():
    good = make_request("A").to_json()
    other = make_request("B", priority=3).to_json()
    store = InMemoryStore({
        "relayq_queue": json.dumps([{"id": "broken"}, good, other, dict(good, priority=9)]),
    })
    queue = await make_queue(store)
    assert [r.id for r in queue.get_all()] == ["B", "A"]
    assert queue.get("A").priority == 0


@pytest.mark.asyncio
async def test_initialize_drops_expired_entries():
    store = InMemoryStore({
        "relayq_queue": json.dumps([
            make_request("old", offset=-25 * 3600).to_json(),
            make_request("recent", offset=-3600).to_json(),
        ]),
    })
    queue = await make_queue(store)
    assert [r.id for r in queue.get_all()] == ["recent"]


@pytest.mark.asyncio
async def test_persistence_failure_surfaces_without_rollback():
    queue = await make_queue(FailingStore())
    with pytest.raises(PersistenceError):
        await queue.enqueue(make_request("A"))
    assert queue.get("A") is not None


@pytest.mark.asyncio
async def test_persist_disabled_leaves_store_untouched():
    store = InMemoryStore()
    queue = await make_queue(store, persist_queue=False)
    await queue.enqueue(make_request("A"))
    assert "relayq_queue" not in store


# --- Monitoring ---

@pytest.mark.asyncio
async def test_statistics():
    queue = await make_queue(max_queue_size=10)
    await queue.enqueue(make_request("A", priority=1, offset=0))
    await queue.enqueue(make_request("B", priority=1, offset=60, method="POST"))
    await queue.enqueue(make_request("C", priority=0, offset=120, retry_count=1))

    stats = queue.statistics(T0 + timedelta(minutes=5))
    assert stats.total == 3
    assert stats.utilization_percent == 30
    assert stats.by_priority == {1: 2, 0: 1}
    assert stats.by_method == {"GET": 2, "POST": 1}
    assert stats.by_retry_count == {0: 2, 1: 1}
    assert stats.oldest_age == timedelta(minutes=5)
    assert stats.newest_age == timedelta(minutes=3)

    data = stats.to_dict()
    assert data["totalRequests"] == 3
    assert data["deadLetterQueueSize"] == 0
    assert "deadLetterQueueStats" not in data


@pytest.mark.asyncio
async def test_retry_stats_for_missing_request():
    queue = await make_queue()
    assert queue.retry_stats("nope") == {"error": "Request not found"}


class UndeletableStore(InMemoryStore):
    async def remove(self, key: str) -> None:
        raise OSError("read-only volume")


@pytest.mark.asyncio
async def test_corrupt_snapshot_tolerates_failed_removal():
    store = UndeletableStore({"relayq_queue": "{not json"})
    queue = await make_queue(store)
    assert queue.is_empty
    await queue.enqueue(make_request("A"))
    assert queue.size == 1


@pytest.mark.asyncio
async def test_unserializable_entry_surfaces_as_persistence_error():
    queue = await make_queue()
    await queue.enqueue(make_request("ok"))
    bad = Request.model_construct(id="bad", url="https://x", created_at=T0, metadata={"obj": object()})
    with pytest.raises(PersistenceError):
        await queue.enqueue(bad)
    with pytest.raises(PersistenceError):
        await queue.remove("ok")

    assert await queue.remove("bad")
    assert queue.is_empty


def test_snapshot_collection_is_abstract():
    with pytest.raises(TypeError):
        SnapshotCollection(InMemoryStore())
