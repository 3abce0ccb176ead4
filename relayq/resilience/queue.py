"""
relayq Durable Ordered Queue — deferred requests, delivered in order.

Requests wait here until a processor hands them to an executor. The queue:
- Keeps entries sorted by (priority desc, created_at asc) at all times
- Mirrors every mutation to a KeyValueStore snapshot
- Enforces capacity and id uniqueness
- Routes failures through the RetryPolicy into retry, dead letter or drop
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Optional
import logging

from relayq.config import QueueConfig
from relayq.exceptions import CapacityExceededError, DuplicateIdError
from relayq.models.request import Request, utcnow
from relayq.resilience.dead_letter import DeadLetterStore
from relayq.resilience.retry_policy import RetryPolicy
from relayq.resilience.snapshot import QueueState, SnapshotCollection
from relayq.storage.base import KeyValueStore


class FailureOutcome(str, Enum):
    RETRY_SCHEDULED = "retry_scheduled"
    DEAD_LETTERED = "dead_lettered"
    DROPPED = "dropped"


@dataclass
class QueueStats:
    """Aggregate statistics for the main queue."""
    total: int = 0
    max_size: int = 0
    by_priority: dict[int, int] = field(default_factory=dict)
    by_method: dict[str, int] = field(default_factory=dict)
    by_retry_count: dict[int, int] = field(default_factory=dict)
    oldest: datetime | None = None
    newest: datetime | None = None
    oldest_age: timedelta | None = None
    newest_age: timedelta | None = None
    dead_letter_size: int = 0
    dead_letter: dict[str, Any] | None = None

    @property
    def utilization_percent(self) -> int:
        if self.max_size == 0:
            return 0
        return round(self.total / self.max_size * 100)

    def to_dict(self) -> dict[str, Any]:
        data = {
            "totalRequests": self.total,
            "maxQueueSize": self.max_size,
            "utilizationPercent": self.utilization_percent,
            "priorityGroups": {str(k): v for k, v in self.by_priority.items()},
            "methodGroups": dict(self.by_method),
            "retryGroups": {str(k): v for k, v in self.by_retry_count.items()},
            "oldestRequest": self.oldest.isoformat() if self.oldest else None,
            "newestRequest": self.newest.isoformat() if self.newest else None,
            "oldestAgeSeconds": self.oldest_age.total_seconds() if self.oldest_age is not None else None,
            "newestAgeSeconds": self.newest_age.total_seconds() if self.newest_age is not None else None,
            "deadLetterQueueSize": self.dead_letter_size,
        }
        if self.dead_letter is not None:
            data["deadLetterQueueStats"] = self.dead_letter
        return data


class DurableOrderedQueue(SnapshotCollection):
    """Priority-ordered, persisted queue of Requests awaiting delivery.

    Usage::

        queue = DurableOrderedQueue(InMemoryStore(), QueueConfig(dead_letter_enabled=True))
        await queue.initialize()
        await queue.enqueue(Request(id="r1", method="POST", url="https://api/x"))
        for request in queue.get_ready_for_retry():
            ...
    """

    storage_key = "relayq_queue"
    component_name = "Queue"

    def __init__(
        self,
        store: Optional[KeyValueStore],
        config: QueueConfig | None = None,
        policy: RetryPolicy | None = None,
        dead_letter_store: DeadLetterStore | None = None,
        clock: Callable[[], datetime] = utcnow,
        logger: logging.Logger | None = None,
    ):
        super().__init__(store, config, clock=clock, logger=logger)
        self.policy = policy or RetryPolicy(self.config, clock=clock)
        if dead_letter_store is None and self.config.dead_letter_enabled:
            dead_letter_store = DeadLetterStore(store, self.config, clock=clock)
        self._dead_letter = dead_letter_store

    @property
    def max_size(self) -> int:
        return self.config.max_queue_size

    @property
    def dead_letter_store(self) -> DeadLetterStore | None:
        return self._dead_letter

    @property
    def dead_letter_size(self) -> int:
        if self._dead_letter is None or not self._dead_letter.is_ready:
            return 0
        return self._dead_letter.size

    # --- Lifecycle ---

    async def initialize(self) -> None:
        """Load the snapshot, start the dead-letter store, drop expired entries."""
        if self._state == QueueState.READY:
            return

        self.logger.debug("Initializing queue")
        if self.persistence_enabled:
            await self._load()

        if self._dead_letter is not None:
            await self._dead_letter.initialize()

        self._state = QueueState.READY
        await self.cleanup_expired()
        self.logger.info("Queue initialized with %d requests", len(self._items))

    async def dispose(self) -> None:
        try:
            await self._dispose_snapshot()
        finally:
            if self._dead_letter is not None:
                await self._dead_letter.dispose()
        self.logger.debug("Queue disposed")

    # --- Mutations ---

    async def enqueue(self, request: Request) -> None:
        """Insert a request at its ordered position.

        Raises CapacityExceededError when full and DuplicateIdError when the
        id is already queued.
        """
        self._ensure_ready()

        if len(self._items) >= self.max_size:
            raise CapacityExceededError(self.max_size)
        if self._index_of(request.id) != -1:
            raise DuplicateIdError(request.id)

        self._insert_by_priority(request)
        await self._persist()
        self.logger.debug("Request enqueued: %s (queue size: %d)", request.id, len(self._items))

    async def remove(self, request_id: str) -> bool:
        """Remove a request by ID. Returns False when absent."""
        self._ensure_ready()
        index = self._index_of(request_id)
        if index == -1:
            return False
        self._items.pop(index)
        await self._persist()
        self.logger.debug("Request removed: %s (queue size: %d)", request_id, len(self._items))
        return True

    async def update(self, request: Request) -> bool:
        """Replace the entry with the same ID and restore ordering."""
        self._ensure_ready()
        index = self._index_of(request.id)
        if index == -1:
            return False
        self._items[index] = request
        self._sort()
        await self._persist()
        self.logger.debug("Request updated: %s", request.id)
        return True

    async def dequeue(self) -> Request | None:
        """Remove and return the head, or None when empty."""
        self._ensure_ready()
        if not self._items:
            return None
        request = self._items.pop(0)
        await self._persist()
        self.logger.debug("Request dequeued: %s (queue size: %d)", request.id, len(self._items))
        return request

    async def clear(self) -> None:
        self._ensure_ready()
        count = len(self._items)
        self._items.clear()
        await self._persist()
        self.logger.info("Queue cleared (%d requests removed)", count)

    async def cleanup_expired(
        self,
        now: datetime | None = None,
        max_age: timedelta | None = None,
    ) -> int:
        """Remove entries strictly older than max_age. Returns count removed."""
        self._ensure_ready()
        removed = self._remove_older_than(
            now or self._clock(),
            max_age if max_age is not None else self.config.max_request_age,
        )
        if removed:
            await self._persist()
            self.logger.info("Cleaned up %d expired requests", removed)
        return removed

    # --- Queries ---

    def get_next(self) -> Request | None:
        """Highest priority, oldest on tie. Does not remove."""
        self._ensure_ready()
        return self._items[0] if self._items else None

    def get_by_priority(self) -> list[Request]:
        self._ensure_ready()
        return sorted(self._items, key=lambda r: -r.priority)

    def get_ready_for_retry(self, now: datetime | None = None) -> list[Request]:
        """Requests with retry budget left whose backoff has elapsed."""
        self._ensure_ready()
        now = now or self._clock()
        ready = []
        for request in self._items:
            if not request.can_retry:
                continue
            if request.last_retry_time is not None:
                required = request.retry_delay or timedelta(0)
                if now - request.last_retry_time < required:
                    continue
            ready.append(request)
        return ready

    def retry_stats(self, request_id: str) -> dict[str, Any]:
        request = self.get(request_id)
        if request is None:
            return {"error": "Request not found"}
        return self.policy.retry_stats(request)

    def statistics(self, now: datetime | None = None) -> QueueStats:
        self._ensure_ready()
        now = now or self._clock()

        stats = QueueStats(total=len(self._items), max_size=self.max_size)
        for request in self._items:
            stats.by_priority[request.priority] = stats.by_priority.get(request.priority, 0) + 1
            stats.by_method[request.method] = stats.by_method.get(request.method, 0) + 1
            stats.by_retry_count[request.retry_count] = (
                stats.by_retry_count.get(request.retry_count, 0) + 1
            )

        if self._items:
            stats.oldest = min(r.created_at for r in self._items)
            stats.newest = max(r.created_at for r in self._items)
            stats.oldest_age = now - stats.oldest
            stats.newest_age = now - stats.newest

        stats.dead_letter_size = self.dead_letter_size
        if self._dead_letter is not None and self._dead_letter.is_ready:
            stats.dead_letter = self._dead_letter.statistics(now).to_dict()
        return stats

    # --- Failure handling ---

    async def handle_failed_request(
        self,
        request: Request,
        error: Any,
        status_code: int | None = None,
    ) -> FailureOutcome:
        """Retry, dead-letter or drop a request whose execution failed."""
        self._ensure_ready()
        self.logger.debug("Handling failed request %s: %s", request.id, error)

        if self.policy.should_retry(request, error, status_code):
            retry_request = self.policy.prepare_for_retry(request, error, status_code)
            await self.update(retry_request)
            self.logger.info(
                "Request %s scheduled for retry (attempt %d/%d) in %.1fs",
                request.id,
                retry_request.retry_count,
                retry_request.max_retries,
                retry_request.retry_delay.total_seconds() if retry_request.retry_delay else 0.0,
            )
            return FailureOutcome.RETRY_SCHEDULED

        return await self.escalate(request, error, status_code)

    async def escalate(
        self,
        request: Request,
        error: Any = None,
        status_code: int | None = None,
    ) -> FailureOutcome:
        """Move a request out of the main queue: dead-letter it, or drop it."""
        self._ensure_ready()

        if self._dead_letter is None:
            await self.remove(request.id)
            self.logger.warning(
                "Request %s dropped after %d retries", request.id, request.retry_count
            )
            return FailureOutcome.DROPPED

        code = self.policy.effective_status_code(error, status_code)
        reason = (
            self.policy.failure_reason(error, code)
            if error is not None
            else request.failure_reason or "Retries exhausted"
        )
        failed = request.with_failure_info(failure_reason=reason, status_code=code)

        await self._dead_letter.enqueue(failed)
        await self.remove(request.id)
        self.logger.warning(
            "Request %s moved to dead letter store after %d retries: %s",
            request.id,
            request.retry_count,
            reason,
        )
        return FailureOutcome.DEAD_LETTERED

    # --- Ordering ---

    def _insert_by_priority(self, request: Request) -> None:
        key = request.sort_key
        insert_index = len(self._items)
        for i, existing in enumerate(self._items):
            if key < existing.sort_key:
                insert_index = i
                break
        self._items.insert(insert_index, request)

    def _sort(self) -> None:
        self._items.sort(key=lambda r: r.sort_key)
