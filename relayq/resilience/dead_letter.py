"""
relayq Dead-Letter Store — Never Lose a Request.

Requests that exhausted their retries (or aged out) are kept here with
their failure reason and last status code for inspection, export and
manual replay. Supports:
- Bounded capacity with oldest-first eviction
- Replace-on-duplicate-id semantics
- Filters by failure reason, status code and age
- Statistics and export for monitoring
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from relayq.resilience.snapshot import QueueState, SnapshotCollection
from relayq.models.request import Request


@dataclass
class DeadLetterStats:
    """Aggregate statistics for the dead-letter store."""
    total: int = 0
    max_size: int = 0
    by_failure_reason: dict[str, int] = field(default_factory=dict)
    by_status_code: dict[int, int] = field(default_factory=dict)
    by_method: dict[str, int] = field(default_factory=dict)
    oldest: datetime | None = None
    newest: datetime | None = None
    average_age_hours: float = 0.0

    @property
    def utilization_percent(self) -> int:
        if self.max_size == 0:
            return 0
        return round(self.total / self.max_size * 100)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalRequests": self.total,
            "maxQueueSize": self.max_size,
            "utilizationPercent": self.utilization_percent,
            "failureReasonGroups": dict(self.by_failure_reason),
            "statusCodeGroups": {str(k): v for k, v in self.by_status_code.items()},
            "methodGroups": dict(self.by_method),
            "oldestRequest": self.oldest.isoformat() if self.oldest else None,
            "newestRequest": self.newest.isoformat() if self.newest else None,
            "averageAgeHours": round(self.average_age_hours, 2),
        }


class DeadLetterStore(SnapshotCollection):
    """Bounded, created_at-ordered store of terminally failed requests."""

    storage_key = "relayq_dead_letter"
    component_name = "Dead letter store"

    @property
    def max_size(self) -> int:
        return self.config.max_dead_letter_size

    async def initialize(self) -> None:
        """Load persisted dead letters and drop the ones past retention."""
        if self._state == QueueState.READY:
            return

        if self.persistence_enabled:
            await self._load()

        self._state = QueueState.READY
        await self.cleanup_old()
        self.logger.debug("Dead letter store initialized with %d requests", len(self._items))

    async def enqueue(self, request: Request) -> None:
        """Add a failed request, evicting the oldest entry when full."""
        self._ensure_ready()

        if len(self._items) >= self.max_size:
            evicted = self._items.pop(0)
            self.logger.info("Dead letter store full, evicted oldest request %s", evicted.id)

        index = self._index_of(request.id)
        if index != -1:
            self.logger.debug("Dead letter %s already present, replacing", request.id)
            self._items.pop(index)

        self._insert_by_creation_time(request)
        await self._persist()
        self.logger.info(
            "Request %s added to dead letter store (size: %d)", request.id, len(self._items)
        )

    async def remove(self, request_id: str) -> bool:
        self._ensure_ready()
        index = self._index_of(request_id)
        if index == -1:
            return False
        self._items.pop(index)
        await self._persist()
        self.logger.debug("Request %s removed from dead letter store", request_id)
        return True

    async def retry(self, request_id: str) -> bool:
        """Release an entry for replay. Resubmitting it is the caller's job."""
        removed = await self.remove(request_id)
        if removed:
            self.logger.info("Request %s released from dead letter store for retry", request_id)
        return removed

    async def clear(self) -> None:
        self._ensure_ready()
        count = len(self._items)
        self._items.clear()
        await self._persist()
        self.logger.info("Dead letter store cleared (%d requests removed)", count)

    async def cleanup_old(
        self,
        now: datetime | None = None,
        max_age: timedelta | None = None,
    ) -> int:
        """Remove entries older than max_age. Returns count removed."""
        self._ensure_ready()
        removed = self._remove_older_than(
            now or self._clock(),
            max_age if max_age is not None else self.config.max_request_age,
        )
        if removed:
            await self._persist()
            self.logger.info("Cleaned up %d old requests from dead letter store", removed)
        return removed

    # --- Filters ---

    def get_by_failure_reason(self, failure_reason: str) -> list[Request]:
        self._ensure_ready()
        return [r for r in self._items if r.failure_reason == failure_reason]

    def get_by_status_code(self, status_code: int) -> list[Request]:
        self._ensure_ready()
        return [r for r in self._items if r.last_status_code == status_code]

    def get_older_than(self, age: timedelta, now: datetime | None = None) -> list[Request]:
        self._ensure_ready()
        cutoff = (now or self._clock()) - age
        return [r for r in self._items if r.created_at < cutoff]

    # --- Monitoring ---

    def statistics(self, now: datetime | None = None) -> DeadLetterStats:
        self._ensure_ready()
        now = now or self._clock()

        stats = DeadLetterStats(total=len(self._items), max_size=self.max_size)
        for request in self._items:
            reason = request.failure_reason or "unknown"
            stats.by_failure_reason[reason] = stats.by_failure_reason.get(reason, 0) + 1
            if request.last_status_code is not None:
                code = request.last_status_code
                stats.by_status_code[code] = stats.by_status_code.get(code, 0) + 1
            stats.by_method[request.method] = stats.by_method.get(request.method, 0) + 1

        if self._items:
            stats.oldest = self._items[0].created_at
            stats.newest = self._items[-1].created_at
            total_hours = sum((now - r.created_at).total_seconds() / 3600 for r in self._items)
            stats.average_age_hours = total_hours / len(self._items)

        return stats

    def export(self, now: datetime | None = None) -> dict[str, Any]:
        """Full snapshot plus statistics for external analysis."""
        self._ensure_ready()
        now = now or self._clock()
        return {
            "exportedAt": now.isoformat(),
            "queueSize": len(self._items),
            "requests": [r.to_json() for r in self._items],
            "statistics": self.statistics(now).to_dict(),
        }

    async def dispose(self) -> None:
        await self._dispose_snapshot()
        self.logger.debug("Dead letter store disposed")

    # --- Ordering ---

    def _insert_by_creation_time(self, request: Request) -> None:
        insert_index = len(self._items)
        for i, existing in enumerate(self._items):
            if request.created_at < existing.created_at:
                insert_index = i
                break
        self._items.insert(insert_index, request)

    def _sort(self) -> None:
        self._items.sort(key=lambda r: r.created_at)
