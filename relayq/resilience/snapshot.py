"""
relayq Snapshot Persistence — shared lifecycle for durable collections.

Both the main queue and the dead-letter store keep an ordered list of
Requests in memory and mirror it to a KeyValueStore as a JSON array under
a fixed key. This module holds the parts they share:
- The UNINITIALIZED -> READY -> DISPOSED lifecycle
- Snapshot loading (corrupt data is discarded, never fatal)
- Snapshot writes (failures surface as PersistenceError)
"""
from __future__ import annotations
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Callable, Optional
import json
import logging

from relayq.config import QueueConfig
from relayq.exceptions import NotInitializedError, PersistenceError
from relayq.models.request import Request, utcnow
from relayq.storage.base import KeyValueStore


class QueueState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    DISPOSED = "disposed"


class SnapshotCollection(ABC):
    """Base for in-memory Request collections mirrored to a KeyValueStore."""

    storage_key: str = ""
    component_name: str = "Queue"

    def __init__(
        self,
        store: Optional[KeyValueStore],
        config: QueueConfig | None = None,
        clock: Callable[[], datetime] = utcnow,
        logger: logging.Logger | None = None,
    ):
        self.store = store
        self.config = config or QueueConfig()
        self._clock = clock
        self._items: list[Request] = []
        self._state = QueueState.UNINITIALIZED
        self.logger = logger or logging.getLogger(type(self).__module__)
        if self.config.enable_logging:
            self.logger.setLevel(logging.DEBUG)

    def now(self) -> datetime:
        return self._clock()

    # --- Lifecycle ---

    @property
    def state(self) -> QueueState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state == QueueState.READY

    @property
    def persistence_enabled(self) -> bool:
        return self.config.persist_queue and self.store is not None

    def _ensure_ready(self) -> None:
        if self._state != QueueState.READY:
            raise NotInitializedError(self.component_name)

    # --- Shared queries ---

    @property
    def size(self) -> int:
        self._ensure_ready()
        return len(self._items)

    @property
    def is_empty(self) -> bool:
        return self.size == 0

    def __len__(self) -> int:
        return self.size

    def get(self, request_id: str) -> Request | None:
        """Get a request by ID."""
        self._ensure_ready()
        return next((r for r in self._items if r.id == request_id), None)

    def get_all(self) -> tuple[Request, ...]:
        """Read-only view of the ordered collection."""
        self._ensure_ready()
        return tuple(self._items)

    def _index_of(self, request_id: str) -> int:
        for i, existing in enumerate(self._items):
            if existing.id == request_id:
                return i
        return -1

    def _remove_older_than(self, now: datetime, max_age) -> int:
        before = len(self._items)
        self._items = [r for r in self._items if now - r.created_at <= max_age]
        return before - len(self._items)

    # --- Snapshot I/O ---

    @abstractmethod
    def _sort(self) -> None:
        """Restore the collection's ordering in place."""

    async def _load(self) -> None:
        """Load the persisted snapshot. Corrupt data is dropped from the store."""
        try:
            raw = await self.store.get(self.storage_key)
        except Exception as exc:
            raise PersistenceError(f"Failed to read {self.storage_key}: {exc}") from exc
        if raw is None:
            return

        try:
            entries = json.loads(raw)
            if not isinstance(entries, list):
                raise ValueError(f"snapshot is a {type(entries).__name__}, not a list")
        except ValueError as exc:
            self.logger.warning("Discarding corrupt snapshot %s: %s", self.storage_key, exc)
            try:
                await self.store.remove(self.storage_key)
            except Exception:
                self.logger.exception("Failed to remove corrupt snapshot %s", self.storage_key)
            return

        seen: set[str] = set()
        for entry in entries:
            try:
                request = Request.from_json(entry)
            except (ValueError, KeyError, TypeError) as exc:
                self.logger.warning("Skipping malformed entry in %s: %s", self.storage_key, exc)
                continue
            if request.id in seen:
                self.logger.warning("Skipping duplicate id %s in %s", request.id, self.storage_key)
                continue
            seen.add(request.id)
            self._items.append(request)

        self._sort()
        self.logger.debug("Loaded %d persisted requests from %s", len(self._items), self.storage_key)

    async def _persist(self) -> None:
        """Write the full snapshot. The in-memory state is never rolled back."""
        if not self.persistence_enabled:
            return
        try:
            payload = json.dumps([r.to_json() for r in self._items])
            await self.store.set(self.storage_key, payload)
        except Exception as exc:
            self.logger.error("Failed to persist %s: %s", self.storage_key, exc)
            raise PersistenceError(f"Failed to persist {self.storage_key}: {exc}") from exc

    async def _dispose_snapshot(self) -> None:
        try:
            if self._state == QueueState.READY:
                await self._persist()
        finally:
            self._items.clear()
            self._state = QueueState.DISPOSED
