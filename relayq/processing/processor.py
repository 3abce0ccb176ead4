"""
relayq Queue Processor — drives delivery of queued requests.

The queue does no background work on its own. The processor:
- Runs processing passes on a periodic tick, on reconnect, or on demand
- Rejects overlapping passes so no request is dispatched twice
- Executes ready requests one at a time and stops early when offline
- Routes every failure through the queue's retry / dead-letter path
- Submits new requests directly when online, queueing them otherwise
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional
import asyncio
import logging

from relayq.config import QueueConfig
from relayq.exceptions import (
    CapacityExceededError,
    DuplicateIdError,
    ExecutionError,
    NotInitializedError,
    RelayQueueError,
)
from relayq.execution.executor import ExecutionResult, Executor
from relayq.models.request import Request
from relayq.observability import end_span, start_execution_span
from relayq.resilience.queue import DurableOrderedQueue, FailureOutcome

logger = logging.getLogger(__name__)

EXPIRED_REASON = "Request expired before delivery"


@dataclass
class PassResult:
    """What a single processing pass did."""
    started: bool = True
    skipped_reason: str | None = None
    attempted: int = 0
    succeeded: int = 0
    retried: int = 0
    dead_lettered: int = 0
    dropped: int = 0
    expired: int = 0
    errors: int = 0
    stopped_offline: bool = False
    started_at: datetime | None = None
    finished_at: datetime | None = None
    failed_ids: list[str] = field(default_factory=list)

    @classmethod
    def skipped(cls, reason: str) -> "PassResult":
        return cls(started=False, skipped_reason=reason)

    def record(self, outcome: FailureOutcome) -> None:
        if outcome == FailureOutcome.RETRY_SCHEDULED:
            self.retried += 1
        elif outcome == FailureOutcome.DEAD_LETTERED:
            self.dead_lettered += 1
        else:
            self.dropped += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "started": self.started,
            "skippedReason": self.skipped_reason,
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "retried": self.retried,
            "deadLettered": self.dead_lettered,
            "dropped": self.dropped,
            "expired": self.expired,
            "errors": self.errors,
            "stoppedOffline": self.stopped_offline,
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
        }


class QueueProcessor:
    """Execution driver for a DurableOrderedQueue.

    Usage::

        processor = QueueProcessor(queue, HttpExecutor(), online=False)
        async with processor:
            await processor.submit(Request(id="r1", method="POST", url=url))
            await processor.set_online(True)   # triggers a pass
    """

    def __init__(
        self,
        queue: DurableOrderedQueue,
        executor: Executor,
        config: QueueConfig | None = None,
        online: bool = True,
        tracer=None,
    ):
        self.queue = queue
        self.executor = executor
        self.config = config or queue.config
        self.tracer = tracer

        self._online = online
        self._running = False
        self._stopping = False
        self._processing = False
        self._idle = asyncio.Event()
        self._idle.set()
        self._stop_event = asyncio.Event()
        self._tick_task: Optional[asyncio.Task] = None
        self.last_pass: PassResult | None = None

    # --- State ---

    @property
    def is_online(self) -> bool:
        return self._online

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_processing(self) -> bool:
        return self._processing

    # --- Lifecycle ---

    async def start(self) -> None:
        if self._running:
            logger.warning("Processor is already running")
            return

        await self.queue.initialize()
        self._running = True
        self._stopping = False
        self._stop_event.clear()
        self._tick_task = asyncio.create_task(self._tick_loop())
        logger.info("Processor started (online=%s)", self._online)

    async def stop(self) -> None:
        """Stop ticking, let the in-flight pass finish, then dispose the queue."""
        if not self._running:
            return

        self._stopping = True
        self._stop_event.set()
        if self._tick_task is not None:
            await self._tick_task
            self._tick_task = None
        await self._idle.wait()

        self._running = False
        await self.queue.dispose()
        logger.info("Processor stopped")

    async def __aenter__(self) -> "QueueProcessor":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def _tick_loop(self) -> None:
        interval = self.config.check_interval.total_seconds()
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                try:
                    await self._tick()
                except Exception:
                    logger.exception("Scheduled processing pass failed")

    async def _tick(self) -> None:
        if not (self._online and self.config.auto_retry):
            return
        if self.queue.is_empty:
            return
        await self.process()

    # --- Connectivity ---

    async def set_online(self, online: bool) -> PassResult | None:
        """Feed the online signal. Coming back online triggers a pass."""
        was_online = self._online
        self._online = online
        if was_online == online:
            return None

        logger.info("Connectivity changed: %s", "online" if online else "offline")
        if online and self.config.auto_retry and self._running and not self._stopping:
            return await self.process()
        return None

    # --- Submission ---

    async def submit(self, request: Request) -> bool:
        """Deliver now when possible, otherwise queue for later.

        Returns True when the request was delivered immediately.
        """
        if not self._running:
            raise NotInitializedError("Processor")

        if self._online and self.config.auto_retry:
            try:
                result = await self.executor.execute(request)
            except Exception as exc:
                logger.warning("Immediate execution of %s raised, queueing: %s", request.id, exc)
            else:
                if result.success:
                    logger.debug("Request %s delivered immediately", request.id)
                    return True
                logger.info(
                    "Immediate execution of %s failed, queueing: %s", request.id, result.error
                )

        await self.queue.enqueue(request)
        logger.debug("Request queued: %s", request.id)
        return False

    async def replay_dead_letter(self, request_id: str) -> bool:
        """Release a dead letter and resubmit it with a fresh retry budget."""
        store = self.queue.dead_letter_store
        if store is None:
            return False

        entry = store.get(request_id)
        if entry is None:
            return False

        # Check before releasing so a rejected resubmit does not lose the entry
        if self.queue.get(request_id) is not None:
            raise DuplicateIdError(request_id)
        if self.queue.size >= self.queue.max_size:
            raise CapacityExceededError(self.queue.max_size)

        await store.retry(request_id)
        await self.queue.enqueue(entry.reset_for_resubmit())
        logger.info("Dead letter %s resubmitted to the queue", request_id)
        return True

    # --- Processing ---

    async def process(self) -> PassResult:
        """Run one processing pass.

        Order within a pass: escalate entries that can no longer retry or
        have aged out, drop the remaining expired ones, then execute the
        ready requests in queue order.
        """
        if not self._online:
            logger.debug("Cannot process queue while offline")
            return PassResult.skipped("offline")
        if self._processing:
            logger.debug("Queue processing already in progress, skipping")
            return PassResult.skipped("already_processing")

        # No await between the check above and this assignment
        self._processing = True
        self._idle.clear()
        result = PassResult(started_at=self.queue.now())
        try:
            await self._sweep(result)

            ready = self.queue.get_ready_for_retry()
            if ready:
                logger.info("Processing %d requests ready for retry", len(ready))

            for request in ready:
                if not self._online:
                    logger.info("Went offline during processing, stopping")
                    result.stopped_offline = True
                    break
                if self._stopping:
                    break
                try:
                    await self._attempt(request, result)
                except RelayQueueError:
                    result.errors += 1
                    logger.exception("Queue update failed for request %s", request.id)
        finally:
            result.finished_at = self.queue.now()
            self.last_pass = result
            self._processing = False
            self._idle.set()

        logger.info(
            "Finished processing pass: %d attempted, %d succeeded, %d retried, "
            "%d dead-lettered, %d dropped, %d expired",
            result.attempted,
            result.succeeded,
            result.retried,
            result.dead_lettered,
            result.dropped,
            result.expired,
        )
        return result

    async def _sweep(self, result: PassResult) -> None:
        now = self.queue.now()
        max_age = self.config.max_request_age

        for request in self.queue.get_all():
            expired = request.age(now) > max_age
            if request.can_retry and not expired:
                continue
            if self.queue.policy.should_escalate(request, now):
                error = EXPIRED_REASON if request.can_retry else None
                result.record(await self.queue.escalate(request, error))
            elif not request.can_retry:
                result.record(await self.queue.escalate(request))

        result.expired = await self.queue.cleanup_expired(now, max_age)

    async def _attempt(self, request: Request, result: PassResult) -> None:
        result.attempted += 1
        logger.debug(
            "Processing request %s (retries: %d/%d)",
            request.id,
            request.retry_count,
            request.max_retries,
        )
        span = start_execution_span(self.tracer, request.id, request.method, request.retry_count)

        status_code: int | None = None
        try:
            outcome = await self.executor.execute(request)
        except Exception as exc:
            error: Any = exc
            status_code = getattr(exc, "status_code", None)
            logger.warning("Executor raised for request %s: %s", request.id, exc)
        else:
            if outcome.success:
                await self.queue.remove(request.id)
                result.succeeded += 1
                end_span(span, "success")
                logger.info("Successfully executed queued request %s", request.id)
                return
            status_code = outcome.status_code
            error = self._as_error(request, outcome)
            logger.warning("Failed to execute queued request %s: %s", request.id, outcome.error)

        result.failed_ids.append(request.id)
        failure = await self.queue.handle_failed_request(request, error, status_code)
        result.record(failure)
        end_span(span, failure.value)

    @staticmethod
    def _as_error(request: Request, outcome: ExecutionResult) -> Any:
        # Without a status code the description is all classification has
        if outcome.status_code is None:
            return outcome.error or "Execution failed"
        return ExecutionError(
            request.id,
            outcome.error or "Execution failed",
            outcome.status_code,
        )

    # --- Monitoring ---

    def statistics(self) -> dict[str, Any]:
        """Queue and dead-letter statistics plus the processor's own state."""
        stats = self.queue.statistics().to_dict()
        stats.update({
            "isOnline": self._online,
            "isRunning": self._running,
            "isProcessing": self._processing,
            "lastPass": self.last_pass.to_dict() if self.last_pass else None,
        })
        return stats
