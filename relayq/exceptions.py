"""
relayq Errors — Distinguishable Failure Outcomes.

Every error raised by the queue, the dead-letter store and the executors
derives from RelayQueueError so callers can catch the whole family.
Soft "not found" outcomes are never raised; they come back as bool / None.
"""
from __future__ import annotations
from typing import Any


class RelayQueueError(Exception):
    """Base class for all relayq errors."""

    error_code: str = "RELAYQ_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.error_code, "detail": self.message}


class NotInitializedError(RelayQueueError):
    """Raised when a queue is used before initialize() or after dispose()."""

    error_code = "NOT_INITIALIZED"

    def __init__(self, component: str = "Queue"):
        self.component = component
        super().__init__(f"{component} not initialized. Call initialize() first.")


class CapacityExceededError(RelayQueueError):
    """Raised by enqueue on a full main queue."""

    error_code = "CAPACITY_EXCEEDED"

    def __init__(self, max_size: int):
        self.max_size = max_size
        super().__init__(f"Queue is full (max size: {max_size})")


class DuplicateIdError(RelayQueueError):
    """Raised by enqueue when the request id is already queued."""

    error_code = "DUPLICATE_ID"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Request with ID {request_id} already exists in queue")


class PersistenceError(RelayQueueError):
    """A snapshot write failed. The in-memory change has already been applied."""

    error_code = "PERSISTENCE_FAILURE"


class ExecutionError(RelayQueueError):
    """Failure reported by an executor, optionally with a status code."""

    error_code = "EXECUTION_FAILED"

    def __init__(self, request_id: str, message: str, status_code: int | None = None):
        self.request_id = request_id
        self.status_code = status_code
        super().__init__(message)

    def __str__(self) -> str:
        return f"{self.message} (Request ID: {self.request_id})"

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "request_id": self.request_id,
            "status_code": self.status_code,
        }
