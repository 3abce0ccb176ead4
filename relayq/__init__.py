"""
relayq — durable, priority-ordered retry queue.

Deferred requests survive restarts and connectivity loss, are delivered in
(priority, age) order, back off between attempts and end up in a bounded
dead-letter store when they run out of retries.
"""
from relayq.config import DelayStrategy, QueueConfig
from relayq.exceptions import (
    CapacityExceededError,
    DuplicateIdError,
    ExecutionError,
    NotInitializedError,
    PersistenceError,
    RelayQueueError,
)
from relayq.execution import ExecutionResult, Executor, HttpExecutor
from relayq.models import Request
from relayq.processing import PassResult, QueueProcessor
from relayq.resilience import (
    DeadLetterStats,
    DeadLetterStore,
    DurableOrderedQueue,
    ErrorType,
    FailureOutcome,
    QueueState,
    QueueStats,
    RetryPolicy,
)
from relayq.storage import InMemoryStore, JsonFileStore, KeyValueStore, SqlKeyValueStore

__version__ = "0.1.0"

__all__ = [
    # Config
    "DelayStrategy",
    "QueueConfig",
    # Errors
    "CapacityExceededError",
    "DuplicateIdError",
    "ExecutionError",
    "NotInitializedError",
    "PersistenceError",
    "RelayQueueError",
    # Model
    "Request",
    # Core
    "DeadLetterStats",
    "DeadLetterStore",
    "DurableOrderedQueue",
    "ErrorType",
    "FailureOutcome",
    "QueueState",
    "QueueStats",
    "RetryPolicy",
    # Driver
    "ExecutionResult",
    "Executor",
    "HttpExecutor",
    "PassResult",
    "QueueProcessor",
    # Storage
    "InMemoryStore",
    "JsonFileStore",
    "KeyValueStore",
    "SqlKeyValueStore",
]
