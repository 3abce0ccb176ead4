"""
relayq Resilience — durable delivery primitives.

- DurableOrderedQueue: priority-ordered, persisted queue of pending requests
- RetryPolicy: failure classification, retry decisions and backoff
- DeadLetterStore: bounded store for requests that ran out of retries
"""
from relayq.resilience.dead_letter import DeadLetterStats, DeadLetterStore
from relayq.resilience.queue import DurableOrderedQueue, FailureOutcome, QueueStats
from relayq.resilience.retry_policy import (
    RETRYABLE_NETWORK_ERRORS,
    ErrorType,
    RetryPolicy,
    status_message,
)
from relayq.resilience.snapshot import QueueState

__all__ = [
    # Queue
    "DurableOrderedQueue",
    "FailureOutcome",
    "QueueState",
    "QueueStats",
    # Retry
    "ErrorType",
    "RETRYABLE_NETWORK_ERRORS",
    "RetryPolicy",
    "status_message",
    # Dead letters
    "DeadLetterStats",
    "DeadLetterStore",
]
