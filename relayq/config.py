"""Dataclass-based queue configuration.

The queue, the retry policy, the dead-letter store and the processor all
read from a single frozen QueueConfig. Presets cover the common trade-offs
and ``from_env`` applies deployment overrides.
"""

import os
from dataclasses import dataclass, replace
from datetime import timedelta
from enum import Enum


class DelayStrategy(str, Enum):
    """Named backoff strategies."""

    EXPONENTIAL = "exponential"
    LINEAR = "linear"
    FIXED = "fixed"
    EXPONENTIAL_WITH_JITTER = "exponential_with_jitter"


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def strategy_delay(strategy: DelayStrategy, retry_count: int) -> timedelta:
    """Base delay for a strategy, before jitter and the max-delay cap."""
    if strategy == DelayStrategy.LINEAR:
        return timedelta(seconds=_clamp(5 * retry_count, 5, 30))
    if strategy == DelayStrategy.FIXED:
        return timedelta(seconds=10)
    base = timedelta(seconds=_clamp(2 * retry_count, 1, 60))
    if strategy == DelayStrategy.EXPONENTIAL_WITH_JITTER:
        return base + base * 0.1
    return base


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class QueueConfig:
    """Complete configuration for a relay queue.

    Usage::

        config = QueueConfig.reliability_optimized()
        queue = DurableOrderedQueue(store, config)
    """

    # Driver
    check_interval: timedelta = timedelta(seconds=5)
    auto_retry: bool = True

    # Main queue
    max_queue_size: int = 100
    persist_queue: bool = True
    max_request_age: timedelta = timedelta(hours=24)
    enable_logging: bool = False

    # Backoff
    delay_strategy: DelayStrategy = DelayStrategy.EXPONENTIAL
    max_retry_delay: timedelta = timedelta(minutes=5)
    retry_jitter: bool = True

    # Dead letters
    dead_letter_enabled: bool = False
    max_dead_letter_size: int = 50

    # Retry decisions
    retryable_status_codes: tuple[int, ...] = (408, 429, 500, 502, 503, 504)
    retry_on_network_errors: bool = True
    retry_on_server_errors: bool = True
    retry_on_client_errors: bool = False

    def __post_init__(self):
        if self.max_queue_size <= 0:
            raise ValueError("max_queue_size must be positive")
        if self.max_dead_letter_size <= 0:
            raise ValueError("max_dead_letter_size must be positive")
        if self.check_interval.total_seconds() <= 0:
            raise ValueError("check_interval must be positive")

    def should_retry_on_status_code(self, status_code: int) -> bool:
        """Allow-list first, then the 5xx / 4xx switches."""
        if status_code in self.retryable_status_codes:
            return True
        if 500 <= status_code < 600:
            return self.retry_on_server_errors
        if 400 <= status_code < 500:
            return self.retry_on_client_errors
        return False

    def replace(self, **changes) -> "QueueConfig":
        """Return a copy with the given fields changed."""
        return replace(self, **changes)

    # --- Presets ---

    @classmethod
    def default(cls) -> "QueueConfig":
        return cls()

    @classmethod
    def battery_optimized(cls) -> "QueueConfig":
        """Infrequent checks, a small queue and short retention."""
        return cls(
            check_interval=timedelta(seconds=30),
            max_queue_size=50,
            max_request_age=timedelta(hours=6),
            max_retry_delay=timedelta(minutes=2),
        )

    @classmethod
    def real_time(cls) -> "QueueConfig":
        return cls(
            check_interval=timedelta(seconds=1),
            max_queue_size=200,
            enable_logging=True,
            max_retry_delay=timedelta(minutes=1),
            retry_jitter=False,
        )

    @classmethod
    def reliability_optimized(cls) -> "QueueConfig":
        """Aggressive retries with dead-letter capture."""
        return cls(
            check_interval=timedelta(seconds=2),
            max_queue_size=300,
            max_retry_delay=timedelta(minutes=10),
            retry_jitter=True,
            dead_letter_enabled=True,
            max_dead_letter_size=100,
            retry_on_client_errors=True,
        )

    @classmethod
    def from_env(cls, prefix: str = "RELAYQ_") -> "QueueConfig":
        """Create config from environment variables.

        Example: RELAYQ_MAX_QUEUE_SIZE=500 RELAYQ_DEAD_LETTER_ENABLED=true
        """
        overrides = {}

        for name in ("max_queue_size", "max_dead_letter_size"):
            value = os.getenv(f"{prefix}{name.upper()}")
            if value:
                overrides[name] = int(value)

        for name in (
            "auto_retry",
            "persist_queue",
            "enable_logging",
            "retry_jitter",
            "dead_letter_enabled",
            "retry_on_network_errors",
            "retry_on_server_errors",
            "retry_on_client_errors",
        ):
            value = os.getenv(f"{prefix}{name.upper()}")
            if value:
                overrides[name] = value.lower() in ("1", "true", "yes", "on")

        # Durations are given in seconds
        for name in ("check_interval", "max_request_age", "max_retry_delay"):
            value = os.getenv(f"{prefix}{name.upper()}")
            if value:
                overrides[name] = timedelta(seconds=float(value))

        strategy = os.getenv(f"{prefix}DELAY_STRATEGY")
        if strategy:
            overrides["delay_strategy"] = DelayStrategy(strategy.lower())

        codes = os.getenv(f"{prefix}RETRYABLE_STATUS_CODES")
        if codes:
            overrides["retryable_status_codes"] = tuple(
                int(c) for c in codes.split(",") if c.strip()
            )

        return cls(**overrides)
