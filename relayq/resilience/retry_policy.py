"""
relayq Retry Policy — Retry, Back Off, or Give Up.

Pure decision component. Given a failed request and what went wrong it:
- Classifies the failure (status code ranges, then message heuristics)
- Decides between another attempt and escalation
- Computes the backoff delay (named strategy, jitter, cap)
- Produces the retry-prepared copy of the request
"""
from __future__ import annotations
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Optional
import random

from relayq.config import QueueConfig, strategy_delay
from relayq.exceptions import ExecutionError
from relayq.models.request import Request, utcnow


class ErrorType(str, Enum):
    SERVER_ERROR = "server_error"
    CLIENT_ERROR = "client_error"
    REDIRECT = "redirect"
    SUCCESS = "success"
    INFORMATIONAL = "informational"
    TIMEOUT = "timeout"
    CONNECTION_ERROR = "connection_error"
    NETWORK_ERROR = "network_error"
    EXECUTION_ERROR = "execution_error"
    UNKNOWN_ERROR = "unknown_error"


RETRYABLE_NETWORK_ERRORS = frozenset({
    ErrorType.TIMEOUT,
    ErrorType.CONNECTION_ERROR,
    ErrorType.NETWORK_ERROR,
    ErrorType.SERVER_ERROR,
    ErrorType.EXECUTION_ERROR,
})

JITTER_FACTOR = 0.1

_STATUS_MESSAGES = {
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    408: "Request Timeout",
    429: "Too Many Requests",
    500: "Internal Server Error",
    502: "Bad Gateway",
    503: "Service Unavailable",
    504: "Gateway Timeout",
}


def status_message(status_code: int) -> str:
    """Human-readable phrase for an HTTP status code."""
    if status_code in _STATUS_MESSAGES:
        return _STATUS_MESSAGES[status_code]
    if status_code >= 500:
        return "Server Error"
    if status_code >= 400:
        return "Client Error"
    if status_code >= 300:
        return "Redirect"
    if status_code >= 200:
        return "Success"
    return "Unknown Status"


def _classify_status(status_code: int) -> Optional[ErrorType]:
    if status_code >= 500:
        return ErrorType.SERVER_ERROR
    if status_code >= 400:
        return ErrorType.CLIENT_ERROR
    if status_code >= 300:
        return ErrorType.REDIRECT
    if status_code >= 200:
        return ErrorType.SUCCESS
    if status_code >= 100:
        return ErrorType.INFORMATIONAL
    return None


class RetryPolicy:
    """Retry decisions and backoff for one queue configuration."""

    def __init__(
        self,
        config: QueueConfig | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.config = config or QueueConfig()
        self._rng = rng or random.Random()
        self._clock = clock

    # --- Classification ---

    def classify(self, error: Any, status_code: int | None = None) -> ErrorType:
        """Map a raw failure onto an ErrorType."""
        if status_code is not None:
            by_status = _classify_status(status_code)
            if by_status is not None:
                return by_status

        if isinstance(error, ExecutionError):
            if error.status_code is not None:
                by_status = _classify_status(error.status_code)
                if by_status is not None:
                    return by_status
            return ErrorType.EXECUTION_ERROR

        if isinstance(error, TimeoutError):
            return ErrorType.TIMEOUT
        if isinstance(error, ConnectionError):
            return ErrorType.CONNECTION_ERROR

        description = str(error).lower()
        if "timeout" in description or "timed out" in description:
            return ErrorType.TIMEOUT
        if "connection" in description:
            return ErrorType.CONNECTION_ERROR
        if "network" in description:
            return ErrorType.NETWORK_ERROR
        return ErrorType.UNKNOWN_ERROR

    @staticmethod
    def effective_status_code(error: Any, status_code: int | None) -> int | None:
        if status_code is not None:
            return status_code
        if isinstance(error, ExecutionError):
            return error.status_code
        return None

    # --- Decisions ---

    def should_retry(self, request: Request, error: Any, status_code: int | None = None) -> bool:
        """Decide whether a failed request gets another attempt."""
        if not request.can_retry:
            return False

        code = self.effective_status_code(error, status_code)

        # Request-level restriction overrides every config switch
        if request.retry_on_specific_errors:
            return request.should_retry_on_error(self.classify(error, code).value)

        if code is not None:
            return self.config.should_retry_on_status_code(code)

        if self.config.retry_on_network_errors:
            return self.classify(error, code) in RETRYABLE_NETWORK_ERRORS

        return True

    def should_escalate(self, request: Request, now: datetime | None = None) -> bool:
        """True when the request belongs in the dead-letter store."""
        if not self.config.dead_letter_enabled:
            return False
        if not request.can_retry:
            return True
        return request.age(now or self._clock()) > self.config.max_request_age

    # --- Backoff ---

    def base_delay(self, retry_count: int) -> timedelta:
        return strategy_delay(self.config.delay_strategy, retry_count)

    def compute_delay(self, request: Request) -> timedelta:
        delay = self.base_delay(request.retry_count)

        if self.config.retry_jitter:
            delay = self._add_jitter(delay)

        if delay > self.config.max_retry_delay:
            delay = self.config.max_retry_delay
        return max(delay, timedelta(0))

    def _add_jitter(self, delay: timedelta) -> timedelta:
        jitter_ms = int(round(delay.total_seconds() * 1000 * JITTER_FACTOR))
        if jitter_ms <= 0:
            return delay
        offset = self._rng.randint(-jitter_ms, jitter_ms)
        return delay + timedelta(milliseconds=offset)

    # --- Retry preparation ---

    def failure_reason(self, error: Any, status_code: int | None = None) -> str:
        code = self.effective_status_code(error, status_code)
        if code is not None:
            return f"HTTP {code}: {status_message(code)}"
        if isinstance(error, ExecutionError):
            return error.message
        return str(error) or type(error).__name__

    def prepare_for_retry(
        self,
        request: Request,
        error: Any,
        status_code: int | None = None,
    ) -> Request:
        """New copy with the retry counter bumped and the backoff recorded."""
        code = self.effective_status_code(error, status_code)
        return request.with_incremented_retry(
            failure_reason=self.failure_reason(error, code),
            status_code=code,
            retry_delay=self.compute_delay(request),
            now=self._clock(),
        )

    def retry_stats(self, request: Request, now: datetime | None = None) -> dict[str, Any]:
        now = now or self._clock()
        last_retry = request.last_retry_time
        return {
            "retryCount": request.retry_count,
            "maxRetries": request.max_retries,
            "canRetry": request.can_retry,
            "lastRetryTime": last_retry.isoformat() if last_retry else None,
            "timeSinceLastRetry": int((now - last_retry).total_seconds()) if last_retry else None,
            "nextRetryDelay": (
                int(self.compute_delay(request).total_seconds() * 1000)
                if request.can_retry else None
            ),
            "failureReason": request.failure_reason,
            "lastFailureStatusCode": request.last_status_code,
        }
