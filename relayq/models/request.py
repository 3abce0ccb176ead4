"""
relayq Request — a deferred operation waiting for delivery.

Requests are immutable. Every retry or failure annotation produces a new
copy so the queue stays the single owner of ordering.
"""
from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field, JsonValue, field_validator
from typing import Any, Optional
from datetime import datetime, timedelta, timezone
import json


DEFAULT_RETRYABLE_ERROR_TYPES = frozenset({"timeout", "network_error", "server_error"})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Request(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    method: str = "GET"
    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    body: Optional[str] = None
    metadata: Optional[dict[str, JsonValue]] = None

    priority: int = 0
    created_at: datetime = Field(default_factory=utcnow)

    retry_count: int = Field(0, ge=0)
    max_retries: int = Field(3, ge=0)
    last_retry_time: Optional[datetime] = None
    retry_delay: Optional[timedelta] = None
    failure_reason: Optional[str] = None
    last_status_code: Optional[int] = None
    retryable_error_types: frozenset[str] = DEFAULT_RETRYABLE_ERROR_TYPES
    retry_on_specific_errors: bool = False

    @field_validator("created_at", "last_retry_time")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        return _as_aware(value)

    # --- Derived ---

    @property
    def can_retry(self) -> bool:
        return self.retry_count < self.max_retries

    @property
    def sort_key(self) -> tuple[int, datetime]:
        """Ascending sort on this key gives priority desc, created_at asc."""
        return (-self.priority, self.created_at)

    def age(self, now: datetime | None = None) -> timedelta:
        return (now or utcnow()) - self.created_at

    def should_retry_on_error(self, error_type: str) -> bool:
        if not self.retry_on_specific_errors:
            return True
        return error_type in self.retryable_error_types

    # --- Copies ---

    def with_incremented_retry(
        self,
        failure_reason: str | None = None,
        status_code: int | None = None,
        retry_delay: timedelta | None = None,
        now: datetime | None = None,
    ) -> "Request":
        return self.model_copy(update={
            "retry_count": self.retry_count + 1,
            "last_retry_time": now or utcnow(),
            "failure_reason": failure_reason,
            "last_status_code": status_code,
            "retry_delay": retry_delay,
        })

    def with_failure_info(
        self,
        failure_reason: str | None = None,
        status_code: int | None = None,
    ) -> "Request":
        return self.model_copy(update={
            "failure_reason": failure_reason if failure_reason is not None else self.failure_reason,
            "last_status_code": status_code if status_code is not None else self.last_status_code,
        })

    def reset_for_resubmit(self) -> "Request":
        """Fresh retry budget, used when a dead letter is replayed."""
        return self.model_copy(update={
            "retry_count": 0,
            "last_retry_time": None,
            "retry_delay": None,
            "failure_reason": None,
            "last_status_code": None,
        })

    # --- Snapshot wire format ---

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "method": self.method,
            "url": self.url,
            "headers": dict(self.headers),
            "body": self.body,
            "createdAt": self.created_at.isoformat(),
            "retryCount": self.retry_count,
            "maxRetries": self.max_retries,
            "priority": self.priority,
            "metadata": self.metadata,
            "lastRetryTime": self.last_retry_time.isoformat() if self.last_retry_time else None,
            "retryDelay": (
                self.retry_delay // timedelta(milliseconds=1)
                if self.retry_delay is not None else None
            ),
            "failureReason": self.failure_reason,
            "lastFailureStatusCode": self.last_status_code,
            "retryableErrorTypes": sorted(self.retryable_error_types),
            "retryOnSpecificErrors": self.retry_on_specific_errors,
        }

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "Request":
        """Build a Request from its snapshot form.

        Raises ValueError (pydantic's ValidationError included), KeyError or
        TypeError for malformed entries.
        """
        if not isinstance(data, dict):
            raise TypeError(f"Expected an object, got {type(data).__name__}")

        retry_delay = data.get("retryDelay")
        error_types = data.get("retryableErrorTypes")
        fields: dict[str, Any] = {
            "id": data["id"],
            "method": data["method"],
            "url": data["url"],
            "headers": data.get("headers") or {},
            "body": data.get("body"),
            "created_at": data["createdAt"],
            "retry_count": data.get("retryCount") or 0,
            "max_retries": data["maxRetries"] if data.get("maxRetries") is not None else 3,
            "priority": data.get("priority") or 0,
            "metadata": data.get("metadata"),
            "last_retry_time": data.get("lastRetryTime"),
            "retry_delay": timedelta(milliseconds=retry_delay) if retry_delay is not None else None,
            "failure_reason": data.get("failureReason"),
            "last_status_code": data.get("lastFailureStatusCode"),
            "retry_on_specific_errors": bool(data.get("retryOnSpecificErrors", False)),
        }
        if error_types is not None:
            fields["retryable_error_types"] = frozenset(error_types)
        return cls.model_validate(fields)

    def to_json_string(self) -> str:
        return json.dumps(self.to_json())

    @classmethod
    def from_json_string(cls, raw: str) -> "Request":
        return cls.from_json(json.loads(raw))

    def __str__(self) -> str:
        return (
            f"Request(id={self.id}, method={self.method}, url={self.url}, "
            f"retry_count={self.retry_count}, failure_reason={self.failure_reason})"
        )
