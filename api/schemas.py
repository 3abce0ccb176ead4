"""Pydantic schemas for API request/response validation."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, JsonValue

from relayq.models.request import DEFAULT_RETRYABLE_ERROR_TYPES, Request


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class RequestCreate(BaseModel):
    id: str = Field(..., min_length=1, max_length=255)
    method: str = Field("GET", min_length=1, max_length=16)
    url: str = Field(..., min_length=1)
    headers: dict[str, str] = Field(default_factory=dict)
    body: Optional[str] = None
    metadata: Optional[dict[str, JsonValue]] = None
    priority: int = 0
    max_retries: int = Field(3, ge=0)
    retryable_error_types: list[str] = Field(
        default_factory=lambda: sorted(DEFAULT_RETRYABLE_ERROR_TYPES)
    )
    retry_on_specific_errors: bool = False
    created_at: Optional[datetime] = None

    def to_request(self) -> Request:
        data = self.model_dump(exclude_none=True)
        data["method"] = self.method.upper()
        data["retryable_error_types"] = frozenset(self.retryable_error_types)
        return Request(**data)


class OnlineUpdate(BaseModel):
    online: bool


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------

class SubmitResponse(BaseModel):
    id: str
    delivered: bool
    queued: bool
