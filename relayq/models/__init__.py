"""relayq data models."""
from relayq.models.request import (
    DEFAULT_RETRYABLE_ERROR_TYPES,
    Request,
    utcnow,
)

__all__ = [
    "DEFAULT_RETRYABLE_ERROR_TYPES",
    "Request",
    "utcnow",
]
