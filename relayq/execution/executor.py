"""
relayq Executors — the thing that actually performs a request.

The processor only sees an ExecutionResult. Executors may also raise; the
processor treats any exception as a failed attempt.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable

from relayq.models.request import Request


@dataclass
class ExecutionResult:
    """Outcome of a single execution attempt."""
    success: bool
    status_code: int | None = None
    error: str | None = None
    latency_ms: float = 0.0

    @classmethod
    def ok(cls, status_code: int | None = None, latency_ms: float = 0.0) -> "ExecutionResult":
        return cls(success=True, status_code=status_code, latency_ms=latency_ms)

    @classmethod
    def failed(
        cls,
        error: str,
        status_code: int | None = None,
        latency_ms: float = 0.0,
    ) -> "ExecutionResult":
        return cls(success=False, status_code=status_code, error=error, latency_ms=latency_ms)


@runtime_checkable
class Executor(Protocol):
    async def execute(self, request: Request) -> ExecutionResult: ...
