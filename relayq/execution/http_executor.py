"""
relayq HTTP Executor — deliver queued requests with httpx.

Sends each Request as-is (method, url, headers, body) and reports:
- 2xx as success
- Any other status as a failure carrying that status code
- Transport errors (timeouts, refused connections) as failures without one
"""
from __future__ import annotations
import time

import httpx

from relayq.execution.executor import ExecutionResult
from relayq.models.request import Request


class HttpExecutor:
    """Executor backed by a shared httpx.AsyncClient."""

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = 30.0):
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None
        self.timeout = timeout

    async def execute(self, request: Request) -> ExecutionResult:
        start = time.time()
        try:
            resp = await self._client.request(
                method=request.method,
                url=request.url,
                headers=request.headers,
                content=request.body.encode("utf-8") if request.body is not None else None,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as exc:
            return ExecutionResult.failed(
                f"Request timeout: {str(exc) or type(exc).__name__}",
                latency_ms=(time.time() - start) * 1000,
            )
        except httpx.ConnectError as exc:
            return ExecutionResult.failed(
                f"Connection error: {str(exc) or type(exc).__name__}",
                latency_ms=(time.time() - start) * 1000,
            )
        except httpx.TransportError as exc:
            return ExecutionResult.failed(
                f"Network error: {str(exc) or type(exc).__name__}",
                latency_ms=(time.time() - start) * 1000,
            )

        latency = (time.time() - start) * 1000
        if 200 <= resp.status_code < 300:
            return ExecutionResult.ok(status_code=resp.status_code, latency_ms=latency)
        return ExecutionResult.failed(
            f"HTTP {resp.status_code}: {resp.text[:200]}",
            status_code=resp.status_code,
            latency_ms=latency,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
