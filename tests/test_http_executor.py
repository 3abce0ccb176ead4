"""Test the httpx-backed executor."""
import httpx
import pytest

from relayq.execution.http_executor import HttpExecutor
from relayq.models.request import Request


def make_executor(handler) -> HttpExecutor:
    return HttpExecutor(httpx.AsyncClient(transport=httpx.MockTransport(handler)))


@pytest.mark.asyncio
async def test_sends_request_as_queued():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = request.content
        return httpx.Response(201, json={"ok": True})

    executor = make_executor(handler)
    result = await executor.execute(Request(
        id="r1",
        method="POST",
        url="https://api.example.com/orders",
        headers={"Authorization": "Bearer token"},
        body='{"qty": 2}',
    ))
    assert result.success
    assert result.status_code == 201
    assert seen == {
        "method": "POST",
        "url": "https://api.example.com/orders",
        "auth": "Bearer token",
        "body": b'{"qty": 2}',
    }


@pytest.mark.asyncio
async def test_non_2xx_is_failure_with_status():
    executor = make_executor(lambda request: httpx.Response(503, text="maintenance"))
    result = await executor.execute(Request(id="r1", url="https://api.example.com/x"))
    assert not result.success
    assert result.status_code == 503
    assert result.error == "HTTP 503: maintenance"


@pytest.mark.asyncio
async def test_connect_error_has_no_status():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    result = await make_executor(handler).execute(Request(id="r1", url="https://api.example.com/x"))
    assert not result.success
    assert result.status_code is None
    assert result.error.startswith("Connection error")


@pytest.mark.asyncio
async def test_timeout_reported_as_timeout():
    def handler(request):
        raise httpx.ReadTimeout("too slow", request=request)

    result = await make_executor(handler).execute(Request(id="r1", url="https://api.example.com/x"))
    assert not result.success
    assert result.error.startswith("Request timeout")


@pytest.mark.asyncio
async def test_aclose_leaves_shared_client_open():
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    executor = HttpExecutor(client)
    await executor.aclose()
    assert not client.is_closed
    await client.aclose()

    owned = HttpExecutor()
    await owned.aclose()
    assert owned._client.is_closed
