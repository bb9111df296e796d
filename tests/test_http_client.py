from __future__ import annotations

import importlib
import warnings

import httpx
import pytest

from otpradar.core.errors import SourceFetchError
from otpradar.services import http_client
from otpradar.services.http_client import RETRY_ATTEMPTS, HttpClient


def _client(handler):
    return HttpClient("https://api.example.test/v1", source="gmail", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_transient_failures_are_retried():
    statuses = iter([503, 429, 200])
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        status = next(statuses)
        return httpx.Response(status, json={"ok": status == 200})

    http = _client(handler)
    assert await http.get_json("/items", token="t") == {"ok": True}
    await http.aclose()
    assert calls == ["/v1/items"] * 3


@pytest.mark.asyncio
async def test_client_errors_are_not_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(403, text="forbidden")

    http = _client(handler)
    with pytest.raises(SourceFetchError) as excinfo:
        await http.get_json("/items", token="t")
    await http.aclose()

    assert len(calls) == 1
    assert excinfo.value.source == "gmail"
    assert "403" in str(excinfo.value)


@pytest.mark.asyncio
async def test_persistent_outage_raises_after_retries():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    http = _client(handler)
    with pytest.raises(SourceFetchError, match="request failed"):
        await http.get_json("/items", token="t")
    await http.aclose()
    assert len(calls) == RETRY_ATTEMPTS


@pytest.mark.asyncio
async def test_body_shapes():
    bodies = iter([httpx.Response(204), httpx.Response(200, json=[1, 2]), httpx.Response(200, text="<html>")])
    http = _client(lambda request: next(bodies))

    assert await http.request("POST", "/a", token="t") == {}
    assert await http.get_json("/b", token="t") == {"value": [1, 2]}
    with pytest.raises(SourceFetchError, match="not JSON"):
        await http.get_json("/c", token="t")
    await http.aclose()


def test_retry_policy_uses_no_deprecated_arguments():
    with warnings.catch_warnings():
        warnings.simplefilter("error", DeprecationWarning)
        importlib.reload(http_client)
