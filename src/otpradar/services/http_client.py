"""HTTP client wrapper shared by the REST-backed providers."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

import httpx
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential, wait_random

from otpradar.core.errors import SourceFetchError


RETRY_ATTEMPTS = 3


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return isinstance(exc, httpx.TransportError)


class HttpClient:
    """Lazily created ``httpx.AsyncClient`` bound to one provider API."""

    def __init__(
        self,
        base_url: str,
        *,
        source: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.source = source
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._lock = asyncio.Lock()

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._lock:
            if self._client is None or self._client.is_closed:
                self._client = httpx.AsyncClient(
                    base_url=self.base_url,
                    timeout=self.timeout,
                    follow_redirects=True,
                    transport=self._transport,
                )
            return self._client

    async def request(
        self,
        method: str,
        path: str,
        *,
        token: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Send an authenticated request and return the decoded JSON body.

        Transport failures, 429 and 5xx responses are retried a few times;
        whatever still fails raises :class:`SourceFetchError`. Empty bodies
        decode to ``{}``.
        """
        headers = {"Authorization": f"Bearer {token}"}
        try:
            response = await self._send(method, path, headers=headers, params=params, json=json)
        except httpx.HTTPStatusError as exc:
            raise SourceFetchError(
                self.source, f"API error {exc.response.status_code}: {exc.response.text[:200]}"
            ) from exc
        except httpx.RequestError as exc:
            raise SourceFetchError(self.source, f"request failed: {exc}") from exc

        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as exc:
            raise SourceFetchError(self.source, "response was not JSON") from exc
        return data if isinstance(data, dict) else {"value": data}

    @retry(
        retry=retry_if_exception(_is_transient),
        stop=stop_after_attempt(RETRY_ATTEMPTS),
        wait=wait_exponential(multiplier=0.2, max=2.0) + wait_random(0, 0.2),
        reraise=True,
    )
    async def _send(
        self,
        method: str,
        path: str,
        *,
        headers: Dict[str, str],
        params: Optional[Dict[str, Any]],
        json: Optional[Dict[str, Any]],
    ) -> httpx.Response:
        client = await self._ensure_client()
        response = await client.request(method, path, headers=headers, params=params, json=json)
        response.raise_for_status()
        return response

    async def get_json(self, path: str, *, token: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self.request("GET", path, token=token, params=params)

    async def aclose(self) -> None:
        async with self._lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None
