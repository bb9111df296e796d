"""Outlook / Microsoft 365 provider backed by Microsoft Graph."""

from __future__ import annotations

import asyncio
import datetime as dt
import re
from typing import Any, Dict, List, Optional

from otpradar.core.errors import SourceFetchError
from otpradar.core.models import OTPEntry, OTPSource
from otpradar.services.http_client import HttpClient
from otpradar.services.otp_reader import OtpReader
from otpradar.sources.base import TokenProvider
from otpradar.sources.common import cutoff_for, effective_lookback, excerpt, strip_html
from otpradar.utils.logging import get_logger


GRAPH_API_BASE = "https://graph.microsoft.com/v1.0"
PAGE_SIZE = 50
_SELECT = "id,receivedDateTime,subject,bodyPreview,from,body"
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def _parse_graph_time(value: str) -> dt.datetime:
    # Graph returns "2024-05-01T10:11:12Z", sometimes with 7 fractional digits.
    value = _FRACTION_RE.sub(r"\1", value.replace("Z", "+00:00"))
    parsed = dt.datetime.fromisoformat(value)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=dt.timezone.utc)


def _sender(message: Dict[str, Any]) -> Optional[str]:
    address = ((message.get("from") or {}).get("emailAddress")) or {}
    return address.get("address") or address.get("name")


class OutlookSource:
    name = OTPSource.OUTLOOK

    def __init__(
        self,
        *,
        client_id: Optional[str],
        tokens: TokenProvider,
        enabled: bool = True,
        http: Optional[HttpClient] = None,
        reader: Optional[OtpReader] = None,
        timeout: float = 15.0,
    ) -> None:
        self.client_id = client_id
        self.tokens = tokens
        self.enabled = enabled
        self.http = http or HttpClient(GRAPH_API_BASE, source=self.name.value, timeout=timeout)
        self.reader = reader or OtpReader()
        self.timeout = timeout
        self.logger = get_logger(self.__class__.__name__)

    def is_enabled(self) -> bool:
        return self.enabled

    def is_configured(self) -> bool:
        return bool(self.client_id)

    async def is_authorized(self) -> bool:
        return await self.tokens.get_access_token() is not None

    async def fetch_otps(self, lookback_minutes: Optional[int]) -> List[OTPEntry]:
        if not self.is_enabled() or not self.is_configured():
            return []
        token = await self.tokens.get_access_token()
        if not token:
            return []
        try:
            return await asyncio.wait_for(
                self._fetch(token, effective_lookback(lookback_minutes)), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            self.logger.warning("Outlook fetch timed out after %.1fs", self.timeout)
        except SourceFetchError as exc:
            self.logger.warning("Failed to fetch Outlook messages: %s", exc)
        except Exception:
            self.logger.exception("Unexpected error while reading Outlook")
        return []

    async def _fetch(self, token: str, lookback_minutes: int) -> List[OTPEntry]:
        since = cutoff_for(lookback_minutes).strftime("%Y-%m-%dT%H:%M:%SZ")
        data = await self.http.get_json(
            "/me/messages",
            token=token,
            params={
                "$filter": f"receivedDateTime ge {since}",
                "$select": _SELECT,
                "$top": PAGE_SIZE,
                "$orderby": "receivedDateTime desc",
            },
        )
        entries: List[OTPEntry] = []
        for message in data.get("value") or []:
            entry = self._to_entry(message)
            if entry:
                entries.append(entry)
        return entries

    def _to_entry(self, message: Dict[str, Any]) -> Optional[OTPEntry]:
        preview = message.get("bodyPreview") or ""
        body = message.get("body") or {}
        content = body.get("content") or ""
        if str(body.get("contentType", "")).lower() == "html":
            text = strip_html(content)
        else:
            text = content or preview
        subject = message.get("subject") or ""

        match = self.reader.extract(f"{subject} {text}")
        if not match:
            return None
        return OTPEntry.from_match(
            match,
            source=self.name,
            message_id=str(message["id"]),
            sender=_sender(message),
            subject=subject or None,
            timestamp=_parse_graph_time(message["receivedDateTime"]),
            raw_message=excerpt(preview),
        )

    async def mark_as_read(self, entry: OTPEntry) -> None:
        if not entry.message_id:
            return
        token = await self.tokens.get_access_token()
        if not token:
            return
        await self.http.request("PATCH", f"/me/messages/{entry.message_id}", token=token, json={"isRead": True})

    async def delete_message(self, entry: OTPEntry) -> None:
        """Move the message to Deleted Items."""
        if not entry.message_id:
            return
        token = await self.tokens.get_access_token()
        if not token:
            return
        await self.http.request(
            "POST",
            f"/me/messages/{entry.message_id}/move",
            token=token,
            json={"destinationId": "deleteditems"},
        )
