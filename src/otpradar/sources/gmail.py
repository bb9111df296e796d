"""Gmail provider backed by the Gmail REST API.

Access tokens come from a :class:`TokenProvider`; obtaining and refreshing
them is the job of whatever OAuth helper wrote them.
"""

from __future__ import annotations

import asyncio
import base64
import datetime as dt
from typing import Any, Dict, List, Optional

from otpradar.core.errors import SourceFetchError
from otpradar.core.models import OTPEntry, OTPSource
from otpradar.services.http_client import HttpClient
from otpradar.services.otp_reader import OtpReader
from otpradar.sources.base import TokenProvider
from otpradar.sources.common import cutoff_for, effective_lookback, excerpt, strip_html
from otpradar.utils.logging import get_logger


GMAIL_API_BASE = "https://gmail.googleapis.com/gmail/v1"
LIST_LIMIT = 50
DETAIL_LIMIT = 20


def decode_base64url(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8", errors="replace")


def extract_message_body(payload: Dict[str, Any]) -> str:
    """Return the plain-text body of a Gmail payload, falling back to stripped HTML."""
    body = (payload.get("body") or {}).get("data")
    if body:
        return decode_base64url(body)

    parts = payload.get("parts") or []
    for part in parts:
        data = (part.get("body") or {}).get("data")
        if part.get("mimeType") == "text/plain" and data:
            return decode_base64url(data)
        for subpart in part.get("parts") or []:
            sub_data = (subpart.get("body") or {}).get("data")
            if subpart.get("mimeType") == "text/plain" and sub_data:
                return decode_base64url(sub_data)
    for part in parts:
        data = (part.get("body") or {}).get("data")
        if part.get("mimeType") == "text/html" and data:
            return strip_html(decode_base64url(data))
    return ""


def _header(message: Dict[str, Any], name: str) -> Optional[str]:
    for header in (message.get("payload") or {}).get("headers") or []:
        if str(header.get("name", "")).lower() == name:
            return header.get("value")
    return None


class GmailSource:
    name = OTPSource.GMAIL

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
        self.http = http or HttpClient(GMAIL_API_BASE, source=self.name.value, timeout=timeout)
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
            self.logger.warning("Gmail fetch timed out after %.1fs", self.timeout)
        except SourceFetchError as exc:
            self.logger.warning("Failed to fetch Gmail messages: %s", exc)
        except Exception:
            self.logger.exception("Unexpected error while reading Gmail")
        return []

    async def _fetch(self, token: str, lookback_minutes: int) -> List[OTPEntry]:
        after = int(cutoff_for(lookback_minutes).timestamp())
        listing = await self.http.get_json(
            "/users/me/messages",
            token=token,
            params={"q": f"after:{after} in:inbox", "maxResults": LIST_LIMIT},
        )
        stubs = listing.get("messages") or []
        if not stubs:
            return []

        results = await asyncio.gather(
            *(self._get_message(token, stub["id"]) for stub in stubs[:DETAIL_LIMIT]),
            return_exceptions=True,
        )
        entries: List[OTPEntry] = []
        for result in results:
            if isinstance(result, SourceFetchError):
                self.logger.debug("Skipping unreadable Gmail message: %s", result)
                continue
            if isinstance(result, BaseException):
                raise result
            entry = self._to_entry(result)
            if entry:
                entries.append(entry)
        return entries

    async def _get_message(self, token: str, message_id: str) -> Dict[str, Any]:
        return await self.http.get_json(f"/users/me/messages/{message_id}", token=token, params={"format": "full"})

    def _to_entry(self, message: Dict[str, Any]) -> Optional[OTPEntry]:
        snippet = message.get("snippet") or ""
        body = extract_message_body(message.get("payload") or {})
        match = self.reader.extract(f"{snippet} {body}")
        if not match:
            return None
        timestamp = dt.datetime.fromtimestamp(int(message.get("internalDate") or 0) / 1000, tz=dt.timezone.utc)
        return OTPEntry.from_match(
            match,
            source=self.name,
            message_id=str(message["id"]),
            sender=_header(message, "from"),
            subject=_header(message, "subject"),
            timestamp=timestamp,
            raw_message=excerpt(snippet),
        )

    async def mark_as_read(self, entry: OTPEntry) -> None:
        if not entry.message_id:
            return
        token = await self.tokens.get_access_token()
        if not token:
            return
        await self.http.request(
            "POST",
            f"/users/me/messages/{entry.message_id}/modify",
            token=token,
            json={"removeLabelIds": ["UNREAD"]},
        )

    async def delete_message(self, entry: OTPEntry) -> None:
        """Move the message to the trash rather than deleting it permanently."""
        if not entry.message_id:
            return
        token = await self.tokens.get_access_token()
        if not token:
            return
        await self.http.request("POST", f"/users/me/messages/{entry.message_id}/trash", token=token)
