from __future__ import annotations

import asyncio
import datetime as dt
from typing import List, Optional

import pytest

from otpradar.core.models import OTPEntry, OTPSource


NOW = dt.datetime(2024, 5, 1, 12, 0, 0, tzinfo=dt.timezone.utc)


def make_entry(
    source: OTPSource,
    message_id: str,
    *,
    code: str = "483920",
    minutes_ago: float = 1,
    sender: str = "sender@example.com",
) -> OTPEntry:
    return OTPEntry(
        id=OTPEntry.make_id(source, message_id),
        code=code,
        source=source,
        sender=sender,
        subject="Your code",
        timestamp=NOW - dt.timedelta(minutes=minutes_ago),
        raw_message=f"Your verification code is {code}",
        message_id=message_id,
    )


class StubSource:
    """Source returning canned entries, optionally failing or hanging."""

    def __init__(
        self,
        name: OTPSource,
        entries: Optional[List[OTPEntry]] = None,
        *,
        error: Optional[Exception] = None,
        delay: float = 0.0,
        enabled: bool = True,
        configured: bool = True,
    ) -> None:
        self.name = name
        self.entries = entries or []
        self.error = error
        self.delay = delay
        self.enabled = enabled
        self.configured = configured
        self.calls: List[Optional[int]] = []

    def is_enabled(self) -> bool:
        return self.enabled

    def is_configured(self) -> bool:
        return self.configured

    async def fetch_otps(self, lookback_minutes: Optional[int]) -> List[OTPEntry]:
        self.calls.append(lookback_minutes)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return list(self.entries)


class AuthStubSource(StubSource):
    """Stub that also requires an external authorization."""

    def __init__(self, *args, authorized: bool = True, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.authorized = authorized

    async def is_authorized(self) -> bool:
        return self.authorized


class ActionStubSource(StubSource):
    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.read: List[str] = []
        self.deleted: List[str] = []

    async def mark_as_read(self, entry: OTPEntry) -> None:
        self.read.append(entry.id)

    async def delete_message(self, entry: OTPEntry) -> None:
        self.deleted.append(entry.id)


@pytest.fixture(autouse=True)
def _audit_log_in_tmp(tmp_path, monkeypatch):
    monkeypatch.setenv("OTPRADAR_AUDIT_LOG", str(tmp_path / "audit.log"))
    monkeypatch.setenv("OTPRADAR_RICH_LOGS", "0")
