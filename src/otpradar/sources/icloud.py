"""iCloud Mail provider reading the inbox over IMAP."""

from __future__ import annotations

import asyncio
import datetime as dt
import imaplib
from contextlib import contextmanager
from email import message_from_bytes, policy
from email.utils import parseaddr, parsedate_to_datetime
from typing import Iterator, List, Optional, Tuple

from otpradar.core.errors import SourceFetchError
from otpradar.core.models import OTPEntry, OTPSource
from otpradar.services.otp_reader import OtpReader
from otpradar.sources.common import cutoff_for, effective_lookback, excerpt, strip_html
from otpradar.utils.logging import get_logger


ICLOUD_IMAP_HOST = "imap.mail.me.com"
ICLOUD_IMAP_PORT = 993
FETCH_LIMIT = 50


def parse_message(raw: bytes) -> Tuple[str, str, str, Optional[dt.datetime]]:
    """Split a raw RFC 822 message into ``(subject, sender, text, date)``."""
    message = message_from_bytes(raw, policy=policy.default)
    subject = str(message.get("Subject") or "")
    name, address = parseaddr(str(message.get("From") or ""))
    sender = address or name or "Unknown"

    text = ""
    plain = message.get_body(preferencelist=("plain",))
    if plain is not None:
        text = plain.get_content()
    else:
        html = message.get_body(preferencelist=("html",))
        if html is not None:
            text = strip_html(html.get_content())

    date: Optional[dt.datetime] = None
    raw_date = message.get("Date")
    if raw_date:
        try:
            date = parsedate_to_datetime(str(raw_date))
        except (TypeError, ValueError):
            date = None
        if date is not None and date.tzinfo is None:
            date = date.replace(tzinfo=dt.timezone.utc)
    return subject, sender, text, date


class ICloudSource:
    """IMAP reader for iCloud Mail using an app-specific password."""

    name = OTPSource.ICLOUD

    def __init__(
        self,
        *,
        email: Optional[str],
        app_password: Optional[str],
        enabled: bool = True,
        host: str = ICLOUD_IMAP_HOST,
        port: int = ICLOUD_IMAP_PORT,
        folder: str = "INBOX",
        reader: Optional[OtpReader] = None,
        timeout: float = 15.0,
    ) -> None:
        self.email = email
        self.app_password = app_password
        self.enabled = enabled
        self.host = host
        self.port = port
        self.folder = folder
        self.reader = reader or OtpReader()
        self.timeout = timeout
        self.logger = get_logger(self.__class__.__name__)

    def is_enabled(self) -> bool:
        return self.enabled

    def is_configured(self) -> bool:
        return bool(self.email) and bool(self.app_password)

    @contextmanager
    def _client(self) -> Iterator[imaplib.IMAP4]:
        try:
            client = imaplib.IMAP4_SSL(self.host, self.port, timeout=self.timeout)
            client.login(self.email or "", self.app_password or "")
        except (imaplib.IMAP4.error, OSError) as exc:
            raise SourceFetchError(self.name.value, f"IMAP login failed: {exc}") from exc
        try:
            status, _ = client.select(self.folder)
            if status != "OK":
                raise SourceFetchError(self.name.value, f"unable to select folder {self.folder}")
            yield client
        finally:
            try:
                client.logout()
            except (imaplib.IMAP4.error, OSError):
                self.logger.debug("IMAP logout failed", exc_info=True)

    async def fetch_otps(self, lookback_minutes: Optional[int]) -> List[OTPEntry]:
        if not self.is_enabled() or not self.is_configured():
            return []
        cutoff = cutoff_for(effective_lookback(lookback_minutes))
        try:
            return await asyncio.wait_for(asyncio.to_thread(self._fetch_sync, cutoff), timeout=self.timeout)
        except asyncio.TimeoutError:
            self.logger.warning("iCloud fetch timed out after %.1fs", self.timeout)
        except SourceFetchError as exc:
            self.logger.warning("Failed to fetch iCloud messages: %s", exc)
        except Exception:
            self.logger.exception("Unexpected error while reading iCloud Mail")
        return []

    def _fetch_sync(self, cutoff: dt.datetime) -> List[OTPEntry]:
        entries: List[OTPEntry] = []
        with self._client() as client:
            since = cutoff.strftime("%d-%b-%Y")
            try:
                status, data = client.uid("SEARCH", None, "SINCE", since)
            except imaplib.IMAP4.error as exc:
                raise SourceFetchError(self.name.value, f"search failed: {exc}") from exc
            if status != "OK" or not data or not data[0]:
                return []

            uids = data[0].split()[-FETCH_LIMIT:]
            for uid in uids:
                status, message_data = client.uid("FETCH", uid, "(RFC822)")
                if status != "OK" or not message_data or not isinstance(message_data[0], tuple):
                    continue
                entry = self._to_entry(uid.decode("ascii"), message_data[0][1], cutoff)
                if entry:
                    entries.append(entry)
        return entries

    def _to_entry(self, uid: str, raw: bytes, cutoff: dt.datetime) -> Optional[OTPEntry]:
        try:
            subject, sender, text, date = parse_message(raw)
        except (ValueError, LookupError) as exc:
            self.logger.debug("Failed to parse iCloud message %s: %s", uid, exc)
            return None
        # IMAP SINCE only has day granularity
        if date is not None and date < cutoff:
            return None
        match = self.reader.extract(f"{subject} {text}")
        if not match:
            return None
        return OTPEntry.from_match(
            match,
            source=self.name,
            message_id=uid,
            sender=sender,
            subject=subject or None,
            timestamp=date or dt.datetime.now(dt.timezone.utc),
            raw_message=excerpt(text),
        )

    def _store_flags(self, uid: str, flags: str, *, expunge: bool = False) -> None:
        with self._client() as client:
            try:
                status, _ = client.uid("STORE", uid, "+FLAGS", flags)
                if status == "OK" and expunge:
                    client.expunge()
            except imaplib.IMAP4.error as exc:
                raise SourceFetchError(self.name.value, f"unable to set {flags} on {uid}: {exc}") from exc
            if status != "OK":
                raise SourceFetchError(self.name.value, f"unable to set {flags} on {uid}")

    async def mark_as_read(self, entry: OTPEntry) -> None:
        if not entry.message_id or not self.is_configured():
            return
        await asyncio.to_thread(self._store_flags, entry.message_id, "(\\Seen)")

    async def delete_message(self, entry: OTPEntry) -> None:
        if not entry.message_id or not self.is_configured():
            return
        await asyncio.to_thread(self._store_flags, entry.message_id, "(\\Deleted)", expunge=True)
