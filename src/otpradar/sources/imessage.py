"""iMessage/SMS provider reading the local Messages database.

Reading ``chat.db`` requires Full Disk Access for the running process. Until
it is granted every fetch simply comes back empty.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import sqlite3
from pathlib import Path
from typing import List, Optional, Tuple

from otpradar.core.errors import SourceFetchError
from otpradar.core.models import OTPEntry, OTPSource
from otpradar.services.otp_reader import OtpReader
from otpradar.sources.common import cutoff_for, effective_lookback, excerpt
from otpradar.utils.logging import get_logger


# Messages stores dates as nanoseconds since 2001-01-01 UTC.
APPLE_EPOCH = dt.datetime(2001, 1, 1, tzinfo=dt.timezone.utc)
MESSAGE_LIMIT = 100

_QUERY = """
SELECT
    m.ROWID,
    m.text,
    m.date,
    COALESCE(h.id, c.chat_identifier) AS sender
FROM message m
LEFT JOIN handle h ON m.handle_id = h.ROWID
LEFT JOIN chat_message_join cmj ON m.ROWID = cmj.message_id
LEFT JOIN chat c ON cmj.chat_id = c.ROWID
WHERE m.date > ?
  AND m.text IS NOT NULL
  AND m.is_from_me = 0
ORDER BY m.date DESC
LIMIT ?
"""

Row = Tuple[int, str, int, Optional[str]]


def to_apple_time(value: dt.datetime) -> int:
    return int((value - APPLE_EPOCH).total_seconds() * 1_000_000_000)


def from_apple_time(value: float) -> dt.datetime:
    return APPLE_EPOCH + dt.timedelta(seconds=value / 1_000_000_000)


class IMessageSource:
    name = OTPSource.IMESSAGE

    def __init__(
        self,
        database_path: Path,
        *,
        enabled: bool = True,
        reader: Optional[OtpReader] = None,
        timeout: float = 5.0,
    ) -> None:
        self.database_path = Path(database_path)
        self.enabled = enabled
        self.reader = reader or OtpReader()
        self.timeout = timeout
        self.logger = get_logger(self.__class__.__name__)

    def is_enabled(self) -> bool:
        return self.enabled

    def is_configured(self) -> bool:
        return self.database_path.exists()

    async def fetch_otps(self, lookback_minutes: Optional[int]) -> List[OTPEntry]:
        if not self.is_enabled() or not self.is_configured():
            return []
        cutoff = cutoff_for(effective_lookback(lookback_minutes))
        try:
            rows = await asyncio.wait_for(
                asyncio.to_thread(self._query, to_apple_time(cutoff)),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            self.logger.warning("Messages database query timed out after %.1fs", self.timeout)
            return []
        except SourceFetchError as exc:
            # Expected until Full Disk Access is granted.
            self.logger.debug("Messages database unavailable: %s", exc)
            return []
        except Exception:
            self.logger.exception("Unexpected error while reading the Messages database")
            return []
        return self._to_entries(rows)

    def _query(self, cutoff_apple: int) -> List[Row]:
        uri = f"{self.database_path.resolve().as_uri()}?mode=ro"
        try:
            conn = sqlite3.connect(uri, uri=True, timeout=self.timeout)
        except sqlite3.Error as exc:
            raise SourceFetchError(self.name.value, f"cannot open database: {exc}") from exc
        try:
            return conn.execute(_QUERY, (cutoff_apple, MESSAGE_LIMIT)).fetchall()
        except sqlite3.Error as exc:
            raise SourceFetchError(self.name.value, f"query failed: {exc}") from exc
        finally:
            conn.close()

    def _to_entries(self, rows: List[Row]) -> List[OTPEntry]:
        entries: List[OTPEntry] = []
        for rowid, text, date, sender in rows:
            if not text:
                continue
            match = self.reader.extract(text)
            if not match:
                continue
            entries.append(
                OTPEntry.from_match(
                    match,
                    source=self.name,
                    message_id=str(rowid),
                    sender=sender,
                    timestamp=from_apple_time(float(date)),
                    raw_message=excerpt(text),
                )
            )
        return entries

