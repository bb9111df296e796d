"""Helpers shared by the provider implementations."""

from __future__ import annotations

import datetime as dt
import re
from typing import Optional

from otpradar.core.models import RAW_MESSAGE_LIMIT


MIN_LOOKBACK_MINUTES = 10

_TAG_RE = re.compile(r"<[^>]*>")
_SPACE_RE = re.compile(r"\s+")


def effective_lookback(minutes: Optional[int], default: int = MIN_LOOKBACK_MINUTES) -> int:
    """Clamp a missing or non-positive lookback to the provider's default."""
    if minutes is None:
        return default
    try:
        value = int(minutes)
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


def cutoff_for(lookback_minutes: int, now: Optional[dt.datetime] = None) -> dt.datetime:
    now = now or dt.datetime.now(dt.timezone.utc)
    return now - dt.timedelta(minutes=lookback_minutes)


def strip_html(html: str) -> str:
    return _SPACE_RE.sub(" ", _TAG_RE.sub(" ", html))


def excerpt(text: Optional[str], limit: int = RAW_MESSAGE_LIMIT) -> str:
    return (text or "")[:limit]
