"""Concurrent fan-out over all message providers."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from otpradar.core.models import OTPEntry, OTPSource
from otpradar.sources.base import CapabilitySource
from otpradar.utils.logging import get_logger


DEFAULT_SOURCE_TIMEOUT = 20.0

logger = get_logger("Aggregator")


@dataclass(slots=True)
class SourceOutcome:
    """What one provider contributed to an aggregation pass."""

    source: OTPSource
    entries: List[OTPEntry] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def _fetch_one(source: CapabilitySource, lookback_minutes: int, timeout: float) -> SourceOutcome:
    try:
        entries = await asyncio.wait_for(source.fetch_otps(lookback_minutes), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Source %s did not answer within %.1fs", source.name.value, timeout)
        return SourceOutcome(source=source.name, error="timeout")
    except Exception as exc:
        logger.warning("Source %s failed: %s", source.name.value, exc, exc_info=True)
        return SourceOutcome(source=source.name, error=f"{type(exc).__name__}: {exc}")
    return SourceOutcome(source=source.name, entries=list(entries or []))


async def collect(
    sources: Sequence[CapabilitySource],
    lookback_minutes: int,
    *,
    timeout: float = DEFAULT_SOURCE_TIMEOUT,
) -> List[SourceOutcome]:
    """Fetch from every source concurrently.

    Outcomes come back in the order of ``sources`` whatever the completion
    order; a failing or hanging source only forfeits its own contribution.
    """
    if not sources:
        return []
    return list(
        await asyncio.gather(*(_fetch_one(source, lookback_minutes, timeout) for source in sources))
    )


def merge_outcomes(outcomes: Iterable[SourceOutcome]) -> List[OTPEntry]:
    """Concatenate successful outcomes, drop duplicate ids, newest first.

    The first occurrence of an id wins and equal timestamps keep source
    order (``sorted`` is stable with ``reverse=True``).
    """
    seen = set()
    merged: List[OTPEntry] = []
    for outcome in outcomes:
        if not outcome.ok:
            continue
        for entry in outcome.entries:
            if entry.id in seen:
                continue
            seen.add(entry.id)
            merged.append(entry)
    return sorted(merged, key=lambda entry: entry.timestamp, reverse=True)


async def aggregate(
    sources: Sequence[CapabilitySource],
    lookback_minutes: int,
    *,
    timeout: float = DEFAULT_SOURCE_TIMEOUT,
) -> List[OTPEntry]:
    """Return the deduplicated, newest-first entries of all sources."""
    outcomes = await collect(sources, lookback_minutes, timeout=timeout)
    return merge_outcomes(outcomes)
