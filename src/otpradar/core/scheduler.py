"""Decides when a background refresh runs and persists its result."""

from __future__ import annotations

import datetime as dt
from typing import List, Optional, Sequence

from otpradar.core.aggregator import DEFAULT_SOURCE_TIMEOUT, SourceOutcome, collect, merge_outcomes
from otpradar.core.locks import LocalLockManager, LockManager
from otpradar.core.models import OTPEntry, RefreshOutcome, SkipReason
from otpradar.data.cache_store import RefreshCache
from otpradar.services.audit_logger import AuditLogger
from otpradar.sources.base import AuthorizedSource, CapabilitySource
from otpradar.utils.logging import get_logger


REFRESH_LOCK_KEY = "otp-refresh"


def _aware(value: dt.datetime) -> dt.datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=dt.timezone.utc)


class RefreshScheduler:
    """Throttled, single-flight aggregation passes over a shared cache.

    ``maybe_refresh`` is the background pass: it honours the throttle
    interval (0 disables it) and skips entirely while an enabled and
    configured provider is missing its authorization. ``refresh_now`` is the
    foreground pass and ignores both gates. Both skip with ``in_flight`` when
    another pass holds the refresh lock.
    """

    def __init__(
        self,
        sources: Sequence[CapabilitySource],
        cache: RefreshCache,
        *,
        interval_minutes: int,
        lookback_minutes: int,
        fetch_timeout: float = DEFAULT_SOURCE_TIMEOUT,
        lock_manager: Optional[LockManager] = None,
        audit_logger: Optional[AuditLogger] = None,
    ) -> None:
        self.sources = list(sources)
        self.cache = cache
        self.interval_minutes = interval_minutes
        self.lookback_minutes = lookback_minutes
        self.fetch_timeout = fetch_timeout
        self._locks = lock_manager or LocalLockManager()
        self._audit = audit_logger
        self.logger = get_logger(self.__class__.__name__)
        self.last_outcomes: List[SourceOutcome] = []

    @property
    def enabled(self) -> bool:
        return self.interval_minutes > 0

    def _lock_ttl_ms(self) -> int:
        return int((self.fetch_timeout + 30) * 1000)

    async def maybe_refresh(self, now: Optional[dt.datetime] = None) -> RefreshOutcome:
        now = _aware(now or dt.datetime.now(dt.timezone.utc))
        if not self.enabled:
            return RefreshOutcome.skipped(SkipReason.DISABLED)

        async with self._locks.lock(REFRESH_LOCK_KEY, ttl_ms=self._lock_ttl_ms()) as acquired:
            if not acquired:
                self.logger.info("Another refresh is in flight; skipping background pass")
                return RefreshOutcome.skipped(SkipReason.IN_FLIGHT)

            last = await self.cache.last_refresh()
            if last is not None and now - last < dt.timedelta(minutes=self.interval_minutes):
                self.logger.debug("Last refresh at %s is within %d minutes", last, self.interval_minutes)
                return RefreshOutcome.skipped(SkipReason.THROTTLED)

            missing = await self._unauthorized_sources()
            if missing:
                self.logger.warning("Skipping refresh; authorization missing for %s", ", ".join(missing))
                await self._record("refresh_skipped", {"reason": SkipReason.UNAUTHORIZED.value, "sources": missing})
                return RefreshOutcome.skipped(SkipReason.UNAUTHORIZED)

            entries = await self._run(kind="background")
            try:
                await self.cache.mark_refreshed(now)
            except OSError as exc:
                self.logger.error("Could not persist the refresh time: %s", exc)
            return RefreshOutcome.ran(entries)

    async def refresh_now(self) -> RefreshOutcome:
        """Aggregate immediately and replace the cached result.

        The last-refresh instant is left alone so the background cadence is
        not pushed back by foreground refreshes.
        """
        async with self._locks.lock(REFRESH_LOCK_KEY, ttl_ms=self._lock_ttl_ms()) as acquired:
            if not acquired:
                self.logger.info("Another refresh is in flight; skipping foreground pass")
                return RefreshOutcome.skipped(SkipReason.IN_FLIGHT)
            entries = await self._run(kind="foreground")
            return RefreshOutcome.ran(entries)

    async def cached_entries(self) -> List[OTPEntry]:
        return await self.cache.load_entries()

    async def _run(self, *, kind: str) -> List[OTPEntry]:
        outcomes = await collect(self.sources, self.lookback_minutes, timeout=self.fetch_timeout)
        entries = merge_outcomes(outcomes)
        try:
            await self.cache.save_entries(entries)
        except OSError as exc:
            # the pass still answers with what it found
            self.logger.error("Could not persist %d code(s): %s", len(entries), exc)
        self.last_outcomes = outcomes

        failed = [outcome.source.value for outcome in outcomes if not outcome.ok]
        self.logger.info(
            "%s refresh found %d code(s) across %d source(s)%s",
            kind.capitalize(),
            len(entries),
            len(outcomes),
            f"; failed: {', '.join(failed)}" if failed else "",
        )
        await self._record(
            "refresh_ran",
            {
                "kind": kind,
                "entries": len(entries),
                "sources": {
                    outcome.source.value: ("ok" if outcome.ok else outcome.error) for outcome in outcomes
                },
            },
        )
        return entries

    async def _unauthorized_sources(self) -> List[str]:
        missing: List[str] = []
        for source in self.sources:
            if not isinstance(source, AuthorizedSource):
                continue
            if not (source.is_enabled() and source.is_configured()):
                continue
            try:
                authorized = await source.is_authorized()
            except Exception as exc:
                self.logger.warning("Authorization check for %s failed: %s", source.name.value, exc)
                authorized = False
            if not authorized:
                missing.append(source.name.value)
        return missing

    async def _record(self, event: str, payload: dict) -> None:
        if not self._audit:
            return
        try:
            await self._audit.log(event=event, payload=payload)
        except Exception:
            self.logger.debug("Failed to persist audit log", exc_info=True)
