"""Assemble the runtime components from settings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from otpradar.core.actions import MessageActionService
from otpradar.core.locks import LocalLockManager, LockManager
from otpradar.core.runtime import RefreshRuntime
from otpradar.core.scheduler import RefreshScheduler
from otpradar.core.settings import RuntimeSettings
from otpradar.data.cache_store import JsonFileStore, KeyValueStore, RefreshCache
from otpradar.services.audit_logger import AuditLogger
from otpradar.services.otp_reader import DEFAULT_RULES, OtpReader
from otpradar.sources import CapabilitySource, build_sources


@dataclass(slots=True)
class Components:
    settings: RuntimeSettings
    reader: OtpReader
    sources: List[CapabilitySource]
    cache: RefreshCache
    scheduler: RefreshScheduler
    actions: MessageActionService
    runtime: RefreshRuntime
    locks: LockManager


def build_lock_manager(settings: RuntimeSettings) -> LockManager:
    if settings.lock_backend == "redis":
        from otpradar.core.locks_redis import RedisLockManager  # lazy import

        return RedisLockManager(settings.redis_url)
    return LocalLockManager()


def build_reader(settings: RuntimeSettings) -> OtpReader:
    rules = DEFAULT_RULES.extended(
        indicators=settings.detection.extra_indicators,
        exclusions=settings.detection.extra_exclusions,
    )
    return OtpReader(rules)


def build_components(
    settings: RuntimeSettings,
    *,
    store: Optional[KeyValueStore] = None,
    sources: Optional[List[CapabilitySource]] = None,
    audit_logger: Optional[AuditLogger] = None,
) -> Components:
    reader = build_reader(settings)
    sources = sources if sources is not None else build_sources(settings, reader=reader)
    cache = RefreshCache(store if store is not None else JsonFileStore(settings.cache_path))
    audit_logger = audit_logger or AuditLogger()
    locks = build_lock_manager(settings)
    scheduler = RefreshScheduler(
        sources,
        cache,
        interval_minutes=settings.background_refresh_interval,
        lookback_minutes=settings.lookback_minutes,
        fetch_timeout=settings.fetch_timeout_seconds + 5,
        lock_manager=locks,
        audit_logger=audit_logger,
    )
    actions = MessageActionService(sources, cache, audit_logger=audit_logger)
    runtime = RefreshRuntime(scheduler, tick_seconds=settings.tick_seconds)
    return Components(
        settings=settings,
        reader=reader,
        sources=sources,
        cache=cache,
        scheduler=scheduler,
        actions=actions,
        runtime=runtime,
        locks=locks,
    )


async def close_components(components: Components) -> None:
    """Release HTTP clients held by the REST-backed providers and the lock backend."""
    for source in components.sources:
        http = getattr(source, "http", None)
        if http is not None:
            await http.aclose()
    close = getattr(components.locks, "close", None)
    if close is not None:
        await close()
