from __future__ import annotations

import asyncio

import pytest

from conftest import StubSource, make_entry
from otpradar.core.models import OTPSource, SkipReason
from otpradar.core.runtime import RefreshRuntime
from otpradar.core.scheduler import RefreshScheduler
from otpradar.data.cache_store import MemoryStore, RefreshCache


def _runtime(source, *, interval=5, tick=0.01):
    scheduler = RefreshScheduler(
        [source],
        RefreshCache(MemoryStore()),
        interval_minutes=interval,
        lookback_minutes=10,
        fetch_timeout=1.0,
    )
    return RefreshRuntime(scheduler, tick_seconds=tick)


@pytest.mark.asyncio
async def test_runtime_runs_once_then_throttles():
    source = StubSource(OTPSource.GMAIL, [make_entry(OTPSource.GMAIL, "a")])
    runtime = _runtime(source)

    await runtime.start()
    await asyncio.sleep(0.05)
    await runtime.stop()

    assert len(source.calls) == 1
    assert runtime.last_outcome.reason is SkipReason.THROTTLED
    assert runtime.running is False


@pytest.mark.asyncio
async def test_start_is_idempotent_and_stop_without_start_is_safe():
    runtime = _runtime(StubSource(OTPSource.GMAIL), interval=0)
    await runtime.stop()

    await runtime.start()
    await runtime.start()
    assert runtime.running
    await asyncio.sleep(0.02)
    await runtime.stop()

    assert runtime.last_outcome.reason is SkipReason.DISABLED


@pytest.mark.asyncio
async def test_tick_survives_scheduler_errors(monkeypatch):
    runtime = _runtime(StubSource(OTPSource.GMAIL))
    calls = []

    async def broken(now=None):
        calls.append(now)
        raise RuntimeError("cache unavailable")

    monkeypatch.setattr(runtime.scheduler, "maybe_refresh", broken)

    await runtime.start()
    await asyncio.sleep(0.05)
    await runtime.stop()

    assert len(calls) >= 2
