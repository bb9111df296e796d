"""Background task driving the refresh scheduler on a fixed tick."""

from __future__ import annotations

import asyncio
from typing import Optional

from otpradar.core.models import RefreshOutcome
from otpradar.core.scheduler import RefreshScheduler
from otpradar.utils.logging import get_logger


class RefreshRuntime:
    """Ticks ``maybe_refresh`` until stopped; the scheduler decides whether work happens."""

    def __init__(self, scheduler: RefreshScheduler, *, tick_seconds: float = 60.0) -> None:
        self.scheduler = scheduler
        self.tick_seconds = tick_seconds
        self.logger = get_logger(self.__class__.__name__)
        self.last_outcome: Optional[RefreshOutcome] = None
        self._task: Optional[asyncio.Task[None]] = None
        self._stop_event = asyncio.Event()
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        async with self._lock:
            if self.running:
                return
            self.logger.info("Starting background refresh every %.0fs", self.tick_seconds)
            self._stop_event.clear()
            self._task = asyncio.create_task(self._run(), name="otpradar-refresh")

    async def stop(self) -> None:
        async with self._lock:
            if not self._task:
                return
            self.logger.info("Stopping background refresh")
            self._stop_event.set()
            await self._task
            self._task = None

    async def tick(self) -> RefreshOutcome:
        outcome = await self.scheduler.maybe_refresh()
        self.last_outcome = outcome
        return outcome

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.tick()
            except Exception as exc:
                self.logger.exception("Background refresh failed: %s", exc)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.tick_seconds)
            except asyncio.TimeoutError:
                continue

    async def run_forever(self) -> None:
        """Convenience helper for long-running processes."""
        await self.start()
        self.logger.info("Runtime is now running. Press Ctrl+C to exit.")
        try:
            while self.running:
                await asyncio.sleep(3600)
        finally:
            await self.stop()
