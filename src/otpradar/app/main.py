"""FastAPI application exposing the OTP cache and refresh controls.

Serve with ``uvicorn --factory otpradar.app.main:app_from_env`` and point
``OTPRADAR_CONFIG`` at a YAML settings file.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, List, Optional

from fastapi import FastAPI, HTTPException

from otpradar.app.models import ActionResponse, AppState, RefreshResponse
from otpradar.app.wiring import Components, build_components, close_components
from otpradar.core.errors import SourceFetchError
from otpradar.core.models import OTPEntry, RefreshOutcome
from otpradar.core.settings import RuntimeSettings
from otpradar.utils.env import get_str_env
from otpradar.utils.logging import get_logger


logger = get_logger("OtpApi")


def _refresh_response(outcome: RefreshOutcome, cached: List[OTPEntry]) -> RefreshResponse:
    return RefreshResponse(
        status=outcome.status.value,
        reason=outcome.reason.value if outcome.reason else None,
        entries=outcome.entries if outcome.did_run else cached,
    )


def create_app(
    settings: RuntimeSettings,
    *,
    components: Optional[Components] = None,
    run_background: bool = True,
) -> FastAPI:
    components = components or build_components(settings)
    scheduler = components.scheduler
    runtime = components.runtime
    actions = components.actions

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        if run_background and scheduler.enabled:
            await runtime.start()
        else:
            logger.info("Background refresh disabled")
        try:
            yield
        finally:
            await runtime.stop()
            await close_components(components)

    app = FastAPI(title="otpradar", lifespan=lifespan)

    @app.get("/health", response_model=AppState)
    async def health() -> AppState:
        return AppState(
            background_enabled=scheduler.enabled,
            background_running=runtime.running,
            last_refresh=await components.cache.last_refresh(),
            cached=len(await scheduler.cached_entries()),
        )

    @app.get("/otps", response_model=List[OTPEntry])
    async def list_otps() -> List[OTPEntry]:
        return await scheduler.cached_entries()

    @app.post("/refresh", response_model=RefreshResponse)
    async def refresh(background: bool = False) -> RefreshResponse:
        if background:
            outcome = await scheduler.maybe_refresh()
        else:
            outcome = await scheduler.refresh_now()
        cached = [] if outcome.did_run else await scheduler.cached_entries()
        return _refresh_response(outcome, cached)

    async def _lookup(entry_id: str) -> OTPEntry:
        entry = await actions.find(entry_id)
        if entry is None:
            raise HTTPException(status_code=404, detail=f"Unknown OTP entry {entry_id}")
        return entry

    @app.post("/otps/{entry_id}/read", response_model=ActionResponse)
    async def mark_read(entry_id: str) -> ActionResponse:
        entry = await _lookup(entry_id)
        try:
            ok = await actions.mark_as_read(entry)
        except SourceFetchError as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return ActionResponse(ok=ok)

    @app.delete("/otps/{entry_id}", response_model=ActionResponse)
    async def delete(entry_id: str) -> ActionResponse:
        entry = await _lookup(entry_id)
        try:
            ok = await actions.delete_message(entry)
        except SourceFetchError as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return ActionResponse(ok=ok)

    return app


def app_from_env() -> FastAPI:
    config_path = Path(get_str_env("OTPRADAR_CONFIG", default="config/otpradar.example.yml"))
    return create_app(RuntimeSettings.from_file(config_path))
