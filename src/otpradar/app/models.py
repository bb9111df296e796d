from __future__ import annotations

import datetime as dt
from typing import List, Optional

from pydantic import BaseModel

from otpradar.core.models import OTPEntry


class AppState(BaseModel):
    background_enabled: bool
    background_running: bool
    last_refresh: Optional[dt.datetime] = None
    cached: int


class RefreshResponse(BaseModel):
    status: str
    reason: Optional[str] = None
    entries: List[OTPEntry]


class ActionResponse(BaseModel):
    ok: bool
