"""Runtime settings loader."""

from __future__ import annotations

from pathlib import Path
from typing import Any, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from otpradar.core.errors import SettingsError
from otpradar.utils.env import get_str_env


DEFAULT_LOOKBACK_MINUTES = 10


class IMessageSettings(BaseModel):
    enabled: bool = False
    database_path: Path = Field(default=Path("~/Library/Messages/chat.db"))

    @field_validator("database_path")
    @classmethod
    def _expand(cls, value: Path) -> Path:
        return value.expanduser()


class GmailSettings(BaseModel):
    enabled: bool = False
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    access_token: Optional[str] = None  # falls back to OTPRADAR_GMAIL_TOKEN

    def resolved_token(self) -> Optional[str]:
        return self.access_token or get_str_env("OTPRADAR_GMAIL_TOKEN")


class ICloudSettings(BaseModel):
    enabled: bool = False
    email: Optional[str] = None
    app_password: Optional[str] = None
    host: str = "imap.mail.me.com"
    port: int = 993
    folder: str = "INBOX"


class OutlookSettings(BaseModel):
    enabled: bool = False
    client_id: Optional[str] = None
    access_token: Optional[str] = None  # falls back to OTPRADAR_OUTLOOK_TOKEN

    def resolved_token(self) -> Optional[str]:
        return self.access_token or get_str_env("OTPRADAR_OUTLOOK_TOKEN")


class DetectionSettings(BaseModel):
    """Extra phrases and regexes layered on top of the built-in rules."""

    extra_indicators: List[str] = Field(default_factory=list)
    extra_exclusions: List[str] = Field(default_factory=list)


class RuntimeSettings(BaseModel):
    lookback_minutes: int = DEFAULT_LOOKBACK_MINUTES
    background_refresh_interval: int = Field(default=5, ge=0)  # minutes, 0 disables
    fetch_timeout_seconds: float = Field(default=15.0, gt=0)
    tick_seconds: float = Field(default=60.0, gt=0)
    cache_path: Path = Field(default=Path("otp_cache.json"))
    lock_backend: Literal["memory", "redis"] = "memory"
    redis_url: Optional[str] = None
    imessage: IMessageSettings = Field(default_factory=IMessageSettings)
    gmail: GmailSettings = Field(default_factory=GmailSettings)
    icloud: ICloudSettings = Field(default_factory=ICloudSettings)
    outlook: OutlookSettings = Field(default_factory=OutlookSettings)
    detection: DetectionSettings = Field(default_factory=DetectionSettings)

    @field_validator("lookback_minutes", mode="before")
    @classmethod
    def _lookback_or_default(cls, value: Any) -> int:
        try:
            minutes = int(value)
        except (TypeError, ValueError):
            return DEFAULT_LOOKBACK_MINUTES
        return minutes if minutes > 0 else DEFAULT_LOOKBACK_MINUTES

    @classmethod
    def from_file(cls, path: Path) -> "RuntimeSettings":
        try:
            data = yaml.safe_load(path.read_text()) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise SettingsError(f"Unable to read runtime settings from {path}: {exc}") from exc
        try:
            settings = cls.model_validate(data)
        except ValidationError as exc:
            raise SettingsError(f"Invalid runtime settings: {exc}") from exc
        if not settings.cache_path.is_absolute():
            settings.cache_path = (path.parent / settings.cache_path).resolve()
        return settings
