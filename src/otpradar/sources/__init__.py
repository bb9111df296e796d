"""Message providers searched for OTPs."""

from __future__ import annotations

from typing import List, Optional

from otpradar.core.settings import RuntimeSettings
from otpradar.services.otp_reader import OtpReader
from otpradar.sources.base import (
    AuthorizedSource,
    CapabilitySource,
    MessageActions,
    StaticTokenProvider,
    TokenProvider,
)
from otpradar.sources.gmail import GmailSource
from otpradar.sources.icloud import ICloudSource
from otpradar.sources.imessage import IMessageSource
from otpradar.sources.outlook import OutlookSource


def build_sources(settings: RuntimeSettings, *, reader: Optional[OtpReader] = None) -> List[CapabilitySource]:
    """Instantiate every provider; disabled ones stay in the list and fetch nothing."""
    reader = reader or OtpReader()
    timeout = settings.fetch_timeout_seconds
    return [
        IMessageSource(
            settings.imessage.database_path,
            enabled=settings.imessage.enabled,
            reader=reader,
            timeout=min(timeout, 5.0),
        ),
        GmailSource(
            client_id=settings.gmail.client_id,
            tokens=StaticTokenProvider(settings.gmail.resolved_token()),
            enabled=settings.gmail.enabled,
            reader=reader,
            timeout=timeout,
        ),
        ICloudSource(
            email=settings.icloud.email,
            app_password=settings.icloud.app_password,
            enabled=settings.icloud.enabled,
            host=settings.icloud.host,
            port=settings.icloud.port,
            folder=settings.icloud.folder,
            reader=reader,
            timeout=timeout,
        ),
        OutlookSource(
            client_id=settings.outlook.client_id,
            tokens=StaticTokenProvider(settings.outlook.resolved_token()),
            enabled=settings.outlook.enabled,
            reader=reader,
            timeout=timeout,
        ),
    ]


__all__ = [
    "AuthorizedSource",
    "CapabilitySource",
    "MessageActions",
    "StaticTokenProvider",
    "TokenProvider",
    "GmailSource",
    "ICloudSource",
    "IMessageSource",
    "OutlookSource",
    "build_sources",
]
