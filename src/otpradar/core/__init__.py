"""Core runtime primitives for otpradar."""

from .errors import OtpRadarError, SettingsError, SourceFetchError
from .models import (
    OTPEntry,
    OTPSource,
    OtpMatch,
    RefreshOutcome,
    RefreshStatus,
    SkipReason,
)

__all__ = [
    "OtpRadarError",
    "SettingsError",
    "SourceFetchError",
    "OTPEntry",
    "OTPSource",
    "OtpMatch",
    "RefreshOutcome",
    "RefreshStatus",
    "SkipReason",
]
