"""Error types raised inside otpradar."""

from __future__ import annotations


class OtpRadarError(Exception):
    """Base class for otpradar errors."""


class SourceFetchError(OtpRadarError):
    """Raised when a provider call fails (network, auth, parsing)."""

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source


class SettingsError(OtpRadarError):
    """Raised when the runtime configuration cannot be loaded."""
