"""Capability interfaces every message provider satisfies.

Providers are independent classes; they share helpers, not a base class.
"""

from __future__ import annotations

from typing import List, Optional, Protocol, runtime_checkable

from otpradar.core.models import OTPEntry, OTPSource


@runtime_checkable
class CapabilitySource(Protocol):
    """A message provider that can be searched for OTPs.

    ``fetch_otps`` never raises: disabled or unconfigured sources and
    internal failures yield an empty list, and the call is bounded by the
    source's own timeout.
    """

    name: OTPSource

    def is_enabled(self) -> bool:
        ...

    def is_configured(self) -> bool:
        ...

    async def fetch_otps(self, lookback_minutes: Optional[int]) -> List[OTPEntry]:
        ...


@runtime_checkable
class MessageActions(Protocol):
    """Optional capability: act on the message an entry came from."""

    async def mark_as_read(self, entry: OTPEntry) -> None:
        ...

    async def delete_message(self, entry: OTPEntry) -> None:
        ...


@runtime_checkable
class AuthorizedSource(Protocol):
    """Optional capability: the provider needs an external authorization."""

    async def is_authorized(self) -> bool:
        ...


class TokenProvider(Protocol):
    async def get_access_token(self) -> Optional[str]:
        ...


class StaticTokenProvider:
    """Serves a token obtained elsewhere (settings, environment, an OAuth helper)."""

    def __init__(self, token: Optional[str]) -> None:
        self._token = token or None

    async def get_access_token(self) -> Optional[str]:
        return self._token
