"""Data models shared across the otpradar runtime."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


RAW_MESSAGE_LIMIT = 200


class OTPSource(str, Enum):
    """Message providers an OTP can come from."""

    IMESSAGE = "imessage"
    GMAIL = "gmail"
    ICLOUD = "icloud"
    OUTLOOK = "outlook"


@dataclass(frozen=True, slots=True)
class OtpMatch:
    """A code found in a block of text and how strongly we believe it."""

    code: str
    confidence: float


class OTPEntry(BaseModel):
    """A verification code located in one provider message."""

    id: str
    code: str = Field(pattern=r"^[0-9]{4,8}$")
    source: OTPSource
    sender: str
    subject: Optional[str] = None
    timestamp: dt.datetime
    raw_message: str = ""
    message_id: Optional[str] = None

    @field_validator("timestamp")
    @classmethod
    def _ensure_aware(cls, value: dt.datetime) -> dt.datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=dt.timezone.utc)
        return value

    @field_validator("raw_message")
    @classmethod
    def _bound_excerpt(cls, value: str) -> str:
        return value[:RAW_MESSAGE_LIMIT]

    @staticmethod
    def make_id(source: OTPSource, message_id: str) -> str:
        return f"{source.value}-{message_id}"

    @classmethod
    def from_match(
        cls,
        match: OtpMatch,
        *,
        source: OTPSource,
        message_id: str,
        sender: Optional[str],
        timestamp: dt.datetime,
        raw_message: str = "",
        subject: Optional[str] = None,
    ) -> "OTPEntry":
        """Build an entry whose id is derived from the provider and native id."""
        return cls(
            id=cls.make_id(source, message_id),
            code=match.code,
            source=source,
            sender=sender or "Unknown",
            subject=subject,
            timestamp=timestamp,
            raw_message=raw_message,
            message_id=message_id,
        )


class RefreshStatus(Enum):
    SKIPPED = "skipped"
    RAN = "ran"


class SkipReason(str, Enum):
    DISABLED = "disabled"
    THROTTLED = "throttled"
    UNAUTHORIZED = "unauthorized"
    IN_FLIGHT = "in_flight"


@dataclass(slots=True)
class RefreshOutcome:
    """Result of one scheduling decision."""

    status: RefreshStatus
    entries: List[OTPEntry] = field(default_factory=list)
    reason: Optional[SkipReason] = None

    @classmethod
    def skipped(cls, reason: SkipReason) -> "RefreshOutcome":
        return cls(status=RefreshStatus.SKIPPED, reason=reason)

    @classmethod
    def ran(cls, entries: List[OTPEntry]) -> "RefreshOutcome":
        return cls(status=RefreshStatus.RAN, entries=list(entries))

    @property
    def did_run(self) -> bool:
        return self.status is RefreshStatus.RAN
