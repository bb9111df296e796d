"""Service helpers used by the providers and the scheduler."""

from .audit_logger import AuditLogger
from .http_client import HttpClient
from .otp_reader import (
    DEFAULT_RULES,
    OtpReader,
    OtpRules,
    contains_otp,
    extract_otp,
    is_valid_otp_code,
)

__all__ = [
    "AuditLogger",
    "HttpClient",
    "DEFAULT_RULES",
    "OtpReader",
    "OtpRules",
    "contains_otp",
    "extract_otp",
    "is_valid_otp_code",
]
