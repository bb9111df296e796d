"""Helpers for extracting one-time passwords from unstructured text.

Detection is rule based. A message is first screened for wording that marks
it as transactional noise (amounts, order numbers, receipts ...) and for
wording that suggests a verification code. Labeled patterns such as
``code: 123456`` are trusted; bare digit runs are only considered when the
message talks about a code.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from typing import Iterable, List, Optional, Pattern, Tuple

from otpradar.core.models import OtpMatch


HIGH_CONFIDENCE = 0.9
LOW_CONFIDENCE = 0.6

_SEQUENTIAL = "0123456789"
_REVERSE_SEQUENTIAL = "9876543210"
_CODE_FORMAT = re.compile(r"[0-9]{4,8}")

OTP_INDICATORS: Tuple[str, ...] = (
    "verification code",
    "verify code",
    "security code",
    "authentication code",
    "one-time code",
    "one time code",
    "otp",
    "passcode",
    "pin code",
    "login code",
    "access code",
    "confirmation code",
    "2fa code",
    "two-factor",
    "two factor",
    "sign-in code",
    "sign in code",
    "signin code",
    "your code is",
    "your code:",
    "code is",
    "code:",
    "enter code",
    "use code",
    "temporary password",
    "temporary code",
)

EXCLUSION_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"\$\d+", re.ASCII),  # currency amounts
    re.compile(r"\d{4,}\s*(?:USD|EUR|GBP|CAD|AUD)", re.ASCII | re.IGNORECASE),
    re.compile(r"order\s*#?\s*\d+", re.ASCII | re.IGNORECASE),
    re.compile(r"tracking\s*#?\s*\d+", re.ASCII | re.IGNORECASE),
    re.compile(r"invoice\s*#?\s*\d+", re.ASCII | re.IGNORECASE),
    re.compile(r"receipt", re.IGNORECASE),
    re.compile(r"balance", re.IGNORECASE),
    re.compile(r"statement", re.IGNORECASE),
    re.compile(r"subscription", re.IGNORECASE),
    re.compile(r"newsletter", re.IGNORECASE),
)

# Order matters: the first pattern with a valid capture wins.
LABELED_PATTERNS: Tuple[Pattern[str], ...] = (
    # "Your code is 123456", "code: 123456"
    re.compile(r"(?:code|pin|otp|password)[\s:]*[is]*[\s:]*(\d{4,8})", re.ASCII | re.IGNORECASE),
    # "123456 is your code"
    re.compile(r"(\d{4,8})\s+is\s+your\s+(?:code|pin|otp)", re.ASCII | re.IGNORECASE),
    # Google style G-123456
    re.compile(r"\bG-(\d{5,6})\b", re.ASCII),
    # "OTP: 123456", "PIN-1234"
    re.compile(r"(?:OTP|PIN|CODE)[\s:-]+(\d{4,8})", re.ASCII | re.IGNORECASE),
)

STANDALONE_PATTERNS: Tuple[Pattern[str], ...] = (re.compile(r"\b(\d{4,8})\b", re.ASCII),)


def is_valid_otp_code(code: str) -> bool:
    """Return True when a digit string is a plausible OTP.

    Rejects anything that is not 4-8 ASCII digits, repeated digits
    (``000000``), runs of the decimal sequence (``123456``, ``6543``) and
    4-digit calendar years between 1900 and 2100.
    """
    if not _CODE_FORMAT.fullmatch(code):
        return False
    if len(set(code)) == 1:
        return False
    if code in _SEQUENTIAL or code in _REVERSE_SEQUENTIAL:
        return False
    if len(code) == 4 and 1900 <= int(code) <= 2100:
        return False
    return True


@dataclass(frozen=True)
class OtpRules:
    """The rule set an :class:`OtpReader` applies."""

    indicators: Tuple[str, ...] = OTP_INDICATORS
    exclusions: Tuple[Pattern[str], ...] = EXCLUSION_PATTERNS
    labeled_patterns: Tuple[Pattern[str], ...] = LABELED_PATTERNS
    standalone_patterns: Tuple[Pattern[str], ...] = STANDALONE_PATTERNS
    high_confidence: float = HIGH_CONFIDENCE
    low_confidence: float = LOW_CONFIDENCE
    _lowered_indicators: Tuple[str, ...] = field(default=(), init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_lowered_indicators", tuple(i.lower() for i in self.indicators))

    def extended(
        self,
        *,
        indicators: Iterable[str] = (),
        exclusions: Iterable[str] = (),
    ) -> "OtpRules":
        """Return a copy with extra indicator phrases and exclusion regexes appended."""
        extra_indicators = tuple(i.strip() for i in indicators if i and i.strip())
        extra_exclusions = tuple(re.compile(p, re.IGNORECASE) for p in exclusions if p)
        if not extra_indicators and not extra_exclusions:
            return self
        return replace(
            self,
            indicators=self.indicators + extra_indicators,
            exclusions=self.exclusions + extra_exclusions,
        )

    def has_indicator(self, text: str) -> bool:
        lowered = text.lower()
        return any(indicator in lowered for indicator in self._lowered_indicators)

    def has_exclusion(self, text: str) -> bool:
        return any(pattern.search(text) for pattern in self.exclusions)


DEFAULT_RULES = OtpRules()


class OtpReader:
    """Rule-based OTP parser that extracts the most likely code from text blobs."""

    def __init__(self, rules: OtpRules = DEFAULT_RULES) -> None:
        self.rules = rules

    def extract(self, text: str) -> Optional[OtpMatch]:
        if not text:
            return None

        rules = self.rules
        has_indicator = rules.has_indicator(text)
        if rules.has_exclusion(text) and not has_indicator:
            return None

        labeled = self._scan(text, rules.labeled_patterns, rules.high_confidence)
        if labeled:
            return labeled[0]

        candidates: List[OtpMatch] = []
        if has_indicator:
            candidates = self._scan(text, rules.standalone_patterns, rules.low_confidence)
        if not candidates:
            return None
        # max() keeps the first of equally scored candidates
        return max(candidates, key=lambda match: match.confidence)

    def parse(self, text: str) -> Optional[str]:
        match = self.extract(text)
        return match.code if match else None

    @staticmethod
    def _scan(text: str, patterns: Iterable[Pattern[str]], confidence: float) -> List[OtpMatch]:
        found: List[OtpMatch] = []
        for pattern in patterns:
            for match in pattern.finditer(text):
                code = match.group(1)
                if is_valid_otp_code(code):
                    found.append(OtpMatch(code=code, confidence=confidence))
        return found


_default_reader = OtpReader()


def extract_otp(text: str) -> Optional[OtpMatch]:
    """Return the most likely OTP in ``text`` using the default rules."""
    return _default_reader.extract(text)


def contains_otp(text: str) -> bool:
    return extract_otp(text) is not None
