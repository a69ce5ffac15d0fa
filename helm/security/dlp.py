# FILE: helm/security/dlp.py
"""Sensitive-data scanner used as the default redaction service.

Runs before a message (or any prior conversation turn) leaves the process.
Detectors are ordered most-specific first; a later detector never reports a
span that overlaps an earlier finding.

Usage:
    scanner = DlpScanner()
    result = scanner.scan("card 4111 1111 1111 1111")
    result.redacted_text  # "card [REDACTED_CREDIT_CARD]"
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Pattern

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DlpFinding:
    type: str
    label: str
    masked_match: str
    start: int
    end: int

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "label": self.label,
            "masked_match": self.masked_match,
            "start": self.start,
            "end": self.end,
        }


@dataclass
class ScanResult:
    has_sensitive_data: bool
    redacted_text: str
    findings: List[DlpFinding] = field(default_factory=list)
    summary: str = ""

    def to_dict(self) -> dict:
        return {
            "has_sensitive_data": self.has_sensitive_data,
            "redacted_text": self.redacted_text,
            "findings": [f.to_dict() for f in self.findings],
            "summary": self.summary,
        }


@dataclass(frozen=True)
class _Detector:
    type: str
    label: str
    pattern: Pattern[str]
    redact_as: str
    validate: Optional[Callable[[str], bool]] = None


# =============================================================================
# VALIDATORS
# =============================================================================

def luhn_check(value: str) -> bool:
    digits = [int(c) for c in value if c.isdigit()]
    total = 0
    for i, d in enumerate(reversed(digits)):
        if i % 2 == 1:
            d *= 2
            if d > 9:
                d -= 9
        total += d
    return total % 10 == 0


def mask_match(value: str) -> str:
    """Keep the first and last two characters, star the rest."""
    cleaned = value.strip()
    if len(cleaned) <= 4:
        return "****"
    return cleaned[:2] + "*" * max(len(cleaned) - 4, 3) + cleaned[-2:]


_CARD_PREFIXES = ("4", "5", "6", "34", "37", "30", "36", "38")


def _valid_card(match: str) -> bool:
    digits = re.sub(r"\D", "", match)
    if not 13 <= len(digits) <= 19:
        return False
    return digits.startswith(_CARD_PREFIXES) and luhn_check(digits)


def _valid_ssn(match: str) -> bool:
    digits = re.sub(r"\D", "", match)
    if len(digits) != 9:
        return False
    area, group, serial = int(digits[:3]), int(digits[3:5]), int(digits[5:])
    if area == 0 or area == 666 or area >= 900:
        return False
    return group != 0 and serial != 0


def _valid_iban(match: str) -> bool:
    return 15 <= len(re.sub(r"\s", "", match)) <= 34


def _valid_phone(match: str) -> bool:
    digits = re.sub(r"\D", "", match)
    if not 10 <= len(digits) <= 11:
        return False
    return len(set(digits)) > 1


_PLACEHOLDER_EMAIL_PARTS = (
    "example.com", "test.com", "placeholder.com", "your-email",
    "user@", "email@", "name@", "demo.local",
)


def _valid_email(match: str) -> bool:
    lower = match.lower()
    return not any(p in lower for p in _PLACEHOLDER_EMAIL_PARTS)


_EXAMPLE_IPS = {"127.0.0.1", "0.0.0.0", "255.255.255.255", "192.168.1.1", "10.0.0.1"}


def _valid_ip(match: str) -> bool:
    return match not in _EXAMPLE_IPS


# =============================================================================
# DETECTORS (most specific first)
# =============================================================================

DETECTORS: List[_Detector] = [
    _Detector(
        "credit_card", "Credit card number",
        re.compile(r"\b(?:\d[ -]*?){13,19}\b"),
        "[REDACTED_CREDIT_CARD]", _valid_card,
    ),
    _Detector(
        "ssn", "Social Security number",
        re.compile(r"\b\d{3}[-\s]?\d{2}[-\s]?\d{4}\b"),
        "[REDACTED_SSN]", _valid_ssn,
    ),
    _Detector(
        "api_key", "API key or token",
        re.compile(
            r"\b(?:sk-[a-zA-Z0-9]{20,}|AIza[a-zA-Z0-9_-]{30,}|ghp_[a-zA-Z0-9]{36,}"
            r"|glpat-[a-zA-Z0-9_-]{20,}|xox[baprs]-[a-zA-Z0-9-]{10,}|AKIA[A-Z0-9]{16})\b"
        ),
        "[REDACTED_API_KEY]",
    ),
    _Detector(
        "iban", "Bank account (IBAN)",
        re.compile(r"\b[A-Z]{2}\d{2}\s?[\dA-Z]{4}\s?(?:[\dA-Z]{4}\s?){1,7}[\dA-Z]{1,4}\b"),
        "[REDACTED_IBAN]", _valid_iban,
    ),
    _Detector(
        "passport", "Passport number",
        re.compile(
            r"(?:passport|travel\s+document|document)\s*(?:#|number|no\.?)?\s*:?\s*([A-Z]{1,2}\d{6,9})\b",
            re.I,
        ),
        "[REDACTED_PASSPORT]",
    ),
    _Detector(
        "phone", "Phone number",
        re.compile(r"(?:\+?1[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}\b"),
        "[REDACTED_PHONE]", _valid_phone,
    ),
    _Detector(
        "email", "Email address",
        re.compile(r"\b[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}\b"),
        "[REDACTED_EMAIL]", _valid_email,
    ),
    _Detector(
        "ip_address", "IP address",
        re.compile(r"\b(?:(?:25[0-5]|2[0-4]\d|[01]?\d\d?)\.){3}(?:25[0-5]|2[0-4]\d|[01]?\d\d?)\b"),
        "[REDACTED_IP]", _valid_ip,
    ),
]

_REDACT_AS = {d.type: d.redact_as for d in DETECTORS}


def _plural(label: str, n: int) -> str:
    # "IP address" -> "IP addresses", "Bank account (IBAN)" -> "Bank accounts (IBAN)"
    if n == 1:
        return label
    head, sep, tail = label.partition(" (")
    head += "es" if head.endswith("s") else "s"
    return head + sep + tail


class DlpScanner:
    """Regex/validator based implementation of the redaction service."""

    def __init__(self, detectors: Optional[List[_Detector]] = None):
        self._detectors = detectors if detectors is not None else DETECTORS

    def scan(self, text: str) -> ScanResult:
        text = text or ""
        findings: List[DlpFinding] = []

        for detector in self._detectors:
            for match in detector.pattern.finditer(text):
                group = 1 if match.lastindex else 0
                value = match.group(group)
                start, end = match.start(group), match.end(group)

                if detector.validate and not detector.validate(value):
                    continue
                if any(start < f.end and end > f.start for f in findings):
                    continue

                findings.append(DlpFinding(detector.type, detector.label, mask_match(value), start, end))

        findings.sort(key=lambda f: f.start)

        redacted = text
        for f in reversed(findings):
            redacted = redacted[:f.start] + _REDACT_AS[f.type] + redacted[f.end:]

        counts = Counter(f.label for f in findings)
        parts = [f"{n} {_plural(label, n)}" for label, n in counts.items()]
        summary = f"Detected: {', '.join(parts)}" if parts else ""

        if findings:
            # Only types and counts; never the matched values.
            logger.info(f"[dlp] Redacted {len(findings)} finding(s): {summary}")

        return ScanResult(
            has_sensitive_data=bool(findings),
            redacted_text=redacted,
            findings=findings,
            summary=summary,
        )


__all__ = [
    "DlpFinding",
    "ScanResult",
    "DlpScanner",
    "luhn_check",
    "mask_match",
    "DETECTORS",
]
