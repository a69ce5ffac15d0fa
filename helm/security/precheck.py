# FILE: helm/security/precheck.py
"""Security pre-check: deterministic floor score from regex patterns.

CRITICAL SAFETY FEATURE: runs before any external call, so a compromised or
manipulated analysis model can never lower the score below what these
patterns establish.

Tiers (most severe first):
    critical override / jailbreak phrasing      -> floor 8
    "how to exploit/jailbreak AI" learning      -> floor 6  (only if tier 1 silent)
    social engineering, >= 2 distinct signals   -> floor 6  (only if floor < 6)
    social engineering, exactly 1 signal        -> floor 4
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Pattern

logger = logging.getLogger(__name__)

# =============================================================================
# PATTERN TIERS
# =============================================================================

CRITICAL_FLAG = "Critical threat pattern detected"
EXPLOITATION_FLAG = "Exploitation learning pattern detected"
SOCIAL_ENGINEERING_FLAG = "Social engineering pattern detected"
SOCIAL_ENGINEERING_HINT_FLAG = "Potential social engineering indicator"

CRITICAL_PATTERNS: List[Pattern[str]] = [
    re.compile(r"ignore\s+(all\s+)?(previous|prior)\s+(instructions|prompts|commands)", re.I),
    re.compile(r"disregard\s+(all\s+)?(previous|prior)\s+(instructions|prompts)", re.I),
    re.compile(r"forget\s+(your|all)\s+(instructions|prompts|rules)", re.I),
    re.compile(r"you\s+are\s+now\s+(unrestricted|unfiltered|unlimited|dan|jailbreak)", re.I),
    re.compile(r"you\s+are\s+now\s+(in\s+)?(developer|admin|god)\s+mode", re.I),
    re.compile(r"bypass\s+(your|all|the)\s+safety", re.I),
    re.compile(r"override\s+(your|all|the)\s+safety", re.I),
    re.compile(r"reveal\s+(your|the)\s+(system\s+)?prompt", re.I),
    re.compile(r"show\s+(me\s+)?(your|the)\s+(system\s+)?prompt", re.I),
    re.compile(r"(enable|activate)\s+(jailbreak|dan)\s+mode", re.I),
    re.compile(r"pretend\s+you\s+(are|have)\s+no\s+(restrictions|limits|safety)", re.I),
    re.compile(r"act\s+as\s+if\s+you\s+(are|have)\s+no\s+(restrictions|limits|filters)", re.I),
]

EXPLOITATION_PATTERNS: List[Pattern[str]] = [
    re.compile(r"how\s+(do\s+i|can\s+i|to)\s+(exploit|hack|attack)\s+(ai|chatgpt|claude|gemini|llm)", re.I),
    re.compile(r"how\s+(do\s+i|can\s+i|to)\s+(jailbreak|bypass)\s+(ai|chatgpt|claude|gemini|llm)", re.I),
    re.compile(r"how\s+(do\s+i|can\s+i|to)\s+create\s+(a\s+)?jailbreak", re.I),
    re.compile(r"how\s+(do\s+i|can\s+i|to)\s+(bypass|circumvent|break)\s+(ai\s+)?safety", re.I),
    re.compile(r"teach\s+me\s+(to|how\s+to)\s+(jailbreak|exploit|bypass)", re.I),
    re.compile(r"prompt\s+injection\s+(techniques|methods|attacks|tutorial)", re.I),
    re.compile(r"adversarial\s+prompt", re.I),
    re.compile(r"jailbreak\s+(techniques|methods|strategies|tutorial)", re.I),
    re.compile(r"bypass\s+content\s+filter", re.I),
    re.compile(r"circumvent\s+(the\s+)?(safety|content)\s+filter", re.I),
]

# Each pattern is one distinct signal; the count decides the floor.
SOCIAL_ENGINEERING_PATTERNS: List[Pattern[str]] = [
    # Authority impersonation / urgency
    re.compile(r"\b(this\s+is\s+(your\s+)?(boss|ceo|manager|director|supervisor|cto|cfo))\b", re.I),
    re.compile(r"\b(i\s+am\s+(your|the)\s+(boss|ceo|manager|director|supervisor|admin))\b", re.I),
    re.compile(r"\b(urgent|emergency|immediately|right\s+now|asap)\b[\s\S]{0,80}\b(send|give|share|provide|transfer)\b", re.I),
    # Sensitive data requests
    re.compile(r"\b(bank|routing|account)\s+(number|info|detail|credential)", re.I),
    re.compile(r"\b(credit\s+card|social\s+security|ssn|password|credential|api\s+key|secret\s+key)\b", re.I),
    re.compile(r"\b(send|wire|transfer)\s+(money|funds|payment|bitcoin|crypto)", re.I),
    # Phishing
    re.compile(r"\b(verify|confirm|update)\s+(your|account)\s+(password|credential|identity|information)", re.I),
    re.compile(r"\bclick\s+(this|the)\s+(link|url)\s+to\s+(verify|confirm|update|secure)", re.I),
]


@dataclass(frozen=True)
class PreCheckResult:
    floor_score: int = 0
    flags: List[str] = field(default_factory=list)

    @property
    def triggered(self) -> bool:
        return self.floor_score > 0

    def to_dict(self) -> dict:
        return {"floor_score": self.floor_score, "flags": list(self.flags)}


# =============================================================================
# PRE-CHECK
# =============================================================================

def _any_match(patterns: List[Pattern[str]], message: str) -> bool:
    return any(p.search(message) for p in patterns)


def security_precheck(message: str) -> PreCheckResult:
    """Score a raw message against the three pattern tiers. No I/O."""
    text = message or ""
    flags: List[str] = []
    floor = 0

    if _any_match(CRITICAL_PATTERNS, text):
        floor = 8
        flags.append(CRITICAL_FLAG)

    if floor < 8 and _any_match(EXPLOITATION_PATTERNS, text):
        floor = max(floor, 6)
        flags.append(EXPLOITATION_FLAG)

    if floor < 6:
        signals = sum(1 for p in SOCIAL_ENGINEERING_PATTERNS if p.search(text))
        if signals >= 2:
            floor = max(floor, 6)
            flags.append(SOCIAL_ENGINEERING_FLAG)
        elif signals == 1:
            floor = max(floor, 4)
            flags.append(SOCIAL_ENGINEERING_HINT_FLAG)

    if floor:
        logger.info(f"[precheck] floor={floor} flags={flags}")

    return PreCheckResult(floor_score=floor, flags=flags)


__all__ = [
    "PreCheckResult",
    "security_precheck",
    "CRITICAL_FLAG",
    "EXPLOITATION_FLAG",
    "SOCIAL_ENGINEERING_FLAG",
    "SOCIAL_ENGINEERING_HINT_FLAG",
    "CRITICAL_PATTERNS",
    "EXPLOITATION_PATTERNS",
    "SOCIAL_ENGINEERING_PATTERNS",
]
