# FILE: helm/security/gate.py
"""Security gate: halt the job when the analysis score reaches the org threshold.

Halting is terminal. There is no retry and no fallback generation for a
halted request.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from helm.llm.errors import SecurityHalt
from helm.llm.schemas import AnalysisResult
from helm.settings import DEFAULT_SECURITY_THRESHOLD

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GateDecision:
    halted: bool
    score: int
    threshold: int
    explanation: str

    def to_dict(self) -> dict:
        return {
            "halted": self.halted,
            "score": self.score,
            "threshold": self.threshold,
            "explanation": self.explanation,
        }


def normalize_threshold(threshold: Optional[int]) -> int:
    if threshold is None:
        return DEFAULT_SECURITY_THRESHOLD
    # A threshold of 0 would halt every job, even a score of 0
    return max(1, min(10, int(threshold)))


def evaluate_security_gate(analysis: AnalysisResult, threshold: Optional[int] = None) -> GateDecision:
    limit = normalize_threshold(threshold)
    halted = analysis.security_score >= limit
    if halted:
        logger.warning(
            f"[gate] HALT score={analysis.security_score} threshold={limit}: "
            f"{analysis.security_explanation}"
        )
    return GateDecision(
        halted=halted,
        score=analysis.security_score,
        threshold=limit,
        explanation=analysis.security_explanation,
    )


def enforce_security_gate(analysis: AnalysisResult, threshold: Optional[int] = None) -> GateDecision:
    """Like evaluate_security_gate, but raises SecurityHalt instead of returning a halt."""
    decision = evaluate_security_gate(analysis, threshold)
    if decision.halted:
        raise SecurityHalt(decision.score, decision.threshold, decision.explanation)
    return decision


__all__ = [
    "GateDecision",
    "evaluate_security_gate",
    "enforce_security_gate",
    "normalize_threshold",
]
