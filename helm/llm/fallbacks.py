# FILE: helm/llm/fallbacks.py
"""
Failover and upgrade selection for the Helm generation loop.

Version: 0.4.0

FAILOVER (provider error during generation):
- The failed provider is excluded for the rest of the job
- Candidates from the remaining providers are scored:
      score = 10 * |tier distance| - 3 * |strength overlap|
  Lowest score wins; ties keep catalog order
- Tier distance dominates: a same-tier model with no shared strengths beats
  a model two tiers away with three shared strengths

UPGRADE (response failed validation):
- Pick a model at the lowest cost tier strictly above the current one
- Never returns a model at the same or a lower tier

Usage:
    from helm.llm.fallbacks import select_alternative_model, select_upgrade_model

    alt = select_alternative_model(failed, reachable, excluded_providers={Provider.OPENAI})
    better = select_upgrade_model(current, reachable)
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Set

from helm.llm.errors import ErrorKind, ProviderError
from helm.llm.schemas import ModelOption, Provider
from helm.providers.registry import get_status_url

logger = logging.getLogger(__name__)

TIER_WEIGHT = 10
STRENGTH_WEIGHT = 3


# =============================================================================
# RECORDS
# =============================================================================

@dataclass
class ProviderFailure:
    """One failed generation attempt."""
    provider: str
    model: str
    error: str
    kind: ErrorKind = ErrorKind.UNKNOWN
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @classmethod
    def from_error(cls, model: ModelOption, exc: ProviderError) -> "ProviderFailure":
        return cls(
            provider=model.provider.value,
            model=model.model_id,
            error=exc.message,
            kind=exc.kind,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "model": self.model,
            "error": self.error,
            "kind": self.kind.value,
            "timestamp": self.timestamp,
        }


@dataclass
class FailoverEvent:
    """Record of a reroute from one model to another."""
    from_model: ModelOption
    to_model: ModelOption
    reason: str
    kind: ErrorKind

    @property
    def status_url(self) -> Optional[str]:
        return get_status_url(self.from_model.provider.value)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "from": self.from_model.display_name,
            "fromModel": self.from_model.model_id,
            "fromProvider": self.from_model.provider.value,
            "to": self.to_model.display_name,
            "toModel": self.to_model.model_id,
            "toProvider": self.to_model.provider.value,
            "reason": self.reason,
            "kind": self.kind.value,
            "statusUrl": self.status_url,
        }


# =============================================================================
# SCORING
# =============================================================================

def tier_distance(a: ModelOption, b: ModelOption) -> int:
    return abs(a.tier_rank - b.tier_rank)


def strength_overlap(a: ModelOption, b: ModelOption) -> int:
    return len(set(a.strengths) & set(b.strengths))


def alternative_score(failed: ModelOption, candidate: ModelOption) -> int:
    return TIER_WEIGHT * tier_distance(failed, candidate) - STRENGTH_WEIGHT * strength_overlap(failed, candidate)


def select_alternative_model(
    failed: ModelOption,
    available: Iterable[ModelOption],
    excluded_providers: Optional[Set[Provider]] = None,
) -> Optional[ModelOption]:
    """Best model from a provider that has not failed, or None."""
    excluded = set(excluded_providers or ())
    excluded.add(failed.provider)

    candidates = [m for m in available if m.provider not in excluded]
    if not candidates:
        logger.warning(
            f"[failover] No alternative for {failed.model_id}; "
            f"excluded providers: {sorted(p.value for p in excluded)}"
        )
        return None

    # min() keeps the first of equal scores, i.e. catalog order
    best = min(candidates, key=lambda m: alternative_score(failed, m))
    logger.info(
        f"[failover] {failed.model_id} -> {best.model_id} "
        f"(score={alternative_score(failed, best)}, tier={best.cost_tier.value})"
    )
    return best


def select_upgrade_model(current: ModelOption, available: Iterable[ModelOption]) -> Optional[ModelOption]:
    """First model at the lowest tier strictly above `current`, or None."""
    higher: List[ModelOption] = [m for m in available if m.tier_rank > current.tier_rank]
    if not higher:
        return None
    target_rank = min(m.tier_rank for m in higher)
    return next(m for m in higher if m.tier_rank == target_rank)


__all__ = [
    "ProviderFailure",
    "FailoverEvent",
    "tier_distance",
    "strength_overlap",
    "alternative_score",
    "select_alternative_model",
    "select_upgrade_model",
]
