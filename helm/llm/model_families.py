# FILE: helm/llm/model_families.py
"""Model families and aliases - single source of truth.

Routing rules, the heuristic selector and the failover scorer all refer to
models by family alias ("claude-sonnet", "gpt-mini"). Discovery resolves
each alias to the newest concrete model id the provider currently lists;
until it runs, DEFAULT_MODEL_IDS are used.

Rule: any new model family must be added here (with pricing) before it can
be routed to. Models without pricing still route, but cost estimates for
them are flagged unavailable.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional, Tuple

from helm.llm.schemas import CostTier, ModelOption, ModelPricing, Provider, SpeedTier


@dataclass(frozen=True)
class ModelFamily:
    alias: str
    provider: Provider
    display_name: str
    cost_tier: CostTier
    speed_tier: SpeedTier
    context_window: int
    strengths: FrozenSet[str]
    id_pattern: str
    default_model_id: str

    def matches(self, model_id: str) -> bool:
        return re.search(self.id_pattern, model_id) is not None


# =============================================================================
# Family Table (Authoritative Source)
# =============================================================================

MODEL_FAMILIES: Tuple[ModelFamily, ...] = (
    # -------------------------------------------------------------------------
    # Gemini
    # -------------------------------------------------------------------------
    ModelFamily(
        alias="gemini-flash-lite",
        provider=Provider.GEMINI,
        display_name="Gemini Flash-Lite",
        cost_tier=CostTier.ULTRA_LOW,
        speed_tier=SpeedTier.ULTRA_FAST,
        context_window=1_000_000,
        strengths=frozenset({"speed", "cost", "high-volume", "simple-tasks"}),
        id_pattern=r"^gemini-[\d.]+-flash-lite",
        default_model_id="gemini-2.5-flash-lite",
    ),
    ModelFamily(
        alias="gemini-flash",
        provider=Provider.GEMINI,
        display_name="Gemini Flash",
        cost_tier=CostTier.LOW,
        speed_tier=SpeedTier.FAST,
        context_window=1_000_000,
        strengths=frozenset({"balanced", "multimodal", "production", "agents"}),
        id_pattern=r"^gemini-[\d.]+-flash$",
        default_model_id="gemini-2.5-flash",
    ),
    ModelFamily(
        alias="gemini-pro",
        provider=Provider.GEMINI,
        display_name="Gemini Pro",
        cost_tier=CostTier.MEDIUM,
        speed_tier=SpeedTier.MEDIUM,
        context_window=1_000_000,
        strengths=frozenset({"math", "science", "long-context", "coding", "web-dev"}),
        id_pattern=r"^gemini-[\d.]+-pro",
        default_model_id="gemini-2.5-pro",
    ),
    # -------------------------------------------------------------------------
    # OpenAI
    # -------------------------------------------------------------------------
    ModelFamily(
        alias="gpt-nano",
        provider=Provider.OPENAI,
        display_name="GPT Nano",
        cost_tier=CostTier.ULTRA_LOW,
        speed_tier=SpeedTier.ULTRA_FAST,
        context_window=256_000,
        strengths=frozenset({"speed", "mobile", "edge", "high-volume"}),
        id_pattern=r"^gpt-\d+-nano",
        default_model_id="gpt-5-nano",
    ),
    ModelFamily(
        alias="gpt-mini",
        provider=Provider.OPENAI,
        display_name="GPT Mini",
        cost_tier=CostTier.LOW,
        speed_tier=SpeedTier.FAST,
        context_window=256_000,
        strengths=frozenset({"balanced", "cost-efficient", "general-purpose"}),
        id_pattern=r"^gpt-\d+-mini",
        default_model_id="gpt-5-mini",
    ),
    ModelFamily(
        alias="gpt",
        provider=Provider.OPENAI,
        display_name="GPT",
        cost_tier=CostTier.MEDIUM,
        speed_tier=SpeedTier.MEDIUM,
        context_window=256_000,
        strengths=frozenset({"conversation", "multimodal", "reasoning", "general"}),
        id_pattern=r"^gpt-\d+$",
        default_model_id="gpt-5",
    ),
    # -------------------------------------------------------------------------
    # Anthropic
    # -------------------------------------------------------------------------
    ModelFamily(
        alias="claude-haiku",
        provider=Provider.ANTHROPIC,
        display_name="Claude Haiku",
        cost_tier=CostTier.LOW,
        speed_tier=SpeedTier.ULTRA_FAST,
        context_window=200_000,
        strengths=frozenset({"speed", "coding", "extended-thinking", "ui-scaffolding"}),
        id_pattern=r"^claude-haiku",
        default_model_id="claude-haiku-4-5",
    ),
    ModelFamily(
        alias="claude-sonnet",
        provider=Provider.ANTHROPIC,
        display_name="Claude Sonnet",
        cost_tier=CostTier.MEDIUM,
        speed_tier=SpeedTier.MEDIUM,
        context_window=200_000,
        strengths=frozenset({"best-coding", "complex-agents", "system-design", "production"}),
        id_pattern=r"^claude-sonnet",
        default_model_id="claude-sonnet-4-5",
    ),
    ModelFamily(
        alias="claude-opus",
        provider=Provider.ANTHROPIC,
        display_name="Claude Opus",
        cost_tier=CostTier.PREMIUM,
        speed_tier=SpeedTier.SLOW,
        context_window=200_000,
        strengths=frozenset({"creative", "edge-cases", "code-review", "polish", "deep-reasoning"}),
        id_pattern=r"^claude-opus",
        default_model_id="claude-opus-4-1",
    ),
)

FAMILIES_BY_ALIAS: Dict[str, ModelFamily] = {f.alias: f for f in MODEL_FAMILIES}

DEFAULT_MODEL_IDS: Dict[str, str] = {f.alias: f.default_model_id for f in MODEL_FAMILIES}


# =============================================================================
# Pricing (USD per 1M tokens, keyed by family alias)
# =============================================================================

FAMILY_PRICING: Dict[str, ModelPricing] = {
    "gemini-flash-lite": ModelPricing(input=0.10, output=0.40),
    "gemini-flash": ModelPricing(input=0.30, output=2.50),
    "gemini-pro": ModelPricing(input=1.25, output=10.00),
    "gpt-nano": ModelPricing(input=0.15, output=1.50),
    "gpt-mini": ModelPricing(input=0.50, output=5.00),
    "gpt": ModelPricing(input=2.00, output=8.00),
    "claude-haiku": ModelPricing(input=1.00, output=5.00),
    "claude-sonnet": ModelPricing(input=3.00, output=15.00),
    "claude-opus": ModelPricing(input=15.00, output=75.00),
}


def get_family(alias: str) -> Optional[ModelFamily]:
    return FAMILIES_BY_ALIAS.get(alias)


def family_for_model_id(model_id: str) -> Optional[ModelFamily]:
    """Find the family whose id pattern matches a concrete model id."""
    for family in MODEL_FAMILIES:
        if family.matches(model_id):
            return family
    return None


def build_model_option(family: ModelFamily, model_id: Optional[str] = None) -> ModelOption:
    return ModelOption(
        provider=family.provider,
        model_id=model_id or family.default_model_id,
        display_name=family.display_name,
        cost_tier=family.cost_tier,
        speed_tier=family.speed_tier,
        context_window=family.context_window,
        strengths=family.strengths,
        pricing=FAMILY_PRICING.get(family.alias),
        alias=family.alias,
    )


def families_for_provider(provider: Provider) -> List[ModelFamily]:
    return [f for f in MODEL_FAMILIES if f.provider == provider]


__all__ = [
    "ModelFamily",
    "MODEL_FAMILIES",
    "FAMILIES_BY_ALIAS",
    "DEFAULT_MODEL_IDS",
    "FAMILY_PRICING",
    "get_family",
    "family_for_model_id",
    "build_model_option",
    "families_for_provider",
]
