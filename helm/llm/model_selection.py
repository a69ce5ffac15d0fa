# FILE: helm/llm/model_selection.py
"""
Heuristic model selector.

Used when no router config applies (or the router yields nothing). Gates are
evaluated in order; the first that produces a model wins:

    1. Context size   > 200k tokens -> large-context model, or ConfigError
    2. Default cheap  unless the request clearly needs a premium model
    3. Speed-critical fastest speed tier
    4. Task type      per-type priority list
    5. Deep reasoning most capable models
    6. Multimodal     multimodal-capable models
    7. Default        general list, then anything available

All priority lists hold family aliases and are resolved against the catalog
snapshot passed in, so a discovery refresh changes concrete ids without
changing the tree.
"""

import logging
import math
import re
from dataclasses import dataclass, replace
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from helm.llm.catalog import CatalogSnapshot
from helm.llm.errors import ConfigError
from helm.llm.schemas import (
    AnalysisResult,
    Complexity,
    CostTier,
    ModelOption,
    Provider,
    RouteDecision,
    SpeedTier,
    TaskType,
)

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

LARGE_CONTEXT_TOKENS = 200_000
PREMIUM_LENGTH_THRESHOLD = 2000
DEEP_REASONING_LENGTH = 1000
LONG_DEBUG_LENGTH = 500

LARGE_CONTEXT_ALIAS = "gemini-pro"

LIGHTWEIGHT_PRIORITY = ["gemini-flash-lite", "gpt-nano", "gemini-flash", "gpt-mini", "claude-haiku"]
DEEP_REASONING_PRIORITY = ["claude-opus", "claude-sonnet", "gemini-pro", "gpt"]
MULTIMODAL_PRIORITY = ["gemini-pro", "gemini-flash", "gpt"]
DEFAULT_PRIORITY = [
    "gemini-flash", "gpt-mini", "gemini-flash-lite", "gpt-nano", "claude-haiku", "gpt", "gemini-pro",
]

NO_PROVIDERS_MESSAGE = "No API providers available. Please configure at least one API key in Settings."


# =============================================================================
# PROMPT HEURISTICS
# =============================================================================

_SPEED_KEYWORDS = ("quick", "fast", "urgent", "real-time", "immediately")
_REASONING_KEYWORDS = ("complex", "difficult", "deep", "thorough", "comprehensive", "detailed analysis")

_TASK_PATTERNS = [
    (TaskType.CODING, re.compile(r"\b(code|coding|program|debug|refactor|function|api|bug)\b")),
    (TaskType.MATH, re.compile(r"\b(math|calculate|equation|solve|theorem|proof)\b")),
    (TaskType.CREATIVE, re.compile(
        r"\b(write|compose|draft|craft|author|story|creative|blog|article|poem|letter|email"
        r"|speech|essay|script|narrative)\b"
    )),
    (TaskType.CONVERSATION, re.compile(r"\b(chat|talk|discuss|conversation)\b")),
    (TaskType.ANALYSIS, re.compile(r"\b(analyze|research|study|investigate|examine)\b")),
]

_MULTIMODAL_RE = re.compile(r"\b(image|video|audio|picture|photo|diagram)\b")

_CREATIVE_CONTENT_RE = re.compile(
    r"\b(article|essay|blog\s*post|screenplay|story|novel|chapter|letter|email|speech|report|memo"
    r"|proposal|presentation|script|review|critique|outline|poem|song|monologue|dialogue|narrative)\b"
)
_CREATIVE_QUALITY_RE = re.compile(
    r"\b(thoughtful|detailed|comprehensive|in-depth|nuanced|elaborate|polished|professional|formal|creative)\b"
)
_CREATIVE_VERB_RE = re.compile(r"\b(write|compose|draft|craft|create|author)\b[\s\S]*?\b(a|an|the|my|our|this|me)\b")


@dataclass(frozen=True)
class PromptAnalysis:
    estimated_tokens: int
    is_speed_critical: bool
    task_type: str
    requires_multimodal: bool
    requires_deep_reasoning: bool


def analyze_prompt(prompt: str) -> PromptAnalysis:
    lower = prompt.lower()

    task_type = TaskType.GENERAL.value
    for candidate, pattern in _TASK_PATTERNS:
        if pattern.search(lower):
            task_type = candidate.value
            break

    return PromptAnalysis(
        estimated_tokens=math.ceil(len(prompt) / 4),
        is_speed_critical=any(kw in lower for kw in _SPEED_KEYWORDS),
        task_type=task_type,
        requires_multimodal=_MULTIMODAL_RE.search(lower) is not None,
        requires_deep_reasoning=(
            any(kw in lower for kw in _REASONING_KEYWORDS) or len(prompt) > DEEP_REASONING_LENGTH
        ),
    )


def apply_llm_override(heuristic: PromptAnalysis, analysis: Optional[AnalysisResult]) -> PromptAnalysis:
    """Prefer the LLM's task type; a "complex" verdict forces deep reasoning."""
    if analysis is None:
        return heuristic
    return replace(
        heuristic,
        task_type=analysis.task_type,
        requires_deep_reasoning=(
            analysis.complexity == Complexity.COMPLEX or heuristic.requires_deep_reasoning
        ),
    )


def _is_substantive_creative(lower: str, task_type: str) -> bool:
    if task_type != TaskType.CREATIVE.value:
        return False
    return bool(
        _CREATIVE_CONTENT_RE.search(lower)
        or _CREATIVE_QUALITY_RE.search(lower)
        or _CREATIVE_VERB_RE.search(lower)
    )


def needs_premium_model(prompt: str, analysis: PromptAnalysis) -> bool:
    lower = prompt.lower()
    coding_heavy = analysis.task_type == TaskType.CODING.value and (
        "refactor" in lower
        or "architect" in lower
        or "complex" in lower
        or ("debug" in lower and len(prompt) > LONG_DEBUG_LENGTH)
    )
    proof = analysis.task_type == TaskType.MATH.value and "prove" in lower
    return (
        analysis.requires_deep_reasoning
        or _is_substantive_creative(lower, analysis.task_type)
        or coding_heavy
        or proof
        or len(prompt) > PREMIUM_LENGTH_THRESHOLD
    )


# =============================================================================
# CATALOG HELPERS
# =============================================================================

def get_available_models(providers: Iterable[Provider], catalog: CatalogSnapshot) -> List[ModelOption]:
    return catalog.available_models(providers)


def _price_key(model: ModelOption) -> float:
    return model.pricing.input if model.pricing is not None else math.inf


def select_models_by_cost(providers: Iterable[Provider], catalog: CatalogSnapshot) -> List[ModelOption]:
    """Available models sorted cheapest input price first (unpriced last)."""
    return sorted(get_available_models(providers, catalog), key=_price_key)


def select_cheapest_model(providers: Iterable[Provider], catalog: CatalogSnapshot) -> Optional[ModelOption]:
    ranked = select_models_by_cost(providers, catalog)
    return ranked[0] if ranked else None


def _first_available(
    aliases: Sequence[str],
    available: List[ModelOption],
    catalog: CatalogSnapshot,
) -> Optional[ModelOption]:
    for alias in aliases:
        target = catalog.resolve(alias)
        if target is None:
            continue
        for model in available:
            if model.model_id == target.model_id:
                return model
    return None


def _find(available: List[ModelOption], predicate: Callable[[ModelOption], bool]) -> Optional[ModelOption]:
    return next((m for m in available if predicate(m)), None)


def _price_label(model: ModelOption) -> str:
    return f"${model.pricing.input:.2f}" if model.pricing is not None else "$?"


# =============================================================================
# TASK-TYPE TABLE
# =============================================================================

@dataclass(frozen=True)
class _TaskRoute:
    priority: List[str]
    fallback: Callable[[ModelOption, ModelOption, CatalogSnapshot], bool]
    reasoning: Callable[[ModelOption], str]


def _creative_reason(m: ModelOption) -> str:
    focus = (
        "style preservation and creative content"
        if m.provider == Provider.ANTHROPIC
        else "creative content generation"
    )
    return f"Creative writing task. {m.display_name} excels at {focus}"


TASK_ROUTES: Dict[str, _TaskRoute] = {
    TaskType.CODING.value: _TaskRoute(
        ["claude-sonnet", "gemini-pro", "claude-haiku", "gpt", "gemini-flash"],
        lambda m, primary, cat: "coding" in m.strengths,
        lambda m: f"Complex coding task. {m.display_name} has superior coding capabilities",
    ),
    TaskType.MATH.value: _TaskRoute(
        ["gemini-pro", "claude-opus", "gpt"],
        lambda m, primary, cat: "math" in m.strengths,
        lambda m: f"Advanced mathematical reasoning. {m.display_name} excels at complex math",
    ),
    TaskType.CREATIVE.value: _TaskRoute(
        ["claude-opus", "claude-sonnet", "gpt", "gemini-pro"],
        lambda m, primary, cat: m.provider in (Provider.ANTHROPIC, Provider.OPENAI) or m.alias == "gemini-pro",
        _creative_reason,
    ),
    TaskType.CONVERSATION.value: _TaskRoute(
        ["gpt", "claude-sonnet", "gemini-flash"],
        lambda m, primary, cat: True,
        lambda m: f"Conversational task. {m.display_name} provides natural, engaging dialogue",
    ),
    TaskType.ANALYSIS.value: _TaskRoute(
        ["gemini-pro", "claude-opus", "gpt", "claude-sonnet"],
        lambda m, primary, cat: m.cost_tier != CostTier.ULTRA_LOW,
        lambda m: f"Complex analysis task. {m.display_name} provides deep analytical capabilities",
    ),
}


# =============================================================================
# DECISION TREE
# =============================================================================

def _decision(model: ModelOption, fallback: Optional[ModelOption], reasoning: str) -> RouteDecision:
    logger.info(f"[selector] {model.model_id}: {reasoning}")
    return RouteDecision(model=model, fallback=fallback, reasoning=reasoning, source="heuristic")


def select_optimal_model(
    prompt: str,
    providers: Iterable[Provider],
    catalog: CatalogSnapshot,
    llm_analysis: Optional[AnalysisResult] = None,
) -> RouteDecision:
    """Walk the gate list and return the first model that fits.

    Raises ConfigError when no provider is available, or when the prompt
    needs the large-context model and its provider is not configured.
    """
    lower = prompt.lower()
    analysis = apply_llm_override(analyze_prompt(prompt), llm_analysis)
    available = get_available_models(providers, catalog)

    if not available:
        raise ConfigError(NO_PROVIDERS_MESSAGE)

    # 1. Context size
    if analysis.estimated_tokens > LARGE_CONTEXT_TOKENS:
        large = _first_available([LARGE_CONTEXT_ALIAS], available, catalog)
        if large is None:
            raise ConfigError(
                f"Prompt too large ({analysis.estimated_tokens:,} tokens). "
                f"Please add a Gemini API key to handle large contexts."
            )
        return _decision(
            large,
            None,
            f"Large context ({analysis.estimated_tokens:,} tokens) requires "
            f"{large.display_name}'s {large.context_window:,} token window",
        )

    # 2. Default cheap
    if not needs_premium_model(prompt, analysis):
        model = _first_available(LIGHTWEIGHT_PRIORITY, available, catalog)
        if model is not None:
            fallback = _find(
                available,
                lambda m: m.model_id != model.model_id and m.cost_tier in (CostTier.LOW, CostTier.ULTRA_LOW),
            )
            return _decision(
                model,
                fallback,
                f"Standard task. Using cost-efficient {model.display_name} "
                f"({_price_label(model)} per 1M input tokens)",
            )

    # 3. Speed-critical
    if analysis.is_speed_critical:
        fast = sorted(
            [m for m in available if m.speed_tier in (SpeedTier.ULTRA_FAST, SpeedTier.FAST)],
            key=lambda m: m.speed_tier.rank,
        )
        if fast:
            return _decision(
                fast[0],
                fast[1] if len(fast) > 1 else None,
                f"Speed-critical task. Using fastest available model: {fast[0].display_name}",
            )

    # 4. Task type
    route = TASK_ROUTES.get(analysis.task_type)
    if route is not None:
        model = _first_available(route.priority, available, catalog)
        if model is not None:
            fallback = _find(
                available,
                lambda m: m.model_id != model.model_id and route.fallback(m, model, catalog),
            )
            return _decision(model, fallback, route.reasoning(model))

    # 5. Deep reasoning
    if analysis.requires_deep_reasoning:
        model = _first_available(DEEP_REASONING_PRIORITY, available, catalog)
        if model is not None:
            fallback = _find(
                available,
                lambda m: m.model_id != model.model_id and m.cost_tier in (CostTier.MEDIUM, CostTier.PREMIUM),
            )
            return _decision(
                model,
                fallback,
                f"Deep reasoning required. {model.display_name} provides extended thinking capabilities",
            )

    # 6. Multimodal
    if analysis.requires_multimodal:
        model = _first_available(MULTIMODAL_PRIORITY, available, catalog)
        if model is not None:
            fallback = _find(
                available,
                lambda m: m.model_id != model.model_id and "multimodal" in m.strengths,
            )
            return _decision(
                model,
                fallback,
                f"Multimodal task (image/video/audio). {model.display_name} has native multimodal support",
            )

    # 7. Default
    model = _first_available(DEFAULT_PRIORITY, available, catalog)
    if model is not None:
        fallback = _find(available, lambda m: m.model_id != model.model_id)
        return _decision(
            model,
            fallback,
            f"General task. {model.display_name} provides best value "
            f"({_price_label(model)} per 1M input tokens)",
        )

    return _decision(
        available[0],
        available[1] if len(available) > 1 else None,
        f"Using available model: {available[0].display_name}",
    )


__all__ = [
    "PromptAnalysis",
    "analyze_prompt",
    "apply_llm_override",
    "needs_premium_model",
    "get_available_models",
    "select_models_by_cost",
    "select_cheapest_model",
    "select_optimal_model",
    "TASK_ROUTES",
    "LIGHTWEIGHT_PRIORITY",
    "DEFAULT_PRIORITY",
    "NO_PROVIDERS_MESSAGE",
]
