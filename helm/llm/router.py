# FILE: helm/llm/router.py
"""
Rule-based model router.

Version: 0.4.0

Evaluates an org's (or user's) ordered RouterConfig against the analysis of
one message:

    1. Rules top to bottom; first enabled rule whose conditions all hold AND
       which has an available model in its priority list wins.
    2. Otherwise the catch-all list.
    3. Fallback = next available distinct model from the same list.

evaluate_rules() returns None when there is no config, nothing yields an
available model, or evaluation raises. The caller then uses the heuristic
selector. This is a degrade-gracefully boundary, not an error.

Usage:
    config = await load_router_config(store, org_id, user_id)
    decision = evaluate_rules(config, message, analysis, providers, snapshot)
    if decision is None:
        decision = select_optimal_model(message, providers, snapshot, analysis)
"""

import logging
import re
from typing import Dict, Iterable, List, Optional, Set, Tuple

from helm.llm.catalog import CatalogSnapshot
from helm.llm.schemas import (
    CORE_TASK_TYPES,
    AnalysisResult,
    Complexity,
    ConfigScope,
    ModelOption,
    Provider,
    RouteDecision,
    RouterConditions,
    RouterConfig,
    RouterRule,
)
from helm.settings import ROUTER_DEBUG

logger = logging.getLogger(__name__)


# =============================================================================
# RULE MATCHING
# =============================================================================

def _regex_condition_holds(pattern: str, message: str) -> bool:
    try:
        compiled = re.compile(pattern, re.IGNORECASE)
    except re.error:
        logger.warning(f"[router] Ignoring invalid customRegex {pattern!r}")
        return True
    return compiled.search(message) is not None


def matches_rule(rule: RouterRule, message: str, analysis: AnalysisResult) -> bool:
    if not rule.enabled:
        return False
    c: RouterConditions = rule.conditions

    if c.task_types:
        allowed = {t.strip().lower() for t in c.task_types}
        if analysis.task_type.lower() not in allowed:
            return False

    if c.complexity:
        if analysis.complexity not in c.complexity:
            return False

    if c.security_score_max is not None and analysis.security_score > c.security_score_max:
        return False

    if c.prompt_length_min is not None and len(message) < c.prompt_length_min:
        return False

    if c.prompt_length_max is not None and len(message) > c.prompt_length_max:
        return False

    if c.custom_regex and not _regex_condition_holds(c.custom_regex, message):
        return False

    return True


def _resolve_available(
    identifier: str,
    providers: Set[Provider],
    catalog: CatalogSnapshot,
) -> Optional[ModelOption]:
    model = catalog.resolve(identifier)
    if model is None or model.provider not in providers:
        return None
    return model


def _pick_from_list(
    identifiers: List[str],
    providers: Set[Provider],
    catalog: CatalogSnapshot,
) -> Tuple[Optional[ModelOption], Optional[ModelOption]]:
    """First available model, plus the next available distinct one."""
    primary: Optional[ModelOption] = None
    for identifier in identifiers:
        model = _resolve_available(identifier, providers, catalog)
        if model is None:
            continue
        if primary is None:
            primary = model
        elif model.model_id != primary.model_id:
            return primary, model
    return primary, None


def _evaluate(
    config: RouterConfig,
    message: str,
    analysis: AnalysisResult,
    providers: Set[Provider],
    catalog: CatalogSnapshot,
) -> Optional[RouteDecision]:
    for rule in config.rules:
        if not matches_rule(rule, message, analysis):
            continue
        primary, fallback = _pick_from_list(rule.model_priority, providers, catalog)
        if primary is None:
            if ROUTER_DEBUG:
                logger.debug(f"[router] Rule {rule.id!r} matched but has no available model")
            continue
        return RouteDecision(
            model=primary,
            fallback=fallback,
            reasoning=rule.reasoning or f"Matched rule: {rule.name}",
            source="rule",
            rule_id=rule.id,
        )

    if config.catch_all:
        primary, fallback = _pick_from_list(config.catch_all, providers, catalog)
        if primary is not None:
            return RouteDecision(
                model=primary,
                fallback=fallback,
                reasoning=f"No rule matched. Using catch-all: {primary.display_name}",
                source="catch_all",
            )

    return None


def evaluate_rules(
    config: Optional[RouterConfig],
    message: str,
    analysis: AnalysisResult,
    providers: Iterable[Provider],
    catalog: CatalogSnapshot,
) -> Optional[RouteDecision]:
    if config is None:
        return None
    try:
        decision = _evaluate(config, message, analysis, set(providers), catalog)
    except Exception:
        logger.exception("[router] Rule evaluation failed; falling back to heuristic selector")
        return None

    if decision is not None:
        logger.info(
            f"[router] {decision.source} -> {decision.model.model_id} "
            f"(rule={decision.rule_id}): {decision.reasoning}"
        )
    return decision


# =============================================================================
# CONFIG LOADING
# =============================================================================

async def load_router_config(store, org_id: str, user_id: Optional[str] = None) -> Optional[RouterConfig]:
    """Load via the config store; user-level overrides win over org-level.

    Store failures degrade to None (heuristic routing) rather than failing the job.
    """
    if store is None:
        return None
    try:
        return await store.load(org_id, user_id)
    except Exception:
        logger.exception(f"[router] Failed to load router config for org={org_id}")
        return None


def extract_custom_task_types(rules: Iterable[RouterRule]) -> List[Dict[str, str]]:
    """Non-core task types referenced by rules, with optional descriptions."""
    seen: Dict[str, str] = {}
    for rule in rules:
        descriptions = rule.conditions.task_type_descriptions or {}
        for task_type in rule.conditions.task_types or []:
            if task_type in CORE_TASK_TYPES or task_type in seen:
                continue
            seen[task_type] = descriptions.get(task_type, "")
    return [{"type": t, "description": d} for t, d in seen.items()]


# =============================================================================
# DEFAULT CONFIG
# =============================================================================

_MODERATE_OR_COMPLEX = [Complexity.MODERATE, Complexity.COMPLEX]

DEFAULT_CATCH_ALL = [
    "gemini-flash", "gpt-mini", "gemini-flash-lite", "gpt-nano", "claude-haiku", "gpt", "gemini-pro",
]


def get_default_rules() -> RouterConfig:
    """The heuristic tree expressed as editable rule cards."""
    return RouterConfig(
        scope=ConfigScope.ORG,
        rules=[
            RouterRule(
                id="default-simple",
                name="Simple & fast tasks",
                conditions=RouterConditions(complexity=[Complexity.SIMPLE]),
                model_priority=["gemini-flash-lite", "gpt-nano", "gemini-flash", "gpt-mini", "claude-haiku"],
                reasoning="Cost-efficient models for simple tasks",
            ),
            RouterRule(
                id="default-coding",
                name="Complex coding",
                conditions=RouterConditions(task_types=["coding"], complexity=list(_MODERATE_OR_COMPLEX)),
                model_priority=["claude-sonnet", "gemini-pro", "claude-haiku", "gpt", "gemini-flash"],
                reasoning="Claude Sonnet excels at complex coding",
            ),
            RouterRule(
                id="default-math",
                name="Advanced math",
                conditions=RouterConditions(task_types=["math"], complexity=list(_MODERATE_OR_COMPLEX)),
                model_priority=["gemini-pro", "claude-opus", "gpt"],
                reasoning="Gemini Pro leads in math reasoning",
            ),
            RouterRule(
                id="default-creative",
                name="Creative writing",
                conditions=RouterConditions(task_types=["creative"], complexity=list(_MODERATE_OR_COMPLEX)),
                model_priority=["claude-opus", "claude-sonnet", "gpt", "gemini-pro"],
                reasoning="Claude models excel at style-preserving creative content",
            ),
            RouterRule(
                id="default-analysis",
                name="Deep analysis",
                conditions=RouterConditions(task_types=["analysis"], complexity=list(_MODERATE_OR_COMPLEX)),
                model_priority=["gemini-pro", "claude-opus", "gpt", "claude-sonnet"],
                reasoning="Premium models for complex analytical tasks",
            ),
            RouterRule(
                id="default-conversation",
                name="Conversation",
                conditions=RouterConditions(task_types=["conversation"]),
                model_priority=["gpt", "claude-sonnet", "gemini-flash"],
                reasoning="GPT provides natural, engaging dialogue",
            ),
        ],
        catch_all=list(DEFAULT_CATCH_ALL),
    )


__all__ = [
    "matches_rule",
    "evaluate_rules",
    "load_router_config",
    "extract_custom_task_types",
    "get_default_rules",
    "DEFAULT_CATCH_ALL",
]
