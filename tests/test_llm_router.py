# FILE: tests/test_llm_router.py
"""
Tests for helm/llm/router.py
Rule-based routing over RouterConfig.
"""

import sys
from pathlib import Path

_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import pytest

from helm.llm.interfaces import InMemoryRouterConfigStore
from helm.llm.router import (
    evaluate_rules,
    extract_custom_task_types,
    get_default_rules,
    load_router_config,
    matches_rule,
)
from helm.llm.schemas import AnalysisResult, Complexity, Provider, RouterConditions, RouterConfig, RouterRule

ALL_PROVIDERS = {Provider.OPENAI, Provider.ANTHROPIC, Provider.GEMINI}


def _analysis(task_type="general", complexity="moderate", score=0) -> AnalysisResult:
    return AnalysisResult(intent="test", security_score=score, task_type=task_type, complexity=complexity)


def _rule(rule_id, priority, **conditions) -> RouterRule:
    return RouterRule(
        id=rule_id,
        name=rule_id,
        conditions=RouterConditions(**conditions),
        model_priority=priority,
    )


class TestMatchesRule:
    """AND-combined conditions; missing conditions are wildcards."""

    def test_empty_conditions_match_everything(self):
        assert matches_rule(_rule("any", ["gpt"]), "hello", _analysis())

    def test_disabled_never_matches(self):
        rule = _rule("off", ["gpt"]).model_copy(update={"enabled": False})
        assert not matches_rule(rule, "hello", _analysis())

    def test_task_type_case_insensitive(self):
        rule = _rule("code", ["gpt"], task_types=["Coding"])
        assert matches_rule(rule, "x", _analysis("coding"))
        assert not matches_rule(rule, "x", _analysis("math"))

    def test_complexity_only(self):
        rule = _rule("simple", ["gpt-nano"], complexity=[Complexity.SIMPLE])
        assert matches_rule(rule, "x", _analysis("coding", "simple"))
        assert not matches_rule(rule, "x", _analysis("coding", "complex"))

    def test_security_and_length_bounds(self):
        rule = _rule("bounded", ["gpt"], security_score_max=3, prompt_length_min=5, prompt_length_max=10)
        assert matches_rule(rule, "hello!", _analysis(score=3))
        assert not matches_rule(rule, "hello!", _analysis(score=4))
        assert not matches_rule(rule, "hey", _analysis())
        assert not matches_rule(rule, "hello world!", _analysis())

    def test_custom_regex(self):
        rule = _rule("sql", ["gpt"], custom_regex=r"\bselect\b.+\bfrom\b")
        assert matches_rule(rule, "SELECT id FROM users", _analysis())
        assert not matches_rule(rule, "select a color", _analysis())

    def test_invalid_regex_is_ignored(self):
        rule = _rule("broken", ["gpt"], custom_regex="([unclosed")
        assert matches_rule(rule, "anything", _analysis())


class TestEvaluateRules:
    """Ordered evaluation with availability."""

    def test_no_config(self, catalog):
        assert evaluate_rules(None, "hi", _analysis(), ALL_PROVIDERS, catalog) is None

    def test_empty_config(self, catalog):
        assert evaluate_rules(RouterConfig(), "hi", _analysis(), ALL_PROVIDERS, catalog) is None

    def test_first_match_wins(self, catalog):
        config = RouterConfig(rules=[
            _rule("first", ["gpt-mini"]),
            _rule("second", ["claude-opus"]),
        ])
        decision = evaluate_rules(config, "hi", _analysis(), ALL_PROVIDERS, catalog)
        assert decision.rule_id == "first"
        assert decision.model.alias == "gpt-mini"
        assert decision.source == "rule"

    def test_skips_rule_without_available_model(self, catalog):
        config = RouterConfig(rules=[
            _rule("anthropic-only", ["claude-sonnet", "claude-haiku"]),
            _rule("gemini", ["gemini-pro"]),
        ])
        decision = evaluate_rules(config, "hi", _analysis(), {Provider.GEMINI}, catalog)
        assert decision.rule_id == "gemini"

    def test_fallback_is_next_distinct_available(self, catalog):
        config = RouterConfig(rules=[_rule("r", ["claude-sonnet", "gpt", "gemini-pro", "gemini-flash"])])
        decision = evaluate_rules(config, "hi", _analysis(), {Provider.ANTHROPIC, Provider.GEMINI}, catalog)
        assert decision.model.alias == "claude-sonnet"
        assert decision.fallback.alias == "gemini-pro"

    def test_catch_all(self, catalog):
        config = RouterConfig(rules=[_rule("math", ["gemini-pro"], task_types=["math"])], catch_all=["gpt-mini"])
        decision = evaluate_rules(config, "hi", _analysis("coding"), ALL_PROVIDERS, catalog)
        assert decision.source == "catch_all"
        assert decision.model.alias == "gpt-mini"
        assert decision.rule_id is None

    def test_nothing_available_returns_none(self, catalog):
        config = RouterConfig(rules=[_rule("r", ["claude-opus"])], catch_all=["claude-haiku"])
        assert evaluate_rules(config, "hi", _analysis(), {Provider.OPENAI}, catalog) is None

    def test_concrete_model_ids_accepted(self, catalog):
        config = RouterConfig(rules=[_rule("pinned", ["claude-sonnet-4-5-20250929"])])
        decision = evaluate_rules(config, "hi", _analysis(), ALL_PROVIDERS, catalog)
        assert decision.model.model_id == "claude-sonnet-4-5-20250929"

    def test_default_rules_route_coding(self, catalog):
        decision = evaluate_rules(get_default_rules(), "fix it", _analysis("coding", "complex"), ALL_PROVIDERS, catalog)
        assert decision.rule_id == "default-coding"
        assert decision.model.alias == "claude-sonnet"

    def test_default_rules_simple_first(self, catalog):
        decision = evaluate_rules(get_default_rules(), "fix it", _analysis("coding", "simple"), ALL_PROVIDERS, catalog)
        assert decision.rule_id == "default-simple"
        assert decision.model.alias == "gemini-flash-lite"


class TestConfigLoading:
    """Store lookup and custom task types."""

    @pytest.mark.asyncio
    async def test_user_override_wins(self):
        store = InMemoryRouterConfigStore()
        org = RouterConfig(catch_all=["gpt"])
        user = RouterConfig(catch_all=["claude-haiku"])
        store.save("acme", org)
        store.save("acme", user, user_id="u1")

        assert (await load_router_config(store, "acme", "u1")).catch_all == ["claude-haiku"]
        assert (await load_router_config(store, "acme", "u2")).catch_all == ["gpt"]
        assert await load_router_config(store, "other") is None

    @pytest.mark.asyncio
    async def test_store_failure_degrades_to_none(self):
        class BrokenStore:
            async def load(self, org_id, user_id=None):
                raise RuntimeError("db down")

        assert await load_router_config(BrokenStore(), "acme") is None

    def test_extract_custom_task_types(self):
        rules = [
            _rule("a", ["gpt"], task_types=["coding", "legal-review"],
                  task_type_descriptions={"legal-review": "Contract questions"}),
            _rule("b", ["gpt"], task_types=["legal-review", "support"]),
        ]
        assert extract_custom_task_types(rules) == [
            {"type": "legal-review", "description": "Contract questions"},
            {"type": "support", "description": ""},
        ]
