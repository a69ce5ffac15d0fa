# FILE: tests/test_llm_config_editor.py
"""
Tests for helm/llm/config_editor.py
Config diffing and natural-language rule authoring.
"""

import sys
from pathlib import Path

_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import json

import pytest

from helm.llm.config_editor import (
    build_edit_prompt,
    compute_config_diff,
    edit_config_with_natural_language,
    generate_rule_from_natural_language,
)
from helm.llm.errors import ConfigError
from helm.llm.router import get_default_rules
from helm.llm.schemas import Provider, RouterConditions, RouterConfig, RouterRule


def _rule(rule_id, priority, task_types=None):
    return RouterRule(
        id=rule_id,
        name=rule_id.title(),
        conditions=RouterConditions(task_types=task_types),
        model_priority=priority,
    )


class TestDiff:
    """Rules are compared by id."""

    def test_added_removed_modified(self):
        before = RouterConfig(rules=[_rule("a", ["gpt"]), _rule("b", ["gpt-mini"])], catch_all=["gpt"])
        after = RouterConfig(rules=[_rule("a", ["claude-sonnet"]), _rule("c", ["gemini-pro"])], catch_all=["gpt"])

        diff = compute_config_diff(before, after)

        assert [r.id for r in diff.added_rules] == ["c"]
        assert [r.id for r in diff.removed_rules] == ["b"]
        assert [(c.before.model_priority, c.after.model_priority) for c in diff.modified_rules] == [
            (["gpt"], ["claude-sonnet"])
        ]
        assert not diff.catch_all_changed
        assert diff.to_dict()["addedRules"][0]["modelPriority"] == ["gemini-pro"]

    def test_identical_is_empty(self):
        config = get_default_rules()
        assert compute_config_diff(config, config.model_copy()).is_empty

    def test_catch_all_change(self):
        diff = compute_config_diff(RouterConfig(catch_all=["gpt"]), RouterConfig(catch_all=["gpt-mini", "gpt"]))
        assert diff.catch_all_changed
        assert not diff.is_empty


class TestPrompts:
    """Prompt construction."""

    def test_edit_prompt_lists_models_and_custom_types(self, catalog):
        current = RouterConfig(rules=[_rule("legal", ["gpt"], task_types=["legal-review"])])
        prompt = build_edit_prompt("prefer claude", current, catalog)
        assert "claude-sonnet (" in prompt
        assert '"legal-review"' in prompt
        assert "USER INSTRUCTION:\nprefer claude" in prompt


class TestEdit:
    """edit_config_with_natural_language()"""

    @pytest.mark.asyncio
    async def test_proposes_new_version(self, catalog, make_adapter, make_registry):
        current = RouterConfig(rules=[_rule("coding", ["gpt"], task_types=["coding"])], catch_all=["gpt-mini"])
        reply = json.dumps({
            "rules": [
                {"id": "coding", "name": "Coding", "conditions": {"taskTypes": ["coding"]},
                 "modelPriority": ["claude-sonnet", "gpt"]},
                {"id": "math-gemini", "name": "Math", "conditions": {"taskTypes": ["math"]},
                 "modelPriority": ["gemini-pro"]},
            ],
            "catchAll": ["gpt-mini"],
            "changeDescription": "Prefer Claude for coding; add a math rule",
        })
        gemini = make_adapter(Provider.GEMINI, replies={"edit": f"```json\n{reply}\n```"})

        result = await edit_config_with_natural_language(
            "prefer claude for coding and add a math rule", current, make_registry(gemini), catalog
        )

        assert result.config.version == current.version + 1
        assert [r.id for r in result.diff.added_rules] == ["math-gemini"]
        assert len(result.diff.modified_rules) == 1
        assert result.change_description.startswith("Prefer Claude")
        # Nothing is mutated in place
        assert current.rules[0].model_priority == ["gpt"]
        assert gemini.calls("edit")[0]["model_id"] == catalog.resolve("gemini-flash-lite").model_id

    @pytest.mark.asyncio
    async def test_garbage_reply(self, catalog, make_adapter, make_registry):
        gemini = make_adapter(Provider.GEMINI, replies={"edit": "Sorry, I can't do that"})
        with pytest.raises(ConfigError):
            await edit_config_with_natural_language("anything", RouterConfig(), make_registry(gemini), catalog)

    @pytest.mark.asyncio
    async def test_schema_mismatch(self, catalog, make_adapter, make_registry):
        gemini = make_adapter(Provider.GEMINI, replies={"edit": '{"rules": [{"name": "no id"}], "catchAll": []}'})
        with pytest.raises(ConfigError):
            await edit_config_with_natural_language("anything", RouterConfig(), make_registry(gemini), catalog)

    @pytest.mark.asyncio
    async def test_no_providers(self, catalog, make_registry):
        with pytest.raises(ConfigError) as info:
            await edit_config_with_natural_language("anything", RouterConfig(), make_registry(), catalog)
        assert "No API keys available" in info.value.message


class TestGenerateRule:
    """generate_rule_from_natural_language()"""

    @pytest.mark.asyncio
    async def test_new_custom_type(self, catalog, make_adapter, make_registry):
        reply = json.dumps({
            "rule": {"id": "support-gpt", "name": "Support", "enabled": True,
                     "conditions": {"taskTypes": ["customer-support"]}, "modelPriority": ["gpt-mini"]},
            "isNewTaskType": True,
            "newTaskType": "customer-support",
            "newTaskTypeDescription": "Help desk questions",
        })
        openai = make_adapter(Provider.OPENAI, replies={"edit": reply})

        result = await generate_rule_from_natural_language(
            "send support questions to gpt-mini", [], make_registry(openai), catalog
        )

        assert result.rule.id == "support-gpt"
        assert result.is_new_task_type
        assert result.new_task_type == "customer-support"
        assert result.new_task_type_description == "Help desk questions"

    @pytest.mark.asyncio
    async def test_core_type_is_not_new(self, catalog, make_adapter, make_registry):
        reply = json.dumps({
            "rule": {"id": "coding-2", "name": "Coding", "conditions": {"taskTypes": ["coding"]},
                     "modelPriority": ["gpt"]},
            "isNewTaskType": True,
            "newTaskType": "coding",
        })
        openai = make_adapter(Provider.OPENAI, replies={"edit": reply})

        result = await generate_rule_from_natural_language("coding to gpt", [], make_registry(openai), catalog)

        assert not result.is_new_task_type
        assert result.new_task_type is None
