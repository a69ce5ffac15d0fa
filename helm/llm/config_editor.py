# FILE: helm/llm/config_editor.py
"""
Natural-language editing of router configs.

This is an authoring tool, not part of request handling: it asks the
cheapest available model to rewrite a RouterConfig from an instruction,
validates the answer with the same pydantic schema the router uses, and
returns the proposed config together with a diff for the user to confirm.
Nothing is saved here.

Usage:
    result = await edit_config_with_natural_language(
        "send all math questions to gemini-pro first", current, registry, catalog
    )
    result.diff.modified_rules  # -> [RuleChange(before, after)]
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from helm.llm.catalog import CatalogSnapshot
from helm.llm.consolidated_analysis import extract_json_object
from helm.llm.errors import AnalysisParseError, ConfigError
from helm.llm.model_selection import select_cheapest_model
from helm.llm.router import extract_custom_task_types
from helm.llm.schemas import CORE_TASK_TYPES, ParameterTuning, RouterConfig, RouterRule, TaskType, _CamelModel
from helm.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)

EDIT_PARAMS = ParameterTuning(temperature=0.3, top_p=1.0, max_tokens=4000)


# =============================================================================
# DIFF
# =============================================================================

@dataclass
class RuleChange:
    before: RouterRule
    after: RouterRule


@dataclass
class RouterConfigDiff:
    added_rules: List[RouterRule] = field(default_factory=list)
    removed_rules: List[RouterRule] = field(default_factory=list)
    modified_rules: List[RuleChange] = field(default_factory=list)
    catch_all_changed: bool = False

    @property
    def is_empty(self) -> bool:
        return not (self.added_rules or self.removed_rules or self.modified_rules or self.catch_all_changed)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "addedRules": [r.model_dump(mode="json", by_alias=True) for r in self.added_rules],
            "removedRules": [r.model_dump(mode="json", by_alias=True) for r in self.removed_rules],
            "modifiedRules": [
                {"before": c.before.model_dump(mode="json", by_alias=True), "after": c.after.model_dump(mode="json", by_alias=True)}
                for c in self.modified_rules
            ],
            "catchAllChanged": self.catch_all_changed,
        }


def compute_config_diff(before: RouterConfig, after: RouterConfig) -> RouterConfigDiff:
    """Rules are matched by id; a kept id with any field changed is a modification."""
    old_by_id = {r.id: r for r in before.rules}
    new_ids = {r.id for r in after.rules}

    diff = RouterConfigDiff(
        added_rules=[r for r in after.rules if r.id not in old_by_id],
        removed_rules=[r for r in before.rules if r.id not in new_ids],
        catch_all_changed=list(before.catch_all) != list(after.catch_all),
    )
    for rule in after.rules:
        old = old_by_id.get(rule.id)
        if old is not None and old.model_dump() != rule.model_dump():
            diff.modified_rules.append(RuleChange(old, rule))
    return diff


# =============================================================================
# PROMPTS
# =============================================================================

def _task_type_list(rules: List[RouterRule]) -> str:
    core = '", "'.join(t.value for t in TaskType)
    custom = extract_custom_task_types(rules)
    if not custom:
        return f'  - Valid taskTypes: "{core}"'

    names = '", "'.join(c["type"] for c in custom)
    lines = [f'  - Valid taskTypes: "{core}", "{names}"']
    described = [c for c in custom if c["description"]]
    if described:
        lines.append("  - Custom type definitions:")
        lines.extend(f'    - "{c["type"]}": {c["description"]}' for c in described)
    lines.append("  - You may create new custom taskTypes (kebab-case) if the instruction requires categories beyond these.")
    return "\n".join(lines)


def _model_list(catalog: CatalogSnapshot) -> str:
    return "\n  ".join(f"{m.alias or m.model_id} ({m.display_name}, {m.provider.value})" for m in catalog)


_RULE_SHAPE = (
    "- conditions: { taskTypes?: string[], taskTypeDescriptions?: Record<string, string>, "
    "complexity?: string[], securityScoreMax?: number, promptLengthMin?: number, "
    "promptLengthMax?: number, customRegex?: string }"
)


def build_edit_prompt(instruction: str, current: RouterConfig, catalog: CatalogSnapshot) -> str:
    config_json = json.dumps(
        {
            "rules": [r.model_dump(mode="json", by_alias=True, exclude_none=True) for r in current.rules],
            "catchAll": list(current.catch_all),
        },
        indent=2,
    )
    return f"""You are a router configuration editor for an AI model routing system.

The router has rules evaluated top-to-bottom. Each rule has:
- id: unique identifier (use kebab-case, e.g. "my-new-rule")
- name: human-readable name
- enabled: boolean
{_RULE_SHAPE}
{_task_type_list(current.rules)}
  - Valid complexity: "simple", "moderate", "complex"
- modelPriority: ordered list of model IDs (first available wins)
- reasoning: explanation for this routing choice

Available models:
  {_model_list(catalog)}

A catch-all list provides fallback model ordering when no rule matches.

CURRENT CONFIG:
{config_json}

USER INSTRUCTION:
{instruction}

Apply the user's instruction to modify the current config. Return ONLY a valid JSON object with this exact structure:
{{
  "rules": [...updated rules array...],
  "catchAll": [...updated catch-all model IDs...],
  "changeDescription": "Brief summary of what was changed"
}}

Important:
- Preserve existing rules that aren't affected by the instruction
- Keep rule IDs stable when modifying existing rules
- Generate new unique IDs for new rules
- Only use valid model IDs from the available models list
- When creating a new custom taskType, include it in taskTypeDescriptions with a short description
- Return ONLY JSON, no markdown code fences or explanation"""


def build_rule_prompt(description: str, existing: List[RouterRule], catalog: CatalogSnapshot) -> str:
    summary = json.dumps(
        [{"id": r.id, "name": r.name, "taskTypes": r.conditions.task_types} for r in existing],
        indent=2,
    )
    return f"""You are a router rule generator for an AI model routing system.

Given a natural language description, create a single routing rule.

Rule structure:
- id: unique kebab-case identifier (e.g. "customer-support-gpt")
- name: human-readable name
- enabled: true
{_RULE_SHAPE}
{_task_type_list(existing)}
  - Valid complexity: "simple", "moderate", "complex"
- modelPriority: ordered list of model IDs (first available wins)
- reasoning: explanation for why this routing makes sense

Available models:
  {_model_list(catalog)}

EXISTING RULES (for context, avoid duplicate IDs):
{summary}

USER DESCRIPTION:
{description}

Create a rule based on the description. If the description requires a task category that doesn't exist in the valid taskTypes list, create a new custom taskType (kebab-case, descriptive).

Return ONLY a valid JSON object with this exact structure:
{{
  "rule": {{ "id": "...", "name": "...", "enabled": true, "conditions": {{...}}, "modelPriority": [...], "reasoning": "..." }},
  "isNewTaskType": true/false,
  "newTaskType": "custom-type-name" (only if isNewTaskType is true),
  "newTaskTypeDescription": "short description" (only if isNewTaskType is true)
}}

Return ONLY JSON, no markdown code fences or explanation."""


# =============================================================================
# LLM CALLS
# =============================================================================

class _EditResponse(_CamelModel):
    rules: List[RouterRule]
    catch_all: List[str]
    change_description: str = ""


class _RuleResponse(_CamelModel):
    rule: RouterRule
    is_new_task_type: bool = False
    new_task_type: Optional[str] = None
    new_task_type_description: Optional[str] = None


@dataclass
class ConfigEditResult:
    config: RouterConfig
    diff: RouterConfigDiff
    change_description: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "config": self.config.model_dump(mode="json", by_alias=True),
            "diff": self.diff.to_dict(),
            "changeDescription": self.change_description,
        }


@dataclass
class RuleGenerationResult:
    rule: RouterRule
    is_new_task_type: bool = False
    new_task_type: Optional[str] = None
    new_task_type_description: Optional[str] = None


async def _call_cheapest(prompt: str, registry: ProviderRegistry, catalog: CatalogSnapshot, purpose: str) -> str:
    model = select_cheapest_model(registry.available_providers(), catalog)
    if model is None:
        raise ConfigError(f"No API keys available for {purpose}")
    logger.info(f"[router] {purpose} via {model.model_id}")
    return await registry.get(model.provider).generate(
        model.model_id,
        [{"role": "user", "content": prompt}],
        EDIT_PARAMS,
    )


def _parse(raw: str, schema, purpose: str):
    try:
        return schema.model_validate(extract_json_object(raw))
    except (AnalysisParseError, ValidationError) as exc:
        raise ConfigError(f"Could not understand the model's proposed {purpose}: {exc}") from exc


async def edit_config_with_natural_language(
    instruction: str,
    current: RouterConfig,
    registry: ProviderRegistry,
    catalog: CatalogSnapshot,
) -> ConfigEditResult:
    raw = await _call_cheapest(build_edit_prompt(instruction, current, catalog), registry, catalog, "natural language editing")
    edit = _parse(raw, _EditResponse, "config")

    proposed = current.model_copy(update={
        "rules": edit.rules,
        "catch_all": edit.catch_all,
        "version": current.version + 1,
    })
    diff = compute_config_diff(current, proposed)
    logger.info(
        f"[router] Proposed edit: +{len(diff.added_rules)} -{len(diff.removed_rules)} "
        f"~{len(diff.modified_rules)} catchAllChanged={diff.catch_all_changed}"
    )
    return ConfigEditResult(proposed, diff, edit.change_description)


async def generate_rule_from_natural_language(
    description: str,
    existing: List[RouterRule],
    registry: ProviderRegistry,
    catalog: CatalogSnapshot,
) -> RuleGenerationResult:
    raw = await _call_cheapest(build_rule_prompt(description, existing, catalog), registry, catalog, "rule generation")
    parsed = _parse(raw, _RuleResponse, "rule")

    new_type = parsed.new_task_type
    is_new = bool(parsed.is_new_task_type and new_type and new_type not in CORE_TASK_TYPES)
    return RuleGenerationResult(
        rule=parsed.rule,
        is_new_task_type=is_new,
        new_task_type=new_type if is_new else None,
        new_task_type_description=parsed.new_task_type_description if is_new else None,
    )


__all__ = [
    "RuleChange",
    "RouterConfigDiff",
    "compute_config_diff",
    "build_edit_prompt",
    "build_rule_prompt",
    "ConfigEditResult",
    "RuleGenerationResult",
    "edit_config_with_natural_language",
    "generate_rule_from_natural_language",
]
