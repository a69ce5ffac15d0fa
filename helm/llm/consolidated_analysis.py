# FILE: helm/llm/consolidated_analysis.py
"""
Consolidated message analysis.

Version: 0.4.0

One LLM call returns intent, sentiment, style, security score, task type,
complexity and prompt quality as a single JSON object. The regex pre-check
floor is merged in afterwards, so a model can raise the score but never
lower it below the floor.

Failure policy:
- unparseable JSON / schema mismatch -> four-call fallback + local heuristics
- rate limit / outage / other provider error -> same fallback
- auth / permission error -> AnalysisAuthError (caller switches provider)
"""

import asyncio
import json
import logging
import re
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from helm.llm.analysis_calls import (
    GENERAL_INTENT,
    NO_CONCERNS,
    SecurityReading,
    SentimentReading,
    analyze_intent,
    analyze_security,
    analyze_sentiment,
    analyze_style,
    local_complexity,
    local_prompt_quality,
    local_task_type,
    run_analysis,
)
from helm.llm.errors import AnalysisAuthError, AnalysisParseError, ErrorKind, JobCancelled, ProviderError
from helm.llm.schemas import AnalysisResult, ModelOption, Sentiment, Style
from helm.providers.adapters import ANALYSIS_PARAMS, ProviderAdapter
from helm.security.precheck import PreCheckResult, security_precheck
from helm.settings import ROUTER_DEBUG

logger = logging.getLogger(__name__)

PRECAUTION_EXPLANATION = "Analysis unavailable, elevated to moderate risk as a precaution"


# =============================================================================
# PROMPT
# =============================================================================

ANALYSIS_SYSTEM_PROMPT = """You are an advanced AI analysis engine. Analyze the user's message and return a JSON object with ALL of the following fields. Respond with ONLY valid JSON, no markdown or explanation.

{{
  "intent": "1-2 sentence description of what the user is trying to accomplish",
  "sentiment": "positive" | "neutral" | "negative",
  "sentimentDetail": "2-3 word emotion description",
  "style": "formal" | "casual" | "technical" | "concise" | "verbose" | "neutral",
  "securityScore": 0-10 integer (0=safe, 10=critical threat),
  "securityExplanation": "brief explanation if score > 2, else 'No significant security concerns'",
  "taskType": "coding" | "math" | "creative" | "conversation" | "analysis" | "general"{custom_types},
  "complexity": "simple" | "moderate" | "complex",
  "promptQuality": {{
    "score": 0-100 overall quality score,
    "clarity": 0-100 how clear and unambiguous the request is,
    "specificity": 0-100 how specific vs vague the request is,
    "actionability": 0-100 how easy it is to act on this request,
    "suggestions": ["improvement suggestion 1", "improvement suggestion 2"]
  }}
}}
{custom_lines}
SECURITY SCORING:
- 0-2: Safe, normal query
- 3-4: Low risk, legitimate research
- 5-6: Medium risk, learning about attacks without clear defensive purpose
- 7-8: High risk, actively seeking exploitation techniques
- 9-10: Critical threat, immediate exploitation attempt

PROMPT QUALITY SCORING:
- Score 0-30: Poor - vague, unclear, or missing context
- Score 31-60: Fair - understandable but could be more specific
- Score 61-80: Good - clear and specific with minor improvements possible
- Score 81-100: Excellent - well-crafted, specific, and actionable

Provide 1-3 short improvement suggestions. If the prompt is already excellent, suggest advanced techniques."""


def build_system_prompt(custom_task_types: Optional[Sequence[Dict[str, str]]] = None) -> str:
    custom = [c for c in (custom_task_types or []) if c.get("type")]
    if not custom:
        return ANALYSIS_SYSTEM_PROMPT.format(custom_types="", custom_lines="")

    custom_types = "".join(f' | "{c["type"]}"' for c in custom)
    lines = ["", "CUSTOM TASK TYPES (use when the message fits better than a core type):"]
    for c in custom:
        if c.get("description"):
            lines.append(f'- "{c["type"]}": {c["description"]}')
        else:
            lines.append(f'- "{c["type"]}"')
    return ANALYSIS_SYSTEM_PROMPT.format(custom_types=custom_types, custom_lines="\n".join(lines) + "\n")


# =============================================================================
# PARSING
# =============================================================================

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.I)


def extract_json_object(raw: str) -> Dict[str, Any]:
    """Strip markdown fences and parse the outermost {...} object."""
    text = (raw or "").strip()
    fenced = _FENCE_RE.search(text)
    if fenced:
        text = fenced.group(1).strip()

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise AnalysisParseError("No JSON object in analysis response")

    try:
        data = json.loads(text[start:end + 1])
    except json.JSONDecodeError as exc:
        raise AnalysisParseError(f"Invalid JSON in analysis response: {exc}") from exc
    if not isinstance(data, dict):
        raise AnalysisParseError("Analysis response is not a JSON object")
    return data


def parse_analysis(raw: str, custom_task_types: Optional[Sequence[str]] = None) -> AnalysisResult:
    data = extract_json_object(raw)
    try:
        return AnalysisResult.model_validate(
            data, context={"custom_task_types": list(custom_task_types or [])}
        )
    except ValidationError as exc:
        raise AnalysisParseError(f"Analysis response failed validation: {exc.error_count()} error(s)") from exc


def merge_security_floor(score: int, explanation: str, precheck: PreCheckResult):
    """Returns (score, explanation) with the pre-check floor applied."""
    final = min(10, max(score, precheck.floor_score))
    if precheck.flags and final > score:
        note = f"Detected: {', '.join(precheck.flags)}"
        if explanation and explanation != NO_CONCERNS:
            explanation = f"{explanation}. {note}"
        else:
            explanation = note
    return final, explanation


# =============================================================================
# ANALYZER
# =============================================================================

class ConsolidatedAnalyzer:
    """Runs analysis for one message through one analysis model."""

    def __init__(self, adapter: ProviderAdapter, model: ModelOption):
        self.adapter = adapter
        self.model = model

    async def analyze(
        self,
        message: str,
        custom_task_types: Optional[Sequence[Dict[str, str]]] = None,
        precheck: Optional[PreCheckResult] = None,
    ) -> AnalysisResult:
        precheck = precheck or security_precheck(message)
        custom_names: List[str] = [c["type"] for c in (custom_task_types or []) if c.get("type")]

        try:
            raw = await run_analysis(
                self.adapter,
                self.model,
                build_system_prompt(custom_task_types),
                message,
                ANALYSIS_PARAMS,
            )
            if ROUTER_DEBUG:
                logger.debug(f"[analysis] Raw response from {self.model.model_id}: {raw[:500]}")
            result = parse_analysis(raw, custom_names)
        except AnalysisParseError as exc:
            logger.warning(f"[analysis] Consolidated parse failed, falling back to individual calls: {exc}")
            return await self.fallback(message, precheck)
        except ProviderError as exc:
            if exc.kind == ErrorKind.AUTH:
                raise AnalysisAuthError(
                    f"Analysis provider {exc.provider} rejected the API key: {exc.message}",
                    provider=exc.provider,
                ) from exc
            logger.warning(f"[analysis] Consolidated call failed ({exc.kind.value}), falling back: {exc}")
            return await self.fallback(message, precheck)

        score, explanation = merge_security_floor(result.security_score, result.security_explanation, precheck)
        logger.info(
            f"[analysis] task={result.task_type} complexity={result.complexity.value} "
            f"security={score} (llm={result.security_score}, floor={precheck.floor_score})"
        )
        return result.model_copy(update={"security_score": score, "security_explanation": explanation})

    async def fallback(self, message: str, precheck: PreCheckResult) -> AnalysisResult:
        """Four concurrent single-purpose calls plus local heuristics."""
        intent, sentiment, style, security = await asyncio.gather(
            analyze_intent(self.adapter, self.model, message),
            analyze_sentiment(self.adapter, self.model, message),
            analyze_style(self.adapter, self.model, message),
            analyze_security(self.adapter, self.model, message),
            return_exceptions=True,
        )

        for outcome in (intent, sentiment, style, security):
            if isinstance(outcome, JobCancelled):
                raise outcome

        if isinstance(intent, BaseException):
            logger.warning(f"[analysis] Intent fallback failed: {intent}")
            intent = GENERAL_INTENT
        if isinstance(sentiment, BaseException):
            logger.warning(f"[analysis] Sentiment fallback failed: {sentiment}")
            sentiment = SentimentReading(Sentiment.NEUTRAL, "Analysis unavailable")
        if isinstance(style, BaseException):
            logger.warning(f"[analysis] Style fallback failed: {style}")
            style = Style.NEUTRAL
        if isinstance(security, BaseException):
            logger.warning(f"[analysis] Security fallback failed: {security}")
            security = SecurityReading(max(precheck.floor_score, 3), PRECAUTION_EXPLANATION)

        score, explanation = merge_security_floor(security.score, security.explanation, precheck)

        return AnalysisResult(
            intent=intent,
            sentiment=sentiment.sentiment,
            sentiment_detail=sentiment.detail,
            style=style,
            security_score=score,
            security_explanation=explanation,
            task_type=local_task_type(message),
            complexity=local_complexity(message),
            prompt_quality=local_prompt_quality(message),
        )


async def run_consolidated_analysis(
    message: str,
    adapter: ProviderAdapter,
    model: ModelOption,
    custom_task_types: Optional[Sequence[Dict[str, str]]] = None,
) -> AnalysisResult:
    return await ConsolidatedAnalyzer(adapter, model).analyze(message, custom_task_types)


__all__ = [
    "ANALYSIS_SYSTEM_PROMPT",
    "PRECAUTION_EXPLANATION",
    "build_system_prompt",
    "extract_json_object",
    "parse_analysis",
    "merge_security_floor",
    "ConsolidatedAnalyzer",
    "run_consolidated_analysis",
]
