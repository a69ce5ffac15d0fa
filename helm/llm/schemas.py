# FILE: helm/llm/schemas.py
"""
Helm pipeline schemas: model options, analysis results, router config and
phase updates.

Version: 0.4.0

Wire format uses camelCase aliases (securityScore, modelPriority, catchAll)
so router configs stored by the admin UI load unchanged. Python code uses
the snake_case field names; pass by_alias=True when serialising for clients.

COST TIERS (total order, shared by selection, failover and upgrade):
    ultra-low < low < medium < high < premium
"""
import math
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel


# =============================================================================
# ENUMS
# =============================================================================

class Provider(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"


class CostTier(str, Enum):
    ULTRA_LOW = "ultra-low"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    PREMIUM = "premium"

    @property
    def rank(self) -> int:
        return COST_TIER_ORDER[self]


COST_TIER_ORDER: Dict[CostTier, int] = {
    CostTier.ULTRA_LOW: 0,
    CostTier.LOW: 1,
    CostTier.MEDIUM: 2,
    CostTier.HIGH: 3,
    CostTier.PREMIUM: 4,
}


class SpeedTier(str, Enum):
    ULTRA_FAST = "ultra-fast"
    FAST = "fast"
    MEDIUM = "medium"
    SLOW = "slow"

    @property
    def rank(self) -> int:
        return SPEED_TIER_ORDER[self]


SPEED_TIER_ORDER: Dict[SpeedTier, int] = {
    SpeedTier.ULTRA_FAST: 0,
    SpeedTier.FAST: 1,
    SpeedTier.MEDIUM: 2,
    SpeedTier.SLOW: 3,
}


class TaskType(str, Enum):
    """Core task types. Orgs may define additional free-form types."""
    CODING = "coding"
    MATH = "math"
    CREATIVE = "creative"
    CONVERSATION = "conversation"
    ANALYSIS = "analysis"
    GENERAL = "general"


CORE_TASK_TYPES = frozenset(t.value for t in TaskType)


class Complexity(str, Enum):
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class Style(str, Enum):
    FORMAL = "formal"
    CASUAL = "casual"
    TECHNICAL = "technical"
    CONCISE = "concise"
    VERBOSE = "verbose"
    NEUTRAL = "neutral"


class ConfigScope(str, Enum):
    ORG = "org"
    USER = "user"


class Phase(str, Enum):
    """Pipeline phases, in emission order."""
    INTENT = "intent"
    SENTIMENT = "sentiment"
    STYLE = "style"
    SECURITY = "security"
    HALT = "halt"
    MODEL = "model"
    PROMPT = "prompt"
    PARAMETERS = "parameters"
    GENERATING = "generating"
    TOKEN = "token"
    CLEAR = "clear"
    REROUTE = "reroute"
    VALIDATION = "validation"
    UPGRADE = "upgrade"
    RESPONSE = "response"
    COMPLETE = "complete"
    CANCELLED = "cancelled"


class PhaseStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _number(value: Any) -> float:
    # pydantic only reports ValueError as a validation failure
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"expected a number, got {value!r}") from None
    if not math.isfinite(number):
        raise ValueError(f"expected a finite number, got {value!r}")
    return number


def _clamp_int(value: Any, low: int, high: int) -> int:
    return max(low, min(high, int(round(_number(value)))))



def _enum_text(value: Any) -> str:
    if isinstance(value, Enum):
        value = value.value
    return str(value or "").strip().lower()


# =============================================================================
# MODEL CATALOG
# =============================================================================

class ModelPricing(_CamelModel):
    """USD per 1M tokens."""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    input: float
    output: float


class ModelOption(_CamelModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    provider: Provider
    model_id: str
    display_name: str
    cost_tier: CostTier
    speed_tier: SpeedTier
    context_window: int
    strengths: FrozenSet[str] = frozenset()
    pricing: Optional[ModelPricing] = None
    alias: Optional[str] = None

    @property
    def tier_rank(self) -> int:
        return self.cost_tier.rank


# =============================================================================
# ANALYSIS
# =============================================================================

class PromptQuality(_CamelModel):
    score: int = 50
    clarity: int = 50
    specificity: int = 50
    actionability: int = 50
    suggestions: List[str] = Field(default_factory=list)

    @field_validator("score", "clarity", "specificity", "actionability", mode="before")
    @classmethod
    def _clamp_percent(cls, v: Any) -> int:
        return _clamp_int(v, 0, 100)

    @field_validator("suggestions", mode="before")
    @classmethod
    def _coerce_suggestions(cls, v: Any) -> List[str]:
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return [str(s) for s in v if str(s).strip()]


class AnalysisResult(_CamelModel):
    """
    Structured analysis of one message.

    Validators coerce what a model tends to get slightly wrong (casing,
    out-of-range numbers, unknown enum values) rather than rejecting the
    whole object. Missing intent or securityScore is still a hard failure.
    Pass context={"custom_task_types": [...]} to accept org-defined types.
    """
    intent: str
    sentiment: Sentiment = Sentiment.NEUTRAL
    sentiment_detail: str = ""
    style: Style = Style.NEUTRAL
    security_score: int
    security_explanation: str = "No significant security concerns"
    task_type: str = TaskType.GENERAL.value
    complexity: Complexity = Complexity.MODERATE
    prompt_quality: PromptQuality = Field(default_factory=PromptQuality)

    @field_validator("intent", mode="before")
    @classmethod
    def _intent_not_blank(cls, v: Any) -> str:
        text = str(v).strip() if v is not None else ""
        if not text:
            raise ValueError("intent is empty")
        return text

    @field_validator("sentiment", mode="before")
    @classmethod
    def _coerce_sentiment(cls, v: Any) -> str:
        value = _enum_text(v)
        return value if value in {s.value for s in Sentiment} else Sentiment.NEUTRAL.value

    @field_validator("style", mode="before")
    @classmethod
    def _coerce_style(cls, v: Any) -> str:
        value = _enum_text(v)
        return value if value in {s.value for s in Style} else Style.NEUTRAL.value

    @field_validator("complexity", mode="before")
    @classmethod
    def _coerce_complexity(cls, v: Any) -> str:
        value = _enum_text(v)
        return value if value in {c.value for c in Complexity} else Complexity.MODERATE.value

    @field_validator("security_score", mode="before")
    @classmethod
    def _clamp_security(cls, v: Any) -> int:
        return _clamp_int(v, 0, 10)

    @field_validator("sentiment_detail", "security_explanation", mode="before")
    @classmethod
    def _coerce_text(cls, v: Any) -> str:
        return "" if v is None else str(v).strip()

    @field_validator("task_type", mode="before")
    @classmethod
    def _coerce_task_type(cls, v: Any, info: ValidationInfo) -> str:
        value = _enum_text(v)
        if value in CORE_TASK_TYPES:
            return value
        custom = (info.context or {}).get("custom_task_types") or []
        for name in custom:
            if value == str(name).strip().lower():
                return value
        return TaskType.GENERAL.value


# =============================================================================
# ROUTER CONFIG
# =============================================================================

class RouterConditions(_CamelModel):
    """AND-combined. None means wildcard."""
    task_types: Optional[List[str]] = None
    task_type_descriptions: Optional[Dict[str, str]] = None
    complexity: Optional[List[Complexity]] = None
    security_score_max: Optional[int] = None
    prompt_length_min: Optional[int] = None
    prompt_length_max: Optional[int] = None
    custom_regex: Optional[str] = None


class RouterRule(_CamelModel):
    id: str
    name: str
    enabled: bool = True
    conditions: RouterConditions = Field(default_factory=RouterConditions)
    model_priority: List[str] = Field(default_factory=list)
    reasoning: str = ""


class RouterConfig(_CamelModel):
    rules: List[RouterRule] = Field(default_factory=list)
    catch_all: List[str] = Field(default_factory=list)
    scope: ConfigScope = ConfigScope.ORG
    version: int = 1


class RouteDecision(_CamelModel):
    """Outcome of the rule router or the heuristic selector."""
    model: ModelOption
    fallback: Optional[ModelOption] = None
    reasoning: str
    source: str = "heuristic"  # "rule" | "catch_all" | "heuristic"
    rule_id: Optional[str] = None


# =============================================================================
# GENERATION
# =============================================================================

class ParameterTuning(_CamelModel):
    temperature: float = 0.7
    top_p: float = 1.0
    max_tokens: int = 4000

    @field_validator("temperature", "top_p", mode="before")
    @classmethod
    def _clamp_unit(cls, v: Any) -> float:
        return max(0.0, min(1.0, _number(v)))

    @field_validator("max_tokens", mode="before")
    @classmethod
    def _clamp_tokens(cls, v: Any) -> int:
        return _clamp_int(v, 500, 16000)


class ConversationMessage(BaseModel):
    role: str
    content: str


class PhaseUpdate(_CamelModel):
    job_id: str
    phase: Phase
    status: PhaseStatus
    sequence: int = 0
    payload: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.phase in (Phase.COMPLETE, Phase.CANCELLED)


__all__ = [
    "Provider",
    "CostTier",
    "COST_TIER_ORDER",
    "SpeedTier",
    "SPEED_TIER_ORDER",
    "TaskType",
    "CORE_TASK_TYPES",
    "Complexity",
    "Sentiment",
    "Style",
    "ConfigScope",
    "Phase",
    "PhaseStatus",
    "ModelPricing",
    "ModelOption",
    "PromptQuality",
    "AnalysisResult",
    "RouterConditions",
    "RouterRule",
    "RouterConfig",
    "RouteDecision",
    "ParameterTuning",
    "ConversationMessage",
    "PhaseUpdate",
]
