# FILE: helm/llm/cost.py
"""
Cost projection from token counts and per-model pricing.

A model without a pricing entry yields an estimate flagged unavailable.
Zero is never reported as a real cost.
"""

import math
from dataclasses import dataclass
from typing import Optional

from helm.llm.schemas import ModelOption
from helm.settings import DEFAULT_OUTPUT_TOKENS

UNAVAILABLE_TEXT = "Cost estimate unavailable"


@dataclass(frozen=True)
class CostEstimate:
    input_cost: float
    output_cost: float
    total_cost: float
    display_text: str
    available: bool = True

    def to_dict(self) -> dict:
        return {
            "input_cost": self.input_cost,
            "output_cost": self.output_cost,
            "total_cost": self.total_cost,
            "display_text": self.display_text,
            "available": self.available,
        }


def estimate_tokens(text: str) -> int:
    """Rough token count: four characters per token."""
    return math.ceil(len(text or "") / 4)


def format_cost(total: float) -> str:
    if total < 0.001:
        return "< $0.001"
    if total < 0.01:
        return f"~${total:.4f}"
    if total < 1:
        return f"~${total:.3f}"
    return f"~${total:.2f}"


def estimate_cost(
    model: ModelOption,
    input_tokens: int,
    output_tokens: Optional[int] = None,
) -> CostEstimate:
    if output_tokens is None:
        output_tokens = DEFAULT_OUTPUT_TOKENS

    if model.pricing is None:
        return CostEstimate(0.0, 0.0, 0.0, UNAVAILABLE_TEXT, available=False)

    input_cost = (max(0, input_tokens) / 1_000_000) * model.pricing.input
    output_cost = (max(0, output_tokens) / 1_000_000) * model.pricing.output
    total = input_cost + output_cost
    return CostEstimate(input_cost, output_cost, total, format_cost(total))


__all__ = [
    "CostEstimate",
    "estimate_tokens",
    "estimate_cost",
    "format_cost",
    "UNAVAILABLE_TEXT",
]
