# FILE: helm/llm/__init__.py
"""
LLM pipeline package.

Only the leaf modules (schemas, errors) are re-exported here; security and
provider modules import them, so anything heavier would create an import
cycle. Import the orchestrator from helm.llm.orchestrator.

v0.4.0: Orchestrator, failover/upgrade loop and natural-language config editing.
"""

# ============== SCHEMA EXPORTS ==============

from helm.llm.schemas import (
    AnalysisResult,
    CostTier,
    ModelOption,
    Phase,
    PhaseStatus,
    PhaseUpdate,
    Provider,
    RouteDecision,
    RouterConfig,
    RouterRule,
)

# ============== ERROR EXPORTS ==============

from helm.llm.errors import ErrorKind, HelmError, ProviderError

__all__ = [
    "AnalysisResult",
    "CostTier",
    "ModelOption",
    "Phase",
    "PhaseStatus",
    "PhaseUpdate",
    "Provider",
    "RouteDecision",
    "RouterConfig",
    "RouterRule",
    "ErrorKind",
    "HelmError",
    "ProviderError",
]
