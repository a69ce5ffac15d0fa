# FILE: helm/llm/interfaces.py
"""
Collaborator interfaces consumed by the orchestrator, plus in-process
defaults.

The orchestrator only depends on these protocols. Persistence (database
tables, encrypted key storage) lives outside this package; the defaults here
keep everything in memory so the pipeline runs standalone and in tests.

    RedactionService     scan(text) -> ScanResult           [DlpScanner]
    AdmissionController  check_and_reserve / record_cost    [BudgetAdmissionController]
    RouterConfigStore    load(org_id, user_id)              [InMemoryRouterConfigStore]
    OrgSettingsStore     get_security_threshold(org_id)     [InMemoryOrgSettingsStore]
    AnalyticsSink        record_halt / record_job           [LoggingAnalyticsSink]
    MessageStore         save_assistant_message(...)        [InMemoryMessageStore]
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

from helm.llm.schemas import RouterConfig
from helm.security.dlp import ScanResult
from helm.settings import DEFAULT_SECURITY_THRESHOLD

logger = logging.getLogger(__name__)


# =============================================================================
# PROTOCOLS
# =============================================================================

@dataclass
class AdmissionDecision:
    allowed: bool
    reason: Optional[str] = None
    remaining: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"allowed": self.allowed, "reason": self.reason, "remaining": self.remaining}


class RedactionService(Protocol):
    def scan(self, text: str) -> ScanResult:
        ...


class AdmissionController(Protocol):
    async def check_and_reserve(self, identity: str) -> AdmissionDecision:
        ...

    async def record_cost(self, identity: str, cost_usd: float) -> None:
        ...


class RouterConfigStore(Protocol):
    async def load(self, org_id: str, user_id: Optional[str] = None) -> Optional[RouterConfig]:
        ...


class OrgSettingsStore(Protocol):
    async def get_security_threshold(self, org_id: str) -> int:
        ...


class AnalyticsSink(Protocol):
    async def record_halt(self, job_id: str, org_id: str, score: int, threshold: int, explanation: str) -> None:
        ...

    async def record_job(self, job_id: str, org_id: str, summary: Dict[str, Any]) -> None:
        ...


class MessageStore(Protocol):
    async def save_assistant_message(self, job_id: str, content: str, model: str) -> None:
        ...


# =============================================================================
# IN-MEMORY DEFAULTS
# =============================================================================

class InMemoryRouterConfigStore:
    """User override first, then the org config."""

    def __init__(self) -> None:
        self._org: Dict[str, RouterConfig] = {}
        self._user: Dict[tuple, RouterConfig] = {}

    def save(self, org_id: str, config: RouterConfig, user_id: Optional[str] = None) -> None:
        if user_id:
            self._user[(org_id, user_id)] = config
        else:
            self._org[org_id] = config

    async def load(self, org_id: str, user_id: Optional[str] = None) -> Optional[RouterConfig]:
        if user_id and (org_id, user_id) in self._user:
            return self._user[(org_id, user_id)]
        return self._org.get(org_id)


class InMemoryOrgSettingsStore:
    def __init__(self, thresholds: Optional[Dict[str, int]] = None):
        self._thresholds: Dict[str, int] = dict(thresholds or {})

    def set_security_threshold(self, org_id: str, threshold: int) -> None:
        self._thresholds[org_id] = threshold

    async def get_security_threshold(self, org_id: str) -> int:
        return self._thresholds.get(org_id, DEFAULT_SECURITY_THRESHOLD)


class LoggingAnalyticsSink:
    """Writes analytics to the log; keeps the records for inspection."""

    def __init__(self) -> None:
        self.halts: List[Dict[str, Any]] = []
        self.jobs: List[Dict[str, Any]] = []

    async def record_halt(self, job_id: str, org_id: str, score: int, threshold: int, explanation: str) -> None:
        self.halts.append({
            "job_id": job_id,
            "org_id": org_id,
            "score": score,
            "threshold": threshold,
            "explanation": explanation,
        })
        logger.info(f"[analytics] Halt job={job_id} org={org_id} score={score}/{threshold}")

    async def record_job(self, job_id: str, org_id: str, summary: Dict[str, Any]) -> None:
        self.jobs.append({"job_id": job_id, "org_id": org_id, **summary})
        logger.info(f"[analytics] Job {job_id} finished: model={summary.get('model')} cost={summary.get('cost')}")


class InMemoryMessageStore:
    def __init__(self) -> None:
        self.messages: List[Dict[str, str]] = []

    async def save_assistant_message(self, job_id: str, content: str, model: str) -> None:
        self.messages.append({"job_id": job_id, "content": content, "model": model})


__all__ = [
    "AdmissionDecision",
    "RedactionService",
    "AdmissionController",
    "RouterConfigStore",
    "OrgSettingsStore",
    "AnalyticsSink",
    "MessageStore",
    "InMemoryRouterConfigStore",
    "InMemoryOrgSettingsStore",
    "LoggingAnalyticsSink",
    "InMemoryMessageStore",
]
