# FILE: helm/llm/orchestrator.py
"""
Helm pipeline orchestrator.

Version: 0.4.0

One call to run_job() drives one message through the whole pipeline and
publishes every step to the PhaseChannel:

    PRECHECK -> ANALYZE -> HALT
                        -> ROUTE -> OPTIMIZE -> TUNE -> GENERATE <-> FAILOVER
                                                    -> VALIDATE <-> UPGRADE -> COMPLETE | ERROR

Event contract:
- intent / sentiment / style / security: processing, then completed
- halt (security gate) is followed by complete/error; nothing else runs
- model -> prompt -> parameters -> generating/token... -> validation -> response
- the final update is `complete` (completed or error), or `cancelled` when
  the job was cancelled

The message and every prior turn are redacted before any provider sees them.
Errors are dispatched on ErrorKind; side work (prompt optimization, tuning,
analytics, message commit) never fails a job.
"""

import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple

from helm.jobs.admission import UnlimitedAdmissionController
from helm.llm.analysis_calls import optimize_prompt, tune_parameters
from helm.llm.catalog import CatalogHolder, CatalogSnapshot, get_catalog_holder
from helm.llm.consolidated_analysis import ConsolidatedAnalyzer
from helm.llm.cost import estimate_cost, estimate_tokens
from helm.llm.errors import (
    AnalysisAuthError,
    ConfigError,
    ErrorKind,
    HelmError,
    JobCancelled,
    SecurityHalt,
)
from helm.llm.events import CancelToken, PhaseChannel, PhaseEmitter
from helm.llm.generation import GenerationOutcome, GenerationRunner
from helm.llm.interfaces import (
    AdmissionController,
    AnalyticsSink,
    InMemoryMessageStore,
    InMemoryOrgSettingsStore,
    InMemoryRouterConfigStore,
    LoggingAnalyticsSink,
    MessageStore,
    OrgSettingsStore,
    RedactionService,
    RouterConfigStore,
)
from helm.llm.model_selection import NO_PROVIDERS_MESSAGE, select_cheapest_model, select_optimal_model
from helm.llm.router import evaluate_rules, extract_custom_task_types, load_router_config
from helm.llm.schemas import (
    AnalysisResult,
    ConversationMessage,
    ParameterTuning,
    Phase,
    PhaseStatus,
    PhaseUpdate,
    Provider,
    RouteDecision,
)
from helm.providers.registry import ProviderRegistry
from helm.security.dlp import DlpScanner
from helm.security.gate import evaluate_security_gate
from helm.security.precheck import PreCheckResult, security_precheck
from helm.settings import DEFAULT_SECURITY_THRESHOLD, JOB_HISTORY_SIZE, MAX_RETRIES

logger = logging.getLogger(__name__)

ALL_KEYS_REJECTED_MESSAGE = (
    "Every configured API key was rejected during analysis. Update your API keys in Settings."
)


# =============================================================================
# JOB TYPES
# =============================================================================

class JobState(str, Enum):
    PENDING = "pending"
    PRECHECK = "precheck"
    ANALYZE = "analyze"
    HALT = "halt"
    ROUTE = "route"
    OPTIMIZE = "optimize"
    TUNE = "tune"
    GENERATE = "generate"
    VALIDATE = "validate"
    COMPLETE = "complete"
    ERROR = "error"
    CANCELLED = "cancelled"


@dataclass
class JobRequest:
    message: str
    org_id: str = "default"
    user_id: Optional[str] = None
    history: List[ConversationMessage] = field(default_factory=list)
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    # Admission key; defaults to user_id, then org_id
    identity: Optional[str] = None
    system_prompt: Optional[str] = None

    @property
    def admission_identity(self) -> str:
        return self.identity or self.user_id or self.org_id


@dataclass
class JobResult:
    job_id: str
    state: JobState
    response: Optional[str] = None
    analysis: Optional[AnalysisResult] = None
    route: Optional[RouteDecision] = None
    outcome: Optional[GenerationOutcome] = None
    cost_usd: float = 0.0
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "state": self.state.value,
            "response": self.response,
            "model": self.outcome.model.model_id if self.outcome else None,
            "cost_usd": self.cost_usd,
            "error": self.error,
            "error_kind": self.error_kind.value if self.error_kind else None,
        }


# =============================================================================
# ORCHESTRATOR
# =============================================================================

class PipelineOrchestrator:
    def __init__(
        self,
        registry: ProviderRegistry,
        channel: Optional[PhaseChannel] = None,
        catalog_holder: Optional[CatalogHolder] = None,
        redactor: Optional[RedactionService] = None,
        admission: Optional[AdmissionController] = None,
        router_store: Optional[RouterConfigStore] = None,
        org_settings: Optional[OrgSettingsStore] = None,
        analytics: Optional[AnalyticsSink] = None,
        messages: Optional[MessageStore] = None,
        max_retries: int = MAX_RETRIES,
        job_history_size: int = JOB_HISTORY_SIZE,
    ):
        self.registry = registry
        self.channel = channel or PhaseChannel()
        self.catalog_holder = catalog_holder or get_catalog_holder()
        self.redactor = redactor or DlpScanner()
        self.admission = admission or UnlimitedAdmissionController()
        self.router_store = router_store or InMemoryRouterConfigStore()
        self.org_settings = org_settings or InMemoryOrgSettingsStore()
        self.analytics = analytics or LoggingAnalyticsSink()
        self.messages = messages or InMemoryMessageStore()
        self.max_retries = max_retries
        self.job_history_size = max(0, job_history_size)

        self._tokens: Dict[str, CancelToken] = {}
        # Running jobs; finished ones move to _finished, oldest evicted first
        self._states: Dict[str, JobState] = {}
        self._finished: "OrderedDict[str, JobState]" = OrderedDict()

    # ---- job registry ----

    def state(self, job_id: str) -> Optional[JobState]:
        state = self._states.get(job_id)
        return state if state is not None else self._finished.get(job_id)

    def active_jobs(self) -> List[str]:
        return list(self._tokens)

    def cancel(self, job_id: str) -> PhaseUpdate:
        """Cancel a job. Always publishes a terminal `cancelled` update."""
        token = self._tokens.get(job_id)
        if token is not None:
            token.cancel()
            self._states[job_id] = JobState.CANCELLED
            logger.info(f"[orchestrator] Job {job_id} cancelled")
        else:
            logger.info(f"[orchestrator] Cancel for unknown or finished job {job_id}")
        return self.channel.publish(PhaseUpdate(job_id=job_id, phase=Phase.CANCELLED, status=PhaseStatus.COMPLETED))

    # ---- helpers ----

    def _remember(self, job_id: str, state: JobState) -> None:
        self._finished[job_id] = state
        self._finished.move_to_end(job_id)
        while len(self._finished) > self.job_history_size:
            self._finished.popitem(last=False)

    def _set_state(self, job_id: str, state: JobState, token: CancelToken) -> None:
        if token.is_cancelled:
            raise JobCancelled(job_id)
        self._states[job_id] = state

    def _redact(self, request: JobRequest) -> Tuple[str, List[ConversationMessage]]:
        scan = self.redactor.scan(request.message)
        total = len(scan.findings)
        history: List[ConversationMessage] = []
        for turn in request.history:
            turn_scan = self.redactor.scan(turn.content)
            total += len(turn_scan.findings)
            history.append(ConversationMessage(role=turn.role, content=turn_scan.redacted_text))
        if total:
            logger.info(f"[orchestrator] Redacted {total} sensitive item(s) for job {request.job_id}")
        return scan.redacted_text, history

    async def _threshold(self, org_id: str) -> int:
        try:
            return await self.org_settings.get_security_threshold(org_id)
        except Exception as exc:
            logger.warning(f"[orchestrator] Threshold lookup failed for org={org_id}, using default: {exc}")
            return DEFAULT_SECURITY_THRESHOLD

    async def _analyze(
        self,
        message: str,
        providers: Set[Provider],
        catalog: CatalogSnapshot,
        custom_task_types: List[Dict[str, str]],
        precheck: PreCheckResult,
        rejected: Set[Provider],
        registry: ProviderRegistry,
    ):
        """Cheapest model first; on a rejected key move to another provider."""
        while True:
            model = select_cheapest_model([p for p in providers if p not in rejected], catalog)
            if model is None:
                raise ConfigError(ALL_KEYS_REJECTED_MESSAGE if rejected else NO_PROVIDERS_MESSAGE)
            analyzer = ConsolidatedAnalyzer(registry.get(model.provider), model)
            try:
                return await analyzer.analyze(message, custom_task_types, precheck), model
            except AnalysisAuthError as exc:
                logger.warning(f"[analysis] {model.provider.value} key rejected; trying another provider: {exc}")
                rejected.add(model.provider)

    async def _side_call(self, coro, default, label: str):
        try:
            return await coro
        except (JobCancelled, SecurityHalt):
            raise
        except Exception as exc:
            logger.warning(f"[orchestrator] {label} failed, continuing: {exc}")
            return default

    def _emit_analysis(self, emitter: PhaseEmitter, analysis: AnalysisResult) -> None:
        emitter.emit(Phase.INTENT, PhaseStatus.COMPLETED, {
            "intent": analysis.intent,
            "taskType": analysis.task_type,
            "complexity": analysis.complexity.value,
            "promptQuality": analysis.prompt_quality.model_dump(by_alias=True),
        })
        emitter.emit(Phase.SENTIMENT, PhaseStatus.COMPLETED, {
            "sentiment": analysis.sentiment.value,
            "sentimentDetail": analysis.sentiment_detail,
        })
        emitter.emit(Phase.STYLE, PhaseStatus.COMPLETED, {"style": analysis.style.value})
        emitter.emit(Phase.SECURITY, PhaseStatus.COMPLETED, {
            "securityScore": analysis.security_score,
            "securityExplanation": analysis.security_explanation,
        })

    # ---- main entry ----

    async def run_job(self, request: JobRequest, registry: Optional[ProviderRegistry] = None) -> JobResult:
        """Run one job. A per-request registry (user-supplied keys) skips admission."""
        job_id = request.job_id
        token = CancelToken()
        self._tokens[job_id] = token
        self._states[job_id] = JobState.PENDING
        emitter = PhaseEmitter(self.channel, job_id)
        # One snapshot for the whole job, even if discovery publishes mid-flight
        catalog = self.catalog_holder.current()
        result = JobResult(job_id=job_id, state=JobState.PENDING)
        own_keys = registry is not None
        registry = registry or self.registry
        admission_controller = UnlimitedAdmissionController() if own_keys else self.admission

        try:
            admission = await admission_controller.check_and_reserve(request.admission_identity)
            if not admission.allowed:
                raise HelmError(admission.reason or "Request not admitted", ErrorKind.RATE_LIMIT)

            message, history = self._redact(request)

            # PRECHECK
            self._set_state(job_id, JobState.PRECHECK, token)
            # Precheck sees the unredacted message
            precheck = security_precheck(request.message)
            if precheck.triggered:
                logger.info(f"[precheck] job={job_id} floor={precheck.floor_score} flags={precheck.flags}")

            # ANALYZE
            self._set_state(job_id, JobState.ANALYZE, token)
            for phase in (Phase.INTENT, Phase.SENTIMENT, Phase.STYLE, Phase.SECURITY):
                emitter.emit(phase, PhaseStatus.PROCESSING)

            router_config = await load_router_config(self.router_store, request.org_id, request.user_id)
            custom_task_types = extract_custom_task_types(router_config.rules) if router_config else []
            rejected: Set[Provider] = set()
            analysis, analysis_model = await self._analyze(
                message,
                registry.available_providers(),
                catalog,
                custom_task_types,
                precheck,
                rejected,
                registry,
            )
            result.analysis = analysis
            self._set_state(job_id, JobState.ANALYZE, token)
            self._emit_analysis(emitter, analysis)

            # GATE
            gate = evaluate_security_gate(analysis, await self._threshold(request.org_id))
            if gate.halted:
                self._states[job_id] = JobState.HALT
                emitter.emit(Phase.HALT, PhaseStatus.COMPLETED, {
                    "securityScore": gate.score,
                    "threshold": gate.threshold,
                    "explanation": gate.explanation,
                })
                await self._side_call(
                    self.analytics.record_halt(job_id, request.org_id, gate.score, gate.threshold, gate.explanation),
                    None,
                    "Halt analytics",
                )
                raise SecurityHalt(gate.score, gate.threshold, gate.explanation)

            # ROUTE
            self._set_state(job_id, JobState.ROUTE, token)
            emitter.emit(Phase.MODEL, PhaseStatus.PROCESSING)
            providers = {p for p in registry.available_providers() if p not in rejected}
            decision = evaluate_rules(router_config, message, analysis, providers, catalog)
            if decision is None:
                decision = select_optimal_model(message, providers, catalog, analysis)
            result.route = decision

            input_tokens = estimate_tokens(message) + sum(estimate_tokens(t.content) for t in history)
            projected = estimate_cost(decision.model, input_tokens)
            emitter.emit(Phase.MODEL, PhaseStatus.COMPLETED, {
                "selectedModel": decision.model.display_name,
                "modelId": decision.model.model_id,
                "modelProvider": decision.model.provider.value,
                "reasoning": decision.reasoning,
                "source": decision.source,
                "ruleId": decision.rule_id,
                "fallbackModel": decision.fallback.display_name if decision.fallback else None,
                "estimatedCost": projected.display_text,
                "costAvailable": projected.available,
            })

            # OPTIMIZE
            self._set_state(job_id, JobState.OPTIMIZE, token)
            analysis_adapter = registry.get(analysis_model.provider)
            emitter.emit(Phase.PROMPT, PhaseStatus.PROCESSING)
            optimized = await self._side_call(
                optimize_prompt(
                    analysis_adapter,
                    analysis_model,
                    message,
                    history,
                    analysis.intent,
                    analysis.sentiment.value,
                    analysis.style.value,
                ),
                message,
                "Prompt optimization",
            )
            self._set_state(job_id, JobState.OPTIMIZE, token)
            emitter.emit(Phase.PROMPT, PhaseStatus.COMPLETED, {"optimizedPrompt": optimized})

            # TUNE
            self._set_state(job_id, JobState.TUNE, token)
            emitter.emit(Phase.PARAMETERS, PhaseStatus.PROCESSING)
            params = await self._side_call(
                tune_parameters(
                    analysis_adapter,
                    analysis_model,
                    analysis.intent,
                    analysis.sentiment.value,
                    optimized,
                ),
                ParameterTuning(),
                "Parameter tuning",
            )
            self._set_state(job_id, JobState.TUNE, token)
            emitter.emit(Phase.PARAMETERS, PhaseStatus.COMPLETED, {"parameters": params.model_dump(by_alias=True)})

            # GENERATE / VALIDATE
            self._set_state(job_id, JobState.GENERATE, token)
            runner = GenerationRunner(
                registry,
                catalog,
                emitter,
                cancel=token,
                judge_model=analysis_model,
                max_retries=self.max_retries,
            )
            runner.excluded.update(rejected)
            conversation = [{"role": t.role, "content": t.content} for t in history]
            conversation.append({"role": "user", "content": optimized})
            outcome = await runner.run(
                decision.model,
                conversation,
                params,
                user_message=message,
                intent=analysis.intent,
                system_prompt=request.system_prompt,
            )
            result.outcome = outcome
            result.response = outcome.response

            self._set_state(job_id, JobState.VALIDATE, token)
            actual = estimate_cost(outcome.model, input_tokens, estimate_tokens(outcome.response))
            result.cost_usd = actual.total_cost
            emitter.emit(Phase.RESPONSE, PhaseStatus.COMPLETED, {
                "response": outcome.response,
                "model": outcome.model.display_name,
                "modelId": outcome.model.model_id,
                "attempts": outcome.attempts,
                "cost": actual.display_text,
            })

            await self._side_call(
                self.messages.save_assistant_message(job_id, outcome.response, outcome.model.model_id),
                None,
                "Message commit",
            )
            await self._side_call(
                admission_controller.record_cost(request.admission_identity, actual.total_cost),
                None,
                "Cost accounting",
            )
            await self._side_call(
                self.analytics.record_job(job_id, request.org_id, {
                    "model": outcome.model.model_id,
                    "cost": actual.total_cost,
                    **outcome.to_dict(),
                }),
                None,
                "Job analytics",
            )

            self._set_state(job_id, JobState.COMPLETE, token)
            result.state = JobState.COMPLETE
            emitter.emit(Phase.COMPLETE, PhaseStatus.COMPLETED, {
                "model": outcome.model.model_id,
                "attempts": outcome.attempts,
                "reroutes": len(outcome.reroutes),
            })

        except JobCancelled:
            # cancel() already published the terminal update
            result.state = JobState.CANCELLED
            result.error_kind = ErrorKind.CANCELLED
            result.response = None
            logger.info(f"[orchestrator] Job {job_id} stopped after cancellation")

        except SecurityHalt as exc:
            result.state = JobState.HALT
            result.error = exc.message
            result.error_kind = exc.kind
            emitter.emit(Phase.COMPLETE, PhaseStatus.ERROR, {"halted": True}, error=exc.message)

        except HelmError as exc:
            result.state = JobState.ERROR
            result.error = exc.message
            result.error_kind = exc.kind
            logger.warning(f"[orchestrator] Job {job_id} failed ({exc.kind.value}): {exc.message}")
            emitter.emit(Phase.COMPLETE, PhaseStatus.ERROR, {"kind": exc.kind.value}, error=exc.message)

        except Exception:
            logger.exception(f"[orchestrator] Job {job_id} crashed")
            result.state = JobState.ERROR
            result.error = "Unexpected pipeline error"
            result.error_kind = ErrorKind.UNKNOWN
            emitter.emit(Phase.COMPLETE, PhaseStatus.ERROR, {"kind": ErrorKind.UNKNOWN.value}, error=result.error)

        finally:
            self._tokens.pop(job_id, None)
            self._states.pop(job_id, None)
            self._remember(job_id, result.state)

        return result


__all__ = [
    "JobState",
    "JobRequest",
    "JobResult",
    "PipelineOrchestrator",
    "ALL_KEYS_REJECTED_MESSAGE",
]
