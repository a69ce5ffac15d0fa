# FILE: helm/llm/generation.py
"""
Generation with failover and bounded quality upgrades.

Version: 0.4.0

GenerationRunner owns the GENERATE / FAILOVER / VALIDATE / UPGRADE part of
a job:

    GENERATE --provider error--> FAILOVER --alternative--> GENERATE
    GENERATE --ok--> VALIDATE --fail, budget left, higher tier--> UPGRADE --> GENERATE
    VALIDATE --pass | budget spent | no higher tier--> done

Every streamed chunk is published as a `token` update. A reroute publishes
`reroute` then `clear`; an upgrade publishes `upgrade` then `clear`, so the
client can drop the partial text it has shown so far.

Providers that fail during the job are excluded for the rest of it, for
both failover and upgrade candidates.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from helm.llm.analysis_calls import ResponseValidation, validate_response
from helm.llm.catalog import CatalogSnapshot
from helm.llm.errors import JobCancelled, ProviderError, ProvidersExhaustedError
from helm.llm.events import CancelToken, PhaseEmitter
from helm.llm.fallbacks import FailoverEvent, ProviderFailure, select_alternative_model, select_upgrade_model
from helm.llm.model_selection import select_cheapest_model
from helm.llm.schemas import ModelOption, ParameterTuning, Phase, PhaseStatus, Provider
from helm.providers.registry import ProviderRegistry
from helm.settings import MAX_RETRIES

logger = logging.getLogger(__name__)

UPGRADE_TEMPERATURE_STEP = 0.2


@dataclass
class GenerationOutcome:
    response: str
    model: ModelOption
    params: ParameterTuning
    attempts: int
    validation: Optional[ResponseValidation] = None
    failures: List[ProviderFailure] = field(default_factory=list)
    reroutes: List[FailoverEvent] = field(default_factory=list)
    upgrades: List[Tuple[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model": self.model.model_id,
            "provider": self.model.provider.value,
            "attempts": self.attempts,
            "validation": self.validation.to_dict() if self.validation else None,
            "failures": [f.to_dict() for f in self.failures],
            "reroutes": [r.to_payload() for r in self.reroutes],
            "upgrades": [{"from": a, "to": b} for a, b in self.upgrades],
        }


def _model_payload(model: ModelOption) -> Dict[str, Any]:
    return {
        "model": model.display_name,
        "modelId": model.model_id,
        "provider": model.provider.value,
        "costTier": model.cost_tier.value,
    }


class GenerationRunner:
    def __init__(
        self,
        registry: ProviderRegistry,
        catalog: CatalogSnapshot,
        emitter: PhaseEmitter,
        cancel: Optional[CancelToken] = None,
        judge_model: Optional[ModelOption] = None,
        max_retries: int = MAX_RETRIES,
    ):
        self.registry = registry
        self.catalog = catalog
        self.emitter = emitter
        self.cancel = cancel or CancelToken()
        self.judge_model = judge_model
        self.max_retries = max_retries

        self.excluded: Set[Provider] = set()
        self.failures: List[ProviderFailure] = []
        self.reroutes: List[FailoverEvent] = []

    # ---- helpers ----

    def _check_cancel(self) -> None:
        if self.cancel.is_cancelled:
            raise JobCancelled(self.emitter.job_id)

    def reachable_models(self) -> List[ModelOption]:
        providers = [p for p in self.registry.available_providers() if p not in self.excluded]
        return self.catalog.available_models(providers)

    def _judge(self) -> Optional[ModelOption]:
        if self.judge_model is not None and self.judge_model.provider not in self.excluded:
            return self.judge_model
        providers = [p for p in self.registry.available_providers() if p not in self.excluded]
        return select_cheapest_model(providers, self.catalog)

    async def _on_token(self, chunk: str) -> None:
        self.emitter.emit(Phase.TOKEN, PhaseStatus.PROCESSING, {"token": chunk})

    # ---- GENERATE / FAILOVER ----

    async def generate_with_failover(
        self,
        model: ModelOption,
        messages: List[dict],
        params: ParameterTuning,
        system_prompt: Optional[str] = None,
    ) -> Tuple[str, ModelOption]:
        """Stream one response, rerouting to another provider on failure."""
        current = model
        while True:
            self._check_cancel()
            adapter = self.registry.get(current.provider)
            self.emitter.emit(Phase.GENERATING, PhaseStatus.PROCESSING, _model_payload(current))
            try:
                text = await adapter.stream(
                    current.model_id,
                    messages,
                    params,
                    self._on_token,
                    cancel=self.cancel,
                    system_prompt=system_prompt,
                )
            except ProviderError as exc:
                self.failures.append(ProviderFailure.from_error(current, exc))
                self.excluded.add(current.provider)
                alternative = select_alternative_model(current, self.reachable_models(), self.excluded)
                if alternative is None:
                    tried = ", ".join(f"{f.provider} ({f.kind.value})" for f in self.failures)
                    raise ProvidersExhaustedError(
                        f"All available providers failed: {tried}. Check provider status or add another API key."
                    ) from exc

                event = FailoverEvent(current, alternative, exc.message, exc.kind)
                self.reroutes.append(event)
                logger.warning(
                    f"[failover] {current.model_id} failed ({exc.kind.value}); rerouting to {alternative.model_id}"
                )
                self.emitter.emit(Phase.REROUTE, PhaseStatus.COMPLETED, event.to_payload())
                self.emitter.emit(Phase.CLEAR, PhaseStatus.COMPLETED, {"reason": "reroute"})
                current = alternative
                continue

            self.emitter.emit(Phase.GENERATING, PhaseStatus.COMPLETED, _model_payload(current))
            return text, current

    # ---- VALIDATE / UPGRADE ----

    async def _validate(self, user_message: str, intent: str, response: str) -> ResponseValidation:
        self._check_cancel()
        judge = self._judge()
        if judge is None:
            return ResponseValidation(passed=True)
        return await validate_response(
            self.registry.get(judge.provider),
            judge,
            user_message,
            intent,
            response,
            cancel=self.cancel,
        )

    async def run(
        self,
        model: ModelOption,
        messages: List[dict],
        params: ParameterTuning,
        user_message: str,
        intent: str,
        system_prompt: Optional[str] = None,
    ) -> GenerationOutcome:
        max_attempts = self.max_retries + 1
        current_model = model
        current_params = params
        upgrades: List[Tuple[str, str]] = []
        attempt = 0

        while True:
            attempt += 1
            response, current_model = await self.generate_with_failover(
                current_model, messages, current_params, system_prompt
            )

            self.emitter.emit(Phase.VALIDATION, PhaseStatus.PROCESSING)
            validation = await self._validate(user_message, intent, response)
            self.emitter.emit(Phase.VALIDATION, PhaseStatus.COMPLETED, {
                **validation.to_dict(),
                "attempt": attempt,
                "maxAttempts": max_attempts,
            })

            if validation.passed:
                break
            if attempt >= max_attempts:
                logger.info(f"[validation] Attempt budget spent; accepting response from {current_model.model_id}")
                break
            upgrade = select_upgrade_model(current_model, self.reachable_models())
            if upgrade is None:
                logger.info(f"[validation] No higher tier reachable above {current_model.model_id}; accepting")
                break

            self._check_cancel()
            new_temperature = min(1.0, current_params.temperature + UPGRADE_TEMPERATURE_STEP)
            logger.info(
                f"[validation] Failed ({validation.fail_reason or 'unspecified'}); "
                f"upgrading {current_model.model_id} -> {upgrade.model_id}"
            )
            self.emitter.emit(Phase.UPGRADE, PhaseStatus.COMPLETED, {
                "from": current_model.display_name,
                "to": upgrade.display_name,
                "toModel": upgrade.model_id,
                "reason": validation.fail_reason,
                "attempt": attempt + 1,
                "temperature": new_temperature,
            })
            self.emitter.emit(Phase.CLEAR, PhaseStatus.COMPLETED, {"reason": "upgrade"})
            upgrades.append((current_model.model_id, upgrade.model_id))
            current_model = upgrade
            current_params = current_params.model_copy(update={"temperature": new_temperature})

        return GenerationOutcome(
            response=response,
            model=current_model,
            params=current_params,
            attempts=attempt,
            validation=validation,
            failures=list(self.failures),
            reroutes=list(self.reroutes),
            upgrades=upgrades,
        )


__all__ = [
    "GenerationOutcome",
    "GenerationRunner",
    "UPGRADE_TEMPERATURE_STEP",
]
