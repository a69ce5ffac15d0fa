# FILE: helm/llm/errors.py
"""
Error taxonomy for the Helm pipeline.

Every failure that crosses an async boundary carries an ErrorKind. The
orchestrator dispatches on the kind, never on message text.

    AUTH / RATE_LIMIT / OUTAGE / MALFORMED  -> provider-level, trigger failover
    PARSE                                   -> analysis recovered locally
    CONFIG                                  -> terminal, actionable message
    SECURITY_HALT                           -> terminal
    PROVIDERS_EXHAUSTED                     -> terminal
    CANCELLED                               -> terminal "cancelled" event
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Closed set of failure kinds."""
    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    OUTAGE = "outage"
    MALFORMED = "malformed"
    PARSE = "parse"
    CONFIG = "config"
    SECURITY_HALT = "security_halt"
    PROVIDERS_EXHAUSTED = "providers_exhausted"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


class HelmError(Exception):
    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str, kind: Optional[ErrorKind] = None):
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind


class ProviderError(HelmError):
    """Raised by a provider adapter. `kind` says why."""

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.UNKNOWN,
        provider: Optional[str] = None,
        model_id: Optional[str] = None,
    ):
        super().__init__(message, kind)
        self.provider = provider
        self.model_id = model_id

    @property
    def is_auth(self) -> bool:
        return self.kind == ErrorKind.AUTH


class AnalysisParseError(HelmError):
    kind = ErrorKind.PARSE


class AnalysisAuthError(HelmError):
    kind = ErrorKind.AUTH

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider


class ConfigError(HelmError):
    kind = ErrorKind.CONFIG


class SecurityHalt(HelmError):
    kind = ErrorKind.SECURITY_HALT

    def __init__(self, score: int, threshold: int, explanation: str):
        super().__init__(
            f"Request halted: security score {score} meets threshold {threshold}"
        )
        self.score = score
        self.threshold = threshold
        self.explanation = explanation


class ProvidersExhaustedError(HelmError):
    kind = ErrorKind.PROVIDERS_EXHAUSTED


class JobCancelled(HelmError):
    kind = ErrorKind.CANCELLED

    def __init__(self, job_id: str = ""):
        super().__init__(f"Job {job_id} cancelled" if job_id else "Job cancelled")
        self.job_id = job_id


__all__ = [
    "ErrorKind",
    "HelmError",
    "ProviderError",
    "AnalysisParseError",
    "AnalysisAuthError",
    "ConfigError",
    "SecurityHalt",
    "ProvidersExhaustedError",
    "JobCancelled",
]
