# FILE: helm/security/__init__.py
"""Request screening: regex pre-check, security gate and DLP redaction."""

from helm.security.precheck import PreCheckResult, security_precheck
from helm.security.gate import GateDecision, evaluate_security_gate
from helm.security.dlp import DlpScanner, ScanResult

__all__ = [
    "PreCheckResult",
    "security_precheck",
    "GateDecision",
    "evaluate_security_gate",
    "DlpScanner",
    "ScanResult",
]
