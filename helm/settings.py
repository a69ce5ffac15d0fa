# FILE: helm/settings.py
"""
Environment-driven settings for the Helm pipeline.

All values are read once at import time. The FastAPI entrypoint calls
load_dotenv() before importing anything from helm, so a local .env file
is honoured.
"""

import os


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


# =============================================================================
# PIPELINE
# =============================================================================

# Validation-triggered retries (attempt budget is MAX_RETRIES + 1)
MAX_RETRIES = _int_env("HELM_MAX_RETRIES", 2)

# Security halt threshold when the org has no setting
DEFAULT_SECURITY_THRESHOLD = _int_env("HELM_DEFAULT_SECURITY_THRESHOLD", 8)

# Assumed output tokens for cost projections
DEFAULT_OUTPUT_TOKENS = _int_env("HELM_DEFAULT_OUTPUT_TOKENS", 500)

# Finished jobs whose final state stays queryable
JOB_HISTORY_SIZE = _int_env("HELM_JOB_HISTORY_SIZE", 1000)

# Per-call provider timeout
PROVIDER_TIMEOUT_SECONDS = _int_env("HELM_PROVIDER_TIMEOUT_SECONDS", 60)

# Verbose routing logs
ROUTER_DEBUG = os.getenv("HELM_ROUTER_DEBUG", "0") == "1"


# =============================================================================
# DISCOVERY
# =============================================================================

DISCOVERY_STARTUP_DELAY_SECONDS = _int_env("HELM_DISCOVERY_STARTUP_DELAY_SECONDS", 30)
DISCOVERY_INTERVAL_SECONDS = _int_env("HELM_DISCOVERY_INTERVAL_SECONDS", 86400)


# =============================================================================
# ADMISSION
# =============================================================================

DAILY_BUDGET_USD = _float_env("HELM_DAILY_BUDGET_USD", 5.0)
RATE_LIMIT_PER_WINDOW = _int_env("HELM_RATE_LIMIT_PER_WINDOW", 20)
RATE_WINDOW_SECONDS = _int_env("HELM_RATE_WINDOW_SECONDS", 3600)
