# FILE: helm/jobs/admission.py
"""
Budget admission for shared (server-owned) provider keys.

Three limits, checked in this order:
1. Daily USD budget across all identities (resets at UTC midnight)
2. Per-identity rate limit: at most RATE_LIMIT_PER_WINDOW jobs in any
   sliding RATE_WINDOW_SECONDS window
3. Reservation: a job that passes is counted immediately, so two jobs racing
   for the last slot cannot both be admitted

check_and_reserve() and record_cost() share one asyncio.Lock.
"""

import asyncio
import logging
import time
from collections import deque
from datetime import date, datetime, timezone
from typing import Callable, Deque, Dict, Optional

from helm.llm.interfaces import AdmissionDecision
from helm.settings import DAILY_BUDGET_USD, RATE_LIMIT_PER_WINDOW, RATE_WINDOW_SECONDS

logger = logging.getLogger(__name__)

BUDGET_EXHAUSTED_REASON = (
    "Daily budget exhausted for today. Please add your own API keys in Settings for unlimited access."
)


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


class BudgetAdmissionController:
    def __init__(
        self,
        daily_budget_usd: float = DAILY_BUDGET_USD,
        max_per_window: int = RATE_LIMIT_PER_WINDOW,
        window_seconds: float = RATE_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        today: Callable[[], date] = _utc_today,
    ):
        self.daily_budget_usd = daily_budget_usd
        self.max_per_window = max_per_window
        self.window_seconds = window_seconds
        self._clock = clock
        self._today = today

        self._lock = asyncio.Lock()
        self._requests: Dict[str, Deque[float]] = {}
        self._spent_today_usd = 0.0
        self._current_day = today()

    def _rollover(self) -> None:
        day = self._today()
        if day != self._current_day:
            logger.info(f"[admission] Day rollover; spent ${self._spent_today_usd:.4f} on {self._current_day}")
            self._spent_today_usd = 0.0
            self._current_day = day

    def _window(self, identity: str, now: float) -> Deque[float]:
        window = self._requests.setdefault(identity, deque())
        while window and now - window[0] >= self.window_seconds:
            window.popleft()
        return window

    @property
    def spent_today_usd(self) -> float:
        return self._spent_today_usd

    async def check_and_reserve(self, identity: str) -> AdmissionDecision:
        async with self._lock:
            self._rollover()

            if self._spent_today_usd >= self.daily_budget_usd:
                logger.warning(f"[admission] Budget exhausted; rejecting {identity}")
                return AdmissionDecision(False, BUDGET_EXHAUSTED_REASON, 0)

            now = self._clock()
            window = self._window(identity, now)
            if len(window) >= self.max_per_window:
                logger.warning(f"[admission] Rate limit reached for {identity}")
                return AdmissionDecision(
                    False,
                    f"Rate limit reached ({self.max_per_window} messages per "
                    f"{int(self.window_seconds // 60)} minutes). Add your own API keys in Settings for unlimited access.",
                    0,
                )

            window.append(now)
            return AdmissionDecision(True, None, self.max_per_window - len(window))

    async def record_cost(self, identity: str, cost_usd: float) -> None:
        if cost_usd <= 0:
            return
        async with self._lock:
            self._rollover()
            self._spent_today_usd += cost_usd
        logger.info(f"[admission] {identity} spent ${cost_usd:.4f}; today ${self._spent_today_usd:.4f}")

    def remaining(self, identity: str) -> int:
        window = self._window(identity, self._clock())
        return max(0, self.max_per_window - len(window))


class UnlimitedAdmissionController:
    """Used when requests bring their own keys."""

    async def check_and_reserve(self, identity: str) -> AdmissionDecision:
        return AdmissionDecision(True)

    async def record_cost(self, identity: str, cost_usd: float) -> None:
        return None


_controller: Optional[BudgetAdmissionController] = None


def get_admission_controller() -> BudgetAdmissionController:
    global _controller
    if _controller is None:
        _controller = BudgetAdmissionController()
    return _controller


__all__ = [
    "BUDGET_EXHAUSTED_REASON",
    "BudgetAdmissionController",
    "UnlimitedAdmissionController",
    "get_admission_controller",
]
