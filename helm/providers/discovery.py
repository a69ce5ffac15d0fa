# FILE: helm/providers/discovery.py
"""
Model discovery.

Lists models from every configured provider, picks the newest concrete id
for each family alias and publishes a fresh CatalogSnapshot. A provider
whose listing fails is reported in DiscoveryReport.errors and its aliases
keep their previous ids; discovery itself never raises for that.

Scheduling: one run DISCOVERY_STARTUP_DELAY_SECONDS after startup, then
every DISCOVERY_INTERVAL_SECONDS.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from helm.llm.catalog import CatalogHolder, CatalogSnapshot, get_catalog_holder
from helm.llm.model_families import MODEL_FAMILIES, ModelFamily
from helm.llm.schemas import Provider
from helm.providers.registry import ProviderRegistry, get_provider_registry
from helm.settings import DISCOVERY_INTERVAL_SECONDS, DISCOVERY_STARTUP_DELAY_SECONDS

logger = logging.getLogger(__name__)

# Minor version is at most two digits, so a date suffix never reads as one
_VERSION_PAIR = re.compile(r"(\d+)[-.](\d{1,2})(?!\d)")
_VERSION_SINGLE = re.compile(r"(\d+)")


def extract_version(model_id: str) -> float:
    """gemini-2.5-pro -> 2.5, gpt-5-nano -> 5, claude-sonnet-4-5-20250514 -> 4.5,
    claude-sonnet-4-20250514 -> 4"""
    pair = _VERSION_PAIR.search(model_id)
    if pair:
        return float(f"{pair.group(1)}.{pair.group(2)}")
    single = _VERSION_SINGLE.search(model_id)
    if single:
        return float(single.group(1))
    return 0.0


def find_best_match(model_ids: List[str], family: ModelFamily) -> Optional[str]:
    """Highest version wins; ties go to the shortest id (no date suffix)."""
    matches = [m for m in model_ids if family.matches(m)]
    if not matches:
        return None
    matches.sort(key=lambda m: (-extract_version(m), len(m)))
    return matches[0]


@dataclass
class DiscoveryResult:
    alias: str
    previous_model_id: str
    new_model_id: str
    changed: bool

    def to_dict(self) -> dict:
        return {
            "alias": self.alias,
            "previous_model_id": self.previous_model_id,
            "new_model_id": self.new_model_id,
            "changed": self.changed,
        }


@dataclass
class DiscoveryReport:
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    results: List[DiscoveryResult] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def has_updates(self) -> bool:
        return any(r.changed for r in self.results)

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "results": [r.to_dict() for r in self.results],
            "errors": list(self.errors),
            "has_updates": self.has_updates,
        }


class ModelDiscoveryService:
    def __init__(self, registry: ProviderRegistry, holder: CatalogHolder):
        self._registry = registry
        self._holder = holder
        self._task: Optional[asyncio.Task] = None
        self.last_report: Optional[DiscoveryReport] = None

    async def _list_all(self, report: DiscoveryReport) -> Dict[Provider, List[str]]:
        adapters = list(self._registry.adapters())
        outcomes = await asyncio.gather(*(a.list_models() for a in adapters), return_exceptions=True)

        listed: Dict[Provider, List[str]] = {}
        for adapter, outcome in zip(adapters, outcomes):
            if isinstance(outcome, BaseException):
                report.errors.append(f"{adapter.provider.value} discovery failed: {outcome}")
                logger.warning(f"[discovery] {adapter.provider.value} listing failed: {outcome}")
                continue
            listed[adapter.provider] = list(outcome)
        return listed

    async def run_discovery(self) -> DiscoveryReport:
        report = DiscoveryReport()
        listed = await self._list_all(report)

        current = self._holder.current()
        previous_ids = current.alias_map
        new_ids: Dict[str, str] = dict(previous_ids)

        for family in MODEL_FAMILIES:
            model_ids = listed.get(family.provider)
            if not model_ids:
                continue
            previous = previous_ids.get(family.alias, family.default_model_id)
            best = find_best_match(model_ids, family)
            changed = best is not None and best != previous
            if changed:
                new_ids[family.alias] = best
            report.results.append(DiscoveryResult(family.alias, previous, best or previous, changed))

        if report.has_updates:
            self._holder.publish(CatalogSnapshot.from_alias_map(new_ids, version=current.version + 1))
            logger.info(
                "[discovery] Updated: "
                + ", ".join(f"{r.alias}={r.new_model_id}" for r in report.results if r.changed)
            )
        else:
            logger.info("[discovery] All models up to date")

        self.last_report = report
        return report

    async def _loop(self, startup_delay: float, interval: float) -> None:
        await asyncio.sleep(startup_delay)
        while True:
            try:
                await self.run_discovery()
            except Exception:
                logger.exception("[discovery] Scheduled run failed")
            await asyncio.sleep(interval)

    def start_scheduler(
        self,
        startup_delay: float = DISCOVERY_STARTUP_DELAY_SECONDS,
        interval: float = DISCOVERY_INTERVAL_SECONDS,
    ) -> None:
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._loop(startup_delay, interval))

    async def stop_scheduler(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None


_service: Optional[ModelDiscoveryService] = None


def get_discovery_service() -> ModelDiscoveryService:
    global _service
    if _service is None:
        _service = ModelDiscoveryService(get_provider_registry(), get_catalog_holder())
    return _service


def start_discovery_scheduler() -> ModelDiscoveryService:
    """Start periodic discovery on the shared service (call from app startup)."""
    service = get_discovery_service()
    service.start_scheduler()
    logger.info(
        f"[discovery] Scheduler started: first run in {DISCOVERY_STARTUP_DELAY_SECONDS}s, "
        f"then every {DISCOVERY_INTERVAL_SECONDS}s"
    )
    return service


__all__ = [
    "extract_version",
    "find_best_match",
    "DiscoveryResult",
    "DiscoveryReport",
    "ModelDiscoveryService",
    "get_discovery_service",
    "start_discovery_scheduler",
]
