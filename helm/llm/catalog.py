# FILE: helm/llm/catalog.py
"""
Model catalog snapshot.

A CatalogSnapshot is immutable: discovery builds a new one and publishes it
through CatalogHolder, which swaps the reference under a lock. Pipeline code
takes the snapshot as a parameter at the start of a job and keeps using that
same snapshot until the job ends, even if a refresh lands mid-flight.

Usage:
    from helm.llm.catalog import get_catalog_holder

    snapshot = get_catalog_holder().current()
    model = snapshot.resolve("claude-sonnet")
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from helm.llm.model_families import (
    DEFAULT_MODEL_IDS,
    MODEL_FAMILIES,
    build_model_option,
    family_for_model_id,
)
from helm.llm.schemas import ModelOption, Provider

logger = logging.getLogger(__name__)


class CatalogSnapshot:
    """Read-only view of the routable models at one point in time."""

    __slots__ = ("_models", "_by_alias", "_by_id", "created_at", "version")

    def __init__(self, models: Iterable[ModelOption], version: int = 1, created_at: Optional[datetime] = None):
        self._models: Tuple[ModelOption, ...] = tuple(models)
        self._by_alias: Dict[str, ModelOption] = {m.alias: m for m in self._models if m.alias}
        self._by_id: Dict[str, ModelOption] = {m.model_id: m for m in self._models}
        self.created_at = created_at or datetime.now(timezone.utc)
        self.version = version

    @classmethod
    def from_alias_map(cls, alias_to_model_id: Optional[Mapping[str, str]] = None, version: int = 1) -> "CatalogSnapshot":
        """Build a snapshot from alias -> concrete id (missing aliases use defaults)."""
        mapping = dict(DEFAULT_MODEL_IDS)
        if alias_to_model_id:
            mapping.update(alias_to_model_id)
        models = [build_model_option(f, mapping.get(f.alias)) for f in MODEL_FAMILIES]
        return cls(models, version=version)

    @property
    def models(self) -> Tuple[ModelOption, ...]:
        return self._models

    @property
    def alias_map(self) -> Dict[str, str]:
        return {alias: m.model_id for alias, m in self._by_alias.items()}

    def __len__(self) -> int:
        return len(self._models)

    def __iter__(self):
        return iter(self._models)

    def resolve(self, identifier: str) -> Optional[ModelOption]:
        """Resolve an alias or a concrete model id.

        A concrete id not in the snapshot is still accepted when it matches
        a known family pattern (e.g. a dated snapshot id pinned by a rule).
        """
        if not identifier:
            return None
        key = identifier.strip()
        if key in self._by_alias:
            return self._by_alias[key]
        if key in self._by_id:
            return self._by_id[key]
        family = family_for_model_id(key)
        if family is not None:
            return build_model_option(family, key)
        return None

    def available_models(self, providers: Iterable[Provider]) -> List[ModelOption]:
        allowed = set(providers)
        return [m for m in self._models if m.provider in allowed]

    def for_provider(self, provider: Provider) -> List[ModelOption]:
        return [m for m in self._models if m.provider == provider]


class CatalogHolder:
    """Holds the current snapshot; publish() replaces it atomically."""

    def __init__(self, snapshot: Optional[CatalogSnapshot] = None):
        self._lock = threading.Lock()
        self._snapshot = snapshot or CatalogSnapshot.from_alias_map()

    def current(self) -> CatalogSnapshot:
        with self._lock:
            return self._snapshot

    def publish(self, snapshot: CatalogSnapshot) -> CatalogSnapshot:
        with self._lock:
            previous = self._snapshot
            self._snapshot = snapshot
        logger.info(
            f"[catalog] Published snapshot v{snapshot.version} ({len(snapshot)} models), "
            f"replacing v{previous.version}"
        )
        return previous


_holder: Optional[CatalogHolder] = None


def resolve_model_alias(identifier: str, snapshot: Optional[CatalogSnapshot] = None) -> Optional[str]:
    """Alias or raw id -> concrete model id (None when unknown)."""
    model = (snapshot or get_catalog_holder().current()).resolve(identifier)
    return model.model_id if model else None


def get_catalog_holder() -> CatalogHolder:
    global _holder
    if _holder is None:
        _holder = CatalogHolder()
    return _holder


__all__ = [
    "CatalogSnapshot",
    "CatalogHolder",
    "get_catalog_holder",
    "resolve_model_alias",
]
