# FILE: helm/providers/registry.py
"""
Provider registry.

Maps each configured Provider to its adapter. A provider is "available"
exactly when it has an adapter, which in turn means an API key was supplied
(from the environment or per request).

Usage:
    registry = ProviderRegistry.from_env()
    adapter = registry.get(Provider.ANTHROPIC)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional, Set

from helm.llm.errors import ConfigError
from helm.llm.schemas import Provider
from helm.providers.adapters import ADAPTER_CLASSES, ProviderAdapter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderConfig:
    provider: Provider
    display_name: str
    env_key_name: str
    status_url: str


PROVIDERS: Dict[Provider, ProviderConfig] = {
    Provider.OPENAI: ProviderConfig(Provider.OPENAI, "OpenAI", "OPENAI_API_KEY", "https://status.openai.com"),
    Provider.ANTHROPIC: ProviderConfig(Provider.ANTHROPIC, "Anthropic", "ANTHROPIC_API_KEY", "https://status.claude.com"),
    Provider.GEMINI: ProviderConfig(Provider.GEMINI, "Google (Gemini)", "GOOGLE_API_KEY", "https://status.cloud.google.com"),
}

PROVIDER_STATUS_URLS: Dict[str, str] = {p.value: cfg.status_url for p, cfg in PROVIDERS.items()}


def get_status_url(provider: str) -> Optional[str]:
    return PROVIDER_STATUS_URLS.get(provider)


def _coerce_provider(value) -> Optional[Provider]:
    if isinstance(value, Provider):
        return value
    try:
        return Provider(str(value).strip().lower())
    except ValueError:
        # Accept the SDK vendor name as an alias for Gemini.
        if str(value).strip().lower() == "google":
            return Provider.GEMINI
        return None


class ProviderRegistry:
    def __init__(self, adapters: Optional[Mapping[Provider, ProviderAdapter]] = None):
        self._adapters: Dict[Provider, ProviderAdapter] = dict(adapters or {})

    @classmethod
    def from_api_keys(cls, keys: Mapping) -> "ProviderRegistry":
        adapters: Dict[Provider, ProviderAdapter] = {}
        for name, key in keys.items():
            provider = _coerce_provider(name)
            if provider is None:
                logger.warning(f"[registry] Ignoring key for unknown provider {name!r}")
                continue
            if key:
                adapters[provider] = ADAPTER_CLASSES[provider](key)
        return cls(adapters)

    @classmethod
    def from_env(cls) -> "ProviderRegistry":
        keys = {p: os.getenv(cfg.env_key_name) for p, cfg in PROVIDERS.items()}
        registry = cls.from_api_keys(keys)
        logger.info(
            "[registry] Providers from environment: "
            + (", ".join(sorted(p.value for p in registry.available_providers())) or "none")
        )
        return registry

    def register(self, adapter: ProviderAdapter) -> None:
        self._adapters[adapter.provider] = adapter

    def available_providers(self) -> Set[Provider]:
        return set(self._adapters)

    def is_provider_available(self, provider) -> bool:
        p = _coerce_provider(provider)
        return p is not None and p in self._adapters

    def get(self, provider) -> ProviderAdapter:
        p = _coerce_provider(provider)
        if p is None or p not in self._adapters:
            name = PROVIDERS[p].display_name if p in PROVIDERS else str(provider)
            raise ConfigError(f"{name} is not configured. Add an API key in Settings.")
        return self._adapters[p]

    def adapters(self) -> Iterable[ProviderAdapter]:
        return list(self._adapters.values())


_registry: Optional[ProviderRegistry] = None


def get_provider_registry() -> ProviderRegistry:
    global _registry
    if _registry is None:
        _registry = ProviderRegistry.from_env()
    return _registry


__all__ = [
    "ProviderConfig",
    "PROVIDERS",
    "PROVIDER_STATUS_URLS",
    "get_status_url",
    "ProviderRegistry",
    "get_provider_registry",
]
