# FILE: helm/providers/__init__.py
"""Provider adapters, registry and model discovery."""

from helm.providers.adapters import ProviderAdapter
from helm.providers.registry import PROVIDER_STATUS_URLS, ProviderRegistry, get_provider_registry

__all__ = [
    "ProviderAdapter",
    "PROVIDER_STATUS_URLS",
    "ProviderRegistry",
    "get_provider_registry",
]
