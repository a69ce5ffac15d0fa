# FILE: tests/conftest.py
"""
Pytest configuration for the Helm test suite.

Configures:
- pytest-asyncio for async test support
- FakeAdapter: a scripted ProviderAdapter (no network)
- shared fixtures: catalog snapshot, phase channel, registry factory
"""
import json
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import pytest

from helm.llm.analysis_calls import (
    INTENT_PROMPT,
    OPTIMIZE_PROMPT,
    SECURITY_PROMPT,
    SENTIMENT_PROMPT,
    STYLE_PROMPT,
    VALIDATE_PROMPT,
)
from helm.llm.catalog import CatalogSnapshot
from helm.llm.events import PhaseChannel
from helm.llm.schemas import Provider
from helm.providers.adapters import ProviderAdapter
from helm.providers.registry import ProviderRegistry

pytest_plugins = ["pytest_asyncio"]


# =============================================================================
# Fake provider
# =============================================================================

class FakeStatusError(Exception):
    """SDK-style error carrying an HTTP status."""

    def __init__(self, status_code: int, message: str = "fake provider error"):
        super().__init__(message)
        self.status_code = status_code


def call_kind(system_prompt: Optional[str]) -> str:
    """Which pipeline call a generate() request is."""
    if system_prompt is None:
        return "edit"
    if system_prompt.startswith("You are an advanced AI analysis engine"):
        return "analysis"
    if system_prompt.startswith("You are an AI parameter tuner"):
        return "tune"
    return {
        INTENT_PROMPT: "intent",
        SENTIMENT_PROMPT: "sentiment",
        STYLE_PROMPT: "style",
        SECURITY_PROMPT: "security",
        OPTIMIZE_PROMPT: "optimize",
        VALIDATE_PROMPT: "validate",
    }.get(system_prompt, "other")


DEFAULT_REPLIES: Dict[str, Any] = {
    "intent": "The user wants help",
    "sentiment": "SENTIMENT: neutral\nDETAIL: calm and curious",
    "style": "casual",
    "security": "SCORE: 1\nEXPLANATION: none",
    "optimize": "",  # empty -> optimize_prompt keeps the original message
    "tune": "TEMPERATURE: 0.5\nTOP_P: 0.9\nMAX_TOKENS: 2000",
    "validate": "USER SEEKING: help\nVALIDATION: answers the question\nQUALITY: pass\nFAIL_REASON: none",
}


def analysis_json(**overrides) -> str:
    data = {
        "intent": "User wants a general answer",
        "sentiment": "neutral",
        "sentimentDetail": "calm",
        "style": "casual",
        "securityScore": 1,
        "securityExplanation": "No significant security concerns",
        "taskType": "general",
        "complexity": "simple",
        "promptQuality": {"score": 70, "clarity": 70, "specificity": 60, "actionability": 80, "suggestions": []},
    }
    data.update(overrides)
    return json.dumps(data)


class FakeAdapter(ProviderAdapter):
    """
    Scripted adapter.

    replies: call kind -> str | Exception | list of those (consumed in order,
             the last entry repeats).
    streams: list of chunk lists or Exceptions, one per stream() call; when
             exhausted every call streams ["Hello", " world"].
    on_chunk: called with the chunk index before each chunk is yielded.
    """

    def __init__(
        self,
        provider: Provider,
        replies: Optional[Dict[str, Any]] = None,
        streams: Optional[List[Any]] = None,
        models: Optional[List[str]] = None,
        on_chunk: Optional[Callable[[int], None]] = None,
    ):
        super().__init__(api_key="test-key")
        self.provider = provider
        self.replies: Dict[str, Any] = {**DEFAULT_REPLIES, "analysis": analysis_json(), **(replies or {})}
        self.streams: List[Any] = list(streams or [])
        self.models = models
        self.on_chunk = on_chunk

        self.generate_calls: List[Dict[str, Any]] = []
        self.stream_calls: List[Dict[str, Any]] = []

    def _next_reply(self, kind: str) -> Any:
        reply = self.replies.get(kind, "")
        if isinstance(reply, list):
            return reply.pop(0) if len(reply) > 1 else reply[0]
        return reply

    async def _generate(self, model_id, messages, params, system_prompt) -> str:
        kind = call_kind(system_prompt)
        self.generate_calls.append({
            "kind": kind,
            "model_id": model_id,
            "messages": list(messages),
            "system_prompt": system_prompt,
        })
        reply = self._next_reply(kind)
        if isinstance(reply, BaseException):
            raise reply
        return reply

    async def _stream(self, model_id, messages, params, system_prompt):
        self.stream_calls.append({
            "model_id": model_id,
            "messages": list(messages),
            "params": params,
            "system_prompt": system_prompt,
        })
        script = self.streams.pop(0) if self.streams else ["Hello", " world"]
        if isinstance(script, BaseException):
            raise script
        for index, chunk in enumerate(script):
            if self.on_chunk is not None:
                self.on_chunk(index)
            yield chunk

    async def _list_models(self) -> List[str]:
        if isinstance(self.models, BaseException):
            raise self.models
        return list(self.models or [])

    def calls(self, kind: str) -> List[Dict[str, Any]]:
        return [c for c in self.generate_calls if c["kind"] == kind]


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def catalog():
    """Default catalog snapshot (family default model ids)."""
    return CatalogSnapshot.from_alias_map()


@pytest.fixture
def channel():
    return PhaseChannel()


@pytest.fixture
def make_adapter():
    """Factory: make_adapter(Provider.GEMINI, replies={...}, streams=[...])."""
    return FakeAdapter


@pytest.fixture
def make_registry():
    """Factory: registry over the given adapters."""
    def _make(*adapters: ProviderAdapter) -> ProviderRegistry:
        return ProviderRegistry({a.provider: a for a in adapters})
    return _make


@pytest.fixture
def status_error():
    """Factory: an SDK-style exception with an HTTP status code."""
    return FakeStatusError
