# FILE: helm/providers/adapters.py
"""
Provider adapters: one strategy object per AI vendor.

Every adapter exposes the same surface:

    await adapter.generate(model_id, messages, params, system_prompt) -> str
    await adapter.stream(model_id, messages, params, on_token, cancel, system_prompt) -> str
    await adapter.list_models() -> List[str]

SDK exceptions never escape. They are translated into ProviderError with an
ErrorKind (AUTH / RATE_LIMIT / OUTAGE / MALFORMED / UNKNOWN) so callers can
dispatch on kind. Cancellation is checked before every streamed chunk and
raises JobCancelled.

Supported (if keys + SDKs installed):
- OpenAI (AsyncOpenAI)
- Anthropic (AsyncAnthropic)
- Google Gemini (google.generativeai)

NOTE (OpenAI token param drift):
- gpt-5.* and o-series models reject `max_tokens` and require
  `max_completion_tokens`; they also only accept the default temperature.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple

from helm.llm.errors import ErrorKind, HelmError, JobCancelled, ProviderError
from helm.llm.events import CancelToken
from helm.llm.schemas import ParameterTuning, Provider
from helm.settings import PROVIDER_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

TokenCallback = Callable[[str], Awaitable[None]]

# Analysis-style calls (consolidated analysis, judge, tuning)
ANALYSIS_PARAMS = ParameterTuning(temperature=0.3, top_p=1.0, max_tokens=800)


# =============================================================================
# HELPERS
# =============================================================================

def _status_kind(status: Optional[int]) -> Optional[ErrorKind]:
    if status is None:
        return None
    if status in (401, 403):
        return ErrorKind.AUTH
    if status == 429:
        return ErrorKind.RATE_LIMIT
    if status >= 500:
        return ErrorKind.OUTAGE
    return None


def classify_status_code(exc: BaseException) -> ErrorKind:
    """Fallback classification from an HTTP status carried on the exception."""
    status = getattr(exc, "status_code", None)
    if status is None:
        code = getattr(exc, "code", None)
        status = code if isinstance(code, int) else None
    kind = _status_kind(status)
    if kind is not None:
        return kind
    if isinstance(exc, (asyncio.TimeoutError, ConnectionError)):
        return ErrorKind.OUTAGE
    return ErrorKind.UNKNOWN


def _normalize_messages_for_openai(messages: List[dict], system_prompt: Optional[str]) -> List[dict]:
    out: List[dict] = []
    if system_prompt:
        out.append({"role": "system", "content": system_prompt})
    for m in messages:
        role = m.get("role")
        role = role if role in ("system", "user", "assistant") else "user"
        out.append({"role": role, "content": str(m.get("content", ""))})
    return out


def _normalize_messages_for_anthropic(messages: List[dict], system_prompt: Optional[str]) -> Tuple[str, List[dict]]:
    sys_parts: List[str] = []
    if system_prompt:
        sys_parts.append(system_prompt)

    user_assistant: List[dict] = []
    for m in messages:
        role = m.get("role")
        if role == "system":
            sys_parts.append(str(m.get("content", "")))
        elif role in ("user", "assistant"):
            user_assistant.append({"role": role, "content": str(m.get("content", ""))})

    return ("\n\n".join([p for p in sys_parts if p]).strip(), user_assistant)


def _normalize_messages_for_gemini(messages: List[dict]) -> Tuple[str, List[dict]]:
    sys_parts: List[str] = []
    contents: List[dict] = []
    for m in messages:
        role = m.get("role")
        if role == "system":
            sys_parts.append(str(m.get("content", "")))
            continue
        contents.append({
            "role": "model" if role == "assistant" else "user",
            "parts": [str(m.get("content", ""))],
        })
    return "\n\n".join(sys_parts), contents


def _openai_token_param_name(model_id: str) -> str:
    m = (model_id or "").strip().lower()
    if m.startswith("gpt-5") or m.startswith("o1") or m.startswith("o3") or m.startswith("o4"):
        return "max_completion_tokens"
    return "max_tokens"


def _openai_supports_sampling(model_id: str) -> bool:
    """gpt-5.x and o-series only accept default temperature/top_p."""
    m = (model_id or "").strip().lower()
    return not (m.startswith("gpt-5") or m.startswith("o1") or m.startswith("o3") or m.startswith("o4"))


# =============================================================================
# BASE ADAPTER
# =============================================================================

class ProviderAdapter(ABC):
    """Strategy interface for one provider. Subclasses implement the _ hooks."""

    provider: Provider

    def __init__(self, api_key: str, timeout_seconds: int = PROVIDER_TIMEOUT_SECONDS):
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds

    # ---- hooks ----

    @abstractmethod
    async def _generate(
        self,
        model_id: str,
        messages: List[dict],
        params: ParameterTuning,
        system_prompt: Optional[str],
    ) -> str:
        ...

    @abstractmethod
    def _stream(
        self,
        model_id: str,
        messages: List[dict],
        params: ParameterTuning,
        system_prompt: Optional[str],
    ) -> AsyncIterator[str]:
        ...

    @abstractmethod
    async def _list_models(self) -> List[str]:
        ...

    def classify_error(self, exc: BaseException) -> ErrorKind:
        return classify_status_code(exc)

    # ---- public surface ----

    def _wrap(self, exc: BaseException, model_id: Optional[str]) -> ProviderError:
        kind = self.classify_error(exc)
        logger.warning(f"[{self.provider.value}] {kind.value} error on {model_id}: {exc}")
        return ProviderError(str(exc) or exc.__class__.__name__, kind, self.provider.value, model_id)

    async def generate(
        self,
        model_id: str,
        messages: List[dict],
        params: Optional[ParameterTuning] = None,
        system_prompt: Optional[str] = None,
    ) -> str:
        try:
            return await self._generate(model_id, messages, params or ANALYSIS_PARAMS, system_prompt)
        except HelmError:
            raise
        except Exception as exc:
            raise self._wrap(exc, model_id) from exc

    async def stream(
        self,
        model_id: str,
        messages: List[dict],
        params: ParameterTuning,
        on_token: TokenCallback,
        cancel: Optional[CancelToken] = None,
        system_prompt: Optional[str] = None,
    ) -> str:
        parts: List[str] = []
        try:
            async for chunk in self._stream(model_id, messages, params, system_prompt):
                if cancel is not None and cancel.is_cancelled:
                    raise JobCancelled()
                if not chunk:
                    continue
                parts.append(chunk)
                await on_token(chunk)
        except HelmError:
            raise
        except Exception as exc:
            raise self._wrap(exc, model_id) from exc

        text = "".join(parts)
        if not text.strip():
            raise ProviderError(
                "Provider returned an empty response",
                ErrorKind.MALFORMED,
                self.provider.value,
                model_id,
            )
        return text

    async def list_models(self) -> List[str]:
        try:
            return await self._list_models()
        except HelmError:
            raise
        except Exception as exc:
            raise self._wrap(exc, None) from exc


# =============================================================================
# OPENAI
# =============================================================================

class OpenAIAdapter(ProviderAdapter):
    provider = Provider.OPENAI

    def _client(self):
        from openai import AsyncOpenAI

        return AsyncOpenAI(api_key=self.api_key, timeout=self.timeout_seconds)

    def _kwargs(self, model_id: str, messages: List[dict], params: ParameterTuning, system_prompt: Optional[str]) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "model": model_id,
            "messages": _normalize_messages_for_openai(messages, system_prompt),
            _openai_token_param_name(model_id): int(params.max_tokens),
        }
        if _openai_supports_sampling(model_id):
            kwargs["temperature"] = params.temperature
            kwargs["top_p"] = params.top_p
        return kwargs

    def classify_error(self, exc: BaseException) -> ErrorKind:
        import openai

        if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
            return ErrorKind.AUTH
        if isinstance(exc, openai.RateLimitError):
            return ErrorKind.RATE_LIMIT
        if isinstance(exc, (openai.APIConnectionError, openai.InternalServerError)):
            return ErrorKind.OUTAGE
        if isinstance(exc, openai.APIResponseValidationError):
            return ErrorKind.MALFORMED
        return classify_status_code(exc)

    async def _generate(self, model_id, messages, params, system_prompt) -> str:
        completion = await self._client().chat.completions.create(
            **self._kwargs(model_id, messages, params, system_prompt)
        )
        if not completion.choices:
            return ""
        return completion.choices[0].message.content or ""

    async def _stream(self, model_id, messages, params, system_prompt):
        stream = await self._client().chat.completions.create(
            **self._kwargs(model_id, messages, params, system_prompt),
            stream=True,
        )
        async for chunk in stream:
            if chunk.choices and chunk.choices[0].delta and chunk.choices[0].delta.content:
                yield chunk.choices[0].delta.content

    async def _list_models(self) -> List[str]:
        return [m.id async for m in self._client().models.list()]


# =============================================================================
# ANTHROPIC
# =============================================================================

class AnthropicAdapter(ProviderAdapter):
    provider = Provider.ANTHROPIC

    def _client(self):
        import anthropic

        return anthropic.AsyncAnthropic(api_key=self.api_key, timeout=self.timeout_seconds)

    def _kwargs(self, model_id: str, messages: List[dict], params: ParameterTuning, system_prompt: Optional[str]) -> Dict[str, Any]:
        final_system, user_assistant = _normalize_messages_for_anthropic(messages, system_prompt)
        kwargs: Dict[str, Any] = {
            "model": model_id,
            "messages": user_assistant,
            "max_tokens": int(params.max_tokens),
            # Newer Claude models reject temperature and top_p together.
            "temperature": params.temperature,
        }
        if final_system:
            kwargs["system"] = final_system
        return kwargs

    def classify_error(self, exc: BaseException) -> ErrorKind:
        import anthropic

        if isinstance(exc, (anthropic.AuthenticationError, anthropic.PermissionDeniedError)):
            return ErrorKind.AUTH
        if isinstance(exc, anthropic.RateLimitError):
            return ErrorKind.RATE_LIMIT
        if isinstance(exc, (anthropic.APIConnectionError, anthropic.InternalServerError)):
            return ErrorKind.OUTAGE
        if isinstance(exc, anthropic.APIResponseValidationError):
            return ErrorKind.MALFORMED
        return classify_status_code(exc)

    async def _generate(self, model_id, messages, params, system_prompt) -> str:
        resp = await self._client().messages.create(**self._kwargs(model_id, messages, params, system_prompt))
        text_parts = [getattr(b, "text", "") for b in (resp.content or []) if getattr(b, "type", None) == "text"]
        return "\n".join([t for t in text_parts if t]).strip()

    async def _stream(self, model_id, messages, params, system_prompt):
        async with self._client().messages.stream(**self._kwargs(model_id, messages, params, system_prompt)) as stream:
            async for text in stream.text_stream:
                yield text

    async def _list_models(self) -> List[str]:
        return [m.id async for m in self._client().models.list()]


# =============================================================================
# GEMINI
# =============================================================================

class GeminiAdapter(ProviderAdapter):
    provider = Provider.GEMINI

    def _model(self, model_id: str, system_prompt: Optional[str], messages: List[dict]):
        import google.generativeai as genai

        genai.configure(api_key=self.api_key)
        system_from_messages, contents = _normalize_messages_for_gemini(messages)
        system = "\n\n".join(p for p in (system_prompt, system_from_messages) if p) or None
        model = genai.GenerativeModel(model_name=model_id, system_instruction=system)
        return model, contents

    @staticmethod
    def _generation_config(params: ParameterTuning):
        import google.generativeai as genai

        return genai.GenerationConfig(
            temperature=params.temperature,
            top_p=params.top_p,
            max_output_tokens=int(params.max_tokens),
        )

    def classify_error(self, exc: BaseException) -> ErrorKind:
        from google.api_core import exceptions as gexc

        if isinstance(exc, (gexc.Unauthenticated, gexc.PermissionDenied)):
            return ErrorKind.AUTH
        if isinstance(exc, (gexc.ResourceExhausted, gexc.TooManyRequests)):
            return ErrorKind.RATE_LIMIT
        if isinstance(exc, (gexc.ServiceUnavailable, gexc.InternalServerError, gexc.DeadlineExceeded)):
            return ErrorKind.OUTAGE
        return classify_status_code(exc)

    async def _generate(self, model_id, messages, params, system_prompt) -> str:
        model, contents = self._model(model_id, system_prompt, messages)
        resp = await model.generate_content_async(
            contents,
            generation_config=self._generation_config(params),
            request_options={"timeout": self.timeout_seconds},
        )
        return (getattr(resp, "text", "") or "").strip()

    async def _stream(self, model_id, messages, params, system_prompt):
        model, contents = self._model(model_id, system_prompt, messages)
        response = await model.generate_content_async(
            contents,
            generation_config=self._generation_config(params),
            stream=True,
            request_options={"timeout": self.timeout_seconds},
        )
        async for chunk in response:
            text = getattr(chunk, "text", None)
            if text:
                yield text

    async def _list_models(self) -> List[str]:
        import google.generativeai as genai

        def _collect() -> List[str]:
            genai.configure(api_key=self.api_key)
            ids: List[str] = []
            for m in genai.list_models():
                if "generateContent" not in (getattr(m, "supported_generation_methods", None) or []):
                    continue
                ids.append(m.name.split("/", 1)[-1])
            return ids

        return await asyncio.to_thread(_collect)


ADAPTER_CLASSES = {
    Provider.OPENAI: OpenAIAdapter,
    Provider.ANTHROPIC: AnthropicAdapter,
    Provider.GEMINI: GeminiAdapter,
}


__all__ = [
    "ProviderAdapter",
    "OpenAIAdapter",
    "AnthropicAdapter",
    "GeminiAdapter",
    "ADAPTER_CLASSES",
    "ANALYSIS_PARAMS",
    "TokenCallback",
    "classify_status_code",
]
