"""LLM client abstractions used by the batch classifier."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Protocol
from urllib.parse import urljoin

import httpx

from inbox_triage.core.config import LlmSettings

OLLAMA_DEFAULT_URL = "http://localhost:11434"
OLLAMA_DEFAULT_MODEL = "gpt-oss:20b"
GEMINI_DEFAULT_URL = "https://generativelanguage.googleapis.com"
GEMINI_DEFAULT_MODEL = "gemini-2.5-flash"

# Lower-cased fragments that providers use in quota/rate-limit error bodies.
QUOTA_MARKERS: tuple[str, ...] = (
    "quota",
    "resource exhausted",
    "resource_exhausted",
    "resource has been exhausted",
    "rate limit",
)


class LLMError(RuntimeError):
    """Raised when the LLM provider fails to respond as expected."""


class TransientLLMError(LLMError):
    """Timeouts, dropped connections, and server-side (5xx) failures."""


class QuotaExceededError(LLMError):
    """The provider rejected the call because a request quota is exhausted."""


class LLMClient(Protocol):
    """Protocol describing the minimal LLM client behaviour."""

    @property
    def provider_id(self) -> str:
        """Identifier describing the backing model/provider."""
        raise NotImplementedError

    async def generate(self, prompt: str) -> str:
        """Return the raw text completion for ``prompt``."""
        raise NotImplementedError


@dataclass(slots=True)
class OllamaClient:
    """Thin asynchronous client for the Ollama HTTP API."""

    settings: LlmSettings
    transport: httpx.AsyncBaseTransport | None = None

    async def generate(self, prompt: str) -> str:
        """Send a JSON-mode completion request to the Ollama server."""
        endpoint = _resolve_endpoint(self.settings.base_url or OLLAMA_DEFAULT_URL)
        options: dict[str, object] = {"temperature": self.settings.temperature}
        if self.settings.max_output_tokens is not None:
            options["num_predict"] = self.settings.max_output_tokens
        payload: dict[str, object] = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "format": "json",
            "options": options,
        }
        data = await _post_json(
            endpoint,
            payload,
            timeout=self.settings.timeout_seconds,
            transport=self.transport,
        )
        result = data.get("response")
        if not isinstance(result, str):
            raise LLMError("LLM response missing 'response' field")
        return result

    @property
    def model(self) -> str:
        return self.settings.model or OLLAMA_DEFAULT_MODEL

    @property
    def provider_id(self) -> str:
        """Return a human readable identifier for the configured model."""
        return f"ollama:{self.model}"


@dataclass(slots=True)
class GeminiClient:
    """Asynchronous client for the Gemini ``generateContent`` REST endpoint."""

    settings: LlmSettings
    transport: httpx.AsyncBaseTransport | None = None

    async def generate(self, prompt: str) -> str:
        """Request a JSON completion and return the concatenated text parts."""
        if not self.settings.api_key:
            raise LLMError("Gemini API key is missing")
        base_url = (self.settings.base_url or GEMINI_DEFAULT_URL).rstrip("/") + "/"
        endpoint = urljoin(base_url, f"v1beta/models/{self.model}:generateContent")
        generation_config: dict[str, object] = {
            "temperature": self.settings.temperature,
            "responseMimeType": "application/json",
        }
        if self.settings.max_output_tokens is not None:
            generation_config["maxOutputTokens"] = self.settings.max_output_tokens
        payload: dict[str, object] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }
        data = await _post_json(
            endpoint,
            payload,
            timeout=self.settings.timeout_seconds,
            transport=self.transport,
            params={"key": self.settings.api_key},
        )
        return _extract_gemini_text(data)

    @property
    def model(self) -> str:
        return self.settings.model or GEMINI_DEFAULT_MODEL

    @property
    def provider_id(self) -> str:
        return f"gemini:{self.model}"


def build_llm_client(
    settings: LlmSettings, *, transport: httpx.AsyncBaseTransport | None = None
) -> LLMClient:
    """Instantiate the client for the configured provider."""
    if settings.provider == "gemini":
        if not settings.api_key:
            raise ValueError("The gemini provider requires llm.api_key to be set")
        return GeminiClient(settings, transport=transport)
    return OllamaClient(settings, transport=transport)


def is_quota_message(text: str) -> bool:
    """Return ``True`` when ``text`` reads like a quota/rate-limit failure."""
    lowered = text.lower()
    return any(marker in lowered for marker in QUOTA_MARKERS)


async def _post_json(
    url: str,
    payload: dict[str, object],
    *,
    timeout: float,
    transport: httpx.AsyncBaseTransport | None,
    params: dict[str, str] | None = None,
) -> dict[str, Any]:
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.post(url, json=payload, params=params)
            response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise _error_for_status(exc.response) from exc
    except httpx.TimeoutException as exc:
        raise TransientLLMError("LLM request timed out") from exc
    except httpx.TransportError as exc:
        raise TransientLLMError(f"LLM transport failure: {exc}") from exc

    try:
        data = response.json()
    except json.JSONDecodeError as exc:
        raise LLMError("LLM returned invalid JSON") from exc
    if not isinstance(data, dict):
        raise LLMError("LLM returned an unexpected payload")
    return data


def _error_for_status(response: httpx.Response) -> LLMError:
    status_code = response.status_code
    if status_code == 429 or is_quota_message(response.text):
        return QuotaExceededError(f"LLM quota exhausted (HTTP {status_code})")
    if status_code >= 500:
        return TransientLLMError(f"LLM server error (HTTP {status_code})")
    return LLMError(f"LLM request rejected (HTTP {status_code})")


def _extract_gemini_text(data: dict[str, Any]) -> str:
    candidates = data.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        raise LLMError("Gemini response contained no candidates")
    content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        raise LLMError("Gemini response missing content parts")
    texts = [
        part["text"]
        for part in parts
        if isinstance(part, dict) and isinstance(part.get("text"), str)
    ]
    if not texts:
        raise LLMError("Gemini response missing text")
    return "".join(texts)


def _resolve_endpoint(base_url: str) -> str:
    trimmed = base_url.rstrip("/") + "/"
    return urljoin(trimmed, "api/generate")


__all__ = [
    "GeminiClient",
    "LLMClient",
    "LLMError",
    "OllamaClient",
    "QUOTA_MARKERS",
    "QuotaExceededError",
    "TransientLLMError",
    "build_llm_client",
    "is_quota_message",
]
