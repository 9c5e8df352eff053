"""
src/integrations/llm_providers.py — LLM provider adapters.

Each adapter normalises one outbound call to one vendor and returns a
ProviderResult. Adapters never raise: timeouts, non-2xx responses, malformed
JSON and missing keys all come back as ProviderResult.failure(reason).

Protocol shapes:
    OpenRouterAdapter  — OpenAI-compatible chat completions (several slots)
    GeminiAdapter      — Google generateContent
    GroqAdapter        — OpenAI-compatible chat completions, Groq endpoint
    AnthropicAdapter   — Anthropic Messages API via the official SDK
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import anthropic
import httpx

from config import Settings

logger = logging.getLogger(__name__)

OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"
GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models"
GROQ_URL = "https://api.groq.com/openai/v1/chat/completions"

NO_RESPONSE = "[No response]"
ERROR_PREFIX = "["

# Provider ids are part of the wire contract (generate response keys,
# publish selectedModel values). Order is the display order.
PROVIDER_IDS: tuple[str, ...] = (
    "openai",
    "gemini",
    "claude",
    "geminiDirect",
    "groq",
    "anthropic",
)


# ─────────────────────────────────────────────
# Result type
# ─────────────────────────────────────────────

@dataclass(frozen=True)
class ProviderResult:
    """Outcome of one provider call: exactly one of text / error is set."""

    provider_id: str
    label: str
    text: str | None = None
    error: str | None = None

    @classmethod
    def success(cls, provider_id: str, label: str, text: str) -> "ProviderResult":
        return cls(provider_id=provider_id, label=label, text=text)

    @classmethod
    def failure(cls, provider_id: str, label: str, reason: str) -> "ProviderResult":
        return cls(provider_id=provider_id, label=label, error=reason or "unknown")

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_output(self) -> str:
        """Serialise for the API / draft row: the text, or a bracketed placeholder."""
        if self.ok:
            return self.text if self.text is not None else NO_RESPONSE
        return error_placeholder(self.label, self.error or "unknown")


def error_placeholder(label: str, reason: str) -> str:
    return f"[{label} error: {reason}]"


def is_error_output(output: str | None) -> bool:
    """True for empty slots and anything starting with the placeholder bracket."""
    return not output or output.startswith(ERROR_PREFIX)


# ─────────────────────────────────────────────
# Response parsing
# ─────────────────────────────────────────────

def parse_openai_response(data: Any) -> str:
    """Extract choices[0].message.content from an OpenAI-compatible response."""
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return NO_RESPONSE
    return content if isinstance(content, str) else NO_RESPONSE


def parse_gemini_response(data: Any) -> str:
    """Extract candidates[0].content.parts[0].text from a Gemini response."""
    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return NO_RESPONSE
    return text if isinstance(text, str) else NO_RESPONSE


def describe_failure(exc: BaseException) -> str:
    """Short human-readable reason for a failed call.

    Vendor error message if the response carries one, else the transport
    error message, else "unknown".
    """
    if isinstance(exc, httpx.HTTPStatusError):
        try:
            body = exc.response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            err = body.get("error")
            if isinstance(err, dict) and err.get("message"):
                return str(err["message"])
            if isinstance(err, str) and err:
                return err
        return f"HTTP {exc.response.status_code}"
    if isinstance(exc, anthropic.APIStatusError):
        body = exc.body
        if isinstance(body, dict):
            err = body.get("error")
            if isinstance(err, dict) and err.get("message"):
                return str(err["message"])
        return exc.message or f"HTTP {exc.status_code}"
    if isinstance(exc, httpx.TimeoutException):
        return str(exc) or "request timed out"
    return str(exc) or "unknown"


# ─────────────────────────────────────────────
# Base adapter
# ─────────────────────────────────────────────

class ProviderAdapter(ABC):
    """One configured provider slot: id, display label, credentials, model."""

    def __init__(
        self,
        provider_id: str,
        label: str,
        api_key: str,
        model_id: str,
        max_tokens: int = 800,
    ):
        self.provider_id = provider_id
        self.label = label
        self.api_key = api_key
        self.model_id = model_id
        self.max_tokens = max_tokens

    async def generate(self, prompt: str, system_prompt: str) -> ProviderResult:
        if not self.api_key:
            logger.warning("%s: API key not configured — skipping call", self.label)
            return ProviderResult.failure(self.provider_id, self.label, "API key not configured")
        try:
            text = await self._call(prompt, system_prompt)
        except Exception as exc:
            reason = describe_failure(exc)
            logger.warning("%s (%s) failed: %s", self.label, self.model_id, reason)
            return ProviderResult.failure(self.provider_id, self.label, reason)
        return ProviderResult.success(self.provider_id, self.label, text)

    @abstractmethod
    async def _call(self, prompt: str, system_prompt: str) -> str:
        """Perform the vendor call and return the parsed text (may raise)."""


# ─────────────────────────────────────────────
# OpenAI-compatible shapes
# ─────────────────────────────────────────────

class OpenAICompatibleAdapter(ProviderAdapter):
    """Chat-completions request with a bearer key; subclasses pin the endpoint."""

    url: str = ""

    def __init__(self, *args, http: httpx.AsyncClient, **kwargs):
        super().__init__(*args, **kwargs)
        self._http = http

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _call(self, prompt: str, system_prompt: str) -> str:
        payload = {
            "model": self.model_id,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": self.max_tokens,
        }
        resp = await self._http.post(self.url, json=payload, headers=self._headers())
        resp.raise_for_status()
        return parse_openai_response(resp.json())


class OpenRouterAdapter(OpenAICompatibleAdapter):
    """OpenRouter aggregator; several slots route through it with their own keys."""

    url = OPENROUTER_URL

    def __init__(self, *args, referer: str = "", title: str = "", **kwargs):
        super().__init__(*args, **kwargs)
        self.referer = referer
        self.title = title

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        if self.referer:
            headers["HTTP-Referer"] = self.referer
        if self.title:
            headers["X-Title"] = self.title
        return headers


class GroqAdapter(OpenAICompatibleAdapter):
    url = GROQ_URL


# ─────────────────────────────────────────────
# Gemini
# ─────────────────────────────────────────────

class GeminiAdapter(ProviderAdapter):
    """Google Gemini REST API (key passed as a query parameter)."""

    def __init__(self, *args, http: httpx.AsyncClient, **kwargs):
        super().__init__(*args, **kwargs)
        self._http = http

    async def _call(self, prompt: str, system_prompt: str) -> str:
        payload = {
            "system_instruction": {"parts": [{"text": system_prompt}]},
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"maxOutputTokens": self.max_tokens},
        }
        resp = await self._http.post(
            f"{GEMINI_URL}/{self.model_id}:generateContent",
            params={"key": self.api_key},
            json=payload,
            headers={"Content-Type": "application/json"},
        )
        resp.raise_for_status()
        return parse_gemini_response(resp.json())


# ─────────────────────────────────────────────
# Anthropic
# ─────────────────────────────────────────────

class AnthropicAdapter(ProviderAdapter):
    """Claude via the Anthropic SDK."""

    def __init__(
        self,
        *args,
        http: httpx.AsyncClient | None = None,
        timeout: float = 60.0,
        client: Any = None,
        **kwargs,
    ):
        super().__init__(*args, **kwargs)
        self.timeout = timeout
        self._http = http
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(
                api_key=self.api_key,
                timeout=self.timeout,
                max_retries=0,
                http_client=self._http,
            )
        return self._client

    async def _call(self, prompt: str, system_prompt: str) -> str:
        response = await self._get_client().messages.create(
            model=self.model_id,
            max_tokens=self.max_tokens,
            system=system_prompt,
            messages=[{"role": "user", "content": prompt}],
        )
        for block in getattr(response, "content", None) or []:
            text = getattr(block, "text", None)
            if isinstance(text, str):
                return text
        return NO_RESPONSE


# ─────────────────────────────────────────────
# Registry
# ─────────────────────────────────────────────

def build_providers(settings: Settings, http: httpx.AsyncClient) -> list[ProviderAdapter]:
    """Return one adapter per provider id in PROVIDER_IDS, in that order."""
    common = {"max_tokens": settings.llm_max_tokens}
    openrouter = {
        "http": http,
        "referer": settings.app_url,
        "title": settings.app_name,
        **common,
    }
    return [
        OpenRouterAdapter(
            "openai", "GPT-OSS",
            settings.openrouter_key_model1, settings.model1_id, **openrouter,
        ),
        OpenRouterAdapter(
            "gemini", "Gemma",
            settings.openrouter_key_model2, settings.model2_id, **openrouter,
        ),
        OpenRouterAdapter(
            "claude", "GLM",
            settings.openrouter_key_model3, settings.model3_id, **openrouter,
        ),
        GeminiAdapter(
            "geminiDirect", "Gemini",
            settings.gemini_api_key, settings.gemini_model_id, http=http, **common,
        ),
        GroqAdapter(
            "groq", "Groq",
            settings.groq_api_key, settings.groq_model_id, http=http, **common,
        ),
        AnthropicAdapter(
            "anthropic", "Claude",
            settings.anthropic_api_key, settings.anthropic_model,
            http=http, timeout=settings.llm_timeout_seconds, **common,
        ),
    ]
