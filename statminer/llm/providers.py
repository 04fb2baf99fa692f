"""
statminer/llm/providers.py
==========================
Provider adapters: translate one prompt into a backend-specific request and
extract content / token usage from the reply.

Two envelopes cover the stock backends:
  OpenAI Chat Completions   openai, openrouter, grok   (Authorization: Bearer)
  Anthropic Messages        anthropic                  (x-api-key)

Calls go through the vendor SDKs with retries disabled; every call is raced
against the caller's cancel event and timeout (see ``run_cancellable``).
Without an injected ``http_client`` each call opens and closes its own
connection pool.
"""
from __future__ import annotations

import asyncio
from typing import Mapping, Optional

import httpx
from loguru import logger

from statminer.config import settings
from statminer.errors import ProviderError, ProviderTimeout
from .base import Completion, ProviderAdapter, ProviderSpec, envelope_message, run_cancellable, with_http_client

DEFAULT_PROVIDERS: tuple[ProviderSpec, ...] = (
    ProviderSpec(
        id="openai",
        name="OpenAI GPT-4",
        endpoint="https://api.openai.com/v1/chat/completions",
        model="gpt-4-turbo-preview",
        max_tokens=4096,
        cost_per_1k_tokens=0.01,
        supports_streaming=True,
    ),
    ProviderSpec(
        id="anthropic",
        name="Anthropic Claude",
        endpoint="https://api.anthropic.com/v1/messages",
        model="claude-3-5-sonnet-20241022",
        max_tokens=4096,
        cost_per_1k_tokens=0.015,
        supports_streaming=True,
    ),
    ProviderSpec(
        id="openrouter",
        name="OpenRouter",
        endpoint="https://openrouter.ai/api/v1/chat/completions",
        model="anthropic/claude-3.5-sonnet",
        max_tokens=4096,
        cost_per_1k_tokens=0.015,
        supports_streaming=True,
    ),
    ProviderSpec(
        id="grok",
        name="Grok (xAI)",
        endpoint="https://api.x.ai/v1/chat/completions",
        model="grok-beta",
        max_tokens=4096,
        cost_per_1k_tokens=0.01,
        supports_streaming=True,
    ),
)


# ---------------------------------------------------------------------------
# OpenAI-compatible backends (OpenAI / OpenRouter / xAI)
# ---------------------------------------------------------------------------


class OpenAICompatibleProvider:
    def __init__(
        self,
        spec: ProviderSpec,
        *,
        default_headers: Optional[Mapping[str, str]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.spec = spec
        self._base_url = spec.endpoint.removesuffix("/chat/completions")
        self._headers = dict(default_headers or {})
        self._http_client = http_client

    def __repr__(self) -> str:
        return f"<OpenAICompatibleProvider id={self.spec.id} model={self.spec.model}>"

    async def complete(
        self,
        prompt: str,
        credential: str,
        cancel_event: Optional[asyncio.Event] = None,
        timeout: Optional[float] = None,
    ) -> Completion:
        timeout = timeout or settings.provider_timeout
        return await run_cancellable(
            lambda: self._request(prompt, credential, timeout),
            cancel_event,
            timeout,
            label=f"{self.spec.id} completion",
        )

    async def _request(self, prompt: str, credential: str, timeout: float) -> Completion:
        return await with_http_client(
            self._http_client, timeout, lambda http: self._create(http, prompt, credential, timeout)
        )

    async def _create(self, http_client: httpx.AsyncClient, prompt: str, credential: str, timeout: float) -> Completion:
        from openai import APIConnectionError, APIError, APIStatusError, APITimeoutError, AsyncOpenAI

        client = AsyncOpenAI(
            api_key=credential,
            base_url=self._base_url,
            default_headers=self._headers or None,
            http_client=http_client,
            max_retries=0,
            timeout=timeout,
        )
        try:
            resp = await client.chat.completions.create(
                model=self.spec.model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=self.spec.max_tokens,
            )
        except APIStatusError as exc:
            message = envelope_message(exc.body) or f"{self.spec.id} API error: {exc.status_code}"
            logger.error(f"[LLM:{self.spec.id}] HTTP {exc.status_code}: {message}")
            raise ProviderError(exc.status_code, message) from exc
        except APITimeoutError as exc:
            raise ProviderTimeout(f"{self.spec.id} request timed out after {timeout}s") from exc
        except APIConnectionError as exc:
            logger.error(f"[LLM:{self.spec.id}] connection error: {exc}")
            raise ProviderError(None, f"{self.spec.id} connection failed: {exc}") from exc
        except APIError as exc:
            raise ProviderError(None, f"{self.spec.id} returned an unreadable response: {exc}") from exc

        if not resp.choices:
            raise ProviderError(None, f"{self.spec.id} response contained no choices")
        return Completion(
            content=resp.choices[0].message.content or "",
            tokens_used=resp.usage.total_tokens if resp.usage else None,
            model=resp.model,
        )


# ---------------------------------------------------------------------------
# Anthropic
# ---------------------------------------------------------------------------


class AnthropicProvider:
    def __init__(self, spec: ProviderSpec, *, http_client: Optional[httpx.AsyncClient] = None) -> None:
        self.spec = spec
        self._base_url = spec.endpoint.removesuffix("/v1/messages")
        self._http_client = http_client

    def __repr__(self) -> str:
        return f"<AnthropicProvider id={self.spec.id} model={self.spec.model}>"

    async def complete(
        self,
        prompt: str,
        credential: str,
        cancel_event: Optional[asyncio.Event] = None,
        timeout: Optional[float] = None,
    ) -> Completion:
        timeout = timeout or settings.provider_timeout
        return await run_cancellable(
            lambda: self._request(prompt, credential, timeout),
            cancel_event,
            timeout,
            label=f"{self.spec.id} completion",
        )

    async def _request(self, prompt: str, credential: str, timeout: float) -> Completion:
        return await with_http_client(
            self._http_client, timeout, lambda http: self._create(http, prompt, credential, timeout)
        )

    async def _create(self, http_client: httpx.AsyncClient, prompt: str, credential: str, timeout: float) -> Completion:
        import anthropic

        client = anthropic.AsyncAnthropic(
            api_key=credential,
            base_url=self._base_url,
            http_client=http_client,
            max_retries=0,
            timeout=timeout,
        )
        try:
            resp = await client.messages.create(
                model=self.spec.model,
                max_tokens=self.spec.max_tokens,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIStatusError as exc:
            message = envelope_message(exc.body) or f"{self.spec.id} API error: {exc.status_code}"
            logger.error(f"[LLM:{self.spec.id}] HTTP {exc.status_code}: {message}")
            raise ProviderError(exc.status_code, message) from exc
        except anthropic.APITimeoutError as exc:
            raise ProviderTimeout(f"{self.spec.id} request timed out after {timeout}s") from exc
        except anthropic.APIConnectionError as exc:
            logger.error(f"[LLM:{self.spec.id}] connection error: {exc}")
            raise ProviderError(None, f"{self.spec.id} connection failed: {exc}") from exc
        except anthropic.APIError as exc:
            raise ProviderError(None, f"{self.spec.id} returned an unreadable response: {exc}") from exc

        text = "".join(block.text for block in resp.content if getattr(block, "type", None) == "text")
        tokens = resp.usage.input_tokens + resp.usage.output_tokens if resp.usage else None
        return Completion(content=text, tokens_used=tokens, model=resp.model)


def _openrouter_headers() -> dict[str, str]:
    headers = {}
    if settings.openrouter_referer:
        headers["HTTP-Referer"] = settings.openrouter_referer
    if settings.openrouter_title:
        headers["X-Title"] = settings.openrouter_title
    return headers


def build_provider(spec: ProviderSpec, http_client: Optional[httpx.AsyncClient] = None) -> ProviderAdapter:
    if spec.id == "anthropic":
        return AnthropicProvider(spec, http_client=http_client)
    if spec.id == "openrouter":
        return OpenAICompatibleProvider(spec, default_headers=_openrouter_headers(), http_client=http_client)
    return OpenAICompatibleProvider(spec, http_client=http_client)


def build_providers(
    specs: tuple[ProviderSpec, ...] = DEFAULT_PROVIDERS,
    http_client: Optional[httpx.AsyncClient] = None,
) -> dict[str, ProviderAdapter]:
    """provider id → adapter, in the order given."""
    return {spec.id: build_provider(spec, http_client) for spec in specs}
