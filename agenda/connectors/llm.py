from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

import httpx
import structlog

from agenda.config import settings

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Call configuration and results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LLMConfig:
    """Per-call provider selection. An empty api_key means fallback mode."""

    provider: str = "gemini"
    api_key: str = ""
    api_url: str | None = None
    model: str | None = None

    @classmethod
    def from_settings(cls, api_key: str | None = None, provider: str | None = None) -> LLMConfig:
        chosen = (provider or settings.llm_provider).lower()
        key = settings.api_key_for(chosen) if api_key is None else api_key
        return cls(provider=chosen, api_key=key)


class LLMFailure(StrEnum):
    no_api_key = "no_api_key"
    transport = "transport"
    malformed = "malformed"


@dataclass
class LLMResult:
    """Outcome of a gateway call: parsed JSON data or a typed failure."""

    data: dict[str, Any] | None = None
    text: str | None = None
    failure: LLMFailure | None = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.failure is None and self.data is not None


def extract_json_object(text: str | None) -> dict[str, Any] | None:
    """Return the first balanced-brace JSON object embedded in ``text``.

    Braces inside string literals are ignored. Candidates that do not decode to a
    dict are skipped.
    """
    if not text:
        return None

    start = text.find("{")
    while start != -1:
        end = _balanced_end(text, start)
        if end is None:
            return None
        try:
            value = json.loads(text[start : end + 1])
        except json.JSONDecodeError:
            value = None
        if isinstance(value, dict):
            return value
        start = text.find("{", start + 1)
    return None


def _balanced_end(text: str, start: int) -> int | None:
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
    return None


# ---------------------------------------------------------------------------
# Abstract base
# ---------------------------------------------------------------------------

class BaseLLMClient(ABC):
    @abstractmethod
    async def complete(self, prompt: str, system_instruction: str = "") -> str:
        """Send one prompt and return the raw text payload. Raises on transport errors."""


# ---------------------------------------------------------------------------
# Gemini implementation (plain REST)
# ---------------------------------------------------------------------------

class GeminiLLMClient(BaseLLMClient):
    """Thin wrapper around the Gemini generateContent endpoint."""

    def __init__(self, config: LLMConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._api_key = config.api_key
        model = config.model or settings.gemini_model
        self._url = config.api_url or f"{settings.gemini_api_url}/{model}:generateContent"
        self._transport = transport

    async def complete(self, prompt: str, system_instruction: str = "") -> str:
        payload: dict[str, Any] = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {"responseMimeType": "application/json"},
        }
        if system_instruction:
            payload["systemInstruction"] = {"parts": [{"text": system_instruction}]}

        async with httpx.AsyncClient(
            timeout=settings.llm_timeout_seconds, transport=self._transport
        ) as client:
            resp = await client.post(self._url, params={"key": self._api_key}, json=payload)
            resp.raise_for_status()
            data = resp.json()

        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            text = ""

        log.debug("llm.gemini.response", content=text[:200] if text else None)
        return text


# ---------------------------------------------------------------------------
# OpenAI implementation
# ---------------------------------------------------------------------------

class OpenAILLMClient(BaseLLMClient):
    def __init__(self, config: LLMConfig) -> None:
        from openai import AsyncOpenAI

        self._client = AsyncOpenAI(
            api_key=config.api_key,
            base_url=config.api_url or None,
            timeout=settings.llm_timeout_seconds,
            max_retries=0,
        )
        self._model = config.model or settings.openai_model

    async def complete(self, prompt: str, system_instruction: str = "") -> str:
        msgs: list[dict[str, Any]] = []
        if system_instruction:
            msgs.append({"role": "system", "content": system_instruction})
        msgs.append({"role": "user", "content": prompt})

        response = await self._client.chat.completions.create(
            model=self._model,
            messages=msgs,
            temperature=0.2,
            response_format={"type": "json_object"},
        )
        text = response.choices[0].message.content or ""
        log.debug("llm.openai.response", content=text[:200] if text else None)
        return text


# ---------------------------------------------------------------------------
# Anthropic implementation
# ---------------------------------------------------------------------------

class AnthropicLLMClient(BaseLLMClient):
    def __init__(self, config: LLMConfig) -> None:
        from anthropic import AsyncAnthropic

        self._client = AsyncAnthropic(
            api_key=config.api_key,
            timeout=settings.llm_timeout_seconds,
            max_retries=0,
        )
        self._model = config.model or settings.anthropic_model
        self._max_tokens = settings.anthropic_max_tokens

    async def complete(self, prompt: str, system_instruction: str = "") -> str:
        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": 0.2,
        }
        if system_instruction:
            kwargs["system"] = system_instruction

        response = await self._client.messages.create(**kwargs)
        text = "\n".join(block.text for block in response.content if block.type == "text")
        log.debug(
            "llm.anthropic.response",
            content=text[:200] if text else None,
            stop_reason=response.stop_reason,
        )
        return text


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def create_llm_client(config: LLMConfig) -> BaseLLMClient:
    """Create an LLM client for the configured provider."""
    if config.provider == "anthropic":
        return AnthropicLLMClient(config)
    if config.provider == "openai":
        return OpenAILLMClient(config)
    return GeminiLLMClient(config)


# ---------------------------------------------------------------------------
# Retrying gateway
# ---------------------------------------------------------------------------

class LLMGateway:
    """Calls the LLM with fixed backoff and returns an LLMResult, never raising."""

    def __init__(
        self,
        client_factory: Callable[[LLMConfig], BaseLLMClient] = create_llm_client,
        retry_delays: list[float] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._client_factory = client_factory
        self._delays = list(settings.llm_retry_delays if retry_delays is None else retry_delays)
        self._sleep = sleep

    async def call(
        self,
        prompt: str,
        system_instruction: str,
        config: LLMConfig,
    ) -> LLMResult:
        if not config.api_key:
            log.warning("llm.no_api_key", provider=config.provider)
            return LLMResult(failure=LLMFailure.no_api_key)

        try:
            client = self._client_factory(config)
        except Exception:
            log.exception("llm.client_init_failed", provider=config.provider)
            return LLMResult(failure=LLMFailure.transport)

        failure = LLMFailure.transport
        text: str | None = None
        max_attempts = len(self._delays) + 1

        for attempt in range(1, max_attempts + 1):
            try:
                text = await client.complete(prompt, system_instruction)
            except Exception as exc:
                failure = LLMFailure.transport
                log.warning(
                    "llm.attempt_failed",
                    provider=config.provider,
                    attempt=attempt,
                    error=str(exc),
                )
            else:
                data = extract_json_object(text)
                if data is not None:
                    return LLMResult(data=data, text=text, attempts=attempt)
                failure = LLMFailure.malformed
                log.warning(
                    "llm.malformed_response",
                    provider=config.provider,
                    attempt=attempt,
                    content=text[:200] if text else None,
                )

            if attempt < max_attempts:
                await self._sleep(self._delays[attempt - 1])

        log.error("llm.retries_exhausted", provider=config.provider, failure=failure)
        return LLMResult(text=text, failure=failure, attempts=max_attempts)
