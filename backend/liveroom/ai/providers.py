from __future__ import annotations

import asyncio
import logging
from typing import Protocol

import google.generativeai as genai
from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from liveroom.core.config import (
    AI_RETRIES,
    AI_TIMEOUT_SEC,
    ANTHROPIC_API_KEY,
    ANTHROPIC_MODEL,
    GEMINI_API_KEY,
    GEMINI_MODEL,
    OPENAI_API_KEY,
    OPENAI_MODEL,
)

logger = logging.getLogger("ai.providers")


class ProviderError(RuntimeError):
    pass


class CompletionProvider(Protocol):
    name: str

    async def complete(self, prompt: str, temperature: float = 0.4) -> str:
        ...


class OpenAIProvider:
    name = "openai"

    def __init__(
        self,
        api_key: str = OPENAI_API_KEY,
        model: str = OPENAI_MODEL,
        timeout_sec: float = AI_TIMEOUT_SEC,
        retries: int = AI_RETRIES,
        client: AsyncOpenAI | None = None,
    ):
        self.client = client or AsyncOpenAI(api_key=api_key)
        self.model = model
        self.timeout_sec = timeout_sec
        self.retries = max(0, int(retries))

    async def complete(self, prompt: str, temperature: float = 0.4) -> str:
        last_error: Exception | None = None
        for attempt in range(self.retries + 1):
            try:
                response = await asyncio.wait_for(
                    self.client.chat.completions.create(
                        model=self.model,
                        messages=[
                            {"role": "system", "content": "You are a strict JSON generator. Output JSON only."},
                            {"role": "user", "content": prompt},
                        ],
                        temperature=temperature,
                    ),
                    timeout=self.timeout_sec,
                )
                content = str(response.choices[0].message.content or "").strip()
                if content:
                    return content
                last_error = ProviderError("empty completion")
            except asyncio.TimeoutError as exc:
                last_error = exc
                logger.warning("openai timeout | attempt=%s", attempt + 1)
            except Exception as exc:
                last_error = exc
                logger.warning("openai failure | attempt=%s err=%s", attempt + 1, exc)

            if attempt < self.retries:
                await asyncio.sleep(0.35 * (attempt + 1))

        raise ProviderError(f"openai failed: {last_error}") from last_error


class GeminiProvider:
    name = "gemini"

    def __init__(self, api_key: str = GEMINI_API_KEY, model: str = GEMINI_MODEL, timeout_sec: float = AI_TIMEOUT_SEC):
        genai.configure(api_key=api_key)
        self.model = genai.GenerativeModel(model)
        self.timeout_sec = timeout_sec

    async def complete(self, prompt: str, temperature: float = 0.4) -> str:
        try:
            response = await asyncio.wait_for(
                self.model.generate_content_async(prompt, generation_config={"temperature": temperature}),
                timeout=self.timeout_sec,
            )
        except asyncio.TimeoutError as exc:
            raise ProviderError("gemini timeout") from exc
        content = str(response.text or "").strip()
        if not content:
            raise ProviderError("gemini returned an empty completion")
        return content


class AnthropicProvider:
    name = "anthropic"

    def __init__(
        self,
        api_key: str = ANTHROPIC_API_KEY,
        model: str = ANTHROPIC_MODEL,
        timeout_sec: float = AI_TIMEOUT_SEC,
        client: AsyncAnthropic | None = None,
    ):
        self.client = client or AsyncAnthropic(api_key=api_key)
        self.model = model
        self.timeout_sec = timeout_sec

    async def complete(self, prompt: str, temperature: float = 0.4) -> str:
        try:
            response = await asyncio.wait_for(
                self.client.messages.create(
                    model=self.model,
                    max_tokens=1024,
                    temperature=temperature,
                    messages=[{"role": "user", "content": prompt}],
                ),
                timeout=self.timeout_sec,
            )
        except asyncio.TimeoutError as exc:
            raise ProviderError("anthropic timeout") from exc
        content = "".join(getattr(block, "text", "") for block in response.content).strip()
        if not content:
            raise ProviderError("anthropic returned an empty completion")
        return content


def build_default_providers() -> dict[str, CompletionProvider]:
    """Providers whose API key is configured, keyed by name."""
    providers: dict[str, CompletionProvider] = {}
    if OPENAI_API_KEY:
        providers["openai"] = OpenAIProvider()
    if GEMINI_API_KEY:
        providers["gemini"] = GeminiProvider()
    if ANTHROPIC_API_KEY:
        providers["anthropic"] = AnthropicProvider()
    if not providers:
        logger.warning("No AI provider keys configured; assistance will use static fallbacks")
    return providers
