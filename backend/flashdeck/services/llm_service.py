"""
Text-completion provider for AI flashcard generation.

Any OpenAI-compatible chat completions endpoint works (OpenRouter by default).
The rest of the app only sees the CompletionProvider protocol:

    text = await provider.complete(system_prompt, user_prompt, max_tokens=...)
"""
from __future__ import annotations

import logging
from typing import Protocol

import httpx

from flashdeck.config import settings

logger = logging.getLogger(__name__)


class LLMUnavailableError(Exception):
    """Raised when the completion endpoint is unconfigured, unreachable or returns garbage."""


class CompletionProvider(Protocol):
    async def complete(
        self, system_prompt: str, user_prompt: str, max_tokens: int = 1024
    ) -> str: ...


class OpenAICompatibleProvider:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        model: str,
        timeout: float = 30.0,
        temperature: float = 0.7,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.temperature = temperature
        self._transport = transport

    async def complete(
        self, system_prompt: str, user_prompt: str, max_tokens: int = 1024
    ) -> str:
        if not self.api_key:
            raise LLMUnavailableError("No LLM API key configured")

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "max_tokens": max_tokens,
            "temperature": self.temperature,
        }
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                res = await client.post(
                    "/chat/completions",
                    json=payload,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
                res.raise_for_status()
                data = res.json()
        except httpx.HTTPStatusError as e:
            logger.warning(
                "Completion request rejected (%s): %s", e.response.status_code, self.model
            )
            raise LLMUnavailableError(
                f"Completion endpoint returned {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Completion request failed (%s): %s", self.model, e)
            raise LLMUnavailableError(f"Completion request failed: {e}") from e

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise LLMUnavailableError("Malformed completion response") from e
        if not content:
            raise LLMUnavailableError("Completion response had no content")
        return content


def provider_from_settings() -> OpenAICompatibleProvider:
    return OpenAICompatibleProvider(
        base_url=settings.llm_base_url,
        api_key=settings.llm_api_key,
        model=settings.llm_model,
        timeout=settings.llm_timeout_seconds,
    )
