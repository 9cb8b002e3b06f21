"""
ShuffleBot — LLM Provider Abstraction.

Two independent completion backends, one per chat command:
  /gpt  → any OpenAI-compatible chat completions endpoint
  /ygpt → Yandex GPT foundation models API

A backend without credentials is "not configured"; that's a normal state
reported to the user, not an error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable

import httpx

from src.ports.llm_port import LLMError

if TYPE_CHECKING:
    from src.config import Settings

logger = logging.getLogger(__name__)

# Type alias for provider implementations
_ProviderFn = Callable[["Settings", str], Awaitable[str]]

_YANDEX_MODEL = "yandexgpt/latest"


# ---------------------------------------------------------------------------
# Provider implementations
# ---------------------------------------------------------------------------


async def _complete_openai(settings: Settings, text: str) -> str:
    from openai import AsyncOpenAI

    client = AsyncOpenAI(
        api_key=settings.GPT_API_KEY,
        organization=settings.GPT_ORGANIZATION or None,
        base_url=settings.GPT_URL or None,
        timeout=settings.TIMEOUT,
    )
    response = await client.chat.completions.create(
        model=settings.GPT_MODEL,
        max_tokens=settings.GPT_MAX_TOKENS,
        temperature=settings.GPT_TEMPERATURE,
        messages=[{"role": "user", "content": text}],
    )
    return response.choices[0].message.content or ""


async def _complete_yandex(settings: Settings, text: str) -> str:
    payload = {
        "modelUri": f"gpt://{settings.YANDEX_GPT_FOLDER}/{_YANDEX_MODEL}",
        "completionOptions": {"stream": False, "temperature": 0.6, "maxTokens": "2000"},
        "messages": [{"role": "user", "text": text}],
    }
    async with httpx.AsyncClient(timeout=settings.TIMEOUT) as client:
        resp = await client.post(
            settings.YANDEX_GPT_URL,
            json=payload,
            headers={
                "Authorization": f"Api-Key {settings.YANDEX_GPT_API_KEY}",
                "x-folder-id": settings.YANDEX_GPT_FOLDER,
            },
        )
        resp.raise_for_status()
        data = resp.json()

    alternatives = data.get("result", {}).get("alternatives", [])
    if not alternatives:
        raise LLMError("yandex gpt returned no alternatives")
    return alternatives[0]["message"]["text"]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


@dataclass
class Provider:
    """A named completion backend bound to the application settings."""

    name: str
    settings: Settings
    fn: _ProviderFn
    enabled: bool

    @property
    def configured(self) -> bool:
        return self.enabled

    async def complete(self, text: str) -> str:
        """Send `text` to the backend and return the response text.

        Raises LLMError on any backend failure.
        """
        if not self.enabled:
            raise LLMError(f"{self.name} client is not defined")
        try:
            result = await self.fn(self.settings, text)
        except LLMError:
            raise
        except Exception as exc:
            raise LLMError(f"{self.name} completion error: {exc}") from exc
        return result.strip()


def build_providers(settings: Settings) -> dict[str, Provider]:
    """Return the GPT backends keyed by the command that uses them."""
    providers = {
        "gpt": Provider(
            name="gpt",
            settings=settings,
            fn=_complete_openai,
            enabled=bool(settings.GPT_API_KEY),
        ),
        "ygpt": Provider(
            name="yandex gpt",
            settings=settings,
            fn=_complete_yandex,
            enabled=bool(settings.YANDEX_GPT_API_KEY and settings.YANDEX_GPT_FOLDER),
        ),
    }
    for key, provider in providers.items():
        logger.info("LLM provider /%s configured: %s", key, provider.configured)
    return providers
