"""LLM provider abstraction with a Claude default and a mock for testing."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class LLMMessage(BaseModel):
    """A single message in a conversation."""

    role: str  # "user", "assistant"
    content: str


class LLMResponse(BaseModel):
    """Response from an LLM provider."""

    content: str
    model: str
    usage: dict[str, int] = {}  # input_tokens, output_tokens
    stop_reason: str | None = None


class LLMProvider:
    """Base class for LLM providers.

    Subclass and override ``complete`` to plug in another backend.
    """

    async def complete(
        self,
        messages: list[LLMMessage],
        *,
        system: str | None = None,
        max_tokens: int = 1024,
        temperature: float | None = None,
    ) -> LLMResponse:
        """Generate a completion for the given messages."""
        raise NotImplementedError


class ClaudeLLMProvider(LLMProvider):
    """Claude API provider using the Anthropic SDK."""

    def __init__(self, api_key: str, model: str = "claude-sonnet-4-20250514") -> None:
        import anthropic

        self._client = anthropic.AsyncAnthropic(api_key=api_key)
        self._model = model

    async def complete(
        self,
        messages: list[LLMMessage],
        *,
        system: str | None = None,
        max_tokens: int = 1024,
        temperature: float | None = None,
    ) -> LLMResponse:
        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_tokens": max_tokens,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
        }
        if system:
            kwargs["system"] = system
        if temperature is not None:
            kwargs["temperature"] = temperature

        response = await self._client.messages.create(**kwargs)

        return LLMResponse(
            content=response.content[0].text,
            model=response.model,
            usage={
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
            },
            stop_reason=response.stop_reason,
        )


class MockLLMProvider(LLMProvider):
    """Mock provider for testing; cycles through pre-configured responses."""

    def __init__(self, responses: list[str] | None = None) -> None:
        self._responses = responses or ["Mock LLM response"]
        self._call_count = 0

    @property
    def call_count(self) -> int:
        return self._call_count

    async def complete(
        self,
        messages: list[LLMMessage],
        *,
        system: str | None = None,
        max_tokens: int = 1024,
        temperature: float | None = None,
    ) -> LLMResponse:
        idx = self._call_count % len(self._responses)
        self._call_count += 1
        return LLMResponse(
            content=self._responses[idx],
            model="mock-model",
            usage={"input_tokens": 10, "output_tokens": 20},
            stop_reason="end_turn",
        )
