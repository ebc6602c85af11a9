"""Tests for LLM provider abstraction."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from agent_warden.llm import ClaudeLLMProvider, LLMMessage, LLMProvider, MockLLMProvider

# ── MockLLMProvider ───────────────────────────────────────────────


@pytest.mark.asyncio
async def test_mock_provider_returns_responses() -> None:
    provider = MockLLMProvider(responses=["first", "second"])
    messages = [LLMMessage(role="user", content="Hello")]

    r1 = await provider.complete(messages)
    assert r1.content == "first"
    assert r1.model == "mock-model"

    r2 = await provider.complete(messages)
    assert r2.content == "second"

    # Wraps around
    r3 = await provider.complete(messages)
    assert r3.content == "first"

    assert provider.call_count == 3


@pytest.mark.asyncio
async def test_base_provider_is_abstract() -> None:
    with pytest.raises(NotImplementedError):
        await LLMProvider().complete([LLMMessage(role="user", content="hi")])


# ── ClaudeLLMProvider ─────────────────────────────────────────────


def test_claude_provider_init() -> None:
    provider = ClaudeLLMProvider(api_key="test-key", model="claude-haiku-4-5-20251001")
    assert provider._model == "claude-haiku-4-5-20251001"
    assert provider._client is not None


@pytest.mark.asyncio
async def test_claude_provider_maps_response() -> None:
    provider = ClaudeLLMProvider(api_key="test-key")
    create = AsyncMock(
        return_value=SimpleNamespace(
            content=[SimpleNamespace(text="RISK_LEVEL: low")],
            model="claude-test",
            usage=SimpleNamespace(input_tokens=12, output_tokens=4),
            stop_reason="end_turn",
        )
    )
    provider._client = SimpleNamespace(messages=SimpleNamespace(create=create))

    response = await provider.complete(
        [LLMMessage(role="user", content="classify")], system="be brief", temperature=0
    )

    assert response.content == "RISK_LEVEL: low"
    assert response.usage == {"input_tokens": 12, "output_tokens": 4}
    kwargs = create.call_args.kwargs
    assert kwargs["system"] == "be brief"
    assert kwargs["temperature"] == 0
    assert kwargs["messages"] == [{"role": "user", "content": "classify"}]
