from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import litellm
import pytest

from skillbase.errors import ProviderError, ProviderRateLimitResponse
from skillbase.llm import LiteLLMClient
from skillbase.models import Turn


def _response(text: str) -> SimpleNamespace:
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=text))],
        usage=SimpleNamespace(
            prompt_tokens=12,
            completion_tokens=3,
            cache_creation_input_tokens=None,
            cache_read_input_tokens=4,
        ),
    )


async def test_complete_sends_system_and_history(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, Any] = {}

    async def fake_acompletion(**kwargs: Any) -> SimpleNamespace:
        captured.update(kwargs)
        return _response("  Answer: Yes  ")

    monkeypatch.setattr(litellm, "acompletion", fake_acompletion)
    client = LiteLLMClient("anthropic/claude-sonnet-4-20250514", api_key="k")

    completion = await client.complete(
        "system text", [Turn(role="user", content="Q?")], timeout=30
    )

    assert captured["messages"] == [
        {"role": "system", "content": "system text"},
        {"role": "user", "content": "Q?"},
    ]
    assert captured["timeout"] == 30
    assert completion.text == "Answer: Yes"
    assert completion.model == "claude-sonnet-4-20250514"
    assert completion.usage.input_tokens == 12
    assert completion.usage.cache_read_tokens == 4
    assert completion.usage.cache_creation_tokens == 0


async def test_rate_limit_is_translated(monkeypatch: pytest.MonkeyPatch) -> None:
    async def throttled(**kwargs: Any) -> None:
        raise litellm.RateLimitError(
            message="slow down", llm_provider="anthropic", model="claude"
        )

    monkeypatch.setattr(litellm, "acompletion", throttled)
    with pytest.raises(ProviderRateLimitResponse):
        await LiteLLMClient("anthropic/claude").complete("s", [])


async def test_other_failures_become_provider_errors(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    async def broken(**kwargs: Any) -> None:
        raise RuntimeError("invalid x-api-key")

    monkeypatch.setattr(litellm, "acompletion", broken)
    with pytest.raises(ProviderError, match="invalid x-api-key"):
        await LiteLLMClient("anthropic/claude").complete("s", [])
