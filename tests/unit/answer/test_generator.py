from __future__ import annotations

import pytest

from skillbase.answer.generator import AnswerGenerator
from skillbase.errors import (
    ProviderError,
    ProviderTimeout,
    RateLimited,
    ValidationError,
)
from skillbase.models import RateLimitSettings, Turn
from tests.conftest import FakeLLMClient, RecordingSleep, throttled

SYSTEM = "## Role\nAnswer questionnaires."


def _settings(**overrides) -> RateLimitSettings:
    values = {"retry_wait_ms": 60000, "max_retries": 3} | overrides
    return RateLimitSettings(**values)


async def test_success_on_first_attempt(llm: FakeLLMClient, sleep: RecordingSleep) -> None:
    gen = AnswerGenerator(llm, sleep=sleep)
    result = await gen.answer("Do you support SSO?", SYSTEM, settings=_settings())

    assert result.attempts == 1
    assert llm.call_count == 1
    assert sleep.waits == []
    assert result.updated_history[0] == Turn(role="user", content="Do you support SSO?")
    assert result.updated_history[-1].role == "assistant"
    assert result.usage.total_tokens == 120


async def test_two_throttles_then_success(sleep: RecordingSleep) -> None:
    llm = FakeLLMClient([throttled(), throttled(), "Answer: Yes"])
    gen = AnswerGenerator(llm, sleep=sleep)

    result = await gen.answer("Q?", SYSTEM, settings=_settings())

    assert result.text == "Answer: Yes"
    assert result.attempts == 3
    assert llm.call_count == 3
    assert sleep.waits == [60.0, 60.0]


@pytest.mark.parametrize("max_retries", [0, 1, 3])
async def test_persistent_throttling_raises_rate_limited(
    max_retries: int, sleep: RecordingSleep
) -> None:
    llm = FakeLLMClient([throttled()] * 10)
    gen = AnswerGenerator(llm, sleep=sleep)

    with pytest.raises(RateLimited) as exc_info:
        await gen.answer("Q?", SYSTEM, settings=_settings(max_retries=max_retries))

    assert llm.call_count == max_retries + 1
    assert len(sleep.waits) == max_retries
    assert exc_info.value.attempts == max_retries + 1


async def test_zero_wait_retries_succeed_on_third_call() -> None:
    sleep = RecordingSleep()
    llm = FakeLLMClient([throttled(), throttled(), "Answer: ok"])
    settings = _settings(max_retries=2, retry_wait_ms=0)

    result = await AnswerGenerator(llm, sleep=sleep).answer("Q?", SYSTEM, settings=settings)

    assert result.text == "Answer: ok"
    assert llm.call_count == 3
    assert sleep.waits == [0.0, 0.0]


async def test_timeouts_are_retried_then_reported(sleep: RecordingSleep) -> None:
    llm = FakeLLMClient([ProviderTimeout("read timeout")] * 5)
    gen = AnswerGenerator(llm, sleep=sleep)

    with pytest.raises(ProviderError, match="timed out after 2 attempt"):
        await gen.answer("Q?", SYSTEM, settings=_settings(max_retries=1))
    assert llm.call_count == 2


async def test_other_provider_errors_are_not_retried(sleep: RecordingSleep) -> None:
    llm = FakeLLMClient([ProviderError("invalid api key"), "unused"])
    gen = AnswerGenerator(llm, sleep=sleep)

    with pytest.raises(ProviderError, match="invalid api key"):
        await gen.answer("Q?", SYSTEM, settings=_settings())
    assert llm.call_count == 1
    assert sleep.waits == []


async def test_empty_completion_is_a_provider_error(sleep: RecordingSleep) -> None:
    gen = AnswerGenerator(FakeLLMClient(["   "]), sleep=sleep)
    with pytest.raises(ProviderError, match="empty completion"):
        await gen.answer("Q?", SYSTEM, settings=_settings())


@pytest.mark.parametrize(
    ("question", "system", "history"),
    [
        ("", SYSTEM, ()),
        ("Q?", "  ", ()),
        ("Q?", SYSTEM, (Turn(role="system", content="x"),)),  # type: ignore[arg-type]
        ("Q?", SYSTEM, (Turn(role="user", content=""),)),
    ],
)
async def test_invalid_input_is_rejected_before_calling(
    question: str, system: str, history: tuple[Turn, ...], llm: FakeLLMClient
) -> None:
    gen = AnswerGenerator(llm)
    with pytest.raises(ValidationError):
        await gen.answer(question, system, history)
    assert llm.call_count == 0


async def test_prior_history_is_sent_before_question(llm: FakeLLMClient) -> None:
    prior = [
        Turn(role="user", content="First?"),
        Turn(role="assistant", content="First answer."),
    ]
    result = await AnswerGenerator(llm).answer("Second?", SYSTEM, prior)

    _, sent = llm.calls[0]
    assert sent == [*prior, Turn(role="user", content="Second?")]
    assert len(result.updated_history) == 4
