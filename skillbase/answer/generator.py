from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from skillbase.answer.states import (
    BackoffState,
    FailedState,
    PendingState,
    RequestingState,
    RetryState,
    State,
    StopState,
    SuccessState,
)
from skillbase.errors import (
    ProviderError,
    ProviderRateLimitResponse,
    ProviderTimeout,
    RateLimited,
    ValidationError,
)
from skillbase.llm.base import BaseLLMClient, Usage
from skillbase.models import RateLimitSettings, Turn

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

DEFAULT_REQUEST_TIMEOUT_S = 120.0


@dataclass(frozen=True)
class AnswerResult:
    text: str
    usage: Usage
    model: str
    updated_history: list[Turn]
    attempts: int = 1


def validate_history(history: Sequence[Turn]) -> None:
    for index, turn in enumerate(history):
        if turn.role not in ("user", "assistant"):
            raise ValidationError(f"History turn {index} has invalid role {turn.role!r}")
        if not isinstance(turn.content, str) or not turn.content.strip():
            raise ValidationError(f"History turn {index} has empty content")


class AnswerGenerator:
    """Sends one question to the model, retrying transient failures.

    Throttling responses and per-call timeouts are retried after a fixed
    ``retry_wait_ms`` wait, at most ``max_retries`` times.  ``sleep`` is
    injectable so the retry loop can be driven without wall-clock waits.
    """

    def __init__(
        self,
        llm: BaseLLMClient,
        *,
        sleep: Sleep = asyncio.sleep,
        request_timeout_s: float | None = DEFAULT_REQUEST_TIMEOUT_S,
    ) -> None:
        self._llm = llm
        self._sleep = sleep
        self.request_timeout_s = request_timeout_s

    async def answer(
        self,
        question: str,
        system_prompt: str,
        prior_history: Sequence[Turn] = (),
        settings: RateLimitSettings | None = None,
    ) -> AnswerResult:
        if not question or not question.strip():
            raise ValidationError("Question must not be empty")
        if not system_prompt or not system_prompt.strip():
            raise ValidationError("System prompt must not be empty")
        validate_history(prior_history)
        settings = settings or RateLimitSettings.defaults()

        user_turn = Turn(role="user", content=question.strip())
        messages = [*prior_history, user_turn]

        state: State = PendingState()
        while not isinstance(state, StopState):
            if isinstance(state, RetryState):
                logger.info(
                    "Retry %d/%d in %.1fs",
                    state.retry_count,
                    settings.max_retries,
                    state.retry_countdown,
                )
                await self._sleep(state.retry_countdown)
            state = await self._transition(state, system_prompt, messages, settings)

        if isinstance(state, SuccessState):
            completion = state.completion
            return AnswerResult(
                text=completion.text,
                usage=completion.usage,
                model=completion.model,
                updated_history=[
                    *messages,
                    Turn(role="assistant", content=completion.text),
                ],
                attempts=state.attempts,
            )

        assert isinstance(state, FailedState)
        if state.kind == "rate_limited":
            raise RateLimited(state.attempts)
        if state.kind == "timeout":
            raise ProviderError(
                f"Provider call timed out after {state.attempts} attempt(s)"
            )
        raise ProviderError(state.error_message)

    async def _transition(
        self,
        state: State,
        system_prompt: str,
        messages: list[Turn],
        settings: RateLimitSettings,
    ) -> State:
        match state:
            case PendingState():
                return RequestingState(attempt=1)
            case BackoffState() as backoff:
                return RequestingState(attempt=backoff.retry_count + 1)
            case RequestingState() as requesting:
                return await self._request(
                    requesting.attempt, system_prompt, messages, settings
                )
            case _:
                raise ValueError(f"Unknown answer state {state!r}")

    async def _request(
        self,
        attempt: int,
        system_prompt: str,
        messages: list[Turn],
        settings: RateLimitSettings,
    ) -> State:
        try:
            completion = await self._llm.complete(
                system_prompt, messages, timeout=self.request_timeout_s
            )
        except (ProviderRateLimitResponse, ProviderTimeout) as exc:
            reason = (
                "rate_limited" if isinstance(exc, ProviderRateLimitResponse) else "timeout"
            )
            if attempt > settings.max_retries:
                logger.warning(
                    "Giving up after %d attempt(s): %s", attempt, exc.message
                )
                return FailedState(
                    kind=reason, error_message=exc.message, attempts=attempt
                )
            logger.info("Attempt %d failed (%s), backing off", attempt, reason)
            return BackoffState(
                retry_count=attempt, wait_s=settings.retry_wait_s, reason=reason
            )
        except ProviderError as exc:
            return FailedState(kind="provider", error_message=exc.message, attempts=attempt)

        if not completion.text.strip():
            return FailedState(
                kind="provider",
                error_message="Provider returned an empty completion",
                attempts=attempt,
            )
        return SuccessState(completion=completion, attempts=attempt)
