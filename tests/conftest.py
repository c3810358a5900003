from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime, timedelta

import pytest

from skillbase.errors import ProviderRateLimitResponse
from skillbase.llm.base import BaseLLMClient, Completion, Usage
from skillbase.models import KnowledgeEntry, Tier, Turn
from skillbase.store.memory import InMemoryStore

DEFAULT_ANSWER = """\
Answer: Yes, SSO is supported via SAML 2.0 and OIDC.
Confidence: High
Sources: Single Sign-On
Reasoning: The knowledge base documents both protocols.
Remarks: None"""


class FakeLLMClient(BaseLLMClient):
    """Scripted client: each call pops the next response or raises it."""

    def __init__(
        self,
        script: Sequence[str | Exception] = (),
        *,
        default: str = DEFAULT_ANSWER,
        model: str = "claude-sonnet-4-20250514",
    ) -> None:
        self.script: list[str | Exception] = list(script)
        self.default = default
        self._model = model
        self.calls: list[tuple[str, list[Turn]]] = []

    @property
    def model(self) -> str:
        return self._model

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def complete(
        self,
        system: str,
        messages: Sequence[Turn],
        *,
        timeout: float | None = None,
    ) -> Completion:
        self.calls.append((system, list(messages)))
        step = self.script.pop(0) if self.script else self.default
        if isinstance(step, Exception):
            raise step
        return Completion(
            text=step,
            usage=Usage(input_tokens=100, output_tokens=20),
            model=self._model,
        )


def throttled() -> ProviderRateLimitResponse:
    return ProviderRateLimitResponse("429 Too Many Requests")


class RecordingSleep:
    """Drop-in for ``asyncio.sleep`` that records requested waits."""

    def __init__(self) -> None:
        self.waits: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.waits.append(seconds)


def make_entry(
    title: str,
    content: str = "",
    *,
    tier: Tier = Tier.core,
    tags: Sequence[str] = (),
    categories: Sequence[str] = (),
    age_days: int = 0,
    **kwargs,
) -> KnowledgeEntry:
    stamp = datetime(2025, 6, 1, tzinfo=UTC) - timedelta(days=age_days)
    return KnowledgeEntry(
        title=title,
        content=content,
        tier=tier,
        tags=list(tags),
        categories=list(categories),
        created_at=stamp,
        updated_at=stamp,
        **kwargs,
    )


@pytest.fixture()
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture()
def llm() -> FakeLLMClient:
    return FakeLLMClient()


@pytest.fixture()
def sleep() -> RecordingSleep:
    return RecordingSleep()
