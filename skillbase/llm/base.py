from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass

from skillbase.models import Turn


@dataclass(frozen=True)
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_tokens: int = 0
    cache_read_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True)
class Completion:
    text: str
    usage: Usage
    model: str


class BaseLLMClient(ABC):
    """Single-shot chat completion against a hosted model.

    Implementations translate provider failures into the skillbase error
    taxonomy: throttling raises ``ProviderRateLimitResponse``, timeouts and
    dropped connections raise ``ProviderTimeout`` and anything else raises
    ``ProviderError``.
    """

    @property
    @abstractmethod
    def model(self) -> str: ...

    @abstractmethod
    async def complete(
        self,
        system: str,
        messages: Sequence[Turn],
        *,
        timeout: float | None = None,
    ) -> Completion: ...
