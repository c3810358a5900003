from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from skillbase.llm.base import Usage
from skillbase.models import UsageRecord
from skillbase.store.base import Store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelPricing:
    """USD per one million tokens."""

    input: float
    output: float


PRICING: dict[str, ModelPricing] = {
    "claude-sonnet-4-20250514": ModelPricing(input=3.0, output=15.0),
    "claude-3-5-sonnet-20241022": ModelPricing(input=3.0, output=15.0),
    "claude-3-opus-20240229": ModelPricing(input=15.0, output=75.0),
    "claude-3-haiku-20240307": ModelPricing(input=0.25, output=1.25),
}
DEFAULT_PRICING = ModelPricing(input=3.0, output=15.0)

CACHE_WRITE_MULTIPLIER = 1.25
CACHE_READ_MULTIPLIER = 0.1


def pricing_for(model: str) -> ModelPricing:
    # Provider-prefixed ids (e.g. Bedrock's) embed the Anthropic model name.
    for name, pricing in PRICING.items():
        if name in model:
            return pricing
    return DEFAULT_PRICING


def calculate_cost(
    model: str,
    input_tokens: int,
    output_tokens: int,
    cache_creation_tokens: int = 0,
    cache_read_tokens: int = 0,
) -> float:
    pricing = pricing_for(model)
    uncached = max(0, input_tokens - cache_creation_tokens - cache_read_tokens)
    return (
        uncached * pricing.input
        + cache_creation_tokens * pricing.input * CACHE_WRITE_MULTIPLIER
        + cache_read_tokens * pricing.input * CACHE_READ_MULTIPLIER
        + output_tokens * pricing.output
    ) / 1_000_000


@dataclass
class FeatureUsage:
    calls: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    estimated_cost: float = 0.0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class UsageTracker:
    """Appends ``UsageRecord`` rows. Failures are logged, never raised."""

    def __init__(self, store: Store) -> None:
        self._store = store

    async def log(
        self,
        feature: str,
        model: str,
        usage: Usage,
        *,
        user_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> UsageRecord | None:
        meta = dict(metadata or {})
        if usage.cache_creation_tokens:
            meta["cache_creation_tokens"] = usage.cache_creation_tokens
        if usage.cache_read_tokens:
            meta["cache_read_tokens"] = usage.cache_read_tokens
        record = UsageRecord(
            feature=feature,
            model=model,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            user_id=user_id,
            metadata=meta,
            estimated_cost=calculate_cost(
                model,
                usage.input_tokens,
                usage.output_tokens,
                usage.cache_creation_tokens,
                usage.cache_read_tokens,
            ),
        )
        try:
            await self._store.append_usage(record)
        except Exception:
            logger.error(
                "Failed to log API usage for feature=%s model=%s",
                feature,
                model,
                exc_info=True,
            )
            return None
        return record

    async def usage_summary(
        self,
        *,
        feature: str | None = None,
        since: datetime | None = None,
    ) -> dict[str, FeatureUsage]:
        summary: dict[str, FeatureUsage] = {}
        for record in await self._store.list_usage(feature=feature, since=since):
            bucket = summary.setdefault(record.feature, FeatureUsage())
            bucket.calls += 1
            bucket.input_tokens += record.input_tokens
            bucket.output_tokens += record.output_tokens
            bucket.estimated_cost += record.estimated_cost
        return summary
