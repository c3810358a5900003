from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from skillbase.models.utils import generate_id, utcnow


@dataclass(frozen=True)
class UsageRecord:
    """Token accounting for one successful provider call. Append-only."""

    feature: str
    model: str
    input_tokens: int
    output_tokens: int

    user_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    estimated_cost: float = 0.0
    id: str = field(default_factory=generate_id)
    created_at: datetime = field(default_factory=utcnow)

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens
