from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime

from skillbase.errors import ValidationError
from skillbase.models.utils import utcnow


class LLMProvider(enum.StrEnum):
    anthropic = "anthropic"
    bedrock = "bedrock"


class SettingKey(enum.StrEnum):
    BATCH_SIZE = "LLM_BATCH_SIZE"
    BATCH_DELAY_MS = "LLM_BATCH_DELAY_MS"
    RETRY_WAIT_MS = "LLM_RATE_LIMIT_RETRY_WAIT_MS"
    MAX_RETRIES = "LLM_RATE_LIMIT_MAX_RETRIES"
    PROVIDER = "LLM_PROVIDER"


@dataclass(frozen=True)
class RateLimitSettings:
    """Throughput knobs for one batch run or one answer call."""

    batch_size: int = 5
    batch_delay_ms: int = 15000
    retry_wait_ms: int = 60000
    max_retries: int = 3
    provider: LLMProvider = LLMProvider.anthropic

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValidationError("batch_size must be at least 1")
        for name in ("batch_delay_ms", "retry_wait_ms", "max_retries"):
            if getattr(self, name) < 0:
                raise ValidationError(f"{name} must not be negative")

    @classmethod
    def defaults(cls) -> RateLimitSettings:
        return cls()

    @property
    def batch_delay_s(self) -> float:
        return self.batch_delay_ms / 1000

    @property
    def retry_wait_s(self) -> float:
        return self.retry_wait_ms / 1000


@dataclass
class AppSetting:
    """A persisted key/value setting row."""

    key: str
    value: str
    updated_by: str | None = None
    updated_at: datetime = field(default_factory=utcnow)
