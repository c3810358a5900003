"""State classes for the per-question answer state machine.

Hierarchy:
    State
    ├── NextState   → driver advances immediately
    ├── RetryState  → driver sleeps ``retry_countdown`` seconds, then advances
    └── StopState   → driver stops (terminal)

Flow:
    PendingState → RequestingState → SuccessState
                                   → BackoffState → RequestingState (bounded)
                                   → FailedState
"""

from __future__ import annotations

from abc import abstractmethod
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from skillbase.llm.base import Completion
from skillbase.models.utils import utcnow


class State:
    """Base marker for all states."""


class NextState(State):
    """Transition state: the driver should advance immediately."""


class RetryState(State):
    """The driver should wait ``retry_countdown`` seconds then retry."""

    retry_count: int = 0

    @property
    @abstractmethod
    def retry_countdown(self) -> float:
        """Seconds to wait before retrying."""


class StopState(State):
    """Terminal state: the driver does not advance further."""


class PendingState(BaseModel, NextState):
    status: Literal["PENDING"] = "PENDING"
    timestamp: datetime = Field(default_factory=utcnow)


class RequestingState(BaseModel, NextState):
    status: Literal["REQUESTING"] = "REQUESTING"
    attempt: int = 1


class BackoffState(BaseModel, RetryState):
    """A transient failure occurred; wait before the next attempt."""

    status: Literal["BACKOFF"] = "BACKOFF"
    retry_count: int
    wait_s: float
    reason: Literal["rate_limited", "timeout"]

    @property
    def retry_countdown(self) -> float:
        return self.wait_s


class SuccessState(BaseModel, StopState):
    status: Literal["SUCCESS"] = "SUCCESS"
    completion: Completion
    attempts: int


FailureKind = Literal["rate_limited", "timeout", "provider"]


class FailedState(BaseModel, StopState):
    status: Literal["FAILED"] = "FAILED"
    kind: FailureKind
    error_message: str
    attempts: int
    failed_at: datetime = Field(default_factory=utcnow)
