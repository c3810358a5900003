from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from skillbase.errors import InvalidTransitionError
from skillbase.models.utils import generate_id, utcnow

Role = Literal["user", "assistant"]


class ItemStatus(enum.StrEnum):
    pending = "pending"
    generating = "generating"
    completed = "completed"
    error = "error"


_ALLOWED_TRANSITIONS: dict[ItemStatus, frozenset[ItemStatus]] = {
    ItemStatus.pending: frozenset({ItemStatus.generating}),
    ItemStatus.generating: frozenset({ItemStatus.completed, ItemStatus.error}),
    ItemStatus.completed: frozenset({ItemStatus.pending}),
    ItemStatus.error: frozenset({ItemStatus.pending}),
}


@dataclass(frozen=True)
class Turn:
    """One message of a conversation with the model."""

    role: Role
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}

    @classmethod
    def from_dict(cls, data: dict) -> Turn:
        return cls(role=data["role"], content=data["content"])


@dataclass
class AnswerDetails:
    """Structured pieces of a generated answer."""

    response: str
    confidence: str | None = None
    sources: str | None = None
    reasoning: str | None = None
    inference: str | None = None
    remarks: str | None = None


@dataclass
class BatchItem:
    """A questionnaire row.

    Status changes go through the transition methods below; a failed
    attempt only records ``error`` and keeps the last good response with
    its metadata.
    """

    question: str

    id: str = field(default_factory=generate_id)
    project_id: str | None = None
    row_number: int = 0
    status: ItemStatus = ItemStatus.pending
    response: str = ""
    error: str | None = None
    used_skills: list[str] = field(default_factory=list)
    used_fallback: bool = False
    confidence: str | None = None
    sources: str | None = None
    reasoning: str | None = None
    inference: str | None = None
    remarks: str | None = None
    conversation_history: list[Turn] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def _move(self, target: ItemStatus) -> None:
        if target not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Item {self.id}: cannot move from {self.status} to {target}"
            )
        self.status = target
        self.updated_at = utcnow()

    def start(self) -> None:
        self._move(ItemStatus.generating)
        self.error = None

    def complete(
        self,
        details: AnswerDetails,
        *,
        used_skills: list[str],
        used_fallback: bool,
        conversation_history: list[Turn],
    ) -> None:
        self._move(ItemStatus.completed)
        self.response = details.response
        self.confidence = details.confidence
        self.sources = details.sources
        self.reasoning = details.reasoning
        self.inference = details.inference
        self.remarks = details.remarks
        self.used_skills = list(used_skills)
        self.used_fallback = used_fallback
        self.conversation_history = list(conversation_history)
        self.error = None

    def fail(self, message: str) -> None:
        self._move(ItemStatus.error)
        self.error = message

    def reset_for_retry(self) -> None:
        """Explicit retry: back to pending, keeping the last good answer."""
        self._move(ItemStatus.pending)
        self.error = None

    @property
    def needs_processing(self) -> bool:
        return self.status is not ItemStatus.completed
