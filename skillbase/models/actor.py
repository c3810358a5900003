from __future__ import annotations

import enum
from dataclasses import dataclass, field


class Capability(enum.StrEnum):
    ADMIN = "ADMIN"
    MANAGE_KNOWLEDGE = "MANAGE_KNOWLEDGE"


@dataclass(frozen=True)
class Actor:
    """The user on whose behalf an operation runs."""

    id: str
    capabilities: frozenset[Capability] = field(default_factory=frozenset)

    @property
    def can_manage_knowledge(self) -> bool:
        return bool(
            self.capabilities & {Capability.ADMIN, Capability.MANAGE_KNOWLEDGE}
        )
