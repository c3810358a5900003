from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime

from skillbase.models.utils import generate_id, utcnow


class Tier(enum.StrEnum):
    """Priority bucket used to stage progressive retrieval."""

    core = "core"
    extended = "extended"
    library = "library"


class KnowledgeSyncStatus(enum.StrEnum):
    synced = "synced"
    pending = "pending"
    failed = "failed"


@dataclass
class KnowledgeEntry:
    """A single piece of curated knowledge (a *skill*)."""

    title: str
    content: str

    id: str = field(default_factory=generate_id)
    tier: Tier = Tier.library
    categories: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    is_active: bool = True
    sync_status: KnowledgeSyncStatus | None = None
    last_synced_at: datetime | None = None
    commit_ref: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class KnowledgeFilter:
    """Candidate restriction applied by the store before ranking.

    ``categories`` matches entries sharing at least one category; an empty
    list means no category restriction.
    """

    tiers: tuple[Tier, ...] = (Tier.core, Tier.extended, Tier.library)
    categories: tuple[str, ...] = ()
    exclude_ids: frozenset[str] = frozenset()
    limit: int | None = None

    def matches(self, entry: KnowledgeEntry) -> bool:
        if not entry.is_active:
            return False
        if entry.tier not in self.tiers:
            return False
        if self.categories and not set(self.categories) & set(entry.categories):
            return False
        return entry.id not in self.exclude_ids
