from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime

from skillbase.models.utils import generate_id, utcnow


class SyncOperation(enum.StrEnum):
    create = "create"
    update = "update"
    delete = "delete"


class SyncDirection(enum.StrEnum):
    store_to_source = "store_to_source"
    source_to_store = "source_to_store"


class SyncStatus(enum.StrEnum):
    pending = "pending"
    success = "success"
    failed = "failed"


@dataclass
class SyncLogEntry:
    """One attempt to reconcile a knowledge entry with its source."""

    target_id: str
    operation: SyncOperation
    direction: SyncDirection

    id: str = field(default_factory=generate_id)
    status: SyncStatus = SyncStatus.pending
    synced_by: str = "system"
    started_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None
    commit_ref: str | None = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status is not SyncStatus.pending
