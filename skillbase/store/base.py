from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from types import TracebackType

from skillbase.models import (
    AppSetting,
    BatchItem,
    KnowledgeEntry,
    KnowledgeFilter,
    KnowledgeSyncStatus,
    SyncLogEntry,
    SyncStatus,
    UsageRecord,
)


class Store(ABC):
    """Abstract store for all skillbase domain entities.

    Implementations must override every ``@abstractmethod``.
    The default ``atomic()`` is a no-op suitable for in-memory stores;
    database-backed stores should override it to provide a transactional
    boundary.  Backends raise ``PersistenceDegraded`` when they cannot
    reach their storage.
    """

    # ── Lifecycle ────────────────────────────────────────────────────

    @abstractmethod
    async def init(self) -> None:
        """Create tables / indices (idempotent)."""
        ...

    @abstractmethod
    async def reset(self) -> None:
        """Drop all data and recreate from scratch."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release any held resources (connections, file handles)."""
        ...

    async def __aenter__(self) -> Store:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[None]:
        """Wrap multiple operations in a single commit.

        The default implementation is a no-op (each operation is
        auto-committed).
        """
        yield

    # ── Knowledge entries ────────────────────────────────────────────

    @abstractmethod
    async def save_knowledge(self, entry: KnowledgeEntry) -> KnowledgeEntry:
        """Insert or update an entry and return it."""
        ...

    @abstractmethod
    async def get_knowledge(self, entry_id: str) -> KnowledgeEntry | None:
        """Return an entry by ID, or ``None``."""
        ...

    @abstractmethod
    async def find_knowledge(self, flt: KnowledgeFilter) -> list[KnowledgeEntry]:
        """Return entries matching *flt*, most recently updated first."""
        ...

    @abstractmethod
    async def list_knowledge(self, *, active_only: bool = False) -> list[KnowledgeEntry]:
        """Return every entry ordered by title."""
        ...

    @abstractmethod
    async def set_knowledge_sync_state(
        self,
        entry_id: str,
        status: KnowledgeSyncStatus,
        *,
        synced_at: datetime | None = None,
        commit_ref: str | None = None,
    ) -> bool:
        """Update sync bookkeeping; return ``False`` if the entry is gone."""
        ...

    @abstractmethod
    async def count_knowledge_by_sync_status(self) -> dict[KnowledgeSyncStatus | None, int]:
        """Count active entries per sync status (``None`` = never synced)."""
        ...

    # ── Batch items ──────────────────────────────────────────────────

    @abstractmethod
    async def save_batch_item(self, item: BatchItem) -> None:
        """Insert or update a questionnaire row."""
        ...

    @abstractmethod
    async def get_batch_item(self, item_id: str) -> BatchItem | None:
        ...

    @abstractmethod
    async def list_batch_items(self, project_id: str) -> list[BatchItem]:
        """Return a project's rows ordered by ``row_number``."""
        ...

    # ── Settings ─────────────────────────────────────────────────────

    @abstractmethod
    async def get_settings(self, keys: list[str]) -> dict[str, str]:
        """Return stored values for *keys* (missing keys are omitted)."""
        ...

    @abstractmethod
    async def put_setting(self, setting: AppSetting) -> AppSetting:
        """Insert or update a setting row."""
        ...

    # ── Usage ────────────────────────────────────────────────────────

    @abstractmethod
    async def append_usage(self, record: UsageRecord) -> None:
        ...

    @abstractmethod
    async def list_usage(
        self,
        *,
        feature: str | None = None,
        since: datetime | None = None,
    ) -> list[UsageRecord]:
        """Return usage records oldest first."""
        ...

    # ── Sync logs ────────────────────────────────────────────────────

    @abstractmethod
    async def create_sync_log(self, entry: SyncLogEntry) -> SyncLogEntry:
        ...

    @abstractmethod
    async def get_sync_log(self, log_id: str) -> SyncLogEntry | None:
        ...

    @abstractmethod
    async def update_sync_log(self, entry: SyncLogEntry) -> None:
        ...

    @abstractmethod
    async def list_sync_logs(
        self,
        *,
        target_id: str | None = None,
        status: SyncStatus | None = None,
        limit: int | None = None,
    ) -> list[SyncLogEntry]:
        """Return logs newest first."""
        ...

    @abstractmethod
    async def count_sync_logs(
        self,
        *,
        status: SyncStatus,
        started_after: datetime,
    ) -> int:
        ...
