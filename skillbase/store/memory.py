from __future__ import annotations

import copy
from collections import Counter
from datetime import datetime

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
from skillbase.store.base import Store


class InMemoryStore(Store):
    """Store backed by plain Python dicts.

    Safe within a single asyncio event loop (no concurrent mutation).
    Records are copied on the way in and out so callers never share
    mutable state with the store, mirroring a real database.
    """

    def __init__(self) -> None:
        self._knowledge: dict[str, KnowledgeEntry] = {}
        self._items: dict[str, BatchItem] = {}
        self._settings: dict[str, AppSetting] = {}
        self._usage: list[UsageRecord] = []
        self._sync_logs: dict[str, SyncLogEntry] = {}

    # ── Lifecycle ────────────────────────────────────────────────────

    async def init(self) -> None:
        pass

    async def reset(self) -> None:
        self.__init__()  # type: ignore[misc]

    async def close(self) -> None:
        pass

    # ── Knowledge entries ────────────────────────────────────────────

    async def save_knowledge(self, entry: KnowledgeEntry) -> KnowledgeEntry:
        self._knowledge[entry.id] = copy.deepcopy(entry)
        return entry

    async def get_knowledge(self, entry_id: str) -> KnowledgeEntry | None:
        entry = self._knowledge.get(entry_id)
        return copy.deepcopy(entry) if entry else None

    async def find_knowledge(self, flt: KnowledgeFilter) -> list[KnowledgeEntry]:
        matches = [e for e in self._knowledge.values() if flt.matches(e)]
        matches.sort(key=lambda e: e.updated_at, reverse=True)
        if flt.limit is not None:
            matches = matches[: flt.limit]
        return [copy.deepcopy(e) for e in matches]

    async def list_knowledge(self, *, active_only: bool = False) -> list[KnowledgeEntry]:
        entries = [
            e for e in self._knowledge.values() if e.is_active or not active_only
        ]
        return [copy.deepcopy(e) for e in sorted(entries, key=lambda e: e.title)]

    async def set_knowledge_sync_state(
        self,
        entry_id: str,
        status: KnowledgeSyncStatus,
        *,
        synced_at: datetime | None = None,
        commit_ref: str | None = None,
    ) -> bool:
        entry = self._knowledge.get(entry_id)
        if entry is None:
            return False
        entry.sync_status = status
        if synced_at is not None:
            entry.last_synced_at = synced_at
        if commit_ref is not None:
            entry.commit_ref = commit_ref
        return True

    async def count_knowledge_by_sync_status(
        self,
    ) -> dict[KnowledgeSyncStatus | None, int]:
        return dict(
            Counter(e.sync_status for e in self._knowledge.values() if e.is_active)
        )

    # ── Batch items ──────────────────────────────────────────────────

    async def save_batch_item(self, item: BatchItem) -> None:
        self._items[item.id] = copy.deepcopy(item)

    async def get_batch_item(self, item_id: str) -> BatchItem | None:
        item = self._items.get(item_id)
        return copy.deepcopy(item) if item else None

    async def list_batch_items(self, project_id: str) -> list[BatchItem]:
        items = [i for i in self._items.values() if i.project_id == project_id]
        return [copy.deepcopy(i) for i in sorted(items, key=lambda i: i.row_number)]

    # ── Settings ─────────────────────────────────────────────────────

    async def get_settings(self, keys: list[str]) -> dict[str, str]:
        return {k: self._settings[k].value for k in keys if k in self._settings}

    async def put_setting(self, setting: AppSetting) -> AppSetting:
        self._settings[setting.key] = copy.deepcopy(setting)
        return setting

    # ── Usage ────────────────────────────────────────────────────────

    async def append_usage(self, record: UsageRecord) -> None:
        self._usage.append(record)

    async def list_usage(
        self,
        *,
        feature: str | None = None,
        since: datetime | None = None,
    ) -> list[UsageRecord]:
        records = self._usage
        if feature is not None:
            records = [r for r in records if r.feature == feature]
        if since is not None:
            records = [r for r in records if r.created_at >= since]
        return sorted(records, key=lambda r: r.created_at)

    # ── Sync logs ────────────────────────────────────────────────────

    async def create_sync_log(self, entry: SyncLogEntry) -> SyncLogEntry:
        self._sync_logs[entry.id] = copy.deepcopy(entry)
        return entry

    async def get_sync_log(self, log_id: str) -> SyncLogEntry | None:
        entry = self._sync_logs.get(log_id)
        return copy.deepcopy(entry) if entry else None

    async def update_sync_log(self, entry: SyncLogEntry) -> None:
        if entry.id not in self._sync_logs:
            raise ValueError(f"SyncLogEntry {entry.id} not found")
        self._sync_logs[entry.id] = copy.deepcopy(entry)

    async def list_sync_logs(
        self,
        *,
        target_id: str | None = None,
        status: SyncStatus | None = None,
        limit: int | None = None,
    ) -> list[SyncLogEntry]:
        logs = list(self._sync_logs.values())
        if target_id is not None:
            logs = [log for log in logs if log.target_id == target_id]
        if status is not None:
            logs = [log for log in logs if log.status == status]
        logs.sort(key=lambda log: log.started_at, reverse=True)
        if limit is not None:
            logs = logs[:limit]
        return [copy.deepcopy(log) for log in logs]

    async def count_sync_logs(
        self,
        *,
        status: SyncStatus,
        started_after: datetime,
    ) -> int:
        return sum(
            1
            for log in self._sync_logs.values()
            if log.status == status and log.started_at >= started_after
        )
