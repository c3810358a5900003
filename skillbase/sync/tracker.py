from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta

from skillbase.errors import ValidationError
from skillbase.models import (
    KnowledgeSyncStatus,
    SyncDirection,
    SyncLogEntry,
    SyncOperation,
    SyncStatus,
)
from skillbase.models.utils import utcnow
from skillbase.store.base import Store

logger = logging.getLogger(__name__)

RECENT_FAILURE_WINDOW = timedelta(hours=24)


@dataclass(frozen=True)
class SyncHealth:
    synced: int
    pending: int
    failed: int
    unknown: int
    total: int
    recent_failures: int
    healthy: bool


@dataclass
class SyncHandle:
    """Yielded by :meth:`SyncHealthTracker.track`; set ``commit_ref`` on success."""

    log_id: str
    commit_ref: str | None = None


class SyncHealthTracker:
    """Records sync attempts and summarises how many entries are in sync."""

    def __init__(self, store: Store, clock: Callable[[], datetime] = utcnow) -> None:
        self._store = store
        self._clock = clock

    async def begin_sync(
        self,
        target_id: str,
        operation: SyncOperation,
        direction: SyncDirection,
        synced_by: str = "system",
    ) -> str:
        entry = SyncLogEntry(
            target_id=target_id,
            operation=operation,
            direction=direction,
            synced_by=synced_by,
            started_at=self._clock(),
        )
        await self._store.create_sync_log(entry)
        await self._store.set_knowledge_sync_state(target_id, KnowledgeSyncStatus.pending)
        logger.debug("[%s] Sync %s %s started", entry.id, operation, target_id)
        return entry.id

    async def complete_sync(
        self,
        log_id: str,
        status: SyncStatus,
        commit_ref: str | None = None,
        error: str | None = None,
    ) -> SyncLogEntry:
        if status is SyncStatus.pending:
            raise ValidationError("A sync can only be completed as success or failed")
        entry = await self._store.get_sync_log(log_id)
        if entry is None:
            raise ValidationError(f"Sync log {log_id} not found")
        if entry.is_terminal:
            raise ValidationError(f"Sync log {log_id} is already {entry.status}")

        now = self._clock()
        entry.status = status
        entry.completed_at = now
        entry.commit_ref = commit_ref
        entry.error = error
        await self._store.update_sync_log(entry)

        if status is SyncStatus.success:
            found = await self._store.set_knowledge_sync_state(
                entry.target_id,
                KnowledgeSyncStatus.synced,
                synced_at=now,
                commit_ref=commit_ref,
            )
        else:
            found = await self._store.set_knowledge_sync_state(
                entry.target_id, KnowledgeSyncStatus.failed
            )
            logger.warning("[%s] Sync of %s failed: %s", log_id, entry.target_id, error)
        if not found:
            logger.debug("[%s] Target %s no longer exists", log_id, entry.target_id)
        return entry

    @asynccontextmanager
    async def track(
        self,
        target_id: str,
        operation: SyncOperation,
        direction: SyncDirection,
        synced_by: str = "system",
    ) -> AsyncIterator[SyncHandle]:
        """Wrap one sync operation in a log entry.

        The log is completed as ``success`` when the block exits normally
        and as ``failed`` (with the error message) when it raises; the
        exception is re-raised.
        """
        handle = SyncHandle(
            log_id=await self.begin_sync(target_id, operation, direction, synced_by)
        )
        try:
            yield handle
        except Exception as exc:
            logger.warning(
                "[%s] Sync %s %s raised: %s", handle.log_id, operation, target_id, exc
            )
            try:
                await self.complete_sync(
                    handle.log_id, SyncStatus.failed, error=str(exc)
                )
            except Exception as log_exc:
                raise log_exc from exc
            raise
        await self.complete_sync(
            handle.log_id, SyncStatus.success, commit_ref=handle.commit_ref
        )

    async def health_status(self) -> SyncHealth:
        counts = await self._store.count_knowledge_by_sync_status()
        synced = counts.get(KnowledgeSyncStatus.synced, 0)
        pending = counts.get(KnowledgeSyncStatus.pending, 0)
        failed = counts.get(KnowledgeSyncStatus.failed, 0)
        total = sum(counts.values())
        recent_failures = await self._store.count_sync_logs(
            status=SyncStatus.failed,
            started_after=self._clock() - RECENT_FAILURE_WINDOW,
        )
        return SyncHealth(
            synced=synced,
            pending=pending,
            failed=failed,
            unknown=total - synced - pending - failed,
            total=total,
            recent_failures=recent_failures,
            healthy=failed == 0 and recent_failures == 0,
        )

    async def recent_failures(self, limit: int = 20) -> list[SyncLogEntry]:
        return await self._store.list_sync_logs(status=SyncStatus.failed, limit=limit)

    async def target_logs(self, target_id: str, limit: int = 10) -> list[SyncLogEntry]:
        return await self._store.list_sync_logs(target_id=target_id, limit=limit)
