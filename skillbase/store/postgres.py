from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.sql import text

from skillbase.db.models import (
    AppSettingRow,
    Base,
    BatchItemRow,
    KnowledgeEntryRow,
    SyncLogRow,
    UsageRow,
)
from skillbase.errors import PersistenceDegraded
from skillbase.models import (
    AppSetting,
    BatchItem,
    ItemStatus,
    KnowledgeEntry,
    KnowledgeFilter,
    KnowledgeSyncStatus,
    SyncDirection,
    SyncLogEntry,
    SyncOperation,
    SyncStatus,
    Tier,
    Turn,
    UsageRecord,
)
from skillbase.store.base import Store

logger = logging.getLogger(__name__)

_UNREACHABLE = (OperationalError, InterfaceError, OSError)


class PostgresStore(Store):
    """Store backed by PostgreSQL via SQLAlchemy + asyncpg.

    Wraps the ORM rows in ``skillbase.db.models`` and translates to/from
    domain dataclasses at the boundary.  Connection failures surface as
    ``PersistenceDegraded``.
    """

    def __init__(
        self,
        host: str,
        port: int,
        database: str,
        user: str,
        password: str,
        *,
        pool_size: int = 10,
        max_overflow: int = 20,
    ) -> None:
        url = f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{database}"
        self._engine = create_async_engine(
            url,
            echo=False,
            pool_size=pool_size,
            max_overflow=max_overflow,
        )
        self._session_factory = async_sessionmaker(self._engine, expire_on_commit=False)
        self._scoped_session: AsyncSession | None = None

    @asynccontextmanager
    async def _auto_session(self) -> AsyncIterator[AsyncSession]:
        """Yield the scoped session if inside ``atomic()``, else a fresh
        auto-committing session that is closed after use."""
        if self._scoped_session is not None:
            yield self._scoped_session
            return
        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except _UNREACHABLE as exc:
            await session.rollback()
            raise PersistenceDegraded(f"Database unreachable: {exc}") from exc
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    # ── Lifecycle ────────────────────────────────────────────────────

    async def init(self) -> None:
        async with self._engine.begin() as conn:
            await conn.execute(text("CREATE SCHEMA IF NOT EXISTS public"))
            await conn.run_sync(Base.metadata.create_all)

    async def reset(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await self.init()

    async def close(self) -> None:
        await self._engine.dispose()

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[None]:
        session = self._session_factory()
        self._scoped_session = session
        try:
            yield
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
            self._scoped_session = None

    # ── Knowledge entries ────────────────────────────────────────────

    async def save_knowledge(self, entry: KnowledgeEntry) -> KnowledgeEntry:
        async with self._auto_session() as s:
            row = await s.get(KnowledgeEntryRow, entry.id)
            if row is None:
                row = KnowledgeEntryRow(id=entry.id, created_at=entry.created_at)
                s.add(row)
            row.title = entry.title
            row.content = entry.content
            row.tier = entry.tier.value
            row.categories = list(entry.categories)
            row.tags = list(entry.tags)
            row.is_active = entry.is_active
            row.sync_status = entry.sync_status.value if entry.sync_status else None
            row.last_synced_at = entry.last_synced_at
            row.commit_ref = entry.commit_ref
            row.updated_at = entry.updated_at
            await s.flush()
        return entry

    async def get_knowledge(self, entry_id: str) -> KnowledgeEntry | None:
        async with self._auto_session() as s:
            row = await s.get(KnowledgeEntryRow, entry_id)
        return _knowledge_from_orm(row) if row else None

    async def find_knowledge(self, flt: KnowledgeFilter) -> list[KnowledgeEntry]:
        stmt = (
            select(KnowledgeEntryRow)
            .where(
                KnowledgeEntryRow.is_active.is_(True),
                KnowledgeEntryRow.tier.in_([t.value for t in flt.tiers]),
            )
            .order_by(KnowledgeEntryRow.updated_at.desc())
        )
        if flt.categories:
            stmt = stmt.where(KnowledgeEntryRow.categories.overlap(list(flt.categories)))
        if flt.exclude_ids:
            stmt = stmt.where(KnowledgeEntryRow.id.not_in(list(flt.exclude_ids)))
        if flt.limit is not None:
            stmt = stmt.limit(flt.limit)
        async with self._auto_session() as s:
            rows = list((await s.execute(stmt)).scalars().all())
        return [_knowledge_from_orm(r) for r in rows]

    async def list_knowledge(self, *, active_only: bool = False) -> list[KnowledgeEntry]:
        stmt = select(KnowledgeEntryRow).order_by(KnowledgeEntryRow.title)
        if active_only:
            stmt = stmt.where(KnowledgeEntryRow.is_active.is_(True))
        async with self._auto_session() as s:
            rows = list((await s.execute(stmt)).scalars().all())
        return [_knowledge_from_orm(r) for r in rows]

    async def set_knowledge_sync_state(
        self,
        entry_id: str,
        status: KnowledgeSyncStatus,
        *,
        synced_at: datetime | None = None,
        commit_ref: str | None = None,
    ) -> bool:
        async with self._auto_session() as s:
            row = await s.get(KnowledgeEntryRow, entry_id)
            if row is None:
                return False
            row.sync_status = status.value
            if synced_at is not None:
                row.last_synced_at = synced_at
            if commit_ref is not None:
                row.commit_ref = commit_ref
        return True

    async def count_knowledge_by_sync_status(
        self,
    ) -> dict[KnowledgeSyncStatus | None, int]:
        stmt = (
            select(KnowledgeEntryRow.sync_status, func.count(KnowledgeEntryRow.id))
            .where(KnowledgeEntryRow.is_active.is_(True))
            .group_by(KnowledgeEntryRow.sync_status)
        )
        async with self._auto_session() as s:
            rows = (await s.execute(stmt)).all()
        return {
            (KnowledgeSyncStatus(status) if status else None): count
            for status, count in rows
        }

    # ── Batch items ──────────────────────────────────────────────────

    async def save_batch_item(self, item: BatchItem) -> None:
        async with self._auto_session() as s:
            row = await s.get(BatchItemRow, item.id)
            if row is None:
                row = BatchItemRow(id=item.id, created_at=item.created_at)
                s.add(row)
            row.project_id = item.project_id
            row.row_number = item.row_number
            row.question = item.question
            row.status = item.status.value
            row.response = item.response
            row.error = item.error
            row.used_skills = list(item.used_skills)
            row.used_fallback = item.used_fallback
            row.confidence = item.confidence
            row.sources = item.sources
            row.reasoning = item.reasoning
            row.inference = item.inference
            row.remarks = item.remarks
            row.conversation_history = [t.to_dict() for t in item.conversation_history]
            row.updated_at = item.updated_at

    async def get_batch_item(self, item_id: str) -> BatchItem | None:
        async with self._auto_session() as s:
            row = await s.get(BatchItemRow, item_id)
        return _item_from_orm(row) if row else None

    async def list_batch_items(self, project_id: str) -> list[BatchItem]:
        stmt = (
            select(BatchItemRow)
            .where(BatchItemRow.project_id == project_id)
            .order_by(BatchItemRow.row_number)
        )
        async with self._auto_session() as s:
            rows = list((await s.execute(stmt)).scalars().all())
        return [_item_from_orm(r) for r in rows]

    # ── Settings ─────────────────────────────────────────────────────

    async def get_settings(self, keys: list[str]) -> dict[str, str]:
        stmt = select(AppSettingRow).where(AppSettingRow.key.in_(keys))
        async with self._auto_session() as s:
            rows = list((await s.execute(stmt)).scalars().all())
        return {r.key: r.value for r in rows}

    async def put_setting(self, setting: AppSetting) -> AppSetting:
        async with self._auto_session() as s:
            row = await s.get(AppSettingRow, setting.key)
            if row is None:
                row = AppSettingRow(key=setting.key)
                s.add(row)
            row.value = setting.value
            row.updated_by = setting.updated_by
            row.updated_at = setting.updated_at
        return setting

    # ── Usage ────────────────────────────────────────────────────────

    async def append_usage(self, record: UsageRecord) -> None:
        async with self._auto_session() as s:
            s.add(
                UsageRow(
                    id=record.id,
                    feature=record.feature,
                    model=record.model,
                    input_tokens=record.input_tokens,
                    output_tokens=record.output_tokens,
                    total_tokens=record.total_tokens,
                    estimated_cost=record.estimated_cost,
                    user_id=record.user_id,
                    metadata_=dict(record.metadata),
                    created_at=record.created_at,
                )
            )

    async def list_usage(
        self,
        *,
        feature: str | None = None,
        since: datetime | None = None,
    ) -> list[UsageRecord]:
        stmt = select(UsageRow).order_by(UsageRow.created_at)
        if feature is not None:
            stmt = stmt.where(UsageRow.feature == feature)
        if since is not None:
            stmt = stmt.where(UsageRow.created_at >= since)
        async with self._auto_session() as s:
            rows = list((await s.execute(stmt)).scalars().all())
        return [
            UsageRecord(
                id=r.id,
                feature=r.feature,
                model=r.model,
                input_tokens=r.input_tokens,
                output_tokens=r.output_tokens,
                estimated_cost=r.estimated_cost,
                user_id=r.user_id,
                metadata=dict(r.metadata_ or {}),
                created_at=r.created_at,
            )
            for r in rows
        ]

    # ── Sync logs ────────────────────────────────────────────────────

    async def create_sync_log(self, entry: SyncLogEntry) -> SyncLogEntry:
        async with self._auto_session() as s:
            s.add(
                SyncLogRow(
                    id=entry.id,
                    target_id=entry.target_id,
                    operation=entry.operation.value,
                    direction=entry.direction.value,
                    status=entry.status.value,
                    synced_by=entry.synced_by,
                    started_at=entry.started_at,
                    completed_at=entry.completed_at,
                    commit_ref=entry.commit_ref,
                    error=entry.error,
                )
            )
        return entry

    async def get_sync_log(self, log_id: str) -> SyncLogEntry | None:
        async with self._auto_session() as s:
            row = await s.get(SyncLogRow, log_id)
        return _sync_log_from_orm(row) if row else None

    async def update_sync_log(self, entry: SyncLogEntry) -> None:
        async with self._auto_session() as s:
            row = await s.get(SyncLogRow, entry.id)
            if row is None:
                raise ValueError(f"SyncLogEntry {entry.id} not found")
            row.status = entry.status.value
            row.completed_at = entry.completed_at
            row.commit_ref = entry.commit_ref
            row.error = entry.error

    async def list_sync_logs(
        self,
        *,
        target_id: str | None = None,
        status: SyncStatus | None = None,
        limit: int | None = None,
    ) -> list[SyncLogEntry]:
        stmt = select(SyncLogRow).order_by(SyncLogRow.started_at.desc())
        if target_id is not None:
            stmt = stmt.where(SyncLogRow.target_id == target_id)
        if status is not None:
            stmt = stmt.where(SyncLogRow.status == status.value)
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self._auto_session() as s:
            rows = list((await s.execute(stmt)).scalars().all())
        return [_sync_log_from_orm(r) for r in rows]

    async def count_sync_logs(
        self,
        *,
        status: SyncStatus,
        started_after: datetime,
    ) -> int:
        stmt = select(func.count(SyncLogRow.id)).where(
            SyncLogRow.status == status.value,
            SyncLogRow.started_at >= started_after,
        )
        async with self._auto_session() as s:
            return (await s.execute(stmt)).scalar() or 0


# ── ORM → domain converters ─────────────────────────────────────────


def _knowledge_from_orm(row: KnowledgeEntryRow) -> KnowledgeEntry:
    return KnowledgeEntry(
        id=row.id,
        title=row.title,
        content=row.content,
        tier=Tier(row.tier),
        categories=list(row.categories or []),
        tags=list(row.tags or []),
        is_active=row.is_active,
        sync_status=KnowledgeSyncStatus(row.sync_status) if row.sync_status else None,
        last_synced_at=row.last_synced_at,
        commit_ref=row.commit_ref,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _item_from_orm(row: BatchItemRow) -> BatchItem:
    return BatchItem(
        id=row.id,
        project_id=row.project_id,
        row_number=row.row_number,
        question=row.question,
        status=ItemStatus(row.status),
        response=row.response,
        error=row.error,
        used_skills=list(row.used_skills or []),
        used_fallback=row.used_fallback,
        confidence=row.confidence,
        sources=row.sources,
        reasoning=row.reasoning,
        inference=row.inference,
        remarks=row.remarks,
        conversation_history=[Turn.from_dict(t) for t in row.conversation_history or []],
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _sync_log_from_orm(row: SyncLogRow) -> SyncLogEntry:
    return SyncLogEntry(
        id=row.id,
        target_id=row.target_id,
        operation=SyncOperation(row.operation),
        direction=SyncDirection(row.direction),
        status=SyncStatus(row.status),
        synced_by=row.synced_by,
        started_at=row.started_at,
        completed_at=row.completed_at,
        commit_ref=row.commit_ref,
        error=row.error,
    )
