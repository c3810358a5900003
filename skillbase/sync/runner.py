from __future__ import annotations

import logging
from dataclasses import dataclass, field

from skillbase.errors import AuthorizationError
from skillbase.models import Actor, KnowledgeEntry, SyncDirection, SyncOperation
from skillbase.models.utils import utcnow
from skillbase.store.base import Store
from skillbase.sync.source import KnowledgeSource, SkillFile, SkillFileError
from skillbase.sync.tracker import SyncHealthTracker

logger = logging.getLogger(__name__)


@dataclass
class SyncSummary:
    created: int = 0
    updated: int = 0
    skipped: int = 0
    deleted: int = 0
    errors: list[str] = field(default_factory=list)
    output: list[str] = field(default_factory=list)

    def note(self, line: str) -> None:
        self.output.append(line)
        logger.info(line)


def _entry_from_file(skill: SkillFile, existing: KnowledgeEntry | None) -> KnowledgeEntry:
    entry = KnowledgeEntry(
        id=skill.id,
        title=skill.title,
        content=skill.content,
        tier=skill.tier,
        categories=list(skill.categories),
        tags=list(skill.tags),
        is_active=skill.active,
        created_at=skill.created,
        updated_at=utcnow(),
    )
    if existing is not None:
        entry.created_at = existing.created_at
        entry.sync_status = existing.sync_status
        entry.last_synced_at = existing.last_synced_at
        entry.commit_ref = existing.commit_ref
    return entry


class SyncRunner:
    """Reconciles the store with a :class:`KnowledgeSource`.

    Every write is wrapped in ``SyncHealthTracker.track`` so that each
    entry's sync status and the sync log reflect the outcome.  The
    content hash of the source file is recorded as the commit reference;
    an unchanged hash means the entry is skipped.
    """

    def __init__(
        self,
        store: Store,
        source: KnowledgeSource,
        tracker: SyncHealthTracker,
    ) -> None:
        self._store = store
        self._source = source
        self._tracker = tracker

    async def trigger(self, actor: Actor) -> SyncSummary:
        if not actor.can_manage_knowledge:
            raise AuthorizationError(
                f"User {actor.id} is not allowed to sync the knowledge base"
            )
        return await self.sync_from_source(synced_by=actor.id)

    async def sync_from_source(self, synced_by: str = "system") -> SyncSummary:
        summary = SyncSummary()
        seen: set[str] = set()
        unreadable: list[str] = []

        for slug in self._source.list_slugs():
            try:
                skill = self._source.read(slug)
            except (SkillFileError, OSError) as exc:
                summary.errors.append(f"{slug}: {exc}")
                unreadable.append(slug)
                logger.warning("Skipping unreadable skill file %s: %s", slug, exc)
                continue
            seen.add(skill.id)
            await self._sync_file(skill, summary, synced_by)

        if unreadable:
            # An entry whose file failed to parse would look deleted.
            summary.note(
                f"Skipped removal check: {len(unreadable)} unreadable file(s) "
                f"({', '.join(unreadable)})"
            )
        else:
            for entry in await self._store.list_knowledge(active_only=True):
                if entry.id in seen or entry.commit_ref is None:
                    continue
                await self._deactivate(entry, summary, synced_by)

        summary.note(
            f"Sync complete: {summary.created} created, {summary.updated} updated, "
            f"{summary.skipped} unchanged, {summary.deleted} removed, "
            f"{len(summary.errors)} error(s)"
        )
        return summary

    async def _sync_file(
        self, skill: SkillFile, summary: SyncSummary, synced_by: str
    ) -> None:
        digest = skill.content_hash()
        existing = await self._store.get_knowledge(skill.id)
        if existing is not None and existing.commit_ref == digest:
            summary.skipped += 1
            return

        operation = SyncOperation.create if existing is None else SyncOperation.update
        try:
            async with self._tracker.track(
                skill.id, operation, SyncDirection.source_to_store, synced_by
            ) as handle:
                await self._store.save_knowledge(_entry_from_file(skill, existing))
                handle.commit_ref = digest
        except Exception as exc:
            summary.errors.append(f"{skill.slug}: {exc}")
            logger.error("[%s] Sync of %s failed", skill.id, skill.slug, exc_info=True)
            return

        if operation is SyncOperation.create:
            summary.created += 1
            summary.note(f"Created {skill.title} ({skill.slug})")
        else:
            summary.updated += 1
            summary.note(f"Updated {skill.title} ({skill.slug})")

    async def _deactivate(
        self, entry: KnowledgeEntry, summary: SyncSummary, synced_by: str
    ) -> None:
        try:
            async with self._tracker.track(
                entry.id,
                SyncOperation.delete,
                SyncDirection.source_to_store,
                synced_by,
            ):
                entry.is_active = False
                entry.updated_at = utcnow()
                await self._store.save_knowledge(entry)
        except Exception as exc:
            summary.errors.append(f"{entry.title}: {exc}")
            logger.error("[%s] Deactivation failed", entry.id, exc_info=True)
            return
        summary.deleted += 1
        summary.note(f"Deactivated {entry.title} (file removed)")

    async def push_entry(
        self,
        entry: KnowledgeEntry,
        synced_by: str = "system",
        *,
        slug: str | None = None,
    ) -> str:
        """Write *entry* to the source; returns the recorded commit reference."""
        skill = SkillFile.from_entry(entry, slug=slug)
        operation = (
            SyncOperation.update
            if self._source.exists(skill.slug)
            else SyncOperation.create
        )
        digest = skill.content_hash()
        async with self._tracker.track(
            entry.id, operation, SyncDirection.store_to_source, synced_by
        ) as handle:
            self._source.write(skill)
            handle.commit_ref = digest
        logger.info("[%s] Pushed to %s.md", entry.id, skill.slug)
        return digest
