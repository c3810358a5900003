from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from skillbase.models import (
    AnswerDetails,
    AppSetting,
    BatchItem,
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
from skillbase.store.postgres import PostgresStore
from tests.conftest import make_entry


async def test_knowledge_round_trip(store: PostgresStore) -> None:
    entry = make_entry("SSO", "SAML", tier=Tier.core, categories=["Identity"], tags=["sso"])
    await store.save_knowledge(entry)
    entry.content = "SAML and OIDC"
    await store.save_knowledge(entry)

    fetched = await store.get_knowledge(entry.id)
    assert fetched is not None
    assert fetched.content == "SAML and OIDC"
    assert fetched.tags == ["sso"]
    assert fetched.tier is Tier.core


async def test_find_knowledge_filters(store: PostgresStore) -> None:
    core = make_entry("A", tier=Tier.core, categories=["Identity"], age_days=3)
    ext = make_entry("B", tier=Tier.extended, categories=["Network"], age_days=2)
    lib = make_entry("C", tier=Tier.library, categories=["Identity"], age_days=1)
    await store.save_knowledge(make_entry("D", is_active=False))
    for e in (core, ext, lib):
        await store.save_knowledge(e)

    everything = await store.find_knowledge(KnowledgeFilter())
    assert [e.id for e in everything] == [lib.id, ext.id, core.id]

    identity = await store.find_knowledge(
        KnowledgeFilter(tiers=(Tier.core, Tier.library), categories=("Identity",))
    )
    assert {e.id for e in identity} == {core.id, lib.id}

    limited = await store.find_knowledge(
        KnowledgeFilter(exclude_ids=frozenset({lib.id}), limit=1)
    )
    assert [e.id for e in limited] == [ext.id]


async def test_sync_state_counts(store: PostgresStore) -> None:
    a, b = make_entry("A"), make_entry("B")
    await store.save_knowledge(a)
    await store.save_knowledge(b)
    now = datetime(2025, 1, 1, tzinfo=UTC)

    assert await store.set_knowledge_sync_state(
        a.id, KnowledgeSyncStatus.synced, synced_at=now, commit_ref="abc"
    )
    assert not await store.set_knowledge_sync_state("missing", KnowledgeSyncStatus.failed)
    assert await store.count_knowledge_by_sync_status() == {
        KnowledgeSyncStatus.synced: 1,
        None: 1,
    }


async def test_batch_item_round_trip(store: PostgresStore) -> None:
    item = BatchItem(question="Do you support SSO?", project_id="acme", row_number=1)
    item.start()
    item.complete(
        AnswerDetails(response="Yes", confidence="High", sources="SSO"),
        used_skills=["s1"],
        used_fallback=False,
        conversation_history=[
            Turn(role="user", content=item.question),
            Turn(role="assistant", content="Yes"),
        ],
    )
    await store.save_batch_item(item)

    [fetched] = await store.list_batch_items("acme")
    assert fetched.status is item.status
    assert fetched.conversation_history == item.conversation_history
    assert fetched.used_skills == ["s1"]
    assert fetched.confidence == "High"


async def test_settings_upsert(store: PostgresStore) -> None:
    await store.put_setting(AppSetting(key="LLM_BATCH_SIZE", value="3"))
    await store.put_setting(AppSetting(key="LLM_BATCH_SIZE", value="4", updated_by="ops"))
    assert await store.get_settings(["LLM_BATCH_SIZE"]) == {"LLM_BATCH_SIZE": "4"}


async def test_usage_filters(store: PostgresStore) -> None:
    start = datetime(2025, 1, 1, tzinfo=UTC)
    await store.append_usage(
        UsageRecord("questions", "m", 10, 2, metadata={"skill_count": 1}, created_at=start)
    )
    await store.append_usage(
        UsageRecord("chat", "m", 5, 1, created_at=start + timedelta(days=1))
    )

    assert len(await store.list_usage()) == 2
    [questions] = await store.list_usage(feature="questions")
    assert questions.metadata == {"skill_count": 1}
    assert len(await store.list_usage(since=start + timedelta(hours=1))) == 1


async def test_sync_logs(store: PostgresStore) -> None:
    log = SyncLogEntry(
        target_id="t1",
        operation=SyncOperation.create,
        direction=SyncDirection.source_to_store,
    )
    await store.create_sync_log(log)
    log.status = SyncStatus.failed
    log.error = "boom"
    await store.update_sync_log(log)

    fetched = await store.get_sync_log(log.id)
    assert fetched is not None
    assert fetched.status is SyncStatus.failed
    assert await store.count_sync_logs(
        status=SyncStatus.failed, started_after=log.started_at - timedelta(minutes=1)
    ) == 1
    assert [entry.id for entry in await store.list_sync_logs(target_id="t1")] == [log.id]


async def test_atomic_rolls_back(store: PostgresStore) -> None:
    entry = make_entry("Rolled back")
    with pytest.raises(RuntimeError):
        async with store.atomic():
            await store.save_knowledge(entry)
            raise RuntimeError("abort")
    assert await store.get_knowledge(entry.id) is None
