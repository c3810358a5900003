from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest

from skillbase import Skillbase
from skillbase.errors import AuthorizationError, ValidationError
from skillbase.models import Actor, Capability, ItemStatus, RateLimitSettings, Tier
from skillbase.store.memory import InMemoryStore
from skillbase.sync import DiskKnowledgeSource
from tests.conftest import FakeLLMClient, RecordingSleep, make_entry

ADMIN = Actor(id="admin", capabilities=frozenset({Capability.MANAGE_KNOWLEDGE}))


@pytest.fixture()
async def sb(
    tmp_path: Path, store: InMemoryStore, llm: FakeLLMClient, sleep: RecordingSleep
) -> AsyncGenerator[Skillbase]:
    async with Skillbase(
        store, llm, source=DiskKnowledgeSource(tmp_path / "skills"), sleep=sleep
    ) as instance:
        yield instance


async def test_questionnaire_flow(sb: Skillbase, llm: FakeLLMClient) -> None:
    await sb.add_knowledge(make_entry("Single Sign-On", "SAML", tags=["sso"]))
    items = await sb.add_questions("acme", ["Do you support SSO?", "  ", "Is MFA enforced?"])
    assert [i.row_number for i in items] == [1, 2]

    result = await sb.run_project("acme", RateLimitSettings(batch_size=1, batch_delay_ms=0))

    assert result is not None
    assert result.completed == 2
    summaries = await sb.list_items("acme")
    assert [s.status for s in summaries] == ["completed", "completed"]

    llm.script.append("Answer: Okta.")
    follow = await sb.follow_up(items[0].id, "Which IdP?")
    assert follow.answer == "Answer: Okta."

    usage = await sb.usage_summary()
    assert usage["questions"].calls == 3


async def test_retry_item(sb: Skillbase) -> None:
    [item] = await sb.add_questions("acme", ["Q?"])
    await sb.run_project("acme", RateLimitSettings())

    retried = await sb.retry_item(item.id)

    assert retried.status is ItemStatus.pending
    with pytest.raises(ValidationError):
        await sb.retry_item("missing")


async def test_push_and_sync(sb: Skillbase) -> None:
    entry = await sb.add_knowledge(make_entry("Backups", "Nightly", tier=Tier.extended))
    with pytest.raises(AuthorizationError):
        await sb.push_entry(entry.id, Actor(id="viewer"))

    await sb.push_entry(entry.id, ADMIN)
    summary = await sb.trigger_sync(ADMIN)

    assert summary.skipped == 1
    health = await sb.sync_health()
    assert health.synced == 1
    assert health.healthy


async def test_search_through_facade(sb: Skillbase) -> None:
    await sb.add_knowledge(make_entry("Encryption", "AES-256", tier=Tier.core))
    response = await sb.search_skills({"query": "encryption", "tiers": ["core"]})
    assert [hit.title for hit in response.skills] == ["Encryption"]

    with pytest.raises(ValidationError):
        await sb.search_skills({"query": "", "limit": 5})


async def test_settings_through_facade(sb: Skillbase) -> None:
    await sb.update_setting("LLM_BATCH_SIZE", "2", "ops")
    assert (await sb.get_rate_limit_settings()).batch_size == 2
    assert len(await sb.list_settings()) == 5
