"""Main facade for the skillbase library."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from types import TracebackType
from typing import Any

from skillbase.answer.generator import DEFAULT_REQUEST_TIMEOUT_S, AnswerGenerator, Sleep
from skillbase.answer.service import AnswerResponse, AnswerService, FallbackInput
from skillbase.batch.orchestrator import BatchOrchestrator, BatchRunResult, ProgressCallback
from skillbase.batch.policy import RunPolicy
from skillbase.config import parse_config
from skillbase.errors import AuthorizationError, ValidationError
from skillbase.facade.types import ItemSummary, KnowledgeSummary
from skillbase.llm.base import BaseLLMClient
from skillbase.models import (
    Actor,
    AppSetting,
    BatchItem,
    ItemStatus,
    KnowledgeEntry,
    RateLimitSettings,
)
from skillbase.prompt.sections import DEFAULT_QUESTION_SECTIONS, PromptSection
from skillbase.search.ranker import KeywordRanker, Ranker
from skillbase.search.skills import (
    KnowledgeRetriever,
    SearchRequest,
    SearchResponse,
    search_skills,
)
from skillbase.settings import (
    SettingInfo,
    list_settings,
    load_rate_limit_settings,
    update_setting,
)
from skillbase.store.base import Store
from skillbase.sync.runner import SyncRunner, SyncSummary
from skillbase.sync.source import KnowledgeSource
from skillbase.sync.tracker import SyncHealth, SyncHealthTracker
from skillbase.usage import FeatureUsage, UsageTracker

logger = logging.getLogger(__name__)


class Skillbase:
    """Main entry point for the skillbase library.

    Wires the store, the LLM client and the optional knowledge source
    into search, answering, batch runs and sync.

    Usage::

        from skillbase.store.memory import InMemoryStore
        from skillbase.llm.litellm import LiteLLMClient

        async with Skillbase(
            store=InMemoryStore(),
            llm_client=LiteLLMClient("anthropic/claude-sonnet-4-20250514"),
        ) as sb:
            response = await sb.answer_question("Do you support SSO?")
    """

    def __init__(
        self,
        store: Store,
        llm_client: BaseLLMClient,
        *,
        source: KnowledgeSource | None = None,
        ranker: Ranker | None = None,
        sections: Sequence[PromptSection] = DEFAULT_QUESTION_SECTIONS,
        sleep: Sleep = asyncio.sleep,
        request_timeout_s: float | None = DEFAULT_REQUEST_TIMEOUT_S,
    ) -> None:
        self._store = store
        self._llm_client = llm_client
        self._source = source
        self._ranker = ranker or KeywordRanker()

        self.tracker = SyncHealthTracker(store)
        self.usage = UsageTracker(store)
        self.answers = AnswerService(
            store,
            AnswerGenerator(llm_client, sleep=sleep, request_timeout_s=request_timeout_s),
            KnowledgeRetriever(store, self._ranker),
            self.usage,
            sections=sections,
        )
        self.orchestrator = BatchOrchestrator(store, self.answers, sleep=sleep)

    @classmethod
    def from_config(cls, config: dict[str, Any], **kwargs: Any) -> Skillbase:
        """Construct a Skillbase instance from a configuration dict."""
        source, store, llm_client = parse_config(config)
        return cls(store=store, llm_client=llm_client, source=source, **kwargs)

    @property
    def store(self) -> Store:
        return self._store

    async def init(self) -> None:
        """Create missing tables / indices (non-destructive)."""
        await self._store.init()

    async def reset(self) -> None:
        """Drop all data and recreate from scratch."""
        await self._store.reset()

    async def close(self) -> None:
        await self._store.close()

    async def __aenter__(self) -> Skillbase:
        await self.init()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    # ── Knowledge ────────────────────────────────────────────────────

    async def add_knowledge(self, entry: KnowledgeEntry) -> KnowledgeEntry:
        return await self._store.save_knowledge(entry)

    async def list_knowledge(self, *, active_only: bool = True) -> list[KnowledgeSummary]:
        return [
            KnowledgeSummary(
                id=e.id,
                title=e.title,
                tier=e.tier.value,
                categories=list(e.categories),
                is_active=e.is_active,
                sync_status=e.sync_status.value if e.sync_status else None,
            )
            for e in await self._store.list_knowledge(active_only=active_only)
        ]

    async def search_skills(
        self, request: SearchRequest | dict[str, Any]
    ) -> SearchResponse:
        return await search_skills(self._store, request, self._ranker)

    # ── Settings ─────────────────────────────────────────────────────

    async def get_rate_limit_settings(self) -> RateLimitSettings:
        return await load_rate_limit_settings(self._store)

    async def update_setting(
        self, key: str, value: str, updated_by: str | None = None
    ) -> AppSetting:
        return await update_setting(self._store, key, value, updated_by)

    async def list_settings(self) -> list[SettingInfo]:
        return await list_settings(self._store)

    # ── Answering ────────────────────────────────────────────────────

    async def answer_question(
        self,
        question: str,
        prompt: str | None = None,
        skills: Sequence[KnowledgeEntry] | None = None,
        fallback_content: FallbackInput = None,
        *,
        user_id: str | None = None,
    ) -> AnswerResponse:
        return await self.answers.answer_question(
            question, prompt, skills, fallback_content, user_id=user_id
        )

    async def follow_up(
        self, item_id: str, message: str, *, user_id: str | None = None
    ) -> AnswerResponse:
        item = await self._get_item(item_id)
        return await self.answers.follow_up(item, message, user_id=user_id)

    # ── Batches ──────────────────────────────────────────────────────

    async def add_questions(
        self, project_id: str, questions: Sequence[str]
    ) -> list[BatchItem]:
        """Append one pending item per non-blank question to *project_id*."""
        existing = await self._store.list_batch_items(project_id)
        next_row = max((i.row_number for i in existing), default=0) + 1
        items: list[BatchItem] = []
        for question in questions:
            if not question.strip():
                continue
            item = BatchItem(
                question=question.strip(), project_id=project_id, row_number=next_row
            )
            await self._store.save_batch_item(item)
            items.append(item)
            next_row += 1
        return items

    async def list_items(self, project_id: str) -> list[ItemSummary]:
        return [
            ItemSummary(
                id=i.id,
                row_number=i.row_number,
                question=i.question,
                status=i.status.value,
                confidence=i.confidence,
                error=i.error,
            )
            for i in await self._store.list_batch_items(project_id)
        ]

    async def retry_item(self, item_id: str) -> BatchItem:
        """Explicitly send a completed or failed item back to pending."""
        item = await self._get_item(item_id)
        if item.status is ItemStatus.generating:
            raise ValidationError(f"Item {item_id} is still generating")
        if item.status is not ItemStatus.pending:
            item.reset_for_retry()
            await self._store.save_batch_item(item)
        return item

    async def run_batch(
        self,
        items: Sequence[BatchItem],
        settings: RateLimitSettings | None = None,
        *,
        cancel: asyncio.Event | None = None,
        on_progress: ProgressCallback | None = None,
        fallback_content: FallbackInput = None,
    ) -> BatchRunResult:
        return await self.orchestrator.run_batch(
            items,
            settings,
            cancel=cancel,
            on_progress=on_progress,
            fallback_content=fallback_content,
        )

    async def run_project(
        self,
        project_id: str,
        settings: RateLimitSettings | None = None,
        *,
        policy: RunPolicy | None = None,
        cancel: asyncio.Event | None = None,
        on_progress: ProgressCallback | None = None,
        fallback_content: FallbackInput = None,
    ) -> BatchRunResult | None:
        return await self.orchestrator.run_project(
            project_id,
            settings,
            policy=policy,
            cancel=cancel,
            on_progress=on_progress,
            fallback_content=fallback_content,
        )

    async def _get_item(self, item_id: str) -> BatchItem:
        item = await self._store.get_batch_item(item_id)
        if item is None:
            raise ValidationError(f"Item {item_id} not found")
        return item

    # ── Sync ─────────────────────────────────────────────────────────

    async def sync_health(self) -> SyncHealth:
        return await self.tracker.health_status()

    def _sync_runner(self) -> SyncRunner:
        if self._source is None:
            raise ValidationError("No knowledge source configured")
        return SyncRunner(self._store, self._source, self.tracker)

    async def trigger_sync(self, actor: Actor) -> SyncSummary:
        return await self._sync_runner().trigger(actor)

    async def push_entry(self, entry_id: str, actor: Actor) -> str:
        if not actor.can_manage_knowledge:
            raise AuthorizationError(f"User {actor.id} may not edit the knowledge base")
        entry = await self._store.get_knowledge(entry_id)
        if entry is None:
            raise ValidationError(f"Knowledge entry {entry_id} not found")
        return await self._sync_runner().push_entry(entry, synced_by=actor.id)

    # ── Usage ────────────────────────────────────────────────────────

    async def usage_summary(self, feature: str | None = None) -> dict[str, FeatureUsage]:
        return await self.usage.usage_summary(feature=feature)
