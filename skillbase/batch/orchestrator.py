from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterator, Sequence
from dataclasses import dataclass, field
from typing import TypeVar

from skillbase.answer.service import AnswerService, FallbackInput
from skillbase.batch.policy import ImmediateRunPolicy, RunPolicy
from skillbase.errors import PersistenceDegraded, SkillbaseError
from skillbase.models import BatchItem, ItemStatus, RateLimitSettings
from skillbase.settings import load_rate_limit_settings
from skillbase.store.base import Store

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]
ProgressCallback = Callable[[BatchItem, int, int], None]

INTERRUPTED_MESSAGE = "Interrupted before completion"

T = TypeVar("T")


@dataclass
class BatchRunResult:
    items: list[BatchItem]
    processed: int = 0
    completed: int = 0
    failed: int = 0
    skipped: int = 0
    delays: int = 0
    cancelled: bool = False
    settings: RateLimitSettings = field(default_factory=RateLimitSettings.defaults)

    @property
    def partial_failure(self) -> bool:
        return self.failed > 0


def windows(items: Sequence[T], size: int) -> Iterator[list[T]]:
    """Yield consecutive windows of at most *size* items."""
    if size < 1:
        raise ValueError("Window size must be at least 1")
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


class BatchOrchestrator:
    """Answers many questionnaire items under one throughput budget.

    Items are processed strictly one at a time.  After every window of
    ``batch_size`` items the run sleeps ``batch_delay_ms``, except after
    the last window.  Each item is persisted before the next one starts,
    so an interrupted run can be resumed by running the same items again:
    completed items are skipped.
    """

    def __init__(
        self,
        store: Store,
        answers: AnswerService,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._store = store
        self._answers = answers
        self._sleep = sleep

    async def run_batch(
        self,
        items: Sequence[BatchItem],
        settings: RateLimitSettings | None = None,
        *,
        cancel: asyncio.Event | None = None,
        on_progress: ProgressCallback | None = None,
        fallback_content: FallbackInput = None,
        user_id: str | None = None,
    ) -> BatchRunResult:
        if settings is None:
            settings = await load_rate_limit_settings(self._store)
        result = BatchRunResult(items=list(items), settings=settings)

        work: list[BatchItem] = []
        for item in result.items:
            if not item.needs_processing:
                result.skipped += 1
                continue
            work.append(item)

        total = len(work)
        logger.info(
            "Batch run: %d to process, %d skipped, batch_size=%d delay=%dms",
            total,
            result.skipped,
            settings.batch_size,
            settings.batch_delay_ms,
        )

        for index, window in enumerate(windows(work, settings.batch_size)):
            if _is_set(cancel):
                result.cancelled = True
                break
            if index > 0:
                logger.info(
                    "Pausing %.1fs before window %d", settings.batch_delay_s, index + 1
                )
                await self._sleep(settings.batch_delay_s)
                result.delays += 1
            for item in window:
                if _is_set(cancel):
                    result.cancelled = True
                    break
                await self._process(item, settings, fallback_content, user_id)
                result.processed += 1
                if item.status is ItemStatus.completed:
                    result.completed += 1
                else:
                    result.failed += 1
                if on_progress is not None:
                    on_progress(item, result.processed, total)
            if result.cancelled:
                break

        if result.cancelled:
            logger.info("Batch run cancelled after %d/%d items", result.processed, total)
        logger.info(
            "Batch run finished: %d completed, %d failed, %d skipped",
            result.completed,
            result.failed,
            result.skipped,
        )
        return result

    async def _process(
        self,
        item: BatchItem,
        settings: RateLimitSettings,
        fallback_content: FallbackInput,
        user_id: str | None,
    ) -> None:
        if item.status is ItemStatus.generating:
            item.fail(INTERRUPTED_MESSAGE)
        if item.status is ItemStatus.error:
            item.reset_for_retry()
        item.start()
        await self._persist(item)
        try:
            response = await self._answers.answer_question(
                item.question,
                fallback_content=fallback_content,
                settings=settings,
                user_id=user_id,
            )
        except SkillbaseError as exc:
            logger.warning("[%s] Failed: %s", item.id, exc.message)
            item.fail(exc.message)
        except Exception as exc:
            logger.error("[%s] Unexpected failure", item.id, exc_info=True)
            item.fail(str(exc) or type(exc).__name__)
        else:
            item.complete(
                response.details,
                used_skills=response.used_skills,
                used_fallback=response.used_fallback,
                conversation_history=response.conversation_history,
            )
            logger.info("[%s] Completed", item.id)
        await self._persist(item)

    async def _persist(self, item: BatchItem) -> None:
        try:
            await self._store.save_batch_item(item)
        except PersistenceDegraded:
            logger.error("[%s] Could not persist item", item.id, exc_info=True)

    async def run_project(
        self,
        project_id: str,
        settings: RateLimitSettings | None = None,
        *,
        policy: RunPolicy | None = None,
        cancel: asyncio.Event | None = None,
        on_progress: ProgressCallback | None = None,
        fallback_content: FallbackInput = None,
        user_id: str | None = None,
    ) -> BatchRunResult | None:
        """Run every stored item of *project_id* under *policy*.

        Returns ``None`` when the policy rejects the run.
        """
        policy = policy or ImmediateRunPolicy()
        run_id = await policy.acquire(project_id)
        if run_id is None:
            logger.info("[%s] Run rejected by policy, skipping", project_id)
            return None

        try:
            items = await self._store.list_batch_items(project_id)
            result = await self.run_batch(
                items,
                settings,
                cancel=cancel,
                on_progress=on_progress,
                fallback_content=fallback_content,
                user_id=user_id,
            )
        except Exception:
            await policy.release(run_id, success=False)
            raise
        else:
            await policy.release(run_id, success=True)
        return result


def _is_set(cancel: asyncio.Event | None) -> bool:
    return cancel is not None and cancel.is_set()
