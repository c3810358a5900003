from __future__ import annotations

import asyncio
import copy

import pytest

from skillbase.answer import AnswerGenerator, AnswerService
from skillbase.batch import BatchOrchestrator, InProcessLockPolicy, windows
from skillbase.batch.orchestrator import INTERRUPTED_MESSAGE
from skillbase.errors import ProviderError
from skillbase.models import BatchItem, ItemStatus, RateLimitSettings
from skillbase.search.skills import KnowledgeRetriever
from skillbase.store.memory import InMemoryStore
from skillbase.usage import UsageTracker
from tests.conftest import FakeLLMClient, RecordingSleep, throttled


def _orchestrator(
    store: InMemoryStore, llm: FakeLLMClient, sleep: RecordingSleep
) -> BatchOrchestrator:
    answers = AnswerService(
        store,
        AnswerGenerator(llm, sleep=sleep),
        KnowledgeRetriever(store),
        UsageTracker(store),
    )
    return BatchOrchestrator(store, answers, sleep=sleep)


def _items(count: int, project_id: str = "p1") -> list[BatchItem]:
    return [
        BatchItem(question=f"Question {n}?", project_id=project_id, row_number=n)
        for n in range(1, count + 1)
    ]


def test_windows() -> None:
    assert list(windows([1, 2, 3, 4, 5], 2)) == [[1, 2], [3, 4], [5]]
    assert list(windows([], 3)) == []
    with pytest.raises(ValueError):
        list(windows([1], 0))


@pytest.mark.parametrize(
    ("count", "batch_size", "expected_delays"),
    [(5, 2, 2), (4, 2, 1), (1, 5, 0), (10, 3, 3), (0, 5, 0)],
)
async def test_one_delay_between_consecutive_windows(
    count: int,
    batch_size: int,
    expected_delays: int,
    store: InMemoryStore,
    llm: FakeLLMClient,
    sleep: RecordingSleep,
) -> None:
    settings = RateLimitSettings(batch_size=batch_size, batch_delay_ms=15000)
    result = await _orchestrator(store, llm, sleep).run_batch(_items(count), settings)

    assert result.delays == expected_delays
    assert sleep.waits == [15.0] * expected_delays
    assert result.completed == count
    assert llm.call_count == count


async def test_items_are_persisted_with_answers(
    store: InMemoryStore, llm: FakeLLMClient, sleep: RecordingSleep
) -> None:
    items = _items(2)
    progress: list[tuple[int, int]] = []

    await _orchestrator(store, llm, sleep).run_batch(
        items,
        RateLimitSettings(batch_size=5),
        on_progress=lambda item, done, total: progress.append((done, total)),
    )

    stored = await store.list_batch_items("p1")
    assert [i.status for i in stored] == [ItemStatus.completed] * 2
    assert stored[0].confidence == "High"
    assert len(stored[0].conversation_history) == 2
    assert progress == [(1, 2), (2, 2)]


async def test_rerun_skips_completed_items_unchanged(
    store: InMemoryStore, llm: FakeLLMClient, sleep: RecordingSleep
) -> None:
    orchestrator = _orchestrator(store, llm, sleep)
    items = _items(3)
    settings = RateLimitSettings(batch_size=2, batch_delay_ms=0)
    await orchestrator.run_batch(items[:2], settings)
    before = copy.deepcopy(await store.list_batch_items("p1"))
    calls_before = llm.call_count

    stored = await store.list_batch_items("p1")
    result = await orchestrator.run_batch([*stored, items[2]], settings)

    assert result.skipped == 2
    assert result.completed == 1
    assert llm.call_count == calls_before + 1
    after = await store.list_batch_items("p1")
    assert after[:2] == before


async def test_failed_item_keeps_previous_answer(
    store: InMemoryStore, sleep: RecordingSleep
) -> None:
    llm = FakeLLMClient(["Answer: First version", ProviderError("boom")])
    orchestrator = _orchestrator(store, llm, sleep)
    item = _items(1)[0]
    await orchestrator.run_batch([item], RateLimitSettings())
    item.reset_for_retry()

    result = await orchestrator.run_batch([item], RateLimitSettings())

    assert result.failed == 1
    assert result.partial_failure
    stored = await store.get_batch_item(item.id)
    assert stored is not None
    assert stored.status is ItemStatus.error
    assert stored.error == "boom"
    assert stored.response == "First version"


async def test_one_failure_does_not_stop_the_run(
    store: InMemoryStore, sleep: RecordingSleep
) -> None:
    llm = FakeLLMClient(["Answer: ok", ProviderError("bad request"), "Answer: ok"])
    result = await _orchestrator(store, llm, sleep).run_batch(
        _items(3), RateLimitSettings(batch_size=5)
    )
    assert (result.completed, result.failed) == (2, 1)


async def test_rate_limited_item_records_error(
    store: InMemoryStore, sleep: RecordingSleep
) -> None:
    llm = FakeLLMClient([throttled()] * 3)
    settings = RateLimitSettings(max_retries=2, retry_wait_ms=1000)

    result = await _orchestrator(store, llm, sleep).run_batch(_items(1), settings)

    assert result.failed == 1
    assert sleep.waits == [1.0, 1.0]
    assert "Rate limited" in (result.items[0].error or "")


async def test_interrupted_and_errored_items_are_reprocessed(
    store: InMemoryStore, llm: FakeLLMClient, sleep: RecordingSleep
) -> None:
    stuck, errored = _items(2)
    stuck.start()
    errored.start()
    errored.fail("old failure")

    result = await _orchestrator(store, llm, sleep).run_batch(
        [stuck, errored], RateLimitSettings()
    )

    assert result.completed == 2
    assert stuck.status is ItemStatus.completed
    assert stuck.error is None
    assert errored.error is None


class _BrokenSettingsStore(InMemoryStore):
    async def get_settings(self, keys: list[str]) -> dict[str, str]:
        raise ConnectionError("settings table unreachable")


async def test_unreachable_settings_fall_back_to_defaults(
    llm: FakeLLMClient, sleep: RecordingSleep
) -> None:
    store = _BrokenSettingsStore()
    result = await _orchestrator(store, llm, sleep).run_batch(_items(6))

    assert result.settings == RateLimitSettings.defaults()
    assert result.delays == 1
    assert sleep.waits == [15.0]


async def test_cancel_stops_before_next_item(
    store: InMemoryStore, llm: FakeLLMClient, sleep: RecordingSleep
) -> None:
    cancel = asyncio.Event()

    def on_progress(item: BatchItem, done: int, total: int) -> None:
        if done == 2:
            cancel.set()

    result = await _orchestrator(store, llm, sleep).run_batch(
        _items(5), RateLimitSettings(batch_size=5), cancel=cancel, on_progress=on_progress
    )

    assert result.cancelled
    assert result.processed == 2
    assert llm.call_count == 2
    pending = [i for i in result.items if i.status is ItemStatus.pending]
    assert len(pending) == 3


async def test_cancel_leaves_unreached_items_untouched(
    store: InMemoryStore, llm: FakeLLMClient, sleep: RecordingSleep
) -> None:
    stuck, errored = _items(2)
    stuck.start()
    errored.start()
    errored.fail("provider said no")
    await store.save_batch_item(stuck)
    await store.save_batch_item(errored)
    cancel = asyncio.Event()
    cancel.set()

    result = await _orchestrator(store, llm, sleep).run_batch(
        [stuck, errored], RateLimitSettings(), cancel=cancel
    )

    assert result.cancelled
    assert result.processed == 0
    assert llm.call_count == 0
    assert stuck.status is ItemStatus.generating
    assert errored.status is ItemStatus.error
    assert errored.error == "provider said no"
    stored = await store.get_batch_item(errored.id)
    assert stored is not None
    assert stored.status is ItemStatus.error
    assert stored.error == "provider said no"


async def test_run_project_respects_lock_policy(
    store: InMemoryStore, llm: FakeLLMClient, sleep: RecordingSleep
) -> None:
    for item in _items(2):
        await store.save_batch_item(item)
    orchestrator = _orchestrator(store, llm, sleep)
    policy = InProcessLockPolicy()

    held = await policy.acquire("p1")
    assert await orchestrator.run_project("p1", policy=policy) is None

    assert held is not None
    await policy.release(held, success=True)
    result = await orchestrator.run_project("p1", RateLimitSettings(), policy=policy)
    assert result is not None
    assert result.completed == 2
    assert not policy.is_active("p1")


async def test_stuck_item_is_marked_interrupted_before_retry(
    store: InMemoryStore, sleep: RecordingSleep
) -> None:
    llm = FakeLLMClient([ProviderError("still down")])
    stuck = _items(1)[0]
    stuck.start()
    seen: list[str | None] = []

    orchestrator = _orchestrator(store, llm, sleep)
    original_fail = stuck.fail

    def recording_fail(message: str) -> None:
        seen.append(message)
        original_fail(message)

    stuck.fail = recording_fail  # type: ignore[method-assign]
    await orchestrator.run_batch([stuck], RateLimitSettings())

    assert seen == [INTERRUPTED_MESSAGE, "still down"]
    assert stuck.status is ItemStatus.error
