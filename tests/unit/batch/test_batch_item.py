from __future__ import annotations

import pytest

from skillbase.errors import InvalidTransitionError
from skillbase.models import AnswerDetails, BatchItem, ItemStatus, Turn


def _complete(item: BatchItem, response: str = "Yes") -> None:
    item.complete(
        AnswerDetails(response=response, confidence="High"),
        used_skills=["s1"],
        used_fallback=False,
        conversation_history=[
            Turn(role="user", content=item.question),
            Turn(role="assistant", content=response),
        ],
    )


def test_happy_path() -> None:
    item = BatchItem(question="Q?")
    item.start()
    assert item.status is ItemStatus.generating
    _complete(item)
    assert item.status is ItemStatus.completed
    assert item.response == "Yes"
    assert item.used_skills == ["s1"]
    assert not item.needs_processing


@pytest.mark.parametrize(
    "move",
    [
        lambda i: _complete(i),
        lambda i: i.fail("x"),
        lambda i: i.reset_for_retry(),
    ],
)
def test_pending_item_must_start_first(move) -> None:  # noqa: ANN001
    with pytest.raises(InvalidTransitionError):
        move(BatchItem(question="Q?"))


def test_completed_item_cannot_restart_without_reset() -> None:
    item = BatchItem(question="Q?")
    item.start()
    _complete(item)
    with pytest.raises(InvalidTransitionError):
        item.start()


def test_failure_keeps_last_good_answer() -> None:
    item = BatchItem(question="Q?")
    item.start()
    _complete(item, "Original")
    item.reset_for_retry()
    item.start()
    item.fail("timeout")

    assert item.status is ItemStatus.error
    assert item.error == "timeout"
    assert item.response == "Original"
    assert item.confidence == "High"
    assert len(item.conversation_history) == 2


def test_start_clears_error() -> None:
    item = BatchItem(question="Q?")
    item.start()
    item.fail("boom")
    item.reset_for_retry()
    item.start()
    assert item.error is None


def test_turn_round_trip() -> None:
    turn = Turn(role="assistant", content="Hi")
    assert Turn.from_dict(turn.to_dict()) == turn
