"""Tests for the FIFO case queue."""

import pytest

from ace.cases.models import CaseRecord
from ace.scheduler.queue import CaseQueue


def case(case_id: str) -> CaseRecord:
    return CaseRecord(case_id=case_id, display_name=case_id)


def test_pop_respects_order_and_limit() -> None:
    queue = CaseQueue(limit=2)
    for name in ("a", "b", "c"):
        assert queue.push(case(name))
    assert queue.pop().case_id == "a"
    assert queue.pop().case_id == "b"
    assert queue.pop() is None
    assert len(queue) == 1
    assert queue.snapshot() == {"pending": ["c"], "in_flight": ["a", "b"]}

    queue.release("a")
    assert queue.pop().case_id == "c"
    assert queue.peak_in_flight == 2


def test_duplicate_push_is_ignored() -> None:
    queue = CaseQueue(limit=1)
    assert queue.push(case("a"))
    assert not queue.push(case("a"))
    queue.pop()
    assert not queue.push(case("a"))
    queue.release("a")
    assert queue.push(case("a"))


def test_remove_only_pending() -> None:
    queue = CaseQueue(limit=1)
    queue.push(case("a"))
    queue.push(case("b"))
    queue.pop()
    assert not queue.remove("a")
    assert queue.remove("b")
    assert not queue.contains("b")
    queue.release("a")
    assert queue.is_drained()


def test_limit_must_be_positive() -> None:
    with pytest.raises(ValueError):
        CaseQueue(limit=0)
