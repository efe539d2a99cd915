"""Unit tests for the case lifecycle state machine."""

from datetime import datetime, timedelta
from typing import List

import pytest

from ace.cases.models import CaseRecord, CaseStatus
from ace.cases.checklist import CRITICAL_ITEMS, QC_CHECKLIST, ChecklistItem, checklist_status, progress
from ace.cases.state import CaseStateMachine, ChecklistIncomplete, FinalizationBlocked, InvalidTransition
from ace.core.models import VerificationStatus

from tests.helpers import make_metadata, tick_critical


class StepClock:
    """Clock returning queued instants; repeats the last one when exhausted."""

    def __init__(self, *times: datetime):
        self.times: List[datetime] = list(times)

    def __call__(self) -> datetime:
        if len(self.times) > 1:
            return self.times.pop(0)
        return self.times[0]


T0 = datetime(2025, 1, 6, 9, 0, 0)


def at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)


@pytest.fixture
def case() -> CaseRecord:
    return CaseRecord(case_id="2405.12345", display_name="2405.12345")


def mismatched():
    return make_metadata(pdf_id="2405.12345v1", html_id="2405.12345v2")


class TestExtractionTransitions:
    """Tests for scheduler-driven transitions."""

    def test_success_starts_qc_clock_at_extraction_end(self, case: CaseRecord) -> None:
        machine = CaseStateMachine(clock=StepClock(at(0), at(12), at(40)))
        machine.start(case)
        assert case.status == CaseStatus.PROCESSING
        machine.succeed(case, make_metadata())
        assert case.status == CaseStatus.SUCCESS
        assert case.timing.qc_start == case.timing.extraction_end == at(12)
        assert case.timing.extraction_duration == 12.0

        tick_critical(machine, case)
        machine.finalize_qc(case)
        assert case.timing.qc_end == at(40)
        assert case.timing.qc_start <= case.timing.qc_end
        assert case.status == CaseStatus.SUCCESS
        assert case.is_finalized

    def test_clock_going_backwards_is_clamped(self, case: CaseRecord) -> None:
        machine = CaseStateMachine(clock=StepClock(at(10), at(5), at(1)))
        machine.start(case)
        machine.succeed(case, make_metadata())
        assert case.timing.extraction_end == at(10)
        tick_critical(machine, case)
        machine.finalize_qc(case)
        assert case.timing.qc_end == at(10)

    def test_failure_records_message_and_kind(self, case: CaseRecord) -> None:
        machine = CaseStateMachine(clock=StepClock(at(0), at(3)))
        machine.start(case)
        machine.fail(case, "Rate limit exceeded", "rate_limited")
        assert case.status == CaseStatus.ERROR
        assert case.error_message == "Rate limit exceeded"
        assert case.error_kind == "rate_limited"
        assert case.extracted is None
        assert case.timing.extraction_end == at(3)

    def test_restart_clears_previous_outcome(self, case: CaseRecord) -> None:
        machine = CaseStateMachine(clock=StepClock(at(0), at(1), at(2)))
        machine.start(case)
        machine.succeed(case, make_metadata())
        machine.start(case)
        assert case.status == CaseStatus.PROCESSING
        assert case.extracted is None
        assert case.timing.qc_start is None
        assert case.timing.extraction_start == at(2)

        machine.fail(case, "boom")
        assert case.extracted is None
        assert case.error_message == "boom"

    def test_error_can_be_retried(self, case: CaseRecord) -> None:
        machine = CaseStateMachine()
        machine.start(case)
        machine.fail(case, "boom")
        machine.start(case)
        assert case.error_message is None
        machine.succeed(case, make_metadata())
        assert case.status == CaseStatus.SUCCESS

    def test_cannot_start_twice(self, case: CaseRecord) -> None:
        machine = CaseStateMachine()
        machine.start(case)
        with pytest.raises(InvalidTransition):
            machine.start(case)

    def test_cannot_succeed_when_idle(self, case: CaseRecord) -> None:
        with pytest.raises(InvalidTransition):
            CaseStateMachine().succeed(case, make_metadata())

    def test_cancel_returns_to_idle_without_timing(self, case: CaseRecord) -> None:
        machine = CaseStateMachine()
        machine.start(case)
        machine.cancel(case)
        assert case.status == CaseStatus.IDLE
        assert case.timing.is_empty()
        with pytest.raises(InvalidTransition):
            machine.cancel(case)


class TestOperatorActions:
    """Tests for edits, overrides and QC finalization."""

    def test_edit_keeps_engine_verification(self, case: CaseRecord) -> None:
        machine = CaseStateMachine()
        machine.start(case)
        machine.succeed(case, mismatched())
        edited = make_metadata().model_copy(update={"title": "Faster Learning"})
        machine.save_edit(case, edited)
        assert case.is_edited
        assert case.extracted.title == "Faster Learning"
        assert case.verification_status == VerificationStatus.VERSION_MISMATCHED

    def test_edit_requires_success(self, case: CaseRecord) -> None:
        with pytest.raises(InvalidTransition):
            CaseStateMachine().save_edit(case, make_metadata())

    def test_blocking_status_needs_override(self, case: CaseRecord) -> None:
        machine = CaseStateMachine(clock=StepClock(at(0), at(5), at(8), at(9)))
        machine.start(case)
        machine.succeed(case, mismatched())
        with pytest.raises(FinalizationBlocked):
            machine.finalize_qc(case)
        assert not case.is_finalized

        entry = machine.record_override(case, " alice ", "v2 confirmed on arXiv")
        assert entry.operator == "alice"
        assert entry.verification_status == VerificationStatus.VERSION_MISMATCHED
        assert case.is_overridden
        tick_critical(machine, case)
        machine.finalize_qc(case)
        assert case.is_finalized

    def test_override_rejected_for_non_blocking_status(self, case: CaseRecord) -> None:
        machine = CaseStateMachine()
        machine.start(case)
        machine.succeed(case, make_metadata())
        with pytest.raises(InvalidTransition):
            machine.record_override(case, "alice", "looks fine")

    def test_override_needs_operator_and_reason(self, case: CaseRecord) -> None:
        machine = CaseStateMachine()
        machine.start(case)
        machine.succeed(case, mismatched())
        with pytest.raises(ValueError):
            machine.record_override(case, "alice", "   ")

    def test_override_does_not_carry_over_to_new_extraction(self, case: CaseRecord) -> None:
        machine = CaseStateMachine(clock=StepClock(at(0), at(5), at(6), at(10), at(20)))
        machine.start(case)
        machine.succeed(case, mismatched())
        machine.record_override(case, "alice", "accepted")
        assert case.is_overridden

        machine.start(case)
        machine.succeed(case, mismatched())
        assert len(case.overrides) == 1
        assert not case.is_overridden
        with pytest.raises(FinalizationBlocked):
            machine.finalize_qc(case)

    def test_manual_id(self, case: CaseRecord) -> None:
        machine = CaseStateMachine()
        machine.set_manual_id(case, " 2405.12345v2 ")
        assert case.manual_id == "2405.12345v2"
        machine.set_manual_id(case, "  ")
        assert case.manual_id is None
        machine.start(case)
        with pytest.raises(InvalidTransition):
            machine.set_manual_id(case, "2405.12345v3")


class TestChecklist:
    """Tests for the QC checklist gate."""

    def test_finalize_needs_every_critical_check(self, case: CaseRecord) -> None:
        machine = CaseStateMachine()
        machine.start(case)
        machine.succeed(case, make_metadata())

        with pytest.raises(ChecklistIncomplete) as exc_info:
            machine.finalize_qc(case)
        assert exc_info.value.missing == list(CRITICAL_ITEMS)

        for item in CRITICAL_ITEMS[:-1]:
            machine.set_check(case, item)
        with pytest.raises(ChecklistIncomplete) as exc_info:
            machine.finalize_qc(case)
        assert exc_info.value.missing == [ChecklistItem.COUNTRY_CODES]
        assert not case.is_finalized

        machine.set_check(case, "country-codes")
        assert case.checklist_complete
        machine.finalize_qc(case)
        assert case.is_finalized

    def test_optional_items_are_not_required(self, case: CaseRecord) -> None:
        machine = CaseStateMachine()
        machine.start(case)
        machine.succeed(case, make_metadata())
        machine.set_check(case, ChecklistItem.ABSTRACT_CLEAN)
        tick_critical(machine, case)
        machine.set_check(case, ChecklistItem.ABSTRACT_CLEAN, checked=False)
        machine.finalize_qc(case)
        assert case.qc_checks == set(CRITICAL_ITEMS)

    def test_unticking_a_critical_item_blocks_again(self, case: CaseRecord) -> None:
        machine = CaseStateMachine()
        machine.start(case)
        machine.succeed(case, make_metadata())
        tick_critical(machine, case)
        machine.set_check(case, ChecklistItem.TITLE_MATCH, checked=False)
        with pytest.raises(ChecklistIncomplete):
            machine.finalize_qc(case)

    def test_override_gate_is_checked_first(self, case: CaseRecord) -> None:
        machine = CaseStateMachine()
        machine.start(case)
        machine.succeed(case, mismatched())
        with pytest.raises(FinalizationBlocked):
            machine.finalize_qc(case)

    def test_checks_need_a_successful_unfinalized_case(self, case: CaseRecord) -> None:
        machine = CaseStateMachine()
        with pytest.raises(InvalidTransition):
            machine.set_check(case, ChecklistItem.ID_VERIFIED)

        machine.start(case)
        machine.succeed(case, make_metadata())
        tick_critical(machine, case)
        machine.finalize_qc(case)
        with pytest.raises(InvalidTransition):
            machine.set_check(case, ChecklistItem.ABSTRACT_CLEAN)

    def test_unknown_item_is_rejected(self, case: CaseRecord) -> None:
        machine = CaseStateMachine()
        machine.start(case)
        machine.succeed(case, make_metadata())
        with pytest.raises(ValueError):
            machine.set_check(case, "spell-check")

    def test_reprocessing_clears_checks(self, case: CaseRecord) -> None:
        machine = CaseStateMachine()
        machine.start(case)
        machine.succeed(case, make_metadata())
        tick_critical(machine, case)
        machine.start(case)
        assert case.qc_checks == set()
        machine.succeed(case, make_metadata())
        assert not case.checklist_complete


def test_checklist_status() -> None:
    assert len(QC_CHECKLIST) == 8
    assert len(CRITICAL_ITEMS) == 5
    assert progress([]) == 0
    assert progress([ChecklistItem.ID_VERIFIED]) == 13
    assert progress(list(ChecklistItem)) == 100

    status = checklist_status(CRITICAL_ITEMS)
    assert status["ready"] is True
    assert status["missing_critical"] == []
    assert status["progress"] == 63
    assert [i["id"] for i in status["items"] if not i["checked"]] == ["corresp-email", "abstract-clean", "refs-format"]
