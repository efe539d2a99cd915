"""Case lifecycle: ``IDLE -> PROCESSING -> SUCCESS | ERROR``.

Every mutation of a case's status, timing or extracted record goes
through :class:`CaseStateMachine`. Success and Error may both re-enter
Processing; no state is terminal.

Timing invariants kept here:

- ``extraction_end`` is never before ``extraction_start``
- ``qc_start`` equals ``extraction_end`` at the moment of success
- ``qc_end`` is never before ``qc_start``
- an Idle case has no timing fields set

The extracted record is present exactly while the case is in Success.
Re-entering Processing drops the previous record, so an Error never
carries a stale one.

Finalizing QC needs an override when the verification status is
blocking, and every critical item of the QC checklist ticked. Checks
belong to one extraction result and are cleared when it is re-run.
"""

from datetime import datetime
from typing import Callable, List, Optional

from ..core.models import ExtractedMetadata
from ..utils.logging import case_logger, get_logger
from .checklist import ChecklistItem, missing_critical
from .models import CaseRecord, CaseStatus, CaseTiming, OverrideRecord

logger = get_logger(__name__)

Clock = Callable[[], datetime]


class InvalidTransition(ValueError):
    """The requested action is not allowed in the case's current state."""

    def __init__(self, case: CaseRecord, action: str):
        self.case_id = case.case_id
        self.status = case.status
        super().__init__(f"Cannot {action} case {case.case_id} while {case.status.value}")


class FinalizationBlocked(ValueError):
    """QC finalization requires an operator override of the verification status."""

    def __init__(self, case: CaseRecord):
        self.case_id = case.case_id
        status = case.verification_status.value if case.verification_status else "unknown"
        super().__init__(
            f"Case {case.case_id} has verification status {status}; "
            f"record an override before finalizing QC"
        )


class ChecklistIncomplete(ValueError):
    """QC finalization requires every critical checklist item to be ticked."""

    def __init__(self, case: CaseRecord, missing: List[ChecklistItem]):
        self.case_id = case.case_id
        self.missing = missing
        super().__init__(
            f"Case {case.case_id} has unchecked critical QC items: {', '.join(item.value for item in missing)}"
        )


class CaseStateMachine:
    """Owns every state transition and timestamp of a case."""

    RESTARTABLE = (CaseStatus.IDLE, CaseStatus.SUCCESS, CaseStatus.ERROR)

    def __init__(self, clock: Optional[Clock] = None):
        self._clock: Clock = clock or datetime.now

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # Scheduler-driven transitions

    def start(self, case: CaseRecord) -> None:
        """``Idle | Success | Error -> Processing``."""
        if case.status not in self.RESTARTABLE:
            raise InvalidTransition(case, "start processing")
        previous = case.status
        case.status = CaseStatus.PROCESSING
        case.timing = CaseTiming(extraction_start=self.now())
        case.extracted = None
        case.is_edited = False
        case.qc_checks = set()
        case.error_message = None
        case.error_kind = None
        case_logger(logger, case.case_id).info(
            f"{previous.value} -> processing", extra={"case_status": case.status.value}
        )

    def succeed(self, case: CaseRecord, record: ExtractedMetadata) -> None:
        """``Processing -> Success``; the QC clock starts the instant extraction ends."""
        if case.status != CaseStatus.PROCESSING:
            raise InvalidTransition(case, "complete")
        end = self._not_before(case.timing.extraction_start)
        case.timing.extraction_end = end
        case.timing.qc_start = end
        case.extracted = record
        case.status = CaseStatus.SUCCESS
        case_logger(logger, case.case_id).info(
            f"processing -> success "
            f"({case.timing.extraction_duration:.1f}s, verification={record.verification.status.value})",
            extra={"case_status": case.status.value},
        )

    def fail(self, case: CaseRecord, message: str, kind: Optional[str] = None) -> None:
        """``Processing -> Error``."""
        if case.status != CaseStatus.PROCESSING:
            raise InvalidTransition(case, "fail")
        case.timing.extraction_end = self._not_before(case.timing.extraction_start)
        case.error_message = message
        case.error_kind = kind
        case.status = CaseStatus.ERROR
        case_logger(logger, case.case_id).warning(
            f"processing -> error ({kind or 'error'}: {message})", extra={"case_status": case.status.value}
        )

    def cancel(self, case: CaseRecord) -> None:
        """``Processing -> Idle``; used when an in-flight extraction is cancelled."""
        if case.status != CaseStatus.PROCESSING:
            raise InvalidTransition(case, "cancel")
        case.status = CaseStatus.IDLE
        case.timing = CaseTiming()
        case_logger(logger, case.case_id).info(
            "processing -> idle (cancelled)", extra={"case_status": case.status.value}
        )

    # ------------------------------------------------------------------
    # Operator actions

    def save_edit(self, case: CaseRecord, record: ExtractedMetadata) -> None:
        """Replace the extracted record with a manual correction.

        The verification block is engine output and is kept from the
        current record. QC timing is untouched.
        """
        if case.status != CaseStatus.SUCCESS or case.extracted is None:
            raise InvalidTransition(case, "edit")
        case.extracted = record.model_copy(update={"verification": case.extracted.verification})
        case.is_edited = True
        case_logger(logger, case.case_id).info("manual correction saved")

    def record_override(self, case: CaseRecord, operator: str, reason: str) -> OverrideRecord:
        """Accept a blocking verification status explicitly."""
        status = case.verification_status
        if case.status != CaseStatus.SUCCESS or status is None or not status.is_blocking:
            raise InvalidTransition(case, "override")
        if not operator.strip() or not reason.strip():
            raise ValueError("An override needs an operator and a reason")
        entry = OverrideRecord(
            operator=operator.strip(),
            reason=reason.strip(),
            verification_status=status,
            timestamp=self._not_before(case.timing.extraction_end),
        )
        case.overrides.append(entry)
        case_logger(logger, case.case_id).warning(f"{status.value} overridden by {entry.operator}: {entry.reason}")
        return entry

    def finalize_qc(self, case: CaseRecord) -> None:
        """Stop the QC clock. Status stays Success."""
        if case.status != CaseStatus.SUCCESS:
            raise InvalidTransition(case, "finalize QC for")
        status = case.verification_status
        if status is not None and status.is_blocking and not case.is_overridden:
            raise FinalizationBlocked(case)
        missing = missing_critical(case.qc_checks)
        if missing:
            raise ChecklistIncomplete(case, missing)
        case.timing.qc_end = self._not_before(case.timing.qc_start)
        case_logger(logger, case.case_id).info(f"QC finalized after {case.timing.qc_duration:.1f}s")

    def set_check(self, case: CaseRecord, item: ChecklistItem, checked: bool = True) -> None:
        """Tick or untick one QC checklist item of the current record."""
        if case.status != CaseStatus.SUCCESS:
            raise InvalidTransition(case, "review")
        if case.is_finalized:
            raise InvalidTransition(case, "change the QC checklist of finalized")
        item = ChecklistItem(item)
        if checked:
            case.qc_checks.add(item)
        else:
            case.qc_checks.discard(item)
        case_logger(logger, case.case_id).info(f"QC check {item.value} {'ticked' if checked else 'cleared'}")

    def set_manual_id(self, case: CaseRecord, manual_id: Optional[str]) -> None:
        """Identifier override passed to the next extraction of this case."""
        if case.status == CaseStatus.PROCESSING:
            raise InvalidTransition(case, "change the manual id of")
        case.manual_id = manual_id.strip() if manual_id and manual_id.strip() else None

    def _not_before(self, earlier: Optional[datetime]) -> datetime:
        now = self.now()
        if earlier is not None and now < earlier:
            return earlier
        return now
