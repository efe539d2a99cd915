"""Session: the working set of cases, its scheduler and its archive."""

from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from ..config.settings import settings
from ..core.models import ExtractedMetadata
from ..export.xml_writer import XmlExporter
from ..extraction.invoker import ExtractionInvoker
from ..io.history import HistoryStore
from ..scheduler.progress import SessionStats
from ..scheduler.scheduler import ProcessingScheduler
from ..utils.logging import get_logger
from .checklist import ChecklistItem, checklist_status
from .grouping import scan_directory
from .models import CaseRecord, CaseStatus, HistoricalSession, OverrideRecord
from .state import CaseStateMachine, FinalizationBlocked, InvalidTransition

logger = get_logger(__name__)

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


class CaseNotFound(KeyError):
    """No case with the given id in the session."""

    def __init__(self, case_id: str):
        self.case_id = case_id
        super().__init__(case_id)

    def __str__(self) -> str:
        return f"Unknown case: {self.case_id}"


def session_id_for(moment: datetime) -> str:
    """Upper-case base-36 rendering of epoch milliseconds."""
    value = int(moment.timestamp() * 1000)
    digits = ""
    while value:
        value, remainder = divmod(value, 36)
        digits = _BASE36[remainder] + digits
    return digits or "0"


class Session:
    """
    One operator session.

    Cases keep their insertion order. The scheduler and the operator
    actions share one :class:`CaseStateMachine`, so every change of
    status or timing goes through the same rules.
    """

    def __init__(
        self,
        invoker: Optional[ExtractionInvoker] = None,
        history: Optional[HistoryStore] = None,
        exporter: Optional[XmlExporter] = None,
        state_machine: Optional[CaseStateMachine] = None,
        concurrency: Optional[int] = None,
    ):
        self.state = state_machine or CaseStateMachine()
        self.invoker = invoker or ExtractionInvoker()
        self.scheduler = ProcessingScheduler(self.invoker, self.state, limit=concurrency)
        self.history = history or HistoryStore()
        self.exporter = exporter or XmlExporter()
        self.cases: Dict[str, CaseRecord] = {}
        self.started_at = datetime.now()

    # ------------------------------------------------------------------
    # Case collection

    def add_cases(self, cases: Iterable[CaseRecord]) -> List[CaseRecord]:
        """Add new cases; ids already in the session are skipped."""
        added = []
        for case in cases:
            if case.case_id in self.cases:
                logger.info(f"Case {case.case_id} already in session; skipping")
                continue
            self.cases[case.case_id] = case
            added.append(case)
        logger.info(f"Added {len(added)} case(s); session now holds {len(self.cases)}")
        return added

    def import_directory(self, directory: Path) -> List[CaseRecord]:
        return self.add_cases(scan_directory(directory))

    def get(self, case_id: str) -> CaseRecord:
        try:
            return self.cases[case_id]
        except KeyError:
            raise CaseNotFound(case_id) from None

    def list_cases(self) -> List[CaseRecord]:
        return list(self.cases.values())

    # ------------------------------------------------------------------
    # Processing

    def process(self, case_id: str, manual_id: Optional[str] = None) -> bool:
        case = self.get(case_id)
        if manual_id is not None:
            self.state.set_manual_id(case, manual_id)
        return self.scheduler.enqueue(case)

    def process_all(self) -> int:
        """Enqueue every Idle or Error case in session order."""
        queued = 0
        for case in self.cases.values():
            if case.status in (CaseStatus.IDLE, CaseStatus.ERROR) and self.scheduler.enqueue(case):
                queued += 1
        logger.info(f"Process all: {queued} case(s) enqueued")
        return queued

    async def wait(self) -> None:
        await self.scheduler.wait_until_idle()

    async def cancel(self, case_id: str) -> bool:
        self.get(case_id)
        return await self.scheduler.cancel(case_id)

    @property
    def is_complete(self) -> bool:
        return self.scheduler.is_complete

    # ------------------------------------------------------------------
    # Review

    def save_edit(self, case_id: str, record: ExtractedMetadata) -> CaseRecord:
        case = self.get(case_id)
        self.state.save_edit(case, record)
        return case

    def record_override(self, case_id: str, operator: str, reason: str) -> OverrideRecord:
        return self.state.record_override(self.get(case_id), operator, reason)

    def set_check(self, case_id: str, item: ChecklistItem, checked: bool = True) -> CaseRecord:
        case = self.get(case_id)
        self.state.set_check(case, item, checked)
        return case

    def checklist(self, case_id: str) -> Dict[str, object]:
        """QC checklist of a case: items, progress and whether finalizing is allowed."""
        return checklist_status(self.get(case_id).qc_checks)

    def finalize_qc(self, case_id: str) -> CaseRecord:
        case = self.get(case_id)
        self.state.finalize_qc(case)
        return case

    def render_xml(self, case_id: str, timestamp: Optional[datetime] = None) -> str:
        return self.exporter.render(self._exportable(case_id), timestamp)

    def export(self, case_id: str, directory: Optional[Path] = None) -> Path:
        record = self._exportable(case_id)
        target = Path(directory or settings.output_dir) / self.exporter.default_filename(record)
        return self.exporter.export(record, target)

    def _exportable(self, case_id: str) -> ExtractedMetadata:
        case = self.get(case_id)
        if case.status != CaseStatus.SUCCESS or case.extracted is None:
            raise InvalidTransition(case, "export")
        if case.verification_status.is_blocking and not case.is_overridden:
            raise FinalizationBlocked(case)
        return case.extracted

    async def chat(self, case_id: str, history: List[Dict[str, str]], message: str) -> str:
        return await self.invoker.chat(history, self.get(case_id).extracted, message)

    # ------------------------------------------------------------------
    # Statistics and archive

    def stats(self) -> SessionStats:
        return SessionStats.from_cases(
            self.cases.values(),
            started_at=self.scheduler.started_at,
            completed_at=self.scheduler.completed_at,
        )

    async def reset(self) -> Optional[HistoricalSession]:
        """Archive the current cases (if any) and start over."""
        await self.scheduler.cancel_all()
        archived = None
        if self.cases:
            now = datetime.now()
            archived = HistoricalSession.capture(session_id_for(now), now, list(self.cases.values()))
            self.history.append(archived)
        self.cases.clear()
        self.scheduler.reset()
        self.started_at = datetime.now()
        if archived:
            logger.info(f"Session reset; archived as {archived.session_id}")
        else:
            logger.info("Session reset; nothing to archive")
        return archived

    def load_history(self) -> List[HistoricalSession]:
        return self.history.load_all()
