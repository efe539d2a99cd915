"""Progress statistics for a processing session."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Iterable, Optional

from rich.console import Console
from rich.table import Table

from ..cases.models import CaseRecord, CaseStatus


@dataclass
class SessionStats:
    """
    Statistics about the cases of a session.

    Attributes:
        total: Number of cases
        idle: Cases not yet processed
        processing: Cases currently in flight
        completed: Cases in Success
        failed: Cases in Error
        edited: Successful cases with a manual correction
        finalized: Successful cases whose QC was finalized
        blocked: Successful cases waiting for a verification override
        avg_extraction_seconds: Mean extraction duration of finished cases
        avg_qc_seconds: Mean QC duration of finalized cases
    """
    total: int = 0
    idle: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    edited: int = 0
    finalized: int = 0
    blocked: int = 0

    avg_extraction_seconds: float = 0.0
    avg_qc_seconds: float = 0.0

    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_cases(
        cls,
        cases: Iterable[CaseRecord],
        started_at: Optional[datetime] = None,
        completed_at: Optional[datetime] = None,
    ) -> "SessionStats":
        cases = list(cases)
        successes = [c for c in cases if c.status == CaseStatus.SUCCESS]
        extraction = [c.timing.extraction_duration for c in cases if c.timing.extraction_duration is not None]
        qc = [c.timing.qc_duration for c in cases if c.timing.qc_duration is not None]
        return cls(
            total=len(cases),
            idle=len([c for c in cases if c.status == CaseStatus.IDLE]),
            processing=len([c for c in cases if c.status == CaseStatus.PROCESSING]),
            completed=len(successes),
            failed=len([c for c in cases if c.status == CaseStatus.ERROR]),
            edited=len([c for c in successes if c.is_edited]),
            finalized=len([c for c in successes if c.is_finalized]),
            blocked=len(
                [c for c in successes if c.verification_status.is_blocking and not c.is_overridden]
            ),
            avg_extraction_seconds=sum(extraction) / len(extraction) if extraction else 0.0,
            avg_qc_seconds=sum(qc) / len(qc) if qc else 0.0,
            started_at=started_at,
            completed_at=completed_at,
        )

    def elapsed_time(self) -> timedelta:
        """Time elapsed since the first enqueue."""
        if not self.started_at:
            return timedelta(0)
        end = self.completed_at or datetime.now()
        return end - self.started_at

    def completion_percentage(self) -> float:
        if self.total == 0:
            return 0.0
        return (self.completed + self.failed) / self.total * 100

    def to_dict(self) -> Dict[str, float]:
        return {
            "total": self.total,
            "completed": self.completed,
            "failed": self.failed,
            "processing": self.processing,
            "idle": self.idle,
            "edited": self.edited,
            "finalized": self.finalized,
            "blocked": self.blocked,
            "avgExtractionSeconds": round(self.avg_extraction_seconds, 3),
            "avgQcSeconds": round(self.avg_qc_seconds, 3),
        }


def print_summary(stats: SessionStats, console: Optional[Console] = None) -> None:
    """Print a rich summary table of ``stats``."""
    console = console or Console()
    table = Table(title="Extraction Session Summary", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="magenta")

    table.add_row("Total Cases", str(stats.total))
    table.add_row("Idle", str(stats.idle))
    table.add_row("Processing", str(stats.processing))
    table.add_row("Success", str(stats.completed))
    table.add_row("Error", str(stats.failed))
    table.add_row("", "")
    table.add_row("Awaiting Override", str(stats.blocked))
    table.add_row("Edited", str(stats.edited))
    table.add_row("QC Finalized", str(stats.finalized))
    table.add_row("", "")
    table.add_row("Avg Extraction", f"{stats.avg_extraction_seconds:.1f}s")
    table.add_row("Avg QC", f"{stats.avg_qc_seconds:.1f}s")
    table.add_row("Elapsed Time", str(stats.elapsed_time()).split(".")[0])
    table.add_row("Progress", f"{stats.completion_percentage():.1f}%")

    console.print(table)
