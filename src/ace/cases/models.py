"""Case records: one unit of work per paper, plus session archive records."""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple

from ..core.models import ExtractedMetadata, SourceKind, VerificationStatus
from .checklist import ChecklistItem, missing_critical


class CaseStatus(Enum):
    """Case lifecycle states."""
    IDLE = "idle"
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class CaseFiles:
    """Input files of a case. Replaced only by creating a new case."""

    pdf: Optional[Path] = None
    html: Optional[Path] = None
    scrape: Optional[Path] = None
    api: Optional[Path] = None

    def get(self, kind: SourceKind) -> Optional[Path]:
        return getattr(self, kind.value)

    def present(self) -> List[SourceKind]:
        return [kind for kind in SourceKind if self.get(kind) is not None]

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {kind.value: str(self.get(kind)) if self.get(kind) else None for kind in SourceKind}

    @classmethod
    def from_dict(cls, data: Dict[str, Optional[str]]) -> "CaseFiles":
        return cls(**{kind.value: Path(data[kind.value]) if data.get(kind.value) else None for kind in SourceKind})


@dataclass
class CaseTiming:
    """Extraction and QC timestamps. Durations are derived on read."""

    extraction_start: Optional[datetime] = None
    extraction_end: Optional[datetime] = None
    qc_start: Optional[datetime] = None
    qc_end: Optional[datetime] = None

    @property
    def extraction_duration(self) -> Optional[float]:
        """Seconds spent in extraction, once it finished."""
        if self.extraction_start and self.extraction_end:
            return (self.extraction_end - self.extraction_start).total_seconds()
        return None

    @property
    def qc_duration(self) -> Optional[float]:
        """Seconds of human review, once QC was finalized."""
        if self.qc_start and self.qc_end:
            return (self.qc_end - self.qc_start).total_seconds()
        return None

    def is_empty(self) -> bool:
        return not any((self.extraction_start, self.extraction_end, self.qc_start, self.qc_end))

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "extraction_start": _iso(self.extraction_start),
            "extraction_end": _iso(self.extraction_end),
            "qc_start": _iso(self.qc_start),
            "qc_end": _iso(self.qc_end),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Optional[str]]) -> "CaseTiming":
        return cls(
            extraction_start=_parse(data.get("extraction_start")),
            extraction_end=_parse(data.get("extraction_end")),
            qc_start=_parse(data.get("qc_start")),
            qc_end=_parse(data.get("qc_end")),
        )


@dataclass(frozen=True)
class OverrideRecord:
    """Audit entry: an operator chose to proceed despite a blocking verification."""

    operator: str
    reason: str
    verification_status: VerificationStatus
    timestamp: datetime

    def to_dict(self) -> Dict[str, str]:
        return {
            "operator": self.operator,
            "reason": self.reason,
            "verification_status": self.verification_status.value,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> "OverrideRecord":
        return cls(
            operator=data["operator"],
            reason=data["reason"],
            verification_status=VerificationStatus(data["verification_status"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )


@dataclass
class CaseRecord:
    """A single paper moving through extraction and review.

    Status, timing and the extracted record change only through
    :class:`ace.cases.state.CaseStateMachine`.
    """

    # Identity
    case_id: str
    display_name: str
    files: CaseFiles = field(default_factory=CaseFiles)
    manual_id: Optional[str] = None

    # State
    status: CaseStatus = CaseStatus.IDLE
    extracted: Optional[ExtractedMetadata] = None
    error_message: Optional[str] = None
    error_kind: Optional[str] = None
    timing: CaseTiming = field(default_factory=CaseTiming)

    # Review
    is_edited: bool = False
    overrides: List[OverrideRecord] = field(default_factory=list)
    qc_checks: Set[ChecklistItem] = field(default_factory=set)
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def verification_status(self) -> Optional[VerificationStatus]:
        if self.extracted is None:
            return None
        return self.extracted.verification.status

    @property
    def is_overridden(self) -> bool:
        """An override was recorded against the current extraction result.

        Overrides from earlier runs stay in ``overrides`` for audit but
        do not carry over to a re-extracted record.
        """
        end = self.timing.extraction_end
        if end is None:
            return False
        return any(o.timestamp >= end for o in self.overrides)

    @property
    def is_finalized(self) -> bool:
        return self.timing.qc_end is not None

    @property
    def checklist_complete(self) -> bool:
        """Every critical QC check is ticked."""
        return not missing_critical(self.qc_checks)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict for persistence."""
        return {
            "case_id": self.case_id,
            "display_name": self.display_name,
            "files": self.files.to_dict(),
            "manual_id": self.manual_id,
            "status": self.status.value,
            "extracted": self.extracted.model_dump(mode="json") if self.extracted else None,
            "error_message": self.error_message,
            "error_kind": self.error_kind,
            "timing": self.timing.to_dict(),
            "is_edited": self.is_edited,
            "overrides": [o.to_dict() for o in self.overrides],
            "qc_checks": sorted(item.value for item in self.qc_checks),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CaseRecord":
        """Deserialize from dict."""
        extracted = data.get("extracted")
        return cls(
            case_id=data["case_id"],
            display_name=data.get("display_name", data["case_id"]),
            files=CaseFiles.from_dict(data.get("files", {})),
            manual_id=data.get("manual_id"),
            status=CaseStatus(data["status"]),
            extracted=ExtractedMetadata.model_validate(extracted) if extracted else None,
            error_message=data.get("error_message"),
            error_kind=data.get("error_kind"),
            timing=CaseTiming.from_dict(data.get("timing", {})),
            is_edited=data.get("is_edited", False),
            overrides=[OverrideRecord.from_dict(o) for o in data.get("overrides", [])],
            qc_checks={ChecklistItem(v) for v in data.get("qc_checks", [])},
            created_at=datetime.fromisoformat(data["created_at"]) if data.get("created_at") else datetime.now(),
        )


@dataclass(frozen=True)
class SessionAggregate:
    total: int = 0
    completed: int = 0
    avg_duration: float = 0.0

    @classmethod
    def from_cases(cls, cases: List[CaseRecord]) -> "SessionAggregate":
        durations = [c.timing.extraction_duration for c in cases if c.timing.extraction_duration is not None]
        return cls(
            total=len(cases),
            completed=len([c for c in cases if c.status == CaseStatus.SUCCESS]),
            avg_duration=sum(durations) / (len(durations) or 1),
        )


@dataclass(frozen=True)
class HistoricalSession:
    """Archived session, written once at reset and never mutated."""

    session_id: str
    timestamp: datetime
    cases: Tuple[CaseRecord, ...]
    stats: SessionAggregate

    @classmethod
    def capture(cls, session_id: str, timestamp: datetime, cases: List[CaseRecord]) -> "HistoricalSession":
        snapshot = tuple(copy.deepcopy(c) for c in cases)
        return cls(
            session_id=session_id,
            timestamp=timestamp,
            cases=snapshot,
            stats=SessionAggregate.from_cases(list(snapshot)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "timestamp": self.timestamp.isoformat(),
            "cases": [c.to_dict() for c in self.cases],
            "stats": {
                "total": self.stats.total,
                "completed": self.stats.completed,
                "avg_duration": self.stats.avg_duration,
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoricalSession":
        stats = data.get("stats", {})
        return cls(
            session_id=data["session_id"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            cases=tuple(CaseRecord.from_dict(c) for c in data.get("cases", [])),
            stats=SessionAggregate(
                total=stats.get("total", 0),
                completed=stats.get("completed", 0),
                avg_duration=stats.get("avg_duration", 0.0),
            ),
        )


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None
