"""Case records, their lifecycle and grouping of input files into cases."""

from .checklist import CRITICAL_ITEMS, QC_CHECKLIST, ChecklistItem
from .grouping import group_files_into_cases, scan_directory
from .models import (
    CaseFiles,
    CaseRecord,
    CaseStatus,
    CaseTiming,
    HistoricalSession,
    OverrideRecord,
    SessionAggregate,
)
from .state import CaseStateMachine, ChecklistIncomplete, FinalizationBlocked, InvalidTransition

__all__ = [
    "CaseFiles",
    "CaseRecord",
    "CaseStatus",
    "CaseTiming",
    "HistoricalSession",
    "OverrideRecord",
    "SessionAggregate",
    "CaseStateMachine",
    "InvalidTransition",
    "FinalizationBlocked",
    "ChecklistIncomplete",
    "ChecklistItem",
    "QC_CHECKLIST",
    "CRITICAL_ITEMS",
    "group_files_into_cases",
    "scan_directory",
]
