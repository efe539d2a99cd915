"""FIFO queue of case ids plus the in-flight counter."""

from collections import deque
from typing import Deque, Dict, List, Optional, Set

from ..cases.models import CaseRecord
from ..utils.logging import get_logger

logger = get_logger(__name__)


class CaseQueue:
    """Pending cases in enqueue order and the set of cases in flight.

    Methods are synchronous and never yield to the event loop, so a
    ``release`` followed by ``pop`` inside one call frame cannot be
    interleaved with another completion.
    """

    def __init__(self, limit: int):
        if limit < 1:
            raise ValueError("Concurrency limit must be at least 1")
        self.limit = limit
        self.cases: Dict[str, CaseRecord] = {}
        self.pending: Deque[str] = deque()
        self.in_flight: Set[str] = set()
        self.peak_in_flight = 0

    def push(self, case: CaseRecord) -> bool:
        """Append ``case`` to the back. Returns False if it is already queued or running."""
        if self.contains(case.case_id):
            logger.warning(f"Case {case.case_id} is already queued or in flight; ignoring enqueue")
            return False
        self.cases[case.case_id] = case
        self.pending.append(case.case_id)
        return True

    def has_capacity(self) -> bool:
        return len(self.in_flight) < self.limit

    def pop(self) -> Optional[CaseRecord]:
        """Move the front case into flight, if capacity allows."""
        if not self.pending or not self.has_capacity():
            return None
        case_id = self.pending.popleft()
        self.in_flight.add(case_id)
        self.peak_in_flight = max(self.peak_in_flight, len(self.in_flight))
        return self.cases[case_id]

    def release(self, case_id: str) -> None:
        self.in_flight.discard(case_id)
        if case_id not in self.pending:
            self.cases.pop(case_id, None)

    def remove(self, case_id: str) -> bool:
        """Drop a case that has not started yet."""
        if case_id not in self.pending:
            return False
        self.pending.remove(case_id)
        self.cases.pop(case_id, None)
        return True

    def contains(self, case_id: str) -> bool:
        return case_id in self.in_flight or case_id in self.pending

    def is_drained(self) -> bool:
        return not self.pending and not self.in_flight

    def snapshot(self) -> Dict[str, List[str]]:
        return {"pending": list(self.pending), "in_flight": sorted(self.in_flight)}

    def __len__(self) -> int:
        return len(self.pending)
