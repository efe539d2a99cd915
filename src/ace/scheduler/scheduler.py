"""Bounded-concurrency processing of cases through the extraction invoker."""

import asyncio
from datetime import datetime
from typing import Callable, Dict, List, Optional

from ..cases.models import CaseRecord, CaseStatus
from ..cases.state import CaseStateMachine, InvalidTransition
from ..config.settings import settings
from ..extraction.errors import ErrorHandler
from ..extraction.invoker import ExtractionInvoker
from ..utils.logging import case_logger, get_logger
from .queue import CaseQueue

logger = get_logger(__name__)


class ProcessingScheduler:
    """
    Drain queued cases through the invoker, at most ``limit`` at a time.

    Cases start in FIFO order; completion order is unconstrained. Every
    start goes through :meth:`_start_next`, which is called from exactly
    two places: after an enqueue and after a case finishes. It runs
    without awaiting, so a completion releases its slot and claims the
    next case in one indivisible step.

    A failure of one case (including an unexpected exception) is turned
    into an Error transition and never stops the queue.

    The run is complete when nothing is queued, nothing is in flight and
    at least one case reached Success or Error since the scheduler was
    created or last reset.

    Example:
        >>> scheduler = ProcessingScheduler(invoker, limit=2)
        >>> for case in cases:
        ...     scheduler.enqueue(case)
        >>> await scheduler.wait_until_idle()
    """

    def __init__(
        self,
        invoker: ExtractionInvoker,
        state_machine: Optional[CaseStateMachine] = None,
        limit: Optional[int] = None,
        error_handler: Optional[ErrorHandler] = None,
    ):
        self.invoker = invoker
        self.state = state_machine or CaseStateMachine()
        self.queue = CaseQueue(limit or settings.concurrency_limit)
        self.error_handler = error_handler or ErrorHandler()
        self._tasks: Dict[str, asyncio.Task] = {}
        self._finished = asyncio.Event()
        self._outcomes = 0
        self._listeners: List[Callable[[], None]] = []
        self.started_at: Optional[datetime] = None
        self.completed_at: Optional[datetime] = None

    @property
    def limit(self) -> int:
        return self.queue.limit

    @property
    def in_flight(self) -> int:
        return len(self.queue.in_flight)

    @property
    def is_complete(self) -> bool:
        return self.queue.is_drained() and self._outcomes > 0

    def on_complete(self, callback: Callable[[], None]) -> None:
        """Register a callback fired each time the run becomes complete."""
        self._listeners.append(callback)

    def enqueue(self, case: CaseRecord) -> bool:
        """Queue ``case`` and start it immediately if a slot is free."""
        if case.status == CaseStatus.PROCESSING:
            case_logger(logger, case.case_id).warning("already processing; ignoring enqueue")
            return False
        if not self.queue.push(case):
            return False
        if self.started_at is None or self.completed_at is not None:
            self.started_at = datetime.now()
            self.completed_at = None
        self._finished.clear()
        case_logger(logger, case.case_id).info(f"enqueued (queued={len(self.queue)}, in_flight={self.in_flight})")
        self._start_next()
        return True

    def _start_next(self) -> None:
        while self.queue.has_capacity():
            case = self.queue.pop()
            if case is None:
                break
            try:
                self.state.start(case)
            except InvalidTransition as e:
                case_logger(logger, case.case_id).warning(f"skipped: {e}")
                self.queue.release(case.case_id)
                continue
            self._tasks[case.case_id] = asyncio.create_task(self._run(case), name=f"extract-{case.case_id}")

    async def _run(self, case: CaseRecord) -> None:
        try:
            record = await self.invoker.extract(case)
        except asyncio.CancelledError:
            self.state.cancel(case)
            raise
        except Exception as e:
            kind = self.error_handler.classify_error(e)
            case_logger(logger, case.case_id).error(f"extraction failed ({kind.value}): {e}", exc_info=True)
            self.state.fail(case, self.error_handler.describe(e), kind.value)
            self._outcomes += 1
        else:
            self.state.succeed(case, record)
            self._outcomes += 1
        finally:
            self._complete(case)

    def _complete(self, case: CaseRecord) -> None:
        self._tasks.pop(case.case_id, None)
        self.queue.release(case.case_id)
        self._start_next()

        if self.is_complete and not self._finished.is_set():
            self.completed_at = datetime.now()
            self._finished.set()
            logger.info(f"Processing run complete after {self._outcomes} outcome(s)")
            for callback in self._listeners:
                callback()
        elif self.queue.is_drained():
            # Everything was cancelled; nothing to wait for.
            self._finished.set()

    async def cancel(self, case_id: str) -> bool:
        """Remove a queued case, or cancel an in-flight one back to Idle."""
        if self.queue.remove(case_id):
            case_logger(logger, case_id).info("removed from queue")
            if self.queue.is_drained():
                self._finished.set()
            return True

        task = self._tasks.get(case_id)
        if task is None:
            return False
        case = self.queue.cases[case_id]
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        if case_id in self.queue.in_flight:
            # Cancelled before its first step ran, so _run never cleaned up.
            self.state.cancel(case)
            self._complete(case)
        return True

    async def cancel_all(self) -> None:
        for case_id in list(self.queue.pending):
            self.queue.remove(case_id)
        for case_id in list(self._tasks):
            await self.cancel(case_id)
        self._finished.set()

    async def wait_until_idle(self) -> None:
        """Block until nothing is queued or in flight."""
        if self.queue.is_drained():
            return
        await self._finished.wait()

    def reset(self) -> None:
        """Forget run statistics. Only valid while drained."""
        if not self.queue.is_drained():
            raise RuntimeError("Cannot reset a scheduler with queued or in-flight cases")
        self._outcomes = 0
        self.queue.peak_in_flight = 0
        self.started_at = None
        self.completed_at = None
        self._finished.clear()
