"""Bounded-concurrency scheduling of case extractions."""

from .progress import SessionStats, print_summary
from .queue import CaseQueue
from .scheduler import ProcessingScheduler

__all__ = ["CaseQueue", "ProcessingScheduler", "SessionStats", "print_summary"]
