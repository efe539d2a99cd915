"""Local persistence."""

from .history import HISTORY_KEY, HistoryStore

__all__ = ["HISTORY_KEY", "HistoryStore"]
