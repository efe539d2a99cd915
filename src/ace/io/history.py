"""Append-only archive of past sessions in a SQLite key-value table."""

import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from ..cases.models import HistoricalSession
from ..config.settings import settings
from ..utils.logging import get_logger

logger = get_logger(__name__)

HISTORY_KEY = "ace_history"


class HistoryStore:
    """
    Session archive persisted as one JSON list under a single key.

    Reads never raise on bad data: a corrupted value or an invalid
    record yields an empty history and an error in the log.
    """

    def __init__(self, db_path: Optional[Path] = None) -> None:
        self.db_path = Path(db_path or settings.history_db)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = self._open()

    def _open(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        try:
            self._init_schema(conn)
        except sqlite3.DatabaseError as e:
            conn.close()
            corrupt = self.db_path.with_name(self.db_path.name + ".corrupt")
            logger.error(f"History database {self.db_path} is unreadable ({e}); moving it to {corrupt}")
            self.db_path.replace(corrupt)
            conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._init_schema(conn)
        return conn

    @staticmethod
    def _init_schema(conn: sqlite3.Connection) -> None:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
            """
        )
        conn.commit()

    def get(self, key: str) -> Optional[str]:
        try:
            row = self.conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        except sqlite3.DatabaseError as e:
            logger.error(f"Could not read {key!r} from {self.db_path}: {e}")
            return None
        return row[0] if row else None

    def put(self, key: str, value: str) -> None:
        self.conn.execute(
            "INSERT OR REPLACE INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)",
            (key, value, datetime.now().isoformat()),
        )
        self.conn.commit()

    def load_all(self) -> List[HistoricalSession]:
        """Archived sessions, newest first."""
        raw = self.get(HISTORY_KEY)
        if raw is None:
            return []
        try:
            entries = json.loads(raw)
            if not isinstance(entries, list):
                raise ValueError(f"expected a list, found {type(entries).__name__}")
            return [HistoricalSession.from_dict(entry) for entry in entries]
        except (ValueError, KeyError, TypeError, AttributeError, ValidationError) as e:
            logger.error(f"Discarding corrupted session history: {e}")
            return []

    def append(self, session: HistoricalSession) -> None:
        """Prepend ``session`` to the archive."""
        sessions = self.load_all()
        payload = [session.to_dict()] + [s.to_dict() for s in sessions]
        self.put(HISTORY_KEY, json.dumps(payload))
        logger.info(f"Archived session {session.session_id} ({session.stats.total} case(s))")

    def clear(self) -> None:
        self.conn.execute("DELETE FROM kv_store WHERE key = ?", (HISTORY_KEY,))
        self.conn.commit()

    def close(self) -> None:
        self.conn.close()
