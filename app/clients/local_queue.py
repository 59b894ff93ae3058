"""SQLite-backed queue holding analysis jobs for the background worker."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

_PRIORITY_RANK = {"high": 0, "normal": 1, "low": 2}


class SQLiteQueueClient:
    """Persist job payloads in a SQLite table for later processing."""

    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path)
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS analysis_job_queue (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    priority INTEGER NOT NULL DEFAULT 1,
                    payload TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )
        conn.close()

    def enqueue_analysis_request(
        self, payload: Dict[str, Any], *, priority: str = "normal"
    ) -> None:
        message_json = json.dumps(payload)
        created_at = datetime.now(timezone.utc).isoformat()
        rank = _PRIORITY_RANK.get(priority, _PRIORITY_RANK["normal"])
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO analysis_job_queue (priority, payload, created_at)
                VALUES (?, ?, ?)
                """,
                (rank, message_json, created_at),
            )
        conn.close()

    def dequeue_analysis_request(self) -> Dict[str, Any] | None:
        """Pop the highest-priority job, oldest first within a priority."""
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT id, payload FROM analysis_job_queue
                ORDER BY priority ASC, id ASC LIMIT 1
                """
            ).fetchone()
            if row:
                conn.execute(
                    "DELETE FROM analysis_job_queue WHERE id = ?",
                    (row["id"],),
                )
        conn.close()
        if not row:
            return None
        return json.loads(row["payload"])

    def pending_count(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) AS total FROM analysis_job_queue").fetchone()
        conn.close()
        return int(row["total"])


__all__ = ["SQLiteQueueClient"]
