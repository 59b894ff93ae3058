"""SQLite-backed notification inbox used as the pipeline's notification sink."""

from __future__ import annotations

import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path

from app.schemas.analysis import NotificationRecord, Severity


class SQLiteNotificationClient:
    """Record user-facing notifications for later delivery by the front-end."""

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
                CREATE TABLE IF NOT EXISTS notifications (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    message TEXT NOT NULL,
                    severity TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )
        conn.close()

    def notify(
        self, user_id: str, title: str, message: str, severity: Severity = "info"
    ) -> NotificationRecord:
        record = NotificationRecord(
            id=str(uuid.uuid4()),
            user_id=user_id,
            title=title,
            message=message,
            severity=severity,
            created_at=datetime.now(timezone.utc),
        )
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO notifications (id, user_id, title, message, severity, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    record.id,
                    record.user_id,
                    record.title,
                    record.message,
                    record.severity,
                    record.created_at.isoformat(),
                ),
            )
        conn.close()
        return record

    def list_notifications(
        self, user_id: str, *, limit: int = 50
    ) -> list[NotificationRecord]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM notifications WHERE user_id = ?
                ORDER BY created_at DESC, rowid DESC LIMIT ?
                """,
                (user_id, limit),
            ).fetchall()
        conn.close()
        return [
            NotificationRecord(
                id=row["id"],
                user_id=row["user_id"],
                title=row["title"],
                message=row["message"],
                severity=row["severity"],
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]


__all__ = ["SQLiteNotificationClient"]
