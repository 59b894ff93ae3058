"""SQLite-backed persistence for analyses and their chat history."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Optional, Sequence

from app.core.errors import PersistenceError
from app.schemas.analysis import (
    AnalysisMetrics,
    AnalysisRecord,
    AnalysisStatus,
    ChatMessage,
    CreditAnalysis,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SQLiteAnalysisStore:
    """Store Analysis records and append-only ChatMessage rows."""

    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path)
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _session(self, operation: str) -> Iterator[sqlite3.Connection]:
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise PersistenceError(
                f"Could not open analysis store for {operation}: {exc}",
                stage="persistence",
                cause=exc,
            ) from exc
        try:
            with conn:
                yield conn
        except sqlite3.Error as exc:
            raise PersistenceError(
                f"Analysis store {operation} failed: {exc}",
                stage="persistence",
                cause=exc,
            ) from exc
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self._session("schema setup") as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS analyses (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    status TEXT NOT NULL,
                    file_name TEXT,
                    media_type TEXT,
                    fingerprint TEXT,
                    result TEXT,
                    fallback INTEGER NOT NULL DEFAULT 0,
                    error_message TEXT,
                    metrics TEXT,
                    needs_review INTEGER NOT NULL DEFAULT 0,
                    review_reasons TEXT NOT NULL DEFAULT '[]',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_analyses_user ON analyses (user_id, created_at)"
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS chat_messages (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    analysis_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    role TEXT NOT NULL,
                    content TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_chat_analysis ON chat_messages (analysis_id, created_at)"
            )

    def create_analysis(self, record: AnalysisRecord) -> AnalysisRecord:
        with self._session("create_analysis") as conn:
            conn.execute(
                """
                INSERT INTO analyses (
                    id, user_id, status, file_name, media_type, fingerprint, result,
                    fallback, error_message, metrics, needs_review, review_reasons,
                    created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.id,
                    record.user_id,
                    record.status.value,
                    record.file_name,
                    record.media_type,
                    record.fingerprint,
                    _dump_result(record.result),
                    int(record.fallback),
                    record.error_message,
                    _dump_metrics(record.metrics),
                    int(record.needs_review),
                    json.dumps(record.review_reasons),
                    record.created_at.isoformat(),
                    record.updated_at.isoformat(),
                ),
            )
        return record

    def update_analysis_status(
        self,
        analysis_id: str,
        status: AnalysisStatus,
        result: Optional[CreditAnalysis] = None,
        *,
        fallback: Optional[bool] = None,
        error_message: Optional[str] = None,
        metrics: Optional[AnalysisMetrics] = None,
        fingerprint: Optional[str] = None,
        needs_review: Optional[bool] = None,
        review_reasons: Optional[list[str]] = None,
    ) -> None:
        """Move an analysis to ``status``, writing only the fields supplied."""
        assignments = ["status = ?", "updated_at = ?"]
        values: list[Any] = [status.value, utcnow().isoformat()]
        optional_columns = (
            ("result", result, _dump_result),
            ("fallback", fallback, int),
            ("error_message", error_message, None),
            ("metrics", metrics, _dump_metrics),
            ("fingerprint", fingerprint, None),
            ("needs_review", needs_review, int),
            ("review_reasons", review_reasons, json.dumps),
        )
        for column, value, encode in optional_columns:
            if value is None:
                continue
            assignments.append(f"{column} = ?")
            values.append(encode(value) if encode else value)
        values.append(analysis_id)

        with self._session("update_analysis_status") as conn:
            cursor = conn.execute(
                f"UPDATE analyses SET {', '.join(assignments)} WHERE id = ?",
                values,
            )
            if cursor.rowcount == 0:
                raise PersistenceError(
                    f"Analysis {analysis_id} does not exist.", stage="persistence"
                )

    def get_analysis(
        self, analysis_id: str, *, user_id: Optional[str] = None
    ) -> Optional[AnalysisRecord]:
        """Return the analysis, or ``None`` when missing or owned by someone else."""
        with self._session("get_analysis") as conn:
            row = conn.execute(
                "SELECT * FROM analyses WHERE id = ?", (analysis_id,)
            ).fetchone()
        if not row:
            return None
        if user_id is not None and row["user_id"] != user_id:
            return None
        return _row_to_analysis(row)

    def list_analyses(self, user_id: str, *, limit: int = 50) -> list[AnalysisRecord]:
        with self._session("list_analyses") as conn:
            rows = conn.execute(
                """
                SELECT * FROM analyses WHERE user_id = ?
                ORDER BY created_at DESC, rowid DESC LIMIT ?
                """,
                (user_id, limit),
            ).fetchall()
        return [_row_to_analysis(row) for row in rows]

    def append_chat_message(self, message: ChatMessage) -> ChatMessage:
        with self._session("append_chat_message") as conn:
            conn.execute(
                """
                INSERT INTO chat_messages (id, analysis_id, user_id, role, content, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    message.id,
                    message.analysis_id,
                    message.user_id,
                    message.role,
                    message.content,
                    message.created_at.isoformat(),
                ),
            )
        return message

    def list_chat_messages(
        self,
        analysis_id: str,
        *,
        limit: Optional[int] = None,
        roles: Optional[Sequence[str]] = None,
    ) -> list[ChatMessage]:
        """Return messages oldest first.

        ``roles`` filters rows before ``limit`` keeps the most recent ones.
        """
        where = "analysis_id = ?"
        params: list[Any] = [analysis_id]
        if roles:
            where += f" AND role IN ({', '.join('?' for _ in roles)})"
            params.extend(roles)
        with self._session("list_chat_messages") as conn:
            if limit is None:
                rows = conn.execute(
                    f"""
                    SELECT * FROM chat_messages WHERE {where}
                    ORDER BY created_at ASC, seq ASC
                    """,
                    params,
                ).fetchall()
            else:
                rows = conn.execute(
                    f"""
                    SELECT * FROM (
                        SELECT * FROM chat_messages WHERE {where}
                        ORDER BY created_at DESC, seq DESC LIMIT ?
                    ) ORDER BY created_at ASC, seq ASC
                    """,
                    [*params, limit],
                ).fetchall()
        return [
            ChatMessage(
                id=row["id"],
                analysis_id=row["analysis_id"],
                user_id=row["user_id"],
                role=row["role"],
                content=row["content"],
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]


def _dump_result(result: Optional[CreditAnalysis]) -> Optional[str]:
    if result is None:
        return None
    return json.dumps(result.to_payload())


def _dump_metrics(metrics: Optional[AnalysisMetrics]) -> Optional[str]:
    if metrics is None:
        return None
    return metrics.model_dump_json()


def _row_to_analysis(row: sqlite3.Row) -> AnalysisRecord:
    return AnalysisRecord(
        id=row["id"],
        user_id=row["user_id"],
        status=AnalysisStatus(row["status"]),
        file_name=row["file_name"],
        media_type=row["media_type"],
        fingerprint=row["fingerprint"],
        result=(
            CreditAnalysis.model_validate(json.loads(row["result"]))
            if row["result"]
            else None
        ),
        fallback=bool(row["fallback"]),
        error_message=row["error_message"],
        metrics=(
            AnalysisMetrics.model_validate_json(row["metrics"])
            if row["metrics"]
            else None
        ),
        needs_review=bool(row["needs_review"]),
        review_reasons=json.loads(row["review_reasons"] or "[]"),
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


__all__ = ["SQLiteAnalysisStore", "utcnow"]
