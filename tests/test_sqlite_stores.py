try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

try:
    from ._stubs import sample_analysis
except ImportError:  # pragma: no cover - fallback for direct execution
    from _stubs import sample_analysis  # type: ignore

from datetime import datetime, timedelta, timezone

import pytest

from app.clients.local_queue import SQLiteQueueClient
from app.clients.notifications import SQLiteNotificationClient
from app.clients.sqlite_store import SQLiteAnalysisStore
from app.core.errors import PersistenceError
from app.schemas import (
    AnalysisMetrics,
    AnalysisRecord,
    AnalysisStatus,
    ChatMessage,
    CreditAnalysis,
)


def _record(analysis_id: str, user_id: str = "user-1", offset: int = 0) -> AnalysisRecord:
    created = datetime(2026, 1, 1, tzinfo=timezone.utc) + timedelta(minutes=offset)
    return AnalysisRecord(
        id=analysis_id,
        user_id=user_id,
        status=AnalysisStatus.QUEUED,
        media_type="text/plain",
        created_at=created,
        updated_at=created,
    )


def test_status_updates_write_only_supplied_fields(tmp_path) -> None:
    store = SQLiteAnalysisStore(str(tmp_path / "store.db"))
    store.create_analysis(_record("a-1"))
    result = CreditAnalysis.model_validate(sample_analysis())

    store.update_analysis_status("a-1", AnalysisStatus.ANALYZING, fingerprint="fp-1")
    store.update_analysis_status(
        "a-1",
        AnalysisStatus.COMPLETED,
        result,
        fallback=False,
        metrics=AnalysisMetrics(processing_time_ms=42, prompt_version="v1"),
        review_reasons=[],
    )

    record = store.get_analysis("a-1")
    assert record.status == AnalysisStatus.COMPLETED
    assert record.fingerprint == "fp-1"
    assert record.result == result
    assert record.metrics.processing_time_ms == 42
    assert record.media_type == "text/plain"


def test_updating_missing_analysis_raises(tmp_path) -> None:
    store = SQLiteAnalysisStore(str(tmp_path / "store.db"))
    with pytest.raises(PersistenceError):
        store.update_analysis_status("missing", AnalysisStatus.ERROR)


def test_records_are_scoped_to_their_owner(tmp_path) -> None:
    store = SQLiteAnalysisStore(str(tmp_path / "store.db"))
    store.create_analysis(_record("a-1", offset=0))
    store.create_analysis(_record("a-2", offset=5))
    store.create_analysis(_record("b-1", user_id="user-2"))

    assert store.get_analysis("a-1", user_id="user-2") is None
    assert store.get_analysis("a-1", user_id="user-1").id == "a-1"
    assert [r.id for r in store.list_analyses("user-1")] == ["a-2", "a-1"]


def test_chat_messages_keep_insertion_order(tmp_path) -> None:
    store = SQLiteAnalysisStore(str(tmp_path / "store.db"))
    store.create_analysis(_record("a-1"))
    same_instant = datetime(2026, 1, 1, tzinfo=timezone.utc)
    for index, role in enumerate(["user", "assistant", "user", "assistant"]):
        store.append_chat_message(
            ChatMessage(
                id=f"m-{index}",
                analysis_id="a-1",
                user_id="user-1",
                role=role,
                content=f"message {index}",
                created_at=same_instant,
            )
        )

    assert [m.id for m in store.list_chat_messages("a-1")] == [
        "m-0",
        "m-1",
        "m-2",
        "m-3",
    ]
    assert [m.id for m in store.list_chat_messages("a-1", limit=2)] == ["m-2", "m-3"]


def test_notifications_are_listed_newest_first(tmp_path) -> None:
    inbox = SQLiteNotificationClient(str(tmp_path / "store.db"))
    inbox.notify("user-1", "Credit Analysis Complete", "first", "success")
    inbox.notify("user-1", "Analysis Timed Out", "second", "warning")
    inbox.notify("user-2", "Credit Analysis Complete", "other", "success")

    notifications = inbox.list_notifications("user-1")
    assert [n.message for n in notifications] == ["second", "first"]
    assert notifications[0].severity == "warning"


def test_queue_serves_high_priority_first(tmp_path) -> None:
    queue = SQLiteQueueClient(str(tmp_path / "queue.db"))
    queue.enqueue_analysis_request({"analysis_id": "low"}, priority="low")
    queue.enqueue_analysis_request({"analysis_id": "normal-1"})
    queue.enqueue_analysis_request({"analysis_id": "high"}, priority="high")
    queue.enqueue_analysis_request({"analysis_id": "normal-2"})

    assert queue.pending_count() == 4
    order = [queue.dequeue_analysis_request()["analysis_id"] for _ in range(4)]
    assert order == ["high", "normal-1", "normal-2", "low"]
    assert queue.dequeue_analysis_request() is None
    assert queue.pending_count() == 0
