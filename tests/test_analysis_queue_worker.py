try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

try:
    from ._stubs import SAMPLE_REPORT, StubReasoningClient, sample_response
except ImportError:  # pragma: no cover - fallback for direct execution
    from _stubs import SAMPLE_REPORT, StubReasoningClient, sample_response  # type: ignore

import base64

import pytest

from agents.credit_analysis.handler import build_request, process_job
from agents.credit_analysis.worker import AnalysisQueueWorker
from app.clients.local_queue import SQLiteQueueClient
from app.clients.sqlite_store import SQLiteAnalysisStore
from app.core.config import PipelineSettings
from app.core.errors import InputValidationError, UnsupportedMediaTypeError
from app.schemas import AnalysisRequest, AnalysisStatus
from app.services.analysis_queue import AnalysisQueueService
from app.services.credit_analysis import CreditAnalysisStage
from app.services.extraction import ExtractionStage
from app.services.fingerprint_cache import FingerprintCache
from app.services.orchestrator import AnalysisOrchestrator


@pytest.fixture()
def pipeline(tmp_path):
    client = StubReasoningClient(sample_response())
    store = SQLiteAnalysisStore(str(tmp_path / "analyses.db"))
    queue = SQLiteQueueClient(str(tmp_path / "queue.db"))
    extraction = ExtractionStage(client)
    orchestrator = AnalysisOrchestrator(
        extraction=extraction,
        analysis=CreditAnalysisStage(client),
        store=store,
        cache=FingerprintCache(capacity=5),
        settings=PipelineSettings(timeout_safety_margin_seconds=0),
    )
    service = AnalysisQueueService(queue, store, extraction)
    return client, store, queue, service, orchestrator


def test_enqueue_creates_a_queued_record(pipeline) -> None:
    _, store, queue, service, _ = pipeline

    analysis_id = service.enqueue_analysis(
        request=AnalysisRequest(user_id="user-1", text=SAMPLE_REPORT, priority="high"),
        timeout_budget=45,
    )

    record = store.get_analysis(analysis_id, user_id="user-1")
    assert record.status == AnalysisStatus.QUEUED
    assert record.media_type == "text/plain"
    payload = queue.dequeue_analysis_request()
    assert payload["analysis_id"] == analysis_id
    assert payload["text"] == SAMPLE_REPORT
    assert payload["timeout_budget"] == 45
    assert payload["priority"] == "high"


def test_enqueue_rejects_invalid_input_up_front(pipeline) -> None:
    _, store, queue, service, _ = pipeline

    with pytest.raises(UnsupportedMediaTypeError):
        service.enqueue_analysis(
            request=AnalysisRequest(
                user_id="user-1", media_type="application/zip", content=b"PK"
            )
        )
    assert queue.pending_count() == 0
    assert store.list_analyses("user-1") == []


def test_build_request_decodes_documents() -> None:
    request = build_request(
        {
            "analysis_id": "a-1",
            "user_id": "user-1",
            "media_type": "application/pdf",
            "text": None,
            "content_b64": base64.b64encode(b"%PDF-1.7").decode("ascii"),
            "file_name": "report.pdf",
            "cache_key": None,
            "priority": "normal",
            "timeout_budget": None,
            "requested_at": "2026-01-01T00:00:00+00:00",
        }
    )
    assert request.content == b"%PDF-1.7"
    assert request.file_name == "report.pdf"


def test_build_request_rejects_corrupt_documents() -> None:
    with pytest.raises(InputValidationError):
        build_request(
            {"analysis_id": "a-1", "user_id": "user-1", "content_b64": "%%%"}  # type: ignore[typeddict-item]
        )


@pytest.mark.asyncio
async def test_worker_processes_queued_jobs(pipeline) -> None:
    client, store, queue, service, orchestrator = pipeline
    first = service.enqueue_analysis(
        request=AnalysisRequest(user_id="user-1", text=SAMPLE_REPORT)
    )
    second = service.enqueue_analysis(
        request=AnalysisRequest(user_id="user-2", text=SAMPLE_REPORT)
    )
    worker = AnalysisQueueWorker(queue, orchestrator, store, concurrency=2)

    assert await worker.run_once() == 2
    assert await worker.run_once() == 0

    for analysis_id in (first, second):
        record = store.get_analysis(analysis_id)
        assert record.status == AnalysisStatus.COMPLETED
        assert record.result.overview.score == 712
    assert client.calls == 2


@pytest.mark.asyncio
async def test_rejected_job_is_marked_as_error(pipeline) -> None:
    _, store, _, service, orchestrator = pipeline
    analysis_id = service.enqueue_analysis(
        request=AnalysisRequest(user_id="user-1", text=SAMPLE_REPORT)
    )

    outcome = await process_job(
        {
            "analysis_id": analysis_id,
            "user_id": "user-1",
            "media_type": "text/plain",
            "text": "   ",
            "content_b64": None,
            "file_name": None,
            "cache_key": None,
            "priority": "normal",
            "timeout_budget": None,
            "requested_at": "2026-01-01T00:00:00+00:00",
        },
        orchestrator=orchestrator,
        store=store,
    )

    assert outcome is None
    record = store.get_analysis(analysis_id)
    assert record.status == AnalysisStatus.ERROR
    assert record.error_message


@pytest.mark.asyncio
async def test_worker_discards_malformed_messages(pipeline) -> None:
    client, store, queue, _, orchestrator = pipeline
    queue.enqueue_analysis_request({"unexpected": True})
    worker = AnalysisQueueWorker(queue, orchestrator, store)

    assert await worker.run_once() == 1
    assert client.calls == 0
    assert queue.pending_count() == 0
