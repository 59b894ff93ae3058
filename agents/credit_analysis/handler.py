"""
Job handler that runs one queued analysis through the orchestrator.
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Optional

from agents.credit_analysis.models import AnalysisJobPayload
from app.clients.sqlite_store import SQLiteAnalysisStore
from app.core.errors import InputValidationError, PersistenceError, PipelineError
from app.schemas.analysis import AnalysisRequest, AnalysisStatus
from app.services.orchestrator import AnalysisOrchestrator, AnalysisOutcome

logger = logging.getLogger(__name__)


def build_request(payload: AnalysisJobPayload) -> AnalysisRequest:
    """Rebuild the pipeline request from a queued payload."""
    content: Optional[bytes] = None
    encoded = payload.get("content_b64")
    if encoded is not None:
        try:
            content = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise InputValidationError(
                "Queued document is not valid base64.", stage="queue", cause=exc
            ) from exc
    return AnalysisRequest(
        user_id=payload["user_id"],
        media_type=payload.get("media_type"),
        content=content,
        text=payload.get("text"),
        file_name=payload.get("file_name"),
        cache_key=payload.get("cache_key"),
        priority=payload.get("priority") or "normal",
    )


async def process_job(
    payload: AnalysisJobPayload,
    *,
    orchestrator: AnalysisOrchestrator,
    store: SQLiteAnalysisStore,
) -> Optional[AnalysisOutcome]:
    """Execute the pipeline for an individual job."""
    analysis_id = payload["analysis_id"]
    log_extra = {"analysis_id": analysis_id, "user_id": payload["user_id"]}
    logger.info("Starting queued analysis job", extra=log_extra)

    try:
        request = build_request(payload)
        outcome = await orchestrator.run(
            request,
            analysis_id=analysis_id,
            timeout_budget=payload.get("timeout_budget"),
        )
    except PipelineError as exc:
        # Configuration and input errors are final for this job; the orchestrator
        # has already recorded them when it got far enough to do so.
        logger.error("Queued analysis job rejected: %s", exc.message, extra=log_extra)
        _mark_failed(store, analysis_id, exc.message)
        return None
    except Exception as exc:
        logger.exception("Unexpected failure while running analysis job", extra=log_extra)
        _mark_failed(store, analysis_id, str(exc))
        raise

    logger.info(
        "Completed queued analysis job with status %s",
        outcome.status.value,
        extra=log_extra,
    )
    return outcome


def _mark_failed(store: SQLiteAnalysisStore, analysis_id: str, error: str) -> None:
    try:
        store.update_analysis_status(
            analysis_id, AnalysisStatus.ERROR, error_message=error
        )
    except PersistenceError:
        logger.exception(
            "Could not record job failure", extra={"analysis_id": analysis_id}
        )


__all__ = ["build_request", "process_job"]
