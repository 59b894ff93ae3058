"""
Service helpers for enqueuing analysis jobs.
"""

from __future__ import annotations

import base64
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from app.clients.local_queue import SQLiteQueueClient
from app.clients.sqlite_store import SQLiteAnalysisStore
from app.schemas.analysis import AnalysisRecord, AnalysisRequest, AnalysisStatus
from app.services.extraction import ExtractionStage


class AnalysisQueueService:
    """Queue asynchronous analysis jobs and track their lifecycle."""

    def __init__(
        self,
        queue_client: SQLiteQueueClient,
        store: SQLiteAnalysisStore,
        extraction: ExtractionStage,
    ) -> None:
        self._queue = queue_client
        self._store = store
        self._extraction = extraction

    def enqueue_analysis(
        self, *, request: AnalysisRequest, timeout_budget: Optional[float] = None
    ) -> str:
        """Create a queued Analysis record and enqueue the job."""
        # Requests that can never succeed are rejected now, not by the worker.
        prepared = self._extraction.validate(request)

        analysis_id = str(uuid.uuid4())
        now = datetime.now(tz=timezone.utc)
        self._store.create_analysis(
            AnalysisRecord(
                id=analysis_id,
                user_id=request.user_id,
                status=AnalysisStatus.QUEUED,
                file_name=request.file_name,
                media_type=prepared.media_type,
                created_at=now,
                updated_at=now,
            )
        )
        payload = self._build_message_payload(
            analysis_id=analysis_id,
            request=request,
            timeout_budget=timeout_budget,
        )
        self._queue.enqueue_analysis_request(payload, priority=request.priority)
        return analysis_id

    @staticmethod
    def _build_message_payload(
        *,
        analysis_id: str,
        request: AnalysisRequest,
        timeout_budget: Optional[float],
    ) -> Dict[str, Any]:
        """Construct the message payload for the analysis worker."""
        return {
            "analysis_id": analysis_id,
            "user_id": request.user_id,
            "media_type": request.media_type,
            "text": request.text,
            "content_b64": base64.b64encode(request.content).decode("ascii")
            if request.content is not None
            else None,
            "file_name": request.file_name,
            "cache_key": request.cache_key,
            "priority": request.priority,
            "timeout_budget": timeout_budget,
            "requested_at": datetime.now(tz=timezone.utc).isoformat(),
        }


__all__ = ["AnalysisQueueService"]
