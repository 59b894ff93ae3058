"""Local worker that processes queued analysis jobs from SQLite."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from agents.credit_analysis.handler import process_job
from agents.credit_analysis.models import AnalysisJobPayload
from app.clients.local_queue import SQLiteQueueClient
from app.clients.sqlite_store import SQLiteAnalysisStore
from app.core.config import get_settings
from app.core.logging import configure_logging
from app.dependencies.clients import (
    get_analysis_store,
    get_orchestrator,
    get_queue_client,
)
from app.services.orchestrator import AnalysisOrchestrator

logger = logging.getLogger(__name__)


class AnalysisQueueWorker:
    """Poll the SQLite queue and execute analysis jobs in small concurrent batches."""

    def __init__(
        self,
        queue_client: SQLiteQueueClient,
        orchestrator: AnalysisOrchestrator,
        store: SQLiteAnalysisStore,
        *,
        poll_interval_seconds: float = 2.0,
        concurrency: int = 2,
    ) -> None:
        self._queue = queue_client
        self._orchestrator = orchestrator
        self._store = store
        self._poll_interval = poll_interval_seconds
        self._concurrency = max(1, concurrency)

    async def run_forever(self) -> None:
        while True:
            processed = await self.run_once()
            if not processed:
                await asyncio.sleep(self._poll_interval)

    async def run_once(self) -> int:
        """Process up to ``concurrency`` queued jobs; return how many were taken."""
        payloads: list[AnalysisJobPayload] = []
        while len(payloads) < self._concurrency:
            payload = self._dequeue()
            if payload is None:
                break
            payloads.append(payload)
        if not payloads:
            return 0

        await asyncio.gather(*(self._process(payload) for payload in payloads))
        return len(payloads)

    def _dequeue(self) -> Optional[AnalysisJobPayload]:
        message = self._queue.dequeue_analysis_request()
        if message is None:
            return None
        return message  # type: ignore[return-value]

    async def _process(self, payload: AnalysisJobPayload) -> None:
        analysis_id = payload.get("analysis_id")
        if not analysis_id or not payload.get("user_id"):
            logger.error("Discarding malformed queue message: %s", sorted(payload))
            return
        logger.info("Dequeued analysis job", extra={"analysis_id": analysis_id})
        try:
            await process_job(payload, orchestrator=self._orchestrator, store=self._store)
        except Exception:  # pragma: no cover - already logged downstream
            logger.exception(
                "Failed processing analysis job", extra={"analysis_id": analysis_id}
            )


async def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    worker = AnalysisQueueWorker(
        queue_client=get_queue_client(),
        orchestrator=get_orchestrator(),
        store=get_analysis_store(),
        poll_interval_seconds=settings.pipeline.worker_poll_interval_seconds,
        concurrency=settings.pipeline.worker_concurrency,
    )
    logger.info(
        "Analysis queue worker started (concurrency=%d)",
        settings.pipeline.worker_concurrency,
    )
    await worker.run_forever()


if __name__ == "__main__":  # pragma: no cover - manual execution path
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Analysis queue worker stopped")
