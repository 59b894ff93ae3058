"""
End-to-end orchestration of a credit report analysis.

check cache -> extract -> analyze -> validate -> persist -> notify

Every valid request ends in a usable result. Recoverable stage failures are
replaced by a labeled fallback; configuration errors, input errors, and
cancellation propagate to the caller. Persistence and notification failures
are logged and never prevent the computed result from being returned.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol

from app.clients.sqlite_store import SQLiteAnalysisStore, utcnow
from app.core.config import PipelineSettings
from app.core.errors import ConfigurationError, InputValidationError, PersistenceError
from app.schemas.analysis import (
    AnalysisMetrics,
    AnalysisRecord,
    AnalysisRequest,
    AnalysisStatus,
    CreditAnalysis,
)
from app.services.analysis_graph import PipelineStages, create_pipeline_graph
from app.services.credit_analysis import CreditAnalysisStage
from app.services.extraction import ExtractionStage, PreparedInput
from app.services.fallback import FallbackGenerator, FallbackReason
from app.services.fingerprint_cache import FingerprintCache, compute_fingerprint
from app.services.retry import Deadline, RetryPolicy, RetryTimeoutController

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify(self, user_id: str, title: str, message: str, severity: str) -> Any: ...


@dataclass(slots=True)
class CachedAnalysis:
    """What the fingerprint cache remembers about a finished computation."""

    result: CreditAnalysis
    needs_review: bool = False
    review_reasons: list[str] = field(default_factory=list)
    truncated: bool = False


@dataclass(slots=True)
class AnalysisOutcome:
    analysis_id: str
    status: AnalysisStatus
    result: CreditAnalysis
    metrics: AnalysisMetrics
    needs_review: bool = False
    review_reasons: list[str] = field(default_factory=list)
    error_message: Optional[str] = None

    @property
    def fallback(self) -> bool:
        return self.result.fallback

    def as_response(self) -> dict[str, Any]:
        return {
            "analysis_id": self.analysis_id,
            "status": self.status,
            "result": self.result,
            "fallback": self.fallback,
            "metrics": self.metrics,
        }


def retry_policy_from_settings(settings: PipelineSettings) -> RetryPolicy:
    return RetryPolicy(
        max_retries=settings.max_retries,
        backoff_seconds=settings.retry_backoff_seconds,
        attempt_timeout_seconds=settings.attempt_timeout_seconds,
    )


class AnalysisOrchestrator:
    """Coordinate cache, stages, persistence, and notifications for one request."""

    def __init__(
        self,
        *,
        extraction: ExtractionStage,
        analysis: CreditAnalysisStage,
        store: SQLiteAnalysisStore,
        cache: FingerprintCache[CachedAnalysis],
        settings: PipelineSettings,
        notifier: Optional[Notifier] = None,
        fallback: Optional[FallbackGenerator] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ) -> None:
        self._extraction = extraction
        self._analysis = analysis
        self._store = store
        self._cache = cache
        self._settings = settings
        self._notifier = notifier
        policy = retry_policy or retry_policy_from_settings(settings)
        controller = RetryTimeoutController(policy, sleep=sleep)
        self._graph = create_pipeline_graph(
            PipelineStages(
                extraction=extraction,
                analysis=analysis,
                fallback=fallback or FallbackGenerator(),
                extraction_controller=controller,
                analysis_controller=controller,
            )
        )

    async def run(
        self,
        request: AnalysisRequest,
        *,
        analysis_id: Optional[str] = None,
        timeout_budget: Optional[float] = None,
    ) -> AnalysisOutcome:
        """Analyze one submission and return a completed or fallback result."""
        started = time.perf_counter()
        prepared = self._extraction.validate(request)
        fingerprint = compute_fingerprint(
            user_id=prepared.user_id,
            content=prepared.content,
            text=prepared.text,
            cache_key=request.cache_key,
        )
        deadline = Deadline.from_budget(
            timeout_budget or self._settings.analysis_timeout_seconds,
            safety_margin_seconds=self._settings.timeout_safety_margin_seconds,
        )
        analysis_id = await self._open_record(analysis_id, prepared, fingerprint)
        log_extra = {"analysis_id": analysis_id, "user_id": prepared.user_id}
        logger.info(
            "Starting analysis of %s input (deadline %.1fs)",
            prepared.media_type,
            deadline.budget_seconds,
            extra=log_extra,
        )

        try:
            cached = self._cache.get(fingerprint)
            if cached is None:
                async with self._cache.hold(fingerprint):
                    # Another holder may have finished this fingerprint while we waited.
                    cached = self._cache.get(fingerprint)
                    if cached is None:
                        return await self._compute(
                            analysis_id, prepared, fingerprint, deadline, started
                        )
            return await self._finish_from_cache(
                analysis_id, prepared, cached, started
            )
        except asyncio.CancelledError:
            logger.info("Analysis cancelled by caller", extra=log_extra)
            await self._persist(
                analysis_id,
                AnalysisStatus.ERROR,
                error_message="Analysis cancelled before it finished.",
            )
            raise
        except (ConfigurationError, InputValidationError) as exc:
            logger.error("Analysis cannot proceed: %s", exc.message, extra=log_extra)
            await self._persist(
                analysis_id, AnalysisStatus.ERROR, error_message=exc.message
            )
            await self._notify(
                prepared.user_id,
                analysis_id,
                "Analysis Failed",
                f"We couldn't analyze your credit report: {exc.message}",
                "error",
            )
            raise

    async def _compute(
        self,
        analysis_id: str,
        prepared: PreparedInput,
        fingerprint: str,
        deadline: Deadline,
        started: float,
    ) -> AnalysisOutcome:
        state = await self._graph.ainvoke(
            {
                "prepared": prepared,
                "deadline": deadline,
                "report_status": lambda status: self._persist(analysis_id, status),
                "retries": 0,
            }
        )
        result: CreditAnalysis = state["analysis"]
        output = state.get("output")
        review = state.get("review")
        failure = state.get("failure")
        reason: Optional[FallbackReason] = state.get("fallback_reason")

        metrics = AnalysisMetrics(
            processing_time_ms=int((time.perf_counter() - started) * 1000),
            extraction_time_ms=state.get("extraction_ms"),
            analysis_time_ms=state.get("analysis_ms"),
            retry_count=state.get("retries", 0),
            cache_hit=False,
            truncated=bool(output and output.truncated),
            prompt_version=self._analysis.prompt_version,
            fallback_reason=reason.value if result.fallback and reason else None,
        )
        needs_review = bool(review and review.needs_review)
        review_reasons = list(review.reasons) if needs_review and review else []
        if needs_review:
            logger.warning(
                "Analysis flagged for manual review: %s",
                "; ".join(review_reasons),
                extra={"analysis_id": analysis_id, "user_id": prepared.user_id},
            )

        if not result.fallback or self._settings.cache_fallback_results:
            self._cache.put(
                fingerprint,
                CachedAnalysis(
                    result=result,
                    needs_review=needs_review,
                    review_reasons=review_reasons,
                    truncated=metrics.truncated,
                ),
            )

        outcome = AnalysisOutcome(
            analysis_id=analysis_id,
            status=AnalysisStatus.ERROR if result.fallback else AnalysisStatus.COMPLETED,
            result=result,
            metrics=metrics,
            needs_review=needs_review,
            review_reasons=review_reasons,
            error_message=failure.message if result.fallback and failure else None,
        )
        return await self._finalize(outcome, prepared)

    async def _finish_from_cache(
        self,
        analysis_id: str,
        prepared: PreparedInput,
        cached: CachedAnalysis,
        started: float,
    ) -> AnalysisOutcome:
        logger.info(
            "Serving analysis from cache",
            extra={"analysis_id": analysis_id, "user_id": prepared.user_id},
        )
        result = cached.result
        outcome = AnalysisOutcome(
            analysis_id=analysis_id,
            status=AnalysisStatus.ERROR if result.fallback else AnalysisStatus.COMPLETED,
            result=result,
            metrics=AnalysisMetrics(
                processing_time_ms=int((time.perf_counter() - started) * 1000),
                cache_hit=True,
                truncated=cached.truncated,
                prompt_version=self._analysis.prompt_version,
                fallback_reason=result.fallback_reason,
            ),
            needs_review=cached.needs_review,
            review_reasons=list(cached.review_reasons),
            error_message=(
                "Analysis could not be completed; a placeholder result was reused."
                if result.fallback
                else None
            ),
        )
        return await self._finalize(outcome, prepared)

    async def _finalize(
        self, outcome: AnalysisOutcome, prepared: PreparedInput
    ) -> AnalysisOutcome:
        await self._persist(
            outcome.analysis_id,
            outcome.status,
            outcome.result,
            fallback=outcome.fallback,
            error_message=outcome.error_message,
            metrics=outcome.metrics,
            needs_review=outcome.needs_review,
            review_reasons=outcome.review_reasons,
        )
        await self._notify(
            prepared.user_id, outcome.analysis_id, *_notification_for(outcome)
        )
        logger.info(
            "Analysis finished with status %s in %dms (fallback=%s, cache_hit=%s)",
            outcome.status.value,
            outcome.metrics.processing_time_ms,
            outcome.fallback,
            outcome.metrics.cache_hit,
            extra={"analysis_id": outcome.analysis_id, "user_id": prepared.user_id},
        )
        return outcome

    async def _open_record(
        self, analysis_id: Optional[str], prepared: PreparedInput, fingerprint: str
    ) -> str:
        if analysis_id is not None:
            await self._persist(
                analysis_id, AnalysisStatus.QUEUED, fingerprint=fingerprint
            )
            return analysis_id

        now = utcnow()
        record = AnalysisRecord(
            id=str(uuid.uuid4()),
            user_id=prepared.user_id,
            status=AnalysisStatus.QUEUED,
            file_name=prepared.file_name,
            media_type=prepared.media_type,
            fingerprint=fingerprint,
            created_at=now,
            updated_at=now,
        )
        try:
            await asyncio.to_thread(self._store.create_analysis, record)
        except PersistenceError as exc:
            logger.error(
                "Could not create analysis record: %s",
                exc.message,
                extra={"analysis_id": record.id, "user_id": record.user_id},
            )
        return record.id

    async def _persist(
        self,
        analysis_id: str,
        status: AnalysisStatus,
        result: Optional[CreditAnalysis] = None,
        **fields: Any,
    ) -> None:
        try:
            await asyncio.to_thread(
                self._store.update_analysis_status, analysis_id, status, result, **fields
            )
        except PersistenceError as exc:
            logger.error(
                "Could not persist status %s: %s",
                status.value,
                exc.message,
                extra={"analysis_id": analysis_id},
            )

    async def _notify(
        self,
        user_id: str,
        analysis_id: str,
        title: str,
        message: str,
        severity: str,
    ) -> None:
        if self._notifier is None:
            return
        try:
            await asyncio.to_thread(
                self._notifier.notify, user_id, title, message, severity
            )
        except Exception:
            logger.warning(
                "Notification delivery failed",
                exc_info=True,
                extra={"analysis_id": analysis_id, "user_id": user_id},
            )


def _notification_for(outcome: AnalysisOutcome) -> tuple[str, str, str]:
    if not outcome.fallback:
        score = outcome.result.overview.score
        detail = (
            f"Your credit score is {score}."
            if score is not None
            else "We couldn't determine a specific score from your report."
        )
        return (
            "Credit Analysis Complete",
            f"Your credit report analysis is complete. {detail}",
            "success",
        )
    if outcome.result.fallback_reason == FallbackReason.TIMEOUT.value:
        return (
            "Analysis Timed Out",
            "Your credit report analysis took longer than expected. A placeholder "
            "result was saved; please try again in a few minutes.",
            "warning",
        )
    return (
        "Analysis Incomplete",
        "We couldn't complete the analysis of your credit report. A placeholder "
        "result was saved; please try again in a few minutes.",
        "warning",
    )


__all__ = [
    "AnalysisOrchestrator",
    "AnalysisOutcome",
    "CachedAnalysis",
    "Notifier",
    "retry_policy_from_settings",
]
