"""
LangGraph workflow for one credit report analysis.

extract -> analyze -> review on the happy path. Any recoverable stage failure
routes to the fallback node instead, so the graph always ends with a result.
Configuration and input errors, and cancellation, propagate out of the graph.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypedDict

from langgraph.graph import END, START, StateGraph

from app.core.errors import (
    AnalysisError,
    ConfigurationError,
    ExtractionError,
    InputValidationError,
    PipelineError,
    StageTimeoutError,
)
from app.schemas.analysis import AnalysisStatus, CreditAnalysis
from app.services.credit_analysis import AnalysisOutput, CreditAnalysisStage
from app.services.extraction import ExtractionStage, PreparedInput
from app.services.fallback import FallbackGenerator, FallbackReason
from app.services.placeholder_detection import ReviewAssessment, assess_placeholder_content
from app.services.retry import Deadline, RetryTimeoutController

logger = logging.getLogger(__name__)

_FATAL_ERRORS = (ConfigurationError, InputValidationError)


class PipelineState(TypedDict, total=False):
    """State tracked inside the LangGraph workflow."""

    prepared: PreparedInput
    deadline: Deadline
    report_status: Callable[[AnalysisStatus], Awaitable[None]]
    text: str
    output: AnalysisOutput
    analysis: CreditAnalysis
    review: ReviewAssessment
    failure: PipelineError
    fallback_reason: FallbackReason
    extraction_ms: int
    analysis_ms: int
    retries: int


@dataclass(slots=True)
class PipelineStages:
    extraction: ExtractionStage
    analysis: CreditAnalysisStage
    fallback: FallbackGenerator
    extraction_controller: RetryTimeoutController
    analysis_controller: RetryTimeoutController


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def _count_retry(state: PipelineState) -> Callable[[int, PipelineError], None]:
    def _on_retry(_attempt: int, _error: PipelineError) -> None:
        state["retries"] = state.get("retries", 0) + 1

    return _on_retry


def _record_failure(
    state: PipelineState, error: PipelineError, reason: FallbackReason
) -> None:
    if isinstance(error, StageTimeoutError):
        reason = FallbackReason.TIMEOUT
    state["failure"] = error
    state["fallback_reason"] = reason
    logger.warning(
        "%s stage failed (%s): %s",
        error.stage or "pipeline",
        type(error).__name__,
        error.message,
        extra={"stage": error.stage, "user_id": state["prepared"].user_id},
    )


async def _extract(state: PipelineState, stages: PipelineStages) -> PipelineState:
    """Transcribe the document, or pass plain text through."""
    await state["report_status"](AnalysisStatus.EXTRACTING)
    prepared = state["prepared"]
    started = time.perf_counter()
    try:
        state["text"] = await stages.extraction_controller.run(
            lambda: stages.extraction.extract(prepared),
            stage="extraction",
            deadline=state["deadline"],
            on_retry=_count_retry(state),
        )
    except _FATAL_ERRORS:
        raise
    except PipelineError as exc:
        _record_failure(state, exc, FallbackReason.EXTRACTION_FAILED)
    except Exception as exc:
        logger.exception("Unexpected extraction failure")
        _record_failure(
            state,
            ExtractionError(str(exc), stage="extraction", cause=exc),
            FallbackReason.EXTRACTION_FAILED,
        )
    finally:
        state["extraction_ms"] = _elapsed_ms(started)
    return state


async def _analyze(state: PipelineState, stages: PipelineStages) -> PipelineState:
    """Run the structured analysis prompt over the extracted text."""
    await state["report_status"](AnalysisStatus.ANALYZING)
    text = state["text"]
    started = time.perf_counter()
    try:
        output = await stages.analysis_controller.run(
            lambda: stages.analysis.analyze(text),
            stage="analysis",
            deadline=state["deadline"],
            on_retry=_count_retry(state),
        )
    except _FATAL_ERRORS:
        raise
    except PipelineError as exc:
        _record_failure(state, exc, FallbackReason.ANALYSIS_FAILED)
    except Exception as exc:
        logger.exception("Unexpected analysis failure")
        _record_failure(
            state,
            AnalysisError(str(exc), cause=exc),
            FallbackReason.ANALYSIS_FAILED,
        )
    else:
        state["output"] = output
        state["analysis"] = output.analysis
    finally:
        state["analysis_ms"] = _elapsed_ms(started)
    return state


async def _review(state: PipelineState, stages: PipelineStages) -> PipelineState:
    """Flag results that look like sample data for manual review."""
    state["review"] = assess_placeholder_content(state["analysis"])
    return state


async def _fallback(state: PipelineState, stages: PipelineStages) -> PipelineState:
    """Substitute the labeled placeholder result."""
    reason = state.get("fallback_reason", FallbackReason.ANALYSIS_FAILED)
    state["analysis"] = stages.fallback.generate(reason)
    return state


def _route_after_extract(state: PipelineState) -> str:
    return "fallback" if "failure" in state else "analyze"


def _route_after_analyze(state: PipelineState) -> str:
    return "fallback" if "failure" in state else "review"


def create_pipeline_graph(stages: PipelineStages) -> Any:
    """Compile and return the analysis LangGraph workflow."""
    graph = StateGraph(PipelineState)

    async def extract_node(state: PipelineState) -> PipelineState:
        return await _extract(state, stages)

    async def analyze_node(state: PipelineState) -> PipelineState:
        return await _analyze(state, stages)

    async def review_node(state: PipelineState) -> PipelineState:
        return await _review(state, stages)

    async def fallback_node(state: PipelineState) -> PipelineState:
        return await _fallback(state, stages)

    graph.add_node("extract", extract_node)
    graph.add_node("analyze", analyze_node)
    graph.add_node("review", review_node)
    graph.add_node("fallback", fallback_node)

    graph.add_edge(START, "extract")
    graph.add_conditional_edges(
        "extract", _route_after_extract, {"analyze": "analyze", "fallback": "fallback"}
    )
    graph.add_conditional_edges(
        "analyze", _route_after_analyze, {"review": "review", "fallback": "fallback"}
    )
    graph.add_edge("review", END)
    graph.add_edge("fallback", END)
    return graph.compile()


__all__ = ["PipelineStages", "PipelineState", "create_pipeline_graph"]
