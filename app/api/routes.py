"""
FastAPI routes for the credit report analysis service.
"""

from __future__ import annotations

import base64
import binascii
import logging
from http import HTTPStatus
from typing import Annotated, Any, NoReturn

from fastapi import APIRouter, Depends, HTTPException, Query

from app.core.errors import (
    ChatUnavailableError,
    ConfigurationError,
    InputValidationError,
    PayloadTooLargeError,
    PipelineError,
    StageTimeoutError,
    UnsupportedMediaTypeError,
)
from app.dependencies import (
    get_analysis_queue_service,
    get_analysis_store,
    get_app_settings,
    get_chat_composer,
    get_notification_client,
    get_orchestrator,
)
from app.schemas import (
    AnalysisJobResponse,
    AnalysisRecord,
    AnalysisRequest,
    AnalysisResponse,
    AnalysisStatus,
    AnalysisSubmission,
    ChatMessage,
    ChatRequest,
    ChatResponse,
    NotificationRecord,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def _raise_http_error(exc: PipelineError) -> NoReturn:
    """Translate a pipeline error into the matching HTTP response."""
    if isinstance(exc, PayloadTooLargeError):
        status = HTTPStatus.REQUEST_ENTITY_TOO_LARGE
    elif isinstance(exc, UnsupportedMediaTypeError):
        status = HTTPStatus.UNSUPPORTED_MEDIA_TYPE
    elif isinstance(exc, ChatUnavailableError):
        status = HTTPStatus.CONFLICT
    elif isinstance(exc, InputValidationError):
        status = HTTPStatus.BAD_REQUEST
    elif isinstance(exc, ConfigurationError):
        status = HTTPStatus.SERVICE_UNAVAILABLE
    elif isinstance(exc, StageTimeoutError):
        status = HTTPStatus.GATEWAY_TIMEOUT
    else:
        status = HTTPStatus.BAD_GATEWAY
    raise HTTPException(status_code=status, detail=exc.message) from exc


def _to_request(payload: AnalysisSubmission) -> AnalysisRequest:
    content = None
    if payload.content_b64 is not None:
        try:
            content = base64.b64decode(payload.content_b64, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise HTTPException(
                status_code=HTTPStatus.BAD_REQUEST,
                detail="content_b64 is not valid base64.",
            ) from exc
    return AnalysisRequest(
        user_id=payload.user_id,
        media_type=payload.media_type,
        content=content,
        text=payload.text,
        file_name=payload.file_name,
        cache_key=payload.cache_key,
        priority=payload.priority,
    )


def _load_owned_analysis(store: Any, analysis_id: str, user_id: str) -> AnalysisRecord:
    record = store.get_analysis(analysis_id, user_id=user_id)
    if record is None:
        raise HTTPException(
            status_code=HTTPStatus.NOT_FOUND, detail="Analysis not found."
        )
    return record


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck(settings: Annotated[Any, Depends(get_app_settings)]) -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok", "environment": settings.environment}


@router.post(
    "/analyses", response_model=AnalysisResponse, status_code=HTTPStatus.CREATED
)
async def submit_analysis(
    payload: AnalysisSubmission,
    orchestrator: Annotated[Any, Depends(get_orchestrator)],
) -> dict:
    """Analyze a credit report and return the structured result."""
    request = _to_request(payload)
    try:
        outcome = await orchestrator.run(
            request, timeout_budget=payload.timeout_seconds
        )
    except (ConfigurationError, InputValidationError) as exc:
        _raise_http_error(exc)
    return outcome.as_response()


@router.post(
    "/analyses/jobs",
    response_model=AnalysisJobResponse,
    status_code=HTTPStatus.ACCEPTED,
)
async def queue_analysis(
    payload: AnalysisSubmission,
    queue_service: Annotated[Any, Depends(get_analysis_queue_service)],
) -> AnalysisJobResponse:
    """Enqueue an asynchronous analysis job."""
    request = _to_request(payload)
    try:
        analysis_id = queue_service.enqueue_analysis(
            request=request, timeout_budget=payload.timeout_seconds
        )
    except PipelineError as exc:
        _raise_http_error(exc)
    return AnalysisJobResponse(analysis_id=analysis_id, status=AnalysisStatus.QUEUED)


@router.get("/analyses", response_model=list[AnalysisRecord])
async def list_analyses(
    store: Annotated[Any, Depends(get_analysis_store)],
    user_id: str = Query(..., description="Owner of the analyses."),
    limit: int = Query(default=20, ge=1, le=100),
) -> list[AnalysisRecord]:
    """List a user's analyses, newest first."""
    return store.list_analyses(user_id, limit=limit)


@router.get("/analyses/{analysis_id}", response_model=AnalysisRecord)
async def get_analysis(
    analysis_id: str,
    store: Annotated[Any, Depends(get_analysis_store)],
    user_id: str = Query(..., description="Owner of the analysis."),
) -> AnalysisRecord:
    """Fetch one analysis with its current status and result."""
    return _load_owned_analysis(store, analysis_id, user_id)


@router.get("/analyses/{analysis_id}/messages", response_model=list[ChatMessage])
async def list_chat_messages(
    analysis_id: str,
    store: Annotated[Any, Depends(get_analysis_store)],
    user_id: str = Query(..., description="Owner of the analysis."),
) -> list[ChatMessage]:
    """Return the conversation about an analysis, oldest first."""
    _load_owned_analysis(store, analysis_id, user_id)
    return store.list_chat_messages(analysis_id)


@router.post("/analyses/{analysis_id}/chat", response_model=ChatResponse)
async def chat_about_analysis(
    analysis_id: str,
    payload: ChatRequest,
    store: Annotated[Any, Depends(get_analysis_store)],
    composer: Annotated[Any, Depends(get_chat_composer)],
) -> ChatResponse:
    """Answer a follow-up question grounded in the stored analysis."""
    record = _load_owned_analysis(store, analysis_id, payload.user_id)
    try:
        turn = await composer.respond(record, payload.user_id, payload.message)
    except PipelineError as exc:
        _raise_http_error(exc)
    return ChatResponse(user_message=turn.user_message, reply=turn.reply)


@router.get("/notifications", response_model=list[NotificationRecord])
async def list_notifications(
    notifier: Annotated[Any, Depends(get_notification_client)],
    user_id: str = Query(..., description="Recipient of the notifications."),
    limit: int = Query(default=20, ge=1, le=100),
) -> list[NotificationRecord]:
    """Return notifications emitted for a user, newest first."""
    return notifier.list_notifications(user_id, limit=limit)


__all__ = ["router"]
