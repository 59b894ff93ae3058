"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    build_reasoning_client,
    get_analysis_queue_service,
    get_analysis_stage,
    get_analysis_store,
    get_chat_composer,
    get_extraction_stage,
    get_fingerprint_cache,
    get_notification_client,
    get_orchestrator,
    get_queue_client,
    get_reasoning_client,
)
from .config import get_app_settings

__all__ = [
    "build_reasoning_client",
    "get_analysis_queue_service",
    "get_analysis_stage",
    "get_analysis_store",
    "get_app_settings",
    "get_chat_composer",
    "get_extraction_stage",
    "get_fingerprint_cache",
    "get_notification_client",
    "get_orchestrator",
    "get_queue_client",
    "get_reasoning_client",
]
