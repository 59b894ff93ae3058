"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

from functools import lru_cache

from app.clients import (
    GeminiClient,
    OpenAICompatibleClient,
    ReasoningClient,
    SQLiteAnalysisStore,
    SQLiteNotificationClient,
    SQLiteQueueClient,
    ensure_reasoning_credentials,
)
from app.core.config import AppSettings, get_settings
from app.services import (
    AnalysisOrchestrator,
    AnalysisQueueService,
    CachedAnalysis,
    ChatContextComposer,
    CreditAnalysisStage,
    ExtractionStage,
    FallbackGenerator,
    FingerprintCache,
    RetryPolicy,
)


@lru_cache()
def _settings() -> AppSettings:
    """Internal helper to cache settings for client factories."""
    return get_settings()


def build_reasoning_client(settings: AppSettings) -> ReasoningClient:
    """Create the configured provider, failing fast on missing credentials."""
    ensure_reasoning_credentials(settings)
    if settings.reasoning_provider == "openai":
        return OpenAICompatibleClient(settings.openai)
    return GeminiClient(settings.gemini)


@lru_cache()
def get_reasoning_client() -> ReasoningClient:
    """Provide the reasoning service client."""
    return build_reasoning_client(_settings())


@lru_cache()
def get_analysis_store() -> SQLiteAnalysisStore:
    """Provide shared SQLite analysis store."""
    return SQLiteAnalysisStore(_settings().database_path)


@lru_cache()
def get_notification_client() -> SQLiteNotificationClient:
    """Provide SQLite-backed notification inbox."""
    return SQLiteNotificationClient(_settings().database_path)


@lru_cache()
def get_queue_client() -> SQLiteQueueClient:
    """Provide SQLite-backed queue client."""
    return SQLiteQueueClient(_settings().queue_path)


@lru_cache()
def get_fingerprint_cache() -> FingerprintCache[CachedAnalysis]:
    """Provide the process-wide fingerprint cache."""
    pipeline = _settings().pipeline
    return FingerprintCache(
        capacity=pipeline.cache_capacity,
        ttl_seconds=pipeline.cache_ttl_seconds,
    )


def get_extraction_stage() -> ExtractionStage:
    """Build the extraction stage using the configured reasoning client."""
    pipeline = _settings().pipeline
    return ExtractionStage(
        get_reasoning_client(),
        max_upload_bytes=pipeline.max_upload_bytes,
        min_extracted_chars=pipeline.min_extracted_chars,
    )


def get_analysis_stage() -> CreditAnalysisStage:
    """Build the analysis stage for the configured prompt version."""
    pipeline = _settings().pipeline
    return CreditAnalysisStage(
        get_reasoning_client(),
        prompt_version=pipeline.prompt_version,
        max_text_chars=pipeline.max_text_chars,
    )


@lru_cache()
def get_orchestrator() -> AnalysisOrchestrator:
    """Provide the analysis orchestrator."""
    return AnalysisOrchestrator(
        extraction=get_extraction_stage(),
        analysis=get_analysis_stage(),
        store=get_analysis_store(),
        cache=get_fingerprint_cache(),
        settings=_settings().pipeline,
        notifier=get_notification_client(),
        fallback=FallbackGenerator(),
    )


@lru_cache()
def get_chat_composer() -> ChatContextComposer:
    """Provide the chat context composer."""
    pipeline = _settings().pipeline
    return ChatContextComposer(
        get_reasoning_client(),
        get_analysis_store(),
        timeout_seconds=pipeline.chat_timeout_seconds,
        retry_policy=RetryPolicy(
            max_retries=pipeline.chat_max_retries,
            backoff_seconds=1.0,
        ),
        history_limit=pipeline.chat_history_limit,
    )


def get_analysis_queue_service() -> AnalysisQueueService:
    """Build an analysis queue service."""
    return AnalysisQueueService(
        queue_client=get_queue_client(),
        store=get_analysis_store(),
        extraction=get_extraction_stage(),
    )


__all__ = [
    "build_reasoning_client",
    "get_analysis_queue_service",
    "get_analysis_stage",
    "get_analysis_store",
    "get_chat_composer",
    "get_extraction_stage",
    "get_fingerprint_cache",
    "get_notification_client",
    "get_orchestrator",
    "get_queue_client",
    "get_reasoning_client",
]
