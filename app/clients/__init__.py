"""Expose constructed client wrappers."""

from .gemini import GeminiClient
from .local_queue import SQLiteQueueClient
from .notifications import SQLiteNotificationClient
from .openai_compat import OpenAICompatibleClient
from .reasoning import (
    ReasoningAttachment,
    ReasoningClient,
    ReasoningMessage,
    ReasoningRequest,
    ReasoningServiceError,
    ensure_reasoning_credentials,
)
from .sqlite_store import SQLiteAnalysisStore

__all__ = [
    "GeminiClient",
    "OpenAICompatibleClient",
    "ReasoningAttachment",
    "ReasoningClient",
    "ReasoningMessage",
    "ReasoningRequest",
    "ReasoningServiceError",
    "SQLiteAnalysisStore",
    "SQLiteNotificationClient",
    "SQLiteQueueClient",
    "ensure_reasoning_credentials",
]
