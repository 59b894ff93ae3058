"""Public schema exports."""

from .analysis import (
    AnalysisJobResponse,
    AnalysisMetrics,
    AnalysisRecord,
    AnalysisRequest,
    AnalysisResponse,
    AnalysisStatus,
    AnalysisSubmission,
    ChatMessage,
    ChatRequest,
    ChatResponse,
    CreditAnalysis,
    NotificationRecord,
    normalize_score,
)

__all__ = [
    "AnalysisJobResponse",
    "AnalysisMetrics",
    "AnalysisRecord",
    "AnalysisRequest",
    "AnalysisResponse",
    "AnalysisStatus",
    "AnalysisSubmission",
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
    "CreditAnalysis",
    "NotificationRecord",
    "normalize_score",
]
