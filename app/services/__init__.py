"""Service layer exports."""

from .analysis_queue import AnalysisQueueService
from .chat import ChatContextComposer, ChatTurn
from .credit_analysis import CreditAnalysisStage
from .extraction import ExtractionStage, PreparedInput
from .fallback import FallbackGenerator, FallbackReason
from .fingerprint_cache import FingerprintCache, compute_fingerprint
from .orchestrator import AnalysisOrchestrator, AnalysisOutcome, CachedAnalysis
from .retry import Deadline, RetryPolicy, RetryTimeoutController

__all__ = [
    "AnalysisOrchestrator",
    "AnalysisOutcome",
    "AnalysisQueueService",
    "CachedAnalysis",
    "ChatContextComposer",
    "ChatTurn",
    "CreditAnalysisStage",
    "Deadline",
    "ExtractionStage",
    "FallbackGenerator",
    "FallbackReason",
    "FingerprintCache",
    "PreparedInput",
    "RetryPolicy",
    "RetryTimeoutController",
    "compute_fingerprint",
]
