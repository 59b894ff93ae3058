"""
Typed error taxonomy shared by the analysis pipeline, chat, and API layers.

Every pipeline failure carries the stage it happened in, the underlying cause,
and whether retrying the same call could succeed. The orchestrator uses these
fields to decide between propagating, retrying, and substituting a fallback.
"""

from __future__ import annotations

from typing import Optional


class PipelineError(Exception):
    """Base class for failures raised by the analysis pipeline."""

    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        stage: Optional[str] = None,
        cause: Optional[BaseException] = None,
        retryable: Optional[bool] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.cause = cause
        self.retryable = self.default_retryable if retryable is None else retryable

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(message={self.message!r}, stage={self.stage!r}, "
            f"retryable={self.retryable!r})"
        )


class ConfigurationError(PipelineError):
    """Missing or invalid credentials/settings. Fatal and never retried."""


class InputValidationError(PipelineError):
    """The request cannot succeed as submitted and must be corrected by the user."""


class UnsupportedMediaTypeError(InputValidationError):
    """Declared or detected media type is not one the pipeline can process."""


class PayloadTooLargeError(InputValidationError):
    """Submitted content exceeds the configured upload ceiling."""


class ChatUnavailableError(InputValidationError):
    """The analysis has no result yet, so it cannot back a conversation."""


class ExtractionError(PipelineError):
    """Transcribing the uploaded document failed."""


class AnalysisError(PipelineError):
    """The structured analysis call failed or returned unusable output."""

    def __init__(
        self,
        message: str,
        *,
        raw_response: Optional[str] = None,
        stage: Optional[str] = "analysis",
        cause: Optional[BaseException] = None,
        retryable: Optional[bool] = None,
    ) -> None:
        super().__init__(message, stage=stage, cause=cause, retryable=retryable)
        self.raw_response = raw_response


class StageTimeoutError(PipelineError, TimeoutError):
    """A stage did not finish before the orchestration deadline."""


class PersistenceError(PipelineError):
    """Reading or writing analysis records failed. Logged, never fatal to a run."""


class ChatCompletionError(PipelineError):
    """The reasoning service could not produce a chat reply."""


__all__ = [
    "AnalysisError",
    "ChatCompletionError",
    "ChatUnavailableError",
    "ConfigurationError",
    "ExtractionError",
    "InputValidationError",
    "PayloadTooLargeError",
    "PersistenceError",
    "PipelineError",
    "StageTimeoutError",
    "UnsupportedMediaTypeError",
]
