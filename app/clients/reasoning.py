"""Provider-neutral request/response types for the reasoning service boundary."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Optional, Protocol

from app.core.config import AppSettings
from app.core.errors import ConfigurationError, PipelineError

MessageRole = Literal["system", "user", "assistant"]

_RETRYABLE_STATUS_CODES = frozenset({408, 429})
_CREDENTIAL_STATUS_CODES = frozenset({401, 403})


@dataclass(slots=True)
class ReasoningAttachment:
    """Binary document or image sent alongside a message."""

    data: bytes
    mime_type: str


@dataclass(slots=True)
class ReasoningMessage:
    role: MessageRole
    content: str
    attachments: list[ReasoningAttachment] = field(default_factory=list)


@dataclass(slots=True)
class ReasoningRequest:
    """A single chat/completion call against the reasoning service."""

    messages: list[ReasoningMessage]
    temperature: float = 0.3
    max_output_tokens: int = 4096
    model: Optional[str] = None

    @property
    def has_attachments(self) -> bool:
        return any(message.attachments for message in self.messages)

    @property
    def system_prompt(self) -> str:
        return "\n\n".join(
            message.content for message in self.messages if message.role == "system"
        )


class ReasoningServiceError(RuntimeError):
    """Raised when the reasoning service returns an error or an unusable body."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        retryable: Optional[bool] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self._retryable = retryable

    @property
    def retryable(self) -> bool:
        if self._retryable is not None:
            return self._retryable
        if self.status_code is None:
            # No status means the request never completed (network failure).
            return True
        return self.status_code in _RETRYABLE_STATUS_CODES or self.status_code >= 500

    @property
    def is_credential_error(self) -> bool:
        return self.status_code in _CREDENTIAL_STATUS_CODES

    def as_pipeline_error(
        self, error_type: type[PipelineError], *, stage: str
    ) -> PipelineError:
        """Translate into the taxonomy; rejected credentials are configuration errors."""
        if self.is_credential_error:
            return ConfigurationError(
                f"Reasoning service rejected the credentials: {self.message}",
                stage=stage,
                cause=self,
            )
        return error_type(
            self.message, stage=stage, cause=self, retryable=self.retryable
        )


class ReasoningClient(Protocol):
    async def complete(self, request: ReasoningRequest) -> str: ...


def ensure_reasoning_credentials(settings: AppSettings) -> None:
    """Raise ConfigurationError when the selected provider has no API key."""
    provider = settings.reasoning_provider
    if provider == "gemini" and not settings.gemini.api_key:
        raise ConfigurationError(
            "GEMINI_API_KEY is not configured.", stage="configuration"
        )
    if provider == "openai" and not settings.openai.api_key:
        raise ConfigurationError(
            "OPENAI_API_KEY is not configured.", stage="configuration"
        )


__all__ = [
    "MessageRole",
    "ReasoningAttachment",
    "ReasoningClient",
    "ReasoningMessage",
    "ReasoningRequest",
    "ReasoningServiceError",
    "ensure_reasoning_credentials",
]
