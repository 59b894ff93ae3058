"""Turn uploaded credit reports into plain text for the analysis stage."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from app.clients.reasoning import (
    ReasoningAttachment,
    ReasoningClient,
    ReasoningMessage,
    ReasoningRequest,
    ReasoningServiceError,
)
from app.core.errors import (
    ExtractionError,
    InputValidationError,
    PayloadTooLargeError,
    UnsupportedMediaTypeError,
)
from app.schemas.analysis import AnalysisRequest

logger = logging.getLogger(__name__)

TEXT_MEDIA_TYPE = "text/plain"
PDF_MEDIA_TYPE = "application/pdf"
IMAGE_MEDIA_TYPES = frozenset(
    {
        "image/png",
        "image/jpeg",
        "image/webp",
        "image/gif",
        "image/heic",
        "image/heif",
    }
)
_MEDIA_TYPE_ALIASES = {"image/jpg": "image/jpeg", "image/pjpeg": "image/jpeg"}
_UNDECLARED = frozenset({"", "application/octet-stream", "binary/octet-stream"})

TRANSCRIPTION_SYSTEM_PROMPT = (
    "You are a specialized OCR system for credit reports. Extract ALL text from the "
    "provided document, including numbers, account details, and credit scores. "
    "Include ALL text visible in the document."
)
TRANSCRIPTION_PROMPT = (
    "Transcribe every piece of visible text in this credit report verbatim. Preserve "
    "line breaks and table rows, keep every number, date, account name, account "
    "number, balance, and score exactly as printed. Do not summarize, interpret, or "
    "omit anything. Return plain text only."
)


def sniff_media_type(data: bytes) -> Optional[str]:
    """Best-effort media type detection from leading magic bytes."""
    if data.startswith(b"%PDF"):
        return PDF_MEDIA_TYPE
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data.startswith((b"GIF87a", b"GIF89a")):
        return "image/gif"
    if data.startswith(b"RIFF") and data[8:12] == b"WEBP":
        return "image/webp"
    return None


@dataclass(slots=True)
class PreparedInput:
    """A validated request, normalized for the extraction stage."""

    user_id: str
    media_type: str
    content: Optional[bytes]
    text: Optional[str]
    file_name: Optional[str]

    @property
    def is_text(self) -> bool:
        return self.media_type == TEXT_MEDIA_TYPE

    @property
    def size_bytes(self) -> int:
        if self.content is not None:
            return len(self.content)
        return len((self.text or "").encode("utf-8"))


class ExtractionStage:
    """Pass text through; transcribe PDFs and images with a vision call."""

    def __init__(
        self,
        reasoning_client: ReasoningClient,
        *,
        max_upload_bytes: int = 10 * 1024 * 1024,
        min_extracted_chars: int = 20,
    ) -> None:
        self._reasoning = reasoning_client
        self._max_upload_bytes = max_upload_bytes
        self._min_extracted_chars = min_extracted_chars

    def validate(self, request: AnalysisRequest) -> PreparedInput:
        """Reject requests that can never succeed before any work starts."""
        if (request.content is None) == (request.text is None):
            raise InputValidationError(
                "Provide exactly one of document bytes or text.", stage="validation"
            )

        media_type = self._resolve_media_type(request)
        prepared = PreparedInput(
            user_id=request.user_id,
            media_type=media_type,
            content=request.content,
            text=request.text,
            file_name=request.file_name,
        )
        if prepared.size_bytes > self._max_upload_bytes:
            raise PayloadTooLargeError(
                f"Upload is {prepared.size_bytes} bytes; the limit is "
                f"{self._max_upload_bytes} bytes.",
                stage="validation",
            )

        if prepared.is_text:
            if prepared.text is None:
                try:
                    prepared.text = (prepared.content or b"").decode("utf-8")
                except UnicodeDecodeError as exc:
                    raise InputValidationError(
                        "Text uploads must be UTF-8 encoded.",
                        stage="validation",
                        cause=exc,
                    ) from exc
                prepared.content = None
            if not prepared.text.strip():
                raise InputValidationError(
                    "The submitted report text is empty.", stage="validation"
                )
        elif not prepared.content:
            raise InputValidationError(
                "The submitted document is empty.", stage="validation"
            )
        return prepared

    async def extract(self, prepared: PreparedInput) -> str:
        """Return the document's text or raise ``ExtractionError``."""
        if prepared.is_text:
            return prepared.text or ""

        request = ReasoningRequest(
            messages=[
                ReasoningMessage(role="system", content=TRANSCRIPTION_SYSTEM_PROMPT),
                ReasoningMessage(
                    role="user",
                    content=TRANSCRIPTION_PROMPT,
                    attachments=[
                        ReasoningAttachment(
                            data=prepared.content or b"", mime_type=prepared.media_type
                        )
                    ],
                ),
            ],
            temperature=0.1,
            max_output_tokens=4096,
        )
        try:
            raw = await self._reasoning.complete(request)
        except ReasoningServiceError as exc:
            raise exc.as_pipeline_error(ExtractionError, stage="extraction") from exc

        text = (raw or "").strip()
        if len(text) < self._min_extracted_chars:
            raise ExtractionError(
                f"Transcription returned {len(text)} characters; at least "
                f"{self._min_extracted_chars} are required.",
                stage="extraction",
                retryable=False,
            )
        logger.info(
            "Transcribed %s document into %d characters",
            prepared.media_type,
            len(text),
            extra={"user_id": prepared.user_id, "stage": "extraction"},
        )
        return text

    def _resolve_media_type(self, request: AnalysisRequest) -> str:
        declared = (request.media_type or "").split(";", 1)[0].strip().lower()
        declared = _MEDIA_TYPE_ALIASES.get(declared, declared)
        if declared in _UNDECLARED:
            if request.text is not None:
                return TEXT_MEDIA_TYPE
            detected = sniff_media_type(request.content or b"")
            if detected is None:
                raise UnsupportedMediaTypeError(
                    "Could not determine the document type; declare a media type.",
                    stage="validation",
                )
            return detected
        if request.text is not None and declared != TEXT_MEDIA_TYPE:
            raise UnsupportedMediaTypeError(
                f"Text submissions must be declared as {TEXT_MEDIA_TYPE}, not '{declared}'.",
                stage="validation",
            )
        if declared == TEXT_MEDIA_TYPE or declared == PDF_MEDIA_TYPE:
            return declared
        if declared in IMAGE_MEDIA_TYPES:
            return declared
        raise UnsupportedMediaTypeError(
            f"Unsupported media type '{declared}'. Upload a PDF, an image, or plain text.",
            stage="validation",
        )


__all__ = [
    "ExtractionStage",
    "IMAGE_MEDIA_TYPES",
    "PDF_MEDIA_TYPE",
    "PreparedInput",
    "TEXT_MEDIA_TYPE",
    "sniff_media_type",
]
