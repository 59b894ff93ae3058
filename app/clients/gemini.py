"""Client wrapper for interacting with Google Gemini models."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Iterable

import google.generativeai as genai
from google.api_core.exceptions import GoogleAPICallError, NotFound

from app.clients.reasoning import ReasoningMessage, ReasoningRequest, ReasoningServiceError
from app.core.config import GeminiSettings


_TEXT_FALLBACKS: tuple[str, ...] = (
    "gemini-1.5-pro",
    "gemini-1.5-flash",
    "gemini-pro",
)
_VISION_FALLBACKS: tuple[str, ...] = (
    "gemini-1.5-flash",
    "gemini-1.5-pro",
)

logger = logging.getLogger(__name__)


class GeminiClient:
    """Fulfil reasoning requests with Gemini text and vision models."""

    def __init__(self, settings: GeminiSettings) -> None:
        self._settings = settings
        # Configure the global client once per process.
        genai.configure(api_key=settings.api_key)

    async def complete(self, request: ReasoningRequest) -> str:
        """Run one generate_content call and return the response text."""

        vision = request.has_attachments
        contents = _build_contents(request.messages)
        generation_config = {
            "temperature": request.temperature,
            "max_output_tokens": request.max_output_tokens,
        }
        system_instruction = request.system_prompt or None

        def _invoke() -> str:
            response = self._invoke_with_models(
                models=(
                    self._vision_model_candidates(request.model)
                    if vision
                    else self._text_model_candidates(request.model)
                ),
                env_var="GEMINI_VISION_MODEL_NAME" if vision else "GEMINI_MODEL_NAME",
                error_prefix=(
                    "Gemini vision generate_content failed"
                    if vision
                    else "Gemini generate_content failed"
                ),
                system_instruction=system_instruction,
                call=lambda model: model.generate_content(
                    contents,
                    generation_config=generation_config,
                    safety_settings=[],
                ),
            )
            return _response_text(response)

        return await asyncio.to_thread(_invoke)

    def _invoke_with_models(
        self,
        *,
        models: Iterable[str],
        env_var: str,
        error_prefix: str,
        system_instruction: str | None,
        call: Callable[[genai.GenerativeModel], Any],
    ) -> Any:
        """Try the configured model followed by fallbacks when available."""

        model_sequence = list(models)
        last_not_found: NotFound | None = None
        for index, model_name in enumerate(model_sequence):
            generative_model = genai.GenerativeModel(
                model_name, system_instruction=system_instruction
            )
            try:
                return call(generative_model)
            except NotFound as exc:  # pragma: no cover - network call
                last_not_found = exc
                logger.warning(
                    "Gemini model '%s' not found (attempt %d/%d); trying fallback.",
                    model_name,
                    index + 1,
                    len(model_sequence),
                )
                continue
            except GoogleAPICallError as exc:  # pragma: no cover - network call
                raise ReasoningServiceError(
                    f"{error_prefix}: {exc.message}",
                    status_code=exc.code if isinstance(exc.code, int) else None,
                ) from exc

        if last_not_found is not None:
            primary = model_sequence[0] if model_sequence else "unknown"
            raise ReasoningServiceError(
                "Gemini model '"
                f"{primary}"
                "' is not available. Update "
                f"{env_var} to a supported value.",
                status_code=404,
            ) from last_not_found

        raise ReasoningServiceError(f"{error_prefix}: Unknown error invoking Gemini.")

    def _text_model_candidates(self, override: str | None = None) -> list[str]:
        return self._collect_candidates(
            override or self._settings.model_name,
            _TEXT_FALLBACKS,
        )

    def _vision_model_candidates(self, override: str | None = None) -> list[str]:
        return self._collect_candidates(
            override or self._settings.vision_model_name,
            _VISION_FALLBACKS,
        )

    @staticmethod
    def _collect_candidates(
        configured: str | None,
        fallbacks: tuple[str, ...],
    ) -> list[str]:
        """Return distinct model names prioritizing the configured value."""
        seen: set[str] = set()
        candidates: list[str] = []
        for name in (configured, *fallbacks):
            if not name:
                continue
            cleaned = name.strip()
            if not cleaned or cleaned in seen:
                continue
            seen.add(cleaned)
            candidates.append(cleaned)
        return candidates


def _build_contents(messages: list[ReasoningMessage]) -> list[dict[str, Any]]:
    """Convert chat messages into Gemini content blocks, skipping system text."""
    contents: list[dict[str, Any]] = []
    for message in messages:
        if message.role == "system":
            continue
        parts: list[Any] = []
        if message.content:
            parts.append(message.content)
        for attachment in message.attachments:
            parts.append({"mime_type": attachment.mime_type, "data": attachment.data})
        if not parts:
            continue
        contents.append(
            {
                "role": "model" if message.role == "assistant" else "user",
                "parts": parts,
            }
        )
    return contents


def _response_text(response: Any) -> str:
    try:
        text = response.text
    except ValueError as exc:
        # Raised by the SDK when the candidate was blocked or has no text parts.
        raise ReasoningServiceError(
            f"Gemini returned no text: {exc}", retryable=False
        ) from exc
    return text or ""


__all__ = ["GeminiClient"]
