"""Client for OpenAI-compatible chat completion endpoints."""

from __future__ import annotations

import base64
from typing import Any, Dict, List, Optional

import httpx

from app.clients.reasoning import ReasoningMessage, ReasoningRequest, ReasoningServiceError
from app.core.config import OpenAISettings


class OpenAICompatibleClient:
    """Fulfil reasoning requests through a ``/chat/completions`` endpoint."""

    def __init__(
        self,
        settings: OpenAISettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings
        self._transport = transport

    async def complete(self, request: ReasoningRequest) -> str:
        """Send the request and return the first choice's message text."""

        model = request.model or (
            self._settings.vision_model_name
            if request.has_attachments
            else self._settings.model_name
        )
        body = {
            "model": model,
            "messages": [_serialize_message(message) for message in request.messages],
            "temperature": request.temperature,
            "max_tokens": request.max_output_tokens,
        }
        headers = {
            "Authorization": f"Bearer {self._settings.api_key}",
            "Content-Type": "application/json",
        }
        url = f"{self._settings.base_url.rstrip('/')}/chat/completions"

        try:
            async with httpx.AsyncClient(
                timeout=self._settings.request_timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post(url, json=body, headers=headers)
        except httpx.HTTPError as exc:
            raise ReasoningServiceError(
                f"Reasoning service request failed: {exc}"
            ) from exc

        if response.status_code >= 400:
            raise ReasoningServiceError(
                _error_message(response),
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise ReasoningServiceError(
                "Reasoning service returned a non-JSON body.",
                status_code=response.status_code,
                retryable=False,
            ) from exc
        return _choice_text(payload)


def _serialize_message(message: ReasoningMessage) -> Dict[str, Any]:
    if not message.attachments:
        return {"role": message.role, "content": message.content}

    parts: List[Dict[str, Any]] = []
    if message.content:
        parts.append({"type": "text", "text": message.content})
    for index, attachment in enumerate(message.attachments):
        encoded = base64.b64encode(attachment.data).decode("ascii")
        data_uri = f"data:{attachment.mime_type};base64,{encoded}"
        if attachment.mime_type == "application/pdf":
            parts.append(
                {
                    "type": "file",
                    "file": {"filename": f"document-{index + 1}.pdf", "file_data": data_uri},
                }
            )
        else:
            parts.append(
                {"type": "image_url", "image_url": {"url": data_uri, "detail": "high"}}
            )
    return {"role": message.role, "content": parts}


def _choice_text(payload: Any) -> str:
    choices = payload.get("choices") if isinstance(payload, dict) else None
    if not isinstance(choices, list) or not choices:
        raise ReasoningServiceError(
            "Reasoning service response has no choices.", retryable=False
        )
    message = choices[0].get("message") if isinstance(choices[0], dict) else None
    content = message.get("content") if isinstance(message, dict) else None
    if isinstance(content, list):
        content = "\n".join(
            part.get("text", "") for part in content if isinstance(part, dict)
        )
    if not isinstance(content, str):
        raise ReasoningServiceError(
            "Reasoning service response has no message content.", retryable=False
        )
    return content


def _error_message(response: httpx.Response) -> str:
    detail = ""
    try:
        payload = response.json()
    except ValueError:
        detail = response.text[:300]
    else:
        error = payload.get("error") if isinstance(payload, dict) else None
        if isinstance(error, dict):
            detail = str(error.get("message") or "")
        elif error:
            detail = str(error)
    if detail:
        return f"Reasoning service request failed with HTTP {response.status_code}: {detail}"
    return f"Reasoning service request failed with HTTP {response.status_code}."


__all__ = ["OpenAICompatibleClient"]
