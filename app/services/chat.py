"""Grounded follow-up conversation about a persisted analysis."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from app.clients.reasoning import (
    ReasoningClient,
    ReasoningMessage,
    ReasoningRequest,
    ReasoningServiceError,
)
from app.clients.sqlite_store import SQLiteAnalysisStore, utcnow
from app.core.errors import (
    ChatCompletionError,
    ChatUnavailableError,
    ConfigurationError,
    PipelineError,
)
from app.schemas.analysis import AnalysisRecord, ChatMessage, ChatRole, CreditAnalysis
from app.services.retry import Deadline, RetryPolicy, RetryTimeoutController

logger = logging.getLogger(__name__)


def build_chat_context(analysis: CreditAnalysis) -> str:
    """System prompt restating the stored analysis without reinterpreting it."""
    overview = analysis.overview
    payload = analysis.to_payload()
    lines = [
        "You are a helpful credit assistant. You have analyzed the user's credit "
        "report and have the following information:",
        "",
        f"Credit Score: {overview.score if overview.score is not None else 'Unknown'}",
        f"Summary: {overview.summary or 'No summary available'}",
        f"Positive Factors: {json.dumps(overview.positive_factors)}",
        f"Negative Factors: {json.dumps(overview.negative_factors)}",
        f"Disputes: {json.dumps(payload['disputes']['items'])}",
        f"Credit Hacks: {json.dumps(payload['creditHacks']['recommendations'])}",
        f"Side Hustles: {json.dumps(payload['sideHustles']['recommendations'])}",
        "",
    ]
    if analysis.fallback:
        lines.append(
            "Note: the user's report could not be analyzed, so the information above "
            "is a placeholder. Do not present it as facts about their credit."
        )
    lines.append(
        "Use this information to provide helpful, personalized responses to the user's "
        "questions about their credit. Be concise, friendly, and informative. If you "
        "don't know something, admit it rather than making up information."
    )
    return "\n".join(lines)


@dataclass(slots=True)
class ChatTurn:
    user_message: ChatMessage
    reply: ChatMessage


class ChatContextComposer:
    """Answer one user message against an analysis and persist the turn."""

    def __init__(
        self,
        reasoning_client: ReasoningClient,
        store: SQLiteAnalysisStore,
        *,
        timeout_seconds: float = 30.0,
        retry_policy: Optional[RetryPolicy] = None,
        history_limit: int = 20,
    ) -> None:
        self._reasoning = reasoning_client
        self._store = store
        self._timeout_seconds = timeout_seconds
        self._controller = RetryTimeoutController(
            retry_policy or RetryPolicy(max_retries=1, backoff_seconds=1.0)
        )
        self._history_limit = history_limit

    async def respond(
        self, analysis: AnalysisRecord, user_id: str, message: str
    ) -> ChatTurn:
        if analysis.result is None:
            raise ChatUnavailableError(
                f"Analysis {analysis.id} is still {analysis.status.value}; "
                "chat is available once it has a result.",
                stage="chat",
            )

        history = (
            await asyncio.to_thread(
                self._store.list_chat_messages,
                analysis.id,
                limit=self._history_limit,
                roles=("user", "assistant"),
            )
            if self._history_limit
            else []
        )
        user_message = await self._append(analysis.id, user_id, "user", message)

        messages = [
            ReasoningMessage(role="system", content=build_chat_context(analysis.result))
        ]
        messages.extend(
            ReasoningMessage(role=item.role, content=item.content) for item in history
        )
        messages.append(ReasoningMessage(role="user", content=message))
        request = ReasoningRequest(
            messages=messages, temperature=0.7, max_output_tokens=1000
        )

        try:
            reply_text = await self._controller.run(
                lambda: self._complete(request),
                stage="chat",
                deadline=Deadline(self._timeout_seconds),
            )
        except ConfigurationError:
            await self._append(
                analysis.id,
                user_id,
                "system",
                "Error: the assistant is not configured.",
            )
            raise
        except PipelineError as exc:
            logger.warning(
                "Chat reply failed: %s",
                exc.message,
                extra={"analysis_id": analysis.id, "user_id": user_id},
            )
            await self._append(
                analysis.id, user_id, "system", f"Error: {exc.message}"
            )
            raise

        reply = await self._append(
            analysis.id, user_id, "assistant", reply_text.strip()
        )
        logger.info(
            "Chat turn answered",
            extra={"analysis_id": analysis.id, "user_id": user_id},
        )
        return ChatTurn(user_message=user_message, reply=reply)

    async def _complete(self, request: ReasoningRequest) -> str:
        try:
            text = await self._reasoning.complete(request)
        except ReasoningServiceError as exc:
            raise exc.as_pipeline_error(ChatCompletionError, stage="chat") from exc
        if not text or not text.strip():
            raise ChatCompletionError(
                "The assistant returned an empty reply.", stage="chat", retryable=True
            )
        return text

    async def _append(
        self, analysis_id: str, user_id: str, role: ChatRole, content: str
    ) -> ChatMessage:
        return await asyncio.to_thread(
            self._store.append_chat_message,
            ChatMessage(
                id=str(uuid.uuid4()),
                analysis_id=analysis_id,
                user_id=user_id,
                role=role,
                content=content,
                created_at=utcnow(),
            ),
        )


__all__ = ["ChatContextComposer", "ChatTurn", "build_chat_context"]
