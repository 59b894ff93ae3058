try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

try:
    from ._stubs import StubReasoningClient, never_returns, sample_analysis, service_error
except ImportError:  # pragma: no cover - fallback for direct execution
    from _stubs import (  # type: ignore
        StubReasoningClient,
        never_returns,
        sample_analysis,
        service_error,
    )

from datetime import datetime, timedelta, timezone

import pytest

from app.clients.sqlite_store import SQLiteAnalysisStore
from app.core.errors import (
    ChatCompletionError,
    ChatUnavailableError,
    ConfigurationError,
    StageTimeoutError,
)
from app.schemas import AnalysisRecord, AnalysisStatus, ChatMessage, CreditAnalysis
from app.services.chat import ChatContextComposer, build_chat_context
from app.services.fallback import FallbackGenerator, FallbackReason
from app.services.retry import RetryPolicy


def _record(store: SQLiteAnalysisStore, result: CreditAnalysis | None) -> AnalysisRecord:
    now = datetime.now(tz=timezone.utc)
    record = AnalysisRecord(
        id="analysis-1",
        user_id="user-1",
        status=AnalysisStatus.COMPLETED if result else AnalysisStatus.ANALYZING,
        result=result,
        created_at=now,
        updated_at=now,
    )
    store.create_analysis(record)
    return record


def _composer(client, store, **kwargs) -> ChatContextComposer:
    kwargs.setdefault("retry_policy", RetryPolicy(max_retries=1, backoff_seconds=0))
    return ChatContextComposer(client, store, **kwargs)


def test_context_restates_the_stored_analysis() -> None:
    context = build_chat_context(CreditAnalysis.model_validate(sample_analysis()))

    assert "Credit Score: 712" in context
    assert "Midland Credit Management" in context
    assert "Pay down Capital One Quicksilver" in context
    assert "placeholder" not in context


def test_context_for_fallback_warns_against_treating_it_as_fact() -> None:
    context = build_chat_context(FallbackGenerator().generate(FallbackReason.TIMEOUT))

    assert "Credit Score: Unknown" in context
    assert "placeholder" in context


@pytest.mark.asyncio
async def test_reply_is_persisted_after_the_question(tmp_path) -> None:
    store = SQLiteAnalysisStore(str(tmp_path / "chat.db"))
    record = _record(store, CreditAnalysis.model_validate(sample_analysis()))
    client = StubReasoningClient("Pay down the Quicksilver card first.")
    composer = _composer(client, store)

    turn = await composer.respond(record, "user-1", "What should I fix first?")

    assert turn.reply.content == "Pay down the Quicksilver card first."
    history = store.list_chat_messages(record.id)
    assert [(m.role, m.content) for m in history] == [
        ("user", "What should I fix first?"),
        ("assistant", "Pay down the Quicksilver card first."),
    ]
    request = client.requests[0]
    assert request.messages[0].role == "system"
    assert "Credit Score: 712" in request.messages[0].content
    assert request.messages[-1].content == "What should I fix first?"
    assert request.temperature == pytest.approx(0.7)


@pytest.mark.asyncio
async def test_prior_turns_are_sent_in_order(tmp_path) -> None:
    store = SQLiteAnalysisStore(str(tmp_path / "chat.db"))
    record = _record(store, CreditAnalysis.model_validate(sample_analysis()))
    client = StubReasoningClient("First answer.", "Second answer.")
    composer = _composer(client, store)

    await composer.respond(record, "user-1", "First question?")
    await composer.respond(record, "user-1", "Second question?")

    second_request = client.requests[1]
    assert [(m.role, m.content) for m in second_request.messages[1:]] == [
        ("user", "First question?"),
        ("assistant", "First answer."),
        ("user", "Second question?"),
    ]


@pytest.mark.asyncio
async def test_history_is_capped(tmp_path) -> None:
    store = SQLiteAnalysisStore(str(tmp_path / "chat.db"))
    record = _record(store, CreditAnalysis.model_validate(sample_analysis()))
    client = StubReasoningClient("ok")
    composer = _composer(client, store, history_limit=2)

    for index in range(3):
        await composer.respond(record, "user-1", f"question {index}")

    contents = [m.content for m in client.requests[-1].messages[1:]]
    assert contents == ["question 1", "ok", "question 2"]


@pytest.mark.asyncio
async def test_history_cap_counts_only_conversation_turns(tmp_path) -> None:
    store = SQLiteAnalysisStore(str(tmp_path / "chat.db"))
    record = _record(store, CreditAnalysis.model_validate(sample_analysis()))
    started = datetime.now(tz=timezone.utc)
    roles = ("user", "assistant", "user", "system")
    for index in range(20):
        store.append_chat_message(
            ChatMessage(
                id=f"message-{index}",
                analysis_id=record.id,
                user_id="user-1",
                role=roles[index % 4],
                content=f"m{index}",
                created_at=started + timedelta(seconds=index),
            )
        )
    client = StubReasoningClient("ok")
    composer = _composer(client, store, history_limit=4)

    await composer.respond(record, "user-1", "next question")

    sent = client.requests[0].messages[1:-1]
    assert [m.content for m in sent] == ["m14", "m16", "m17", "m18"]
    assert all(m.role in ("user", "assistant") for m in sent)


@pytest.mark.asyncio
async def test_chat_requires_a_result(tmp_path) -> None:
    store = SQLiteAnalysisStore(str(tmp_path / "chat.db"))
    record = _record(store, None)
    client = StubReasoningClient()

    with pytest.raises(ChatUnavailableError):
        await _composer(client, store).respond(record, "user-1", "Hello?")
    assert client.calls == 0
    assert store.list_chat_messages(record.id) == []


@pytest.mark.asyncio
async def test_failures_are_recorded_as_system_messages(tmp_path) -> None:
    store = SQLiteAnalysisStore(str(tmp_path / "chat.db"))
    record = _record(store, CreditAnalysis.model_validate(sample_analysis()))
    client = StubReasoningClient(service_error(503))

    with pytest.raises(ChatCompletionError):
        await _composer(client, store).respond(record, "user-1", "Still there?")

    assert client.calls == 2
    roles = [m.role for m in store.list_chat_messages(record.id)]
    assert roles == ["user", "system"]
    assert store.list_chat_messages(record.id)[-1].content.startswith("Error:")


@pytest.mark.asyncio
async def test_system_messages_are_not_replayed(tmp_path) -> None:
    store = SQLiteAnalysisStore(str(tmp_path / "chat.db"))
    record = _record(store, CreditAnalysis.model_validate(sample_analysis()))
    client = StubReasoningClient(service_error(500), service_error(500), "Recovered.")
    composer = _composer(client, store)

    with pytest.raises(ChatCompletionError):
        await composer.respond(record, "user-1", "First?")
    await composer.respond(record, "user-1", "Second?")

    assert [m.role for m in client.requests[-1].messages] == [
        "system",
        "user",
        "user",
    ]


@pytest.mark.asyncio
async def test_chat_timeout_is_bounded(tmp_path) -> None:
    store = SQLiteAnalysisStore(str(tmp_path / "chat.db"))
    record = _record(store, CreditAnalysis.model_validate(sample_analysis()))
    composer = _composer(StubReasoningClient(never_returns), store, timeout_seconds=0.1)

    with pytest.raises(StageTimeoutError):
        await composer.respond(record, "user-1", "Hello?")


@pytest.mark.asyncio
async def test_missing_credentials_are_reported(tmp_path) -> None:
    store = SQLiteAnalysisStore(str(tmp_path / "chat.db"))
    record = _record(store, CreditAnalysis.model_validate(sample_analysis()))

    with pytest.raises(ConfigurationError):
        await _composer(StubReasoningClient(service_error(403)), store).respond(
            record, "user-1", "Hello?"
        )
    assert store.list_chat_messages(record.id)[-1].content == (
        "Error: the assistant is not configured."
    )
