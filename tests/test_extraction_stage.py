try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

try:
    from ._stubs import SAMPLE_REPORT, StubReasoningClient, service_error
except ImportError:  # pragma: no cover - fallback for direct execution
    from _stubs import SAMPLE_REPORT, StubReasoningClient, service_error  # type: ignore

import pytest

from app.core.errors import (
    ConfigurationError,
    ExtractionError,
    InputValidationError,
    PayloadTooLargeError,
    UnsupportedMediaTypeError,
)
from app.schemas import AnalysisRequest
from app.services.extraction import ExtractionStage, sniff_media_type

PDF_BYTES = b"%PDF-1.7\n1 0 obj\n<<>>\nendobj\n"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


def _stage(client: StubReasoningClient | None = None, **kwargs) -> ExtractionStage:
    return ExtractionStage(client or StubReasoningClient(SAMPLE_REPORT), **kwargs)


def test_sniff_media_type_recognizes_common_formats() -> None:
    assert sniff_media_type(PDF_BYTES) == "application/pdf"
    assert sniff_media_type(PNG_BYTES) == "image/png"
    assert sniff_media_type(b"\xff\xd8\xff\xe0rest") == "image/jpeg"
    assert sniff_media_type(b"RIFF\x00\x00\x00\x00WEBPVP8 ") == "image/webp"
    assert sniff_media_type(b"plain words") is None


def test_validate_accepts_text_and_defaults_media_type() -> None:
    prepared = _stage().validate(AnalysisRequest(user_id="u", text=SAMPLE_REPORT))

    assert prepared.media_type == "text/plain"
    assert prepared.is_text
    assert prepared.text == SAMPLE_REPORT


def test_validate_decodes_text_uploads() -> None:
    prepared = _stage().validate(
        AnalysisRequest(
            user_id="u", media_type="text/plain; charset=utf-8", content=b"Score 712"
        )
    )

    assert prepared.text == "Score 712"
    assert prepared.content is None


def test_validate_sniffs_undeclared_binary_uploads() -> None:
    prepared = _stage().validate(
        AnalysisRequest(
            user_id="u", media_type="application/octet-stream", content=PDF_BYTES
        )
    )
    assert prepared.media_type == "application/pdf"


def test_validate_normalizes_jpeg_alias() -> None:
    prepared = _stage().validate(
        AnalysisRequest(user_id="u", media_type="IMAGE/JPG", content=b"\xff\xd8\xff")
    )
    assert prepared.media_type == "image/jpeg"


@pytest.mark.parametrize(
    "request_kwargs",
    [
        {"media_type": "application/zip", "content": b"PK\x03\x04"},
        {"media_type": None, "content": b"no magic bytes here"},
        {"media_type": "application/pdf", "text": "declared as pdf"},
    ],
)
def test_validate_rejects_unsupported_media(request_kwargs: dict) -> None:
    with pytest.raises(UnsupportedMediaTypeError):
        _stage().validate(AnalysisRequest(user_id="u", **request_kwargs))


def test_validate_rejects_oversized_uploads() -> None:
    stage = _stage(max_upload_bytes=10)
    with pytest.raises(PayloadTooLargeError):
        stage.validate(
            AnalysisRequest(user_id="u", media_type="application/pdf", content=PDF_BYTES)
        )


@pytest.mark.parametrize(
    "request_kwargs",
    [
        {},
        {"text": "report", "content": b"report"},
        {"text": "   \n"},
        {"media_type": "text/plain", "content": b"\xff\xfe\xfa"},
        {"media_type": "image/png", "content": b""},
    ],
)
def test_validate_rejects_invalid_input(request_kwargs: dict) -> None:
    with pytest.raises(InputValidationError):
        _stage().validate(AnalysisRequest(user_id="u", **request_kwargs))


@pytest.mark.asyncio
async def test_extract_passes_text_through_without_a_reasoning_call() -> None:
    client = StubReasoningClient()
    stage = _stage(client)
    prepared = stage.validate(AnalysisRequest(user_id="u", text=SAMPLE_REPORT))

    assert await stage.extract(prepared) == SAMPLE_REPORT
    assert client.calls == 0


@pytest.mark.asyncio
async def test_extract_transcribes_documents_with_an_attachment() -> None:
    client = StubReasoningClient(f"  {SAMPLE_REPORT}  ")
    stage = _stage(client)
    prepared = stage.validate(
        AnalysisRequest(user_id="u", media_type="application/pdf", content=PDF_BYTES)
    )

    text = await stage.extract(prepared)

    assert text == SAMPLE_REPORT.strip()
    request = client.requests[0]
    assert request.has_attachments
    attachment = request.messages[-1].attachments[0]
    assert attachment.mime_type == "application/pdf"
    assert attachment.data == PDF_BYTES
    assert request.temperature == pytest.approx(0.1)


@pytest.mark.asyncio
async def test_extract_rejects_near_empty_transcriptions() -> None:
    stage = _stage(StubReasoningClient("n/a"), min_extracted_chars=20)
    prepared = stage.validate(
        AnalysisRequest(user_id="u", media_type="image/png", content=PNG_BYTES)
    )

    with pytest.raises(ExtractionError) as excinfo:
        await stage.extract(prepared)
    assert excinfo.value.retryable is False


@pytest.mark.asyncio
async def test_extract_translates_service_errors() -> None:
    stage = _stage(StubReasoningClient(service_error(503)))
    prepared = stage.validate(
        AnalysisRequest(user_id="u", media_type="image/png", content=PNG_BYTES)
    )

    with pytest.raises(ExtractionError) as excinfo:
        await stage.extract(prepared)
    assert excinfo.value.retryable is True
    assert excinfo.value.stage == "extraction"


@pytest.mark.asyncio
async def test_extract_treats_rejected_credentials_as_configuration() -> None:
    stage = _stage(StubReasoningClient(service_error(401)))
    prepared = stage.validate(
        AnalysisRequest(user_id="u", media_type="image/png", content=PNG_BYTES)
    )

    with pytest.raises(ConfigurationError):
        await stage.extract(prepared)
