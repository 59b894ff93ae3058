"""
Pydantic models for credit report analyses, chat turns, and notifications.

The structured analysis payload uses the camelCase keys the reasoning service
is prompted with; every other envelope uses snake_case like the rest of the API.
"""

from __future__ import annotations

import math
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, List, Literal, Optional

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

SCORE_MIN = 300
SCORE_MAX = 850

Level = Literal["high", "medium", "low"]
Difficulty = Literal["easy", "medium", "hard"]
Priority = Literal["high", "normal", "low"]
ChatRole = Literal["user", "assistant", "system"]
Severity = Literal["info", "success", "warning", "error"]


def normalize_score(value: Any) -> Optional[int]:
    """Collapse anything that is not an integer in [300, 850] to ``None``."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        cleaned = value.strip()
        if not cleaned:
            return None
        try:
            value = float(cleaned)
        except ValueError:
            return None
    if isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            return None
        value = int(value)
    if isinstance(value, int) and SCORE_MIN <= value <= SCORE_MAX:
        return value
    return None


def _lower(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower()
    return value


LevelValue = Annotated[Level, BeforeValidator(_lower)]
DifficultyValue = Annotated[Difficulty, BeforeValidator(_lower)]


class _PayloadModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )


class Overview(_PayloadModel):
    score: Optional[int] = Field(
        None, description="Credit score stated in the report, or null when absent."
    )
    summary: str
    positive_factors: List[str]
    negative_factors: List[str]

    @field_validator("score", mode="before")
    @classmethod
    def _normalize_score(cls, value: Any) -> Optional[int]:
        return normalize_score(value)


class _ItemModel(_PayloadModel):
    """Recommendation rows; a null leaf falls back to the field default."""

    @model_validator(mode="before")
    @classmethod
    def _drop_null_leaves(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None}
        return data


class DisputeItem(_ItemModel):
    bureau: str = ""
    account_name: str = ""
    account_number: str = ""
    issue_type: str = ""
    recommended_action: str = ""


class Disputes(_PayloadModel):
    items: List[DisputeItem] = Field(default_factory=list)


class CreditHack(_ItemModel):
    title: str = ""
    description: str = ""
    impact: LevelValue = "medium"
    timeframe: str = ""
    steps: List[str] = Field(default_factory=list)


class CreditHacks(_PayloadModel):
    recommendations: List[CreditHack] = Field(default_factory=list)


class CreditCardRecommendation(_ItemModel):
    name: str = ""
    issuer: str = ""
    annual_fee: str = ""
    apr: str = ""
    rewards: str = ""
    approval_likelihood: LevelValue = "medium"
    best_for: str = ""


class CreditCards(_PayloadModel):
    recommendations: List[CreditCardRecommendation] = Field(default_factory=list)


class SideHustle(_ItemModel):
    title: str = ""
    description: str = ""
    potential_earnings: str = ""
    startup_cost: str = ""
    difficulty: DifficultyValue = "medium"
    time_commitment: str = ""
    skills: List[str] = Field(default_factory=list)


class SideHustles(_PayloadModel):
    recommendations: List[SideHustle] = Field(default_factory=list)


class CreditAnalysis(_PayloadModel):
    """Five-section structured analysis of a credit report."""

    overview: Overview
    disputes: Disputes
    credit_hacks: CreditHacks
    credit_cards: CreditCards
    side_hustles: SideHustles
    fallback: bool = Field(
        False,
        description="True when this is a placeholder produced because analysis failed.",
    )
    fallback_reason: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class AnalysisStatus(str, Enum):
    QUEUED = "queued"
    EXTRACTING = "extracting"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    ERROR = "error"


class AnalysisRequest(BaseModel):
    """One submission to the pipeline. Never persisted."""

    user_id: str = Field(..., min_length=1)
    media_type: Optional[str] = Field(
        None, description="Declared MIME type; sniffed from the bytes when omitted."
    )
    content: Optional[bytes] = Field(None, description="Raw document bytes.")
    text: Optional[str] = Field(None, description="Plain-text report content.")
    file_name: Optional[str] = None
    priority: Priority = "normal"
    cache_key: Optional[str] = Field(
        None, description="Caller-supplied identity used instead of a content digest."
    )


class AnalysisMetrics(BaseModel):
    processing_time_ms: int = 0
    extraction_time_ms: Optional[int] = None
    analysis_time_ms: Optional[int] = None
    retry_count: int = 0
    cache_hit: bool = False
    truncated: bool = False
    prompt_version: Optional[str] = None
    fallback_reason: Optional[str] = None


class AnalysisRecord(BaseModel):
    """Persisted state of one analysis."""

    id: str
    user_id: str
    status: AnalysisStatus
    file_name: Optional[str] = None
    media_type: Optional[str] = None
    fingerprint: Optional[str] = None
    result: Optional[CreditAnalysis] = None
    fallback: bool = False
    error_message: Optional[str] = None
    metrics: Optional[AnalysisMetrics] = None
    needs_review: bool = False
    review_reasons: List[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class ChatMessage(BaseModel):
    id: str
    analysis_id: str
    user_id: str
    role: ChatRole
    content: str
    created_at: datetime


class NotificationRecord(BaseModel):
    id: str
    user_id: str
    title: str
    message: str
    severity: Severity
    created_at: datetime


class AnalysisSubmission(BaseModel):
    """HTTP payload for submitting a credit report."""

    user_id: str = Field(..., min_length=1)
    media_type: Optional[str] = Field(
        None, description="MIME type such as application/pdf, image/png, text/plain."
    )
    text: Optional[str] = Field(None, description="Plain-text report content.")
    content_b64: Optional[str] = Field(
        None, description="Base64 encoded PDF or image bytes."
    )
    file_name: Optional[str] = None
    cache_key: Optional[str] = None
    priority: Priority = "normal"
    timeout_seconds: Optional[float] = Field(
        None, gt=0, description="Overall time budget; defaults to the server setting."
    )

    @model_validator(mode="after")
    def _require_single_source(self) -> "AnalysisSubmission":
        if (self.text is None) == (self.content_b64 is None):
            raise ValueError("Provide exactly one of 'text' or 'content_b64'.")
        return self


class AnalysisResponse(BaseModel):
    analysis_id: str
    status: AnalysisStatus
    result: CreditAnalysis
    fallback: bool
    metrics: AnalysisMetrics


class AnalysisJobResponse(BaseModel):
    analysis_id: str
    status: AnalysisStatus


class ChatRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1, max_length=4000)


class ChatResponse(BaseModel):
    user_message: ChatMessage
    reply: ChatMessage


__all__ = [
    "SCORE_MAX",
    "SCORE_MIN",
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
    "CreditCardRecommendation",
    "CreditCards",
    "CreditHack",
    "CreditHacks",
    "DisputeItem",
    "Disputes",
    "NotificationRecord",
    "Overview",
    "SideHustle",
    "SideHustles",
    "normalize_score",
]
