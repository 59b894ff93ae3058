"""
Structured credit analysis over extracted report text.

The prompt and the expected JSON schema are versioned together so a deployment
can switch wording through configuration without touching the parsing code.
Parsing tolerates prose around the JSON object but never invents a result: an
unusable response raises ``AnalysisError`` with the raw text attached.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from textwrap import dedent
from typing import Any, Optional

from pydantic import ValidationError

from app.clients.reasoning import (
    ReasoningClient,
    ReasoningMessage,
    ReasoningRequest,
    ReasoningServiceError,
)
from app.core.errors import AnalysisError, ConfigurationError
from app.schemas.analysis import SCORE_MAX, SCORE_MIN, CreditAnalysis

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "\n\n[Report truncated: remaining content exceeded the analysis limit]"

_SCHEMA_BLOCK = dedent(
    """\
    {
      "overview": {
        "score": number | null,
        "summary": string,
        "positiveFactors": string[],
        "negativeFactors": string[]
      },
      "disputes": {
        "items": [
          {"bureau": string, "accountName": string, "accountNumber": string,
           "issueType": string, "recommendedAction": string}
        ]
      },
      "creditHacks": {
        "recommendations": [
          {"title": string, "description": string, "impact": "high" | "medium" | "low",
           "timeframe": string, "steps": string[]}
        ]
      },
      "creditCards": {
        "recommendations": [
          {"name": string, "issuer": string, "annualFee": string, "apr": string,
           "rewards": string, "approvalLikelihood": "high" | "medium" | "low",
           "bestFor": string}
        ]
      },
      "sideHustles": {
        "recommendations": [
          {"title": string, "description": string, "potentialEarnings": string,
           "startupCost": string, "difficulty": "easy" | "medium" | "hard",
           "timeCommitment": string, "skills": string[]}
        ]
      }
    }"""
)

_STRICT_SYSTEM_PROMPT = (
    "You are an expert credit analyst. Return ONLY valid JSON without any markdown, "
    "code blocks, or explanations. If you cannot find a credit score in the report, "
    "set score to null. DO NOT make up data."
)


@dataclass(frozen=True, slots=True)
class PromptTemplate:
    version: str
    system_prompt: str
    user_template: str

    def render(self, report_text: str) -> list[ReasoningMessage]:
        return [
            ReasoningMessage(role="system", content=self.system_prompt),
            ReasoningMessage(
                role="user",
                content=self.user_template.replace("{report}", report_text),
            ),
        ]


_V1_USER_TEMPLATE = (
    dedent(
        """\
        You are an expert credit analyst with deep knowledge of credit repair strategies, financial products, and side hustles. Analyze the following credit report text and provide a comprehensive analysis with the following sections:

        1. Overview:
           - IMPORTANT: If the credit report does NOT explicitly mention a credit score, set the score to null.
           - DO NOT make up or estimate a score if one is not clearly stated in the report.
           - Only provide a score if it is explicitly mentioned in the report.
           - Provide a detailed summary of the credit report, and list positive and negative factors.

        2. Disputes: Identify items that could be disputed, including the credit bureau, account name, account number, issue type, and recommended action. Be specific about why each item can be disputed.

        3. Credit Hacks: Provide strategic, actionable recommendations to improve the credit score, including the potential impact (high/medium/low) and timeframe. Include specific steps the user should take.

        4. Credit Card Recommendations: Based on the credit profile, recommend 3-5 specific credit cards appropriate for the user, including APR, annual fees, rewards, and approval likelihood.

        5. Side Hustles: Suggest diverse income opportunities based on the credit profile, including potential earnings, startup costs, and difficulty level.

        Credit Report Text:
        {report}

        Format your response as a JSON object with the following structure:
        """
    )
    + _SCHEMA_BLOCK
    + dedent(
        """

        IMPORTANT:
        - Your response must be ONLY the JSON object. Do not include any explanations, markdown formatting, or code blocks.
        - If no credit score is found in the report, set "score" to null, not a number.
        - DO NOT MAKE UP DATA. Only use information that is present in the credit report.
        - If the report doesn't have enough information, acknowledge this in the summary and provide general advice.
        """
    )
)

PROMPT_VERSIONS: dict[str, PromptTemplate] = {
    "v1": PromptTemplate(
        version="v1",
        system_prompt=_STRICT_SYSTEM_PROMPT,
        user_template=_V1_USER_TEMPLATE,
    ),
    "v2": PromptTemplate(
        version="v2",
        system_prompt=(
            _STRICT_SYSTEM_PROMPT
            + " Respond with a single JSON object matching this schema:\n"
            + _SCHEMA_BLOCK
        ),
        user_template=(
            "Analyze this credit report. Cover the overview, disputable items, credit "
            "improvement strategies, suitable credit cards, and side income ideas. "
            "Use only facts stated in the report.\n\nCredit Report Text:\n{report}"
        ),
    ),
}


def get_prompt(version: str) -> PromptTemplate:
    try:
        return PROMPT_VERSIONS[version]
    except KeyError as exc:
        raise ConfigurationError(
            f"Unknown analysis prompt version '{version}'. "
            f"Known versions: {', '.join(sorted(PROMPT_VERSIONS))}.",
            stage="configuration",
            cause=exc,
        ) from exc


def truncate_report(text: str, max_chars: int) -> tuple[str, bool]:
    """Cut ``text`` to ``max_chars`` and flag the cut with a marker line."""
    if len(text) <= max_chars:
        return text, False
    return text[:max_chars] + TRUNCATION_MARKER, True


def extract_json_object(raw: str) -> Optional[dict[str, Any]]:
    """Return the first complete JSON object embedded in ``raw``."""
    decoder = json.JSONDecoder()
    for match in re.finditer(r"\{", raw):
        try:
            value, _end = decoder.raw_decode(raw, match.start())
        except json.JSONDecodeError:
            continue
        if isinstance(value, dict):
            return value
    return None


def parse_analysis_response(raw: str) -> CreditAnalysis:
    """Validate a model response against the five-section schema."""
    payload = extract_json_object(raw or "")
    if payload is None:
        raise AnalysisError(
            "Analysis response did not contain a JSON object.",
            raw_response=raw,
            retryable=False,
        )
    # Only the pipeline may label a result as a placeholder.
    payload.pop("fallback", None)
    payload.pop("fallbackReason", None)
    try:
        analysis = CreditAnalysis.model_validate(payload)
    except ValidationError as exc:
        raise AnalysisError(
            f"Analysis response failed schema validation: {exc.error_count()} error(s)",
            raw_response=raw,
            cause=exc,
            retryable=False,
        ) from exc

    overview = payload.get("overview")
    stated = overview.get("score") if isinstance(overview, dict) else None
    if stated is not None and analysis.overview.score is None:
        logger.warning(
            "Discarded credit score %r: not an integer between %d and %d",
            stated,
            SCORE_MIN,
            SCORE_MAX,
            extra={"stage": "analysis"},
        )
    return analysis


@dataclass(slots=True)
class AnalysisOutput:
    analysis: CreditAnalysis
    truncated: bool
    prompt_version: str
    raw_response: str


class CreditAnalysisStage:
    """Run the versioned analysis prompt and validate the structured answer."""

    def __init__(
        self,
        reasoning_client: ReasoningClient,
        *,
        prompt_version: str = "v1",
        max_text_chars: int = 60_000,
    ) -> None:
        self._reasoning = reasoning_client
        self._prompt = get_prompt(prompt_version)
        self._max_text_chars = max_text_chars

    @property
    def prompt_version(self) -> str:
        return self._prompt.version

    def build_request(self, text: str) -> tuple[ReasoningRequest, bool]:
        report, truncated = truncate_report(text, self._max_text_chars)
        request = ReasoningRequest(
            messages=self._prompt.render(report),
            temperature=0.3,
            max_output_tokens=4096,
        )
        return request, truncated

    async def analyze(self, text: str) -> AnalysisOutput:
        if not text or not text.strip():
            raise AnalysisError(
                "Cannot analyze an empty report.", retryable=False
            )
        request, truncated = self.build_request(text)
        if truncated:
            logger.warning(
                "Report text truncated from %d to %d characters",
                len(text),
                self._max_text_chars,
                extra={"stage": "analysis"},
            )

        try:
            raw = await self._reasoning.complete(request)
        except ReasoningServiceError as exc:
            raise exc.as_pipeline_error(AnalysisError, stage="analysis") from exc

        analysis = parse_analysis_response(raw)
        return AnalysisOutput(
            analysis=analysis,
            truncated=truncated,
            prompt_version=self._prompt.version,
            raw_response=raw,
        )



__all__ = [
    "AnalysisOutput",
    "CreditAnalysisStage",
    "PROMPT_VERSIONS",
    "PromptTemplate",
    "TRUNCATION_MARKER",
    "extract_json_object",
    "get_prompt",
    "parse_analysis_response",
    "truncate_report",
]
