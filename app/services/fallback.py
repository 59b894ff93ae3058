"""Clearly labeled placeholder analyses for runs that could not complete."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from app.schemas.analysis import (
    CreditAnalysis,
    CreditHack,
    CreditHacks,
    CreditCards,
    Disputes,
    Overview,
    SideHustles,
)


class FallbackReason(str, Enum):
    EXTRACTION_FAILED = "extraction_failed"
    ANALYSIS_FAILED = "analysis_failed"
    TIMEOUT = "timeout"


_SUMMARIES = {
    FallbackReason.EXTRACTION_FAILED: (
        "This is a placeholder, not an analysis of your report. We could not read the "
        "text of the document you uploaded, so none of its details were analyzed."
    ),
    FallbackReason.ANALYSIS_FAILED: (
        "This is a placeholder, not an analysis of your report. Our analysis service "
        "could not produce a usable result, so the details of your credit report could "
        "not be analyzed at this time."
    ),
    FallbackReason.TIMEOUT: (
        "This is a placeholder, not an analysis of your report. The analysis took "
        "longer than expected and was stopped before it finished, so the details of "
        "your credit report could not be analyzed at this time."
    ),
}


class FallbackGenerator:
    """Build the static result returned when the pipeline cannot finish."""

    def generate(
        self, reason: FallbackReason, detail: Optional[str] = None
    ) -> CreditAnalysis:
        summary = _SUMMARIES[reason]
        if detail:
            summary = f"{summary} Reason: {detail}"
        unavailable = "Unable to determine because the report could not be analyzed."
        return CreditAnalysis(
            overview=Overview(
                score=None,
                summary=summary,
                positive_factors=[unavailable],
                negative_factors=[unavailable],
            ),
            disputes=Disputes(items=[]),
            credit_hacks=CreditHacks(
                recommendations=[
                    CreditHack(
                        title="Try again later",
                        description=(
                            "Upload the same report again in a few minutes to get a "
                            "complete analysis."
                        ),
                        impact="high",
                        timeframe="Immediate",
                        steps=[
                            "Wait a few minutes",
                            "Upload your credit report again",
                            "Contact support if the problem persists",
                        ],
                    ),
                    CreditHack(
                        title="Get a free copy of your credit report",
                        description=(
                            "Request free reports from all three bureaus to review "
                            "them yourself in the meantime."
                        ),
                        impact="medium",
                        timeframe="1-2 weeks",
                        steps=[
                            "Visit annualcreditreport.com",
                            "Request reports from Equifax, Experian, and TransUnion",
                            "Review each report for errors",
                        ],
                    ),
                ]
            ),
            credit_cards=CreditCards(recommendations=[]),
            side_hustles=SideHustles(recommendations=[]),
            fallback=True,
            fallback_reason=reason.value,
        )


__all__ = ["FallbackGenerator", "FallbackReason"]
