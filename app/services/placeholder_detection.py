"""Heuristic scan for analyses that look like placeholder or sample data.

The scan only flags records for manual review. It never blocks a result.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Iterator

from app.schemas.analysis import CreditAnalysis

PLACEHOLDER_PHRASES: tuple[str, ...] = (
    "sample",
    "example",
    "test data",
    "mock",
    "dummy",
    "placeholder",
    "fake",
    "demo",
)
REVIEW_THRESHOLD = 50


@dataclass(slots=True)
class ReviewAssessment:
    confidence: int = 0
    reasons: list[str] = field(default_factory=list)

    @property
    def needs_review(self) -> bool:
        return self.confidence > REVIEW_THRESHOLD


def _strings(value: Any) -> Iterator[str]:
    if isinstance(value, str):
        yield value
    elif isinstance(value, dict):
        for item in value.values():
            yield from _strings(item)
    elif isinstance(value, list):
        for item in value:
            yield from _strings(item)


def assess_placeholder_content(analysis: CreditAnalysis) -> ReviewAssessment:
    payload = analysis.to_payload()
    payload.pop("fallbackReason", None)
    strings = list(_strings(payload))
    corpus = "\n".join(strings).lower()

    assessment = ReviewAssessment()
    for phrase in PLACEHOLDER_PHRASES:
        if phrase in corpus:
            assessment.confidence += 20
            assessment.reasons.append(f"contains placeholder phrase '{phrase}'")

    counts = Counter(s.strip() for s in strings if len(s.strip()) > 10)
    for text, count in counts.items():
        if count > 2:
            assessment.confidence += 10
            assessment.reasons.append(f"repeats '{text[:40]}' {count} times")

    assessment.confidence = min(assessment.confidence, 100)
    return assessment


__all__ = [
    "PLACEHOLDER_PHRASES",
    "REVIEW_THRESHOLD",
    "ReviewAssessment",
    "assess_placeholder_content",
]
