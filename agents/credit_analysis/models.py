"""
Data models shared across the credit analysis agent package.
"""

from __future__ import annotations

from typing import Optional, TypedDict


class AnalysisJobPayload(TypedDict):
    """Payload structure stored in the SQLite job queue."""

    analysis_id: str
    user_id: str
    media_type: Optional[str]
    text: Optional[str]
    content_b64: Optional[str]
    file_name: Optional[str]
    cache_key: Optional[str]
    priority: str
    timeout_budget: Optional[float]
    requested_at: str


__all__ = ["AnalysisJobPayload"]
