"""Stub reasoning clients and sample payloads shared by the test modules."""

from __future__ import annotations

import asyncio
import copy
import json
from typing import Any, Callable, Optional, Union

from app.clients.reasoning import ReasoningRequest, ReasoningServiceError

SAMPLE_REPORT = """EQUIFAX CREDIT REPORT
Consumer: Jordan Avery
FICO Score 8: 712
Open accounts: 6   Closed accounts: 2
Chase Sapphire Preferred  Balance $1,240  Limit $8,000  Current
Capital One Quicksilver   Balance $3,950  Limit $4,500  Current
Midland Credit Management Collection  $640  Reported 2022-03
Hard inquiries (24 months): 3
"""

SAMPLE_ANALYSIS: dict[str, Any] = {
    "overview": {
        "score": 712,
        "summary": "Your credit is in good shape, held back by one collection account.",
        "positiveFactors": ["Every open account is reported as current"],
        "negativeFactors": [
            "Capital One Quicksilver is 88% utilized",
            "A $640 Midland Credit Management collection",
        ],
    },
    "disputes": {
        "items": [
            {
                "bureau": "Equifax",
                "accountName": "Midland Credit Management",
                "accountNumber": "XXXX-1234",
                "issueType": "Collection account",
                "recommendedAction": "Request debt validation from Midland.",
            }
        ]
    },
    "creditHacks": {
        "recommendations": [
            {
                "title": "Pay down Capital One Quicksilver",
                "description": "Bring the Quicksilver balance under $1,350.",
                "impact": "High",
                "timeframe": "1-2 months",
                "steps": ["Pay $2,600 toward the balance"],
            }
        ]
    },
    "creditCards": {
        "recommendations": [
            {
                "name": "Chase Freedom Unlimited",
                "issuer": "Chase",
                "annualFee": "$0",
                "apr": "20.49%-29.24%",
                "rewards": "1.5% cash back",
                "approvalLikelihood": "high",
                "bestFor": "Everyday purchases",
            }
        ]
    },
    "sideHustles": {
        "recommendations": [
            {
                "title": "Weekend bookkeeping",
                "description": "Keep the books for local small businesses.",
                "potentialEarnings": "$400-$800/month",
                "startupCost": "$0",
                "difficulty": "Medium",
                "timeCommitment": "6 hours/week",
                "skills": ["Spreadsheets"],
            }
        ]
    },
}


def sample_analysis(**overview: Any) -> dict[str, Any]:
    payload = copy.deepcopy(SAMPLE_ANALYSIS)
    payload["overview"].update(overview)
    return payload


def sample_response(**overview: Any) -> str:
    return json.dumps(sample_analysis(**overview))


Reply = Union[str, BaseException, Callable[[ReasoningRequest], Any]]


class StubReasoningClient:
    """Replays scripted replies and records every request it receives.

    A reply may be a string, an exception to raise, or a callable whose
    (possibly awaitable) return value becomes the reply. The last reply is
    repeated once the script runs out.
    """

    def __init__(self, *replies: Reply) -> None:
        self._replies: list[Reply] = list(replies) or [sample_response()]
        self.requests: list[ReasoningRequest] = []

    def script(self, *replies: Reply) -> None:
        self._replies = list(replies)

    @property
    def calls(self) -> int:
        return len(self.requests)

    async def complete(self, request: ReasoningRequest) -> str:
        self.requests.append(request)
        reply = self._replies.pop(0) if len(self._replies) > 1 else self._replies[0]
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            value = reply(request)
            if asyncio.iscoroutine(value):
                value = await value
            return value
        return reply


async def never_returns(_request: ReasoningRequest) -> str:
    await asyncio.sleep(3600)
    return ""


def service_error(status_code: Optional[int] = 503) -> ReasoningServiceError:
    return ReasoningServiceError(
        f"upstream returned {status_code}", status_code=status_code
    )


class RecordingNotifier:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[tuple[str, str, str, str]] = []

    def notify(self, user_id: str, title: str, message: str, severity: str) -> None:
        if self.fail:
            raise RuntimeError("notification backend unavailable")
        self.sent.append((user_id, title, message, severity))
