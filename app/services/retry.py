"""Deadline-bounded retry wrapper shared by every pipeline stage."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from app.core.errors import PipelineError, StageTimeoutError

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """How many times, and how patiently, a transient failure is retried."""

    max_retries: int = 3
    backoff_seconds: float = 2.0
    backoff_multiplier: float = 2.0
    max_backoff_seconds: float = 30.0
    attempt_timeout_seconds: Optional[float] = None

    def delay_for(self, retry_number: int) -> float:
        """Backoff before retry ``retry_number`` (0-based)."""
        delay = self.backoff_seconds * (self.backoff_multiplier**retry_number)
        return min(delay, self.max_backoff_seconds)


class Deadline:
    """Absolute point in monotonic time after which no work may start."""

    def __init__(
        self, seconds: float, *, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self._clock = clock
        self.budget_seconds = seconds
        self.expires_at = clock() + seconds

    @classmethod
    def from_budget(
        cls,
        budget_seconds: float,
        *,
        safety_margin_seconds: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> "Deadline":
        """Reserve ``safety_margin_seconds`` of the caller's budget when it fits."""
        effective = budget_seconds - safety_margin_seconds
        if effective <= 0:
            effective = budget_seconds
        return cls(effective, clock=clock)

    def remaining(self) -> float:
        return max(0.0, self.expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0


class RetryTimeoutController:
    """Run an async operation under a deadline with bounded retries.

    Only ``PipelineError`` instances flagged ``retryable`` are retried; all other
    exceptions propagate on first occurrence. ``asyncio.CancelledError`` is never
    intercepted, so cancelling the caller aborts the in-flight attempt or backoff.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.policy = policy
        self._sleep = sleep

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        stage: str,
        deadline: Deadline,
        on_retry: Optional[Callable[[int, PipelineError], None]] = None,
    ) -> T:
        retries = 0
        while True:
            remaining = deadline.remaining()
            if remaining <= 0:
                raise StageTimeoutError(
                    f"{stage} did not start before the deadline expired.", stage=stage
                )
            attempt_timeout = remaining
            if self.policy.attempt_timeout_seconds is not None:
                attempt_timeout = min(remaining, self.policy.attempt_timeout_seconds)

            try:
                return await asyncio.wait_for(operation(), timeout=attempt_timeout)
            except PipelineError as exc:
                if exc.stage is None:
                    exc.stage = stage
                failure = exc
            except asyncio.TimeoutError as exc:
                if deadline.expired or attempt_timeout >= remaining:
                    raise StageTimeoutError(
                        f"{stage} exceeded its deadline of {deadline.budget_seconds:.1f}s.",
                        stage=stage,
                        cause=exc,
                    ) from exc
                # Only the per-attempt ceiling elapsed; the stage may still succeed.
                failure = StageTimeoutError(
                    f"{stage} attempt exceeded {attempt_timeout:.1f}s.",
                    stage=stage,
                    cause=exc,
                    retryable=True,
                )

            if not failure.retryable or retries >= self.policy.max_retries:
                raise failure

            delay = self.policy.delay_for(retries)
            if delay >= deadline.remaining():
                logger.warning(
                    "Not retrying %s: backoff of %.1fs would pass the deadline.",
                    stage,
                    delay,
                    extra={"stage": stage},
                )
                raise failure

            retries += 1
            logger.warning(
                "Retrying %s after transient failure (%d/%d): %s",
                stage,
                retries,
                self.policy.max_retries,
                failure.message,
                extra={"stage": stage},
            )
            if on_retry is not None:
                on_retry(retries, failure)
            if delay > 0:
                await self._sleep(delay)


__all__ = ["Deadline", "RetryPolicy", "RetryTimeoutController"]
