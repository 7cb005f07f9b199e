"""Bounded retry with exponential backoff for asynchronous payroll attempts.

States: PENDING -> ATTEMPTING(n) -> SUCCEEDED | FAILED, or back to PENDING
with attempt n+1 and a backoff delay. Attempt bookkeeping travels in an
immutable ``JobAttempt`` built from the broker's stored ``attempts_made``,
so two attempts of one job never share a mutable counter.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from typing import Callable, Generic, Optional, TypeVar

from payroll_batch.config import RETRY_POLICY
from payroll_batch.exceptions import NonRetryableJobError
from payroll_batch.utils import get_logger
from payroll_batch.utils.backoff import compute_backoff_seconds

logger = get_logger(__name__)

T = TypeVar("T")


class AttemptState(str, enum.Enum):
    PENDING = "pending"
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class JobAttempt:
    job_id: str
    number: int = 1  # 1-based
    max_attempts: int = 3
    last_error: Optional[str] = None

    @classmethod
    def from_attempts_made(
        cls,
        job_id: str,
        attempts_made: int,
        max_attempts: Optional[int] = None,
        last_error: Optional[str] = None,
    ) -> "JobAttempt":
        limit = int(max_attempts if max_attempts is not None else RETRY_POLICY["max_attempts"])
        return cls(job_id=job_id, number=max(0, attempts_made) + 1, max_attempts=limit, last_error=last_error)

    @property
    def is_last(self) -> bool:
        return self.number >= self.max_attempts

    def next(self, error: Optional[str] = None) -> "JobAttempt":
        return replace(self, number=self.number + 1, last_error=error)


@dataclass(frozen=True, slots=True)
class AttemptOutcome(Generic[T]):
    state: AttemptState
    attempt: JobAttempt          # the attempt that just ran
    result: Optional[T] = None
    error: Optional[str] = None
    next_attempt: Optional[JobAttempt] = None
    retry_in: Optional[float] = None  # seconds; only when state is PENDING


def next_delay(attempt: int) -> float:
    """Backoff after failed attempt number ``attempt``: base * factor ** (attempt - 1)."""
    return compute_backoff_seconds(attempt)


class RetrySupervisor:
    """Runs one attempt and classifies its outcome."""

    def __init__(self, delay_fn: Callable[[int], float] = next_delay) -> None:
        self._delay_fn = delay_fn

    def run(
        self,
        attempt: JobAttempt,
        fn: Callable[[], T],
        on_attempt: Optional[Callable[[JobAttempt], None]] = None,
    ) -> AttemptOutcome[T]:
        """Run ``fn`` as ``attempt``; ``on_attempt`` fires on entering ATTEMPTING."""
        if attempt.number > attempt.max_attempts:
            # Attempt budget already spent (a stalled job redelivered after its last attempt)
            return AttemptOutcome(
                state=AttemptState.FAILED,
                attempt=attempt,
                error=attempt.last_error or "retry budget exhausted",
            )
        logger.debug("Attempt started", job_id=attempt.job_id, attempt=attempt.number, max_attempts=attempt.max_attempts)
        if on_attempt is not None:
            on_attempt(attempt)
        try:
            result = fn()
        except NonRetryableJobError as e:
            logger.error("Attempt failed (non-retryable)", job_id=attempt.job_id, attempt=attempt.number, error=str(e))
            return AttemptOutcome(state=AttemptState.FAILED, attempt=attempt, error=str(e))
        except Exception as e:
            error = str(e) or type(e).__name__
            if attempt.is_last:
                logger.error("Attempt failed, retries exhausted", job_id=attempt.job_id, attempt=attempt.number, error=error)
                return AttemptOutcome(state=AttemptState.FAILED, attempt=attempt, error=error)
            delay = self._delay_fn(attempt.number)
            logger.warning(
                "Attempt failed, retry scheduled",
                job_id=attempt.job_id, attempt=attempt.number, retry_in=delay, error=error,
            )
            return AttemptOutcome(
                state=AttemptState.PENDING,
                attempt=attempt,
                error=error,
                next_attempt=attempt.next(error),
                retry_in=delay,
            )
        return AttemptOutcome(state=AttemptState.SUCCEEDED, attempt=attempt, result=result)


__all__ = ["AttemptState", "JobAttempt", "AttemptOutcome", "RetrySupervisor", "next_delay"]
