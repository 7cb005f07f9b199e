"""Exponential backoff helpers for job retries."""
from __future__ import annotations

import random
from typing import Optional

from payroll_batch.config import RETRY_POLICY


def compute_backoff_seconds(attempt: int, *, base: Optional[float] = None, factor: Optional[int] = None, max_seconds: Optional[float] = None, jitter_pct: Optional[float] = None) -> float:
    """Delay to wait after failed attempt number ``attempt`` (1-based).

    ``base * factor ** (attempt - 1)`` capped at ``max_seconds``; optional +/- jitter.
    """
    if attempt < 1:
        attempt = 1
    base = float(base if base is not None else RETRY_POLICY["base_seconds"])
    factor = int(factor if factor is not None else RETRY_POLICY["factor"])
    max_seconds = float(max_seconds if max_seconds is not None else RETRY_POLICY["max_seconds"])
    jitter_pct = float(jitter_pct if jitter_pct is not None else RETRY_POLICY["jitter_pct"])

    delay = base * (factor ** (attempt - 1))
    delay = min(delay, max_seconds)
    if jitter_pct > 0:
        jitter_amount = delay * jitter_pct
        delay = random.uniform(delay - jitter_amount, delay + jitter_amount)
    return max(delay, 0.0)


__all__ = ["compute_backoff_seconds"]
