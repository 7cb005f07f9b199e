"""Pure arithmetic helpers used by progress reporting."""
from __future__ import annotations


def safe_div(numerator: float | int, denominator: float | int) -> float:
    if denominator in (0, 0.0):
        return 0.0
    return float(numerator) / float(denominator)


def progress_pct(done: int, total: int) -> int:
    """Whole-number percentage of ``done`` over ``total``, rounded half up, clamped to 0..100."""
    if total <= 0:
        return 100
    pct = int(safe_div(done * 100, total) + 0.5)
    return max(0, min(100, pct))


__all__ = ["safe_div", "progress_pct"]
