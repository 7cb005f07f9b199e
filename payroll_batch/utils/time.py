"""Time utilities (UTC now, epoch millis)."""
from __future__ import annotations
import time
from datetime import datetime, timezone

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

def epoch_ms() -> int:
    return int(time.time() * 1000)

__all__ = ["utc_now", "epoch_ms"]
