"""Broker availability signal (process-local).

One authoritative boolean answering "is the job broker usable right now".
The broker reports every successful round trip through ``mark_ready`` and
every connection/dispatch failure through ``mark_error``; readers only call
``is_usable``, which never blocks and never raises.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime

from payroll_batch.utils import get_logger
from payroll_batch.utils.time import utc_now

logger = get_logger(__name__)


@dataclass
class AvailabilityState:
    usable: bool = False
    changed_at: datetime | None = None
    last_error: str | None = None
    error_count: int = 0


class BrokerAvailability:
    def __init__(self, *, initially_usable: bool = False) -> None:
        self._state = AvailabilityState(usable=initially_usable)
        self._lock = threading.Lock()

    def is_usable(self) -> bool:
        return self._state.usable

    def mark_ready(self) -> None:
        with self._lock:
            if self._state.usable:
                return
            self._state.usable = True
            self._state.changed_at = utc_now()
            self._state.last_error = None
        logger.info("Job broker connection ready - dispatching asynchronously")

    def mark_error(self, error: BaseException | str | None = None) -> None:
        message = str(error) if error is not None else "unknown error"
        with self._lock:
            was_usable = self._state.usable
            self._state.usable = False
            self._state.last_error = message
            self._state.error_count += 1
            if was_usable:
                self._state.changed_at = utc_now()
        if was_usable:
            logger.warning("Job broker unavailable - falling back to synchronous processing", error=message)

    def snapshot(self) -> dict[str, object]:
        st = self._state
        return {
            "usable": st.usable,
            "changed_at": st.changed_at.isoformat() if st.changed_at else None,
            "last_error": st.last_error,
            "error_count": st.error_count,
        }


__all__ = ["BrokerAvailability", "AvailabilityState"]
