"""Queue statistics snapshot."""
from __future__ import annotations

from typing import Any, Optional

from payroll_batch.exceptions import BrokerUnavailableError
from payroll_batch.jobs.availability import BrokerAvailability
from payroll_batch.jobs.redis_broker import RedisJobBroker
from payroll_batch.jobs.status_registry import JobStatusRegistry
from payroll_batch.utils import get_logger

logger = get_logger(__name__)


class QueueStatsReporter:
    def __init__(
        self,
        broker: Optional[RedisJobBroker],
        availability: BrokerAvailability,
        registry: Optional[JobStatusRegistry] = None,
    ) -> None:
        self.broker = broker
        self.availability = availability
        self.registry = registry

    def stats(self) -> dict[str, Any]:
        if self.broker is None or not self.availability.is_usable():
            return {"available": False, "mode": "synchronous"}
        try:
            counts = self.broker.counts()
        except BrokerUnavailableError as e:
            logger.warning("Queue stats unavailable", error=str(e))
            return {"available": False, "mode": "synchronous"}
        stats: dict[str, Any] = {"available": True, "mode": "async", **counts}
        if self.registry is not None:
            stats["registry_size"] = len(self.registry)
        return stats


__all__ = ["QueueStatsReporter"]
