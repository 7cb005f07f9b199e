"""Payroll queue facade: submission, status polling and queue statistics.

Wires the availability signal, broker, registry, gateway, stats reporter and
worker pool together. ``build_payroll_queue_service`` creates the production
wiring; tests construct the pieces directly.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from payroll_batch.exceptions import BrokerUnavailableError
from payroll_batch.jobs.availability import BrokerAvailability
from payroll_batch.jobs.gateway import PayrollJobGateway, is_sync_job_id
from payroll_batch.jobs.payroll_job import JobStatusRecord, PayrollRunRequest, SubmissionResult
from payroll_batch.jobs.redis_broker import RedisJobBroker
from payroll_batch.jobs.stats import QueueStatsReporter
from payroll_batch.jobs.status_registry import JobStatusRegistry
from payroll_batch.jobs.worker_payroll import PayrollWorkerPool, create_broker
from payroll_batch.models.db.enums import ExecutionMode, JobState
from payroll_batch.services.payroll_engine import PayrollWorker
from payroll_batch.utils import get_logger, log_business_event
from payroll_batch.utils.time import utc_now

logger = get_logger(__name__)

# Broker job states -> polling contract
_BROKER_STATE_MAP: dict[str, JobState] = {
    "waiting": JobState.QUEUED,
    "delayed": JobState.QUEUED,
    "active": JobState.PROCESSING,
    "completed": JobState.COMPLETED,
    "failed": JobState.FAILED,
}


@dataclass
class PayrollQueueService:
    availability: BrokerAvailability
    registry: JobStatusRegistry
    gateway: PayrollJobGateway
    stats_reporter: QueueStatsReporter
    broker: Optional[RedisJobBroker] = None
    pool: Optional[PayrollWorkerPool] = None

    def submit_payroll_run(self, request: PayrollRunRequest) -> SubmissionResult:
        request.validate()
        if request.enqueued_at is None:
            request.enqueued_at = utc_now().isoformat()
        submission = self.gateway.submit(request)
        log_business_event(
            "payroll_run_submitted",
            {"job_id": submission.job_id, "mode": submission.mode.value, "month": request.month, "year": request.year},
            user_id=request.initiated_by,
            tenant_id=request.tenant_id,
        )
        return submission

    def get_job_status(self, job_id: str) -> JobStatusRecord:
        job_id = str(job_id)
        if not is_sync_job_id(job_id) and self.broker is not None and self.availability.is_usable():
            try:
                job = self.broker.get_job(job_id)
            except BrokerUnavailableError as e:
                logger.warning("Broker status lookup failed, using registry", job_id=job_id, error=str(e))
            else:
                if job is not None:
                    return self._from_broker(job)
        return self.registry.get(job_id)

    def _from_broker(self, job: dict[str, Any]) -> JobStatusRecord:
        cached = self.registry.get(job["job_id"])
        status = _BROKER_STATE_MAP.get(job["state"], JobState.QUEUED)
        progress = max(int(job["progress"]), cached.progress if cached.status is not JobState.NOT_FOUND else 0)
        return JobStatusRecord(
            job_id=job["job_id"],
            status=status,
            progress=100 if status is JobState.COMPLETED else progress,
            result=job["result"] if status is JobState.COMPLETED else None,
            error=job["error"] if status is JobState.FAILED else None,
            mode=ExecutionMode.ASYNC,
            attempts=int(job["attempts_made"]),
            data=job["data"],
            updated_at=cached.updated_at,
        )

    def get_queue_stats(self) -> dict[str, Any]:
        return self.stats_reporter.stats()

    def start(self) -> None:
        if self.pool is not None:
            self.pool.start()

    def stop(self) -> None:
        if self.pool is not None:
            self.pool.stop()


def build_payroll_queue_service(worker: Optional[PayrollWorker] = None) -> PayrollQueueService:
    availability = BrokerAvailability()
    registry = JobStatusRegistry()
    worker = worker or PayrollWorker()
    broker = create_broker(availability)
    pool = PayrollWorkerPool(broker, registry, worker) if broker is not None else None
    return PayrollQueueService(
        availability=availability,
        registry=registry,
        gateway=PayrollJobGateway(broker, availability, registry, worker),
        stats_reporter=QueueStatsReporter(broker, availability, registry),
        broker=broker,
        pool=pool,
    )


__all__ = ["PayrollQueueService", "build_payroll_queue_service"]
