"""Single entry point for payroll run submission.

Dispatches to the Redis broker when it is usable; otherwise (or when the
enqueue itself fails) runs the payroll worker inline under a synthesized
``sync-`` job id. Either way exactly one registry entry is created and the
caller never sees a broker or worker exception.
"""
from __future__ import annotations

import secrets
from typing import Optional

from payroll_batch.exceptions import BrokerUnavailableError
from payroll_batch.jobs.availability import BrokerAvailability
from payroll_batch.jobs.payroll_job import PayrollRunRequest, SubmissionResult
from payroll_batch.jobs.redis_broker import RedisJobBroker
from payroll_batch.jobs.status_registry import JobStatusRegistry
from payroll_batch.models.db.enums import ExecutionMode, JobState
from payroll_batch.services.payroll_engine import PayrollWorker
from payroll_batch.utils import get_logger
from payroll_batch.utils.time import epoch_ms

logger = get_logger(__name__)

SYNC_PREFIX = "sync-"


def new_sync_job_id() -> str:
    # Millisecond timestamp plus a random suffix so two runs in the same ms stay distinct
    return f"{SYNC_PREFIX}{epoch_ms()}-{secrets.token_hex(3)}"


def is_sync_job_id(job_id: str) -> bool:
    return str(job_id).startswith(SYNC_PREFIX)


class PayrollJobGateway:
    def __init__(
        self,
        broker: Optional[RedisJobBroker],
        availability: BrokerAvailability,
        registry: JobStatusRegistry,
        worker: Optional[PayrollWorker] = None,
    ) -> None:
        self.broker = broker
        self.availability = availability
        self.registry = registry
        self.worker = worker or PayrollWorker()

    def submit(self, request: PayrollRunRequest) -> SubmissionResult:
        if self.broker is not None and self.availability.is_usable():
            try:
                job_id = self.broker.add(request)
            except BrokerUnavailableError as e:
                # The broker has already marked itself unavailable
                logger.warning("Payroll enqueue failed, running synchronously", tenant_id=request.tenant_id, error=str(e))
            else:
                # A pool worker may already have picked the job up
                self.registry.set_if_absent(
                    job_id,
                    status=JobState.QUEUED,
                    progress=0,
                    mode=ExecutionMode.ASYNC,
                    data=request.to_dict(),
                )
                logger.info("Payroll job queued", job_id=job_id, run_key=request.key(), priority=request.priority)
                return SubmissionResult(job_id=job_id, mode=ExecutionMode.ASYNC)
        return self._run_sync(request)

    def _run_sync(self, request: PayrollRunRequest) -> SubmissionResult:
        job_id = new_sync_job_id()
        self.registry.set(
            job_id,
            status=JobState.PROCESSING,
            progress=0,
            mode=ExecutionMode.SYNC,
            attempts=1,
            data=request.to_dict(),
        )
        logger.info("Processing payroll synchronously", job_id=job_id, run_key=request.key())
        try:
            result = self.worker.run(
                request,
                lambda progress: self.registry.set(job_id, progress=progress),
            )
        except Exception as e:
            error = str(e) or type(e).__name__
            self.registry.set(job_id, status=JobState.FAILED, error=error)
            logger.error("Synchronous payroll run failed", job_id=job_id, error=error, exc_info=True)
            return SubmissionResult(job_id=job_id, mode=ExecutionMode.SYNC, error=error)
        self.registry.set(job_id, status=JobState.COMPLETED, progress=100, result=result)
        return SubmissionResult(job_id=job_id, mode=ExecutionMode.SYNC, result=result)


__all__ = ["PayrollJobGateway", "new_sync_job_id", "is_sync_job_id", "SYNC_PREFIX"]
