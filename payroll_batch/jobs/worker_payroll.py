"""Background worker pool for processing queued payroll jobs."""
from __future__ import annotations

import threading
from typing import Optional

from payroll_batch.config import QUEUE_SETTINGS
from payroll_batch.exceptions import BrokerUnavailableError
from payroll_batch.jobs.availability import BrokerAvailability
from payroll_batch.jobs.redis_broker import BrokerJob, RedisJobBroker
from payroll_batch.jobs.retry_supervisor import AttemptState, JobAttempt, RetrySupervisor
from payroll_batch.jobs.status_registry import JobStatusRegistry
from payroll_batch.models.db.enums import ExecutionMode, JobState
from payroll_batch.services.payroll_engine import PayrollWorker
from payroll_batch.utils import get_logger, log_business_event

logger = get_logger(__name__)


class PayrollWorkerPool:
    def __init__(
        self,
        broker: RedisJobBroker,
        registry: JobStatusRegistry,
        worker: Optional[PayrollWorker] = None,
        supervisor: Optional[RetrySupervisor] = None,
        *,
        concurrency: Optional[int] = None,
        poll_interval: Optional[float] = None,
    ):
        self.broker = broker
        self.registry = registry
        self.worker = worker or PayrollWorker()
        self.supervisor = supervisor or RetrySupervisor()
        self.concurrency = max(1, int(concurrency if concurrency is not None else QUEUE_SETTINGS.get("concurrency", 3)))
        self.poll_interval = float(poll_interval if poll_interval is not None else QUEUE_SETTINGS.get("poll_interval", 1.0))
        self._threads: list[threading.Thread] = []
        self._stop_event = threading.Event()

    def start(self) -> None:
        if any(t.is_alive() for t in self._threads):  # pragma: no cover
            return
        try:
            self.broker.recover_stalled()
        except BrokerUnavailableError as e:
            logger.warning("Stalled job sweep skipped", error=str(e))
        self._stop_event.clear()
        self._threads = [
            threading.Thread(target=self._loop, name=f"payroll-worker-{i + 1}", daemon=True)
            for i in range(self.concurrency)
        ]
        for thread in self._threads:
            thread.start()
        logger.info("Payroll worker pool started", concurrency=self.concurrency)

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        logger.info("Payroll worker pool stop requested")
        if timeout is not None:
            for thread in self._threads:
                thread.join(timeout=timeout)

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                if not self.run_once():
                    self._stop_event.wait(self.poll_interval)
            except Exception as e:  # pragma: no cover - loop must survive
                logger.error("Worker loop error", error=str(e), exc_info=True)
                self._stop_event.wait(self.poll_interval)

    def run_once(self) -> bool:
        """Fetch and process at most one job. Returns True when a job was handled."""
        try:
            job = self.broker.fetch_next()
        except BrokerUnavailableError:
            # Availability already flipped by the broker; keep polling to notice recovery
            return False
        if job is None:
            return False
        self._process(job)
        return True

    def _process(self, job: BrokerJob) -> None:
        attempt = JobAttempt.from_attempts_made(job.job_id, job.attempts_made, last_error=job.last_error)
        # A redelivered job past its budget has used max_attempts, not number
        attempts_used = min(attempt.number, attempt.max_attempts)
        request = job.request
        logger.info(
            "Processing payroll job",
            job_id=job.job_id, tenant_id=request.tenant_id, attempt=attempt.number,
        )

        def _on_attempt(current: JobAttempt) -> None:
            self.registry.set(
                job.job_id,
                status=JobState.PROCESSING,
                mode=ExecutionMode.ASYNC,
                attempts=current.number,
                data=request.to_dict(),
            )

        def _on_progress(progress: int) -> None:
            self.registry.set(job.job_id, status=JobState.PROCESSING, progress=progress)
            try:
                self.broker.update_progress(job.job_id, progress)
            except BrokerUnavailableError as e:
                logger.warning("Progress update not mirrored to broker", job_id=job.job_id, error=str(e))

        outcome = self.supervisor.run(attempt, lambda: self.worker.run(request, _on_progress), on_attempt=_on_attempt)

        if outcome.state is AttemptState.SUCCEEDED:
            result = outcome.result
            self.registry.set(job.job_id, status=JobState.COMPLETED, progress=100, result=result, error=None)
            self._broker_finalise(
                "complete", lambda: self.broker.complete(job.job_id, result, attempts_made=attempt.number)
            )
            log_business_event(
                "payroll_job_completed",
                {"job_id": job.job_id, "processed": result.processed, "errors": result.errors},
                user_id=request.initiated_by,
                tenant_id=request.tenant_id,
            )
        elif outcome.state is AttemptState.PENDING:
            self.registry.set(job.job_id, status=JobState.QUEUED, attempts=attempt.number, error=None)
            self._broker_finalise(
                "retry_later",
                lambda: self.broker.retry_later(
                    job.job_id, outcome.retry_in or 0.0, attempts_made=attempt.number, error=outcome.error or "",
                ),
            )
        else:
            error = outcome.error or "payroll job failed"
            self.registry.set(job.job_id, status=JobState.FAILED, error=error, attempts=attempts_used)
            self._broker_finalise(
                "fail", lambda: self.broker.fail(job.job_id, error, attempts_made=attempts_used)
            )
            log_business_event(
                "payroll_job_failed",
                {"job_id": job.job_id, "error": error, "attempts": attempts_used},
                user_id=request.initiated_by,
                tenant_id=request.tenant_id,
            )

    def _broker_finalise(self, operation: str, call) -> None:
        try:
            call()
        except BrokerUnavailableError as e:
            # Registry already holds the outcome; the broker copy is best effort
            logger.error("Could not record job outcome in broker", operation=operation, error=str(e))


def create_broker(availability: BrokerAvailability) -> Optional[RedisJobBroker]:
    """Create the Redis broker when enabled by configuration; None means sync-only."""
    use_redis = bool(QUEUE_SETTINGS.get("use_redis", True))
    if not use_redis:
        availability.mark_error("redis disabled by configuration")
        logger.info("Redis disabled by configuration, payroll runs will be synchronous")
        return None
    broker = RedisJobBroker(availability)
    if availability.is_usable():
        logger.info("Using Redis-backed payroll queue")
    return broker


__all__ = ["PayrollWorkerPool", "create_broker"]
