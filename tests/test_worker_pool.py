"""Worker pool: async attempts under the retry supervisor, mirrored into the registry and broker."""
import time
from unittest.mock import patch

from payroll_batch.jobs.payroll_job import JobResult, PayrollRunRequest
from payroll_batch.models.db.enums import ExecutionMode, JobState
from payroll_batch.services.payroll_engine import PayrollWorker
from payroll_batch.services.payroll_repository import create_payroll_record


def _request() -> PayrollRunRequest:
    return PayrollRunRequest(tenant_id="tenant-1", month="March", year=2026)


def _make_due(fake_redis, job_id):
    fake_redis.zsets["payroll:delayed"][job_id] = time.time() - 1


def test_run_once_with_empty_queue(worker_pool):
    assert worker_pool.run_once() is False


def test_job_completes(gateway, worker_pool, registry, broker, employee_factory, payroll_count):
    for i in range(12):
        employee_factory(40000, code=f"E{i:02d}")
    job_id = gateway.submit(_request()).job_id

    assert worker_pool.run_once() is True
    record = registry.get(job_id)
    assert record.status is JobState.COMPLETED
    assert record.progress == 100
    assert record.mode is ExecutionMode.ASYNC
    assert record.attempts == 1
    assert record.result.processed == 12
    assert payroll_count() == 12
    stored = broker.get_job(job_id)
    assert stored["state"] == "completed"
    assert stored["result"] == record.result


def test_retry_then_success(gateway, worker_pool, registry, broker, fake_redis):
    job_id = gateway.submit(_request()).job_id
    ok = JobResult(total=0, processed=0, errors=0, error_list=[], month="March", year=2026)

    with patch.object(worker_pool.worker, "run", side_effect=[RuntimeError("db timeout"), ok]):
        worker_pool.run_once()
        record = registry.get(job_id)
        assert record.status is JobState.QUEUED
        assert record.attempts == 1
        stored = broker.get_job(job_id)
        assert stored["state"] == "delayed"
        assert stored["attempts_made"] == 1
        # Backoff of 5s keeps the job out of reach until due
        assert worker_pool.run_once() is False

        _make_due(fake_redis, job_id)
        assert worker_pool.run_once() is True

    record = registry.get(job_id)
    assert record.status is JobState.COMPLETED
    assert record.attempts == 2
    assert record.error is None


def test_retries_exhausted(gateway, worker_pool, registry, broker, fake_redis):
    job_id = gateway.submit(_request()).job_id

    with patch.object(worker_pool.worker, "run", side_effect=RuntimeError("db timeout")) as run:
        worker_pool.run_once()
        _make_due(fake_redis, job_id)
        worker_pool.run_once()
        _make_due(fake_redis, job_id)
        worker_pool.run_once()
        assert run.call_count == 3

    record = registry.get(job_id)
    assert record.status is JobState.FAILED
    assert record.error == "db timeout"
    assert record.attempts == 3
    stored = broker.get_job(job_id)
    assert stored["state"] == "failed"
    assert broker.counts()["failed"] == 1
    assert worker_pool.run_once() is False


def test_progress_mirrored_to_broker(gateway, worker_pool, broker, registry):
    job_id = gateway.submit(_request()).job_id
    seen = []

    def fake_run(request, on_progress):
        on_progress(50)
        seen.append(broker.get_job(job_id)["progress"])
        seen.append(registry.get(job_id).status)
        return JobResult(total=2, processed=2, errors=0, error_list=[], month="March", year=2026)

    with patch.object(worker_pool.worker, "run", side_effect=fake_run):
        worker_pool.run_once()
    assert seen == [50, JobState.PROCESSING]


def test_broker_down_during_poll(worker_pool, availability, fake_redis):
    fake_redis.down = True
    assert worker_pool.run_once() is False
    assert availability.is_usable() is False
    fake_redis.down = False
    assert worker_pool.run_once() is False
    assert availability.is_usable() is True


def test_start_and_stop_threads(gateway, worker_pool, registry):
    job_id = gateway.submit(_request()).job_id
    worker_pool.start()
    try:
        deadline = time.time() + 5
        while time.time() < deadline and registry.get(job_id).status is not JobState.COMPLETED:
            time.sleep(0.02)
    finally:
        worker_pool.stop(timeout=2)
    assert registry.get(job_id).status is JobState.COMPLETED


def test_retry_recomputes_only_missing_employees(
    gateway, worker_pool, registry, broker, fake_redis, employee_factory, payroll_count
):
    for i in range(25):
        employee_factory(30000, code=f"E{i:02d}")
    job_id = gateway.submit(_request()).job_id

    observed = []
    real_update = broker.update_progress

    def tracking_update(tracked_id, progress):
        real_update(tracked_id, progress)
        observed.append((registry.get(tracked_id).progress, broker.get_job(tracked_id)["progress"]))

    real_process = PayrollWorker._process_employee
    handled = {"count": 0}

    def lose_connection_after_twenty(self, session, request, employee):
        handled["count"] += 1
        if handled["count"] == 21:
            raise RuntimeError("connection lost")
        return real_process(self, session, request, employee)

    with patch.object(broker, "update_progress", side_effect=tracking_update):
        with patch.object(PayrollWorker, "_process_employee", autospec=True, side_effect=lose_connection_after_twenty):
            worker_pool.run_once()
        assert registry.get(job_id).status is JobState.QUEUED
        assert broker.get_job(job_id)["state"] == "delayed"
        assert payroll_count() == 20

        _make_due(fake_redis, job_id)
        with patch(
            "payroll_batch.services.payroll_engine.create_payroll_record",
            wraps=create_payroll_record,
        ) as create:
            worker_pool.run_once()
        assert create.call_count == 5

    assert payroll_count() == 25
    record = registry.get(job_id)
    assert record.status is JobState.COMPLETED
    assert record.attempts == 2
    assert record.result.processed == 25
    assert observed == [(40, 40), (80, 80), (80, 80), (80, 80), (100, 100)]


def test_start_requeues_stalled_jobs(broker, worker_pool, fake_redis):
    job_id = broker.add(_request())
    broker.fetch_next()  # held by a process that then died
    fake_redis.hashes[f"payroll:job:{job_id}"]["locked_until"] = str(time.time() - 1)

    with patch.object(worker_pool, "_loop"):
        worker_pool.start()
        worker_pool.stop(timeout=1)

    counts = broker.counts()
    assert counts["active"] == 0
    assert counts["waiting"] == 1
    assert broker.get_job(job_id)["attempts_made"] == 1


def test_stalled_job_past_retry_budget_fails(broker, worker_pool, registry, fake_redis):
    job_id = broker.add(_request())
    broker.fetch_next()
    # Third and last attempt was interrupted
    fake_redis.hashes[f"payroll:job:{job_id}"].update({"attempts_made": "2", "locked_until": "0"})

    with patch.object(worker_pool.worker, "run") as run:
        assert worker_pool.run_once() is True
        run.assert_not_called()

    record = registry.get(job_id)
    assert record.status is JobState.FAILED
    assert record.error == "job stalled"
    assert record.attempts == 3
    stored = broker.get_job(job_id)
    assert stored["state"] == "failed"
    assert stored["attempts_made"] == 3
    assert broker.counts()["active"] == 0
