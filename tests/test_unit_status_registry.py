import pytest

from payroll_batch.jobs.status_registry import JobStatusRegistry
from payroll_batch.models.db.enums import JobState


def test_unknown_job_is_not_found():
    record = JobStatusRegistry().get("missing")
    assert record.status is JobState.NOT_FOUND
    assert record.job_id == "missing"


def test_merge_keeps_existing_fields():
    registry = JobStatusRegistry()
    registry.set("1", status=JobState.QUEUED, progress=0, data={"month": "March"})
    registry.set("1", status=JobState.PROCESSING, progress=40)
    record = registry.get("1")
    assert record.status is JobState.PROCESSING
    assert record.progress == 40
    assert record.data == {"month": "March"}
    assert record.updated_at is not None


def test_progress_never_decreases():
    registry = JobStatusRegistry()
    registry.set("1", progress=80)
    registry.set("1", progress=40)
    assert registry.get("1").progress == 80
    registry.set("1", progress=150)
    assert registry.get("1").progress == 100


def test_unknown_field_rejected():
    with pytest.raises(TypeError):
        JobStatusRegistry().set("1", colour="blue")


def test_eviction_prefers_terminal_records():
    registry = JobStatusRegistry(capacity=2)
    registry.set("a", status=JobState.PROCESSING)
    registry.set("b", status=JobState.COMPLETED, progress=100)
    registry.set("c", status=JobState.QUEUED)
    assert "a" in registry
    assert "b" not in registry
    assert "c" in registry
    assert len(registry) == 2


def test_eviction_falls_back_to_least_recently_updated():
    registry = JobStatusRegistry(capacity=2)
    registry.set("a", status=JobState.QUEUED)
    registry.set("b", status=JobState.QUEUED)
    registry.set("a", progress=10)  # a is now the most recent
    registry.set("c", status=JobState.QUEUED)
    assert "b" not in registry
    assert "a" in registry and "c" in registry


def test_record_just_updated_is_never_evicted():
    registry = JobStatusRegistry(capacity=1)
    registry.set("a", status=JobState.PROCESSING)
    registry.set("b", status=JobState.FAILED, error="boom")
    assert registry.get("b").status is JobState.FAILED
    assert "a" not in registry


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        JobStatusRegistry(capacity=0)


def test_terminal_status_is_final():
    registry = JobStatusRegistry()
    registry.set("1", status=JobState.COMPLETED, progress=100, result={"processed": 1})
    registry.set("1", status=JobState.QUEUED, progress=0)
    record = registry.get("1")
    assert record.status is JobState.COMPLETED
    assert record.progress == 100
    assert record.result == {"processed": 1}


def test_failed_job_stays_failed():
    registry = JobStatusRegistry()
    registry.set("1", status=JobState.FAILED, error="boom")
    registry.set("1", status=JobState.PROCESSING)
    assert registry.get("1").status is JobState.FAILED


def test_set_if_absent_keeps_existing_record():
    registry = JobStatusRegistry()
    registry.set("1", status=JobState.PROCESSING, progress=40)
    stored = registry.set_if_absent("1", status=JobState.QUEUED, progress=0)
    assert stored.status is JobState.PROCESSING
    assert registry.get("1").progress == 40
    created = registry.set_if_absent("2", status=JobState.QUEUED, progress=0)
    assert created.status is JobState.QUEUED
