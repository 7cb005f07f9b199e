"""Bounded in-process job status registry.

Maps a job id to its latest ``JobStatusRecord``. Mirrors broker state for async
jobs and is the only store for synchronous runs, so both paths share a single
polling contract.

Retention: an LRU ordered by last update. When capacity is exceeded the least
recently updated *terminal* record (completed / failed) is evicted; only if no
terminal record exists is the least recently updated record evicted instead.

Progress is monotonic per job: a merge carrying a lower progress value keeps
the stored one. Once a record is completed or failed its status no longer
changes.
"""
from __future__ import annotations

import threading
from collections import OrderedDict
from dataclasses import replace
from typing import Any, Optional

from payroll_batch.config import JOB_STATUS_SETTINGS
from payroll_batch.jobs.payroll_job import JobStatusRecord
from payroll_batch.models.db.enums import JobState
from payroll_batch.utils import get_logger
from payroll_batch.utils.time import utc_now

logger = get_logger(__name__)

_MERGEABLE_FIELDS = {"status", "progress", "result", "error", "mode", "attempts", "data"}


class JobStatusRegistry:
    def __init__(self, capacity: Optional[int] = None) -> None:
        self._capacity = int(capacity if capacity is not None else JOB_STATUS_SETTINGS.get("capacity", 500))
        if self._capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._records: "OrderedDict[str, JobStatusRecord]" = OrderedDict()
        self._lock = threading.RLock()

    def set(self, job_id: str, **fields: Any) -> JobStatusRecord:
        """Merge ``fields`` into the record for ``job_id`` (created if absent)."""
        unknown = set(fields) - _MERGEABLE_FIELDS
        if unknown:
            raise TypeError(f"Unknown job status fields: {sorted(unknown)}")
        job_id = str(job_id)
        with self._lock:
            current = self._records.get(job_id) or JobStatusRecord(job_id=job_id)
            if fields.get("progress") is None:
                fields.pop("progress", None)
            else:
                fields["progress"] = max(current.progress, min(100, int(fields["progress"])))
            if fields.get("status") is None:
                fields.pop("status", None)
            else:
                fields["status"] = JobState(fields["status"])
                if current.status.is_terminal and fields["status"] is not current.status:
                    # Terminal states are final
                    logger.debug(
                        "Ignoring status change on finished job",
                        job_id=job_id, current=current.status.value, requested=fields["status"].value,
                    )
                    fields.pop("status")
            return self._store(replace(current, **fields, updated_at=utc_now()))

    def set_if_absent(self, job_id: str, **fields: Any) -> JobStatusRecord:
        """Create the record for ``job_id`` unless one exists; returns the stored record."""
        with self._lock:
            existing = self._records.get(str(job_id))
            if existing is not None:
                return existing
            return self.set(job_id, **fields)

    def _store(self, record: JobStatusRecord) -> JobStatusRecord:
        self._records[record.job_id] = record
        self._records.move_to_end(record.job_id)
        self._evict(protect=record.job_id)
        return record

    def get(self, job_id: str) -> JobStatusRecord:
        with self._lock:
            record = self._records.get(str(job_id))
        return record if record is not None else JobStatusRecord.not_found(str(job_id))

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return str(job_id) in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    @property
    def capacity(self) -> int:
        return self._capacity

    def _evict(self, protect: str) -> None:
        while len(self._records) > self._capacity:
            candidates = [jid for jid in self._records if jid != protect]
            victim = next(
                (jid for jid in candidates if self._records[jid].status.is_terminal),
                candidates[0],
            )
            evicted = self._records.pop(victim)
            logger.debug("Evicted job status record", job_id=victim, status=evicted.status.value)


__all__ = ["JobStatusRegistry"]
