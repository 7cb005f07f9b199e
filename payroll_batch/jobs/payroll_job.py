"""Payroll run job payload and job record structures."""
from __future__ import annotations

from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Optional

from payroll_batch.exceptions import InvalidPayrollRequestError
from payroll_batch.models.db.enums import JobState, ExecutionMode


@dataclass(slots=True)
class PayrollRunRequest:
    tenant_id: str
    month: str
    year: int
    employee_ids: list[int] = field(default_factory=list)  # empty = all active employees
    initiated_by: Optional[str] = None
    initiated_by_name: Optional[str] = None
    priority: int = 0  # lower dispatched first
    enqueued_at: Optional[str] = None  # ISO timestamp

    def validate(self) -> None:
        if not self.tenant_id or not str(self.tenant_id).strip():
            raise InvalidPayrollRequestError("tenant_id is required")
        if not self.month or not str(self.month).strip():
            raise InvalidPayrollRequestError("month is required")
        if not isinstance(self.year, int) or self.year <= 0:
            raise InvalidPayrollRequestError(f"invalid year: {self.year!r}")

    def key(self) -> str:
        """Scope of the run: tenant + period + employee subset."""
        subset = ",".join(str(i) for i in sorted(self.employee_ids)) or "*"
        return f"payroll:{self.tenant_id}:{self.year}:{self.month}:{subset}"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PayrollRunRequest":
        return cls(
            tenant_id=str(data["tenant_id"]),
            month=str(data["month"]),
            year=int(data["year"]),
            employee_ids=[int(i) for i in data.get("employee_ids") or []],
            initiated_by=data.get("initiated_by"),
            initiated_by_name=data.get("initiated_by_name"),
            priority=int(data.get("priority") or 0),
            enqueued_at=data.get("enqueued_at"),
        )


@dataclass(slots=True)
class JobResult:
    total: int
    processed: int
    errors: int
    error_list: list[str]
    month: str
    year: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JobResult":
        return cls(
            total=int(data["total"]),
            processed=int(data["processed"]),
            errors=int(data["errors"]),
            error_list=list(data.get("error_list") or []),
            month=str(data["month"]),
            year=int(data["year"]),
        )


@dataclass(slots=True)
class JobStatusRecord:
    job_id: str
    status: JobState = JobState.QUEUED
    progress: int = 0
    result: Optional[JobResult] = None
    error: Optional[str] = None
    mode: Optional[ExecutionMode] = None
    attempts: int = 0
    data: Optional[dict[str, Any]] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def not_found(cls, job_id: str) -> "JobStatusRecord":
        return cls(job_id=job_id, status=JobState.NOT_FOUND)

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "status": self.status.value,
            "progress": self.progress,
            "result": self.result.to_dict() if self.result else None,
            "error": self.error,
            "mode": self.mode.value if self.mode else None,
            "attempts": self.attempts,
            "data": self.data,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass(slots=True)
class SubmissionResult:
    job_id: str
    mode: ExecutionMode
    result: Optional[JobResult] = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "mode": self.mode.value,
            "result": self.result.to_dict() if self.result else None,
            "error": self.error,
        }


__all__ = ["PayrollRunRequest", "JobResult", "JobStatusRecord", "SubmissionResult"]
