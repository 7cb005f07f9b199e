"""Central Enum definitions for core domain states.

These replace scattered string literals to ensure consistency across
DB models, job records, and business logic.
"""
from __future__ import annotations
import enum


class EmployeeStatus(str, enum.Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    ON_NOTICE = "On Notice"
    TERMINATED = "Terminated"


class PayrollStatus(str, enum.Enum):
    DRAFT = "Draft"
    SUBMITTED = "Submitted"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    PROCESSED = "Processed"
    PAID = "Paid"


class AuditAction(str, enum.Enum):
    PROCESS = "Process"
    SUBMIT = "Submit"
    VIEW = "View"


class AuditStatus(str, enum.Enum):
    SUCCESS = "Success"
    FAILED = "Failed"
    WARNING = "Warning"

# ------------------------- Job lifecycle / dispatch ------------------------ #

class JobState(str, enum.Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    NOT_FOUND = "not_found"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED)


class ExecutionMode(str, enum.Enum):
    ASYNC = "async"
    SYNC = "sync"

__all__ = [
    "EmployeeStatus",
    "PayrollStatus",
    "AuditAction",
    "AuditStatus",
    "JobState",
    "ExecutionMode",
]
