from .employees import Employee
from .payroll_records import PayrollRecord
from .audit_logs import AuditLog
from .enums import EmployeeStatus, PayrollStatus, AuditAction, AuditStatus, JobState, ExecutionMode

__all__ = [
    "Employee",
    "PayrollRecord",
    "AuditLog",
    "EmployeeStatus",
    "PayrollStatus",
    "AuditAction",
    "AuditStatus",
    "JobState",
    "ExecutionMode",
]
