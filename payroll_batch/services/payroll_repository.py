"""Persistence collaborators used by the payroll worker.

Thin SQLAlchemy accessors: employee salary lookup, payroll record existence /
creation and the audit trail. Callers own the session and its transaction.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from payroll_batch.models.db.audit_logs import AuditLog
from payroll_batch.models.db.employees import Employee
from payroll_batch.models.db.enums import AuditAction, AuditStatus, EmployeeStatus, PayrollStatus
from payroll_batch.models.db.payroll_records import PayrollRecord
from payroll_batch.services.salary_breakdown import SalaryBreakdown
from payroll_batch.utils.time import utc_now


@dataclass(frozen=True, slots=True)
class EmployeeSalarySnapshot:
    employee_id: int
    employee_code: str
    gross_salary: Optional[Decimal]


def _effective_gross(employee: Employee) -> Optional[Decimal]:
    # Revised salary wins over the structure's gross
    if employee.current_salary is not None:
        return Decimal(str(employee.current_salary))
    if employee.gross_salary is not None:
        return Decimal(str(employee.gross_salary))
    return None


def list_employee_salaries(
    session: Session,
    tenant_id: str,
    employee_ids: Optional[Iterable[int]] = None,
) -> list[EmployeeSalarySnapshot]:
    """Explicit ids (restricted to the tenant) or every active employee of the tenant."""
    stmt = select(Employee).where(Employee.tenant_id == tenant_id)
    ids = list(employee_ids or [])
    if ids:
        stmt = stmt.where(Employee.id.in_(ids))
    else:
        stmt = stmt.where(Employee.status == EmployeeStatus.ACTIVE)
    employees = session.execute(stmt.order_by(Employee.id)).scalars().all()
    return [
        EmployeeSalarySnapshot(
            employee_id=e.id,
            employee_code=e.employee_code,
            gross_salary=_effective_gross(e),
        )
        for e in employees
    ]


def payroll_exists(session: Session, tenant_id: str, employee_id: int, month: str, year: int) -> bool:
    stmt = select(PayrollRecord.id).where(
        PayrollRecord.tenant_id == tenant_id,
        PayrollRecord.employee_id == employee_id,
        PayrollRecord.month == month,
        PayrollRecord.year == year,
    )
    return session.execute(stmt.limit(1)).first() is not None


def create_payroll_record(
    session: Session,
    *,
    tenant_id: str,
    employee_id: int,
    month: str,
    year: int,
    breakdown: SalaryBreakdown,
    processed_by: Optional[str],
) -> PayrollRecord:
    record = PayrollRecord(
        tenant_id=tenant_id,
        employee_id=employee_id,
        month=month,
        year=year,
        status=PayrollStatus.DRAFT,
        processed_by=processed_by,
        processed_at=utc_now(),
        **breakdown.as_columns(),
    )
    session.add(record)
    session.flush()
    return record


def record_audit(
    session: Session,
    *,
    tenant_id: str,
    user_id: Optional[str],
    user_name: Optional[str],
    module: str,
    details: dict[str, Any],
    action: AuditAction = AuditAction.PROCESS,
    status: AuditStatus = AuditStatus.SUCCESS,
) -> AuditLog:
    entry = AuditLog(
        tenant_id=tenant_id,
        user_id=user_id,
        user_name=user_name or "System",
        action=action,
        module=module,
        details=json.dumps(details, default=str),
        status=status,
    )
    session.add(entry)
    session.commit()
    return entry


__all__ = [
    "EmployeeSalarySnapshot",
    "list_employee_salaries",
    "payroll_exists",
    "create_payroll_record",
    "record_audit",
]
