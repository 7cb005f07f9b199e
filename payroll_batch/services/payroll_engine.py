"""Payroll worker: computes one month of payroll for a tenant.

``PayrollWorker.run(request, on_progress)``:
1. Resolves the employee set (explicit ids within the tenant, else every active employee).
2. For each employee, in its own unit of work:
   - skips when a record for (tenant, employee, month, year) already exists,
   - computes the salary breakdown and persists a Draft payroll record,
   - on any error rolls the unit back and records ``"<employee_code>: <message>"``.
   An integrity error on insert is an idempotent skip when the record turns out
   to exist (a concurrent run got there first); any other constraint failure is
   an employee error.
3. Reports progress every ``PROGRESS_SETTINGS["interval"]`` employees handled and
   after the last one.
4. Writes one audit entry for the run (failures are logged, never raised).
"""
from __future__ import annotations

import time
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from payroll_batch.config import PROGRESS_SETTINGS
from payroll_batch.database import SessionLocal
from payroll_batch.jobs.payroll_job import JobResult, PayrollRunRequest
from payroll_batch.services.payroll_repository import (
    EmployeeSalarySnapshot,
    create_payroll_record,
    list_employee_salaries,
    payroll_exists,
    record_audit,
)
from payroll_batch.services.salary_breakdown import compute_breakdown
from payroll_batch.utils import get_logger, log_business_event, log_performance
from payroll_batch.utils.metrics import progress_pct

logger = get_logger(__name__)

ProgressCallback = Callable[[int], None]

AUDIT_MODULE = "Payroll"


class PayrollWorker:
    def __init__(self, session_factory: sessionmaker | Callable[[], Session] = SessionLocal) -> None:
        self._session_factory = session_factory

    def run(self, request: PayrollRunRequest, on_progress: Optional[ProgressCallback] = None) -> JobResult:
        request.validate()
        started = time.perf_counter()
        session: Session = self._session_factory()
        try:
            employees = list_employee_salaries(session, request.tenant_id, request.employee_ids)
            # Release the read transaction before the per-employee units start
            session.rollback()
            total = len(employees)
            logger.info(
                "Payroll run started",
                tenant_id=request.tenant_id, month=request.month, year=request.year, total=total,
            )

            processed = 0
            error_list: list[str] = []
            interval = max(1, int(PROGRESS_SETTINGS.get("interval", 10)))
            for handled, employee in enumerate(employees, start=1):
                error = self._process_employee(session, request, employee)
                if error is None:
                    processed += 1
                else:
                    error_list.append(error)
                if on_progress is not None and (handled % interval == 0 or handled == total):
                    on_progress(progress_pct(handled, total))

            result = JobResult(
                total=total,
                processed=processed,
                errors=len(error_list),
                error_list=error_list,
                month=request.month,
                year=request.year,
            )
        finally:
            session.close()

        self._write_audit(request, result)
        duration_ms = (time.perf_counter() - started) * 1000
        log_performance("payroll_run", duration_ms, {"tenant_id": request.tenant_id, "total": result.total})
        logger.info(
            "Payroll run finished",
            tenant_id=request.tenant_id, month=request.month, year=request.year,
            total=result.total, processed=result.processed, errors=result.errors,
        )
        return result

    def _process_employee(
        self,
        session: Session,
        request: PayrollRunRequest,
        employee: EmployeeSalarySnapshot,
    ) -> Optional[str]:
        """Run one employee's unit of work; returns the error entry or None."""
        try:
            if payroll_exists(session, request.tenant_id, employee.employee_id, request.month, request.year):
                session.rollback()
                logger.debug("Payroll record exists, skipping", employee_code=employee.employee_code)
                return None
            breakdown = compute_breakdown(employee.gross_salary)
            create_payroll_record(
                session,
                tenant_id=request.tenant_id,
                employee_id=employee.employee_id,
                month=request.month,
                year=request.year,
                breakdown=breakdown,
                processed_by=request.initiated_by,
            )
            session.commit()
            return None
        except IntegrityError as e:
            session.rollback()
            if payroll_exists(session, request.tenant_id, employee.employee_id, request.month, request.year):
                session.rollback()
                logger.info(
                    "Payroll record created concurrently, skipping",
                    employee_code=employee.employee_code, month=request.month, year=request.year,
                )
                return None
            session.rollback()
            message = str(e.orig) if e.orig is not None else str(e)
            logger.warning("Employee payroll rejected by database", employee_code=employee.employee_code, error=message)
            return f"{employee.employee_code}: {message}"
        except Exception as e:
            session.rollback()
            logger.warning("Employee payroll failed", employee_code=employee.employee_code, error=str(e))
            return f"{employee.employee_code}: {e}"

    def _write_audit(self, request: PayrollRunRequest, result: JobResult) -> None:
        details = {
            "month": result.month,
            "year": result.year,
            "total": result.total,
            "processed": result.processed,
            "errors": result.errors,
        }
        log_business_event(
            "payroll_run_completed",
            details,
            user_id=request.initiated_by,
            tenant_id=request.tenant_id,
        )
        session: Session = self._session_factory()
        try:
            record_audit(
                session,
                tenant_id=request.tenant_id,
                user_id=request.initiated_by,
                user_name=request.initiated_by_name,
                module=AUDIT_MODULE,
                details=details,
            )
        except Exception as e:
            session.rollback()
            logger.warning("Payroll audit write failed", tenant_id=request.tenant_id, error=str(e))
        finally:
            session.close()


__all__ = ["PayrollWorker", "ProgressCallback"]
