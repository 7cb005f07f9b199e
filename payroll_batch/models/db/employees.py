from __future__ import annotations
"""SQLAlchemy model for tenant employees (read-only input to payroll runs)."""
from typing import TYPE_CHECKING
from sqlalchemy import Integer, String, DateTime, Numeric, Enum, UniqueConstraint
from sqlalchemy.orm import relationship, Mapped, mapped_column

if TYPE_CHECKING:  # pragma: no cover
    from .payroll_records import PayrollRecord
from sqlalchemy.sql import func
from payroll_batch.database import Base
from .enums import EmployeeStatus

class Employee(Base):
    __tablename__ = "employees"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    tenant_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    employee_code: Mapped[str] = mapped_column(String, nullable=False)
    first_name: Mapped[str] = mapped_column(String, nullable=False)
    last_name: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[EmployeeStatus] = mapped_column(Enum(EmployeeStatus), default=EmployeeStatus.ACTIVE, index=True)

    # Salary: current_salary (post-revision) wins over the structure's gross_salary
    gross_salary: Mapped[float | None] = mapped_column(Numeric(12, 2), nullable=True)
    current_salary: Mapped[float | None] = mapped_column(Numeric(12, 2), nullable=True)

    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    payroll_records: Mapped[list["PayrollRecord"]] = relationship("PayrollRecord", back_populates="employee")

    __table_args__ = (
        UniqueConstraint('tenant_id', 'employee_code', name='unique_employee_code_per_tenant'),
    )
