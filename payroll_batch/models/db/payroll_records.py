from __future__ import annotations
"""SQLAlchemy model for monthly payroll records produced by batch runs."""
from typing import TYPE_CHECKING
from sqlalchemy import Integer, String, DateTime, Numeric, Enum, ForeignKey, UniqueConstraint, Index
from sqlalchemy.orm import relationship, Mapped, mapped_column

if TYPE_CHECKING:  # pragma: no cover
    from .employees import Employee
from sqlalchemy.sql import func
from payroll_batch.database import Base
from .enums import PayrollStatus

class PayrollRecord(Base):
    __tablename__ = "payroll_records"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    tenant_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    employee_id: Mapped[int] = mapped_column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    month: Mapped[str] = mapped_column(String, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)

    gross_salary: Mapped[float] = mapped_column(Numeric(12, 2), default=0)
    basic_salary: Mapped[float] = mapped_column(Numeric(12, 2), default=0)
    hra: Mapped[float] = mapped_column(Numeric(12, 2), default=0)
    da: Mapped[float] = mapped_column(Numeric(12, 2), default=0)
    special_allowance: Mapped[float] = mapped_column(Numeric(12, 2), default=0)

    pf_employee: Mapped[float] = mapped_column(Numeric(12, 2), default=0)
    pf_employer: Mapped[float] = mapped_column(Numeric(12, 2), default=0)
    esi_employee: Mapped[float] = mapped_column(Numeric(12, 2), default=0)
    esi_employer: Mapped[float] = mapped_column(Numeric(12, 2), default=0)
    professional_tax: Mapped[float] = mapped_column(Numeric(12, 2), default=0)
    total_deductions: Mapped[float] = mapped_column(Numeric(12, 2), default=0)
    net_salary: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False)

    status: Mapped[PayrollStatus] = mapped_column(Enum(PayrollStatus), default=PayrollStatus.DRAFT, index=True)
    processed_by: Mapped[str | None] = mapped_column(String, nullable=True)
    processed_at: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    employee: Mapped["Employee"] = relationship("Employee", back_populates="payroll_records")

    # Idempotency key: one record per employee per period
    __table_args__ = (
        UniqueConstraint('tenant_id', 'employee_id', 'month', 'year', name='unique_payroll_per_employee_period'),
        Index('ix_payroll_records_tenant_status', 'tenant_id', 'status'),
    )
