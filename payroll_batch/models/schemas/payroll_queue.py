"""
Pydantic schemas for payroll queue operations.
"""
from typing import Optional, List
from pydantic import BaseModel, Field


class PayrollRunCreate(BaseModel):
    """
    Request body for submitting a payroll run.
    month/year are optional at the schema level so a missing period maps to a 400, not a 422.
    """
    month: Optional[str] = Field(None, description="Payroll month, e.g. 'March'")
    year: Optional[int] = Field(None, gt=0, description="Payroll year, e.g. 2026")
    employee_ids: List[int] = Field(default_factory=list, description="Restrict the run to these employees; empty = all active")
    priority: int = Field(0, ge=0, description="Lower values are dispatched first")


class PayrollJobResult(BaseModel):
    """Counts produced by a finished payroll run."""
    total: int
    processed: int
    errors: int
    error_list: List[str] = Field(default_factory=list, description="'<employee_code>: <message>' per failed employee")
    month: str
    year: int


class PayrollSubmission(BaseModel):
    job_id: str
    mode: str = Field(description="async|sync")
    message: str
    result: Optional[PayrollJobResult] = None
    error: Optional[str] = None
