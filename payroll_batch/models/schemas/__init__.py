from .base import ResponseBase
from .payroll_queue import (
    PayrollRunCreate,
    PayrollJobResult,
    PayrollSubmission,
)

__all__ = [
    # Base
    "ResponseBase",

    # Payroll queue
    "PayrollRunCreate",
    "PayrollJobResult",
    "PayrollSubmission",
]
