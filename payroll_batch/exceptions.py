"""Exception hierarchy for the payroll batch processor."""
from __future__ import annotations


class PayrollBatchError(Exception):
    """Base class for all payroll batch errors."""


class InvalidSalaryError(PayrollBatchError, ValueError):
    """Raised when an employee's gross salary is missing or unusable."""


class NonRetryableJobError(PayrollBatchError):
    """A job attempt failure that retrying cannot fix."""


class InvalidPayrollRequestError(NonRetryableJobError, ValueError):
    """The run request itself is malformed (missing tenant, bad period...)."""


class BrokerUnavailableError(PayrollBatchError):
    """The job broker could not be reached for a dispatch."""


__all__ = [
    "PayrollBatchError",
    "InvalidSalaryError",
    "NonRetryableJobError",
    "InvalidPayrollRequestError",
    "BrokerUnavailableError",
]
