"""Payroll batch processor package.

Queued and synchronous monthly payroll runs with progress polling.
"""

__all__: list[str] = []
