"""Deterministic monthly salary breakdown from a gross figure.

Components are fixed shares of gross (basic, HRA, DA) with special allowance
as the remainder. Deductions: provident fund on basic capped at the PF wage
ceiling, ESI only at or below the ESI gross threshold, and slab-based
professional tax. Amounts are rounded half up to whole currency units.
"""
from __future__ import annotations

from dataclasses import dataclass, asdict
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from payroll_batch.config import PAYROLL_RULES
from payroll_batch.exceptions import InvalidSalaryError

_UNIT = Decimal("1")


def _round(value: Decimal) -> Decimal:
    return value.quantize(_UNIT, rounding=ROUND_HALF_UP)


def _rate(key: str) -> Decimal:
    return Decimal(str(PAYROLL_RULES[key]))


@dataclass(frozen=True, slots=True)
class SalaryBreakdown:
    gross_salary: Decimal
    basic_salary: Decimal
    hra: Decimal
    da: Decimal
    special_allowance: Decimal
    pf_employee: Decimal
    pf_employer: Decimal
    esi_employee: Decimal
    esi_employer: Decimal
    professional_tax: Decimal
    total_deductions: Decimal
    net_salary: Decimal

    def as_columns(self) -> dict[str, Any]:
        return asdict(self)


def to_gross(value: Any) -> Decimal:
    """Validate and normalise a raw salary value."""
    if value is None or isinstance(value, bool):
        raise InvalidSalaryError("salary is missing")
    try:
        gross = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise InvalidSalaryError(f"invalid salary value {value!r}") from e
    if not gross.is_finite():
        raise InvalidSalaryError(f"invalid salary value {value!r}")
    if gross < 0:
        raise InvalidSalaryError(f"negative salary {gross}")
    return gross


def professional_tax_for(gross: Decimal) -> Decimal:
    for threshold, amount in PAYROLL_RULES["professional_tax_slabs"]:  # type: ignore[union-attr]
        if gross > threshold:
            return Decimal(amount)
    return Decimal(0)


def compute_breakdown(gross_value: Any) -> SalaryBreakdown:
    gross = to_gross(gross_value)

    basic = _round(gross * _rate("basic_pct"))
    hra = _round(gross * _rate("hra_pct"))
    da = _round(gross * _rate("da_pct"))
    special = gross - basic - hra - da

    pf_base = min(basic, Decimal(str(PAYROLL_RULES["pf_wage_ceiling"])))
    pf_employee = _round(pf_base * _rate("pf_rate"))
    pf_employer = pf_employee

    esi_applies = gross <= Decimal(str(PAYROLL_RULES["esi_gross_threshold"]))
    esi_employee = _round(gross * _rate("esi_employee_rate")) if esi_applies else Decimal(0)
    esi_employer = _round(gross * _rate("esi_employer_rate")) if esi_applies else Decimal(0)

    professional_tax = professional_tax_for(gross)
    total_deductions = pf_employee + esi_employee + professional_tax

    return SalaryBreakdown(
        gross_salary=gross,
        basic_salary=basic,
        hra=hra,
        da=da,
        special_allowance=special,
        pf_employee=pf_employee,
        pf_employer=pf_employer,
        esi_employee=esi_employee,
        esi_employer=esi_employer,
        professional_tax=professional_tax,
        total_deductions=total_deductions,
        net_salary=gross - total_deductions,
    )


__all__ = ["SalaryBreakdown", "compute_breakdown", "to_gross", "professional_tax_for"]
