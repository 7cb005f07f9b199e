from decimal import Decimal

import pytest

from payroll_batch.exceptions import InvalidSalaryError
from payroll_batch.services.salary_breakdown import compute_breakdown, professional_tax_for


def test_mid_salary_breakdown():
    b = compute_breakdown(50000)
    assert b.basic_salary == 20000
    assert b.hra == 10000
    assert b.da == 5000
    assert b.special_allowance == 15000
    # PF capped at 12% of the 15000 wage ceiling
    assert b.pf_employee == 1800
    assert b.pf_employer == 1800
    assert b.esi_employee == 0 and b.esi_employer == 0
    assert b.professional_tax == 200
    assert b.total_deductions == 2000
    assert b.net_salary == 48000


@pytest.mark.parametrize("gross,net", [(80000, 78000), (1000000, 998000)])
def test_high_salary_net(gross, net):
    assert compute_breakdown(gross).net_salary == net


def test_esi_applies_at_or_below_threshold():
    b = compute_breakdown(20000)
    assert b.basic_salary == 8000
    assert b.pf_employee == 960
    assert b.esi_employee == 150
    assert b.esi_employer == 650
    assert b.professional_tax == 200
    assert b.total_deductions == 1310
    assert b.net_salary == 18690
    assert compute_breakdown(21000).esi_employee > 0
    assert compute_breakdown(21001).esi_employee == 0


def test_components_sum_to_gross():
    b = compute_breakdown("33333.33")
    assert b.basic_salary + b.hra + b.da + b.special_allowance == b.gross_salary


def test_rounding_is_half_up():
    # 0.75% of 200 = 1.5 -> 2
    assert compute_breakdown(200).esi_employee == 2


def test_professional_tax_slabs():
    assert professional_tax_for(Decimal(15001)) == 200
    assert professional_tax_for(Decimal(15000)) == 150
    assert professional_tax_for(Decimal(10001)) == 150
    assert professional_tax_for(Decimal(10000)) == 0


@pytest.mark.parametrize("bad", [None, "", "abc", -1, "NaN", True])
def test_invalid_salary_raises(bad):
    with pytest.raises(InvalidSalaryError):
        compute_breakdown(bad)
