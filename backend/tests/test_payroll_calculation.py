# backend/tests/test_payroll_calculation.py
from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from app.services.novedades import calculate_novedad, incapacity_value, novedades_totals
from app.services.payroll_calculation import PayrollInput, calculate_payroll, validate_employee_input


# ----------------------------- novedades ----------------------------- #

def test_incapacity_standard_policy_first_two_days_full():
    # 2 × 100.000 + 3 × 66.670
    assert incapacity_value(3_000_000, 5, policy="standard_2d_100_rest_66", year=2025) == Decimal("400010")


def test_incapacity_from_day_one_policy():
    assert incapacity_value(3_000_000, 5, policy="from_day1_66_with_floor", year=2025) == Decimal("333350")


def test_incapacity_floor_is_daily_minimum():
    # 66.67% of a minimum-wage day is below SMMLV/30, so the floor applies
    assert incapacity_value(1_423_500, 5, policy="from_day1_66_with_floor", year=2025) == Decimal("237250")


def test_laboral_incapacity_pays_full_day():
    assert incapacity_value(3_000_000, 5, subtype="laboral", year=2025) == Decimal("500000")


def test_unknown_incapacity_policy():
    with pytest.raises(ValueError):
        incapacity_value(3_000_000, 5, policy="nope")


def test_overtime_value():
    calc = calculate_novedad("horas_extra", "diurna", 2_300_000, hours=4, on=date(2025, 3, 10))
    assert calc.value == Decimal("50000")
    assert calc.factor == Decimal("1.25")
    assert calc.hours_info["base_hour"] == "10000"


def test_night_surcharge_value():
    calc = calculate_novedad("recargo_nocturno", None, 2_300_000, hours=10, on=date(2025, 3, 10))
    assert calc.value == Decimal("35000")

    sunday = calculate_novedad("recargo_nocturno", "nocturno_dominical", 2_300_000, hours=10, on=date(2025, 3, 10))
    assert sunday.factor == Decimal("1.10")


def test_absence_is_negative_and_counted_as_deduction():
    calc = calculate_novedad("ausencia", None, 3_000_000, days=2)
    assert calc.value == Decimal("-200000")
    totals = novedades_totals([
        {"novedad_type": "ausencia", "value": calc.value},
        {"novedad_type": "bonificacion", "value": Decimal("50000")},
    ])
    assert totals["deductions"] == Decimal("200000")
    assert totals["earnings"] == Decimal("50000")
    assert totals["net"] == Decimal("-150000")


def test_manual_value_types():
    assert calculate_novedad("libranza", None, 2_000_000, value=120000).value == Decimal("120000")
    with pytest.raises(ValueError):
        calculate_novedad("propina", None, 2_000_000)


# ----------------------------- payroll ----------------------------- #

def test_full_month_with_transport_allowance():
    res = calculate_payroll(PayrollInput(base_salary=Decimal("2000000"), worked_days=Decimal("30"), year=2025))
    assert res.regular_pay == Decimal("2000000")
    assert res.transport_allowance == Decimal("200000")
    assert res.gross_pay == Decimal("2200000")
    assert res.ibc_health == Decimal("2000000")
    assert res.health_deduction == Decimal("80000")
    assert res.pension_deduction == Decimal("80000")
    assert res.solidarity_fund == Decimal("0")
    assert res.withholding_tax == Decimal("0")
    assert res.net_pay == Decimal("2040000")
    assert res.employer_contributions == Decimal("600440")
    assert res.total_cost == Decimal("2800440")


def test_biweekly_is_prorated():
    res = calculate_payroll(PayrollInput(base_salary=Decimal("2000000"), worked_days=Decimal("15"), year=2025))
    assert res.regular_pay == Decimal("1000000")
    assert res.transport_allowance == Decimal("100000")
    assert res.net_pay == Decimal("1020000")


def test_incapacity_reduces_effective_days():
    res = calculate_payroll(PayrollInput(
        base_salary=Decimal("3000000"),
        worked_days=Decimal("30"),
        novedades=[{"novedad_type": "incapacidad", "days": Decimal("5")}],
        year=2025,
    ))
    assert res.effective_days == Decimal("25")
    assert res.regular_pay == Decimal("2500000")
    assert res.incapacity_value == Decimal("400010")
    assert res.transport_allowance == Decimal("0")  # above 2 SMMLV
    assert res.ibc_health == Decimal("2900010")
    assert res.ibc_parafiscal == Decimal("2500000")
    assert res.net_pay == Decimal("2668010")


def test_constitutive_flag_controls_ibc():
    base = dict(base_salary=Decimal("2000000"), worked_days=Decimal("30"), year=2025)
    with_bonus = calculate_payroll(PayrollInput(
        novedades=[{"novedad_type": "bonificacion", "value": Decimal("100000")}], **base
    ))
    non_const = calculate_payroll(PayrollInput(
        novedades=[{"novedad_type": "bonificacion", "value": Decimal("100000"), "constitutive": False}], **base
    ))
    assert with_bonus.ibc_health == Decimal("2100000")
    assert non_const.ibc_health == Decimal("2000000")
    assert with_bonus.gross_pay == non_const.gross_pay == Decimal("2300000")


def test_high_salary_solidarity_and_withholding():
    res = calculate_payroll(PayrollInput(base_salary=Decimal("10000000"), worked_days=Decimal("30"), year=2025))
    assert res.solidarity_fund == Decimal("100000")
    assert res.withholding_tax == Decimal("830128")
    assert res.total_deductions == Decimal("1730128")
    assert res.net_pay == Decimal("8269872")


def test_ibc_capped_at_25_smmlv():
    res = calculate_payroll(PayrollInput(base_salary=Decimal("50000000"), worked_days=Decimal("30"), year=2025))
    assert res.ibc_health == Decimal("35587500")
    assert res.solidarity_fund == Decimal("711750")


def test_biweekly_solidarity_uses_monthly_equivalent():
    # 6.000.000 is 4.2 SMMLV a month: 1% whether paid monthly or per quincena
    monthly = calculate_payroll(PayrollInput(base_salary=Decimal("6000000"), worked_days=Decimal("30"), year=2025))
    biweekly = calculate_payroll(PayrollInput(base_salary=Decimal("6000000"), worked_days=Decimal("15"), year=2025))
    assert monthly.solidarity_fund == Decimal("60000")
    assert biweekly.ibc_health == Decimal("3000000")
    assert biweekly.solidarity_fund == Decimal("30000")


def test_biweekly_ibc_cap_is_half_month():
    res = calculate_payroll(PayrollInput(base_salary=Decimal("50000000"), worked_days=Decimal("15"), year=2025))
    assert res.ibc_health == Decimal("17793750")
    assert res.solidarity_fund == Decimal("355875")


def test_invalid_input_rejected():
    with pytest.raises(ValueError):
        calculate_payroll(PayrollInput(base_salary=Decimal("0"), worked_days=Decimal("30")))
    with pytest.raises(ValueError):
        calculate_payroll(PayrollInput(base_salary=Decimal("2000000"), worked_days=Decimal("31")))


def test_missing_affiliations_are_warnings():
    check = validate_employee_input(2_000_000, 15)
    assert check["errors"] == []
    assert len(check["warnings"]) == 2
