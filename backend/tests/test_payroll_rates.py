# backend/tests/test_payroll_rates.py
from __future__ import annotations

from datetime import date
from decimal import Decimal

from app.services import payroll_rates as rates


def test_legal_values_2025_and_2024():
    lv = rates.load_legal_values(2025)
    assert lv.smmlv == Decimal("1423500")
    assert lv.transport_allowance == Decimal("200000")
    assert lv.uvt == Decimal("49799")
    assert rates.load_legal_values(2024).smmlv == Decimal("1300000")


def test_unknown_year_falls_back_to_closest_available():
    assert rates.load_legal_values(2031).year == 2025


def test_rates_year_env_override(monkeypatch):
    monkeypatch.setenv("NOM_RATES_YEAR", "2024")
    assert rates.load_legal_values(2025).smmlv == Decimal("1300000")


def test_weekly_hours_schedule():
    assert rates.weekly_hours(date(2023, 1, 10)) == 48
    assert rates.weekly_hours(date(2024, 3, 1)) == 47
    assert rates.weekly_hours(date(2025, 3, 1)) == 46
    assert rates.weekly_hours(date(2025, 7, 15)) == 44
    assert rates.weekly_hours(date(2026, 8, 1)) == 42
    assert rates.monthly_hours(date(2025, 3, 1)) == 230


def test_surcharge_divisor_cutover():
    assert rates.surcharge_divisor(date(2025, 6, 30)) == 230
    assert rates.surcharge_divisor(date(2025, 7, 1)) == 220


def test_sunday_surcharge_steps():
    assert rates.sunday_surcharge(date(2025, 6, 30)) == Decimal("0.75")
    assert rates.sunday_surcharge(date(2025, 7, 1)) == Decimal("0.80")
    assert rates.sunday_surcharge(date(2026, 7, 1)) == Decimal("0.90")
    assert rates.sunday_surcharge(date(2027, 7, 1)) == Decimal("1.00")


def test_overtime_factors():
    assert rates.overtime_factor("diurna") == Decimal("1.25")
    assert rates.overtime_factor(None) == Decimal("1.25")
    assert rates.overtime_factor("nocturna") == Decimal("1.75")
    assert rates.overtime_factor("dominical_diurna") == Decimal("2.0")
    assert rates.overtime_factor("festiva_nocturna") == Decimal("2.5")


def test_overtime_base_hour_uses_weekly_hours():
    # (2.300.000 / 30) / (46 / 6) = 10.000
    assert rates.q0(rates.overtime_base_hour(2300000, date(2025, 3, 1))) == Decimal("10000")


def test_cap_ibc_at_25_smmlv():
    assert rates.cap_ibc(50_000_000, year=2025) == Decimal("35587500")
    assert rates.cap_ibc(2_000_000, year=2025) == Decimal("2000000")
    assert rates.cap_ibc(50_000_000, year=2025, days=15) == Decimal("17793750")


def test_solidarity_fund_scale():
    smmlv = Decimal("1423500")
    assert rates.solidarity_fund_rate(smmlv * 3, year=2025) == Decimal("0")
    assert rates.solidarity_fund_rate(smmlv * 4, year=2025) == Decimal("0.01")
    assert rates.solidarity_fund_rate(smmlv * Decimal("16.5"), year=2025) == Decimal("0.012")
    assert rates.solidarity_fund_rate(smmlv * Decimal("17.2"), year=2025) == Decimal("0.014")
    assert rates.solidarity_fund_rate(smmlv * Decimal("19.9"), year=2025) == Decimal("0.018")
    assert rates.solidarity_fund_rate(smmlv * 20, year=2025) == Decimal("0.02")
    # half-month IBC is classified on its monthly equivalent
    assert rates.solidarity_fund_rate(smmlv * 2, year=2025, days=15) == Decimal("0.01")
    assert rates.solidarity_fund_rate(smmlv * Decimal("1.9"), year=2025, days=15) == Decimal("0")


def test_employer_contributions_total():
    er = rates.compute_employer_contributions(2_000_000, 2_000_000, year=2025)
    assert er["health"] == Decimal("170000")
    assert er["pension"] == Decimal("240000")
    assert er["arl"] == Decimal("10440")
    assert er["caja"] == Decimal("80000")
    assert er["icbf"] == Decimal("60000")
    assert er["sena"] == Decimal("40000")
    assert er["total"] == Decimal("600440")


def test_withholding_exempt_below_95_uvt():
    assert rates.compute_withholding(3_000_000, year=2025)["tax"] == Decimal("0")
    res = rates.compute_withholding(9_100_000, year=2025)
    assert res["exempt"] == Decimal("4730905")
    assert res["tax"] == Decimal("830128")
