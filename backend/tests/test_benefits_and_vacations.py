# backend/tests/test_benefits_and_vacations.py
from __future__ import annotations

from datetime import date
from decimal import Decimal
from types import SimpleNamespace

from app.services.social_benefits import provision_amounts
from app.services.vacations import business_days, split_absence_across_periods


def test_provision_amounts_include_transport_below_two_smmlv():
    amounts = provision_amounts(Decimal("2000000"), Decimal("15"), year=2025)
    assert amounts["_base"] == Decimal("2200000")
    assert amounts["cesantias"] == Decimal("91667")
    assert amounts["intereses_cesantias"] == Decimal("11000")
    assert amounts["prima"] == Decimal("91667")
    assert amounts["vacaciones"] == Decimal("41667")


def test_provision_amounts_without_transport():
    amounts = provision_amounts(Decimal("3000000"), Decimal("15"), year=2025)
    assert amounts["_transport"] == Decimal("0")
    assert amounts["cesantias"] == Decimal("125000")
    assert amounts["intereses_cesantias"] == Decimal("15000")
    assert amounts["vacaciones"] == Decimal("62500")


def test_business_days_skip_weekends():
    assert business_days(date(2025, 3, 3), date(2025, 3, 9)) == 5
    assert business_days(date(2025, 3, 8), date(2025, 3, 9)) == 0
    assert business_days(date(2025, 3, 9), date(2025, 3, 3)) == 0


def test_split_absence_across_biweekly_periods():
    company = SimpleNamespace(periodicity="quincenal")
    segments = split_absence_across_periods(None, company, date(2025, 3, 10), date(2025, 3, 20))
    assert len(segments) == 2

    first, second = segments
    assert (first["start"], first["end"]) == (date(2025, 3, 10), date(2025, 3, 15))
    assert first["days"] == 6
    assert first["business_days"] == 5
    assert first["is_partial"] is True

    assert (second["period_start"], second["period_end"]) == (date(2025, 3, 16), date(2025, 3, 31))
    assert second["business_days"] == 4


def test_split_absence_across_year_end():
    company = SimpleNamespace(periodicity="mensual")
    segments = split_absence_across_periods(None, company, date(2025, 12, 20), date(2026, 1, 10))
    assert [(s["period_start"], s["period_end"]) for s in segments] == [
        (date(2025, 12, 1), date(2025, 12, 31)),
        (date(2026, 1, 1), date(2026, 1, 31)),
    ]


def test_split_weekly_absence_across_new_year():
    company = SimpleNamespace(periodicity="semanal")
    segments = split_absence_across_periods(None, company, date(2025, 12, 30), date(2026, 1, 2))
    assert len(segments) == 1
    seg = segments[0]
    assert (seg["period_start"], seg["period_end"]) == (date(2025, 12, 29), date(2026, 1, 4))
    assert seg["days"] == 4
    assert seg["business_days"] == 4
    assert seg["is_partial"] is False


def test_split_weekly_absence_spanning_two_weeks():
    company = SimpleNamespace(periodicity="semanal")
    segments = split_absence_across_periods(None, company, date(2025, 12, 25), date(2026, 1, 6))
    assert [(s["period_start"], s["start"], s["end"]) for s in segments] == [
        (date(2025, 12, 22), date(2025, 12, 25), date(2025, 12, 28)),
        (date(2025, 12, 29), date(2025, 12, 29), date(2026, 1, 4)),
        (date(2026, 1, 5), date(2026, 1, 5), date(2026, 1, 6)),
    ]
    assert sum(s["days"] for s in segments) == 13
    assert all(s["is_partial"] for s in segments)


def test_absence_inside_one_period_is_not_partial():
    company = SimpleNamespace(periodicity="quincenal")
    segments = split_absence_across_periods(None, company, date(2025, 3, 3), date(2025, 3, 5))
    assert len(segments) == 1
    assert segments[0]["is_partial"] is False
    assert segments[0]["period_id"] is None
