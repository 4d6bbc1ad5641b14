# backend/app/services/periods.py
"""
Payroll period boundaries.

Pure helpers (no DB):
- generate_year_periods(year, periodicity)
- next_consecutive_period(last_end, periodicity)
- current_period(today, periodicity)
- validate_biweekly(start, end)
- period_number(start, periodicity)
- worked_days(periodicity, start, end)

DB helpers:
- normalize_company_periods(db, company)  – fixes irregular quincenal periods in place
- detect_next_period(db, company)         – what to liquidate next (continue / create)
- get_or_create_period(db, company, span)
"""

from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass, asdict
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from app.models.payroll import Company, PayrollPeriod

logger = logging.getLogger(__name__)

PERIODICITIES = ("semanal", "quincenal", "mensual")

MONTHS_ES = [
    "Enero", "Febrero", "Marzo", "Abril", "Mayo", "Junio",
    "Julio", "Agosto", "Septiembre", "Octubre", "Noviembre", "Diciembre",
]

OPEN_STATES = ("borrador", "en_proceso", "reabierto")


@dataclass(frozen=True)
class PeriodSpan:
    start: date
    end: date
    periodicity: str
    number: int
    label: str
    key: str

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ----------------------------- small helpers ----------------------------- #


def _check_periodicity(periodicity: str) -> None:
    if periodicity not in PERIODICITIES:
        raise ValueError(f"Unsupported periodicity: {periodicity!r}")


def _end_of_month(d: date) -> date:
    return d.replace(day=calendar.monthrange(d.year, d.month)[1])


def _month_name(month: int) -> str:
    return MONTHS_ES[month - 1]


def period_number(start: date, periodicity: str) -> int:
    """Annual index of the period that starts on `start`."""
    _check_periodicity(periodicity)
    if periodicity == "quincenal":
        return (start.month - 1) * 2 + (1 if start.day <= 15 else 2)
    if periodicity == "mensual":
        return start.month
    return max(1, start.isocalendar()[1])


def period_span(start: date, end: date, periodicity: str, number: Optional[int] = None) -> PeriodSpan:
    n = number if number is not None else period_number(start, periodicity)
    if periodicity == "quincenal":
        half = "Q1" if start.day <= 15 else "Q2"
        label = f"Quincena {n} - {start.day} al {end.day} de {_month_name(start.month)} {start.year}"
        key = f"{start.year}-{start.month:02d}-{half}"
    elif periodicity == "mensual":
        label = f"{_month_name(start.month)} {start.year}"
        key = f"{start.year}-{start.month:02d}"
    else:
        label = f"Semana {n} - {start.day} al {end.day} de {_month_name(start.month)} {start.year}"
        key = f"{start.year}-W{n:02d}"
    return PeriodSpan(start=start, end=end, periodicity=periodicity, number=n, label=label, key=key)


def _biweekly_bounds(d: date) -> Tuple[date, date]:
    if d.day <= 15:
        return d.replace(day=1), d.replace(day=15)
    return d.replace(day=16), _end_of_month(d)


# ----------------------------- generation ----------------------------- #


def generate_year_periods(year: int, periodicity: str = "quincenal") -> List[PeriodSpan]:
    """All periods of `year`, ordered, numbered from 1."""
    _check_periodicity(periodicity)
    out: List[PeriodSpan] = []

    if periodicity == "quincenal":
        n = 1
        for month in range(1, 13):
            first = date(year, month, 1)
            out.append(period_span(first, first.replace(day=15), "quincenal", n))
            second = first.replace(day=16)
            out.append(period_span(second, _end_of_month(first), "quincenal", n + 1))
            n += 2
        return out

    if periodicity == "mensual":
        for month in range(1, 13):
            first = date(year, month, 1)
            out.append(period_span(first, _end_of_month(first), "mensual", month))
        return out

    # semanal: Monday..Sunday from the first Monday; drop weeks spilling into next year
    monday = date(year, 1, 1)
    while monday.weekday() != 0:
        monday += timedelta(days=1)
    n = 1
    while monday.year == year:
        sunday = monday + timedelta(days=6)
        if sunday.year > year:
            break
        out.append(period_span(monday, sunday, "semanal", n))
        n += 1
        monday += timedelta(days=7)
    return out


def next_consecutive_period(last_end: date, periodicity: str) -> PeriodSpan:
    """The period starting the day after `last_end`, snapped to calendar boundaries."""
    _check_periodicity(periodicity)
    start = last_end + timedelta(days=1)

    if periodicity == "quincenal":
        s, e = _biweekly_bounds(start)
        return period_span(s, e, "quincenal")
    if periodicity == "mensual":
        s = start.replace(day=1)
        return period_span(s, _end_of_month(s), "mensual")
    return period_span(start, start + timedelta(days=6), "semanal")


def current_period(today: Optional[date] = None, periodicity: str = "quincenal") -> PeriodSpan:
    _check_periodicity(periodicity)
    today = today or date.today()
    if periodicity == "quincenal":
        s, e = _biweekly_bounds(today)
        return period_span(s, e, "quincenal")
    if periodicity == "mensual":
        s = today.replace(day=1)
        return period_span(s, _end_of_month(s), "mensual")
    monday = today - timedelta(days=today.weekday())
    return period_span(monday, monday + timedelta(days=6), "semanal")


def validate_biweekly(start: date, end: date) -> Tuple[bool, Optional[PeriodSpan], str]:
    """
    Check that [start, end] is a proper quincena (1–15 or 16–EOM).

    Returns (is_valid, corrected_span_or_None, message). The correction snaps to
    the half of the month that `start` falls in.
    """
    expected_start, expected_end = _biweekly_bounds(start)
    if start == expected_start and end == expected_end:
        return True, None, "Período quincenal válido"

    corrected = period_span(expected_start, expected_end, "quincenal")
    msg = (
        f"Período irregular {start.isoformat()}..{end.isoformat()}; "
        f"se corrige a {expected_start.isoformat()}..{expected_end.isoformat()}"
    )
    return False, corrected, msg


def worked_days(periodicity: str, start: Optional[date] = None, end: Optional[date] = None) -> int:
    """Commercial-month (30-day) days for a period."""
    if periodicity == "quincenal":
        return 15
    if periodicity == "semanal":
        return 7
    if periodicity == "mensual":
        return 30
    if start is None or end is None:
        raise ValueError("A custom period needs start and end dates")
    days = (end - start).days + 1
    return max(1, min(30, days))


# ----------------------------- DB helpers ----------------------------- #


def get_or_create_period(db: Session, company: Company, span: PeriodSpan) -> PayrollPeriod:
    existing = (
        db.query(PayrollPeriod)
        .filter(
            PayrollPeriod.company_id == company.id,
            PayrollPeriod.periodicity == span.periodicity,
            PayrollPeriod.start_date == span.start,
            PayrollPeriod.end_date == span.end,
        )
        .first()
    )
    if existing:
        return existing

    period = PayrollPeriod(
        company_id=company.id,
        period_key=span.key,
        label=span.label,
        periodicity=span.periodicity,
        period_number=span.number,
        start_date=span.start,
        end_date=span.end,
        status="borrador",
        meta={},
    )
    db.add(period)
    db.flush()
    logger.info("Created payroll period %s (%s) for company %s", span.key, span.periodicity, company.nit)
    return period


def normalize_company_periods(db: Session, company: Company) -> Dict[str, Any]:
    """
    Rewrite irregular quincenal periods of a company in place.

    Only periods that are not closed are touched; closed ones are reported.
    """
    periods = (
        db.query(PayrollPeriod)
        .filter(PayrollPeriod.company_id == company.id, PayrollPeriod.periodicity == "quincenal")
        .order_by(PayrollPeriod.start_date.asc())
        .all()
    )
    corrected: List[Dict[str, Any]] = []
    skipped: List[Dict[str, Any]] = []

    for p in periods:
        ok, fix, msg = validate_biweekly(p.start_date, p.end_date)
        if ok:
            if p.period_number != period_number(p.start_date, "quincenal"):
                p.period_number = period_number(p.start_date, "quincenal")
            continue
        if p.status == "cerrado":
            skipped.append({"id": str(p.id), "reason": "cerrado", "message": msg})
            continue
        corrected.append({
            "id": str(p.id),
            "from": [p.start_date.isoformat(), p.end_date.isoformat()],
            "to": [fix.start.isoformat(), fix.end.isoformat()],
        })
        p.start_date = fix.start
        p.end_date = fix.end
        p.period_number = fix.number
        p.label = fix.label
        p.period_key = fix.key
        logger.info("Normalized period %s: %s", p.id, msg)

    db.commit()
    return {"checked": len(periods), "corrected": corrected, "skipped": skipped}


def detect_next_period(db: Session, company: Company, today: Optional[date] = None) -> Dict[str, Any]:
    """
    Suggest the period to work on next.

        open period exists              → action "continue" with that period
        no closed period of periodicity → action "create" with the current period
        otherwise                       → action "create" with the next consecutive period
    """
    periodicity = company.periodicity or "quincenal"

    open_period = (
        db.query(PayrollPeriod)
        .filter(
            PayrollPeriod.company_id == company.id,
            PayrollPeriod.periodicity == periodicity,
            PayrollPeriod.status.in_(OPEN_STATES),
        )
        .order_by(PayrollPeriod.start_date.asc())
        .first()
    )
    if open_period:
        return {
            "action": "continue",
            "periodicity": periodicity,
            "period_id": str(open_period.id),
            "start_date": open_period.start_date,
            "end_date": open_period.end_date,
            "label": open_period.label,
            "status": open_period.status,
        }

    last_closed = (
        db.query(PayrollPeriod)
        .filter(
            PayrollPeriod.company_id == company.id,
            PayrollPeriod.periodicity == periodicity,
            PayrollPeriod.status != "borrador",
        )
        .order_by(PayrollPeriod.end_date.desc())
        .first()
    )
    if last_closed:
        span = next_consecutive_period(last_closed.end_date, periodicity)
        reason = f"Siguiente período después de {last_closed.label}"
    else:
        span = current_period(today, periodicity)
        reason = "Sin períodos previos; se sugiere el período actual"

    return {
        "action": "create",
        "periodicity": periodicity,
        "period_id": None,
        "start_date": span.start,
        "end_date": span.end,
        "label": span.label,
        "period_key": span.key,
        "number": span.number,
        "reason": reason,
    }
