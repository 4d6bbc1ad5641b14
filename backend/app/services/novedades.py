# backend/app/services/novedades.py
"""
Novedades: catalog, value calculator and CRUD.

Calculator:
    calculate_novedad(...) -> NovedadCalc(value, factor, detail, hours_info)

      incapacidad          laboral/ARL subtypes pay 100% of the daily salary; general
                           incapacity follows the company policy
      horas_extra          overtime_base_hour × hours × factor(subtype)
      recargo_nocturno     surcharge_base_hour × hours × 0.35 (+ Sunday surcharge for
                           dominical / nocturno_dominical)
      recargo_dominical    surcharge_base_hour × hours × sunday_surcharge(on)
      vacaciones,
      licencia_remunerada  daily × days
      ausencia,
      licencia_no_remunerada  −daily × days
      anything else        manual value

CRUD writes are scoped to (employee, period), rejected on closed periods, and
flag the employee's payroll record in that period as stale.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, NamedTuple, Optional

from sqlalchemy.orm import Session

from app.models.novedades import Novedad
from app.models.payroll import Employee, PayrollPeriod, PayrollRecord
from app.services.errors import NotFoundError, PeriodStateError
from app.services.payroll_rates import (
    D,
    q0,
    NIGHT_SURCHARGE,
    load_legal_values,
    overtime_base_hour,
    overtime_factor,
    surcharge_base_hour,
    sunday_surcharge,
)

logger = logging.getLogger(__name__)

# ------------------------------- catalog ------------------------------- #

EARNING_TYPES = (
    "horas_extra",
    "recargo_nocturno",
    "recargo_dominical",
    "vacaciones",
    "licencia_remunerada",
    "incapacidad",
    "bonificacion",
    "comision",
    "prima",
    "otros_ingresos",
    "auxilio_alimentacion",
)

DEDUCTION_TYPES = (
    "libranza",
    "multa",
    "descuento_voluntario",
    "retencion_fuente",
    "fondo_solidaridad",
    "ausencia",
    "licencia_no_remunerada",
)

NOVEDAD_TYPES = EARNING_TYPES + DEDUCTION_TYPES

CONSTITUTIVE_DEFAULTS = frozenset({
    "bonificacion",
    "comision",
    "horas_extra",
    "recargo_nocturno",
    "recargo_dominical",
    "auxilio_alimentacion",
    "otros_ingresos",
    "vacaciones",
    "licencia_remunerada",
})

# Days that reduce the worked days of the period
NON_REMUNERATED_TYPES = frozenset({"ausencia", "licencia_no_remunerada"})

LABORAL_INCAPACITY_SUBTYPES = frozenset({
    "laboral", "arl", "at", "accidente_trabajo", "enfermedad_laboral", "profesional",
})

INCAPACITY_POLICIES = ("standard_2d_100_rest_66", "from_day1_66_with_floor")
INCAPACITY_RATE = Decimal("0.6667")


def is_earning(novedad_type: str) -> bool:
    return novedad_type in EARNING_TYPES


def is_deduction(novedad_type: str) -> bool:
    return novedad_type in DEDUCTION_TYPES


def is_constitutive(novedad_type: str, explicit: Optional[bool] = None) -> bool:
    if explicit is not None:
        return bool(explicit)
    return novedad_type in CONSTITUTIVE_DEFAULTS


def _check_type(novedad_type: str) -> None:
    if novedad_type not in NOVEDAD_TYPES:
        raise ValueError(f"Unknown novedad type: {novedad_type!r}")


# ------------------------------ calculator ------------------------------ #


class NovedadCalc(NamedTuple):
    value: Decimal
    factor: Optional[Decimal]
    detail: str
    hours_info: Optional[Dict[str, Any]]


def is_laboral_incapacity(subtype: Optional[str]) -> bool:
    return (subtype or "").strip().lower() in LABORAL_INCAPACITY_SUBTYPES


def incapacity_value(
    salary: Decimal | float | int,
    days: Decimal | float | int,
    *,
    subtype: Optional[str] = None,
    policy: str = "standard_2d_100_rest_66",
    year: Optional[int] = 2025,
) -> Decimal:
    """
    Value of `days` of incapacity.

    standard_2d_100_rest_66   days 1–2 at 100%, then max(66.67% daily, SMMLV/30)
    from_day1_66_with_floor   every day at max(66.67% daily, SMMLV/30)
    laboral / ARL subtypes    100% of daily salary regardless of policy
    """
    if policy not in INCAPACITY_POLICIES:
        raise ValueError(f"Unknown incapacity policy: {policy!r}")
    n = D(days)
    if n <= 0:
        return Decimal("0")

    daily = D(salary) / Decimal("30")
    if is_laboral_incapacity(subtype):
        return q0(daily * n)

    floor = load_legal_values(year).daily_minimum
    reduced = max(daily * INCAPACITY_RATE, floor)

    if policy == "from_day1_66_with_floor":
        return q0(reduced * n)

    full_days = min(n, Decimal("2"))
    rest = n - full_days
    return q0(daily * full_days + reduced * rest)


def calculate_novedad(
    novedad_type: str,
    subtype: Optional[str],
    salary: Decimal | float | int,
    *,
    hours: Decimal | float | int | None = None,
    days: Decimal | float | int | None = None,
    on: Optional[date] = None,
    policy: str = "standard_2d_100_rest_66",
    year: Optional[int] = None,
    value: Decimal | float | int | None = None,
) -> NovedadCalc:
    _check_type(novedad_type)
    on = on or date.today()
    year = year or on.year
    sal = D(salary)
    daily = sal / Decimal("30")
    h = D(hours) if hours is not None else Decimal("0")
    d = D(days) if days is not None else Decimal("0")

    if novedad_type == "incapacidad":
        v = incapacity_value(sal, d, subtype=subtype, policy=policy, year=year)
        kind = "laboral 100%" if is_laboral_incapacity(subtype) else policy
        return NovedadCalc(v, None, f"Incapacidad {d} días ({kind})", None)

    if novedad_type == "horas_extra":
        base = overtime_base_hour(sal, on)
        factor = overtime_factor(subtype)
        v = q0(base * h * factor)
        info = {"base_hour": str(q0(base)), "hours": str(h), "factor": str(factor)}
        return NovedadCalc(v, factor, f"{h} h extra {subtype or 'diurna'} × {factor}", info)

    if novedad_type == "recargo_nocturno":
        base = surcharge_base_hour(sal, on)
        factor = NIGHT_SURCHARGE
        s = (subtype or "").strip().lower()
        if s in ("dominical", "nocturno_dominical"):
            factor = factor + sunday_surcharge(on)
        v = q0(base * h * factor)
        info = {"base_hour": str(q0(base)), "hours": str(h), "factor": str(factor)}
        return NovedadCalc(v, factor, f"{h} h recargo nocturno × {factor}", info)

    if novedad_type == "recargo_dominical":
        base = surcharge_base_hour(sal, on)
        factor = sunday_surcharge(on)
        v = q0(base * h * factor)
        info = {"base_hour": str(q0(base)), "hours": str(h), "factor": str(factor)}
        return NovedadCalc(v, factor, f"{h} h recargo dominical × {factor}", info)

    if novedad_type in ("vacaciones", "licencia_remunerada"):
        return NovedadCalc(q0(daily * d), None, f"{d} días × salario diario", None)

    if novedad_type in NON_REMUNERATED_TYPES:
        return NovedadCalc(-q0(daily * d), None, f"Descuento {d} días no remunerados", None)

    return NovedadCalc(D(value) if value is not None else Decimal("0"), None, "Valor manual", None)


def novedades_totals(items: Iterable[Any]) -> Dict[str, Any]:
    """
    Sum novedades into earnings / deductions / net.

    Items may be ORM rows or dicts with `novedad_type` and `value`.
    Deduction values count by magnitude (ausencia is stored negative).
    """
    earnings = Decimal("0")
    deductions = Decimal("0")
    breakdown: List[Dict[str, Any]] = []

    for it in items:
        ntype = it["novedad_type"] if isinstance(it, dict) else it.novedad_type
        value = D(it["value"] if isinstance(it, dict) else it.value)
        if is_deduction(ntype):
            amount = abs(value)
            deductions += amount
            kind = "deduccion"
        else:
            amount = value
            earnings += amount
            kind = "devengo"
        breakdown.append({"type": ntype, "kind": kind, "value": str(amount)})

    return {
        "earnings": earnings,
        "deductions": deductions,
        "net": earnings - deductions,
        "breakdown": breakdown,
    }


# --------------------------------- CRUD --------------------------------- #


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _get_period(db: Session, period_id: uuid.UUID) -> PayrollPeriod:
    period = db.get(PayrollPeriod, period_id)
    if not period:
        raise NotFoundError(f"PayrollPeriod not found: {period_id}")
    return period


def _get_employee(db: Session, employee_id: uuid.UUID) -> Employee:
    emp = db.get(Employee, employee_id)
    if not emp:
        raise NotFoundError(f"Employee not found: {employee_id}")
    return emp


def _guard_writable(period: PayrollPeriod) -> None:
    if period.status == "cerrado":
        raise PeriodStateError(
            "El período está cerrado; registre el cambio como ajuste pendiente",
            status=period.status,
        )


def mark_record_stale(db: Session, period_id: uuid.UUID, employee_id: uuid.UUID) -> bool:
    rec = (
        db.query(PayrollRecord)
        .filter(PayrollRecord.period_id == period_id, PayrollRecord.employee_id == employee_id)
        .first()
    )
    if not rec:
        return False
    rec.is_stale = True
    return True


def build_novedad(
    period: PayrollPeriod,
    emp: Employee,
    data: Dict[str, Any],
    *,
    policy: str,
    source: str = "manual",
    source_ref: Optional[uuid.UUID] = None,
    manual_value: bool = False,
) -> Novedad:
    """
    Compute the value (unless manual) and return an unsaved Novedad row.

    `manual_value` keeps `data["value"]` even when hours/days are present.
    """
    ntype = data["novedad_type"]
    _check_type(ntype)
    calc = calculate_novedad(
        ntype,
        data.get("subtype"),
        emp.base_salary,
        hours=data.get("hours"),
        days=data.get("days"),
        on=data.get("start_date") or period.start_date,
        policy=policy,
        year=period.start_date.year,
        value=data.get("value"),
    )
    # explicit value wins for types the calculator cannot derive
    value = calc.value
    manual = data.get("value") is not None and (manual_value or not (data.get("hours") or data.get("days")))
    if manual:
        value = D(data["value"])

    return Novedad(
        company_id=period.company_id,
        employee_id=emp.id,
        period_id=period.id,
        novedad_type=ntype,
        subtype=data.get("subtype"),
        start_date=data.get("start_date"),
        end_date=data.get("end_date"),
        days=data.get("days"),
        hours=data.get("hours"),
        value=value,
        constitutive=data.get("constitutive"),
        calc_basis={
            "factor": str(calc.factor) if calc.factor is not None else None,
            "detail": calc.detail,
            "hours_info": calc.hours_info,
            "manual_value": manual_value and manual,
        },
        notes=data.get("notes"),
        source=source,
        source_ref=source_ref,
        created_by=data.get("created_by"),
    )


def create_novedad(db: Session, period_id: uuid.UUID, data: Dict[str, Any]) -> Novedad:
    period = _get_period(db, period_id)
    _guard_writable(period)
    emp = _get_employee(db, data["employee_id"])
    if emp.company_id != period.company_id:
        raise ValueError("Employee does not belong to the period's company")

    policy = period.company.incapacity_policy
    nov = build_novedad(period, emp, data, policy=policy)
    db.add(nov)
    mark_record_stale(db, period.id, emp.id)
    db.commit()
    db.refresh(nov)
    logger.info("Novedad %s created for employee %s in period %s", nov.novedad_type, emp.code, period.period_key)
    return nov


def update_novedad(db: Session, novedad_id: uuid.UUID, changes: Dict[str, Any]) -> Novedad:
    nov = db.get(Novedad, novedad_id)
    if not nov:
        raise NotFoundError(f"Novedad not found: {novedad_id}")
    period = _get_period(db, nov.period_id)
    _guard_writable(period)
    emp = _get_employee(db, nov.employee_id)

    merged = {
        "novedad_type": nov.novedad_type,
        "subtype": nov.subtype,
        "start_date": nov.start_date,
        "end_date": nov.end_date,
        "days": nov.days,
        "hours": nov.hours,
        "value": nov.value,
        "constitutive": nov.constitutive,
        "notes": nov.notes,
    }
    merged.update({k: v for k, v in changes.items() if v is not None})
    # hours/days changed → recompute instead of keeping the stored value
    recompute = ("hours" in changes or "days" in changes) and "value" not in changes
    if recompute:
        merged["value"] = None
    # an explicit value overrides the calculated one until hours/days change again
    manual_value = changes.get("value") is not None or (
        not recompute and bool((nov.calc_basis or {}).get("manual_value"))
    )

    fresh = build_novedad(
        period, emp, merged, policy=period.company.incapacity_policy, manual_value=manual_value
    )
    for attr in ("novedad_type", "subtype", "start_date", "end_date", "days", "hours",
                 "value", "constitutive", "calc_basis", "notes"):
        setattr(nov, attr, getattr(fresh, attr))
    nov.updated_at = _now()

    mark_record_stale(db, period.id, nov.employee_id)
    db.commit()
    db.refresh(nov)
    return nov


def delete_novedad(db: Session, novedad_id: uuid.UUID) -> None:
    nov = db.get(Novedad, novedad_id)
    if not nov:
        raise NotFoundError(f"Novedad not found: {novedad_id}")
    period = _get_period(db, nov.period_id)
    _guard_writable(period)
    mark_record_stale(db, period.id, nov.employee_id)
    db.delete(nov)
    db.commit()
    logger.info("Novedad %s deleted from period %s", novedad_id, period.period_key)


def list_novedades(
    db: Session,
    period_id: uuid.UUID,
    employee_id: Optional[uuid.UUID] = None,
) -> List[Novedad]:
    q = db.query(Novedad).filter(Novedad.period_id == period_id)
    if employee_id:
        q = q.filter(Novedad.employee_id == employee_id)
    return q.order_by(Novedad.created_at.asc()).all()
