# backend/app/services/vacations.py
"""
Vacations and absences.

- Vacation days are business days (Mon–Fri), both ends inclusive.
- A vacation period may not overlap another confirmed one for the same employee,
  nor exceed the remaining balance (initial balance − confirmed/liquidated days).
- sync_vacations_to_period(period) turns confirmed vacations into `vacaciones`
  novedades for the intersecting payroll period (idempotent).
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func as sa_func
from sqlalchemy.orm import Session

from app.models.novedades import Novedad
from app.models.payroll import Company, Employee, PayrollPeriod
from app.models.vacations import VacationPeriod
from app.services.errors import NotFoundError
from app.services.novedades import build_novedad, mark_record_stale
from app.services.payroll_rates import D
from app.services.periods import current_period

logger = logging.getLogger(__name__)

USED_STATES = ("confirmado", "liquidado")


def business_days(start: date, end: date) -> int:
    if end < start:
        return 0
    n = 0
    d = start
    while d <= end:
        if d.weekday() < 5:
            n += 1
        d += timedelta(days=1)
    return n


def vacation_balance(db: Session, emp: Employee, *, exclude_id: Optional[uuid.UUID] = None) -> Dict[str, Decimal]:
    q = db.query(sa_func.coalesce(sa_func.sum(VacationPeriod.days_count), 0)).filter(
        VacationPeriod.employee_id == emp.id,
        VacationPeriod.status.in_(USED_STATES),
    )
    if exclude_id:
        q = q.filter(VacationPeriod.id != exclude_id)
    used = D(q.scalar() or 0)
    initial = D(emp.vacation_balance or 0)
    return {"initial": initial, "used": used, "available": initial - used}


def create_vacation(db: Session, employee_id: uuid.UUID, start: date, end: date,
                    notes: Optional[str] = None) -> VacationPeriod:
    emp = db.get(Employee, employee_id)
    if not emp:
        raise NotFoundError(f"Employee not found: {employee_id}")
    if end < start:
        raise ValueError("La fecha final debe ser posterior o igual a la inicial")

    days = business_days(start, end)
    if days == 0:
        raise ValueError("El rango no contiene días hábiles")

    overlap = (
        db.query(VacationPeriod)
        .filter(
            VacationPeriod.employee_id == emp.id,
            VacationPeriod.status == "confirmado",
            VacationPeriod.start_date <= end,
            VacationPeriod.end_date >= start,
        )
        .first()
    )
    if overlap:
        raise ValueError(
            f"Se cruza con vacaciones del {overlap.start_date.isoformat()} al {overlap.end_date.isoformat()}"
        )

    balance = vacation_balance(db, emp)
    if Decimal(days) > balance["available"]:
        raise ValueError(f"Días solicitados ({days}) superan el saldo disponible ({balance['available']})")

    vac = VacationPeriod(
        company_id=emp.company_id,
        employee_id=emp.id,
        start_date=start,
        end_date=end,
        days_count=days,
        status="confirmado",
        notes=notes,
    )
    db.add(vac)
    db.commit()
    db.refresh(vac)
    logger.info("Vacation %s..%s (%d days) registered for %s", start, end, days, emp.code)
    return vac


def cancel_vacation(db: Session, vacation_id: uuid.UUID) -> VacationPeriod:
    vac = db.get(VacationPeriod, vacation_id)
    if not vac:
        raise NotFoundError(f"VacationPeriod not found: {vacation_id}")
    if vac.status != "confirmado":
        raise ValueError(f"Solo se pueden cancelar vacaciones confirmadas (estado: {vac.status})")
    vac.status = "cancelado"
    db.commit()
    db.refresh(vac)
    return vac


def delete_vacation(db: Session, vacation_id: uuid.UUID) -> None:
    vac = db.get(VacationPeriod, vacation_id)
    if not vac:
        raise NotFoundError(f"VacationPeriod not found: {vacation_id}")
    if vac.status != "confirmado":
        raise ValueError(f"Solo se pueden eliminar vacaciones confirmadas (estado: {vac.status})")
    db.delete(vac)
    db.commit()


def list_vacations(db: Session, employee_id: uuid.UUID) -> List[VacationPeriod]:
    return (
        db.query(VacationPeriod)
        .filter(VacationPeriod.employee_id == employee_id)
        .order_by(VacationPeriod.start_date.asc())
        .all()
    )


def split_absence_across_periods(db: Optional[Session], company: Company, start: date,
                                 end: date) -> List[Dict[str, Any]]:
    """
    One segment per payroll period the absence touches.

    The company's stored periods are used first; days they do not cover fall
    into the calendar period of the company's periodicity. A segment is
    partial when the absence runs past either end of its period.
    """
    if end < start:
        raise ValueError("end must be on or after start")

    stored: List[PayrollPeriod] = []
    if db is not None and getattr(company, "id", None) is not None:
        stored = (
            db.query(PayrollPeriod)
            .filter(
                PayrollPeriod.company_id == company.id,
                PayrollPeriod.start_date <= end,
                PayrollPeriod.end_date >= start,
            )
            .order_by(PayrollPeriod.start_date.asc())
            .all()
        )

    def _segment(p_start, p_end, label, period_id, seg_start, seg_end):
        return {
            "period_id": period_id,
            "period_start": p_start,
            "period_end": p_end,
            "period_label": label,
            "start": seg_start,
            "end": seg_end,
            "days": (seg_end - seg_start).days + 1,
            "business_days": business_days(seg_start, seg_end),
            "is_partial": start < p_start or end > p_end,
        }

    segments: List[Dict[str, Any]] = []
    d = start
    while d <= end:
        covering = next((p for p in stored if p.start_date <= d <= p.end_date), None)
        if covering is not None:
            seg_end = min(end, covering.end_date)
            segments.append(_segment(covering.start_date, covering.end_date, covering.label,
                                     covering.id, d, seg_end))
        else:
            span = current_period(d, company.periodicity)
            seg_end = min(end, span.end)
            # stop before the next stored period inside this calendar span
            for p in stored:
                if d < p.start_date <= seg_end:
                    seg_end = p.start_date - timedelta(days=1)
            segments.append(_segment(span.start, span.end, span.label, None, d, seg_end))
        d = seg_end + timedelta(days=1)
    return segments


def sync_vacations_to_period(db: Session, period: PayrollPeriod) -> Dict[str, int]:
    """
    Mirror confirmed vacations into `vacaciones` novedades for this period.
    Caller commits.
    """
    vacs = (
        db.query(VacationPeriod)
        .filter(
            VacationPeriod.company_id == period.company_id,
            VacationPeriod.status.in_(USED_STATES),
            VacationPeriod.start_date <= period.end_date,
            VacationPeriod.end_date >= period.start_date,
        )
        .all()
    )
    existing = {
        n.source_ref: n
        for n in db.query(Novedad).filter(Novedad.period_id == period.id, Novedad.source == "vacation").all()
    }

    created = updated = removed = 0
    seen = set()
    policy = period.company.incapacity_policy
    for vac in vacs:
        seen.add(vac.id)
        seg_start = max(vac.start_date, period.start_date)
        seg_end = min(vac.end_date, period.end_date)
        days = business_days(seg_start, seg_end)
        if days == 0:
            continue
        emp = db.get(Employee, vac.employee_id)
        data = {
            "novedad_type": "vacaciones",
            "start_date": seg_start,
            "end_date": seg_end,
            "days": Decimal(days),
            "notes": f"Vacaciones {vac.start_date.isoformat()} a {vac.end_date.isoformat()}",
        }
        fresh = build_novedad(period, emp, data, policy=policy, source="vacation", source_ref=vac.id)

        current = existing.get(vac.id)
        if current is None:
            db.add(fresh)
            created += 1
        elif D(current.days) != D(days) or D(current.value) != D(fresh.value):
            current.start_date = fresh.start_date
            current.end_date = fresh.end_date
            current.days = fresh.days
            current.value = fresh.value
            current.calc_basis = fresh.calc_basis
            updated += 1
        else:
            continue
        mark_record_stale(db, period.id, emp.id)

    for ref, nov in existing.items():
        if ref not in seen:
            mark_record_stale(db, period.id, nov.employee_id)
            db.delete(nov)
            removed += 1

    db.flush()
    if created or updated or removed:
        logger.info("Vacation sync %s: +%d ~%d -%d", period.period_key, created, updated, removed)
    return {"created": created, "updated": updated, "removed": removed}


def mark_vacations_liquidated(db: Session, period: PayrollPeriod) -> int:
    """Confirmed vacations that end inside a closed period become `liquidado`. Caller commits."""
    refs = [
        r for (r,) in db.query(Novedad.source_ref).filter(
            Novedad.period_id == period.id, Novedad.source == "vacation"
        )
    ]
    if not refs:
        return 0
    n = 0
    for vac in db.query(VacationPeriod).filter(VacationPeriod.id.in_(refs)).all():
        if vac.status == "confirmado" and vac.end_date <= period.end_date:
            vac.status = "liquidado"
            vac.processed_in_period_id = period.id
            n += 1
    return n
