# backend/app/services/pending_adjustments.py
"""
Pending adjustments on CLOSED periods.

Flow:
    add_pending_adjustment → (preview_impact) → apply_pending_adjustments
        1) materialise pending items as novedades (source="adjustment")
        2) re-liquidate the affected employees with the full calculator
        3) one PeriodCorrection per employee (previous net → new net)
        4) recompute period totals
        5) snapshot a version
        6) regenerate the affected vouchers
        7) mark items `aplicado`
    discard_pending_adjustment → `descartado`

Only `pendiente` items can be applied or discarded. A failure for one employee is
collected in the result and does not stop the others.
"""

from __future__ import annotations

import logging
import uuid
from collections import OrderedDict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from app.models.novedades import Novedad, PendingAdjustment, PeriodCorrection
from app.models.payroll import Employee, PayrollPeriod, PayrollRecord, PayrollVersion
from app.services import vouchers
from app.services.errors import NotFoundError, PeriodStateError
from app.services.novedades import build_novedad, calculate_novedad, is_earning
from app.services.payroll import (
    get_period,
    liquidate_employee,
    recompute_period_totals,
    snapshot_version,
)
from app.services.payroll_calculation import PayrollInput, calculate_payroll, novedad_rows_to_input
from app.services.payroll_rates import D

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _require_closed(period: PayrollPeriod) -> None:
    if period.status != "cerrado":
        raise PeriodStateError(
            f"Los ajustes pendientes solo aplican a períodos cerrados (estado: {period.status})",
            status=period.status,
        )


def _record(db: Session, period_id: uuid.UUID, employee_id: uuid.UUID) -> Optional[PayrollRecord]:
    return (
        db.query(PayrollRecord)
        .filter(PayrollRecord.period_id == period_id, PayrollRecord.employee_id == employee_id)
        .first()
    )


def _as_novedad_data(adj: PendingAdjustment) -> Dict[str, Any]:
    return {
        "novedad_type": adj.novedad_type,
        "subtype": adj.subtype,
        "days": adj.days,
        "hours": adj.hours,
        "value": adj.value,
        "constitutive": adj.constitutive,
        "notes": adj.notes,
        "created_by": adj.created_by,
    }


# ----------------------------- create / list / discard ----------------------------- #


def add_pending_adjustment(db: Session, period_id: uuid.UUID, data: Dict[str, Any]) -> PendingAdjustment:
    period = get_period(db, period_id)
    _require_closed(period)
    if not (data.get("justification") or "").strip():
        raise ValueError("Se requiere una justificación")

    emp = db.get(Employee, data["employee_id"])
    if not emp:
        raise NotFoundError(f"Employee not found: {data['employee_id']}")
    if emp.company_id != period.company_id:
        raise ValueError("Employee does not belong to the period's company")

    calc = calculate_novedad(
        data["novedad_type"],
        data.get("subtype"),
        emp.base_salary,
        hours=data.get("hours"),
        days=data.get("days"),
        on=period.start_date,
        policy=period.company.incapacity_policy,
        year=period.start_date.year,
        value=data.get("value"),
    )
    value = calc.value
    if data.get("value") is not None and not (data.get("hours") or data.get("days")):
        value = D(data["value"])

    adj = PendingAdjustment(
        company_id=period.company_id,
        period_id=period.id,
        employee_id=emp.id,
        novedad_type=data["novedad_type"],
        subtype=data.get("subtype"),
        days=data.get("days"),
        hours=data.get("hours"),
        value=value,
        constitutive=data.get("constitutive"),
        notes=data.get("notes"),
        justification=data["justification"].strip(),
        status="pendiente",
        created_by=data.get("created_by"),
    )
    db.add(adj)
    db.commit()
    db.refresh(adj)
    logger.info("Pending adjustment %s queued for %s in %s", adj.novedad_type, emp.code, period.period_key)
    return adj


def list_pending_adjustments(db: Session, period_id: uuid.UUID, status: Optional[str] = None) -> List[PendingAdjustment]:
    q = db.query(PendingAdjustment).filter(PendingAdjustment.period_id == period_id)
    if status:
        q = q.filter(PendingAdjustment.status == status)
    return q.order_by(PendingAdjustment.created_at.asc()).all()


def discard_pending_adjustment(db: Session, adjustment_id: uuid.UUID) -> PendingAdjustment:
    adj = db.get(PendingAdjustment, adjustment_id)
    if not adj:
        raise NotFoundError(f"PendingAdjustment not found: {adjustment_id}")
    if adj.status != "pendiente":
        raise PeriodStateError(f"Solo se pueden descartar ajustes pendientes (estado: {adj.status})", status=adj.status)
    adj.status = "descartado"
    db.commit()
    db.refresh(adj)
    return adj


# ----------------------------- preview ----------------------------- #


def _group_by_employee(items: Iterable[PendingAdjustment]) -> "OrderedDict[uuid.UUID, List[PendingAdjustment]]":
    grouped: "OrderedDict[uuid.UUID, List[PendingAdjustment]]" = OrderedDict()
    for it in items:
        grouped.setdefault(it.employee_id, []).append(it)
    return grouped


def _simulate(db: Session, period: PayrollPeriod, emp: Employee, rec: Optional[PayrollRecord],
              extra: List[Dict[str, Any]]):
    rows = db.query(Novedad).filter(Novedad.period_id == period.id, Novedad.employee_id == emp.id).all()
    days = rec.worked_days if rec is not None else Decimal("0")
    return calculate_payroll(PayrollInput(
        base_salary=D(emp.base_salary),
        worked_days=D(days),
        novedades=novedad_rows_to_input(rows) + extra,
        year=period.start_date.year,
        policy=period.company.incapacity_policy,
        arl_rate=period.company.arl_rate,
        eps=emp.eps,
        afp=emp.afp,
    ))


def preview_impact(db: Session, period_id: uuid.UUID) -> Dict[str, Any]:
    """Original vs. recomputed figures per employee, without writing anything."""
    period = get_period(db, period_id)
    pending = list_pending_adjustments(db, period.id, status="pendiente")

    employees: List[Dict[str, Any]] = []
    errors: List[Dict[str, Any]] = []
    totals = {k: Decimal("0") for k in (
        "original_earnings", "new_earnings", "original_deductions", "new_deductions",
        "original_net", "new_net", "difference",
    )}

    for emp_id, items in _group_by_employee(pending).items():
        emp = db.get(Employee, emp_id)
        rec = _record(db, period.id, emp_id)
        original = {
            "earnings": D(rec.gross_pay) if rec else Decimal("0"),
            "deductions": D(rec.total_deductions) if rec else Decimal("0"),
            "net": D(rec.net_pay) if rec else Decimal("0"),
            "ibc": D(rec.ibc) if rec else Decimal("0"),
        }
        try:
            sim = _simulate(db, period, emp, rec, [_as_novedad_data(a) for a in items])
        except ValueError as e:
            errors.append({"employee_id": str(emp_id), "error": str(e)})
            continue

        row = {
            "employee_id": str(emp_id),
            "code": emp.code,
            "name": emp.full_name,
            "adjustments": len(items),
            "earnings_added": sum((D(a.value) for a in items if is_earning(a.novedad_type)), Decimal("0")),
            "original_earnings": original["earnings"],
            "new_earnings": sim.gross_pay,
            "original_deductions": original["deductions"],
            "new_deductions": sim.total_deductions,
            "original_net": original["net"],
            "new_net": sim.net_pay,
            "original_ibc": original["ibc"],
            "new_ibc": sim.ibc_health,
            "difference": sim.net_pay - original["net"],
        }
        employees.append(row)
        for key in totals:
            totals[key] += row[key]

    return {
        "period_id": str(period.id),
        "pending": len(pending),
        "employees": employees,
        "totals": totals,
        "errors": errors,
    }


# ----------------------------- apply ----------------------------- #


def apply_pending_adjustments(
    db: Session,
    period_id: uuid.UUID,
    *,
    employee_ids: Optional[Iterable[uuid.UUID]] = None,
    justification: Optional[str] = None,
    actor: Optional[str] = None,
) -> Dict[str, Any]:
    period = get_period(db, period_id)
    _require_closed(period)

    q = db.query(PendingAdjustment).filter(
        PendingAdjustment.period_id == period.id,
        PendingAdjustment.status == "pendiente",
    )
    wanted = list(employee_ids) if employee_ids is not None else None
    if wanted is not None:
        q = q.filter(PendingAdjustment.employee_id.in_(wanted))
    pending = q.order_by(PendingAdjustment.created_at.asc()).all()
    if not pending:
        raise ValueError("No hay ajustes pendientes para aplicar")

    # keep the pre-adjustment state restorable
    if not db.query(PayrollVersion.id).filter(PayrollVersion.period_id == period.id).first():
        snapshot_version(db, period, "original", summary="Estado al cierre", actor=actor)

    applied: List[Dict[str, Any]] = []
    errors: List[Dict[str, Any]] = []
    done_ids: List[uuid.UUID] = []

    for emp_id, items in _group_by_employee(pending).items():
        emp = db.get(Employee, emp_id)
        rec = _record(db, period.id, emp_id)
        if emp is None or rec is None:
            errors.append({"employee_id": str(emp_id), "error": "El empleado no tiene liquidación en el período"})
            continue

        previous_net = D(rec.net_pay)
        policy = period.company.incapacity_policy
        try:
            # validate everything before writing
            novedades = [
                build_novedad(period, emp, _as_novedad_data(a), policy=policy, source="adjustment", source_ref=a.id)
                for a in items
            ]
            _simulate(db, period, emp, rec, [_as_novedad_data(a) for a in items])
        except ValueError as e:
            logger.warning("Adjustments for %s in %s not applied: %s", emp.code, period.period_key, e)
            errors.append({"employee_id": str(emp_id), "code": emp.code, "error": str(e)})
            continue

        for nov, adj in zip(novedades, items):
            nov.value = D(adj.value)
            db.add(nov)
            db.flush()
            adj.status = "aplicado"
            adj.applied_at = _now()
            adj.applied_novedad_id = nov.id

        rec = liquidate_employee(db, period, emp)
        new_net = D(rec.net_pay)
        concepts = ", ".join(sorted({a.novedad_type for a in items}))
        db.add(PeriodCorrection(
            company_id=period.company_id,
            period_id=period.id,
            employee_id=emp.id,
            correction_type="pending_adjustment",
            concept=f"Ajustes: {concepts}"[:200],
            justification=justification or "; ".join(a.justification for a in items),
            previous_value=previous_net,
            new_value=new_net,
            value_difference=new_net - previous_net,
            created_by=actor,
        ))
        done_ids.append(emp.id)
        applied.append({
            "employee_id": str(emp.id),
            "code": emp.code,
            "adjustments": len(items),
            "previous_net": previous_net,
            "new_net": new_net,
            "difference": new_net - previous_net,
        })

    version_no = None
    voucher_info = {"regenerated": 0, "created": 0}
    totals = None
    if done_ids:
        totals = recompute_period_totals(db, period)
        version = snapshot_version(
            db, period, "reliquidation",
            summary=f"Ajustes aplicados a {len(done_ids)} empleado(s)",
            actor=actor,
        )
        version_no = version.version_no
        voucher_info = vouchers.regenerate_vouchers(db, period, done_ids)

    db.commit()
    logger.info("Applied pending adjustments in %s: %d employees ok, %d errors",
                period.period_key, len(done_ids), len(errors))
    return {
        "period_id": str(period.id),
        "applied": applied,
        "errors": errors,
        "totals": totals,
        "version_no": version_no,
        "vouchers": voucher_info,
    }
