# backend/app/services/payroll.py
"""
Payroll service: companies, employees and the period lifecycle.

Period states:
    borrador ──liquidate──▶ en_proceso ──close──▶ cerrado ──reopen──▶ reabierto ──close──▶ cerrado

- liquidate_period(period_id): one PayrollRecord per active employee (upsert), syncs
  confirmed vacations first; moves borrador → en_proceso
- close_period(period_id): atomic; records → procesada, totals stored, vouchers generated
  (regenerated when closing again), provisions when company.provision_mode == on_liquidation
- reopen_period(period_id): only from cerrado and never when reported to DIAN; audited
- recalculate_stale(company_id, period_id?): recompute records flagged is_stale
- versions: snapshot_version / rollback_version / compare_versions for recomputes of closed periods
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func as sa_func
from sqlalchemy.orm import Session

from app.models.novedades import Novedad
from app.models.payroll import (
    Company,
    Employee,
    PayrollPeriod,
    PayrollRecord,
    PayrollVersion,
    PeriodAuditLog,
    Voucher,
)
from app.services.errors import NotFoundError, PeriodStateError
from app.services.payroll_calculation import (
    PayrollInput,
    calculate_payroll,
    novedad_rows_to_input,
    validate_employee_input,
)
from app.services.payroll_rates import D
from app.services.periods import PeriodSpan, get_or_create_period, period_number, period_span, worked_days
from app.services import social_benefits, vacations, vouchers

logger = logging.getLogger(__name__)

LIQUIDATABLE_STATES = ("borrador", "en_proceso", "reabierto")
CLOSABLE_STATES = ("en_proceso", "reabierto")

# PayrollRecord columns captured in version snapshots
RECORD_FIELDS = (
    "base_salary",
    "worked_days",
    "regular_pay",
    "extra_pay",
    "incapacity_value",
    "transport_allowance",
    "gross_pay",
    "health_deduction",
    "pension_deduction",
    "solidarity_fund",
    "withholding_tax",
    "novelty_deductions",
    "total_deductions",
    "net_pay",
    "ibc",
    "employer_contributions",
    "total_cost",
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ----------------------------- lookups ----------------------------- #


def get_company(db: Session, company_id: uuid.UUID) -> Company:
    company = db.get(Company, company_id)
    if not company:
        raise NotFoundError(f"Company not found: {company_id}")
    return company


def get_period(db: Session, period_id: uuid.UUID) -> PayrollPeriod:
    period = db.get(PayrollPeriod, period_id)
    if not period:
        raise NotFoundError(f"PayrollPeriod not found: {period_id}")
    return period


def get_employee(db: Session, employee_id: uuid.UUID) -> Employee:
    emp = db.get(Employee, employee_id)
    if not emp:
        raise NotFoundError(f"Employee not found: {employee_id}")
    return emp


# ----------------------------- create helpers ----------------------------- #


def create_company(db: Session, data: Dict[str, Any]) -> Company:
    if db.query(Company.id).filter(Company.nit == data["nit"]).first():
        raise ValueError(f"A company with NIT {data['nit']} already exists")
    company = Company(**data)
    db.add(company)
    db.commit()
    db.refresh(company)
    logger.info("Company %s created (periodicity=%s)", company.nit, company.periodicity)
    return company


def update_company_settings(db: Session, company_id: uuid.UUID, changes: Dict[str, Any]) -> Company:
    company = get_company(db, company_id)
    for key, value in changes.items():
        if value is not None:
            setattr(company, key, value)
    db.commit()
    db.refresh(company)
    return company


def create_employee(db: Session, company_id: uuid.UUID, data: Dict[str, Any]) -> Employee:
    get_company(db, company_id)
    if D(data.get("base_salary") or 0) <= 0:
        raise ValueError("El salario base debe ser mayor que cero")
    dup = (
        db.query(Employee.id)
        .filter(Employee.company_id == company_id, Employee.code == data["code"])
        .first()
    )
    if dup:
        raise ValueError(f"Employee code {data['code']} already exists")
    emp = Employee(company_id=company_id, **data)
    db.add(emp)
    db.commit()
    db.refresh(emp)
    return emp


def update_employee(db: Session, employee_id: uuid.UUID, changes: Dict[str, Any]) -> Employee:
    emp = get_employee(db, employee_id)
    if "base_salary" in changes and changes["base_salary"] is not None and D(changes["base_salary"]) <= 0:
        raise ValueError("El salario base debe ser mayor que cero")
    touched = False
    for key, value in changes.items():
        if value is not None:
            setattr(emp, key, value)
            touched = True
    if touched:
        # open-period records for this employee must be recomputed
        open_ids = [
            pid for (pid,) in db.query(PayrollPeriod.id).filter(
                PayrollPeriod.company_id == emp.company_id,
                PayrollPeriod.status.in_(LIQUIDATABLE_STATES),
            )
        ]
        if open_ids:
            (
                db.query(PayrollRecord)
                .filter(PayrollRecord.employee_id == emp.id, PayrollRecord.period_id.in_(open_ids))
                .update({PayrollRecord.is_stale: True}, synchronize_session=False)
            )
    db.commit()
    db.refresh(emp)
    return emp


def create_period(
    db: Session,
    company_id: uuid.UUID,
    start: date,
    end: date,
    periodicity: Optional[str] = None,
) -> PayrollPeriod:
    company = get_company(db, company_id)
    if end < start:
        raise ValueError("end_date must be on or after start_date")
    periodicity = periodicity or company.periodicity
    overlap = (
        db.query(PayrollPeriod)
        .filter(
            PayrollPeriod.company_id == company.id,
            PayrollPeriod.start_date <= end,
            PayrollPeriod.end_date >= start,
        )
        .first()
    )
    if overlap and not (overlap.start_date == start and overlap.end_date == end):
        raise ValueError(f"Period overlaps existing period {overlap.label}")

    span: PeriodSpan = period_span(start, end, periodicity, period_number(start, periodicity))
    period = get_or_create_period(db, company, span)
    db.commit()
    db.refresh(period)
    return period


# ----------------------------- validation ----------------------------- #


def _employees_for_period(db: Session, period: PayrollPeriod) -> List[Employee]:
    q = db.query(Employee).filter(
        Employee.company_id == period.company_id,
        Employee.active.is_(True),
    )
    out = []
    for emp in q.order_by(Employee.code).all():
        if emp.hire_date and emp.hire_date > period.end_date:
            continue
        if emp.termination_date and emp.termination_date < period.start_date:
            continue
        out.append(emp)
    return out


def _employee_days(period: PayrollPeriod, emp: Employee) -> Decimal:
    full = Decimal(worked_days(period.periodicity, period.start_date, period.end_date))
    start = max(period.start_date, emp.hire_date) if emp.hire_date else period.start_date
    end = min(period.end_date, emp.termination_date) if emp.termination_date else period.end_date
    if start == period.start_date and end == period.end_date:
        return full
    return min(full, Decimal((end - start).days + 1))


def validate_pre_liquidation(db: Session, period_id: uuid.UUID) -> Dict[str, Any]:
    period = get_period(db, period_id)
    employees = _employees_for_period(db, period)
    issues: List[Dict[str, Any]] = []
    warnings: List[Dict[str, Any]] = []

    if not employees:
        issues.append({"type": "no_employees", "message": "No hay empleados activos en el período"})

    for emp in employees:
        check = validate_employee_input(emp.base_salary or 0, _employee_days(period, emp), eps=emp.eps, afp=emp.afp)
        for msg in check["errors"]:
            issues.append({"type": "employee", "employee_id": str(emp.id), "code": emp.code, "message": msg})
        for msg in check["warnings"]:
            warnings.append({"type": "employee", "employee_id": str(emp.id), "code": emp.code, "message": msg})

    if period.status == "cerrado":
        issues.append({"type": "period_closed", "message": "El período ya está cerrado"})

    return {
        "period_id": str(period.id),
        "ok": not issues,
        "employees": len(employees),
        "issues": issues,
        "warnings": warnings,
    }


# ----------------------------- liquidation ----------------------------- #


def liquidate_employee(db: Session, period: PayrollPeriod, emp: Employee,
                       days: Optional[Decimal] = None) -> PayrollRecord:
    """Compute and upsert one PayrollRecord. Caller commits."""
    company = period.company
    rows = (
        db.query(Novedad)
        .filter(Novedad.period_id == period.id, Novedad.employee_id == emp.id)
        .all()
    )
    rec = (
        db.query(PayrollRecord)
        .filter(PayrollRecord.period_id == period.id, PayrollRecord.employee_id == emp.id)
        .first()
    )
    if days is None:
        days = rec.worked_days if rec is not None and rec.worked_days else _employee_days(period, emp)

    result = calculate_payroll(PayrollInput(
        base_salary=D(emp.base_salary),
        worked_days=D(days),
        novedades=novedad_rows_to_input(rows),
        year=period.start_date.year,
        policy=company.incapacity_policy,
        arl_rate=company.arl_rate,
        eps=emp.eps,
        afp=emp.afp,
    ))

    if rec is None:
        rec = PayrollRecord(company_id=period.company_id, period_id=period.id, employee_id=emp.id)
        db.add(rec)

    rec.base_salary = result.base_salary
    rec.worked_days = result.worked_days
    rec.regular_pay = result.regular_pay
    rec.extra_pay = result.extra_pay
    rec.incapacity_value = result.incapacity_value
    rec.transport_allowance = result.transport_allowance
    rec.gross_pay = result.gross_pay
    rec.health_deduction = result.health_deduction
    rec.pension_deduction = result.pension_deduction
    rec.solidarity_fund = result.solidarity_fund
    rec.withholding_tax = result.withholding_tax
    rec.novelty_deductions = result.novelty_deductions
    rec.total_deductions = result.total_deductions
    rec.net_pay = result.net_pay
    rec.ibc = result.ibc_health
    rec.employer_contributions = result.employer_contributions
    rec.total_cost = result.total_cost
    rec.breakdown = result.as_breakdown()
    rec.is_stale = False
    rec.updated_at = _now()
    if period.status in ("cerrado",):
        rec.status = "procesada"
    db.flush()
    return rec


def recompute_period_totals(db: Session, period: PayrollPeriod) -> Dict[str, Decimal]:
    # sessions run with autoflush=False; pending record edits must reach the aggregate
    db.flush()
    row = (
        db.query(
            sa_func.count(PayrollRecord.id),
            sa_func.coalesce(sa_func.sum(PayrollRecord.gross_pay), 0),
            sa_func.coalesce(sa_func.sum(PayrollRecord.total_deductions), 0),
            sa_func.coalesce(sa_func.sum(PayrollRecord.net_pay), 0),
        )
        .filter(PayrollRecord.period_id == period.id)
        .one()
    )
    period.employees_count = int(row[0] or 0)
    period.total_earnings = D(row[1])
    period.total_deductions = D(row[2])
    period.total_net = D(row[3])
    db.flush()
    return {
        "employees": period.employees_count,
        "total_earnings": period.total_earnings,
        "total_deductions": period.total_deductions,
        "total_net": period.total_net,
    }


def liquidate_period(db: Session, period_id: uuid.UUID) -> Dict[str, Any]:
    period = get_period(db, period_id)
    if period.status not in LIQUIDATABLE_STATES:
        raise PeriodStateError(
            f"No se puede liquidar un período en estado {period.status}", status=period.status
        )

    sync = vacations.sync_vacations_to_period(db, period)

    employees = _employees_for_period(db, period)
    done = 0
    errors: List[Dict[str, Any]] = []
    for emp in employees:
        try:
            # calculation errors surface before any row is touched
            liquidate_employee(db, period, emp, days=_employee_days(period, emp))
            done += 1
        except ValueError as e:
            logger.warning("Employee %s not liquidated in %s: %s", emp.code, period.period_key, e)
            errors.append({"employee_id": str(emp.id), "code": emp.code, "error": str(e)})

    if period.status == "borrador":
        period.status = "en_proceso"
    totals = recompute_period_totals(db, period)
    db.commit()
    logger.info("Liquidated period %s: %d employees, %d errors", period.period_key, done, len(errors))
    return {
        "period_id": str(period.id),
        "status": period.status,
        "liquidated": done,
        "errors": errors,
        "vacations_synced": sync["created"],
        "totals": totals,
    }


# ----------------------------- close / reopen ----------------------------- #


def close_period(db: Session, period_id: uuid.UUID, actor: Optional[str] = None) -> Dict[str, Any]:
    period = get_period(db, period_id)
    if period.status not in CLOSABLE_STATES:
        raise PeriodStateError(
            f"Solo se puede cerrar un período liquidado (estado actual: {period.status})",
            status=period.status,
        )
    if not db.query(PayrollRecord.id).filter(PayrollRecord.period_id == period.id).first():
        raise ValueError("El período no tiene liquidaciones")

    previous = period.status
    try:
        stale = (
            db.query(PayrollRecord)
            .filter(PayrollRecord.period_id == period.id, PayrollRecord.is_stale.is_(True))
            .all()
        )
        for rec in stale:
            liquidate_employee(db, period, db.get(Employee, rec.employee_id))

        (
            db.query(PayrollRecord)
            .filter(PayrollRecord.period_id == period.id)
            .update({PayrollRecord.status: "procesada"}, synchronize_session=False)
        )
        totals = recompute_period_totals(db, period)
        period.status = "cerrado"
        period.closed_at = _now()

        if previous == "reabierto":
            voucher_info = vouchers.regenerate_vouchers(db, period)
            db.add(PeriodAuditLog(
                period_id=period.id,
                action="cerrado_nuevamente",
                previous_state=previous,
                new_state="cerrado",
                has_vouchers=True,
                actor=actor,
            ))
        else:
            voucher_info = vouchers.generate_period_vouchers(db, period)

        provisions = None
        if period.company.provision_mode == "on_liquidation":
            provisions = social_benefits.provision_period(db, period)

        vacations.mark_vacations_liquidated(db, period)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Closing period %s failed; rolled back", period_id)
        raise

    logger.info("Period %s closed (%s → cerrado)", period.period_key, previous)
    return {
        "period_id": str(period.id),
        "status": period.status,
        "totals": totals,
        "vouchers": voucher_info,
        "provisions": provisions,
    }


def reopen_period(db: Session, period_id: uuid.UUID, actor: Optional[str] = None,
                  notes: Optional[str] = None) -> Dict[str, Any]:
    period = get_period(db, period_id)
    if period.reported_dian:
        raise PeriodStateError("El período ya fue reportado a la DIAN y no puede reabrirse", status=period.status)
    if period.status != "cerrado":
        raise PeriodStateError(
            f"Solo se pueden reabrir períodos cerrados (estado actual: {period.status})",
            status=period.status,
        )

    has_vouchers = db.query(Voucher.id).filter(Voucher.period_id == period.id).first() is not None
    period.status = "reabierto"
    period.reopened_at = _now()
    period.reopened_by = actor
    db.add(PeriodAuditLog(
        period_id=period.id,
        action="reabierto",
        previous_state="cerrado",
        new_state="reabierto",
        has_vouchers=has_vouchers,
        actor=actor,
        notes=notes,
    ))
    db.commit()
    logger.info("Period %s reopened by %s", period.period_key, actor or "-")
    return {"period_id": str(period.id), "status": period.status, "has_vouchers": has_vouchers}


def period_audit(db: Session, period_id: uuid.UUID) -> List[PeriodAuditLog]:
    get_period(db, period_id)
    return (
        db.query(PeriodAuditLog)
        .filter(PeriodAuditLog.period_id == period_id)
        .order_by(PeriodAuditLog.created_at.asc())
        .all()
    )


# ----------------------------- versions ----------------------------- #


def _record_snapshot(rec: PayrollRecord) -> Dict[str, Any]:
    out = {"employee_id": str(rec.employee_id), "record_id": str(rec.id)}
    for f in RECORD_FIELDS:
        out[f] = str(getattr(rec, f))
    out["breakdown"] = rec.breakdown or {}
    return out


def snapshot_version(db: Session, period: PayrollPeriod, version_type: str,
                     summary: Optional[str] = None, actor: Optional[str] = None) -> PayrollVersion:
    """Store the current state of every record in the period. Caller commits."""
    last = (
        db.query(sa_func.max(PayrollVersion.version_no))
        .filter(PayrollVersion.period_id == period.id)
        .scalar()
    )
    records = db.query(PayrollRecord).filter(PayrollRecord.period_id == period.id).all()
    version = PayrollVersion(
        company_id=period.company_id,
        period_id=period.id,
        version_no=(last or 0) + 1,
        version_type=version_type,
        summary=summary,
        snapshot={
            "status": period.status,
            "totals": {
                "employees": period.employees_count,
                "total_earnings": str(period.total_earnings),
                "total_deductions": str(period.total_deductions),
                "total_net": str(period.total_net),
            },
            "records": [_record_snapshot(r) for r in records],
        },
        created_by=actor,
    )
    db.add(version)
    db.flush()
    return version


def list_versions(db: Session, period_id: uuid.UUID) -> List[PayrollVersion]:
    get_period(db, period_id)
    return (
        db.query(PayrollVersion)
        .filter(PayrollVersion.period_id == period_id)
        .order_by(PayrollVersion.version_no.asc())
        .all()
    )


def compare_versions(db: Session, version_a_id: uuid.UUID, version_b_id: uuid.UUID) -> Dict[str, Any]:
    """
    Per-employee differences between two snapshots of the same period.

    Deltas are `b - a`; only fields that changed are listed. Employees present
    in one snapshot only are reported as `added` / `removed`.
    """
    a = db.get(PayrollVersion, version_a_id)
    if not a:
        raise NotFoundError(f"PayrollVersion not found: {version_a_id}")
    b = db.get(PayrollVersion, version_b_id)
    if not b:
        raise NotFoundError(f"PayrollVersion not found: {version_b_id}")
    if a.period_id != b.period_id:
        raise ValueError("Only versions of the same period can be compared")

    rows_a = {r["employee_id"]: r for r in (a.snapshot or {}).get("records", [])}
    rows_b = {r["employee_id"]: r for r in (b.snapshot or {}).get("records", [])}
    zero = Decimal("0")

    employees: List[Dict[str, Any]] = []
    for emp_id in sorted(set(rows_a) | set(rows_b)):
        ra, rb = rows_a.get(emp_id), rows_b.get(emp_id)
        changes: Dict[str, Dict[str, Decimal]] = {}
        for f in RECORD_FIELDS:
            va = D(ra[f]) if ra else zero
            vb = D(rb[f]) if rb else zero
            if va != vb:
                changes[f] = {"from": va, "to": vb, "difference": vb - va}
        if ra is None:
            status = "added"
        elif rb is None:
            status = "removed"
        else:
            status = "changed" if changes else "unchanged"
        emp = db.get(Employee, uuid.UUID(emp_id))
        employees.append({
            "employee_id": emp_id,
            "code": emp.code if emp else None,
            "name": emp.full_name if emp else None,
            "status": status,
            "changes": changes,
        })

    totals_a = (a.snapshot or {}).get("totals", {})
    totals_b = (b.snapshot or {}).get("totals", {})
    totals = {}
    for key in ("total_earnings", "total_deductions", "total_net"):
        va, vb = D(totals_a.get(key) or 0), D(totals_b.get(key) or 0)
        totals[key] = {"from": va, "to": vb, "difference": vb - va}

    return {
        "period_id": str(a.period_id),
        "version_a": a.version_no,
        "version_b": b.version_no,
        "employees": employees,
        "changed_employees": sum(1 for e in employees if e["status"] != "unchanged"),
        "totals": totals,
    }


def rollback_version(db: Session, version_id: uuid.UUID, actor: Optional[str] = None) -> Dict[str, Any]:
    version = db.get(PayrollVersion, version_id)
    if not version:
        raise NotFoundError(f"PayrollVersion not found: {version_id}")
    period = get_period(db, version.period_id)
    if period.reported_dian:
        raise PeriodStateError("El período ya fue reportado a la DIAN", status=period.status)

    snapshot_version(db, period, "rollback", summary=f"Antes de restaurar versión {version.version_no}", actor=actor)

    restored = 0
    for row in (version.snapshot or {}).get("records", []):
        rec = (
            db.query(PayrollRecord)
            .filter(
                PayrollRecord.period_id == period.id,
                PayrollRecord.employee_id == uuid.UUID(row["employee_id"]),
            )
            .first()
        )
        if rec is None:
            continue
        for f in RECORD_FIELDS:
            setattr(rec, f, D(row[f]))
        rec.breakdown = row.get("breakdown") or {}
        rec.is_stale = False
        rec.updated_at = _now()
        restored += 1

    recompute_period_totals(db, period)
    if period.status == "cerrado":
        vouchers.regenerate_vouchers(db, period)
    db.commit()
    logger.info("Period %s restored to version %d (%d records)", period.period_key, version.version_no, restored)
    return {"period_id": str(period.id), "restored_version": version.version_no, "records": restored}


# ----------------------------- stale recalculation ----------------------------- #


def reliquidate_employees(
    db: Session,
    period: PayrollPeriod,
    employee_ids: Iterable[uuid.UUID],
) -> Dict[str, Any]:
    """Recompute the given employees; per-employee failures are collected. Caller commits."""
    done: List[uuid.UUID] = []
    errors: List[Dict[str, Any]] = []
    for emp_id in employee_ids:
        emp = db.get(Employee, emp_id)
        if emp is None:
            errors.append({"employee_id": str(emp_id), "error": "Employee not found"})
            continue
        try:
            liquidate_employee(db, period, emp)
            done.append(emp_id)
        except ValueError as e:
            logger.warning("Re-liquidation of %s in %s failed: %s", emp.code, period.period_key, e)
            errors.append({"employee_id": str(emp_id), "error": str(e)})
    return {"done": done, "errors": errors}


def recalculate_stale(
    db: Session,
    company_id: uuid.UUID,
    period_id: Optional[uuid.UUID] = None,
    actor: Optional[str] = None,
) -> Dict[str, Any]:
    get_company(db, company_id)
    q = db.query(PayrollRecord).filter(
        PayrollRecord.company_id == company_id,
        PayrollRecord.is_stale.is_(True),
    )
    if period_id:
        q = q.filter(PayrollRecord.period_id == period_id)

    by_period: Dict[uuid.UUID, List[uuid.UUID]] = {}
    for rec in q.all():
        by_period.setdefault(rec.period_id, []).append(rec.employee_id)

    recalculated = 0
    errors: List[Dict[str, Any]] = []
    for pid, emp_ids in by_period.items():
        period = get_period(db, pid)
        if period.status == "cerrado":
            snapshot_version(db, period, "recalculation",
                             summary=f"Recálculo de {len(emp_ids)} liquidaciones desactualizadas", actor=actor)
        res = reliquidate_employees(db, period, emp_ids)
        recalculated += len(res["done"])
        errors.extend(res["errors"])
        recompute_period_totals(db, period)
        if period.status == "cerrado" and res["done"]:
            vouchers.regenerate_vouchers(db, period, res["done"])

    db.commit()
    return {"periods": len(by_period), "recalculated": recalculated, "errors": errors}
