# backend/app/api/payroll.py
from __future__ import annotations

from datetime import date
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.dependencies import get_db, service_errors
from app.models.payroll import (
    Company,
    Employee,
    PayrollPeriod,
    PayrollRecord,
    PayrollVersion,
    PeriodAuditLog,
)
from app.schemas.payroll import (
    CompanyCreate,
    CompanySettingsUpdate,
    EmployeeCreate,
    EmployeeUpdate,
    PayrollPeriodCreate,
    PeriodAction,
    Periodicity,
    RecalculateRequest,
)
from app.services import payroll as svc
from app.services import periods

router = APIRouter(prefix="/payroll", tags=["payroll"])

# ----------------------------- helpers ----------------------------- #


def _company_out(c: Company) -> Dict[str, Any]:
    return {
        "id": c.id,
        "nit": c.nit,
        "name": c.name,
        "email": c.email,
        "periodicity": c.periodicity,
        "incapacity_policy": c.incapacity_policy,
        "provision_mode": c.provision_mode,
        "arl_rate": c.arl_rate,
        "created_at": c.created_at,
    }


def _employee_out(emp: Employee) -> Dict[str, Any]:
    return {
        "id": emp.id,
        "company_id": emp.company_id,
        "code": emp.code,
        "document_no": emp.document_no,
        "first_name": emp.first_name,
        "last_name": emp.last_name,
        "email": emp.email,
        "active": emp.active,
        "base_salary": emp.base_salary,
        "vacation_balance": emp.vacation_balance,
        "eps": emp.eps,
        "afp": emp.afp,
        "hire_date": emp.hire_date,
        "termination_date": emp.termination_date,
        "meta": emp.meta or {},
        "created_at": emp.created_at,
    }


def _period_out(p: PayrollPeriod) -> Dict[str, Any]:
    return {
        "id": p.id,
        "company_id": p.company_id,
        "period_key": p.period_key,
        "label": p.label,
        "periodicity": p.periodicity,
        "period_number": p.period_number,
        "start_date": p.start_date,
        "end_date": p.end_date,
        "status": p.status,
        "reported_dian": p.reported_dian,
        "employees_count": p.employees_count,
        "total_earnings": p.total_earnings,
        "total_deductions": p.total_deductions,
        "total_net": p.total_net,
        "closed_at": p.closed_at,
        "reopened_at": p.reopened_at,
        "reopened_by": p.reopened_by,
    }


def _record_out(r: PayrollRecord) -> Dict[str, Any]:
    out = {
        "id": r.id,
        "period_id": r.period_id,
        "employee_id": r.employee_id,
        "status": r.status,
        "is_stale": r.is_stale,
        "breakdown": r.breakdown or {},
        "updated_at": r.updated_at,
    }
    for f in svc.RECORD_FIELDS:
        out[f] = getattr(r, f)
    return out


def _version_out(v: PayrollVersion) -> Dict[str, Any]:
    return {
        "id": v.id,
        "period_id": v.period_id,
        "version_no": v.version_no,
        "version_type": v.version_type,
        "summary": v.summary,
        "created_by": v.created_by,
        "created_at": v.created_at,
        "totals": (v.snapshot or {}).get("totals", {}),
    }


def _audit_out(a: PeriodAuditLog) -> Dict[str, Any]:
    return {
        "id": a.id,
        "action": a.action,
        "previous_state": a.previous_state,
        "new_state": a.new_state,
        "has_vouchers": a.has_vouchers,
        "actor": a.actor,
        "notes": a.notes,
        "created_at": a.created_at,
    }


def _actor(payload: Optional[PeriodAction]) -> Optional[str]:
    return payload.actor if payload else None

# ----------------------------- companies ----------------------------- #


@router.post("/companies", status_code=201)
def api_create_company(payload: CompanyCreate, db: Session = Depends(get_db)):
    with service_errors(db):
        company = svc.create_company(db, payload.model_dump())
    return _company_out(company)


@router.get("/companies/{company_id}")
def api_get_company(company_id: UUID, db: Session = Depends(get_db)):
    with service_errors(db):
        return _company_out(svc.get_company(db, company_id))


@router.patch("/companies/{company_id}/settings")
def api_update_settings(company_id: UUID, payload: CompanySettingsUpdate, db: Session = Depends(get_db)):
    with service_errors(db):
        company = svc.update_company_settings(db, company_id, payload.model_dump(exclude_unset=True))
    return _company_out(company)

# ----------------------------- employees ----------------------------- #


@router.post("/companies/{company_id}/employees", status_code=201)
def api_create_employee(company_id: UUID, payload: EmployeeCreate, db: Session = Depends(get_db)):
    with service_errors(db):
        emp = svc.create_employee(db, company_id, payload.model_dump())
    return _employee_out(emp)


@router.get("/companies/{company_id}/employees")
def api_list_employees(company_id: UUID, active: Optional[bool] = Query(None), db: Session = Depends(get_db)):
    q = db.query(Employee).filter(Employee.company_id == company_id)
    if active is not None:
        q = q.filter(Employee.active.is_(active))
    return [_employee_out(e) for e in q.order_by(Employee.code).all()]


@router.patch("/employees/{employee_id}")
def api_update_employee(employee_id: UUID, payload: EmployeeUpdate, db: Session = Depends(get_db)):
    with service_errors(db):
        emp = svc.update_employee(db, employee_id, payload.model_dump(exclude_unset=True))
    return _employee_out(emp)

# ----------------------------- periods ----------------------------- #


@router.get("/periods/generate")
def api_generate_periods(
    year: int = Query(..., ge=2000, le=2100),
    periodicity: Periodicity = Query("quincenal"),
):
    return [s.as_dict() for s in periods.generate_year_periods(year, periodicity)]


@router.get("/companies/{company_id}/periods/detect")
def api_detect_next_period(company_id: UUID, today: Optional[date] = Query(None), db: Session = Depends(get_db)):
    with service_errors(db):
        company = svc.get_company(db, company_id)
        return periods.detect_next_period(db, company, today=today)


@router.post("/companies/{company_id}/periods", status_code=201)
def api_create_period(company_id: UUID, payload: PayrollPeriodCreate, db: Session = Depends(get_db)):
    with service_errors(db):
        p = svc.create_period(db, company_id, payload.start_date, payload.end_date, payload.periodicity)
    return _period_out(p)


@router.get("/companies/{company_id}/periods")
def api_list_periods(
    company_id: UUID,
    year: Optional[int] = Query(None),
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    q = db.query(PayrollPeriod).filter(PayrollPeriod.company_id == company_id)
    if year:
        q = q.filter(PayrollPeriod.start_date >= date(year, 1, 1), PayrollPeriod.start_date <= date(year, 12, 31))
    if status:
        q = q.filter(PayrollPeriod.status == status)
    return [_period_out(p) for p in q.order_by(PayrollPeriod.start_date.asc()).all()]


@router.post("/companies/{company_id}/periods/normalize")
def api_normalize_periods(company_id: UUID, db: Session = Depends(get_db)):
    with service_errors(db):
        company = svc.get_company(db, company_id)
        return periods.normalize_company_periods(db, company)


@router.get("/periods/{period_id}")
def api_get_period(period_id: UUID, db: Session = Depends(get_db)):
    with service_errors(db):
        return _period_out(svc.get_period(db, period_id))


@router.get("/periods/{period_id}/validate")
def api_validate_period(period_id: UUID, db: Session = Depends(get_db)):
    with service_errors(db):
        return svc.validate_pre_liquidation(db, period_id)


@router.post("/periods/{period_id}/liquidate")
def api_liquidate_period(period_id: UUID, db: Session = Depends(get_db)):
    with service_errors(db):
        return svc.liquidate_period(db, period_id)


@router.post("/periods/{period_id}/close")
def api_close_period(period_id: UUID, payload: Optional[PeriodAction] = None, db: Session = Depends(get_db)):
    with service_errors(db):
        return svc.close_period(db, period_id, actor=_actor(payload))


@router.post("/periods/{period_id}/reopen")
def api_reopen_period(period_id: UUID, payload: Optional[PeriodAction] = None, db: Session = Depends(get_db)):
    with service_errors(db):
        return svc.reopen_period(db, period_id, actor=_actor(payload), notes=payload.notes if payload else None)


@router.get("/periods/{period_id}/records")
def api_list_records(period_id: UUID, db: Session = Depends(get_db)):
    rows = (
        db.query(PayrollRecord)
        .filter(PayrollRecord.period_id == period_id)
        .order_by(PayrollRecord.created_at.asc())
        .all()
    )
    return [_record_out(r) for r in rows]


@router.get("/periods/{period_id}/audit")
def api_period_audit(period_id: UUID, db: Session = Depends(get_db)):
    with service_errors(db):
        return [_audit_out(a) for a in svc.period_audit(db, period_id)]


@router.post("/recalculate-stale")
def api_recalculate_stale(payload: RecalculateRequest, db: Session = Depends(get_db)):
    with service_errors(db):
        return svc.recalculate_stale(db, payload.company_id, payload.period_id, actor=_actor(payload))

# ----------------------------- versions ----------------------------- #


@router.get("/periods/{period_id}/versions")
def api_list_versions(period_id: UUID, db: Session = Depends(get_db)):
    with service_errors(db):
        return [_version_out(v) for v in svc.list_versions(db, period_id)]


@router.post("/versions/{version_id}/rollback")
def api_rollback_version(version_id: UUID, payload: Optional[PeriodAction] = None, db: Session = Depends(get_db)):
    with service_errors(db):
        return svc.rollback_version(db, version_id, actor=_actor(payload))


@router.get("/versions/compare")
def api_compare_versions(
    version_a: UUID = Query(..., description="Base version"),
    version_b: UUID = Query(..., description="Version compared against the base"),
    db: Session = Depends(get_db),
):
    with service_errors(db):
        return svc.compare_versions(db, version_a, version_b)
