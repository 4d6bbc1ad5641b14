# backend/app/api/vacations.py
from __future__ import annotations

from typing import Any, Dict
from uuid import UUID

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from app.dependencies import get_db, service_errors
from app.models.vacations import VacationPeriod
from app.schemas.payroll import AbsenceSplitRequest, VacationCreate
from app.services import payroll as payroll_svc
from app.services import vacations as svc

router = APIRouter(prefix="/vacations", tags=["vacations"])


def _vacation_out(v: VacationPeriod) -> Dict[str, Any]:
    return {
        "id": v.id,
        "employee_id": v.employee_id,
        "start_date": v.start_date,
        "end_date": v.end_date,
        "days_count": v.days_count,
        "status": v.status,
        "notes": v.notes,
        "processed_in_period_id": v.processed_in_period_id,
        "created_at": v.created_at,
    }


@router.post("", status_code=201)
def api_create_vacation(payload: VacationCreate, db: Session = Depends(get_db)):
    with service_errors(db):
        vac = svc.create_vacation(db, payload.employee_id, payload.start_date, payload.end_date, payload.notes)
    return _vacation_out(vac)


@router.get("/employees/{employee_id}")
def api_employee_vacations(employee_id: UUID, db: Session = Depends(get_db)):
    with service_errors(db):
        emp = payroll_svc.get_employee(db, employee_id)
        return {
            "balance": svc.vacation_balance(db, emp),
            "items": [_vacation_out(v) for v in svc.list_vacations(db, employee_id)],
        }


@router.post("/{vacation_id}/cancel")
def api_cancel_vacation(vacation_id: UUID, db: Session = Depends(get_db)):
    with service_errors(db):
        return _vacation_out(svc.cancel_vacation(db, vacation_id))


@router.delete("/{vacation_id}", status_code=204)
def api_delete_vacation(vacation_id: UUID, db: Session = Depends(get_db)):
    with service_errors(db):
        svc.delete_vacation(db, vacation_id)
    return Response(status_code=204)


@router.post("/split")
def api_split_absence(payload: AbsenceSplitRequest, db: Session = Depends(get_db)):
    with service_errors(db):
        company = payroll_svc.get_company(db, payload.company_id)
        return svc.split_absence_across_periods(db, company, payload.start_date, payload.end_date)
