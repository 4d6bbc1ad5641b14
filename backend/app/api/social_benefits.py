# backend/app/api/social_benefits.py
from __future__ import annotations

from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.dependencies import get_db, service_errors
from app.models.social_benefits import SocialBenefitProvision
from app.schemas.payroll import BenefitCalculateRequest, BenefitLiquidateRequest
from app.services import payroll as payroll_svc
from app.services import social_benefits as svc

router = APIRouter(prefix="/social-benefits", tags=["social benefits"])


def _provision_out(p: SocialBenefitProvision) -> Dict[str, Any]:
    return {
        "id": p.id,
        "employee_id": p.employee_id,
        "period_id": p.period_id,
        "benefit_type": p.benefit_type,
        "period_start": p.period_start,
        "period_end": p.period_end,
        "amount": p.amount,
        "calculation_basis": p.calculation_basis or {},
        "status": p.status,
        "liquidation_id": p.liquidation_id,
    }


@router.post("/periods/{period_id}/provision")
def api_provision_period(period_id: UUID, db: Session = Depends(get_db)):
    with service_errors(db):
        period = payroll_svc.get_period(db, period_id)
        res = svc.provision_period(db, period)
        db.commit()
    return res


@router.get("/provisions")
def api_list_provisions(
    company_id: UUID = Query(...),
    employee_id: Optional[UUID] = Query(None),
    benefit_type: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    q = db.query(SocialBenefitProvision).filter(SocialBenefitProvision.company_id == company_id)
    if employee_id:
        q = q.filter(SocialBenefitProvision.employee_id == employee_id)
    if benefit_type:
        q = q.filter(SocialBenefitProvision.benefit_type == benefit_type)
    if status:
        q = q.filter(SocialBenefitProvision.status == status)
    rows = q.order_by(SocialBenefitProvision.period_start.asc(), SocialBenefitProvision.benefit_type).all()
    return [_provision_out(p) for p in rows]


@router.post("/calculate")
def api_calculate_benefit(payload: BenefitCalculateRequest, db: Session = Depends(get_db)):
    with service_errors(db):
        return svc.calculate_benefit(
            db, payload.employee_id, payload.benefit_type, payload.start_date, payload.end_date
        )


@router.post("/liquidate")
def api_liquidate_benefit(payload: BenefitLiquidateRequest, db: Session = Depends(get_db)):
    with service_errors(db):
        return svc.liquidate_benefit(
            db,
            payload.company_id,
            payload.benefit_type,
            payload.start_date,
            payload.end_date,
            save=payload.save,
            skip_open=payload.skip_open,
            notes=payload.notes,
        )
