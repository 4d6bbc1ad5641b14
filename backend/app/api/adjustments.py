# backend/app/api/adjustments.py
from __future__ import annotations

from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.dependencies import get_db, service_errors
from app.models.novedades import PendingAdjustment, PeriodCorrection
from app.schemas.novedades import ApplyAdjustmentsRequest, PendingAdjustmentCreate
from app.services import pending_adjustments as svc

router = APIRouter(prefix="/adjustments", tags=["pending adjustments"])


def _adjustment_out(a: PendingAdjustment) -> Dict[str, Any]:
    return {
        "id": a.id,
        "period_id": a.period_id,
        "employee_id": a.employee_id,
        "novedad_type": a.novedad_type,
        "subtype": a.subtype,
        "days": a.days,
        "hours": a.hours,
        "value": a.value,
        "constitutive": a.constitutive,
        "notes": a.notes,
        "justification": a.justification,
        "status": a.status,
        "applied_at": a.applied_at,
        "applied_novedad_id": a.applied_novedad_id,
        "created_by": a.created_by,
        "created_at": a.created_at,
    }


def _correction_out(c: PeriodCorrection) -> Dict[str, Any]:
    return {
        "id": c.id,
        "employee_id": c.employee_id,
        "correction_type": c.correction_type,
        "concept": c.concept,
        "justification": c.justification,
        "previous_value": c.previous_value,
        "new_value": c.new_value,
        "value_difference": c.value_difference,
        "created_by": c.created_by,
        "created_at": c.created_at,
    }


@router.post("/periods/{period_id}", status_code=201)
def api_add_adjustment(period_id: UUID, payload: PendingAdjustmentCreate, db: Session = Depends(get_db)):
    with service_errors(db):
        adj = svc.add_pending_adjustment(db, period_id, payload.model_dump())
    return _adjustment_out(adj)


@router.get("/periods/{period_id}")
def api_list_adjustments(period_id: UUID, status: Optional[str] = Query(None), db: Session = Depends(get_db)):
    return [_adjustment_out(a) for a in svc.list_pending_adjustments(db, period_id, status)]


@router.get("/periods/{period_id}/preview")
def api_preview_impact(period_id: UUID, db: Session = Depends(get_db)):
    with service_errors(db):
        return svc.preview_impact(db, period_id)


@router.post("/periods/{period_id}/apply")
def api_apply_adjustments(period_id: UUID, payload: ApplyAdjustmentsRequest, db: Session = Depends(get_db)):
    with service_errors(db):
        return svc.apply_pending_adjustments(
            db,
            period_id,
            employee_ids=payload.employee_ids,
            justification=payload.justification,
            actor=payload.actor,
        )


@router.post("/{adjustment_id}/discard")
def api_discard_adjustment(adjustment_id: UUID, db: Session = Depends(get_db)):
    with service_errors(db):
        return _adjustment_out(svc.discard_pending_adjustment(db, adjustment_id))


@router.get("/periods/{period_id}/corrections")
def api_list_corrections(period_id: UUID, db: Session = Depends(get_db)):
    rows = (
        db.query(PeriodCorrection)
        .filter(PeriodCorrection.period_id == period_id)
        .order_by(PeriodCorrection.created_at.asc())
        .all()
    )
    return [_correction_out(c) for c in rows]
