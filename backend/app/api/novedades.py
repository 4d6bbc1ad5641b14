# backend/app/api/novedades.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from app.dependencies import get_db, service_errors
from app.models.novedades import Novedad
from app.schemas.novedades import NovedadCreate, NovedadPreview, NovedadUpdate
from app.services import novedades as svc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/novedades", tags=["novedades"])


def _novedad_out(n: Novedad) -> Dict[str, Any]:
    return {
        "id": n.id,
        "employee_id": n.employee_id,
        "period_id": n.period_id,
        "novedad_type": n.novedad_type,
        "subtype": n.subtype,
        "start_date": n.start_date,
        "end_date": n.end_date,
        "days": n.days,
        "hours": n.hours,
        "value": n.value,
        "constitutive": svc.is_constitutive(n.novedad_type, n.constitutive),
        "kind": "deduccion" if svc.is_deduction(n.novedad_type) else "devengo",
        "calc_basis": n.calc_basis or {},
        "notes": n.notes,
        "source": n.source,
        "created_at": n.created_at,
    }


@router.get("/catalog")
def api_catalog():
    return {
        "earnings": list(svc.EARNING_TYPES),
        "deductions": list(svc.DEDUCTION_TYPES),
        "constitutive_defaults": sorted(svc.CONSTITUTIVE_DEFAULTS),
        "incapacity_policies": list(svc.INCAPACITY_POLICIES),
    }


@router.post("/preview")
def api_preview(payload: NovedadPreview):
    """Compute a novedad value without storing it."""
    with service_errors():
        calc = svc.calculate_novedad(
            payload.novedad_type,
            payload.subtype,
            payload.base_salary,
            hours=payload.hours,
            days=payload.days,
            on=payload.on,
            policy=payload.policy,
            value=payload.value,
        )
    return {
        "value": calc.value,
        "factor": calc.factor,
        "detail": calc.detail,
        "hours_info": calc.hours_info,
    }


@router.post("/periods/{period_id}", status_code=201)
def api_create_novedad(period_id: UUID, payload: NovedadCreate, db: Session = Depends(get_db)):
    with service_errors(db):
        nov = svc.create_novedad(db, period_id, payload.model_dump())
    return _novedad_out(nov)


@router.get("/periods/{period_id}")
def api_list_novedades(period_id: UUID, employee_id: Optional[UUID] = Query(None), db: Session = Depends(get_db)):
    rows = svc.list_novedades(db, period_id, employee_id)
    out = [_novedad_out(n) for n in rows]
    totals = svc.novedades_totals(rows)
    return {
        "items": out,
        "totals": {k: totals[k] for k in ("earnings", "deductions", "net")},
    }


@router.patch("/{novedad_id}")
def api_update_novedad(novedad_id: UUID, payload: NovedadUpdate, db: Session = Depends(get_db)):
    with service_errors(db):
        nov = svc.update_novedad(db, novedad_id, payload.model_dump(exclude_unset=True))
    logger.info("update_novedad id=%s fields=%s", novedad_id, sorted(payload.model_dump(exclude_unset=True)))
    return _novedad_out(nov)


@router.delete("/{novedad_id}", status_code=204)
def api_delete_novedad(novedad_id: UUID, db: Session = Depends(get_db)):
    with service_errors(db):
        svc.delete_novedad(db, novedad_id)
    return Response(status_code=204)
