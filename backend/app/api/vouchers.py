# backend/app/api/vouchers.py
from __future__ import annotations

from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session

from app.dependencies import get_db, service_errors
from app.models.payroll import Voucher
from app.schemas.payroll import EmployeeIds, VoucherSendRequest
from app.services import payroll as payroll_svc
from app.services import vouchers as svc
from app.services.email import EmailDeliveryError

router = APIRouter(prefix="/vouchers", tags=["vouchers"])


def _voucher_out(v: Voucher) -> Dict[str, Any]:
    return {
        "id": v.id,
        "period_id": v.period_id,
        "payroll_id": v.payroll_id,
        "employee_id": v.employee_id,
        "reference_no": v.reference_no,
        "start_date": v.start_date,
        "end_date": v.end_date,
        "net_pay": v.net_pay,
        "version": v.version,
        "status": v.status,
        "sent_to_employee": v.sent_to_employee,
        "sent_date": v.sent_date,
        "last_error": v.last_error,
    }


@router.get("/periods/{period_id}")
def api_list_vouchers(period_id: UUID, db: Session = Depends(get_db)):
    rows = (
        db.query(Voucher)
        .filter(Voucher.period_id == period_id)
        .order_by(Voucher.reference_no.asc())
        .all()
    )
    return [_voucher_out(v) for v in rows]


@router.get("/{voucher_id}.html", response_class=HTMLResponse)
def api_voucher_html(voucher_id: UUID, db: Session = Depends(get_db)):
    v = db.get(Voucher, voucher_id)
    if not v:
        raise HTTPException(status_code=404, detail="Voucher not found")
    return v.html or ""


@router.post("/periods/{period_id}/regenerate")
def api_regenerate(period_id: UUID, payload: Optional[EmployeeIds] = None, db: Session = Depends(get_db)):
    with service_errors(db):
        period = payroll_svc.get_period(db, period_id)
        res = svc.regenerate_vouchers(db, period, payload.employee_ids if payload else None)
        db.commit()
    return res


@router.post("/{voucher_id}/send")
def api_send_voucher(voucher_id: UUID, payload: Optional[VoucherSendRequest] = None, db: Session = Depends(get_db)):
    with service_errors(db):
        try:
            v = svc.send_voucher(db, voucher_id, email=payload.email if payload else None)
        except EmailDeliveryError as e:
            raise HTTPException(status_code=502, detail=str(e)) from e
    return _voucher_out(v)


@router.post("/periods/{period_id}/send")
def api_send_period(period_id: UUID, db: Session = Depends(get_db)):
    with service_errors(db):
        return svc.send_period_vouchers(db, period_id)
