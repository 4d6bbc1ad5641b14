# backend/app/services/vouchers.py
"""
Comprobantes de nómina (vouchers).

- reference_no pattern (UNIQUE): NOM-{YYYYMMDD of period start}-{empCode}
  (suffix -2, -3 ... only if another company already used the same reference)
- generate_period_vouchers(period): one voucher per payroll record; idempotent
- regenerate_vouchers(period, employee_ids): re-render + bump version
- send_voucher / send_period_vouchers: email delivery via app.services.email
"""

from __future__ import annotations

import html as _html
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from app.models.payroll import Company, Employee, PayrollPeriod, PayrollRecord, Voucher
from app.services.email import EmailDeliveryError, EmailMessage, EmailSender, get_email_sender
from app.services.errors import NotFoundError

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def fmt_cop(x: Decimal | float | str | None) -> str:
    """$ 1.423.500 (Colombian grouping, no cents)."""
    try:
        d = Decimal(str(x if x is not None else 0)).quantize(Decimal("1"))
    except (InvalidOperation, ValueError):
        return str(x)
    sign = "-" if d < 0 else ""
    return f"{sign}$ {abs(d):,.0f}".replace(",", ".")


def _reference_no(db: Session, period: PayrollPeriod, emp: Employee) -> str:
    base = f"NOM-{period.start_date.strftime('%Y%m%d')}-{emp.code}"
    ref = base
    n = 2
    while db.query(Voucher.id).filter(Voucher.reference_no == ref).first():
        ref = f"{base}-{n}"
        n += 1
    return ref


def render_voucher_html(company: Company, emp: Employee, period: PayrollPeriod,
                        rec: PayrollRecord, voucher: Voucher) -> str:
    esc = _html.escape
    lines = (rec.breakdown or {}).get("lines", [])

    earnings = [
        ("Salario básico", rec.regular_pay),
        ("Auxilio de transporte", rec.transport_allowance),
    ] + [(ln["type"].replace("_", " ").capitalize(), ln["value"]) for ln in lines if ln.get("kind") == "devengo"]

    deductions = [
        ("Salud (4%)", rec.health_deduction),
        ("Pensión (4%)", rec.pension_deduction),
    ]
    if rec.solidarity_fund:
        deductions.append(("Fondo de solidaridad pensional", rec.solidarity_fund))
    if rec.withholding_tax:
        deductions.append(("Retención en la fuente", rec.withholding_tax))
    deductions += [
        (ln["type"].replace("_", " ").capitalize(), ln["value"]) for ln in lines if ln.get("kind") == "deduccion"
    ]

    def _rows(items: Iterable[tuple]) -> str:
        return "".join(
            f"<tr><td>{esc(str(label))}</td><td style='text-align:right'>{fmt_cop(amount)}</td></tr>"
            for label, amount in items
            if amount not in (None, "0", 0)
        )

    html = f"""
<!DOCTYPE html>
<html lang="es">
<head>
<meta charset="utf-8"/>
<title>Comprobante {esc(voucher.reference_no)}</title>
<style>
  body {{ font-family: ui-sans-serif, system-ui, -apple-system, Segoe UI, Roboto, "Helvetica Neue", Arial; margin: 24px; }}
  .card {{ max-width: 720px; margin: 0 auto; border: 1px solid #ddd; border-radius: 12px; padding: 20px; }}
  h1 {{ font-size: 20px; margin: 0 0 12px; }}
  h2 {{ font-size: 16px; margin: 16px 0 8px; }}
  table {{ width: 100%; border-collapse: collapse; }}
  td, th {{ padding: 6px 4px; border-bottom: 1px solid #eee; }}
  .totals td {{ font-weight: 600; }}
  .muted {{ color: #666; font-size: 12px; }}
  .grid {{ display: grid; grid-template-columns: 1fr 1fr; gap: 6px 16px; margin-bottom: 12px; }}
</style>
</head>
<body>
<div class="card">
  <h1>Comprobante de nómina</h1>
  <div class="grid">
    <div><strong>Empresa:</strong> {esc(company.name)} (NIT {esc(company.nit)})</div>
    <div><strong>Referencia:</strong> {esc(voucher.reference_no)}</div>
    <div><strong>Empleado:</strong> {esc(emp.full_name)} ({esc(emp.code)})</div>
    <div><strong>Documento:</strong> {esc(emp.document_no or "")}</div>
    <div><strong>Período:</strong> {esc(period.label)}</div>
    <div><strong>Días liquidados:</strong> {rec.worked_days}</div>
  </div>

  <h2>Devengos</h2>
  <table>{_rows(earnings) or "<tr><td colspan='2' class='muted'>Sin devengos</td></tr>"}</table>

  <h2>Deducciones</h2>
  <table>{_rows(deductions) or "<tr><td colspan='2' class='muted'>Sin deducciones</td></tr>"}</table>

  <h2>Totales</h2>
  <table class="totals">
    <tr><td>Total devengado</td><td style="text-align:right">{fmt_cop(rec.gross_pay)}</td></tr>
    <tr><td>Total deducciones</td><td style="text-align:right">{fmt_cop(rec.total_deductions)}</td></tr>
    <tr><td>Neto a pagar</td><td style="text-align:right">{fmt_cop(rec.net_pay)}</td></tr>
  </table>

  <p class="muted">Versión {voucher.version} · IBC {fmt_cop(rec.ibc)}</p>
</div>
</body>
</html>
    """.strip()
    return html


def _render_into(db: Session, voucher: Voucher, rec: PayrollRecord, period: PayrollPeriod) -> None:
    emp = db.get(Employee, rec.employee_id)
    company = db.get(Company, period.company_id)
    voucher.net_pay = rec.net_pay
    voucher.start_date = period.start_date
    voucher.end_date = period.end_date
    voucher.html = render_voucher_html(company, emp, period, rec, voucher)


def generate_period_vouchers(db: Session, period: PayrollPeriod) -> Dict[str, int]:
    """
    One voucher per payroll record of the period. Existing vouchers are left as is.
    Caller commits.
    """
    records = db.query(PayrollRecord).filter(PayrollRecord.period_id == period.id).all()
    existing = {
        row.payroll_id
        for row in db.query(Voucher.payroll_id).filter(Voucher.period_id == period.id).all()
    }

    created = 0
    for rec in records:
        if rec.id in existing:
            continue
        emp = db.get(Employee, rec.employee_id)
        voucher = Voucher(
            company_id=period.company_id,
            period_id=period.id,
            payroll_id=rec.id,
            employee_id=rec.employee_id,
            reference_no=_reference_no(db, period, emp),
            start_date=period.start_date,
            end_date=period.end_date,
            net_pay=rec.net_pay,
            version=1,
            status="generado",
        )
        _render_into(db, voucher, rec, period)
        db.add(voucher)
        db.flush()
        created += 1

    logger.info("Generated %d vouchers for period %s", created, period.period_key)
    return {"created": created, "records": len(records)}


def regenerate_vouchers(
    db: Session,
    period: PayrollPeriod,
    employee_ids: Optional[Iterable[uuid.UUID]] = None,
) -> Dict[str, int]:
    """Re-render vouchers (creating missing ones) and bump their version. Caller commits."""
    q = db.query(PayrollRecord).filter(PayrollRecord.period_id == period.id)
    ids = list(employee_ids) if employee_ids is not None else None
    if ids is not None:
        q = q.filter(PayrollRecord.employee_id.in_(ids))

    regenerated = 0
    created = 0
    for rec in q.all():
        voucher = db.query(Voucher).filter(Voucher.payroll_id == rec.id).first()
        if voucher is None:
            emp = db.get(Employee, rec.employee_id)
            voucher = Voucher(
                company_id=period.company_id,
                period_id=period.id,
                payroll_id=rec.id,
                employee_id=rec.employee_id,
                reference_no=_reference_no(db, period, emp),
                start_date=period.start_date,
                end_date=period.end_date,
                version=1,
                status="generado",
            )
            db.add(voucher)
            created += 1
        else:
            voucher.version = (voucher.version or 1) + 1
            voucher.status = "generado"
            voucher.sent_to_employee = False
            voucher.updated_at = _now()
            regenerated += 1
        _render_into(db, voucher, rec, period)
        db.flush()

    logger.info("Regenerated %d / created %d vouchers for period %s", regenerated, created, period.period_key)
    return {"regenerated": regenerated, "created": created}


def send_voucher(db: Session, voucher_id: uuid.UUID, *, sender: Optional[EmailSender] = None,
                 email: Optional[str] = None) -> Voucher:
    voucher = db.get(Voucher, voucher_id)
    if not voucher:
        raise NotFoundError(f"Voucher not found: {voucher_id}")
    emp = db.get(Employee, voucher.employee_id)
    to = email or (emp.email if emp else None)
    if not to:
        raise ValueError(f"Employee {emp.code if emp else voucher.employee_id} has no email")

    sender = sender or get_email_sender()
    period = db.get(PayrollPeriod, voucher.period_id)
    msg = EmailMessage(
        to=[to],
        subject=f"Comprobante de nómina {period.label if period else voucher.reference_no}",
        body_html=voucher.html or "",
    )
    try:
        sender.send(msg)
    except EmailDeliveryError as e:
        voucher.status = "error"
        voucher.last_error = str(e)
        voucher.updated_at = _now()
        db.commit()
        raise

    voucher.status = "enviado"
    voucher.sent_to_employee = True
    voucher.sent_date = _now()
    voucher.last_error = None
    voucher.updated_at = voucher.sent_date
    db.commit()
    db.refresh(voucher)
    return voucher


def send_period_vouchers(db: Session, period_id: uuid.UUID, *,
                         sender: Optional[EmailSender] = None) -> Dict[str, Any]:
    period = db.get(PayrollPeriod, period_id)
    if not period:
        raise NotFoundError(f"PayrollPeriod not found: {period_id}")

    sender = sender or get_email_sender()
    vouchers = (
        db.query(Voucher)
        .filter(Voucher.period_id == period.id)
        .order_by(Voucher.reference_no.asc())
        .all()
    )

    results: List[Dict[str, Any]] = []
    sent = errors = skipped = 0
    for v in vouchers:
        emp = db.get(Employee, v.employee_id)
        if not emp or not emp.email:
            skipped += 1
            results.append({"employee_id": str(v.employee_id), "status": "skipped", "reason": "sin email"})
            continue
        try:
            send_voucher(db, v.id, sender=sender)
            sent += 1
            results.append({"employee_id": str(emp.id), "status": "sent", "email": emp.email})
        except EmailDeliveryError as e:
            errors += 1
            logger.warning("Voucher %s not delivered: %s", v.reference_no, e)
            results.append({"employee_id": str(emp.id), "status": "error", "error": str(e)})

    return {"sent": sent, "errors": errors, "skipped": skipped, "results": results}
