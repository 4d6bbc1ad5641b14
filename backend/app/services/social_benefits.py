# backend/app/services/social_benefits.py
"""
Prestaciones sociales.

provision_period(period)        monthly-style provisions from each payroll record of a CLOSED period
    base        = salary + auxilio de transporte (when salary ≤ 2 SMMLV)
    cesantías   = base × days / 360
    intereses   = cesantías × 12%
    prima       = base × days / 360
    vacaciones  = salary × days / 720

calculate_benefit(employee, type, start, end)   ad-hoc estimate over a calendar range
liquidate_benefit(company, type, start, end)    preview / save a liquidation from `calculado` provisions
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.models.payroll import Company, Employee, PayrollPeriod, PayrollRecord
from app.models.social_benefits import SocialBenefitLiquidation, SocialBenefitProvision
from app.services.errors import NotFoundError, PeriodStateError
from app.services.payroll_rates import D, q0, load_legal_values

logger = logging.getLogger(__name__)

BENEFIT_TYPES = ("cesantias", "intereses_cesantias", "prima", "vacaciones")
INTEREST_RATE = Decimal("0.12")

BENEFIT_LABELS = {
    "cesantias": "Cesantías",
    "intereses_cesantias": "Intereses de cesantías",
    "prima": "Prima de servicios",
    "vacaciones": "Vacaciones",
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def provision_amounts(salary: Decimal, days: Decimal, *, year: int) -> Dict[str, Decimal]:
    lv = load_legal_values(year)
    salary = D(salary)
    days = D(days)
    transport = lv.transport_allowance if salary <= lv.smmlv * 2 else Decimal("0")
    base = salary + transport

    cesantias = q0(base * days / Decimal("360"))
    return {
        "cesantias": cesantias,
        "intereses_cesantias": q0(cesantias * INTEREST_RATE),
        "prima": q0(base * days / Decimal("360")),
        "vacaciones": q0(salary * days / Decimal("720")),
        "_base": base,
        "_transport": transport,
    }


def provision_period(db: Session, period: PayrollPeriod) -> Dict[str, Any]:
    """Upsert provisions for every payroll record of a closed period. Caller commits."""
    if period.status != "cerrado":
        raise PeriodStateError("Las provisiones requieren un período cerrado", status=period.status)

    records = db.query(PayrollRecord).filter(PayrollRecord.period_id == period.id).all()
    upserted = 0
    locked = 0

    for rec in records:
        days = D(rec.worked_days)
        amounts = provision_amounts(rec.base_salary, days, year=period.start_date.year)
        basis = {
            "salary": str(rec.base_salary),
            "transport_allowance": str(amounts["_transport"]),
            "base": str(amounts["_base"]),
            "days": str(days),
        }
        for btype in BENEFIT_TYPES:
            row = (
                db.query(SocialBenefitProvision)
                .filter(
                    SocialBenefitProvision.employee_id == rec.employee_id,
                    SocialBenefitProvision.benefit_type == btype,
                    SocialBenefitProvision.period_start == period.start_date,
                    SocialBenefitProvision.period_end == period.end_date,
                )
                .first()
            )
            if row is None:
                row = SocialBenefitProvision(
                    company_id=period.company_id,
                    employee_id=rec.employee_id,
                    period_id=period.id,
                    benefit_type=btype,
                    period_start=period.start_date,
                    period_end=period.end_date,
                )
                db.add(row)
            elif row.status == "liquidado":
                locked += 1
                continue
            else:
                row.updated_at = _now()
            row.amount = amounts[btype]
            row.calculation_basis = basis
            row.status = "calculado"
            upserted += 1

    db.flush()
    logger.info("Provisioned period %s: %d rows (%d already liquidated)", period.period_key, upserted, locked)
    return {"period_id": str(period.id), "employees": len(records), "upserted": upserted, "locked": locked}


def calculate_benefit(
    db: Session,
    employee_id: uuid.UUID,
    benefit_type: str,
    start: date,
    end: date,
) -> Dict[str, Any]:
    if benefit_type not in BENEFIT_TYPES:
        raise ValueError(f"Unknown benefit type: {benefit_type!r}")
    if end < start:
        raise ValueError("end must be on or after start")
    emp = db.get(Employee, employee_id)
    if not emp:
        raise NotFoundError(f"Employee not found: {employee_id}")

    salary = D(emp.base_salary)
    days = Decimal((end - start).days + 1)
    if benefit_type == "vacaciones":
        amount = q0(salary * days / Decimal("720"))
    else:
        amount = q0(salary * days / Decimal("360"))
        if benefit_type == "intereses_cesantias":
            amount = q0(amount * INTEREST_RATE)

    return {
        "employee_id": str(emp.id),
        "benefit_type": benefit_type,
        "start": start,
        "end": end,
        "days": int(days),
        "salary": salary,
        "amount": amount,
    }


def liquidate_benefit(
    db: Session,
    company_id: uuid.UUID,
    benefit_type: str,
    start: date,
    end: date,
    *,
    save: bool = False,
    skip_open: bool = False,
    notes: Optional[str] = None,
) -> Dict[str, Any]:
    if benefit_type not in BENEFIT_TYPES:
        raise ValueError(f"Unknown benefit type: {benefit_type!r}")
    company = db.get(Company, company_id)
    if not company:
        raise NotFoundError(f"Company not found: {company_id}")

    open_periods = (
        db.query(PayrollPeriod)
        .filter(
            PayrollPeriod.company_id == company_id,
            PayrollPeriod.start_date <= end,
            PayrollPeriod.end_date >= start,
            PayrollPeriod.status != "cerrado",
        )
        .order_by(PayrollPeriod.start_date.asc())
        .all()
    )
    open_info = [{"id": str(p.id), "label": p.label, "status": p.status} for p in open_periods]
    if save and open_periods and not skip_open:
        raise PeriodStateError(
            f"Hay {len(open_periods)} período(s) sin cerrar en el rango; ciérrelos o use skip_open"
        )

    provisions = (
        db.query(SocialBenefitProvision)
        .filter(
            SocialBenefitProvision.company_id == company_id,
            SocialBenefitProvision.benefit_type == benefit_type,
            SocialBenefitProvision.status == "calculado",
            SocialBenefitProvision.period_start >= start,
            SocialBenefitProvision.period_end <= end,
        )
        .all()
    )

    per_emp: Dict[uuid.UUID, Dict[str, Any]] = defaultdict(lambda: {"amount": Decimal("0"), "periods": 0})
    for p in provisions:
        per_emp[p.employee_id]["amount"] += D(p.amount)
        per_emp[p.employee_id]["periods"] += 1

    employees: List[Dict[str, Any]] = []
    for emp_id, agg in per_emp.items():
        emp = db.get(Employee, emp_id)
        employees.append({
            "employee_id": str(emp_id),
            "code": emp.code if emp else None,
            "name": emp.full_name if emp else None,
            "amount": agg["amount"],
            "periods": agg["periods"],
        })
    employees.sort(key=lambda e: e["code"] or "")
    total = sum((e["amount"] for e in employees), Decimal("0"))

    result: Dict[str, Any] = {
        "benefit_type": benefit_type,
        "start": start,
        "end": end,
        "open_periods": open_info,
        "employees": employees,
        "employees_count": len(employees),
        "total_amount": total,
        "saved": False,
        "liquidation_id": None,
    }
    if not save:
        return result
    if not employees:
        raise ValueError("No hay provisiones calculadas para liquidar en el rango")

    liq = SocialBenefitLiquidation(
        company_id=company_id,
        benefit_type=benefit_type,
        period_start=start,
        period_end=end,
        label=f"{BENEFIT_LABELS[benefit_type]} {start.isoformat()} a {end.isoformat()}",
        employees_count=len(employees),
        total_amount=total,
        detail={"employees": [{**e, "amount": str(e["amount"])} for e in employees]},
        notes=notes,
    )
    db.add(liq)
    db.flush()
    for p in provisions:
        p.status = "liquidado"
        p.liquidation_id = liq.id
        p.updated_at = _now()
    db.commit()

    logger.info("Liquidated %s for company %s: %s over %d employees",
                benefit_type, company.nit, total, len(employees))
    result["saved"] = True
    result["liquidation_id"] = str(liq.id)
    return result
