# backend/app/services/payroll_calculation.py
"""
Per-employee liquidation (pure; no DB access).

    calculate_payroll(PayrollInput) -> PayrollResult

Steps:
  1) incapacity days/value per company policy; effective_days = clamp(0, 30, worked − incapacity)
  2) regular_pay = salary/30 × effective_days; extra_pay = incapacity + other earning novedades
  3) auxilio de transporte prorated over effective days when salary ≤ 2 SMMLV
  4) IBC salud = proportional salary + constitutive novedades + incapacity (cap 25 SMMLV)
     IBC parafiscales = proportional salary + constitutive novedades
  5) deductions = health + pension + solidarity + novelty deductions + withholding
  6) employer contributions; total_cost = gross + employer contributions
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

from app.services.novedades import (
    NON_REMUNERATED_TYPES,
    incapacity_value,
    is_constitutive,
    is_deduction,
)
from app.services.payroll_rates import (
    D,
    q0,
    cap_ibc,
    compute_employee_contributions,
    compute_employer_contributions,
    compute_withholding,
    load_legal_values,
)

THIRTY = Decimal("30")


@dataclass
class PayrollInput:
    base_salary: Decimal
    worked_days: Decimal = Decimal("30")
    novedades: List[Dict[str, Any]] = field(default_factory=list)
    year: int = 2025
    policy: str = "standard_2d_100_rest_66"
    arl_rate: Optional[Decimal] = None
    eps: Optional[str] = None
    afp: Optional[str] = None


@dataclass
class PayrollResult:
    base_salary: Decimal
    worked_days: Decimal
    effective_days: Decimal
    incapacity_days: Decimal
    regular_pay: Decimal
    incapacity_value: Decimal
    extra_pay: Decimal
    transport_allowance: Decimal
    gross_pay: Decimal
    ibc_health: Decimal
    ibc_parafiscal: Decimal
    health_deduction: Decimal
    pension_deduction: Decimal
    solidarity_fund: Decimal
    withholding_tax: Decimal
    novelty_deductions: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    employer: Dict[str, Decimal]
    employer_contributions: Decimal
    total_cost: Decimal
    lines: List[Dict[str, Any]]

    def as_breakdown(self) -> Dict[str, Any]:
        """JSON-safe snapshot stored on the payroll record."""
        return {
            "effective_days": str(self.effective_days),
            "incapacity_days": str(self.incapacity_days),
            "incapacity_value": str(self.incapacity_value),
            "ibc_health": str(self.ibc_health),
            "ibc_parafiscal": str(self.ibc_parafiscal),
            "employer": {k: str(v) for k, v in self.employer.items()},
            "lines": self.lines,
        }


def validate_employee_input(
    base_salary: Any,
    worked_days: Any,
    *,
    eps: Optional[str] = None,
    afp: Optional[str] = None,
) -> Dict[str, List[str]]:
    errors: List[str] = []
    warnings: List[str] = []
    if D(base_salary) <= 0:
        errors.append("El salario base debe ser mayor que cero")
    days = D(worked_days)
    if days < 0 or days > THIRTY:
        errors.append("Los días trabajados deben estar entre 0 y 30")
    if not eps:
        warnings.append("Empleado sin EPS asignada")
    if not afp:
        warnings.append("Empleado sin fondo de pensiones (AFP) asignado")
    return {"errors": errors, "warnings": warnings}


def calculate_payroll(data: PayrollInput) -> PayrollResult:
    check = validate_employee_input(data.base_salary, data.worked_days, eps=data.eps, afp=data.afp)
    if check["errors"]:
        raise ValueError("; ".join(check["errors"]))

    salary = D(data.base_salary)
    worked = D(data.worked_days)
    lv = load_legal_values(data.year)
    daily = salary / THIRTY

    # 1) incapacity
    inc_days = Decimal("0")
    inc_value = Decimal("0")
    for n in data.novedades:
        if n.get("novedad_type") != "incapacidad":
            continue
        days = D(n.get("days") or 0)
        if days > 0:
            inc_days += days
            inc_value += incapacity_value(
                salary, days, subtype=n.get("subtype"), policy=data.policy, year=data.year
            )
        else:
            inc_value += D(n.get("value") or 0)

    effective = max(Decimal("0"), min(THIRTY, worked - inc_days))

    # 2) earnings / deductions from novedades
    regular = q0(daily * effective)
    other_earnings = Decimal("0")
    constitutive = Decimal("0")
    novelty_deductions = Decimal("0")
    non_remunerated = Decimal("0")
    lines: List[Dict[str, Any]] = []

    for n in data.novedades:
        ntype = n.get("novedad_type")
        value = D(n.get("value") or 0)
        if ntype == "incapacidad":
            continue
        if is_deduction(ntype):
            novelty_deductions += abs(value)
            if ntype in NON_REMUNERATED_TYPES:
                non_remunerated += abs(value)
            lines.append({"type": ntype, "kind": "deduccion", "value": str(abs(value))})
            continue
        other_earnings += value
        if is_constitutive(ntype, n.get("constitutive")):
            constitutive += value
        lines.append({"type": ntype, "kind": "devengo", "value": str(value)})

    if inc_value:
        lines.append({"type": "incapacidad", "kind": "devengo", "value": str(inc_value)})

    extra = inc_value + other_earnings

    # 3) transport allowance
    transport = Decimal("0")
    if salary <= lv.smmlv * 2:
        transport = q0(lv.transport_allowance / THIRTY * effective)

    # 4) IBC; thresholds are monthly, so they follow the days of the period
    proportional = max(Decimal("0"), regular - non_remunerated)
    ibc_health = q0(cap_ibc(proportional + constitutive + inc_value, year=data.year, days=worked))
    ibc_parafiscal = q0(cap_ibc(proportional + constitutive, year=data.year, days=worked))

    # 5) deductions
    ee = compute_employee_contributions(ibc_health, year=data.year, days=worked)
    gross = regular + extra + transport

    taxable = gross - transport - ee["health"] - ee["pension"] - ee["solidarity_fund"]
    withholding = Decimal("0")
    if worked > 0 and taxable > 0:
        monthly_equiv = taxable * THIRTY / worked
        monthly_tax = compute_withholding(monthly_equiv, year=data.year)["tax"]
        withholding = q0(monthly_tax * worked / THIRTY)

    total_deductions = ee["health"] + ee["pension"] + ee["solidarity_fund"] + novelty_deductions + withholding
    net = gross - total_deductions

    # 6) employer side
    er = compute_employer_contributions(ibc_health, ibc_parafiscal, year=data.year, arl_rate=data.arl_rate)
    employer_total = er["total"]

    return PayrollResult(
        base_salary=salary,
        worked_days=worked,
        effective_days=effective,
        incapacity_days=inc_days,
        regular_pay=regular,
        incapacity_value=inc_value,
        extra_pay=extra,
        transport_allowance=transport,
        gross_pay=gross,
        ibc_health=ibc_health,
        ibc_parafiscal=ibc_parafiscal,
        health_deduction=ee["health"],
        pension_deduction=ee["pension"],
        solidarity_fund=ee["solidarity_fund"],
        withholding_tax=withholding,
        novelty_deductions=novelty_deductions,
        total_deductions=total_deductions,
        net_pay=net,
        employer=er,
        employer_contributions=employer_total,
        total_cost=gross + employer_total,
        lines=lines,
    )


def novedad_rows_to_input(rows: List[Any]) -> List[Dict[str, Any]]:
    """ORM Novedad rows → plain dicts for the calculator."""
    return [
        {
            "novedad_type": r.novedad_type,
            "subtype": r.subtype,
            "days": r.days,
            "hours": r.hours,
            "value": r.value,
            "constitutive": r.constitutive,
        }
        for r in rows
    ]
