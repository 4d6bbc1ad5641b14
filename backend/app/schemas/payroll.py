# backend/app/schemas/payroll.py
"""
Pydantic schemas for Nómina.

Covers:
- Companies (payroll settings)
- Employees
- Payroll Periods (create / lifecycle actions)
- Vacations
- Social benefits (calculate / liquidate)

Notes:
- Keep string enums aligned with the DB enum values in app/models.
- Monetary values use Decimal to avoid float rounding.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


# ------------------------- Enum Literals (string) ------------------------- #
Periodicity = Literal["semanal", "quincenal", "mensual"]

IncapacityPolicy = Literal["standard_2d_100_rest_66", "from_day1_66_with_floor"]

ProvisionMode = Literal["on_liquidation", "manual"]

BenefitType = Literal["cesantias", "intereses_cesantias", "prima", "vacaciones"]


# ------------------------------- Companies -------------------------------- #
class CompanyCreate(BaseModel):
    nit: str = Field(..., max_length=32)
    name: str = Field(..., max_length=200)
    email: Optional[str] = Field(None, max_length=255)
    periodicity: Periodicity = "quincenal"
    incapacity_policy: IncapacityPolicy = "standard_2d_100_rest_66"
    provision_mode: ProvisionMode = "on_liquidation"
    arl_rate: Decimal = Field(Decimal("0.00522"), ge=0, le=Decimal("0.0696"))


class CompanySettingsUpdate(BaseModel):
    periodicity: Optional[Periodicity] = None
    incapacity_policy: Optional[IncapacityPolicy] = None
    provision_mode: Optional[ProvisionMode] = None
    arl_rate: Optional[Decimal] = Field(None, ge=0, le=Decimal("0.0696"))


# ------------------------------- Employees -------------------------------- #
class EmployeeBase(BaseModel):
    code: str = Field(..., max_length=32)
    document_no: Optional[str] = Field(None, max_length=20)
    first_name: str = Field(..., max_length=100)
    last_name: str = Field(..., max_length=100)
    email: Optional[str] = Field(None, max_length=255)

    active: bool = True
    base_salary: Decimal = Field(..., gt=0, description="Monthly base salary (COP)")
    vacation_balance: Decimal = Field(Decimal("15"), ge=0, description="Initial vacation balance (business days)")

    eps: Optional[str] = Field(None, max_length=120)
    afp: Optional[str] = Field(None, max_length=120)

    hire_date: Optional[date] = None
    termination_date: Optional[date] = None

    meta: Dict[str, Any] = Field(default_factory=dict)


class EmployeeCreate(EmployeeBase):
    pass


class EmployeeUpdate(BaseModel):
    # All optional for PATCH-style updates
    document_no: Optional[str] = Field(None, max_length=20)
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    email: Optional[str] = Field(None, max_length=255)
    active: Optional[bool] = None
    base_salary: Optional[Decimal] = Field(None, gt=0)
    vacation_balance: Optional[Decimal] = Field(None, ge=0)
    eps: Optional[str] = Field(None, max_length=120)
    afp: Optional[str] = Field(None, max_length=120)
    hire_date: Optional[date] = None
    termination_date: Optional[date] = None
    meta: Optional[Dict[str, Any]] = None


# ---------------------------- Payroll Periods ----------------------------- #
class PayrollPeriodCreate(BaseModel):
    start_date: date
    end_date: date
    periodicity: Optional[Periodicity] = None

    @model_validator(mode="after")
    def _check_range(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


class PeriodAction(BaseModel):
    actor: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None


class RecalculateRequest(BaseModel):
    company_id: UUID
    period_id: Optional[UUID] = None
    actor: Optional[str] = None


# ------------------------------- Vacations -------------------------------- #
class VacationCreate(BaseModel):
    employee_id: UUID
    start_date: date
    end_date: date
    notes: Optional[str] = None


class AbsenceSplitRequest(BaseModel):
    company_id: UUID
    start_date: date
    end_date: date


# ---------------------------- Social benefits ----------------------------- #
class BenefitCalculateRequest(BaseModel):
    employee_id: UUID
    benefit_type: BenefitType
    start_date: date
    end_date: date


class BenefitLiquidateRequest(BaseModel):
    company_id: UUID
    benefit_type: BenefitType
    start_date: date
    end_date: date
    save: bool = False
    skip_open: bool = False
    notes: Optional[str] = None


class VoucherSendRequest(BaseModel):
    email: Optional[str] = Field(None, description="Override recipient; defaults to the employee email")


class EmployeeIds(BaseModel):
    employee_ids: Optional[List[UUID]] = None
