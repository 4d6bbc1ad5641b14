# backend/app/models/payroll.py
"""
Payroll ORM models for Nómina.

Tables:
- companies
- employees
- payroll_periods
- payroll_records          (one liquidation row per employee per period)
- payroll_period_audit     (reopen / close-again trail)
- payroll_versions         (snapshots taken before a closed period is recomputed)
- payroll_vouchers
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.db import Base


# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


# ---------- Enums (stored as VARCHAR + CHECK so they work on any backend) ----------
Periodicity = sa.Enum(
    "semanal", "quincenal", "mensual", name="payroll_periodicity", native_enum=False
)
PeriodStatus = sa.Enum(
    "borrador", "en_proceso", "cerrado", "reabierto", name="payroll_period_status", native_enum=False
)
RecordStatus = sa.Enum(
    "borrador", "procesada", name="payroll_record_status", native_enum=False
)
IncapacityPolicy = sa.Enum(
    "standard_2d_100_rest_66", "from_day1_66_with_floor", name="incapacity_policy", native_enum=False
)
ProvisionMode = sa.Enum(
    "on_liquidation", "manual", name="provision_mode", native_enum=False
)
VoucherStatus = sa.Enum(
    "generado", "enviado", "error", name="voucher_status", native_enum=False
)


def _uuid_pk() -> Mapped[uuid.UUID]:
    return mapped_column(sa.Uuid(), primary_key=True, default=uuid.uuid4)


# --------------------------------- MODELS --------------------------------- #


class Company(Base):
    __tablename__ = "companies"

    id: Mapped[uuid.UUID] = _uuid_pk()
    nit: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Payroll settings
    periodicity: Mapped[str] = mapped_column(Periodicity, nullable=False, default="quincenal")
    incapacity_policy: Mapped[str] = mapped_column(
        IncapacityPolicy, nullable=False, default="standard_2d_100_rest_66"
    )
    provision_mode: Mapped[str] = mapped_column(ProvisionMode, nullable=False, default="on_liquidation")
    arl_rate: Mapped[Decimal] = mapped_column(Numeric(8, 5), nullable=False, default=Decimal("0.00522"))

    meta: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    employees: Mapped[list["Employee"]] = relationship(back_populates="company")
    periods: Mapped[list["PayrollPeriod"]] = relationship(back_populates="company")

    def __repr__(self) -> str:
        return f"<Company {self.nit} {self.name}>"


class Employee(Base):
    __tablename__ = "employees"
    __table_args__ = (UniqueConstraint("company_id", "code", name="uq_employees_company_code"),)

    id: Mapped[uuid.UUID] = _uuid_pk()
    company_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False
    )
    code: Mapped[str] = mapped_column(String(32), nullable=False)
    document_no: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)  # cédula

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Employment status
    hire_date: Mapped[Optional[date]] = mapped_column(Date(), nullable=True)
    termination_date: Mapped[Optional[date]] = mapped_column(Date(), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Pay
    base_salary: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    vacation_balance: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=Decimal("15"))

    # Social security affiliations
    eps: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    afp: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)

    meta: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    company: Mapped["Company"] = relationship(back_populates="employees")
    records: Mapped[list["PayrollRecord"]] = relationship(back_populates="employee")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<Employee {self.code} {self.last_name}>"


class PayrollPeriod(Base):
    __tablename__ = "payroll_periods"
    __table_args__ = (
        UniqueConstraint("company_id", "periodicity", "start_date", "end_date", name="uq_payroll_periods_span"),
    )

    id: Mapped[uuid.UUID] = _uuid_pk()
    company_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False
    )
    period_key: Mapped[str] = mapped_column(String(32), nullable=False)  # e.g. 2025-03-Q2
    label: Mapped[str] = mapped_column(String(120), nullable=False)
    periodicity: Mapped[str] = mapped_column(Periodicity, nullable=False)
    period_number: Mapped[int] = mapped_column(Integer, nullable=False)

    start_date: Mapped[date] = mapped_column(Date(), nullable=False)
    end_date: Mapped[date] = mapped_column(Date(), nullable=False)
    status: Mapped[str] = mapped_column(PeriodStatus, nullable=False, default="borrador")
    reported_dian: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    employees_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_earnings: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=Decimal("0"))
    total_deductions: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=Decimal("0"))
    total_net: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=Decimal("0"))

    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    reopened_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    reopened_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    meta: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    company: Mapped["Company"] = relationship(back_populates="periods")
    records: Mapped[list["PayrollRecord"]] = relationship(
        back_populates="period", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<PayrollPeriod {self.period_key} {self.start_date}..{self.end_date} {self.status}>"


class PayrollRecord(Base):
    __tablename__ = "payroll_records"
    __table_args__ = (UniqueConstraint("period_id", "employee_id", name="uq_payroll_records_period_employee"),)

    id: Mapped[uuid.UUID] = _uuid_pk()
    company_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False
    )
    period_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(), ForeignKey("payroll_periods.id", ondelete="CASCADE"), nullable=False
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(), ForeignKey("employees.id", ondelete="RESTRICT"), nullable=False
    )

    base_salary: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    worked_days: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=Decimal("0"))

    # Devengos
    regular_pay: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    extra_pay: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    incapacity_value: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    transport_allowance: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    gross_pay: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))

    # Deducciones
    health_deduction: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    pension_deduction: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    solidarity_fund: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    withholding_tax: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    novelty_deductions: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    total_deductions: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))

    net_pay: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    ibc: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    employer_contributions: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    total_cost: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))

    status: Mapped[str] = mapped_column(RecordStatus, nullable=False, default="borrador")
    is_stale: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    breakdown: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    period: Mapped["PayrollPeriod"] = relationship(back_populates="records")
    employee: Mapped["Employee"] = relationship(back_populates="records")

    def __repr__(self) -> str:
        return f"<PayrollRecord emp={self.employee_id} net={self.net_pay}>"


class PeriodAuditLog(Base):
    __tablename__ = "payroll_period_audit"

    id: Mapped[uuid.UUID] = _uuid_pk()
    period_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(), ForeignKey("payroll_periods.id", ondelete="CASCADE"), nullable=False
    )
    action: Mapped[str] = mapped_column(String(32), nullable=False)  # reabierto, cerrado_nuevamente, ...
    previous_state: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    new_state: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    has_vouchers: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    actor: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class PayrollVersion(Base):
    __tablename__ = "payroll_versions"
    __table_args__ = (UniqueConstraint("period_id", "version_no", name="uq_payroll_versions_no"),)

    id: Mapped[uuid.UUID] = _uuid_pk()
    company_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False
    )
    period_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(), ForeignKey("payroll_periods.id", ondelete="CASCADE"), nullable=False
    )
    version_no: Mapped[int] = mapped_column(Integer, nullable=False)
    version_type: Mapped[str] = mapped_column(String(32), nullable=False)  # reliquidation, recalculation, rollback
    summary: Mapped[Optional[str]] = mapped_column(Text(), nullable=True)
    snapshot: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    created_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<PayrollVersion period={self.period_id} v{self.version_no} {self.version_type}>"


class Voucher(Base):
    __tablename__ = "payroll_vouchers"
    __table_args__ = (UniqueConstraint("payroll_id", name="uq_payroll_vouchers_payroll"),)

    id: Mapped[uuid.UUID] = _uuid_pk()
    company_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False
    )
    period_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(), ForeignKey("payroll_periods.id", ondelete="CASCADE"), nullable=False
    )
    payroll_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(), ForeignKey("payroll_records.id", ondelete="CASCADE"), nullable=False
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(), ForeignKey("employees.id", ondelete="RESTRICT"), nullable=False
    )

    reference_no: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    start_date: Mapped[date] = mapped_column(Date(), nullable=False)
    end_date: Mapped[date] = mapped_column(Date(), nullable=False)
    net_pay: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    html: Mapped[Optional[str]] = mapped_column(Text(), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    status: Mapped[str] = mapped_column(VoucherStatus, nullable=False, default="generado")
    sent_to_employee: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sent_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_error: Mapped[Optional[str]] = mapped_column(Text(), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<Voucher {self.reference_no} v{self.version} {self.status}>"
