# backend/app/models/novedades.py
"""
Novedades (payroll incidents) and closed-period reconciliation.

Tables:
- payroll_novedades        (earnings/deductions applied to one employee in one period)
- pending_adjustments      (novedades queued against a CLOSED period)
- period_corrections       (per-employee net differences written when pending items are applied)
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db import Base
from app.models.payroll import JSONType


NovedadSource = sa.Enum(
    "manual", "vacation", "adjustment", name="novedad_source", native_enum=False
)
AdjustmentStatus = sa.Enum(
    "pendiente", "aplicado", "descartado", name="pending_adjustment_status", native_enum=False
)


class Novedad(Base):
    __tablename__ = "payroll_novedades"

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid(), primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(), ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True
    )
    period_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(), ForeignKey("payroll_periods.id", ondelete="CASCADE"), nullable=False, index=True
    )

    novedad_type: Mapped[str] = mapped_column(String(40), nullable=False)
    subtype: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    start_date: Mapped[Optional[date]] = mapped_column(Date(), nullable=True)
    end_date: Mapped[Optional[date]] = mapped_column(Date(), nullable=True)
    days: Mapped[Optional[Decimal]] = mapped_column(Numeric(6, 2), nullable=True)
    hours: Mapped[Optional[Decimal]] = mapped_column(Numeric(8, 2), nullable=True)
    value: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))

    # NULL → use the catalog default for the type
    constitutive: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    calc_basis: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    notes: Mapped[Optional[str]] = mapped_column(Text(), nullable=True)

    source: Mapped[str] = mapped_column(NovedadSource, nullable=False, default="manual")
    source_ref: Mapped[Optional[uuid.UUID]] = mapped_column(sa.Uuid(), nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<Novedad {self.novedad_type}/{self.subtype} value={self.value}>"


class PendingAdjustment(Base):
    __tablename__ = "pending_adjustments"

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid(), primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False
    )
    period_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(), ForeignKey("payroll_periods.id", ondelete="CASCADE"), nullable=False, index=True
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(), ForeignKey("employees.id", ondelete="CASCADE"), nullable=False
    )

    novedad_type: Mapped[str] = mapped_column(String(40), nullable=False)
    subtype: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    days: Mapped[Optional[Decimal]] = mapped_column(Numeric(6, 2), nullable=True)
    hours: Mapped[Optional[Decimal]] = mapped_column(Numeric(8, 2), nullable=True)
    value: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    constitutive: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text(), nullable=True)
    justification: Mapped[str] = mapped_column(Text(), nullable=False)

    status: Mapped[str] = mapped_column(AdjustmentStatus, nullable=False, default="pendiente")
    applied_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    applied_novedad_id: Mapped[Optional[uuid.UUID]] = mapped_column(sa.Uuid(), nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<PendingAdjustment {self.novedad_type} {self.status}>"


class PeriodCorrection(Base):
    __tablename__ = "period_corrections"

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid(), primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False
    )
    period_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(), ForeignKey("payroll_periods.id", ondelete="CASCADE"), nullable=False, index=True
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(), ForeignKey("employees.id", ondelete="CASCADE"), nullable=False
    )

    correction_type: Mapped[str] = mapped_column(String(32), nullable=False, default="pending_adjustment")
    concept: Mapped[str] = mapped_column(String(200), nullable=False)
    justification: Mapped[Optional[str]] = mapped_column(Text(), nullable=True)
    previous_value: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    new_value: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    value_difference: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    created_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
