# backend/app/models/social_benefits.py
"""
Prestaciones sociales: per-period provisions and their liquidation.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy import Date, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db import Base
from app.models.payroll import JSONType


BenefitType = sa.Enum(
    "cesantias", "intereses_cesantias", "prima", "vacaciones", name="social_benefit_type", native_enum=False
)
ProvisionStatus = sa.Enum("calculado", "liquidado", name="social_benefit_status", native_enum=False)


class SocialBenefitProvision(Base):
    __tablename__ = "social_benefit_provisions"
    __table_args__ = (
        UniqueConstraint(
            "employee_id", "benefit_type", "period_start", "period_end",
            name="uq_social_benefit_provisions_span",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid(), primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(), ForeignKey("employees.id", ondelete="CASCADE"), nullable=False
    )
    period_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        sa.Uuid(), ForeignKey("payroll_periods.id", ondelete="SET NULL"), nullable=True
    )

    benefit_type: Mapped[str] = mapped_column(BenefitType, nullable=False)
    period_start: Mapped[date] = mapped_column(Date(), nullable=False)
    period_end: Mapped[date] = mapped_column(Date(), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    calculation_basis: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    status: Mapped[str] = mapped_column(ProvisionStatus, nullable=False, default="calculado")
    liquidation_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        sa.Uuid(), ForeignKey("social_benefit_liquidations.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<SocialBenefitProvision {self.benefit_type} {self.period_start}..{self.period_end} {self.amount}>"


class SocialBenefitLiquidation(Base):
    __tablename__ = "social_benefit_liquidations"

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid(), primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False
    )
    benefit_type: Mapped[str] = mapped_column(BenefitType, nullable=False)
    period_start: Mapped[date] = mapped_column(Date(), nullable=False)
    period_end: Mapped[date] = mapped_column(Date(), nullable=False)
    label: Mapped[str] = mapped_column(String(120), nullable=False)
    employees_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=Decimal("0"))
    detail: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    notes: Mapped[Optional[str]] = mapped_column(Text(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
