# backend/app/models/vacations.py
from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy import Date, DateTime, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db import Base


VacationStatus = sa.Enum(
    "confirmado", "liquidado", "cancelado", name="vacation_status", native_enum=False
)


class VacationPeriod(Base):
    __tablename__ = "vacation_periods"

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid(), primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(), ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True
    )
    start_date: Mapped[date] = mapped_column(Date(), nullable=False)
    end_date: Mapped[date] = mapped_column(Date(), nullable=False)
    days_count: Mapped[int] = mapped_column(Integer, nullable=False)  # business days
    status: Mapped[str] = mapped_column(VacationStatus, nullable=False, default="confirmado")
    notes: Mapped[Optional[str]] = mapped_column(Text(), nullable=True)
    processed_in_period_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        sa.Uuid(), ForeignKey("payroll_periods.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<VacationPeriod {self.start_date}..{self.end_date} {self.status}>"
