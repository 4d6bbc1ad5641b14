# backend/app/schemas/novedades.py
from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field


NovedadType = Literal[
    # devengos
    "horas_extra",
    "recargo_nocturno",
    "recargo_dominical",
    "vacaciones",
    "licencia_remunerada",
    "incapacidad",
    "bonificacion",
    "comision",
    "prima",
    "otros_ingresos",
    "auxilio_alimentacion",
    # deducciones
    "libranza",
    "multa",
    "descuento_voluntario",
    "retencion_fuente",
    "fondo_solidaridad",
    "ausencia",
    "licencia_no_remunerada",
]


class NovedadBase(BaseModel):
    novedad_type: NovedadType
    subtype: Optional[str] = Field(None, max_length=40)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    days: Optional[Decimal] = Field(None, ge=0, le=31)
    hours: Optional[Decimal] = Field(None, ge=0)
    value: Optional[Decimal] = Field(None, description="Manual value; computed when hours/days apply")
    constitutive: Optional[bool] = Field(None, description="Overrides the type's default IBC treatment")
    notes: Optional[str] = None


class NovedadCreate(NovedadBase):
    employee_id: UUID
    created_by: Optional[str] = None


class NovedadUpdate(BaseModel):
    subtype: Optional[str] = Field(None, max_length=40)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    days: Optional[Decimal] = Field(None, ge=0, le=31)
    hours: Optional[Decimal] = Field(None, ge=0)
    value: Optional[Decimal] = None
    constitutive: Optional[bool] = None
    notes: Optional[str] = None


class NovedadPreview(BaseModel):
    novedad_type: NovedadType
    subtype: Optional[str] = None
    base_salary: Decimal = Field(..., gt=0)
    hours: Optional[Decimal] = Field(None, ge=0)
    days: Optional[Decimal] = Field(None, ge=0)
    on: Optional[date] = None
    policy: Literal["standard_2d_100_rest_66", "from_day1_66_with_floor"] = "standard_2d_100_rest_66"
    value: Optional[Decimal] = None


class PendingAdjustmentCreate(NovedadBase):
    employee_id: UUID
    justification: str = Field(..., min_length=3)
    created_by: Optional[str] = None


class ApplyAdjustmentsRequest(BaseModel):
    employee_ids: Optional[List[UUID]] = Field(None, description="Omit to apply to every employee with pending items")
    justification: Optional[str] = None
    actor: Optional[str] = None
