# backend/app/models/__init__.py
"""
Central model registry.

Import this once at startup (e.g., in main.py, alembic env.py, tests) so
SQLAlchemy sees all mapped classes before metadata.create_all / autogenerate.
"""
from app.db import Base  # re-export Base

from .payroll import (  # noqa: F401
    Company,
    Employee,
    PayrollPeriod,
    PayrollRecord,
    PeriodAuditLog,
    PayrollVersion,
    Voucher,
)
from .novedades import Novedad, PendingAdjustment, PeriodCorrection  # noqa: F401
from .social_benefits import SocialBenefitProvision, SocialBenefitLiquidation  # noqa: F401
from .vacations import VacationPeriod  # noqa: F401
