import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Ensure all SQLAlchemy models are imported so relationships resolve
import app.models  # noqa: F401

from app.api import (
    payroll,          # /payroll (companies, employees, periods, versions)
    novedades,        # /novedades
    adjustments,      # /adjustments (pending adjustments on closed periods)
    vacations,        # /vacations
    social_benefits,  # /social-benefits
    vouchers,         # /vouchers
)

# Ops/system endpoints (/health, /version)
from app.api.system import router as system_router

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Nómina")

# --- CORS for local frontend dev ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000", "http://127.0.0.1:3000",
        "http://localhost:5173", "http://127.0.0.1:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(system_router)  # /health, /version

app.include_router(payroll.router)          # /payroll
app.include_router(novedades.router)        # /novedades
app.include_router(adjustments.router)      # /adjustments
app.include_router(vacations.router)        # /vacations
app.include_router(social_benefits.router)  # /social-benefits
app.include_router(vouchers.router)         # /vouchers
