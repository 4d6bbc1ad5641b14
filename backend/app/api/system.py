# app/api/system.py
from __future__ import annotations

import os
from datetime import datetime
from zoneinfo import ZoneInfo

from fastapi import APIRouter
from sqlalchemy import text

from app.db import DATABASE_URL, engine
from app.services.payroll_rates import load_legal_values, weekly_hours

router = APIRouter(tags=["ops"])


def _db_driver_from_url(url: str | None) -> str | None:
    if not url or "://" not in url:
        return None
    scheme = url.split("://", 1)[0]  # e.g., "postgresql+psycopg2"
    if "+" in scheme:
        return scheme.split("+", 1)[1]  # "psycopg2"
    return scheme  # fallback


@router.get("/health")
def health():
    """Liveness check with a lightweight DB probe and local time."""
    tz = os.getenv("TZ", "America/Bogota")
    now_local = datetime.now(ZoneInfo(tz)).isoformat()

    db = {"status": "skip", "driver": _db_driver_from_url(DATABASE_URL)}
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        db["status"] = "ok"
    except Exception as e:
        db["status"] = f"error: {type(e).__name__}"

    return {
        "status": "ok",
        "time": {"tz": tz, "now": now_local},
        "db": db,
    }


@router.get("/version")
def version():
    """Minimal runtime info plus the legal values in force."""
    tz = os.getenv("TZ", "America/Bogota")
    today = datetime.now(ZoneInfo(tz)).date()
    lv = load_legal_values(today.year)

    return {
        "app": "Nómina Backend",
        "db_driver": _db_driver_from_url(DATABASE_URL),
        "tz": tz,
        "legal_values": {
            "year": lv.year,
            "smmlv": str(lv.smmlv),
            "transport_allowance": str(lv.transport_allowance),
            "uvt": str(lv.uvt),
            "weekly_hours": weekly_hours(today),
        },
    }
