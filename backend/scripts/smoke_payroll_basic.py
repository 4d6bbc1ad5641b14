# backend/scripts/smoke_payroll_basic.py
"""
Smoke test for the Nómina period lifecycle against a running API.

What it does:
1) Creates a company with a unique NIT so repeats won't collide
2) Creates one employee (2 SMMLV-ish salary, gets auxilio de transporte)
3) Asks /periods/detect for the next period and creates it
4) Registers an overtime novedad
5) Liquidates, closes, and lists the vouchers
6) Prints a compact JSON summary

Usage:
  (.venv) > uvicorn app.main:app --reload
  (.venv) > python -m scripts.smoke_payroll_basic
"""

from __future__ import annotations

import json
import os
from datetime import datetime

import requests

BASE = os.getenv("BASE", "http://127.0.0.1:8000")


def req(m, path, ok=(200, 201), **kw):
    r = requests.request(m, f"{BASE}{path}", timeout=30, **kw)
    ct = r.headers.get("content-type", "")
    body = r.json() if ct.startswith("application/json") else r.text
    if r.status_code not in ok:
        raise SystemExit(f"{m} {path} -> {r.status_code}: {body}")
    return body


def main():
    stamp = f"{datetime.now():%H%M%S}"

    # 1) Company
    company = req("POST", "/payroll/companies", json={
        "nit": f"900{stamp}-1",
        "name": f"Smoke SAS {stamp}",
        "periodicity": "quincenal",
    })

    # 2) Employee
    emp = req("POST", f"/payroll/companies/{company['id']}/employees", json={
        "code": f"SMK{stamp}",
        "first_name": "Smoke",
        "last_name": "Tester",
        "email": "smoke@example.com",
        "base_salary": "2000000",
        "eps": "Sura",
        "afp": "Porvenir",
    })

    # 3) Period (suggested by detect)
    hint = req("GET", f"/payroll/companies/{company['id']}/periods/detect")
    if hint["action"] == "continue":
        period = req("GET", f"/payroll/periods/{hint['period_id']}")
    else:
        period = req("POST", f"/payroll/companies/{company['id']}/periods", json={
            "start_date": hint["start_date"],
            "end_date": hint["end_date"],
        })

    # 4) Novedad: 4 h extra diurnas
    nov = req("POST", f"/novedades/periods/{period['id']}", json={
        "employee_id": emp["id"],
        "novedad_type": "horas_extra",
        "subtype": "diurna",
        "hours": "4",
    })

    # 5) Liquidate + close
    liq = req("POST", f"/payroll/periods/{period['id']}/liquidate")
    closed = req("POST", f"/payroll/periods/{period['id']}/close", json={"actor": "smoke"})
    vouchers = req("GET", f"/vouchers/periods/{period['id']}")

    out = {
        "company": {"id": company["id"], "nit": company["nit"]},
        "employee": {"id": emp["id"], "code": emp["code"]},
        "period": {"id": period["id"], "label": period["label"]},
        "novedad": {"type": nov["novedad_type"], "value": nov["value"]},
        "liquidation": {"liquidated": liq["liquidated"], "errors": liq["errors"]},
        "close": {"status": closed["status"], "totals": closed["totals"]},
        "vouchers": [{"reference_no": v["reference_no"], "net_pay": v["net_pay"]} for v in vouchers],
    }
    print("✅ SMOKE OK: period liquidated and closed")
    print(json.dumps(out, indent=2, default=str))


if __name__ == "__main__":
    main()
