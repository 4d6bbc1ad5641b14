# backend/tests/test_payroll_lifecycle.py
from __future__ import annotations

import uuid

from fastapi.testclient import TestClient

from app.db import SessionLocal
from app.main import app
from app.models.payroll import PayrollPeriod

client = TestClient(app)


def _company(nit="900123456-1", **extra):
    r = client.post("/payroll/companies", json={"nit": nit, "name": "Acme SAS", **extra})
    assert r.status_code in (200, 201), r.text
    return r.json()


def _employee(company_id, code, salary, **extra):
    payload = {
        "code": code,
        "first_name": "Emp",
        "last_name": code,
        "base_salary": str(salary),
        "eps": "Sura",
        "afp": "Porvenir",
        **extra,
    }
    r = client.post(f"/payroll/companies/{company_id}/employees", json=payload)
    assert r.status_code in (200, 201), r.text
    return r.json()


def _period(company_id, start="2025-03-01", end="2025-03-15"):
    r = client.post(f"/payroll/companies/{company_id}/periods", json={"start_date": start, "end_date": end})
    assert r.status_code in (200, 201), r.text
    return r.json()


def _records_by_employee(period_id):
    r = client.get(f"/payroll/periods/{period_id}/records")
    assert r.status_code == 200, r.text
    return {rec["employee_id"]: rec for rec in r.json()}


def test_company_and_employee_validation():
    company = _company()
    assert company["periodicity"] == "quincenal"

    r = client.post("/payroll/companies", json={"nit": "900123456-1", "name": "Dup"})
    assert r.status_code == 400

    _employee(company["id"], "E001", 2000000)
    r = client.post(
        f"/payroll/companies/{company['id']}/employees",
        json={"code": "E001", "first_name": "A", "last_name": "B", "base_salary": "1500000"},
    )
    assert r.status_code == 400

    r = client.post(
        f"/payroll/companies/{company['id']}/employees",
        json={"code": "E002", "first_name": "A", "last_name": "B", "base_salary": "0"},
    )
    assert r.status_code == 422


def test_detect_and_create_period():
    company = _company()
    r = client.get(f"/payroll/companies/{company['id']}/periods/detect", params={"today": "2025-03-05"})
    assert r.status_code == 200, r.text
    hint = r.json()
    assert hint["action"] == "create"
    assert (hint["start_date"], hint["end_date"]) == ("2025-03-01", "2025-03-15")

    period = _period(company["id"], hint["start_date"], hint["end_date"])
    assert period["status"] == "borrador"
    assert period["period_key"] == "2025-03-Q1"
    assert period["label"] == "Quincena 5 - 1 al 15 de Marzo 2025"

    r = client.get(f"/payroll/companies/{company['id']}/periods/detect")
    assert r.json()["action"] == "continue"
    assert r.json()["period_id"] == period["id"]

    # overlapping but different range
    r = client.post(
        f"/payroll/companies/{company['id']}/periods",
        json={"start_date": "2025-03-10", "end_date": "2025-03-25"},
    )
    assert r.status_code == 400


def _liquidate_and_close(pid):
    assert client.post(f"/payroll/periods/{pid}/liquidate").status_code == 200
    r = client.post(f"/payroll/periods/{pid}/close")
    assert r.status_code == 200, r.text


def test_detect_follows_last_closed_quincena():
    company = _company()
    _employee(company["id"], "E001", 2000000)
    _liquidate_and_close(_period(company["id"], "2025-03-16", "2025-03-31")["id"])

    r = client.get(f"/payroll/companies/{company['id']}/periods/detect", params={"today": "2025-06-20"})
    assert r.status_code == 200, r.text
    hint = r.json()
    assert hint["action"] == "create"
    assert (hint["start_date"], hint["end_date"]) == ("2025-04-01", "2025-04-15")
    assert hint["label"] == "Quincena 7 - 1 al 15 de Abril 2025"


def test_detect_follows_last_closed_month_across_year_end():
    company = _company(periodicity="mensual")
    _employee(company["id"], "E001", 2000000)
    _liquidate_and_close(_period(company["id"], "2025-12-01", "2025-12-31")["id"])

    hint = client.get(f"/payroll/companies/{company['id']}/periods/detect").json()
    assert hint["action"] == "create"
    assert (hint["start_date"], hint["end_date"]) == ("2026-01-01", "2026-01-31")
    assert hint["label"] == "Enero 2026"


def test_detect_follows_last_closed_week_into_new_year():
    company = _company(periodicity="semanal")
    _employee(company["id"], "E001", 2000000)
    _liquidate_and_close(_period(company["id"], "2025-12-22", "2025-12-28")["id"])

    hint = client.get(f"/payroll/companies/{company['id']}/periods/detect").json()
    assert hint["action"] == "create"
    assert (hint["start_date"], hint["end_date"]) == ("2025-12-29", "2026-01-04")

    created = _period(company["id"], hint["start_date"], hint["end_date"])
    assert created["status"] == "borrador"
    hint = client.get(f"/payroll/companies/{company['id']}/periods/detect").json()
    assert hint["action"] == "continue"
    assert hint["period_id"] == created["id"]


def test_normalize_irregular_periods():
    company = _company()
    bad = _period(company["id"], "2025-05-03", "2025-05-17")
    r = client.post(f"/payroll/companies/{company['id']}/periods/normalize")
    assert r.status_code == 200, r.text
    out = r.json()
    assert len(out["corrected"]) == 1
    assert out["corrected"][0]["to"] == ["2025-05-01", "2025-05-15"]

    fixed = client.get(f"/payroll/periods/{bad['id']}").json()
    assert (fixed["start_date"], fixed["end_date"]) == ("2025-05-01", "2025-05-15")
    assert fixed["period_key"] == "2025-05-Q1"


def test_generate_periods_endpoint():
    r = client.get("/payroll/periods/generate", params={"year": 2025, "periodicity": "mensual"})
    assert r.status_code == 200
    assert len(r.json()) == 12


def test_validate_reports_missing_affiliations():
    company = _company()
    _employee(company["id"], "E001", 2000000, eps=None, afp=None)
    period = _period(company["id"])
    r = client.get(f"/payroll/periods/{period['id']}/validate")
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["ok"] is True
    assert body["employees"] == 1
    assert len(body["warnings"]) == 2


def test_liquidate_close_reopen_cycle():
    company = _company()
    e1 = _employee(company["id"], "E001", 2000000, email="e1@example.com")
    e2 = _employee(company["id"], "E002", 3000000)
    period = _period(company["id"])
    pid = period["id"]

    r = client.post(f"/novedades/periods/{pid}", json={
        "employee_id": e1["id"],
        "novedad_type": "bonificacion",
        "value": "100000",
    })
    assert r.status_code in (200, 201), r.text
    assert r.json()["value"] == 100000

    # closing before liquidation is not allowed
    r = client.post(f"/payroll/periods/{pid}/close")
    assert r.status_code == 409

    r = client.post(f"/payroll/periods/{pid}/liquidate")
    assert r.status_code == 200, r.text
    liq = r.json()
    assert liq["status"] == "en_proceso"
    assert liq["liquidated"] == 2
    assert liq["errors"] == []

    recs = _records_by_employee(pid)
    assert recs[e1["id"]]["gross_pay"] == 1200000
    assert recs[e1["id"]]["ibc"] == 1100000
    assert recs[e1["id"]]["net_pay"] == 1112000
    assert recs[e2["id"]]["transport_allowance"] == 0
    assert recs[e2["id"]]["net_pay"] == 1380000

    r = client.post(f"/payroll/periods/{pid}/close", json={"actor": "ana"})
    assert r.status_code == 200, r.text
    closed = r.json()
    assert closed["status"] == "cerrado"
    assert closed["vouchers"]["created"] == 2
    assert closed["provisions"]["upserted"] == 8

    p = client.get(f"/payroll/periods/{pid}").json()
    assert p["total_earnings"] == 2700000
    assert p["total_net"] == 2492000
    assert p["employees_count"] == 2
    assert all(rec["status"] == "procesada" for rec in _records_by_employee(pid).values())

    # closed periods are immutable
    r = client.post(f"/novedades/periods/{pid}", json={
        "employee_id": e2["id"], "novedad_type": "bonificacion", "value": "5000",
    })
    assert r.status_code == 409
    r = client.post(f"/payroll/periods/{pid}/liquidate")
    assert r.status_code == 409

    vouchers = client.get(f"/vouchers/periods/{pid}").json()
    refs = sorted(v["reference_no"] for v in vouchers)
    assert refs == ["NOM-20250301-E001", "NOM-20250301-E002"]

    r = client.post(f"/payroll/periods/{pid}/reopen", json={"actor": "ana", "notes": "error en horas"})
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "reabierto"
    assert r.json()["has_vouchers"] is True

    r = client.post(f"/payroll/periods/{pid}/reopen")
    assert r.status_code == 409

    r = client.post(f"/payroll/periods/{pid}/close", json={"actor": "ana"})
    assert r.status_code == 200, r.text
    assert r.json()["vouchers"]["regenerated"] == 2

    actions = {a["action"] for a in client.get(f"/payroll/periods/{pid}/audit").json()}
    assert actions == {"reabierto", "cerrado_nuevamente"}

    vouchers = client.get(f"/vouchers/periods/{pid}").json()
    assert all(v["version"] == 2 for v in vouchers)


def test_reported_period_cannot_be_reopened():
    company = _company()
    _employee(company["id"], "E001", 2000000)
    pid = _period(company["id"])["id"]
    assert client.post(f"/payroll/periods/{pid}/liquidate").status_code == 200
    assert client.post(f"/payroll/periods/{pid}/close").status_code == 200

    with SessionLocal() as db:
        period = db.get(PayrollPeriod, uuid.UUID(pid))
        period.reported_dian = True
        db.commit()

    r = client.post(f"/payroll/periods/{pid}/reopen")
    assert r.status_code == 409
    assert "DIAN" in r.json()["detail"]


def test_stale_records_are_recalculated():
    company = _company()
    emp = _employee(company["id"], "E001", 2000000)
    pid = _period(company["id"])["id"]
    assert client.post(f"/payroll/periods/{pid}/liquidate").status_code == 200
    assert _records_by_employee(pid)[emp["id"]]["net_pay"] == 1020000

    r = client.post(f"/novedades/periods/{pid}", json={
        "employee_id": emp["id"], "novedad_type": "libranza", "value": "50000",
    })
    assert r.status_code in (200, 201), r.text
    assert _records_by_employee(pid)[emp["id"]]["is_stale"] is True

    r = client.post("/payroll/recalculate-stale", json={"company_id": company["id"]})
    assert r.status_code == 200, r.text
    assert r.json()["recalculated"] == 1

    rec = _records_by_employee(pid)[emp["id"]]
    assert rec["is_stale"] is False
    assert rec["novelty_deductions"] == 50000
    assert rec["net_pay"] == 970000


def test_salary_change_marks_open_records_stale():
    company = _company()
    emp = _employee(company["id"], "E001", 2000000)
    pid = _period(company["id"])["id"]
    assert client.post(f"/payroll/periods/{pid}/liquidate").status_code == 200

    r = client.patch(f"/payroll/employees/{emp['id']}", json={"base_salary": "2400000"})
    assert r.status_code == 200, r.text
    assert _records_by_employee(pid)[emp["id"]]["is_stale"] is True

    # closing recomputes stale records first
    r = client.post(f"/payroll/periods/{pid}/close")
    assert r.status_code == 200, r.text
    rec = _records_by_employee(pid)[emp["id"]]
    assert rec["is_stale"] is False
    assert rec["regular_pay"] == 1200000


def test_unknown_ids_return_404():
    missing = "00000000-0000-0000-0000-000000000000"
    assert client.get(f"/payroll/periods/{missing}").status_code == 404
    assert client.post(f"/payroll/periods/{missing}/liquidate").status_code == 404
    assert client.get(f"/payroll/companies/{missing}").status_code == 404
