# backend/tests/test_benefits_vacations_api.py
from __future__ import annotations

from fastapi.testclient import TestClient

from app.main import app

client = TestClient(app)


def _company_with_employees(nit, **settings):
    company = client.post("/payroll/companies", json={"nit": nit, "name": "Prestaciones SAS", **settings}).json()
    emps = []
    for code, salary in (("E001", "2000000"), ("E002", "3000000")):
        r = client.post(f"/payroll/companies/{company['id']}/employees", json={
            "code": code, "first_name": "Emp", "last_name": code,
            "base_salary": salary, "eps": "Sura", "afp": "Protección",
        })
        assert r.status_code in (200, 201), r.text
        emps.append(r.json())
    return company, emps


def _period(company_id, start, end):
    r = client.post(f"/payroll/companies/{company_id}/periods", json={"start_date": start, "end_date": end})
    assert r.status_code in (200, 201), r.text
    return r.json()["id"]


# ----------------------------- social benefits ----------------------------- #

def test_close_provisions_and_liquidate_prima():
    company, (e1, e2) = _company_with_employees("903000333-1")
    pid = _period(company["id"], "2025-03-01", "2025-03-15")
    assert client.post(f"/payroll/periods/{pid}/liquidate").status_code == 200
    assert client.post(f"/payroll/periods/{pid}/close").status_code == 200

    r = client.get("/social-benefits/provisions", params={"company_id": company["id"], "benefit_type": "prima"})
    assert r.status_code == 200, r.text
    amounts = {p["employee_id"]: p["amount"] for p in r.json()}
    assert amounts == {e1["id"]: 91667, e2["id"]: 125000}

    body = {
        "company_id": company["id"],
        "benefit_type": "prima",
        "start_date": "2025-01-01",
        "end_date": "2025-06-30",
    }
    r = client.post("/social-benefits/liquidate", json=body)
    assert r.status_code == 200, r.text
    preview = r.json()
    assert preview["saved"] is False
    assert preview["employees_count"] == 2
    assert preview["total_amount"] == 216667

    # an open period inside the range blocks saving unless skipped
    _period(company["id"], "2025-03-16", "2025-03-31")
    r = client.post("/social-benefits/liquidate", json={**body, "save": True})
    assert r.status_code == 409

    r = client.post("/social-benefits/liquidate", json={**body, "save": True, "skip_open": True})
    assert r.status_code == 200, r.text
    assert r.json()["saved"] is True
    assert r.json()["liquidation_id"]

    r = client.get("/social-benefits/provisions", params={"company_id": company["id"], "benefit_type": "prima"})
    assert {p["status"] for p in r.json()} == {"liquidado"}

    # nothing left to liquidate
    r = client.post("/social-benefits/liquidate", json={**body, "save": True, "skip_open": True})
    assert r.status_code == 400


def test_manual_provision_mode_skips_close_provisions():
    company, _ = _company_with_employees("903000333-2", provision_mode="manual")
    pid = _period(company["id"], "2025-03-01", "2025-03-15")

    # provisions need a closed period
    assert client.post(f"/social-benefits/periods/{pid}/provision").status_code == 409

    assert client.post(f"/payroll/periods/{pid}/liquidate").status_code == 200
    r = client.post(f"/payroll/periods/{pid}/close")
    assert r.status_code == 200, r.text
    assert r.json()["provisions"] is None

    r = client.post(f"/social-benefits/periods/{pid}/provision")
    assert r.status_code == 200, r.text
    assert r.json()["upserted"] == 8


def test_calculate_benefit_estimate():
    _, (e1, _) = _company_with_employees("903000333-3")
    r = client.post("/social-benefits/calculate", json={
        "employee_id": e1["id"],
        "benefit_type": "cesantias",
        "start_date": "2025-01-01",
        "end_date": "2025-06-30",
    })
    assert r.status_code == 200, r.text
    assert r.json()["days"] == 181
    assert r.json()["amount"] == 1005556


# ----------------------------- vacations ----------------------------- #

def test_vacation_balance_and_overlap_rules():
    _, (e1, _) = _company_with_employees("903000333-4")

    r = client.post("/vacations", json={
        "employee_id": e1["id"], "start_date": "2025-03-17", "end_date": "2025-03-21",
    })
    assert r.status_code == 201, r.text
    assert r.json()["days_count"] == 5

    r = client.get(f"/vacations/employees/{e1['id']}")
    assert r.status_code == 200, r.text
    assert r.json()["balance"]["available"] == 10

    # overlaps the confirmed vacation
    r = client.post("/vacations", json={
        "employee_id": e1["id"], "start_date": "2025-03-20", "end_date": "2025-03-24",
    })
    assert r.status_code == 400

    # 22 business days > remaining balance
    r = client.post("/vacations", json={
        "employee_id": e1["id"], "start_date": "2025-04-01", "end_date": "2025-04-30",
    })
    assert r.status_code == 400


def test_vacations_flow_into_payroll_and_get_liquidated():
    company, (e1, _) = _company_with_employees("903000333-5")
    vac = client.post("/vacations", json={
        "employee_id": e1["id"], "start_date": "2025-03-17", "end_date": "2025-03-21",
    }).json()
    pid = _period(company["id"], "2025-03-16", "2025-03-31")

    r = client.post(f"/payroll/periods/{pid}/liquidate")
    assert r.status_code == 200, r.text
    assert r.json()["vacations_synced"] == 1

    items = client.get(f"/novedades/periods/{pid}", params={"employee_id": e1["id"]}).json()["items"]
    assert len(items) == 1
    assert items[0]["novedad_type"] == "vacaciones"
    assert items[0]["source"] == "vacation"
    assert items[0]["value"] == 333333

    # syncing again does not duplicate
    r = client.post(f"/payroll/periods/{pid}/liquidate")
    assert r.json()["vacations_synced"] == 0

    assert client.post(f"/payroll/periods/{pid}/close").status_code == 200
    listed = client.get(f"/vacations/employees/{e1['id']}").json()["items"]
    assert listed[0]["status"] == "liquidado"
    assert listed[0]["processed_in_period_id"] == pid

    assert client.post(f"/vacations/{vac['id']}/cancel").status_code == 400
    assert client.delete(f"/vacations/{vac['id']}").status_code == 400


def test_cancel_and_delete_vacation():
    _, (e1, _) = _company_with_employees("903000333-6")
    a = client.post("/vacations", json={
        "employee_id": e1["id"], "start_date": "2025-05-05", "end_date": "2025-05-06",
    }).json()
    b = client.post("/vacations", json={
        "employee_id": e1["id"], "start_date": "2025-06-09", "end_date": "2025-06-10",
    }).json()

    r = client.post(f"/vacations/{a['id']}/cancel")
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "cancelado"

    assert client.delete(f"/vacations/{b['id']}").status_code == 204

    body = client.get(f"/vacations/employees/{e1['id']}").json()
    assert [v["status"] for v in body["items"]] == ["cancelado"]
    assert body["balance"]["available"] == 15


def test_split_absence_endpoint():
    company, _ = _company_with_employees("903000333-7")
    r = client.post("/vacations/split", json={
        "company_id": company["id"], "start_date": "2025-03-10", "end_date": "2025-03-20",
    })
    assert r.status_code == 200, r.text
    assert [s["business_days"] for s in r.json()] == [5, 4]


def test_split_absence_prefers_stored_periods():
    company, _ = _company_with_employees("903000333-8")
    pid = _period(company["id"], "2025-03-01", "2025-03-15")

    r = client.post("/vacations/split", json={
        "company_id": company["id"], "start_date": "2025-03-10", "end_date": "2025-03-20",
    })
    assert r.status_code == 200, r.text
    first, second = r.json()
    assert first["period_id"] == pid
    assert first["period_label"] == "Quincena 5 - 1 al 15 de Marzo 2025"
    assert second["period_id"] is None
    assert (second["period_start"], second["period_end"]) == ("2025-03-16", "2025-03-31")
    assert first["days"] + second["days"] == 11
