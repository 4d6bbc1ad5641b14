# backend/tests/test_pending_adjustments.py
from __future__ import annotations

from fastapi.testclient import TestClient

from app.main import app

client = TestClient(app)


def _closed_period():
    """Company with two employees and a closed first quincena of March 2025."""
    r = client.post("/payroll/companies", json={"nit": "901000111-2", "name": "Ajustes SAS"})
    assert r.status_code in (200, 201), r.text
    company = r.json()

    emps = []
    for code, salary in (("E001", "2000000"), ("E002", "3000000")):
        r = client.post(f"/payroll/companies/{company['id']}/employees", json={
            "code": code, "first_name": "Emp", "last_name": code,
            "base_salary": salary, "eps": "Sura", "afp": "Colpensiones",
        })
        assert r.status_code in (200, 201), r.text
        emps.append(r.json())

    r = client.post(f"/payroll/companies/{company['id']}/periods",
                    json={"start_date": "2025-03-01", "end_date": "2025-03-15"})
    assert r.status_code in (200, 201), r.text
    pid = r.json()["id"]
    assert client.post(f"/payroll/periods/{pid}/liquidate").status_code == 200
    assert client.post(f"/payroll/periods/{pid}/close").status_code == 200
    return company, emps, pid


def _net(pid, employee_id):
    for rec in client.get(f"/payroll/periods/{pid}/records").json():
        if rec["employee_id"] == employee_id:
            return rec["net_pay"]
    return None


def test_pending_adjustments_require_closed_period():
    r = client.post("/payroll/companies", json={"nit": "901000111-3", "name": "Abierta SAS"})
    company = r.json()
    emp = client.post(f"/payroll/companies/{company['id']}/employees", json={
        "code": "E001", "first_name": "A", "last_name": "B", "base_salary": "2000000",
    }).json()
    pid = client.post(f"/payroll/companies/{company['id']}/periods",
                      json={"start_date": "2025-03-01", "end_date": "2025-03-15"}).json()["id"]

    r = client.post(f"/adjustments/periods/{pid}", json={
        "employee_id": emp["id"], "novedad_type": "bonificacion", "value": "1000",
        "justification": "olvidada",
    })
    assert r.status_code == 409


def test_preview_and_apply_reliquidates_and_versions():
    _, (e1, e2), pid = _closed_period()
    assert _net(pid, e2["id"]) == 1380000

    r = client.post(f"/adjustments/periods/{pid}", json={
        "employee_id": e2["id"],
        "novedad_type": "bonificacion",
        "value": "200000",
        "justification": "Bonificación no reportada a tiempo",
        "created_by": "ana",
    })
    assert r.status_code in (200, 201), r.text
    adj = r.json()
    assert adj["status"] == "pendiente"
    assert adj["value"] == 200000

    # missing justification is rejected by validation
    r = client.post(f"/adjustments/periods/{pid}", json={
        "employee_id": e2["id"], "novedad_type": "bonificacion", "value": "1",
    })
    assert r.status_code == 422

    r = client.get(f"/adjustments/periods/{pid}/preview")
    assert r.status_code == 200, r.text
    preview = r.json()
    assert preview["pending"] == 1
    row = preview["employees"][0]
    assert row["employee_id"] == e2["id"]
    assert row["original_net"] == 1380000
    assert row["new_earnings"] == 1700000
    assert row["new_net"] == 1564000
    assert row["difference"] == 184000

    # preview does not write
    assert _net(pid, e2["id"]) == 1380000

    r = client.post(f"/adjustments/periods/{pid}/apply", json={"actor": "ana"})
    assert r.status_code == 200, r.text
    applied = r.json()
    assert applied["errors"] == []
    assert applied["version_no"] == 2
    assert applied["vouchers"]["regenerated"] == 1
    assert applied["applied"][0]["new_net"] == 1564000

    # the applied figures match the preview
    assert _net(pid, e2["id"]) == 1564000
    assert _net(pid, e1["id"]) == 1020000
    period = client.get(f"/payroll/periods/{pid}").json()
    assert period["status"] == "cerrado"
    assert period["total_net"] == 1020000 + 1564000

    corrections = client.get(f"/adjustments/periods/{pid}/corrections").json()
    assert len(corrections) == 1
    assert corrections[0]["previous_value"] == 1380000
    assert corrections[0]["new_value"] == 1564000
    assert corrections[0]["value_difference"] == 184000

    items = client.get(f"/adjustments/periods/{pid}").json()
    assert [i["status"] for i in items] == ["aplicado"]
    assert items[0]["applied_novedad_id"] is not None

    novedades = client.get(f"/novedades/periods/{pid}", params={"employee_id": e2["id"]}).json()["items"]
    assert [(n["novedad_type"], n["source"]) for n in novedades] == [("bonificacion", "adjustment")]

    vouchers = {v["employee_id"]: v for v in client.get(f"/vouchers/periods/{pid}").json()}
    assert vouchers[e2["id"]]["version"] == 2
    assert vouchers[e2["id"]]["net_pay"] == 1564000
    assert vouchers[e1["id"]]["version"] == 1

    versions = client.get(f"/payroll/periods/{pid}/versions").json()
    assert [v["version_type"] for v in versions] == ["original", "reliquidation"]

    # nothing left to apply; applied items cannot be discarded
    assert client.post(f"/adjustments/periods/{pid}/apply", json={}).status_code == 400
    assert client.post(f"/adjustments/{adj['id']}/discard").status_code == 409


def test_rollback_restores_original_version():
    _, (e1, e2), pid = _closed_period()
    client.post(f"/adjustments/periods/{pid}", json={
        "employee_id": e2["id"], "novedad_type": "bonificacion", "value": "200000",
        "justification": "Bonificación",
    })
    assert client.post(f"/adjustments/periods/{pid}/apply", json={}).status_code == 200
    assert _net(pid, e2["id"]) == 1564000

    versions = client.get(f"/payroll/periods/{pid}/versions").json()
    original = next(v for v in versions if v["version_type"] == "original")

    r = client.post(f"/payroll/versions/{original['id']}/rollback", json={"actor": "ana"})
    assert r.status_code == 200, r.text
    assert r.json()["restored_version"] == 1
    assert r.json()["records"] == 2

    assert _net(pid, e2["id"]) == 1380000
    assert client.get(f"/payroll/periods/{pid}").json()["total_net"] == 2400000

    versions = client.get(f"/payroll/periods/{pid}/versions").json()
    assert [v["version_type"] for v in versions] == ["original", "reliquidation", "rollback"]


def test_discard_pending_adjustment():
    _, (e1, _), pid = _closed_period()
    adj = client.post(f"/adjustments/periods/{pid}", json={
        "employee_id": e1["id"], "novedad_type": "libranza", "value": "30000",
        "justification": "Cuota libranza",
    }).json()

    r = client.post(f"/adjustments/{adj['id']}/discard")
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "descartado"

    assert client.get(f"/adjustments/periods/{pid}", params={"status": "pendiente"}).json() == []
    assert client.post(f"/adjustments/periods/{pid}/apply", json={}).status_code == 400
    assert _net(pid, e1["id"]) == 1020000


def test_compare_versions_reports_per_employee_deltas():
    _, (e1, e2), pid = _closed_period()
    client.post(f"/adjustments/periods/{pid}", json={
        "employee_id": e2["id"], "novedad_type": "bonificacion", "value": "200000",
        "justification": "Bonificación",
    })
    assert client.post(f"/adjustments/periods/{pid}/apply", json={}).status_code == 200

    versions = {v["version_type"]: v for v in client.get(f"/payroll/periods/{pid}/versions").json()}
    r = client.get("/payroll/versions/compare", params={
        "version_a": versions["original"]["id"],
        "version_b": versions["reliquidation"]["id"],
    })
    assert r.status_code == 200, r.text
    diff = r.json()
    assert (diff["version_a"], diff["version_b"]) == (1, 2)
    assert diff["changed_employees"] == 1

    rows = {e["employee_id"]: e for e in diff["employees"]}
    assert rows[e1["id"]]["status"] == "unchanged"
    assert rows[e1["id"]]["changes"] == {}
    changed = rows[e2["id"]]
    assert changed["status"] == "changed"
    assert changed["code"] == "E002"
    assert changed["changes"]["net_pay"] == {"from": 1380000, "to": 1564000, "difference": 184000}
    assert changed["changes"]["extra_pay"]["difference"] == 200000
    assert "base_salary" not in changed["changes"]
    assert diff["totals"]["total_net"]["difference"] == 184000

    missing = "00000000-0000-0000-0000-000000000000"
    r = client.get("/payroll/versions/compare", params={
        "version_a": versions["original"]["id"], "version_b": missing,
    })
    assert r.status_code == 404
