# tests/test_smoke_endpoints.py
from fastapi.testclient import TestClient
from app.main import app

client = TestClient(app)


def test_health_probes_database():
    r = client.get("/health")
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["status"] == "ok"
    assert body["db"]["status"] == "ok"
    assert body["db"]["driver"] == "sqlite"
    assert body["time"]["tz"]


def test_version_reports_legal_values():
    r = client.get("/version")
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["app"] == "Nómina Backend"
    lv = body["legal_values"]
    assert lv["year"] >= 2024
    assert int(lv["smmlv"].split(".")[0]) > 1_000_000
    assert lv["weekly_hours"] in (42, 44, 46, 47, 48)


def test_docs_are_served():
    r = client.get("/openapi.json")
    assert r.status_code == 200
    paths = r.json()["paths"]
    assert "/payroll/periods/{period_id}/liquidate" in paths
    assert "/vouchers/{voucher_id}/send" in paths
