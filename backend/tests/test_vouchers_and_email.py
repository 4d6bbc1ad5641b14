# backend/tests/test_vouchers_and_email.py
from __future__ import annotations

import pytest
import requests
from fastapi.testclient import TestClient

from app.main import app
from app.services import vouchers as voucher_svc
from app.services.email import EmailDeliveryError, EmailMessage, EmailSender

client = TestClient(app)


class _FakeResponse:
    def __init__(self, status_code, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload or {}
        self.text = text

    def json(self):
        return self._payload


class _FakeSession:
    def __init__(self, response=None, exc=None):
        self.response = response
        self.exc = exc
        self.calls = []

    def post(self, url, **kw):
        self.calls.append((url, kw))
        if self.exc:
            raise self.exc
        return self.response


def _closed_period_with_vouchers():
    company = client.post("/payroll/companies", json={"nit": "902000222-1", "name": "Comprobantes SAS"}).json()
    with_email = client.post(f"/payroll/companies/{company['id']}/employees", json={
        "code": "E001", "first_name": "Luisa", "last_name": "Gómez", "email": "luisa@example.com",
        "base_salary": "2000000", "eps": "Sura", "afp": "Porvenir",
    }).json()
    no_email = client.post(f"/payroll/companies/{company['id']}/employees", json={
        "code": "E002", "first_name": "Pedro", "last_name": "Ruiz",
        "base_salary": "3000000", "eps": "Sura", "afp": "Porvenir",
    }).json()
    pid = client.post(f"/payroll/companies/{company['id']}/periods",
                      json={"start_date": "2025-03-01", "end_date": "2025-03-15"}).json()["id"]
    assert client.post(f"/payroll/periods/{pid}/liquidate").status_code == 200
    assert client.post(f"/payroll/periods/{pid}/close").status_code == 200
    vouchers = {v["employee_id"]: v for v in client.get(f"/vouchers/periods/{pid}").json()}
    return pid, vouchers[with_email["id"]], vouchers[no_email["id"]]


# ----------------------------- email sender ----------------------------- #

def test_sender_without_key_is_mock():
    sender = EmailSender(api_key="", session=_FakeSession())
    assert sender.is_mock
    assert sender.send(EmailMessage(to=["a@example.com"], subject="x", body_html="<p>x</p>")) == "mock"
    assert sender.session.calls == []


def test_sender_posts_json_with_bearer_key():
    session = _FakeSession(response=_FakeResponse(200, {"id": "msg_1"}))
    sender = EmailSender(api_key="secret", api_url="https://mail.test/emails", from_email="nomina@acme.co",
                         session=session)
    msg_id = sender.send(EmailMessage(to=["a@example.com"], subject="Hola", body_html="<p>hola</p>"))
    assert msg_id == "msg_1"

    url, kw = session.calls[0]
    assert url == "https://mail.test/emails"
    assert kw["headers"]["Authorization"] == "Bearer secret"
    assert kw["json"]["from"] == "nomina@acme.co"
    assert kw["json"]["to"] == ["a@example.com"]


def test_sender_raises_on_provider_error():
    sender = EmailSender(api_key="secret", session=_FakeSession(response=_FakeResponse(500, text="boom")))
    with pytest.raises(EmailDeliveryError):
        sender.send(EmailMessage(to=["a@example.com"], subject="x", body_html=""))


def test_sender_wraps_transport_errors():
    sender = EmailSender(api_key="secret", session=_FakeSession(exc=requests.ConnectionError("down")))
    with pytest.raises(EmailDeliveryError):
        sender.send(EmailMessage(to=["a@example.com"], subject="x", body_html=""))


def test_fmt_cop_uses_colombian_grouping():
    assert voucher_svc.fmt_cop("1423500") == "$ 1.423.500"
    assert voucher_svc.fmt_cop(-2500) == "-$ 2.500"


# ----------------------------- vouchers API ----------------------------- #

def test_voucher_html_and_send():
    pid, v1, v2 = _closed_period_with_vouchers()
    assert v1["reference_no"] == "NOM-20250301-E001"
    assert v1["status"] == "generado"

    r = client.get(f"/vouchers/{v1['id']}.html")
    assert r.status_code == 200
    assert "Comprobante de nómina" in r.text
    assert "Luisa Gómez" in r.text
    assert "$ 1.020.000" in r.text

    r = client.post(f"/vouchers/{v1['id']}/send")
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "enviado"
    assert r.json()["sent_to_employee"] is True

    # no email on file
    r = client.post(f"/vouchers/{v2['id']}/send")
    assert r.status_code == 400

    r = client.post(f"/vouchers/periods/{pid}/send")
    assert r.status_code == 200, r.text
    assert (r.json()["sent"], r.json()["skipped"], r.json()["errors"]) == (1, 1, 0)


def test_regenerate_resets_sent_flag():
    pid, v1, _ = _closed_period_with_vouchers()
    assert client.post(f"/vouchers/{v1['id']}/send").status_code == 200

    r = client.post(f"/vouchers/periods/{pid}/regenerate", json={"employee_ids": [v1["employee_id"]]})
    assert r.status_code == 200, r.text
    assert r.json()["regenerated"] == 1

    vouchers = {v["id"]: v for v in client.get(f"/vouchers/periods/{pid}").json()}
    assert vouchers[v1["id"]]["version"] == 2
    assert vouchers[v1["id"]]["sent_to_employee"] is False
    assert vouchers[v1["id"]]["status"] == "generado"


def test_delivery_failure_marks_voucher(monkeypatch):
    pid, v1, _ = _closed_period_with_vouchers()
    failing = EmailSender(api_key="secret", session=_FakeSession(response=_FakeResponse(503, text="unavailable")))
    monkeypatch.setattr(voucher_svc, "get_email_sender", lambda: failing)

    r = client.post(f"/vouchers/{v1['id']}/send")
    assert r.status_code == 502

    stored = {v["id"]: v for v in client.get(f"/vouchers/periods/{pid}").json()}[v1["id"]]
    assert stored["status"] == "error"
    assert "503" in stored["last_error"]

    r = client.post(f"/vouchers/periods/{pid}/send")
    assert r.status_code == 200, r.text
    assert r.json()["errors"] == 1
