from __future__ import annotations

import io
import os

from sqlalchemy import select

from app.routes import documents as documents_route
from db import SessionLocal
from factories import api, login, seed_admin, seed_company, seed_employee
from models import AuditLog


def _upload(client, *, token: str, employee_id: str, doc_type: str, number: str = "", content: bytes = b"%PDF-1.4 test", mimetype: str = "application/pdf"):
    return client.post(
        "/api/documents/upload",
        data={
            "employeeId": employee_id,
            "documentType": doc_type,
            "documentNumber": number,
            "file": (io.BytesIO(content), "scan.pdf", mimetype),
        },
        headers={"Authorization": f"Bearer {token}"},
        content_type="multipart/form-data",
    )


def _setup(client):
    seed_admin()
    seed_company(company_id="CMP-1", email="hr@acme.test")
    seed_company(company_id="CMP-2", email="hr@other.test")
    seed_employee(employee_id="EMP-1", created_by="CMP-1", email="asha@mail.test", with_login=True)
    return (
        login(client, email="admin@hireshield.test"),
        login(client, email="hr@acme.test"),
        login(client, email="asha@mail.test"),
    )


def test_valid_pan_is_auto_verified(app_client):
    app, client = app_client
    _admin, _company, employee = _setup(client)

    res = _upload(client, token=employee, employee_id="EMP-1", doc_type="pan", number="abcpe1234f")
    assert res.status_code == 201
    doc = res.get_json()["data"]
    assert doc["verificationStatus"] == "verified"
    assert doc["verificationMethod"] == "AUTO"
    assert doc["verifiedBy"] == "SYSTEM"
    assert doc["autoVerification"]["confidence"] == 80
    assert doc["documentNumberMasked"].endswith("234F")

    stored = os.listdir(app.config["CFG"].UPLOAD_DIR)
    assert len(stored) == 1
    assert stored[0].endswith("_scan.pdf")

    res = api(client, {"action": "EMPLOYEE_SCORE_GET", "token": employee, "data": {}})
    score = res.get_json()["data"]
    assert score["verificationPercentage"] == 100
    assert score["verified"] is True


def test_unsupported_type_stays_pending_until_manual_review(app_client):
    _app, client = app_client
    _admin, company, employee = _setup(client)

    doc_id = _upload(client, token=employee, employee_id="EMP-1", doc_type="experience_letter").get_json()["data"]["documentId"]
    res = api(client, {"action": "DOCUMENTS_PENDING_LIST", "token": company, "data": {}})
    assert [d["documentId"] for d in res.get_json()["data"]["items"]] == [doc_id]

    res = api(client, {"action": "DOCUMENT_VERIFY", "token": company, "data": {"documentId": doc_id, "status": "rejected"}})
    assert res.status_code == 400

    res = api(
        client,
        {"action": "DOCUMENT_VERIFY", "token": company, "data": {"documentId": doc_id, "status": "rejected", "rejectionReason": "Blurry scan"}},
    )
    assert res.status_code == 200
    doc = res.get_json()["data"]
    assert doc["verificationStatus"] == "rejected"
    assert doc["verificationMethod"] == "MANUAL"

    res = api(client, {"action": "DOCUMENT_VERIFY", "token": company, "data": {"documentId": doc_id, "status": "verified"}})
    assert res.get_json()["data"]["verificationStatus"] == "verified"


def test_other_company_cannot_verify(app_client):
    _app, client = app_client
    _admin, _company, employee = _setup(client)
    other = login(client, email="hr@other.test")

    doc_id = _upload(client, token=employee, employee_id="EMP-1", doc_type="other").get_json()["data"]["documentId"]
    res = api(client, {"action": "DOCUMENT_VERIFY", "token": other, "data": {"documentId": doc_id, "status": "verified"}})
    assert res.status_code == 403

    res = api(client, {"action": "DOCUMENTS_PENDING_LIST", "token": other, "data": {}})
    assert res.get_json()["data"]["total"] == 0


def test_employee_cannot_upload_for_someone_else(app_client):
    _app, client = app_client
    _admin, _company, employee = _setup(client)
    seed_employee(employee_id="EMP-2")

    res = _upload(client, token=employee, employee_id="EMP-2", doc_type="pan", number="ABCPE1234F")
    assert res.status_code == 403


def test_upload_rejects_unknown_type(app_client):
    _app, client = app_client
    _admin, _company, employee = _setup(client)
    res = _upload(client, token=employee, employee_id="EMP-1", doc_type="selfie")
    assert res.status_code == 400


def test_delete_removes_row_file_and_rescores(app_client):
    app, client = app_client
    admin, _company, employee = _setup(client)

    doc_id = _upload(client, token=employee, employee_id="EMP-1", doc_type="pan", number="ABCPE1234F").get_json()["data"]["documentId"]
    res = api(client, {"action": "DOCUMENT_DELETE", "token": employee, "data": {"documentId": doc_id}})
    assert res.status_code == 200
    out = res.get_json()["data"]
    assert out["deleted"] is True
    assert out["score"]["verificationPercentage"] == 0
    assert out["score"]["verified"] is False
    assert os.listdir(app.config["CFG"].UPLOAD_DIR) == []

    res = api(client, {"action": "DOCUMENTS_LIST", "token": admin, "data": {"employeeId": "EMP-1"}})
    assert res.get_json()["data"]["items"] == []


def test_upload_publishes_document_update(app_client):
    app, client = app_client
    _admin, _company, employee = _setup(client)
    hub = app.extensions["notifications"]

    seen = []
    unsubscribe = hub.subscribe("employee:EMP-1", lambda topic, event: seen.append(event["payload"]["type"]))
    _upload(client, token=employee, employee_id="EMP-1", doc_type="pan", number="ABCPE1234F")
    unsubscribe()

    assert seen == ["document_update"]


def test_unexpected_upload_failure_is_json_500_and_audited(app_client, monkeypatch):
    _app, client = app_client
    _admin, _company, employee = _setup(client)

    def disk_full(*_args, **_kwargs):
        raise OSError("disk full")

    monkeypatch.setattr(documents_route, "upload_document_and_verify", disk_full)
    res = _upload(client, token=employee, employee_id="EMP-1", doc_type="pan", number="ABCPE1234F")
    assert res.status_code == 500
    body = res.get_json()
    assert body["ok"] is False
    assert body["error"]["code"] == "INTERNAL"
    assert "OSError" in body["error"]["message"]

    with SessionLocal() as db:
        rows = (
            db.execute(select(AuditLog).where(AuditLog.entityType == "API").where(AuditLog.action == "DOCUMENT_UPLOAD"))
            .scalars()
            .all()
        )
    assert len(rows) == 1
    assert rows[0].status == "failure"
    assert rows[0].remark.startswith("INTERNAL:")
