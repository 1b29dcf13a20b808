from __future__ import annotations

from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select

from app import create_app
from db import SessionLocal
from factories import (
    LONG_COMMENT,
    PASSWORD,
    api,
    employment,
    login,
    ratings,
    seed_admin,
    seed_employee,
)
from models import AuditLog, Company, User


def _register(client, **overrides):
    data = {
        "companyName": "  Acme   Logistics ",
        "industry": "Logistics",
        "email": "HR@Acme.test",
        "password": PASSWORD,
        "contactName": "Ravi Iyer",
    }
    data.update(overrides)
    return api(client, {"action": "COMPANY_REGISTER", "token": None, "data": data})


def _submit_review(client, token, *, employee_id="EMP-1", would_rehire=True):
    return api(
        client,
        {
            "action": "REVIEW_SUBMIT",
            "token": token,
            "data": {
                "employeeId": employee_id,
                "ratings": ratings(8),
                "employmentDetails": employment(ended_days_ago=3),
                "comment": LONG_COMMENT,
                "wouldRehire": would_rehire,
            },
        },
    )


def _count(model, *conds) -> int:
    with SessionLocal() as db:
        return int(db.execute(select(func.count()).select_from(model).where(*conds)).scalar_one())


def test_registered_company_can_log_in_and_submit_reviews(app_client):
    _app, client = app_client
    res = _register(client)
    assert res.status_code == 200, res.get_json()
    out = res.get_json()["data"]
    company = out["company"]
    assert company["companyId"].startswith("CMP-")
    assert company["companyName"] == "Acme Logistics"
    assert company["verified"] is False
    assert out["me"]["role"] == "COMPANY"
    assert out["me"]["email"] == "hr@acme.test"
    assert out["me"]["companyId"] == company["companyId"]
    assert out["sessionToken"].startswith("ST-")

    token = login(client, email="hr@acme.test")
    seed_employee(employee_id="EMP-1")
    res = _submit_review(client, token, would_rehire="false")
    assert res.status_code == 200, res.get_json()
    review = res.get_json()["data"]
    assert review["companyId"] == company["companyId"]
    assert review["wouldRehire"] is False

    with SessionLocal() as db:
        audit = db.execute(select(AuditLog).where(AuditLog.action == "company_registered")).scalars().all()
    assert [a.entityId for a in audit] == [company["companyId"]]
    assert "password" not in audit[0].metaJson


def test_duplicate_email_is_a_conflict(app_client):
    _app, client = app_client
    assert _register(client).status_code == 200

    res = _register(client, companyName="Acme Again", email="hr@ACME.test")
    assert res.status_code == 409
    assert res.get_json()["error"]["code"] == "CONFLICT"
    assert _count(Company) == 1
    assert _count(User, func.lower(User.email) == "hr@acme.test") == 1


def test_registration_enforces_password_policy_and_required_fields(app_client):
    _app, client = app_client
    res = _register(client, password="password")
    assert res.status_code == 400
    assert "Password" in res.get_json()["error"]["message"]

    assert _register(client, companyName="   ").status_code == 400
    assert _register(client, email="not-an-email").status_code == 400
    assert _count(Company) == 0
    assert _count(User) == 0


def test_company_analytics_counts_own_reviews(app_client):
    _app, client = app_client
    seed_admin()
    admin = login(client, email="admin@hireshield.test")
    _register(client)
    company = login(client, email="hr@acme.test")
    seed_employee(employee_id="EMP-1", email="asha@mail.test", with_login=True)
    seed_employee(employee_id="EMP-2")

    review_id = _submit_review(client, company, employee_id="EMP-1").get_json()["data"]["reviewId"]
    _submit_review(client, company, employee_id="EMP-2")
    res = api(client, {"action": "REVIEW_MODERATE", "token": admin, "data": {"reviewId": review_id, "action": "approve"}})
    assert res.status_code == 200

    res = api(client, {"action": "COMPANY_ANALYTICS", "token": company, "data": {}})
    assert res.status_code == 200
    stats = res.get_json()["data"]
    assert stats["totalReviews"] == 2
    assert stats["reviewsByStatus"] == {"pending": 1, "approved": 1, "rejected": 0}
    assert stats["employeesReviewed"] == 2
    assert stats["averageRating"] == 8.0
    assert len(stats["reviewTrend"]) == 6
    assert stats["reviewTrend"][-1] == {"month": datetime.now(timezone.utc).strftime("%Y-%m"), "count": 2}
    assert len(stats["recentReviews"]) == 2

    res = api(client, {"action": "COMPANY_ANALYTICS", "token": admin, "data": {"companyId": stats["companyId"]}})
    assert res.get_json()["data"]["totalReviews"] == 2

    employee = login(client, email="asha@mail.test")
    res = api(client, {"action": "COMPANY_ANALYTICS", "token": employee, "data": {}})
    assert res.status_code == 403


def test_employee_analytics_uses_approved_reviews_only(app_client):
    _app, client = app_client
    seed_admin()
    admin = login(client, email="admin@hireshield.test")
    _register(client)
    _register(client, companyName="Globex", email="hr@globex.test")
    seed_employee(employee_id="EMP-1", email="asha@mail.test", with_login=True)

    review_id = _submit_review(client, login(client, email="hr@acme.test")).get_json()["data"]["reviewId"]
    _submit_review(client, login(client, email="hr@globex.test"))
    api(client, {"action": "REVIEW_MODERATE", "token": admin, "data": {"reviewId": review_id, "action": "approve"}})

    employee = login(client, email="asha@mail.test")
    res = api(client, {"action": "EMPLOYEE_ANALYTICS", "token": employee, "data": {}})
    assert res.status_code == 200
    stats = res.get_json()["data"]
    assert stats["totalReviews"] == 1
    assert stats["overallScore"] == 80
    assert stats["scoreBreakdown"]["workQuality"] == 80
    assert [r["reviewId"] for r in stats["recentReviews"]] == [review_id]

    seed_employee(employee_id="EMP-2")
    res = api(client, {"action": "EMPLOYEE_ANALYTICS", "token": employee, "data": {"employeeId": "EMP-2"}})
    assert res.status_code == 403


def test_admin_is_seeded_from_env_once(app_client, monkeypatch):
    monkeypatch.setenv("ADMIN_EMAIL", "Root@HireShield.test")
    monkeypatch.setenv("ADMIN_PASSWORD", PASSWORD)

    app = create_app()
    client = app.test_client()
    token = login(client, email="root@hireshield.test")
    res = api(client, {"action": "ADMIN_STATS", "token": token, "data": {}})
    assert res.status_code == 200

    create_app()
    assert _count(User, User.email == "root@hireshield.test") == 1
    with SessionLocal() as db:
        assert db.execute(select(User.role).where(User.email == "root@hireshield.test")).scalar_one() == "ADMIN"


def test_weak_admin_password_stops_startup(app_client, monkeypatch):
    monkeypatch.setenv("ADMIN_EMAIL", "root@hireshield.test")
    monkeypatch.setenv("ADMIN_PASSWORD", "admin")
    with pytest.raises(RuntimeError):
        create_app()
    assert _count(User) == 0
