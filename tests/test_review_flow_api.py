from __future__ import annotations

from factories import LONG_COMMENT, api, employment, login, ratings, seed_admin, seed_company, seed_employee


def _setup(client):
    seed_admin()
    seed_company(company_id="CMP-2026-00001", email="hr@acme.test")
    seed_employee(employee_id="EMP-2026-00001", created_by="CMP-2026-00001", email="asha@mail.test", with_login=True)
    return login(client, email="admin@hireshield.test"), login(client, email="hr@acme.test")


def _score(client, token):
    res = api(client, {"action": "EMPLOYEE_SCORE_GET", "token": token, "data": {"employeeId": "EMP-2026-00001"}})
    assert res.status_code == 200
    return res.get_json()["data"]


def _submit(client, token, value):
    return api(
        client,
        {
            "action": "REVIEW_SUBMIT",
            "token": token,
            "data": {
                "employeeId": "EMP-2026-00001",
                "ratings": ratings(value),
                "employmentDetails": employment(ended_days_ago=5),
                "comment": LONG_COMMENT,
                "wouldRehire": True,
                "tags": ["reliable", "reliable", "mentor"],
            },
        },
    )


def _moderate(client, token, review_id, action="approve"):
    return api(client, {"action": "REVIEW_MODERATE", "token": token, "data": {"reviewId": review_id, "action": action}})


def test_submit_approve_edit_reapprove(app_client):
    _app, client = app_client
    admin, company = _setup(client)

    baseline = _score(client, company)
    assert baseline["overallScore"] == 0
    assert baseline["scoreState"] == "UNSCORED"

    res = _submit(client, company, 8)
    assert res.status_code == 200
    review = res.get_json()["data"]
    assert review["moderationStatus"] == "pending"
    assert review["averageRating"] == 8.0
    assert review["tags"] == ["reliable", "mentor"]
    assert _score(client, company)["overallScore"] == 0

    res = _moderate(client, admin, review["reviewId"])
    assert res.status_code == 200
    assert res.get_json()["data"]["moderationStatus"] == "approved"
    assert _score(client, company)["overallScore"] == 80

    res = _submit(client, company, 6)
    assert res.status_code == 200
    edited = res.get_json()["data"]
    assert edited["reviewId"] == review["reviewId"]
    assert edited["averageRating"] == 6.0
    assert edited["moderationStatus"] == "pending"
    assert len(edited["editHistory"]) == 2
    after_edit = _score(client, company)
    assert after_edit["overallScore"] == 0
    assert after_edit["scoreState"] == "UNSCORED"

    res = _moderate(client, admin, review["reviewId"])
    assert res.status_code == 200
    assert _score(client, company)["overallScore"] == 60


def test_remoderation_conflicts(app_client):
    _app, client = app_client
    admin, company = _setup(client)
    review_id = _submit(client, company, 7).get_json()["data"]["reviewId"]

    assert _moderate(client, admin, review_id, "reject").status_code == 200
    res = _moderate(client, admin, review_id, "approve")
    assert res.status_code == 409
    assert res.get_json()["error"]["code"] == "CONFLICT"


def test_window_closed_is_422(app_client):
    _app, client = app_client
    _admin, company = _setup(client)
    res = api(
        client,
        {
            "action": "REVIEW_SUBMIT",
            "token": company,
            "data": {
                "employeeId": "EMP-2026-00001",
                "ratings": ratings(8),
                "employmentDetails": employment(ended_days_ago=20),
                "comment": LONG_COMMENT,
            },
        },
    )
    assert res.status_code == 422
    assert res.get_json()["error"]["code"] == "REVIEW_WINDOW_CLOSED"


def test_employee_sees_only_approved_reviews_and_stats(app_client):
    _app, client = app_client
    admin, company = _setup(client)
    employee = login(client, email="asha@mail.test")
    review_id = _submit(client, company, 9).get_json()["data"]["reviewId"]

    res = api(client, {"action": "REVIEWS_FOR_EMPLOYEE", "token": employee, "data": {}})
    assert res.status_code == 200
    assert res.get_json()["data"]["total"] == 0

    res = api(client, {"action": "REVIEW_STATS", "token": admin, "data": {"employeeId": "EMP-2026-00001"}})
    assert res.get_json()["data"]["totalReviews"] == 1

    _moderate(client, admin, review_id)
    res = api(client, {"action": "REVIEW_STATS", "token": employee, "data": {}})
    stats = res.get_json()["data"]
    assert stats["moderationStatus"] == "approved"
    assert stats["totalReviews"] == 1
    assert stats["wouldRehireRate"] == 1.0


def test_company_cannot_delete_another_companys_review(app_client):
    _app, client = app_client
    _admin, company = _setup(client)
    seed_company(company_id="CMP-2026-00002", email="hr@other.test")
    other = login(client, email="hr@other.test")

    review_id = _submit(client, company, 8).get_json()["data"]["reviewId"]
    res = api(client, {"action": "REVIEW_DELETE", "token": other, "data": {"reviewId": review_id}})
    assert res.status_code == 403

    res = api(client, {"action": "REVIEW_DELETE", "token": company, "data": {"reviewId": review_id}})
    assert res.status_code == 200
    assert res.get_json()["data"]["deleted"] is True

    res = api(client, {"action": "REVIEWS_FOR_COMPANY", "token": company, "data": {}})
    assert res.get_json()["data"]["total"] == 0


def test_admin_queue_and_stats(app_client):
    _app, client = app_client
    admin, company = _setup(client)
    _submit(client, company, 8)

    res = api(client, {"action": "REVIEWS_ADMIN_LIST", "token": admin, "data": {}})
    body = res.get_json()["data"]
    assert body["status"] == "pending"
    assert body["total"] == 1

    res = api(client, {"action": "ADMIN_STATS", "token": admin, "data": {}})
    stats = res.get_json()["data"]
    assert stats["reviews"]["pending"] == 1
    assert stats["companies"] == 1
    assert stats["employees"]["total"] == 1

    res = api(client, {"action": "AUDIT_LOGS_QUERY", "token": admin, "data": {"action": "review_created"}})
    assert res.get_json()["data"]["total"] == 1
