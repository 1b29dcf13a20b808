from __future__ import annotations

from factories import PASSWORD, api, login, seed_admin, seed_company, seed_employee


def test_login_rejects_bad_password(app_client):
    _app, client = app_client
    seed_admin()
    res = api(client, {"action": "LOGIN", "data": {"email": "admin@hireshield.test", "password": "Wrong!Passw0rd"}})
    assert res.status_code == 401
    assert res.get_json()["error"]["code"] == "AUTH_INVALID"


def test_unknown_action_and_missing_token(app_client):
    _app, client = app_client
    res = api(client, {"action": "NOPE", "token": "x", "data": {}})
    assert res.status_code == 401

    res = api(client, {"action": "ADMIN_STATS", "data": {}})
    assert res.status_code == 401

    res = client.post("/api", data="not json", content_type="text/plain")
    assert res.status_code == 400


def test_role_gates(app_client):
    _app, client = app_client
    seed_company(company_id="CMP-1", email="hr@acme.test")
    company = login(client, email="hr@acme.test")

    res = api(client, {"action": "ADMIN_STATS", "token": company, "data": {}})
    assert res.status_code == 403
    assert res.get_json()["error"]["code"] == "FORBIDDEN"

    res = api(client, {"action": "SESSION_VALIDATE", "token": company, "data": {}})
    me = res.get_json()["data"]["me"]
    assert me["role"] == "COMPANY"
    assert me["companyId"] == "CMP-1"


def test_logout_revokes_token(app_client):
    _app, client = app_client
    seed_admin()
    token = login(client, email="admin@hireshield.test")
    assert api(client, {"action": "LOGOUT", "token": token, "data": {}}).status_code == 200
    assert api(client, {"action": "SESSION_VALIDATE", "token": token, "data": {}}).status_code == 401


def test_suspension_blocks_login_and_existing_sessions(app_client):
    _app, client = app_client
    seed_admin()
    seed_company(company_id="CMP-1", user_id="USR-CMP-1", email="hr@acme.test")
    admin = login(client, email="admin@hireshield.test")
    company = login(client, email="hr@acme.test")

    res = api(client, {"action": "ADMIN_USER_TOGGLE_STATUS", "token": admin, "data": {"userId": "USR-CMP-1", "reason": "abuse"}})
    assert res.status_code == 200
    assert res.get_json()["data"]["status"] == "SUSPENDED"

    assert api(client, {"action": "SESSION_VALIDATE", "token": company, "data": {}}).status_code in (401, 403)
    res = api(client, {"action": "LOGIN", "data": {"email": "hr@acme.test", "password": PASSWORD}})
    assert res.status_code == 403

    res = api(client, {"action": "ADMIN_USER_TOGGLE_STATUS", "token": admin, "data": {"userId": "USR-CMP-1"}})
    assert res.get_json()["data"]["status"] == "ACTIVE"
    login(client, email="hr@acme.test")

    res = api(client, {"action": "ADMIN_USER_TOGGLE_STATUS", "token": admin, "data": {"userId": "USR-ADMIN"}})
    assert res.status_code == 403


def test_employee_create_deduplicates_by_identity(app_client):
    _app, client = app_client
    seed_company(company_id="CMP-1", email="hr@acme.test")
    seed_company(company_id="CMP-2", email="hr@other.test")
    first = login(client, email="hr@acme.test")
    second = login(client, email="hr@other.test")

    payload = {"firstName": "Ravi", "lastName": "Kumar", "dateOfBirth": "1990-07-01", "email": "ravi@mail.test", "password": PASSWORD}
    res = api(client, {"action": "EMPLOYEE_CREATE", "token": first, "data": payload})
    assert res.status_code == 200
    body = res.get_json()["data"]
    assert body["alreadyRegistered"] is False
    emp_id = body["employee"]["employeeId"]
    assert emp_id.startswith("EMP-")
    assert body["employee"]["scoreState"] == "UNSCORED"

    dup = dict(payload, firstName=" ravi ", lastName="KUMAR", password="")
    res = api(client, {"action": "EMPLOYEE_CREATE", "token": second, "data": dup})
    body = res.get_json()["data"]
    assert body["alreadyRegistered"] is True
    assert body["employee"]["employeeId"] == emp_id

    employee = login(client, email="ravi@mail.test")
    res = api(client, {"action": "EMPLOYEE_GET", "token": employee, "data": {}})
    assert res.get_json()["data"]["employeeId"] == emp_id

    res = api(client, {"action": "EMPLOYEES_LIST", "token": first, "data": {}})
    assert res.get_json()["data"]["total"] == 1
    res = api(client, {"action": "EMPLOYEES_LIST", "token": second, "data": {}})
    assert res.get_json()["data"]["total"] == 0


def test_employee_cannot_read_another_employee(app_client):
    _app, client = app_client
    seed_employee(employee_id="EMP-A", email="a@mail.test", with_login=True)
    seed_employee(employee_id="EMP-B")
    token = login(client, email="a@mail.test")

    res = api(client, {"action": "EMPLOYEE_GET", "token": token, "data": {"employeeId": "EMP-B"}})
    assert res.status_code == 403


def test_deactivation_locks_out_employee(app_client):
    _app, client = app_client
    seed_admin()
    seed_employee(employee_id="EMP-A", email="a@mail.test", with_login=True)
    admin = login(client, email="admin@hireshield.test")
    employee = login(client, email="a@mail.test")

    res = api(client, {"action": "EMPLOYEE_DEACTIVATE", "token": admin, "data": {"employeeId": "EMP-A"}})
    assert res.get_json()["data"]["changed"] is True
    assert api(client, {"action": "EMPLOYEE_GET", "token": employee, "data": {}}).status_code in (401, 403)

    res = api(client, {"action": "EMPLOYEE_SCORE_RECOMPUTE", "token": admin, "data": {"employeeId": "EMP-A"}})
    assert res.status_code == 200
    assert res.get_json()["data"]["scoreState"] == "UNSCORED"
