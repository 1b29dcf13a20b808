"""Seed rows and API helpers shared by the test modules."""
from __future__ import annotations

import json
from datetime import date, timedelta

from db import SessionLocal
from models import Company, Employee, User
from passwords import hash_password
from utils import iso_utc_now


PASSWORD = "Str0ng!Passw0rd"

LONG_COMMENT = (
    "Consistently delivered quality work, communicated clearly with the team and met every deadline."
)


def api(client, payload: dict):
    return client.post("/api", data=json.dumps(payload), content_type="text/plain; charset=utf-8")


def login(client, *, email: str, password: str = PASSWORD) -> str:
    res = api(client, {"action": "LOGIN", "token": None, "data": {"email": email, "password": password}})
    assert res.status_code == 200, res.get_json()
    body = res.get_json()
    assert body["ok"] is True
    return body["data"]["sessionToken"]


def seed_user(*, user_id: str, email: str, role: str, profile_id: str = "", status: str = "ACTIVE") -> None:
    now = iso_utc_now()
    with SessionLocal() as db:
        db.add(
            User(
                userId=user_id,
                email=email,
                fullName="Test User",
                passwordHash=hash_password(PASSWORD),
                role=role,
                profileId=profile_id,
                status=status,
                createdAt=now,
                createdBy="TEST",
                updatedAt=now,
                updatedBy="TEST",
            )
        )
        db.commit()


def seed_admin(*, user_id: str = "USR-ADMIN", email: str = "admin@hireshield.test") -> None:
    seed_user(user_id=user_id, email=email, role="ADMIN")


def seed_company(*, company_id: str, user_id: str = "", email: str = "") -> None:
    now = iso_utc_now()
    user_id = user_id or f"USR-{company_id}"
    with SessionLocal() as db:
        db.add(Company(companyId=company_id, companyName=f"{company_id} Pvt Ltd", userId=user_id, createdAt=now, updatedAt=now))
        db.commit()
    seed_user(user_id=user_id, email=email or f"{company_id.lower()}@corp.test", role="COMPANY", profile_id=company_id)


def seed_employee(*, employee_id: str, created_by: str = "", email: str = "", with_login: bool = False) -> None:
    now = iso_utc_now()
    with SessionLocal() as db:
        db.add(
            Employee(
                employeeId=employee_id,
                firstName="Asha",
                lastName="Verma",
                dateOfBirth="1994-03-11",
                email=email,
                identityHash=f"hash-{employee_id}",
                createdBy=created_by,
                isActive=True,
                createdAt=now,
                updatedAt=now,
            )
        )
        db.commit()
    if with_login:
        seed_user(
            user_id=f"USR-{employee_id}",
            email=email or f"{employee_id.lower()}@mail.test",
            role="EMPLOYEE",
            profile_id=employee_id,
        )


def ratings(value: int = 8, **overrides) -> dict:
    out = {
        f: value
        for f in (
            "workQuality",
            "punctuality",
            "behavior",
            "teamwork",
            "communication",
            "technicalSkills",
            "problemSolving",
            "reliability",
        )
    }
    out.update(overrides)
    return out


def employment(*, ended_days_ago: int | None = 5, employment_type: str = "full-time") -> dict:
    today = date.today()
    return {
        "designation": "Backend Engineer",
        "department": "Platform",
        "startDate": (today - timedelta(days=400)).isoformat(),
        "endDate": (today - timedelta(days=ended_days_ago)).isoformat() if ended_days_ago is not None else "",
        "employmentType": employment_type,
        "reasonForLeaving": "Relocation",
    }
