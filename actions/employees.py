from __future__ import annotations

from typing import Any

from sqlalchemy import func, or_, select

from actions.helpers import append_audit, parse_page, yearly_id
from auth import assert_employee_visible, resolve_actor, revoke_user_sessions
from models import Employee, User
from passwords import hash_password
from services.identity_hash import employee_identity_hash, parse_date_yyyy_mm_dd
from services.score_service import get_employee_score, recompute_employee_score
from utils import (
    AuthContext,
    ConflictError,
    NotFoundError,
    Role,
    ValidationError,
    iso_utc_now,
    new_uuid,
    parse_bool,
)


def employee_to_dict(emp: Employee) -> dict[str, Any]:
    return {
        "employeeId": emp.employeeId,
        "firstName": emp.firstName or "",
        "lastName": emp.lastName or "",
        "email": emp.email or "",
        "currentDesignation": emp.currentDesignation or "",
        "createdBy": emp.createdBy or "",
        "overallScore": int(emp.overallScore or 0),
        "scoreState": emp.scoreState or "UNSCORED",
        "approvedReviewCount": int(emp.approvedReviewCount or 0),
        "verificationPercentage": int(emp.verificationPercentage or 0),
        "documentsVerified": int(emp.documentsVerified or 0),
        "verified": bool(emp.verified),
        "isActive": bool(emp.isActive),
        "createdAt": emp.createdAt or "",
    }


def _get_employee(db, employee_id: Any) -> Employee:
    emp = db.execute(select(Employee).where(Employee.employeeId == str(employee_id or "").strip())).scalar_one_or_none()
    if not emp:
        raise NotFoundError("Employee not found")
    return emp


def employee_create(data, auth: AuthContext | None, db, cfg):
    actor = resolve_actor(db, auth)
    data = data or {}

    first = str(data.get("firstName") or "").strip()
    last = str(data.get("lastName") or "").strip()
    dob = parse_date_yyyy_mm_dd(data.get("dateOfBirth"))
    email = str(data.get("email") or "").strip().lower()
    designation = str(data.get("currentDesignation") or "").strip()
    password = str(data.get("password") or "")

    if not first or not last:
        raise ValidationError("firstName and lastName are required")
    if not dob:
        raise ValidationError("Invalid dateOfBirth (expected YYYY-MM-DD)")
    if email and "@" not in email:
        raise ValidationError("Invalid email")

    identity = employee_identity_hash(first_name=first, last_name=last, dob=dob, pepper=cfg.PEPPER)
    existing = (
        db.execute(select(Employee).where(Employee.identityHash == identity).where(Employee.isActive == True))  # noqa: E712
        .scalars()
        .first()
    )
    if existing:
        return {"employee": employee_to_dict(existing), "alreadyRegistered": True}

    now = iso_utc_now()
    by = actor.companyId or actor.userId
    emp = Employee(
        employeeId=yearly_id(db, kind="EMP", id_column=Employee.employeeId),
        firstName=first[:100],
        lastName=last[:100],
        dateOfBirth=dob,
        email=email,
        currentDesignation=designation[:200],
        identityHash=identity,
        createdBy=by,
        overallScore=0,
        scoreState="UNSCORED",
        isActive=True,
        createdAt=now,
        updatedAt=now,
        updatedBy=actor.userId,
    )
    db.add(emp)

    if password:
        if not email:
            raise ValidationError("email is required to create a login")
        if db.execute(select(User).where(func.lower(User.email) == email)).scalars().first():
            raise ConflictError("A user with this email already exists")
        db.add(
            User(
                userId="USR-" + new_uuid(),
                email=email,
                fullName=f"{first} {last}",
                passwordHash=hash_password(password),
                role=Role.EMPLOYEE.value,
                profileId=emp.employeeId,
                status="ACTIVE",
                createdAt=now,
                createdBy=actor.userId,
                updatedAt=now,
                updatedBy=actor.userId,
            )
        )

    append_audit(
        db,
        entityType="EMPLOYEE",
        entityId=emp.employeeId,
        action="employee_created",
        actor=actor,
        at=now,
        meta={"createdBy": by, "hasLogin": bool(password)},
    )
    return {"employee": employee_to_dict(emp), "alreadyRegistered": False}


def employee_get(data, auth: AuthContext | None, db, cfg):
    actor = resolve_actor(db, auth)
    employee_id = str((data or {}).get("employeeId") or actor.employeeId or "").strip()
    assert_employee_visible(db, actor, employee_id)
    emp = _get_employee(db, employee_id)
    if not emp.isActive and actor.role is not Role.ADMIN:
        raise NotFoundError("Employee not found")
    return employee_to_dict(emp)


def employees_list(data, auth: AuthContext | None, db, cfg):
    actor = resolve_actor(db, auth)
    data = data or {}
    page, limit = parse_page(data)

    conds = [Employee.isActive == True]  # noqa: E712
    if actor.role is Role.COMPANY and not parse_bool(data.get("all")):
        conds.append(Employee.createdBy == actor.companyId)
    q = str(data.get("q") or "").strip().lower()
    if q:
        like = f"%{q}%"
        conds.append(
            or_(
                func.lower(Employee.firstName).like(like),
                func.lower(Employee.lastName).like(like),
                func.lower(Employee.email).like(like),
            )
        )

    total = int(db.execute(select(func.count(Employee.employeeId)).where(*conds)).scalar_one() or 0)
    rows = (
        db.execute(select(Employee).where(*conds).order_by(Employee.createdAt.desc()).offset((page - 1) * limit).limit(limit))
        .scalars()
        .all()
    )
    return {"items": [employee_to_dict(e) for e in rows], "total": total, "page": page, "limit": limit}


def employee_deactivate(data, auth: AuthContext | None, db, cfg):
    actor = resolve_actor(db, auth)
    emp = _get_employee(db, (data or {}).get("employeeId"))
    if not emp.isActive:
        return {"employeeId": emp.employeeId, "isActive": False, "changed": False}

    now = iso_utc_now()
    emp.isActive = False
    emp.deletedAt = now
    emp.updatedAt = now
    emp.updatedBy = actor.userId

    revoked = 0
    users = db.execute(select(User).where(User.profileId == emp.employeeId).where(User.role == Role.EMPLOYEE.value)).scalars().all()
    for u in users:
        u.status = "SUSPENDED"
        u.authVersion = int(u.authVersion or 0) + 1
        revoked += revoke_user_sessions(db, user_id=u.userId, revoked_by=actor.userId)

    append_audit(
        db,
        entityType="EMPLOYEE",
        entityId=emp.employeeId,
        action="employee_deactivated",
        actor=actor,
        at=now,
        meta={"revokedSessions": revoked},
    )
    return {"employeeId": emp.employeeId, "isActive": False, "changed": True}


def employee_score_get(data, auth: AuthContext | None, db, cfg):
    actor = resolve_actor(db, auth)
    employee_id = str((data or {}).get("employeeId") or actor.employeeId or "").strip()
    assert_employee_visible(db, actor, employee_id)
    return get_employee_score(db, employee_id)


def employee_score_recompute(data, auth: AuthContext | None, db, cfg):
    actor = resolve_actor(db, auth)
    employee_id = str((data or {}).get("employeeId") or "").strip()
    if not employee_id:
        raise ValidationError("Missing employeeId")
    out = recompute_employee_score(db, employee_id)
    append_audit(db, entityType="EMPLOYEE", entityId=employee_id, action="score_recomputed", actor=actor, meta=out)
    return out
