from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import select

from models import Company, Employee, Session as DbSession, User
from utils import (
    ApiError,
    AuthContext,
    AuthorizationError,
    Role,
    iso_utc_now,
    new_uuid,
    normalize_role,
    parse_datetime_maybe,
    sha256_hex,
)


PUBLIC_ACTIONS = {
    "LOGIN",
    "COMPANY_REGISTER",
}


STATIC_RBAC_PERMISSIONS: dict[str, list[str]] = {
    "LOGIN": ["PUBLIC"],
    "LOGOUT": ["ADMIN", "COMPANY", "EMPLOYEE"],
    "SESSION_VALIDATE": ["ADMIN", "COMPANY", "EMPLOYEE"],
    # Companies
    "COMPANY_REGISTER": ["PUBLIC"],
    "COMPANY_ANALYTICS": ["ADMIN", "COMPANY"],
    # Employees
    "EMPLOYEE_CREATE": ["ADMIN", "COMPANY"],
    "EMPLOYEE_GET": ["ADMIN", "COMPANY", "EMPLOYEE"],
    "EMPLOYEES_LIST": ["ADMIN", "COMPANY"],
    "EMPLOYEE_DEACTIVATE": ["ADMIN"],
    "EMPLOYEE_SCORE_GET": ["ADMIN", "COMPANY", "EMPLOYEE"],
    "EMPLOYEE_SCORE_RECOMPUTE": ["ADMIN"],
    "EMPLOYEE_ANALYTICS": ["ADMIN", "COMPANY", "EMPLOYEE"],
    # Reviews
    "REVIEW_SUBMIT": ["COMPANY"],
    "REVIEW_DELETE": ["COMPANY"],
    "REVIEW_STATS": ["ADMIN", "COMPANY", "EMPLOYEE"],
    "REVIEWS_FOR_EMPLOYEE": ["ADMIN", "COMPANY", "EMPLOYEE"],
    "REVIEWS_FOR_COMPANY": ["ADMIN", "COMPANY"],
    # Moderation / admin
    "REVIEW_MODERATE": ["ADMIN"],
    "REVIEWS_ADMIN_LIST": ["ADMIN"],
    "ADMIN_STATS": ["ADMIN"],
    "ADMIN_USER_TOGGLE_STATUS": ["ADMIN"],
    "AUDIT_LOGS_QUERY": ["ADMIN"],
    # Documents
    "DOCUMENT_UPLOAD": ["ADMIN", "COMPANY", "EMPLOYEE"],
    "DOCUMENTS_LIST": ["ADMIN", "COMPANY", "EMPLOYEE"],
    "DOCUMENTS_PENDING_LIST": ["ADMIN", "COMPANY"],
    "DOCUMENT_VERIFY": ["ADMIN", "COMPANY"],
    "DOCUMENT_DELETE": ["ADMIN", "EMPLOYEE"],
}


_INVALID = AuthContext(valid=False, userId="", email="", role="", expiresAt="")


@dataclass(frozen=True)
class Actor:
    """Authorized caller, already mapped onto the profile ids the services take."""

    role: Role
    userId: str
    companyId: str = ""
    employeeId: str = ""


def is_public_action(action: str) -> bool:
    return str(action or "").upper() in PUBLIC_ACTIONS


def uuid_hex_32() -> str:
    return new_uuid().replace("-", "")


def issue_session_token(
    db,
    *,
    user_id: str,
    email: str,
    role: str,
    auth_version: int = 0,
    session_ttl_minutes: int,
) -> dict[str, str]:
    token = "ST-" + uuid_hex_32() + uuid_hex_32()
    now = datetime.now(timezone.utc)
    expires = now + timedelta(minutes=session_ttl_minutes)

    issued_at = iso_utc_now()
    expires_at = expires.isoformat(timespec="milliseconds").replace("+00:00", "Z")

    db.add(
        DbSession(
            sessionId="SES-" + new_uuid(),
            tokenHash=sha256_hex(token),
            tokenPrefix=token[:12],
            userId=str(user_id or ""),
            email=str(email or ""),
            role=str(normalize_role(role) or ""),
            authVersion=int(auth_version or 0),
            issuedAt=issued_at,
            expiresAt=expires_at,
            lastSeenAt=issued_at,
            revokedAt="",
            revokedBy="",
        )
    )
    return {"sessionToken": token, "expiresAt": expires_at}


def revoke_session_token(db, token: Any, *, revoked_by: str) -> bool:
    if not token or not isinstance(token, str):
        return False
    ses = db.execute(select(DbSession).where(DbSession.tokenHash == sha256_hex(token))).scalar_one_or_none()
    if not ses or ses.revokedAt:
        return False
    ses.revokedAt = iso_utc_now()
    ses.revokedBy = str(revoked_by or "")
    return True


def revoke_user_sessions(db, *, user_id: str, revoked_by: str) -> int:
    """
    Revoke all active sessions for a user.

    Used on suspension so remembered tokens stop working immediately.
    """

    uid = str(user_id or "").strip()
    if not uid:
        return 0

    now = iso_utc_now()
    rows = db.execute(select(DbSession).where(DbSession.userId == uid).where(DbSession.revokedAt == "")).scalars().all()
    for s in rows:
        s.revokedAt = now
        s.revokedBy = str(revoked_by or "")
    return len(rows)


def validate_session_token(db, token: Any) -> AuthContext:
    if not token or not isinstance(token, str):
        return _INVALID

    ses = db.execute(select(DbSession).where(DbSession.tokenHash == sha256_hex(token))).scalar_one_or_none()
    if not ses or ses.revokedAt:
        return _INVALID

    exp_dt = parse_datetime_maybe(ses.expiresAt)
    if exp_dt and exp_dt < datetime.now(timezone.utc):
        return _INVALID

    usr = db.execute(select(User).where(User.userId == ses.userId)).scalar_one_or_none()
    if not usr:
        return _INVALID
    if str(usr.status or "").upper() != "ACTIVE":
        raise ApiError("FORBIDDEN", "User is disabled", http_status=403)
    if int(usr.authVersion or 0) != int(ses.authVersion or 0):
        return _INVALID

    # Avoid writing on every request: update lastSeenAt at most once per interval.
    try:
        interval_s = int(str(os.getenv("SESSION_LAST_SEEN_UPDATE_SECONDS", "300") or "300"))
    except Exception:
        interval_s = 300
    last_dt = parse_datetime_maybe(ses.lastSeenAt)
    if interval_s <= 0 or not last_dt or (datetime.now(timezone.utc) - last_dt).total_seconds() >= interval_s:
        ses.lastSeenAt = iso_utc_now()

    return AuthContext(
        valid=True,
        userId=str(ses.userId or ""),
        email=str(ses.email or ""),
        role=str(normalize_role(ses.role) or ""),
        expiresAt=str(ses.expiresAt or ""),
    )


def assert_permission(role: str, action: str) -> None:
    action_u = str(action or "").upper().strip()
    allowed = STATIC_RBAC_PERMISSIONS.get(action_u)
    if not allowed:
        raise ApiError("BAD_REQUEST", f"Unknown action: {action_u}")

    if is_public_action(action_u):
        return

    role_u = normalize_role(role) or ""
    if not role_u:
        raise ApiError("AUTH_INVALID", "Login required")
    if role_u not in allowed:
        raise ApiError("FORBIDDEN", f"Not allowed for role: {role_u}")


def resolve_actor(db, auth: Optional[AuthContext]) -> Actor:
    if not auth or not auth.valid:
        raise ApiError("AUTH_INVALID", "Login required")

    usr = db.execute(select(User).where(User.userId == auth.userId)).scalar_one_or_none()
    if not usr:
        raise ApiError("AUTH_INVALID", "Login required")

    role_value = normalize_role(auth.role)
    if not role_value:
        raise AuthorizationError("Unknown role")
    role = Role(role_value)
    profile_id = str(usr.profileId or "").strip()

    if role is Role.ADMIN:
        return Actor(role=role, userId=usr.userId)
    elif role is Role.COMPANY:
        company = db.execute(select(Company).where(Company.companyId == profile_id)).scalar_one_or_none()
        if not company:
            raise AuthorizationError("No company profile for this account")
        return Actor(role=role, userId=usr.userId, companyId=company.companyId)
    elif role is Role.EMPLOYEE:
        emp = db.execute(select(Employee).where(Employee.employeeId == profile_id)).scalar_one_or_none()
        if not emp or not emp.isActive:
            raise AuthorizationError("No active employee profile for this account")
        return Actor(role=role, userId=usr.userId, employeeId=emp.employeeId)
    raise AuthorizationError(f"Unhandled role: {role}")


def assert_employee_visible(db, actor: Actor, employee_id: str) -> None:
    """EMPLOYEE actors may only see their own record; COMPANY and ADMIN see any."""

    if actor.role is Role.EMPLOYEE and actor.employeeId != str(employee_id or ""):
        raise AuthorizationError("Employees may only access their own record")


def role_or_public(auth: Optional[AuthContext]) -> str:
    if not auth or not auth.valid:
        return "PUBLIC"
    return normalize_role(auth.role) or "PUBLIC"
