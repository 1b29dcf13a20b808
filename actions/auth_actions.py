from __future__ import annotations

from flask import g
from sqlalchemy import select

from actions.helpers import append_audit
from auth import issue_session_token, revoke_session_token, role_or_public
from models import User
from passwords import verify_password
from services.accounts import find_user_by_email
from utils import ApiError, AuthContext, iso_utc_now, normalize_role


def me_dict(user: User) -> dict:
    role = normalize_role(user.role) or ""
    return {
        "userId": user.userId,
        "email": user.email,
        "fullName": user.fullName or "",
        "role": role,
        "companyId": user.profileId if role == "COMPANY" else "",
        "employeeId": user.profileId if role == "EMPLOYEE" else "",
        "status": str(user.status or "").upper(),
    }


def start_session(db, user: User, cfg, *, audit_action: str = "login") -> dict:
    role = normalize_role(user.role)
    if not role:
        raise ApiError("FORBIDDEN", "Account has no valid role", http_status=403)

    ses = issue_session_token(
        db,
        user_id=user.userId,
        email=user.email,
        role=role,
        auth_version=int(user.authVersion or 0),
        session_ttl_minutes=cfg.SESSION_TTL_MINUTES,
    )
    user.lastLoginAt = iso_utc_now()

    append_audit(
        db,
        entityType="AUTH",
        entityId=user.userId,
        action=audit_action,
        actor=AuthContext(valid=True, userId=user.userId, email=user.email, role=role, expiresAt=ses["expiresAt"]),
        meta={"email": user.email},
    )
    return {"sessionToken": ses["sessionToken"], "expiresAt": ses["expiresAt"], "me": me_dict(user)}


def login(data, auth: AuthContext | None, db, cfg):
    email = str((data or {}).get("email") or "").strip()
    password = str((data or {}).get("password") or "")
    if not email:
        raise ApiError("BAD_REQUEST", "Missing email")
    if not password:
        raise ApiError("BAD_REQUEST", "Missing password")
    if len(password) > 256:
        raise ApiError("BAD_REQUEST", "Password is too long")

    user = find_user_by_email(db, email)
    if not user or not verify_password(password, user.passwordHash):
        raise ApiError("AUTH_INVALID", "Invalid credentials")
    if str(user.status or "").upper() != "ACTIVE":
        raise ApiError("FORBIDDEN", "Account suspended", http_status=403)

    return start_session(db, user, cfg)


def logout(data, auth: AuthContext | None, db, cfg):
    if not auth or not auth.valid:
        raise ApiError("AUTH_INVALID", "Login required")
    revoked = revoke_session_token(db, getattr(g, "session_token", None), revoked_by=auth.userId)
    append_audit(db, entityType="AUTH", entityId=auth.userId, action="logout", actor=auth)
    return {"loggedOut": bool(revoked)}


def session_validate(data, auth: AuthContext | None, db, cfg):
    if not auth or not auth.valid:
        raise ApiError("AUTH_INVALID", "Invalid or expired session")
    user = db.execute(select(User).where(User.userId == auth.userId)).scalar_one_or_none()
    if not user:
        raise ApiError("AUTH_INVALID", "User missing")
    return {"valid": True, "expiresAt": auth.expiresAt, "role": role_or_public(auth), "me": me_dict(user)}
