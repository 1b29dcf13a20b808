from __future__ import annotations

from sqlalchemy import func, select

from actions.helpers import append_audit, loads_json_dict, parse_page
from auth import resolve_actor, revoke_user_sessions
from models import AuditLog, User
from services.moderation_service import admin_stats as compute_admin_stats
from utils import AuthContext, AuthorizationError, NotFoundError, Role, iso_utc_now


def admin_stats(data, auth: AuthContext | None, db, cfg):
    resolve_actor(db, auth)
    return compute_admin_stats(db)


def admin_user_toggle_status(data, auth: AuthContext | None, db, cfg):
    actor = resolve_actor(db, auth)
    data = data or {}
    user_id = str(data.get("userId") or "").strip()
    user = db.execute(select(User).where(User.userId == user_id).with_for_update()).scalar_one_or_none()
    if not user:
        raise NotFoundError("User not found")
    if str(user.role or "").upper() == Role.ADMIN.value:
        raise AuthorizationError("Cannot modify admin accounts")

    now = iso_utc_now()
    suspend = str(user.status or "").upper() == "ACTIVE"
    revoked = 0
    if suspend:
        user.status = "SUSPENDED"
        user.suspensionReason = str(data.get("reason") or "").strip()[:500]
        user.authVersion = int(user.authVersion or 0) + 1
        revoked = revoke_user_sessions(db, user_id=user.userId, revoked_by=actor.userId)
    else:
        user.status = "ACTIVE"
        user.suspensionReason = ""
    user.updatedAt = now
    user.updatedBy = actor.userId

    append_audit(
        db,
        entityType="USER",
        entityId=user.userId,
        action="account_suspended" if suspend else "account_activated",
        actor=actor,
        at=now,
        meta={"targetEmail": user.email, "revokedSessions": revoked},
    )
    return {"userId": user.userId, "status": user.status, "isSuspended": suspend, "revokedSessions": revoked}


def audit_logs_query(data, auth: AuthContext | None, db, cfg):
    resolve_actor(db, auth)
    data = data or {}
    page, limit = parse_page(data, default_limit=30, max_limit=200)

    conds = []
    for field, col in (("entityType", AuditLog.entityType), ("entityId", AuditLog.entityId), ("action", AuditLog.action), ("actorUserId", AuditLog.actorUserId)):
        v = str(data.get(field) or "").strip()
        if v:
            conds.append(col == v)

    total = int(db.execute(select(func.count(AuditLog.logId)).where(*conds)).scalar_one() or 0)
    rows = (
        db.execute(select(AuditLog).where(*conds).order_by(AuditLog.at.desc()).offset((page - 1) * limit).limit(limit))
        .scalars()
        .all()
    )
    items = [
        {
            "logId": r.logId,
            "entityType": r.entityType,
            "entityId": r.entityId,
            "action": r.action,
            "status": r.status,
            "remark": r.remark,
            "actorUserId": r.actorUserId,
            "actorRole": r.actorRole,
            "at": r.at,
            "correlationId": r.correlationId,
            "meta": loads_json_dict(r.metaJson),
        }
        for r in rows
    ]
    return {"items": items, "total": total, "page": page, "limit": limit}
