from __future__ import annotations

import json
import logging
import os
import re
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from flask import current_app, g, has_app_context, has_request_context
from sqlalchemy import select

from models import AuditLog, IdCounter
from utils import iso_utc_now, redact_for_audit


log = logging.getLogger("audit")


def _actor_fields(actor: Any) -> tuple[str, str]:
    if actor is None:
        return "SYSTEM", "SYSTEM"
    if isinstance(actor, str):
        return actor, ""
    user_id = str(getattr(actor, "userId", "") or getattr(actor, "email", "") or "")
    role = getattr(actor, "role", "")
    role = str(getattr(role, "value", role) or "")
    return user_id, role


def append_audit(
    db,
    *,
    entityType: str,
    entityId: str,
    action: str,
    actor: Any = None,
    at: str = "",
    status: str = "success",
    remark: str = "",
    meta: Optional[dict[str, Any]] = None,
) -> None:
    """
    Append one AuditLog row inside a SAVEPOINT.

    Audit failures are logged and swallowed; the surrounding business write still commits.
    """

    # Surface errors from the caller's own pending writes before isolating the audit row.
    db.flush()

    user_id, role = _actor_fields(actor)
    correlation_id = str(getattr(g, "request_id", "") or "") if has_request_context() else ""
    try:
        with db.begin_nested():
            db.add(
                AuditLog(
                    logId=f"LOG-{os.urandom(16).hex()}",
                    entityType=str(entityType or ""),
                    entityId=str(entityId or ""),
                    action=str(action or ""),
                    status=str(status or "success"),
                    remark=str(remark or "")[:500],
                    actorUserId=user_id,
                    actorRole=role,
                    at=at or iso_utc_now(),
                    correlationId=correlation_id,
                    metaJson=json.dumps(redact_for_audit(meta or {}), default=str),
                )
            )
    except Exception:
        log.exception("audit write failed entity=%s:%s action=%s", entityType, entityId, action)


_SUFFIX_RE = re.compile(r"(\d+)$")


def next_prefixed_id(db, *, counter_key: str, prefix: str, pad: int = 5, existing_ids: Iterable[str] = ()) -> str:
    row = db.execute(select(IdCounter).where(IdCounter.key == counter_key).with_for_update()).scalar_one_or_none()
    if row is None:
        # First use: continue after the highest id already present.
        highest = 0
        for x in existing_ids or ():
            s = str(x or "")
            if not s.startswith(prefix):
                continue
            m = _SUFFIX_RE.search(s)
            if m:
                highest = max(highest, int(m.group(1)))
        row = IdCounter(key=counter_key, nextValue=highest + 1)
        db.add(row)
        db.flush()

    value = int(row.nextValue or 1)
    row.nextValue = value + 1
    return f"{prefix}{str(value).zfill(pad)}"


def yearly_id(db, *, kind: str, id_column) -> str:
    """`<KIND>-<YYYY>-<NNNNN>` using the per-kind, per-year counter."""
    year = datetime.now(timezone.utc).strftime("%Y")
    prefix = f"{kind}-{year}-"
    existing = db.execute(select(id_column).where(id_column.like(f"{prefix}%"))).scalars().all()
    return next_prefixed_id(db, counter_key=f"{kind}_{year}", prefix=prefix, pad=5, existing_ids=existing)


def get_notifier():
    if not has_app_context():
        return None
    return current_app.extensions.get("notifications")


def parse_page(data: dict, *, default_limit: int = 20, max_limit: int = 100) -> tuple[int, int]:
    try:
        page = max(1, int(data.get("page") or 1))
    except (TypeError, ValueError):
        page = 1
    try:
        limit = int(data.get("limit") or default_limit)
    except (TypeError, ValueError):
        limit = default_limit
    return page, max(1, min(max_limit, limit))


def loads_json_list(raw: Any) -> list:
    try:
        v = json.loads(str(raw or "[]"))
    except ValueError:
        return []
    return v if isinstance(v, list) else []


def loads_json_dict(raw: Any) -> dict:
    try:
        v = json.loads(str(raw or "{}"))
    except ValueError:
        return {}
    return v if isinstance(v, dict) else {}
