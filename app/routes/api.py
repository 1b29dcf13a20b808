from __future__ import annotations

import json
import logging
import os
import re
from typing import Any

from flask import Blueprint, current_app, g, request
from sqlalchemy.exc import DBAPIError

from actions import dispatch
from auth import assert_permission, is_public_action, role_or_public, validate_session_token
from config import Config
from db import SessionLocal
from models import AuditLog
from utils import ApiError, StorageError, err, iso_utc_now, now_monotonic, ok, parse_json_body, redact_for_audit


api_bp = Blueprint("api", __name__)

log = logging.getLogger("api")


def request_token(body: dict[str, Any] | None = None) -> str:
    token = str((body or {}).get("token") or "").strip()
    if token:
        return token
    authz = str(request.headers.get("Authorization") or "").strip()
    if authz.lower().startswith("bearer "):
        return authz.split(" ", 1)[1].strip()
    return str(request.headers.get("X-Session-Token") or "").strip()


def client_ip() -> str:
    return str(request.headers.get("X-Forwarded-For", request.remote_addr or "") or "").split(",")[0].strip()


def storage_error(cfg: Config, e: DBAPIError) -> StorageError:
    request_id = str(getattr(g, "request_id", "") or "")
    if cfg.IS_PRODUCTION:
        return StorageError(f"Database unavailable (requestId: {request_id})")
    orig = re.sub(r"\s+", " ", str(getattr(e, "orig", "") or "")).strip()[:300]
    detail = f": {orig}" if orig else ""
    return StorageError(f"Database error{detail} (requestId: {request_id})")


@api_bp.post("/api")
def api_route():
    cfg: Config = current_app.config["CFG"]
    limiter = current_app.extensions["rate_limiter"]
    db = None
    auth_ctx = None
    action_u = ""
    data: Any = {}

    try:
        body = parse_json_body(request.get_data(as_text=True))
        action_u = str(body.get("action") or "").upper().strip()
        data = body.get("data") or {}
        token = request_token(body)
        g.session_token = token

        if not action_u:
            raise ApiError("BAD_REQUEST", "Missing action")

        ip = client_ip()
        if is_public_action(action_u):
            limiter.check(f"{ip}:{action_u}", cfg.RATE_LIMIT_LOGIN)
        else:
            limiter.check(f"{ip}:GLOBAL", cfg.RATE_LIMIT_GLOBAL)
            limiter.check(f"{ip}:API:{action_u}", cfg.RATE_LIMIT_DEFAULT)

        db = SessionLocal()

        if not is_public_action(action_u):
            auth_ctx = validate_session_token(db, token)
            if not auth_ctx.valid:
                raise ApiError("AUTH_INVALID", "Invalid or expired session")

        assert_permission(role_or_public(auth_ctx), action_u)

        out = dispatch(action_u, data, auth_ctx, db, cfg)
        db.commit()

        latency_ms = int((now_monotonic() - g.start_ts) * 1000)
        log.info(
            "request_id=%s action=%s user=%s role=%s latency_ms=%s",
            g.request_id,
            action_u,
            (auth_ctx.userId if auth_ctx else "PUBLIC"),
            (auth_ctx.role if auth_ctx else "PUBLIC"),
            latency_ms,
        )
        return ok(out)[0]
    except ApiError as e:
        if db is not None:
            db.rollback()
        write_error_audit(action_u, auth_ctx, data, e)
        log.info("request_id=%s action=%s error=%s", getattr(g, "request_id", ""), action_u, e.code)
        return err(e.code, e.message, http_status=e.http_status)
    except DBAPIError as e:
        if db is not None:
            db.rollback()
        api_err = storage_error(cfg, e)
        write_error_audit(action_u, auth_ctx, data, api_err)
        log.exception("request_id=%s action=%s", getattr(g, "request_id", ""), action_u)
        return err(api_err.code, api_err.message, http_status=api_err.http_status)
    except Exception as e:
        if db is not None:
            db.rollback()
        request_id = str(getattr(g, "request_id", "") or "")
        detail = "" if cfg.IS_PRODUCTION else f": {type(e).__name__}"
        api_err = ApiError("INTERNAL", f"Unexpected error{detail} (requestId: {request_id})", http_status=500)
        write_error_audit(action_u, auth_ctx, data, api_err)
        log.exception("request_id=%s action=%s", request_id, action_u)
        return err(api_err.code, api_err.message, http_status=api_err.http_status)
    finally:
        if db is not None:
            db.close()


def write_error_audit(action: str, auth_ctx, data: Any, err_obj: ApiError) -> None:
    """API_ERROR row in its own session; the request's session has been rolled back."""
    db2 = None
    try:
        db2 = SessionLocal()
        db2.add(
            AuditLog(
                logId=f"LOG-{os.urandom(16).hex()}",
                entityType="API",
                entityId=str(auth_ctx.userId or auth_ctx.email or "") if auth_ctx else "PUBLIC",
                action=str(action or "").upper() or "UNKNOWN",
                status="failure",
                remark=f"{err_obj.code}: {err_obj.message}"[:500],
                actorUserId=str(auth_ctx.userId) if auth_ctx else "PUBLIC",
                actorRole=str(auth_ctx.role) if auth_ctx else "PUBLIC",
                at=iso_utc_now(),
                correlationId=str(getattr(g, "request_id", "") or ""),
                metaJson=json.dumps(
                    {
                        "data": redact_for_audit(data if isinstance(data, dict) else {}),
                        "error": {"code": err_obj.code, "message": err_obj.message},
                    }
                ),
            )
        )
        db2.commit()
    except Exception:
        logging.getLogger("audit").exception("failed to write API_ERROR audit action=%s", action)
    finally:
        if db2 is not None:
            db2.close()
