from __future__ import annotations

import logging

from flask import Blueprint, current_app, g, request
from sqlalchemy.exc import DBAPIError

from actions.documents import assert_company_manages_employee
from actions.helpers import get_notifier
from app.routes.api import client_ip, request_token, storage_error, write_error_audit
from auth import assert_employee_visible, assert_permission, resolve_actor, role_or_public, validate_session_token
from config import Config
from db import SessionLocal
from services.employee_docs_service import document_to_dict, upload_document_and_verify
from utils import ApiError, err, ok


documents_bp = Blueprint("documents", __name__)

log = logging.getLogger("api")


@documents_bp.post("/api/documents/upload")
def upload_document():
    cfg: Config = current_app.config["CFG"]
    limiter = current_app.extensions["rate_limiter"]
    db = None
    auth_ctx = None
    form = {
        "employeeId": str(request.form.get("employeeId") or "").strip(),
        "documentType": str(request.form.get("documentType") or "").strip(),
    }

    try:
        limiter.check(f"{client_ip()}:API:DOCUMENT_UPLOAD", cfg.RATE_LIMIT_DEFAULT)

        db = SessionLocal()
        auth_ctx = validate_session_token(db, request_token())
        if not auth_ctx.valid:
            raise ApiError("AUTH_INVALID", "Invalid or expired session")
        assert_permission(role_or_public(auth_ctx), "DOCUMENT_UPLOAD")
        actor = resolve_actor(db, auth_ctx)

        employee_id = form["employeeId"] or actor.employeeId
        if not employee_id:
            raise ApiError("BAD_REQUEST", "Missing employeeId")
        if not form["documentType"]:
            raise ApiError("BAD_REQUEST", "Missing documentType")
        up = request.files.get("file")
        if not up:
            raise ApiError("BAD_REQUEST", "Missing file")

        assert_employee_visible(db, actor, employee_id)
        assert_company_manages_employee(db, actor, employee_id)

        blob = up.read() or b""
        if len(blob) > cfg.MAX_DOC_UPLOAD_MB * 1024 * 1024:
            raise ApiError("BAD_REQUEST", f"Max upload size is {cfg.MAX_DOC_UPLOAD_MB}MB", http_status=413)

        doc = upload_document_and_verify(
            db,
            cfg=cfg,
            employee_id=employee_id,
            file_bytes=blob,
            file_name=str(up.filename or "").strip() or "document",
            mime_type=str(up.mimetype or "").strip(),
            document_type=form["documentType"],
            document_number=str(request.form.get("documentNumber") or ""),
            uploaded_by=actor.userId,
            notifier=get_notifier(),
        )
        db.commit()
        log.info("request_id=%s action=DOCUMENT_UPLOAD user=%s doc=%s", g.request_id, actor.userId, doc.documentId)
        return ok(document_to_dict(doc))[0], 201
    except ApiError as e:
        if db is not None:
            db.rollback()
        write_error_audit("DOCUMENT_UPLOAD", auth_ctx, form, e)
        return err(e.code, e.message, http_status=e.http_status)
    except DBAPIError as e:
        if db is not None:
            db.rollback()
        api_err = storage_error(cfg, e)
        write_error_audit("DOCUMENT_UPLOAD", auth_ctx, form, api_err)
        log.exception("request_id=%s action=DOCUMENT_UPLOAD", getattr(g, "request_id", ""))
        return err(api_err.code, api_err.message, http_status=api_err.http_status)
    except Exception as e:
        if db is not None:
            db.rollback()
        request_id = str(getattr(g, "request_id", "") or "")
        detail = "" if cfg.IS_PRODUCTION else f": {type(e).__name__}"
        api_err = ApiError("INTERNAL", f"Unexpected error{detail} (requestId: {request_id})", http_status=500)
        write_error_audit("DOCUMENT_UPLOAD", auth_ctx, form, api_err)
        log.exception("request_id=%s action=DOCUMENT_UPLOAD", request_id)
        return err(api_err.code, api_err.message, http_status=api_err.http_status)
    finally:
        if db is not None:
            db.close()
