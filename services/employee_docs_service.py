from __future__ import annotations

import json
import logging
import os
from typing import Any

from sqlalchemy import func, select

from actions.helpers import append_audit, loads_json_dict, yearly_id
from db import on_commit, on_rollback
from models import Document, Employee
from services.document_verification import DOCUMENT_TYPES, compute_auto_verification, normalize_document_number
from services.notifications import employee_topic, publish_safe
from services.score_service import recompute_employee_score
from utils import ApiError, NotFoundError, ValidationError, iso_utc_now, sanitize_filename


log = logging.getLogger("documents")

MANUAL_STATUSES = {"verified", "rejected", "under_review"}


def document_to_dict(doc: Document) -> dict[str, Any]:
    number = str(doc.documentNumber or "")
    return {
        "documentId": doc.documentId,
        "employeeId": doc.employeeId,
        "documentType": doc.documentType,
        "documentNumberMasked": ("*" * max(0, len(number) - 4)) + number[-4:] if number else "",
        "fileName": doc.fileName or "",
        "fileSize": int(doc.fileSize or 0),
        "mimeType": doc.mimeType or "",
        "verificationStatus": doc.verificationStatus or "pending",
        "verificationMethod": doc.verificationMethod or "",
        "verifiedBy": doc.verifiedBy or "",
        "verifiedAt": doc.verifiedAt or "",
        "rejectionReason": doc.rejectionReason or "",
        "autoVerification": loads_json_dict(doc.autoVerificationJson) if doc.autoVerificationJson else None,
        "uploadedBy": doc.uploadedBy or "",
        "uploadedAt": doc.uploadedAt or "",
    }


def _upload_dir(cfg: Any) -> str:
    return str(getattr(cfg, "UPLOAD_DIR", "./uploads") or "./uploads")


def upload_document_and_verify(
    db,
    *,
    cfg: Any,
    employee_id: str,
    file_bytes: bytes,
    file_name: str,
    mime_type: str,
    document_type: str,
    document_number: str = "",
    uploaded_by: str,
    notifier=None,
) -> Document:
    emp = db.execute(select(Employee).where(Employee.employeeId == employee_id)).scalar_one_or_none()
    if not emp or not emp.isActive:
        raise NotFoundError("Employee not found")

    doc_type = str(document_type or "").strip().lower()
    if doc_type not in DOCUMENT_TYPES:
        raise ValidationError(f"Invalid documentType: {document_type}")

    blob = file_bytes or b""
    max_mb = int(getattr(cfg, "MAX_DOC_UPLOAD_MB", 10) or 10)
    if len(blob) > max_mb * 1024 * 1024:
        raise ApiError("BAD_REQUEST", f"Max upload size is {max_mb}MB", http_status=413)

    safe_name = sanitize_filename(file_name or "document")
    mime = str(mime_type or "").strip().lower() or "application/octet-stream"
    number = normalize_document_number(document_number)

    upload_dir = _upload_dir(cfg)
    os.makedirs(upload_dir, exist_ok=True)
    storage_key = os.urandom(16).hex()
    out_path = os.path.join(upload_dir, f"{storage_key}_{safe_name}")
    with open(out_path, "wb") as f:
        f.write(blob)
    on_rollback(db, lambda: _remove_file(out_path))

    at = iso_utc_now()
    doc = Document(
        documentId=yearly_id(db, kind="DOC", id_column=Document.documentId),
        employeeId=employee_id,
        documentType=doc_type,
        documentNumber=number,
        fileName=safe_name,
        storageKey=storage_key,
        filePath=out_path,
        fileSize=len(blob),
        mimeType=mime,
        verificationStatus="pending",
        uploadedBy=str(uploaded_by or ""),
        uploadedAt=at,
    )

    result = compute_auto_verification(
        {"documentType": doc_type, "documentNumber": number, "fileSize": len(blob), "mimeType": mime}
    )
    doc.autoVerificationJson = json.dumps(result)
    if result["passed"]:
        doc.verificationStatus = "verified"
        doc.verificationMethod = "AUTO"
        doc.verifiedBy = "SYSTEM"
        doc.verifiedAt = at

    db.add(doc)
    db.flush()

    recompute_employee_score(db, employee_id)

    append_audit(
        db,
        entityType="DOCUMENT",
        entityId=doc.documentId,
        action="document_uploaded",
        actor=uploaded_by,
        at=at,
        meta={
            "employeeId": employee_id,
            "documentType": doc_type,
            "fileName": safe_name,
            "size": len(blob),
            "autoVerified": bool(result["passed"]),
            "confidence": int(result["confidence"]),
        },
    )
    publish_safe(
        notifier,
        employee_topic(employee_id),
        {"type": "document_update", "event": "uploaded", "documentId": doc.documentId, "verificationStatus": doc.verificationStatus},
    )
    log.info("document uploaded id=%s employee=%s type=%s confidence=%s", doc.documentId, employee_id, doc_type, result["confidence"])
    return doc


def get_document(db, document_id: str, *, lock: bool = False) -> Document:
    q = select(Document).where(Document.documentId == str(document_id or ""))
    if lock:
        q = q.with_for_update()
    doc = db.execute(q).scalar_one_or_none()
    if not doc:
        raise NotFoundError("Document not found")
    return doc


def verify_document_manually(
    db,
    *,
    document_id: str,
    status: str,
    verifier_user_id: str,
    rejection_reason: str = "",
    notifier=None,
) -> Document:
    st = str(status or "").strip().lower()
    if st not in MANUAL_STATUSES:
        raise ValidationError("status must be one of: rejected, under_review, verified")
    reason = str(rejection_reason or "").strip()
    if st == "rejected" and not reason:
        raise ValidationError("rejectionReason is required when rejecting a document")

    doc = get_document(db, document_id, lock=True)
    previous = doc.verificationStatus
    at = iso_utc_now()
    doc.verificationStatus = st
    doc.verificationMethod = "MANUAL"
    doc.verifiedBy = str(verifier_user_id or "")
    doc.verifiedAt = at
    doc.rejectionReason = reason if st == "rejected" else ""
    db.flush()

    recompute_employee_score(db, doc.employeeId)

    append_audit(
        db,
        entityType="DOCUMENT",
        entityId=doc.documentId,
        action="document_verified",
        actor=verifier_user_id,
        at=at,
        meta={"employeeId": doc.employeeId, "from": previous, "to": st, "reason": reason},
    )
    publish_safe(
        notifier,
        employee_topic(doc.employeeId),
        {"type": "document_update", "event": "verified", "documentId": doc.documentId, "verificationStatus": st},
    )
    return doc


def _remove_file(path: str) -> None:
    if not path:
        return
    try:
        os.remove(path)
    except FileNotFoundError:
        log.warning("document file already gone path=%s", path)
    except OSError:
        log.exception("failed to remove document file path=%s", path)


def delete_document(db, *, cfg: Any, document_id: str, actor_user_id: str, notifier=None) -> dict[str, Any]:
    doc = get_document(db, document_id, lock=True)
    employee_id = doc.employeeId
    doc_type = doc.documentType
    path = str(doc.filePath or "")
    if not path and doc.storageKey:
        path = os.path.join(_upload_dir(cfg), f"{doc.storageKey}_{doc.fileName}")

    db.delete(doc)
    db.flush()
    score = recompute_employee_score(db, employee_id)
    on_commit(db, lambda: _remove_file(path))

    append_audit(
        db,
        entityType="DOCUMENT",
        entityId=document_id,
        action="document_deleted",
        actor=actor_user_id,
        meta={"employeeId": employee_id, "documentType": doc_type},
    )
    publish_safe(notifier, employee_topic(employee_id), {"type": "document_update", "event": "deleted", "documentId": document_id})
    return {"documentId": document_id, "deleted": True, "score": score}


def list_employee_documents(db, employee_id: str) -> list[dict[str, Any]]:
    rows = (
        db.execute(select(Document).where(Document.employeeId == employee_id).order_by(Document.uploadedAt.desc()))
        .scalars()
        .all()
    )
    return [document_to_dict(d) for d in rows]


def list_pending_documents(db, *, employee_ids: list[str] | None = None, page: int = 1, limit: int = 20) -> dict[str, Any]:
    conds = [Document.verificationStatus.in_(["pending", "under_review"])]
    if employee_ids is not None:
        conds.append(Document.employeeId.in_(employee_ids or [""]))
    total = int(db.execute(select(func.count(Document.documentId)).where(*conds)).scalar_one() or 0)
    rows = (
        db.execute(select(Document).where(*conds).order_by(Document.uploadedAt.asc()).offset((page - 1) * limit).limit(limit))
        .scalars()
        .all()
    )
    return {"items": [document_to_dict(d) for d in rows], "total": total, "page": page, "limit": limit}
