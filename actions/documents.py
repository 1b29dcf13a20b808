from __future__ import annotations

from sqlalchemy import select

from actions.helpers import get_notifier, parse_page
from auth import Actor, assert_employee_visible, resolve_actor
from models import Employee
from services.employee_docs_service import (
    delete_document,
    document_to_dict,
    get_document,
    list_employee_documents,
    list_pending_documents,
    verify_document_manually,
)
from utils import AuthContext, AuthorizationError, NotFoundError, Role, ValidationError


def assert_company_manages_employee(db, actor: Actor, employee_id: str) -> None:
    """COMPANY actors manage documents only for employees they registered."""
    if actor.role is not Role.COMPANY:
        return
    emp = db.execute(select(Employee).where(Employee.employeeId == employee_id)).scalar_one_or_none()
    if not emp:
        raise NotFoundError("Employee not found")
    if emp.createdBy != actor.companyId:
        raise AuthorizationError("Employee is not registered by your company")


def documents_list(data, auth: AuthContext | None, db, cfg):
    actor = resolve_actor(db, auth)
    employee_id = str((data or {}).get("employeeId") or actor.employeeId or "").strip()
    if not employee_id:
        raise ValidationError("Missing employeeId")
    assert_employee_visible(db, actor, employee_id)
    return {"employeeId": employee_id, "items": list_employee_documents(db, employee_id)}


def documents_pending_list(data, auth: AuthContext | None, db, cfg):
    actor = resolve_actor(db, auth)
    page, limit = parse_page(data or {})
    employee_ids = None
    if actor.role is Role.COMPANY:
        employee_ids = list(db.execute(select(Employee.employeeId).where(Employee.createdBy == actor.companyId)).scalars().all())
    return list_pending_documents(db, employee_ids=employee_ids, page=page, limit=limit)


def document_verify(data, auth: AuthContext | None, db, cfg):
    actor = resolve_actor(db, auth)
    data = data or {}
    doc = get_document(db, str(data.get("documentId") or "").strip())
    assert_company_manages_employee(db, actor, doc.employeeId)
    doc = verify_document_manually(
        db,
        document_id=doc.documentId,
        status=str(data.get("status") or ""),
        verifier_user_id=actor.userId,
        rejection_reason=str(data.get("rejectionReason") or ""),
        notifier=get_notifier(),
    )
    return document_to_dict(doc)


def document_delete(data, auth: AuthContext | None, db, cfg):
    actor = resolve_actor(db, auth)
    doc = get_document(db, str((data or {}).get("documentId") or "").strip())
    assert_employee_visible(db, actor, doc.employeeId)
    return delete_document(db, cfg=cfg, document_id=doc.documentId, actor_user_id=actor.userId, notifier=get_notifier())
