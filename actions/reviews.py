from __future__ import annotations

from actions.helpers import get_notifier, parse_page
from auth import assert_employee_visible, resolve_actor
from services.moderation_service import list_reviews_for_moderation, moderate_review
from services.review_service import (
    delete_review,
    get_review_stats,
    list_company_reviews,
    list_employee_reviews,
    review_to_dict,
    submit_review,
)
from utils import AuthContext, Role, ValidationError, parse_bool


def review_submit(data, auth: AuthContext | None, db, cfg):
    actor = resolve_actor(db, auth)
    data = data or {}
    review = submit_review(
        db,
        company_id=actor.companyId,
        employee_id=str(data.get("employeeId") or "").strip(),
        ratings=data.get("ratings"),
        employment_details=data.get("employmentDetails"),
        comment=data.get("comment"),
        would_rehire=parse_bool(data.get("wouldRehire")),
        tags=data.get("tags"),
        actor_user_id=actor.userId,
        notifier=get_notifier(),
    )
    return review_to_dict(review)


def review_delete(data, auth: AuthContext | None, db, cfg):
    actor = resolve_actor(db, auth)
    review = delete_review(
        db,
        review_id=str((data or {}).get("reviewId") or "").strip(),
        requesting_company_id=actor.companyId,
        actor_user_id=actor.userId,
        notifier=get_notifier(),
    )
    return {"reviewId": review.reviewId, "deleted": True}


def _employee_id_for(actor, data) -> str:
    employee_id = str((data or {}).get("employeeId") or actor.employeeId or "").strip()
    if not employee_id:
        raise ValidationError("Missing employeeId")
    return employee_id


def review_stats(data, auth: AuthContext | None, db, cfg):
    actor = resolve_actor(db, auth)
    employee_id = _employee_id_for(actor, data)
    assert_employee_visible(db, actor, employee_id)
    # Only admins see aggregates over unmoderated reviews.
    status = (data or {}).get("moderationStatus") if actor.role is Role.ADMIN else "approved"
    return get_review_stats(db, employee_id, moderation_status=status or None)


def reviews_for_employee(data, auth: AuthContext | None, db, cfg):
    actor = resolve_actor(db, auth)
    employee_id = _employee_id_for(actor, data)
    assert_employee_visible(db, actor, employee_id)
    page, limit = parse_page(data or {})
    status = (data or {}).get("moderationStatus") if actor.role is Role.ADMIN else "approved"
    return list_employee_reviews(db, employee_id, moderation_status=status or None, page=page, limit=limit)


def reviews_for_company(data, auth: AuthContext | None, db, cfg):
    actor = resolve_actor(db, auth)
    company_id = actor.companyId if actor.role is Role.COMPANY else str((data or {}).get("companyId") or "").strip()
    if not company_id:
        raise ValidationError("Missing companyId")
    page, limit = parse_page(data or {})
    return list_company_reviews(db, company_id, page=page, limit=limit)


def review_moderate(data, auth: AuthContext | None, db, cfg):
    actor = resolve_actor(db, auth)
    data = data or {}
    review = moderate_review(
        db,
        review_id=str(data.get("reviewId") or "").strip(),
        action=str(data.get("action") or data.get("decision") or ""),
        admin_user_id=actor.userId,
        note=str(data.get("note") or ""),
        notifier=get_notifier(),
    )
    return review_to_dict(review)


def reviews_admin_list(data, auth: AuthContext | None, db, cfg):
    resolve_actor(db, auth)
    data = data or {}
    page, limit = parse_page(data)
    status = data.get("status", "pending")
    return list_reviews_for_moderation(db, status=status or None, page=page, limit=limit)
