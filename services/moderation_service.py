from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy import func, select

from actions.helpers import append_audit
from models import Company, Document, Employee, Review, User
from services.notifications import employee_topic, publish_safe
from services.review_service import MODERATION_STATUSES, append_edit_history, invalidate_review_stats, review_to_dict
from services.score_service import recompute_employee_score
from utils import ConflictError, NotFoundError, ValidationError, iso_utc_now


log = logging.getLogger("moderation")

# pending -> approved | rejected; both targets are terminal.
_TRANSITIONS = {
    "approve": "approved",
    "reject": "rejected",
}


def moderate_review(db, *, review_id: str, action: str, admin_user_id: str, note: str = "", notifier=None) -> Review:
    action_l = str(action or "").strip().lower()
    target = _TRANSITIONS.get(action_l)
    if target is None:
        raise ValidationError("action must be 'approve' or 'reject'")

    review = db.execute(select(Review).where(Review.reviewId == str(review_id or "")).with_for_update()).scalar_one_or_none()
    if not review or not review.isActive:
        raise NotFoundError("Review not found")

    current = str(review.moderationStatus or "pending")
    if current != "pending":
        raise ConflictError(f"Review already {current}; only pending reviews can be moderated")

    at = iso_utc_now()
    review.moderationStatus = target
    review.moderatedBy = str(admin_user_id or "")
    review.moderatedAt = at
    review.moderationNote = str(note or "").strip()[:1000]
    review.updatedAt = at
    append_edit_history(review, edited_by=admin_user_id, changes={"moderationStatus": {"from": current, "to": target}}, at=at)
    db.flush()
    invalidate_review_stats(db, review.employeeId)

    if target == "approved":
        recompute_employee_score(db, review.employeeId)

    append_audit(
        db,
        entityType="REVIEW",
        entityId=review.reviewId,
        action="review_moderated",
        actor=admin_user_id,
        at=at,
        meta={"employeeId": review.employeeId, "companyId": review.companyId, "from": current, "to": target},
    )
    publish_safe(
        notifier,
        employee_topic(review.employeeId),
        {"type": "review_update", "event": "moderated", "reviewId": review.reviewId, "moderationStatus": target},
    )
    log.info("review %s -> %s by %s", review.reviewId, target, admin_user_id)
    return review


def list_reviews_for_moderation(db, *, status: Optional[str] = "pending", page: int = 1, limit: int = 20) -> dict[str, Any]:
    st = str(status or "").strip().lower()
    if st and st not in MODERATION_STATUSES:
        raise ValidationError("Invalid status filter")

    conds = [Review.isActive == True]  # noqa: E712
    if st:
        conds.append(Review.moderationStatus == st)
    total = int(db.execute(select(func.count(Review.reviewId)).where(*conds)).scalar_one() or 0)
    rows = (
        db.execute(select(Review).where(*conds).order_by(Review.createdAt.asc()).offset((page - 1) * limit).limit(limit))
        .scalars()
        .all()
    )
    return {"items": [review_to_dict(r) for r in rows], "total": total, "page": page, "limit": limit, "status": st or "all"}


def _count(db, column, *conds) -> int:
    return int(db.execute(select(func.count(column)).where(*conds)).scalar_one() or 0)


def admin_stats(db) -> dict[str, Any]:
    return {
        "users": {
            "total": _count(db, User.userId),
            "suspended": _count(db, User.userId, User.status == "SUSPENDED"),
        },
        "companies": _count(db, Company.companyId),
        "employees": {
            "total": _count(db, Employee.employeeId, Employee.isActive == True),  # noqa: E712
            "verified": _count(db, Employee.employeeId, Employee.isActive == True, Employee.verified == True),  # noqa: E712
        },
        "reviews": {
            "total": _count(db, Review.reviewId, Review.isActive == True),  # noqa: E712
            "pending": _count(db, Review.reviewId, Review.isActive == True, Review.moderationStatus == "pending"),  # noqa: E712
            "approved": _count(db, Review.reviewId, Review.isActive == True, Review.moderationStatus == "approved"),  # noqa: E712
            "rejected": _count(db, Review.reviewId, Review.isActive == True, Review.moderationStatus == "rejected"),  # noqa: E712
        },
        "documents": {
            "total": _count(db, Document.documentId),
            "pending": _count(db, Document.documentId, Document.verificationStatus == "pending"),
            "verified": _count(db, Document.documentId, Document.verificationStatus == "verified"),
        },
    }
