from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from actions.helpers import append_audit, loads_json_list, yearly_id
from cache_layer import REVIEW_STATS_NAMESPACE, cache_get, cache_invalidate_prefix, cache_set, make_cache_key, scope_prefix
from db import on_commit
from models import Company, Employee, Review
from services.notifications import employee_topic, publish_safe
from services.score_service import recompute_employee_score
from utils import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    TemporalWindowViolation,
    ValidationError,
    iso_utc_now,
    parse_bool,
    parse_date_maybe,
)


log = logging.getLogger("reviews")

RATING_FIELDS = (
    "workQuality",
    "punctuality",
    "behavior",
    "teamwork",
    "communication",
    "technicalSkills",
    "problemSolving",
    "reliability",
)
RATING_MIN = 1
RATING_MAX = 10

EMPLOYMENT_TYPES = {"full-time", "part-time", "contract", "internship", "freelance"}
MODERATION_STATUSES = {"pending", "approved", "rejected"}

COMMENT_MIN = 50
COMMENT_MAX = 2000
REVIEW_WINDOW_DAYS = 15
MAX_TAGS = 20


def coerce_rating(value: Any) -> int:
    """Integer in [1, 10]; missing or non-numeric input counts as 1."""
    if isinstance(value, bool):
        return RATING_MIN
    try:
        n = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return RATING_MIN
    return max(RATING_MIN, min(RATING_MAX, n))


def normalize_ratings(raw: Any) -> dict[str, int]:
    src = raw if isinstance(raw, dict) else {}
    return {f: coerce_rating(src.get(f)) for f in RATING_FIELDS}


def average_rating(ratings: dict[str, int]) -> float:
    return sum(ratings[f] for f in RATING_FIELDS) / len(RATING_FIELDS)


def _normalize_tags(raw: Any) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = raw.split(",")
    if not isinstance(raw, list):
        raise ValidationError("tags must be a list of strings")
    out: list[str] = []
    for t in raw:
        s = str(t or "").strip()[:50]
        if s and s not in out:
            out.append(s)
    return out[:MAX_TAGS]


def _validate_comment(comment: Any) -> str:
    s = str(comment or "").strip()
    if len(s) < COMMENT_MIN:
        raise ValidationError(f"Comment must be at least {COMMENT_MIN} characters")
    if len(s) > COMMENT_MAX:
        raise ValidationError(f"Comment cannot exceed {COMMENT_MAX} characters")
    return s


def _validate_employment(details: Any) -> dict[str, str]:
    if not isinstance(details, dict):
        raise ValidationError("employmentDetails is required")

    designation = str(details.get("designation") or "").strip()
    if not designation:
        raise ValidationError("Designation is required")

    start_raw = details.get("startDate")
    start = parse_date_maybe(start_raw)
    if not start:
        raise ValidationError("startDate is required (YYYY-MM-DD)")

    end = None
    end_raw = details.get("endDate")
    if str(end_raw or "").strip():
        end = parse_date_maybe(end_raw)
        if not end:
            raise ValidationError("Invalid endDate (expected YYYY-MM-DD)")
        if end < start:
            raise ValidationError("endDate cannot be before startDate")

    emp_type = str(details.get("employmentType") or "").strip().lower()
    if emp_type not in EMPLOYMENT_TYPES:
        raise ValidationError(f"employmentType must be one of: {', '.join(sorted(EMPLOYMENT_TYPES))}")

    return {
        "designation": designation[:200],
        "department": str(details.get("department") or "").strip()[:200],
        "startDate": start.isoformat(),
        "endDate": end.isoformat() if end else "",
        "employmentType": emp_type,
        "reasonForLeaving": str(details.get("reasonForLeaving") or "").strip()[:500],
    }


def check_review_window(end_date: str, *, now: Optional[datetime] = None) -> None:
    """New reviews are accepted up to 15 days after the employment end date."""
    end = parse_date_maybe(end_date)
    if not end:
        return
    today = (now or datetime.now(timezone.utc)).date()
    days_since_end = (today - end).days
    if days_since_end > REVIEW_WINDOW_DAYS:
        raise TemporalWindowViolation(
            f"Reviews must be submitted within {REVIEW_WINDOW_DAYS} days of employment end date "
            f"({days_since_end} days have passed)"
        )


def _find_active_review(db, company_id: str, employee_id: str, *, lock: bool = False) -> Optional[Review]:
    q = (
        select(Review)
        .where(Review.companyId == company_id)
        .where(Review.employeeId == employee_id)
        .where(Review.isActive == True)  # noqa: E712
    )
    if lock:
        q = q.with_for_update()
    return db.execute(q).scalars().first()


def _apply_fields(review: Review, ratings: dict[str, int], employment: dict[str, str], comment: str, would_rehire: bool, tags: list[str]) -> None:
    for f in RATING_FIELDS:
        setattr(review, f, ratings[f])
    review.averageRating = average_rating(ratings)
    for k, v in employment.items():
        setattr(review, k, v)
    review.comment = comment
    review.wouldRehire = parse_bool(would_rehire)
    review.tagsJson = json.dumps(tags)


def review_ratings(review: Review) -> dict[str, int]:
    return {f: int(getattr(review, f) or RATING_MIN) for f in RATING_FIELDS}


def append_edit_history(review: Review, *, edited_by: str, changes: dict[str, Any], at: str = "") -> None:
    history = loads_json_list(review.editHistoryJson)
    history.append({"editedAt": at or iso_utc_now(), "editedBy": str(edited_by or ""), "changes": changes})
    review.editHistoryJson = json.dumps(history)


def invalidate_review_stats(db, employee_id: str) -> None:
    """Drop the employee's cached stats once `db` commits; a rollback leaves them alone."""
    prefix = scope_prefix(REVIEW_STATS_NAMESPACE, employee_id)
    on_commit(db, lambda: cache_invalidate_prefix(prefix))


def review_to_dict(review: Review) -> dict[str, Any]:
    return {
        "reviewId": review.reviewId,
        "companyId": review.companyId,
        "employeeId": review.employeeId,
        "ratings": review_ratings(review),
        "averageRating": float(review.averageRating or 0),
        "employmentDetails": {
            "designation": review.designation or "",
            "department": review.department or "",
            "startDate": review.startDate or "",
            "endDate": review.endDate or "",
            "employmentType": review.employmentType or "",
            "reasonForLeaving": review.reasonForLeaving or "",
        },
        "comment": review.comment or "",
        "wouldRehire": bool(review.wouldRehire),
        "tags": loads_json_list(review.tagsJson),
        "moderationStatus": review.moderationStatus or "pending",
        "moderatedBy": review.moderatedBy or "",
        "moderatedAt": review.moderatedAt or "",
        "moderationNote": review.moderationNote or "",
        "isActive": bool(review.isActive),
        "deletedAt": review.deletedAt or "",
        "editHistory": loads_json_list(review.editHistoryJson),
        "createdAt": review.createdAt or "",
        "updatedAt": review.updatedAt or "",
    }


def submit_review(
    db,
    *,
    company_id: str,
    employee_id: str,
    ratings: Any,
    employment_details: Any,
    comment: Any,
    would_rehire: Any = False,
    tags: Any = None,
    actor_user_id: str,
    now: Optional[datetime] = None,
    notifier=None,
) -> Review:
    """
    Create or edit the single active review a company holds for an employee.

    A create is gated by the employment-window rule; an edit is not. Either way the
    review (re)enters moderation as `pending`.
    """
    company_id = str(company_id or "").strip()
    employee_id = str(employee_id or "").strip()
    if not company_id or not employee_id:
        raise ValidationError("companyId and employeeId are required")

    company = db.execute(select(Company).where(Company.companyId == company_id)).scalar_one_or_none()
    if not company:
        raise NotFoundError("Company not found")
    emp = db.execute(select(Employee).where(Employee.employeeId == employee_id)).scalar_one_or_none()
    if not emp or not emp.isActive:
        raise NotFoundError("Employee not found")

    norm_ratings = normalize_ratings(ratings)
    employment = _validate_employment(employment_details)
    text = _validate_comment(comment)
    tag_list = _normalize_tags(tags)
    at = iso_utc_now()

    review = _find_active_review(db, company_id, employee_id, lock=True)
    created = False
    if review is None:
        check_review_window(employment["endDate"], now=now)

        candidate = Review(
            reviewId=yearly_id(db, kind="REV", id_column=Review.reviewId),
            companyId=company_id,
            employeeId=employee_id,
            moderationStatus="pending",
            isActive=True,
            editHistoryJson="[]",
            createdAt=at,
            createdBy=str(actor_user_id or ""),
            updatedAt=at,
        )
        _apply_fields(candidate, norm_ratings, employment, text, would_rehire, tag_list)
        try:
            with db.begin_nested():
                db.add(candidate)
            review = candidate
            created = True
        except IntegrityError:
            # Lost the race against a concurrent create for the same pair: edit the winner.
            log.info("concurrent review create company=%s employee=%s; continuing as edit", company_id, employee_id)
            review = _find_active_review(db, company_id, employee_id, lock=True)
            if review is None:
                raise ConflictError("Review changed concurrently, retry")

    previous_status = str(review.moderationStatus or "pending")
    if not created:
        _apply_fields(review, norm_ratings, employment, text, would_rehire, tag_list)
        changes: dict[str, Any] = {"ratings": norm_ratings, "comment": text}
        if previous_status != "pending":
            changes["moderationStatus"] = {"from": previous_status, "to": "pending"}
        append_edit_history(review, edited_by=actor_user_id, changes=changes, at=at)
        review.moderationStatus = "pending"
        review.moderatedBy = ""
        review.moderatedAt = ""
        review.moderationNote = ""
        review.updatedAt = at

    db.flush()
    invalidate_review_stats(db, employee_id)

    if review.moderationStatus == "approved" or previous_status == "approved":
        recompute_employee_score(db, employee_id)

    append_audit(
        db,
        entityType="REVIEW",
        entityId=review.reviewId,
        action="review_created" if created else "review_updated",
        actor=actor_user_id,
        at=at,
        meta={"companyId": company_id, "employeeId": employee_id, "reviewId": review.reviewId},
    )
    publish_safe(
        notifier,
        employee_topic(employee_id),
        {"type": "review_update", "event": "created" if created else "updated", "reviewId": review.reviewId},
    )
    log.info("review %s id=%s company=%s employee=%s", "created" if created else "updated", review.reviewId, company_id, employee_id)
    return review


def delete_review(db, *, review_id: str, requesting_company_id: str, actor_user_id: str, notifier=None) -> Review:
    review = db.execute(select(Review).where(Review.reviewId == str(review_id or "")).with_for_update()).scalar_one_or_none()
    if not review or not review.isActive:
        raise NotFoundError("Review not found")
    if review.companyId != str(requesting_company_id or ""):
        raise AuthorizationError("Not authorized to delete this review")

    at = iso_utc_now()
    review.isActive = False
    review.deletedAt = at
    review.updatedAt = at
    db.flush()
    invalidate_review_stats(db, review.employeeId)

    recompute_employee_score(db, review.employeeId)

    append_audit(
        db,
        entityType="REVIEW",
        entityId=review.reviewId,
        action="review_deleted",
        actor=actor_user_id,
        at=at,
        meta={"companyId": review.companyId, "employeeId": review.employeeId},
    )
    publish_safe(notifier, employee_topic(review.employeeId), {"type": "review_update", "event": "deleted", "reviewId": review.reviewId})
    return review


def _empty_stats(employee_id: str, moderation_status: str) -> dict[str, Any]:
    return {
        "employeeId": employee_id,
        "moderationStatus": moderation_status or "all",
        "totalReviews": 0,
        "averages": {f: 0.0 for f in RATING_FIELDS},
        "overallAverage": 0.0,
        "wouldRehireCount": 0,
        "wouldRehireRate": 0.0,
    }


def get_review_stats(db, employee_id: str, *, moderation_status: Optional[str] = None) -> dict[str, Any]:
    """Aggregates over active reviews; callers pick the moderation filter (None = all)."""
    status = str(moderation_status or "").strip().lower()
    if status and status not in MODERATION_STATUSES:
        raise ValidationError("Invalid moderation status filter")

    key = make_cache_key(REVIEW_STATS_NAMESPACE, scope=[employee_id], params={"status": status})
    cached = cache_get(key)
    if isinstance(cached, dict):
        return cached

    q = select(Review).where(Review.employeeId == employee_id).where(Review.isActive == True)  # noqa: E712
    if status:
        q = q.where(Review.moderationStatus == status)
    rows = db.execute(q).scalars().all()

    if not rows:
        out = _empty_stats(employee_id, status)
    else:
        n = len(rows)
        rehire = sum(1 for r in rows if r.wouldRehire)
        out = {
            "employeeId": employee_id,
            "moderationStatus": status or "all",
            "totalReviews": n,
            "averages": {f: round(sum(int(getattr(r, f) or 0) for r in rows) / n, 2) for f in RATING_FIELDS},
            "overallAverage": round(sum(float(r.averageRating or 0) for r in rows) / n, 2),
            "wouldRehireCount": rehire,
            "wouldRehireRate": round(rehire / n, 4),
        }
    cache_set(key, out)
    return out


def _paged(db, q, count_q, *, page: int, limit: int) -> dict[str, Any]:
    total = int(db.execute(count_q).scalar_one() or 0)
    rows = db.execute(q.order_by(Review.createdAt.desc()).offset((page - 1) * limit).limit(limit)).scalars().all()
    return {"items": [review_to_dict(r) for r in rows], "total": total, "page": page, "limit": limit}


def list_employee_reviews(db, employee_id: str, *, moderation_status: Optional[str] = None, page: int = 1, limit: int = 20) -> dict[str, Any]:
    conds = [Review.employeeId == employee_id, Review.isActive == True]  # noqa: E712
    if moderation_status:
        conds.append(Review.moderationStatus == moderation_status)
    return _paged(db, select(Review).where(*conds), select(func.count(Review.reviewId)).where(*conds), page=page, limit=limit)


def list_company_reviews(db, company_id: str, *, page: int = 1, limit: int = 20) -> dict[str, Any]:
    conds = [Review.companyId == company_id, Review.isActive == True]  # noqa: E712
    return _paged(db, select(Review).where(*conds), select(func.count(Review.reviewId)).where(*conds), page=page, limit=limit)
