from __future__ import annotations

import logging
import math
from typing import Any

from sqlalchemy import func, select

from models import Document, Employee, Review
from utils import NotFoundError, iso_utc_now


log = logging.getLogger("scores")

VERIFIED_BADGE_THRESHOLD = 80


def round_half_up(value: float) -> int:
    return int(math.floor(float(value) + 0.5))


def _lock_employee(db, employee_id: str) -> Employee:
    emp = (
        db.execute(select(Employee).where(Employee.employeeId == employee_id).with_for_update())
        .scalars()
        .first()
    )
    if not emp:
        raise NotFoundError("Employee not found")
    return emp


def score_snapshot(emp: Employee, *, total_documents: int | None = None) -> dict[str, Any]:
    out = {
        "employeeId": emp.employeeId,
        "overallScore": int(emp.overallScore or 0),
        "scoreState": str(emp.scoreState or "UNSCORED"),
        "approvedReviewCount": int(emp.approvedReviewCount or 0),
        "verificationPercentage": int(emp.verificationPercentage or 0),
        "documentsVerified": int(emp.documentsVerified or 0),
        "verified": bool(emp.verified),
    }
    if total_documents is not None:
        out["totalDocuments"] = int(total_documents)
    return out


def recompute_employee_score(db, employee_id: str) -> dict[str, Any]:
    """
    Recompute the derived trust fields of one employee from current rows.

    The only writer of overallScore / scoreState / approvedReviewCount /
    verificationPercentage / documentsVerified / verified. Reads aggregates, never
    applies deltas, so repeated or concurrent calls converge on the same values.
    """
    emp = _lock_employee(db, employee_id)
    db.flush()

    count, mean = db.execute(
        select(func.count(Review.reviewId), func.avg(Review.averageRating))
        .where(Review.employeeId == employee_id)
        .where(Review.isActive == True)  # noqa: E712
        .where(Review.moderationStatus == "approved")
    ).one()
    count = int(count or 0)

    if count > 0:
        emp.overallScore = max(0, min(100, round_half_up(float(mean) * 10)))
        emp.scoreState = "SCORED"
    else:
        emp.overallScore = 0
        emp.scoreState = "UNSCORED"
    emp.approvedReviewCount = count

    total_docs = int(db.execute(select(func.count(Document.documentId)).where(Document.employeeId == employee_id)).scalar_one() or 0)
    verified_docs = int(
        db.execute(
            select(func.count(Document.documentId))
            .where(Document.employeeId == employee_id)
            .where(Document.verificationStatus == "verified")
        ).scalar_one()
        or 0
    )

    pct = round_half_up(verified_docs / total_docs * 100) if total_docs > 0 else 0
    emp.verificationPercentage = pct
    emp.documentsVerified = verified_docs
    emp.verified = pct >= VERIFIED_BADGE_THRESHOLD
    emp.updatedAt = iso_utc_now()
    db.flush()

    log.info(
        "recompute employee=%s score=%s state=%s reviews=%s verification=%s%%",
        employee_id,
        emp.overallScore,
        emp.scoreState,
        count,
        pct,
    )
    return score_snapshot(emp, total_documents=total_docs)


def get_employee_score(db, employee_id: str) -> dict[str, Any]:
    emp = db.execute(select(Employee).where(Employee.employeeId == employee_id)).scalar_one_or_none()
    if not emp:
        raise NotFoundError("Employee not found")
    return score_snapshot(emp)
