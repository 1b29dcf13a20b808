from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy import func, select

from models import Company, Document, Employee, Review
from services.review_service import RATING_FIELDS, review_to_dict
from services.score_service import round_half_up
from utils import NotFoundError


TREND_MONTHS = 6


def _count(db, column, *conds) -> int:
    return int(db.execute(select(func.count(column)).where(*conds)).scalar_one() or 0)


def _trend_months(now: datetime, months: int) -> list[str]:
    first = now.replace(day=1)
    return [(first - relativedelta(months=i)).strftime("%Y-%m") for i in range(months - 1, -1, -1)]


def company_analytics(db, company_id: str, *, now: Optional[datetime] = None, months: int = TREND_MONTHS) -> dict[str, Any]:
    """Dashboard numbers for one company, over its active reviews."""
    company = db.execute(select(Company).where(Company.companyId == str(company_id or ""))).scalar_one_or_none()
    if not company:
        raise NotFoundError("Company not found")

    active = [Review.companyId == company.companyId, Review.isActive == True]  # noqa: E712
    by_status = {
        status: _count(db, Review.reviewId, *active, Review.moderationStatus == status)
        for status in ("pending", "approved", "rejected")
    }
    employees_reviewed = int(
        db.execute(select(func.count(func.distinct(Review.employeeId))).where(*active)).scalar_one() or 0
    )
    avg = db.execute(select(func.avg(Review.averageRating)).where(*active)).scalar_one()

    # createdAt is ISO-8601 text, so the first seven characters are the YYYY-MM bucket.
    labels = _trend_months(now or datetime.now(timezone.utc), months)
    month_col = func.substr(Review.createdAt, 1, 7)
    rows = db.execute(
        select(month_col, func.count(Review.reviewId)).where(*active, month_col >= labels[0]).group_by(month_col)
    ).all()
    counts = {str(m): int(n) for m, n in rows}

    recent = (
        db.execute(select(Review).where(*active).order_by(Review.createdAt.desc()).limit(3)).scalars().all()
    )
    return {
        "companyId": company.companyId,
        "companyName": company.companyName or "",
        "verified": bool(company.verified),
        "totalReviews": sum(by_status.values()),
        "reviewsByStatus": by_status,
        "employeesReviewed": employees_reviewed,
        "averageRating": round(float(avg or 0), 2),
        "reviewTrend": [{"month": m, "count": counts.get(m, 0)} for m in labels],
        "recentReviews": [review_to_dict(r) for r in recent],
    }


def employee_analytics(db, employee_id: str) -> dict[str, Any]:
    """Profile numbers for one employee; only approved reviews are counted."""
    emp = db.execute(select(Employee).where(Employee.employeeId == str(employee_id or ""))).scalar_one_or_none()
    if not emp:
        raise NotFoundError("Employee not found")

    approved = (
        db.execute(
            select(Review)
            .where(Review.employeeId == emp.employeeId)
            .where(Review.isActive == True)  # noqa: E712
            .where(Review.moderationStatus == "approved")
            .order_by(Review.createdAt.desc())
        )
        .scalars()
        .all()
    )
    n = len(approved)
    breakdown = {
        f: round_half_up(sum(int(getattr(r, f) or 0) for r in approved) / n * 10) if n else 0 for f in RATING_FIELDS
    }
    return {
        "employeeId": emp.employeeId,
        "totalReviews": n,
        "totalDocuments": _count(db, Document.documentId, Document.employeeId == emp.employeeId),
        "verifiedDocuments": _count(
            db, Document.documentId, Document.employeeId == emp.employeeId, Document.verificationStatus == "verified"
        ),
        "overallScore": int(emp.overallScore or 0),
        "scoreState": emp.scoreState or "UNSCORED",
        "verificationPercentage": int(emp.verificationPercentage or 0),
        "scoreBreakdown": breakdown,
        "recentReviews": [review_to_dict(r) for r in approved[:5]],
    }
