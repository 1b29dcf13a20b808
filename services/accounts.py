from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from actions.helpers import yearly_id
from models import Company, User
from passwords import hash_password
from utils import ConflictError, Role, ValidationError, iso_utc_now, new_uuid


log = logging.getLogger("audit")

COMPANY_NAME_MAX = 200


def find_user_by_email(db, email: Any) -> Optional[User]:
    email_lc = str(email or "").strip().lower()
    if not email_lc or "@" not in email_lc:
        return None
    return db.execute(select(User).where(func.lower(User.email) == email_lc)).scalars().first()


def _clean_email(email: Any) -> str:
    email_lc = str(email or "").strip().lower()
    if not email_lc or "@" not in email_lc or len(email_lc) > 254:
        raise ValidationError("A valid email is required")
    return email_lc


def _add_user(db, user: User) -> None:
    # Unique index on users.email backs the pre-check against a concurrent registration.
    try:
        with db.begin_nested():
            db.add(user)
    except IntegrityError:
        raise ConflictError("Email already registered")


def company_to_dict(company: Company) -> dict[str, Any]:
    return {
        "companyId": company.companyId,
        "companyName": company.companyName or "",
        "industry": company.industry or "",
        "userId": company.userId or "",
        "verified": bool(company.verified),
        "createdAt": company.createdAt or "",
    }


def register_company(
    db,
    *,
    company_name: Any,
    email: Any,
    password: Any,
    industry: Any = "",
    full_name: Any = "",
) -> tuple[Company, User]:
    """
    Create a Company and the COMPANY login that owns it.

    The email must be unused by any account; the password goes through the same
    policy as every other login.
    """
    name = " ".join(str(company_name or "").split())
    if not name:
        raise ValidationError("companyName is required")
    if len(name) > COMPANY_NAME_MAX:
        raise ValidationError(f"companyName cannot exceed {COMPANY_NAME_MAX} characters")
    email_lc = _clean_email(email)
    password_hash = hash_password(str(password or ""))

    if find_user_by_email(db, email_lc):
        raise ConflictError("Email already registered")

    now = iso_utc_now()
    user_id = "USR-" + new_uuid()
    company = Company(
        companyId=yearly_id(db, kind="CMP", id_column=Company.companyId),
        companyName=name,
        industry=str(industry or "").strip()[:200],
        userId=user_id,
        verified=False,
        createdAt=now,
        updatedAt=now,
    )
    user = User(
        userId=user_id,
        email=email_lc,
        fullName=str(full_name or "").strip()[:200] or name,
        passwordHash=password_hash,
        role=Role.COMPANY.value,
        profileId=company.companyId,
        status="ACTIVE",
        createdAt=now,
        createdBy="SELF_REGISTER",
        updatedAt=now,
        updatedBy="SELF_REGISTER",
    )
    _add_user(db, user)
    db.add(company)
    db.flush()
    return company, user


def seed_admin_user(db, *, email: Any, password: Any, full_name: Any = "") -> bool:
    """Create the ADMIN login if no account uses `email` yet. True when a row was added."""
    email_lc = _clean_email(email)
    if find_user_by_email(db, email_lc):
        return False

    now = iso_utc_now()
    _add_user(
        db,
        User(
            userId="USR-" + new_uuid(),
            email=email_lc,
            fullName=str(full_name or "").strip()[:200] or "Administrator",
            passwordHash=hash_password(str(password or "")),
            role=Role.ADMIN.value,
            profileId="",
            status="ACTIVE",
            createdAt=now,
            createdBy="SYSTEM_INIT",
            updatedAt=now,
            updatedBy="SYSTEM_INIT",
        ),
    )
    log.info("seeded admin account email=%s", email_lc)
    return True
