from __future__ import annotations

from actions.auth_actions import start_session
from actions.helpers import append_audit
from auth import assert_employee_visible, resolve_actor
from services.accounts import company_to_dict, register_company
from services.analytics_service import company_analytics, employee_analytics
from utils import AuthContext, Role, ValidationError


def company_register(data, auth: AuthContext | None, db, cfg):
    data = data or {}
    company, user = register_company(
        db,
        company_name=data.get("companyName"),
        email=data.get("email"),
        password=data.get("password"),
        industry=data.get("industry"),
        full_name=data.get("contactName"),
    )
    append_audit(
        db,
        entityType="COMPANY",
        entityId=company.companyId,
        action="company_registered",
        actor=user.userId,
        at=company.createdAt,
        meta={"companyName": company.companyName, "email": user.email, "industry": company.industry},
    )
    session = start_session(db, user, cfg)
    return {"company": company_to_dict(company), **session}


def company_analytics_get(data, auth: AuthContext | None, db, cfg):
    actor = resolve_actor(db, auth)
    if actor.role is Role.COMPANY:
        company_id = actor.companyId
    else:
        company_id = str((data or {}).get("companyId") or "").strip()
    if not company_id:
        raise ValidationError("Missing companyId")
    return company_analytics(db, company_id)


def employee_analytics_get(data, auth: AuthContext | None, db, cfg):
    actor = resolve_actor(db, auth)
    employee_id = str((data or {}).get("employeeId") or actor.employeeId or "").strip()
    if not employee_id:
        raise ValidationError("Missing employeeId")
    assert_employee_visible(db, actor, employee_id)
    return employee_analytics(db, employee_id)
