from __future__ import annotations

from typing import Any, Callable

from utils import ApiError, AuthContext


Handler = Callable[[dict, "AuthContext | None", Any, Any], Any]

_HANDLERS: dict[str, Handler] = {}


def _load_handlers() -> dict[str, Handler]:
    # Imported lazily: services import actions.helpers, so this package must stay import-light.
    from actions import admin, auth_actions, companies, documents, employees, reviews

    return {
        "LOGIN": auth_actions.login,
        "LOGOUT": auth_actions.logout,
        "SESSION_VALIDATE": auth_actions.session_validate,
        "COMPANY_REGISTER": companies.company_register,
        "COMPANY_ANALYTICS": companies.company_analytics_get,
        "EMPLOYEE_ANALYTICS": companies.employee_analytics_get,
        "EMPLOYEE_CREATE": employees.employee_create,
        "EMPLOYEE_GET": employees.employee_get,
        "EMPLOYEES_LIST": employees.employees_list,
        "EMPLOYEE_DEACTIVATE": employees.employee_deactivate,
        "EMPLOYEE_SCORE_GET": employees.employee_score_get,
        "EMPLOYEE_SCORE_RECOMPUTE": employees.employee_score_recompute,
        "REVIEW_SUBMIT": reviews.review_submit,
        "REVIEW_DELETE": reviews.review_delete,
        "REVIEW_STATS": reviews.review_stats,
        "REVIEWS_FOR_EMPLOYEE": reviews.reviews_for_employee,
        "REVIEWS_FOR_COMPANY": reviews.reviews_for_company,
        "REVIEW_MODERATE": reviews.review_moderate,
        "REVIEWS_ADMIN_LIST": reviews.reviews_admin_list,
        "ADMIN_STATS": admin.admin_stats,
        "ADMIN_USER_TOGGLE_STATUS": admin.admin_user_toggle_status,
        "AUDIT_LOGS_QUERY": admin.audit_logs_query,
        "DOCUMENTS_LIST": documents.documents_list,
        "DOCUMENTS_PENDING_LIST": documents.documents_pending_list,
        "DOCUMENT_VERIFY": documents.document_verify,
        "DOCUMENT_DELETE": documents.document_delete,
    }


def dispatch(action: str, data: dict, auth: AuthContext | None, db, cfg):
    if not _HANDLERS:
        _HANDLERS.update(_load_handlers())
    fn = _HANDLERS.get(str(action or "").upper().strip())
    if fn is None:
        raise ApiError("BAD_REQUEST", f"Unknown action: {action}")
    if not isinstance(data, dict):
        raise ApiError("BAD_REQUEST", "data must be a JSON object")
    return fn(data, auth, db, cfg)
