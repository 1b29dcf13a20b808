from __future__ import annotations

import hashlib
import json
import re
import threading
import time
import uuid
from collections import deque
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional

from flask import jsonify


_DEFAULT_HTTP_STATUS = {
    "BAD_REQUEST": 400,
    "AUTH_INVALID": 401,
    "FORBIDDEN": 403,
    "NOT_FOUND": 404,
    "CONFLICT": 409,
    "REVIEW_WINDOW_CLOSED": 422,
    "RATE_LIMITED": 429,
    "INTERNAL": 500,
    "STORAGE_ERROR": 503,
}


class ApiError(Exception):
    def __init__(self, code: str, message: str, http_status: Optional[int] = None):
        super().__init__(message)
        self.code = str(code or "INTERNAL")
        self.message = str(message or "")
        self.http_status = int(http_status or _DEFAULT_HTTP_STATUS.get(self.code, 400))


class ValidationError(ApiError):
    def __init__(self, message: str):
        super().__init__("BAD_REQUEST", message, http_status=400)


class TemporalWindowViolation(ValidationError):
    def __init__(self, message: str):
        super().__init__(message)
        self.code = "REVIEW_WINDOW_CLOSED"
        self.http_status = 422


class AuthorizationError(ApiError):
    def __init__(self, message: str = "Not authorized"):
        super().__init__("FORBIDDEN", message, http_status=403)


class NotFoundError(ApiError):
    def __init__(self, message: str = "Not found"):
        super().__init__("NOT_FOUND", message, http_status=404)


class ConflictError(ApiError):
    def __init__(self, message: str):
        super().__init__("CONFLICT", message, http_status=409)


class StorageError(ApiError):
    def __init__(self, message: str = "Storage unavailable"):
        super().__init__("STORAGE_ERROR", message, http_status=503)


class Role(str, Enum):
    ADMIN = "ADMIN"
    COMPANY = "COMPANY"
    EMPLOYEE = "EMPLOYEE"


@dataclass
class AuthContext:
    valid: bool
    userId: str
    email: str
    role: str
    expiresAt: str


def normalize_role(value: Any) -> Optional[str]:
    s = str(value or "").strip().upper()
    if not s:
        return None
    try:
        return Role(s).value
    except ValueError:
        return None


def iso_utc_now() -> str:
    return to_iso_utc(datetime.now(timezone.utc))


def to_iso_utc(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_datetime_maybe(value: Any) -> Optional[datetime]:
    s = str(value or "").strip()
    if not s:
        return None
    try:
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        dt = datetime.fromisoformat(s)
    except Exception:
        try:
            from dateutil import parser as dt_parser

            dt = dt_parser.parse(s)
        except Exception:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_date_maybe(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = str(value or "").strip()
    if not s:
        return None
    if re.fullmatch(r"\d{4}-\d{2}-\d{2}", s):
        try:
            return date.fromisoformat(s)
        except ValueError:
            return None
    dt = parse_datetime_maybe(s)
    return dt.date() if dt else None


def new_uuid() -> str:
    return str(uuid.uuid4())


def sha256_hex(value: str) -> str:
    return hashlib.sha256(str(value or "").encode("utf-8")).hexdigest()


def now_monotonic() -> float:
    return time.monotonic()


TRUTHY = {"1", "true", "yes", "y", "on"}


def parse_bool(value: Any, default: bool = False) -> bool:
    """JSON booleans pass through; strings and numbers use the same words as the env flags."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    raw = str(value).strip().lower()
    if not raw:
        return default
    return raw in TRUTHY


_SAFE_NAME_RE = re.compile(r"[^A-Za-z0-9._-]+")


def sanitize_filename(name: str) -> str:
    base = str(name or "").replace("\\", "/").split("/")[-1].strip()
    base = _SAFE_NAME_RE.sub("_", base).strip("._")
    return (base or "file")[:120]


def parse_json_body(raw: str) -> dict[str, Any]:
    s = str(raw or "").strip()
    if not s:
        raise ApiError("BAD_REQUEST", "Empty body")
    try:
        body = json.loads(s)
    except Exception:
        raise ApiError("BAD_REQUEST", "Invalid JSON body")
    if not isinstance(body, dict):
        raise ApiError("BAD_REQUEST", "Body must be a JSON object")
    return body


_REDACT_KEYS = {"password", "newpassword", "token", "sessiontoken", "documentnumber", "dateofbirth"}


def redact_for_audit(value: Any) -> Any:
    if isinstance(value, dict):
        out = {}
        for k, v in value.items():
            if str(k).replace("_", "").lower() in _REDACT_KEYS:
                out[k] = "***"
            else:
                out[k] = redact_for_audit(v)
        return out
    if isinstance(value, list):
        return [redact_for_audit(v) for v in value[:50]]
    if isinstance(value, str) and len(value) > 500:
        return value[:500] + "..."
    return value


def ok(data: Any):
    return jsonify({"ok": True, "data": data, "error": None}), 200


def err(code: str, message: str, http_status: int = 400):
    return jsonify({"ok": False, "data": None, "error": {"code": code, "message": message}}), http_status


class SimpleRateLimiter:
    """Sliding-window limiter keyed by arbitrary strings. Limits are written "<count>/<seconds>"."""

    def __init__(self, enabled: bool = True):
        self._enabled = bool(enabled)
        self._hits: dict[str, deque] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _parse(spec: str) -> tuple[int, int]:
        try:
            count_s, window_s = str(spec or "").split("/", 1)
            return max(1, int(count_s)), max(1, int(window_s))
        except Exception:
            return 60, 60

    def check(self, key: str, spec: str) -> None:
        if not self._enabled:
            return
        limit, window = self._parse(spec)
        now = time.monotonic()
        with self._lock:
            q = self._hits.setdefault(key, deque())
            while q and now - q[0] > window:
                q.popleft()
            if len(q) >= limit:
                raise ApiError("RATE_LIMITED", "Too many requests, slow down", http_status=429)
            q.append(now)
