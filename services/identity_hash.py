from __future__ import annotations

import re
import unicodedata
from typing import Any

from utils import ApiError, ValidationError, parse_date_maybe, sha256_hex


_NON_ALPHA_RE = re.compile(r"[^a-z]+")


def parse_date_yyyy_mm_dd(value: Any) -> str:
    d = parse_date_maybe(value)
    return d.isoformat() if d else ""


def normalize_name(value: Any) -> str:
    s = unicodedata.normalize("NFKD", str(value or "")).encode("ascii", "ignore").decode("ascii")
    return _NON_ALPHA_RE.sub("", s.lower())


def employee_identity_hash(*, first_name: Any, last_name: Any, dob: Any, pepper: str) -> str:
    """
    Stable identity key for an employee: normalized full name + date of birth.

    Two registrations of the same person by different companies land on the same hash.
    """
    first = normalize_name(first_name)
    last = normalize_name(last_name)
    d = parse_date_yyyy_mm_dd(dob)
    if not first or not last:
        raise ValidationError("firstName and lastName are required")
    if not d:
        raise ValidationError("Invalid dateOfBirth (expected YYYY-MM-DD)")
    if not str(pepper or "").strip():
        raise ApiError("INTERNAL", "Missing server pepper for identity hashing")
    return sha256_hex(f"{first}|{last}|{d}|{str(pepper).strip()}")
