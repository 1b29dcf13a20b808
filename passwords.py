from __future__ import annotations

import re

from werkzeug.security import check_password_hash, generate_password_hash

from utils import ValidationError


MIN_LENGTH = 12
MAX_LENGTH = 256

# (pattern, what is missing)
_CHARACTER_CLASSES = (
    (re.compile(r"[a-z]"), "lowercase letter"),
    (re.compile(r"[A-Z]"), "uppercase letter"),
    (re.compile(r"\d"), "number"),
    (re.compile(r"[^A-Za-z0-9]"), "special character"),
)


def validate_password_policy(password: str) -> str:
    pwd = str(password or "")
    if not pwd:
        raise ValidationError("Missing password")
    if len(pwd) < MIN_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_LENGTH} characters")
    if len(pwd) > MAX_LENGTH:
        raise ValidationError("Password is too long")
    missing = [label for rx, label in _CHARACTER_CLASSES if not rx.search(pwd)]
    if missing:
        raise ValidationError("Password needs at least one " + ", ".join(missing))
    return pwd


def hash_password(password: str) -> str:
    return generate_password_hash(validate_password_policy(password), method="scrypt", salt_length=16)


def verify_password(password: str, password_hash: str) -> bool:
    """False for an empty or malformed stored hash."""
    if not password_hash:
        return False
    try:
        return check_password_hash(str(password_hash), str(password or ""))
    except ValueError:
        return False
