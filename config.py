from __future__ import annotations

import os


_DEV_PEPPER = "hireshield-dev-pepper"


def _env_str(name: str, default: str = "") -> str:
    return str(os.getenv(name, default) or default).strip()


def _env_int(name: str, default: int) -> int:
    try:
        return int(str(os.getenv(name, "") or "").strip() or default)
    except Exception:
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = str(os.getenv(name, "") or "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "y", "on"}


def _env_csv(name: str, default: str = "") -> list[str]:
    raw = _env_str(name, default)
    return [p.strip() for p in raw.split(",") if p.strip()]


class Config:
    """
    Process configuration, read from the environment once at startup.

    `.env` is loaded by create_app() (python-dotenv) before this is built.
    """

    def __init__(self):
        self.APP_ENV = _env_str("APP_ENV", "development").lower()
        self.APP_VERSION = _env_str("APP_VERSION", "0.1.0")
        self.LOG_LEVEL = _env_str("LOG_LEVEL", "INFO").upper()

        self.HOST = _env_str("HOST", "0.0.0.0")
        self.PORT = _env_int("PORT", 5002)

        self.DATABASE_URL = _env_str("DATABASE_URL", "sqlite:///./hireshield.db")
        self.DB_POOL_SIZE = max(1, _env_int("DB_POOL_SIZE", 5))
        self.DB_MAX_OVERFLOW = max(0, _env_int("DB_MAX_OVERFLOW", 10))

        self.UPLOAD_DIR = _env_str("UPLOAD_DIR", "./uploads")
        self.MAX_DOC_UPLOAD_MB = max(1, _env_int("MAX_DOC_UPLOAD_MB", 10))

        self.SESSION_TTL_MINUTES = max(5, _env_int("SESSION_TTL_MINUTES", 720))
        self.ALLOWED_ORIGINS = _env_csv("ALLOWED_ORIGINS", "http://localhost:5173")

        # Server-side pepper for identity hashes (name + DOB).
        self.PEPPER = _env_str("PEPPER", _DEV_PEPPER)

        # "<count>/<seconds>"
        self.RATE_LIMIT_LOGIN = _env_str("RATE_LIMIT_LOGIN", "10/60")
        self.RATE_LIMIT_GLOBAL = _env_str("RATE_LIMIT_GLOBAL", "600/60")
        self.RATE_LIMIT_DEFAULT = _env_str("RATE_LIMIT_DEFAULT", "120/60")
        self.RATE_LIMIT_ENABLED = _env_bool("RATE_LIMIT_ENABLED", True)

        self.ENABLE_COMPRESSION = _env_bool("ENABLE_COMPRESSION", True)
        self.COMPRESSION_MIN_SIZE = max(0, _env_int("COMPRESSION_MIN_SIZE", 500))
        self.COMPRESSION_LEVEL = max(1, min(9, _env_int("COMPRESSION_LEVEL", 6)))

        self.NOTIFICATION_BACKLOG = max(1, _env_int("NOTIFICATION_BACKLOG", 200))
        self.NOTIFICATION_MAX_TOPICS = max(1, _env_int("NOTIFICATION_MAX_TOPICS", 1000))

        # Seeds one ADMIN login at startup when both are set; skipped if the email exists.
        self.ADMIN_EMAIL = _env_str("ADMIN_EMAIL", "").lower()
        self.ADMIN_PASSWORD = str(os.getenv("ADMIN_PASSWORD", "") or "")
        self.ADMIN_NAME = _env_str("ADMIN_NAME", "Administrator")

    @property
    def IS_PRODUCTION(self) -> bool:
        return self.APP_ENV in {"prod", "production"}

    def validate(self) -> None:
        if not self.DATABASE_URL:
            raise RuntimeError("Missing DATABASE_URL")
        if self.IS_PRODUCTION:
            if not self.PEPPER or self.PEPPER == _DEV_PEPPER or len(self.PEPPER) < 16:
                raise RuntimeError("PEPPER must be set (>= 16 chars) in production")
            if self.DATABASE_URL.startswith("sqlite"):
                raise RuntimeError("SQLite is not supported in production")
