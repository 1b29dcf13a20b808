from __future__ import annotations

from flask import Blueprint, current_app
from sqlalchemy import text

from cache_layer import cache_stats
from db import SessionLocal, get_pool_stats
from utils import err, iso_utc_now, ok


core_bp = Blueprint("core", __name__)


def _ping_db() -> bool:
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
        return True
    except Exception:
        return False


@core_bp.get("/health")
def health():
    """Lightweight health check (process alive)."""
    cfg = current_app.config["CFG"]
    return ok(
        {
            "status": "ok",
            "time": iso_utc_now(),
            "version": cfg.APP_VERSION,
            "db_pool": get_pool_stats(),
            "cache": cache_stats(),
        }
    )[0]


@core_bp.get("/ready")
def ready():
    """Readiness check for load balancers."""
    cfg = current_app.config["CFG"]
    if not _ping_db():
        return err("STORAGE_ERROR", "Database not reachable", http_status=503)
    return ok({"status": "ok", "time": iso_utc_now(), "version": cfg.APP_VERSION})[0]


@core_bp.get("/")
def index():
    return ok(
        {
            "status": "ok",
            "message": "HireShield backend is running. Use GET /health and POST /api for actions.",
            "endpoints": {"health": "/health", "ready": "/ready", "api": "/api", "upload": "/api/documents/upload"},
        }
    )[0]
