from __future__ import annotations

import atexit
import logging
import os

from dotenv import load_dotenv
from flask import Flask, g, request
from flask_cors import CORS

from app.middlewares.compression import init_compression
from app.routes.api import api_bp
from app.routes.core import core_bp
from app.routes.documents import documents_bp
from config import Config
from db import Base, SessionLocal, init_engine
from services.accounts import seed_admin_user
from services.notifications import NotificationHub
from utils import SimpleRateLimiter, ValidationError, err, now_monotonic


def _configure_logging(level: str):
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def _init_notifications(app: Flask, cfg: Config) -> NotificationHub:
    hub = NotificationHub(max_per_topic=cfg.NOTIFICATION_BACKLOG, max_topics=cfg.NOTIFICATION_MAX_TOPICS)
    app.extensions["notifications"] = hub
    atexit.register(hub.close)
    return hub


def _bootstrap_admin(cfg: Config) -> None:
    if not (cfg.ADMIN_EMAIL and cfg.ADMIN_PASSWORD):
        return
    db0 = SessionLocal()
    try:
        seed_admin_user(db0, email=cfg.ADMIN_EMAIL, password=cfg.ADMIN_PASSWORD, full_name=cfg.ADMIN_NAME)
        db0.commit()
    except ValidationError as e:
        db0.rollback()
        raise RuntimeError(f"ADMIN_EMAIL/ADMIN_PASSWORD rejected: {e.message}") from e
    finally:
        db0.close()


def create_app() -> Flask:
    load_dotenv()
    cfg = Config()
    cfg.validate()
    _configure_logging(cfg.LOG_LEVEL)

    engine = init_engine(cfg.DATABASE_URL, pool_size=cfg.DB_POOL_SIZE, max_overflow=cfg.DB_MAX_OVERFLOW)

    import models  # noqa: F401  (register tables on Base.metadata)

    Base.metadata.create_all(bind=engine)
    _bootstrap_admin(cfg)
    os.makedirs(cfg.UPLOAD_DIR, exist_ok=True)

    app = Flask(__name__)
    app.config["CFG"] = cfg
    # Hard cap at the WSGI layer; the upload route reports the friendly limit.
    app.config["MAX_CONTENT_LENGTH"] = (cfg.MAX_DOC_UPLOAD_MB + 1) * 1024 * 1024

    CORS(
        app,
        origins=cfg.ALLOWED_ORIGINS,
        supports_credentials=False,
        allow_headers=["Content-Type", "Authorization", "X-Request-ID", "X-Session-Token"],
        expose_headers=["X-Request-ID"],
    )

    app.extensions["rate_limiter"] = SimpleRateLimiter(enabled=cfg.RATE_LIMIT_ENABLED)
    _init_notifications(app, cfg)

    @app.before_request
    def _before():
        g.request_id = str(request.headers.get("X-Request-ID") or "").strip()[:64] or os.urandom(8).hex()
        g.start_ts = now_monotonic()

    @app.after_request
    def _after(resp):
        resp.headers["X-Request-ID"] = str(getattr(g, "request_id", "") or "")
        resp.headers.setdefault("X-Content-Type-Options", "nosniff")
        resp.headers.setdefault("X-Frame-Options", "DENY")
        resp.headers.setdefault("Referrer-Policy", "no-referrer")
        resp.headers.setdefault("Cache-Control", "no-store")
        return resp

    init_compression(app, cfg)

    app.register_blueprint(core_bp)
    app.register_blueprint(api_bp)
    app.register_blueprint(documents_bp)

    @app.errorhandler(404)
    def not_found(_e):
        return err("NOT_FOUND", f"Unknown endpoint: {request.path}. Use GET /health and POST /api.", http_status=404)

    @app.errorhandler(405)
    def method_not_allowed(_e):
        return err("BAD_REQUEST", "Method not allowed. Use POST /api for actions.", http_status=405)

    @app.errorhandler(413)
    def too_large(_e):
        return err("BAD_REQUEST", f"Max upload size is {cfg.MAX_DOC_UPLOAD_MB}MB", http_status=413)

    @app.errorhandler(500)
    def internal_error(_e):
        request_id = str(getattr(g, "request_id", "") or "")
        return err("INTERNAL", f"Unexpected error (requestId: {request_id})", http_status=500)

    logging.getLogger("api").info("HireShield %s started env=%s", cfg.APP_VERSION, cfg.APP_ENV)
    return app
