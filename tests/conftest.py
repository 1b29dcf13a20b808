from __future__ import annotations

import pytest

from cache_layer import cache_clear
from db import SessionLocal, dispose_engine


@pytest.fixture()
def app_client(tmp_path, monkeypatch):
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'hireshield-test.db'}")
    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setenv("RATE_LIMIT_ENABLED", "0")
    monkeypatch.setenv("ENABLE_COMPRESSION", "0")
    monkeypatch.setenv("SESSION_LAST_SEEN_UPDATE_SECONDS", "0")

    from app import create_app

    cache_clear()
    app = create_app()
    app.config["TESTING"] = True
    try:
        yield app, app.test_client()
    finally:
        app.extensions["notifications"].close()
        cache_clear()
        dispose_engine()


@pytest.fixture()
def db_session(app_client):
    with SessionLocal() as db:
        yield db
