from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker


log = logging.getLogger("db")

Base = declarative_base()

# Bound to an engine by init_engine(); safe to import before that.
SessionLocal = sessionmaker(autoflush=False, expire_on_commit=False)

_ON_COMMIT = "on_commit_callbacks"
_ON_ROLLBACK = "on_rollback_callbacks"

_engine: Optional[Engine] = None


def _install_sqlite_transaction_hooks(engine: Engine) -> None:
    # pysqlite defers BEGIN and breaks SAVEPOINT semantics; let SQLAlchemy emit BEGIN itself.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, _record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "connect")
    def _enable_fks(dbapi_connection, _record):
        cur = dbapi_connection.cursor()
        cur.execute("PRAGMA foreign_keys=ON")
        cur.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def init_engine(database_url: str, *, pool_size: int = 5, max_overflow: int = 10) -> Engine:
    global _engine

    url = str(database_url or "").strip()
    if not url:
        raise RuntimeError("Missing DATABASE_URL")

    if url.startswith("sqlite"):
        engine = create_engine(url, connect_args={"check_same_thread": False}, future=True)
        _install_sqlite_transaction_hooks(engine)
    else:
        engine = create_engine(
            url,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=True,
            pool_recycle=1800,
            future=True,
        )

    SessionLocal.configure(bind=engine)
    _engine = engine
    return engine


def dispose_engine() -> None:
    global _engine
    if _engine is not None:
        _engine.dispose()
    _engine = None


def get_pool_stats() -> dict[str, Any]:
    if _engine is None:
        return {"initialized": False}
    pool = _engine.pool
    out: dict[str, Any] = {"initialized": True, "class": type(pool).__name__}
    for name in ("size", "checkedin", "checkedout", "overflow"):
        fn = getattr(pool, name, None)
        if callable(fn):
            try:
                out[name] = int(fn())
            except Exception:
                pass
    return out


def on_commit(session, fn: Callable[[], None]) -> None:
    """Run `fn` once the session's outermost transaction commits; dropped on rollback."""
    session.info.setdefault(_ON_COMMIT, []).append(fn)


def on_rollback(session, fn: Callable[[], None]) -> None:
    """Run `fn` if the session's outermost transaction ends without committing."""
    session.info.setdefault(_ON_ROLLBACK, []).append(fn)


def _run_callbacks(callbacks: list[Callable[[], None]], phase: str) -> None:
    for fn in callbacks:
        try:
            fn()
        except Exception:
            log.exception("%s callback failed", phase)


@event.listens_for(SessionLocal, "after_commit")
def _after_commit(session):
    # Also fires when a SAVEPOINT is released; only the outermost commit counts.
    if session.in_nested_transaction():
        return
    session.info.pop(_ON_ROLLBACK, None)
    _run_callbacks(session.info.pop(_ON_COMMIT, []), "commit")


@event.listens_for(SessionLocal, "after_transaction_end")
def _after_transaction_end(session, transaction):
    if transaction.parent is not None:
        return
    # Anything still queued here never saw a commit: rollback, close, or a failed COMMIT.
    session.info.pop(_ON_COMMIT, None)
    _run_callbacks(session.info.pop(_ON_ROLLBACK, []), "rollback")
