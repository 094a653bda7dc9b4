"""Engine and session helpers for the budget database.

Every caller passes the URL it was configured with (``Settings.database_url``);
``DATABASE_URL`` from the environment is only the fallback. Engines are cached
per URL because the web app, the CLI and the test-suite may each bind a
different database inside one process.

    with session_scope(database_url=url) as s:
        s.execute(...)
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

_BINDINGS: dict[str, tuple[Engine, sessionmaker[Session]]] = {}


def _resolve_url(database_url: str | None) -> str:
    url = database_url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("no database URL given and DATABASE_URL is not set")
    return url


def _build_engine(url: str) -> Engine:
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True)

    # Categorization workers share the connection pool with the request thread.
    engine = create_engine(url, connect_args={"check_same_thread": False})

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_conn, _record) -> None:  # noqa: ANN001
        cur = dbapi_conn.cursor()
        cur.execute("PRAGMA foreign_keys=ON")
        cur.close()

    return engine


def _binding(database_url: str | None) -> tuple[Engine, sessionmaker[Session]]:
    url = _resolve_url(database_url)
    if url not in _BINDINGS:
        engine = _build_engine(url)
        _BINDINGS[url] = (engine, sessionmaker(bind=engine, expire_on_commit=False))
    return _BINDINGS[url]


def get_engine(*, database_url: str | None = None) -> Engine:
    return _binding(database_url)[0]


def get_session(*, database_url: str | None = None) -> Session:
    return _binding(database_url)[1]()


@contextmanager
def session_scope(*, database_url: str | None = None) -> Iterator[Session]:
    """Commit on clean exit, roll back on any exception, always close."""

    session = get_session(database_url=database_url)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def dispose_engines() -> None:
    for engine, _ in _BINDINGS.values():
        engine.dispose()
    _BINDINGS.clear()


__all__ = ["dispose_engines", "get_engine", "get_session", "session_scope"]
