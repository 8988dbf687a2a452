"""
db/session.py

SQLAlchemy engine and scoped session factory.

Every invocation acquires its own engine and session and releases both on
exit. There is no module-level engine: the embedded database file may be
replaced between invocations, and networked connections must not outlive
the request that opened them.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from db.config import (
    NETWORKED_BACKEND,
    ConnectionSettings,
    build_database_url,
    embedded_database_path,
)


def create_db_engine(settings: ConnectionSettings) -> Engine:
    """
    Create an engine for the configured backend.

    Embedded stores get their parent directory created; networked stores
    get pre-ping so a stale server connection fails fast.
    """

    url = build_database_url(settings)
    engine_kwargs: dict[str, Any] = {"echo": settings.echo}

    if url.get_backend_name() == "sqlite":
        database_path = embedded_database_path(settings)
        if database_path is not None:
            database_path.parent.mkdir(parents=True, exist_ok=True)
    elif settings.backend == NETWORKED_BACKEND or url.get_backend_name() == "postgresql":
        engine_kwargs["pool_pre_ping"] = True

    return create_engine(url, **engine_kwargs)


@contextmanager
def session_scope(settings: ConnectionSettings) -> Iterator[Session]:
    """
    Yield a session bound to a fresh engine, closing and disposing both on every exit path.

    The caller owns commit/rollback.
    """

    engine = create_db_engine(settings)
    session = Session(
        bind=engine,
        autoflush=False,
        expire_on_commit=False,
    )
    try:
        yield session
    finally:
        session.close()
        engine.dispose()
