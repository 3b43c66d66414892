"""Database access for the member and loan ledger tables.

One engine serves the whole process and is bound to a single URL, taken from
the ``database_url`` argument or ``DATABASE_URL``. The balance jobs open one
``session_scope()`` per table run and may ``commit()`` inside it after each
chunk of accounts, so a failure rolls back only the chunk in flight.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

_ENGINE: Engine | None = None
_SESSION_MAKER: sessionmaker[Session] | None = None
_DB_URL: str | None = None


def _database_url(override: str | None = None) -> str:
    url = override or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is not set; pass --database-url or export it")
    return url


def _bind(url: str) -> Engine:
    global _ENGINE, _SESSION_MAKER, _DB_URL
    engine = create_engine(url, pool_pre_ping=True)
    _SESSION_MAKER = sessionmaker(bind=engine, expire_on_commit=False, class_=Session)
    _ENGINE = engine
    _DB_URL = url
    return engine


def get_engine(*, database_url: str | None = None) -> Engine:
    """Engine for the ledger database, created on first use."""

    url = _database_url(database_url)
    if _ENGINE is None:
        return _bind(url)
    if url != _DB_URL:
        raise RuntimeError(
            f"ledger database already bound to {_DB_URL!r}; "
            "call reset_engine() before switching databases"
        )
    return _ENGINE


def reset_engine() -> None:
    """Dispose the engine so the next call may bind another database."""

    global _ENGINE, _SESSION_MAKER, _DB_URL
    if _ENGINE is not None:
        _ENGINE.dispose()
    _ENGINE = None
    _SESSION_MAKER = None
    _DB_URL = None


def get_session(*, database_url: str | None = None) -> Session:
    get_engine(database_url=database_url)
    if _SESSION_MAKER is None:
        raise RuntimeError("ledger database engine is not initialised")
    return _SESSION_MAKER()


@contextmanager
def session_scope(*, database_url: str | None = None) -> Iterator[Session]:
    """Session that commits on success and rolls back on any exception.

    The exception is re-raised unchanged, so ``SQLAlchemyError`` reaches the
    caller as is.
    """

    session = get_session(database_url=database_url)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


__all__ = [
    "get_engine",
    "get_session",
    "reset_engine",
    "session_scope",
]
