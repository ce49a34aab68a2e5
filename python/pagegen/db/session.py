"""Session factories for the API and the worker.

The API gets one session per request through the get_db() dependency;
Celery tasks open their own from get_session_factory(). Tests swap the
process-wide factory for one bound to an in-memory engine.
"""

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from pagegen.db.engine import get_engine

_factory: sessionmaker[Session] | None = None


def create_session_factory(engine: Engine | None = None) -> sessionmaker[Session]:
    """Session factory bound to `engine` (the process engine by default).

    Objects stay readable after commit: services hand queue items and log
    rows back to routes once their transaction is done.
    """
    return sessionmaker(
        bind=engine or get_engine(),
        autoflush=False,
        expire_on_commit=False,
    )


def get_session_factory() -> sessionmaker[Session]:
    global _factory
    if _factory is None:
        _factory = create_session_factory()
    return _factory


def set_session_factory(factory: sessionmaker[Session] | None) -> None:
    """Replace the process-wide factory; None restores lazy creation."""
    global _factory
    _factory = factory


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency: a session closed when the request ends."""
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session) -> Generator[None, None, None]:
    """Commit the statements in the block together, or roll them all back.

    Usage:
        with transaction(db):
            db.execute(update(...))
            db.add(row)
    """
    try:
        yield
        db.commit()
    except Exception:
        db.rollback()
        raise
