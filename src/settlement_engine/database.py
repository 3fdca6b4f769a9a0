"""Database connection and session management."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import Table, create_engine, insert
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from settlement_engine.config import get_settings

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine


def build_engine(database_url: str) -> Engine:
    """Create a database engine for the given URL.

    SQLite connections are shared across the API threadpool, so they get a
    generous busy timeout instead of failing fast on a held write lock.
    """
    kwargs: dict[str, Any] = {"echo": False, "pool_pre_ping": True}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False, "timeout": 30}
    else:
        kwargs["pool_size"] = 10
        kwargs["max_overflow"] = 20
    return create_engine(database_url, **kwargs)


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Create a session factory bound to an engine."""
    return sessionmaker(engine, class_=Session, expire_on_commit=False, autoflush=False)


# Global engine and session factory
_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def init_db() -> tuple[Engine, sessionmaker[Session]]:
    """Initialize database engine and session factory."""
    global _engine, _session_factory
    if _engine is None:
        _engine = build_engine(get_settings().database_url)
        _session_factory = build_session_factory(_engine)
    assert _session_factory is not None
    return _engine, _session_factory


def create_schema(engine: Engine) -> None:
    """Create the settlement tables if they do not exist."""
    from settlement_engine.models import Base

    Base.metadata.create_all(engine)


def insert_ignoring_conflict(
    db: Session,
    table: Table,
    values: dict[str, Any],
    conflict_columns: list[str],
) -> bool:
    """INSERT ... ON CONFLICT DO NOTHING.

    Returns True if this call created the row, False if a row with the same
    conflict key already existed.
    """
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = postgresql.insert(table).values(**values)
    elif dialect == "sqlite":
        stmt = sqlite.insert(table).values(**values)
    else:
        try:
            with db.begin_nested():
                db.execute(insert(table).values(**values))
        except IntegrityError:
            return False
        return True

    result = db.execute(stmt.on_conflict_do_nothing(index_elements=conflict_columns))
    return result.rowcount == 1
