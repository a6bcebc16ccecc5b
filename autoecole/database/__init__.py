"""
Database engine, session factory, and metadata shared across the package.
"""

from __future__ import annotations

import logging
from typing import Any, Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeMeta, Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from ..core.config import settings

logger = logging.getLogger(__name__)

Base: DeclarativeMeta = declarative_base()


def build_engine(url: Optional[str] = None, echo: Optional[bool] = None) -> Engine:
    """
    Create an engine for the configured store.

    In-memory SQLite URLs share a single connection so every session sees the
    same database.
    """
    database_url = url or settings.database_url
    kwargs: dict[str, Any] = {"echo": settings.database_echo if echo is None else echo}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in database_url or database_url in {"sqlite://", "sqlite:///"}:
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True

    engine = create_engine(database_url, **kwargs)

    if engine.dialect.name == "sqlite":

        @event.listens_for(engine, "connect")
        def _enable_sqlite_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    logger.info("Database engine created for dialect %s", engine.dialect.name)
    return engine


engine = build_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Yield a session and always close it afterwards."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Optional[Engine] = None) -> None:
    """Create all tables. Schema migrations are handled outside this package."""
    from .. import models  # noqa: F401  register mappers

    Base.metadata.create_all(bind=bind or engine)
