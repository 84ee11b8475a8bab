"""Database connection and session management.

This module provides engine creation, session factories and schema helpers.
"""

import logging
from typing import Any

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from polity.config import Settings, get_settings
from polity.models import Base

logger = logging.getLogger(__name__)


def _configure_sqlite_wal(
    dbapi_connection: Any, connection_record: Any  # noqa: ARG001
) -> None:
    """Per-connection pragmas for the governance store.

    Writers contending for the database lock wait up to five seconds.
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


def create_db_engine(settings: Settings | None = None) -> Engine:
    """Create and configure the database engine.

    Args:
        settings: Settings to read the URL and pool options from; defaults to
            the cached application settings.

    Returns:
        Engine: Configured SQLAlchemy engine
    """
    settings = settings or get_settings()

    if settings.database_url.startswith("sqlite"):
        # Sessions may be handed to worker threads for effect application
        engine = create_engine(
            settings.database_url,
            echo=settings.database_echo,
            pool_pre_ping=True,
            connect_args={"check_same_thread": False},
        )
        event.listen(engine, "connect", _configure_sqlite_wal)
    else:
        engine = create_engine(
            settings.database_url,
            echo=settings.database_echo,
            pool_pre_ping=True,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_recycle=settings.database_pool_recycle,
            pool_timeout=settings.database_pool_timeout,
        )

    return engine


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


# Global engine
_engine: Engine | None = None


def get_engine() -> Engine:
    """Get or create the global database engine."""
    global _engine  # noqa: PLW0603
    if _engine is None:
        _engine = create_db_engine()
    return _engine


def init_db(engine: Engine | None = None) -> None:
    """Create all tables directly, bypassing migrations.

    Note:
        For production use the alembic migrations instead.
    """
    Base.metadata.create_all(bind=engine or get_engine())


def check_database_health(engine: Engine | None = None) -> bool:
    """Return True when a trivial query succeeds."""
    try:
        with (engine or get_engine()).connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as exc:
        logger.warning("Database health check failed: %s", exc)
        return False


def get_table_names(engine: Engine | None = None) -> list[str]:
    return inspect(engine or get_engine()).get_table_names()
