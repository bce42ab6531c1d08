"""Database connection and session management."""

from __future__ import annotations

import logging
from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from telecrm.core.config import get_config

logger = logging.getLogger(__name__)

config = get_config()
DATABASE_URL = config.DATABASE_URL


def _connect_args(database_url: str, timeout_seconds: float) -> dict:
    """Translate the store timeout into the driver's own timeout setting."""
    if database_url.startswith("sqlite"):
        return {"timeout": timeout_seconds}
    if database_url.startswith("postgresql"):
        return {"options": f"-c statement_timeout={int(timeout_seconds * 1000)}"}
    return {}


def _build_engine(database_url: str) -> Engine:
    kwargs = {
        "echo": config.DEBUG and config.LOG_LEVEL == "DEBUG",
        "pool_pre_ping": True,
        "connect_args": _connect_args(database_url, config.STORE_TIMEOUT_SECONDS),
    }
    if not database_url.startswith("sqlite"):
        kwargs.update(pool_recycle=3600, pool_size=10, max_overflow=20)
    return create_engine(database_url, **kwargs)


engine = _build_engine(DATABASE_URL)
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine,
)


def get_engine() -> Engine:
    """Return the active SQLAlchemy engine."""
    return engine


def get_active_database_url() -> str:
    """Return the currently bound database URL."""
    return DATABASE_URL


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """Context-manager wrapper for safe DB session lifecycle."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create all tables on the active engine."""
    from telecrm.models import Base

    Base.metadata.create_all(bind=engine)
    logger.info("database.tables_created", extra={"event": "database.tables_created"})


def verify_database_connection() -> bool:
    """Verify DB connectivity during startup."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as exc:  # pragma: no cover - exercised in deployment.
        logger.exception("database.connection_failed", extra={"event": "database.connection_failed"})
        logger.error("database.connection_failed.details: %s", exc)
        return False
