"""Startup validation and bootstrap helpers."""

from __future__ import annotations

import logging

from sqlalchemy import inspect

from telecrm.core.config import get_config
from telecrm.core.logging_config import configure_logging
from telecrm.database.db import get_active_database_url, get_engine, init_db, verify_database_connection

logger = logging.getLogger(__name__)

REQUIRED_TABLES = frozenset({"users", "leads", "lead_assignments"})


def missing_tables() -> set[str]:
    """Return the tables the lead engine needs that the database lacks."""
    return set(REQUIRED_TABLES) - set(inspect(get_engine()).get_table_names())


def validate_startup_config() -> bool:
    """Fail-fast connectivity check; returns whether the database answered."""
    config = get_config()
    database_ok = verify_database_connection()
    active_database_url = get_active_database_url()
    if not database_ok and config.DB_CONNECTIVITY_REQUIRED:
        raise RuntimeError("Database connectivity check failed.")
    if not database_ok:
        logger.warning(
            "startup.database.connectivity_optional_failed",
            extra={"event": "startup.database.connectivity_optional_failed"},
        )

    if config.is_production and active_database_url.startswith("sqlite"):
        logger.warning(
            "startup.production.sqlite_detected",
            extra={"event": "startup.production.sqlite_detected"},
        )

    logger.info(
        "startup.config.validated",
        extra={
            "event": "startup.config.validated",
            "env": config.ENV,
            "database_url_scheme": active_database_url.split("://", 1)[0],
            "hot_cooling_off_days": config.HOT_COOLING_OFF_DAYS,
            "lost_cooling_off_days": config.LOST_COOLING_OFF_DAYS,
            "sweep_interval_minutes": config.REASSIGNMENT_SWEEP_INTERVAL_MINUTES,
        },
    )
    return database_ok


def bootstrap(create_tables: bool = False) -> None:
    """Configure logging, validate the environment and make sure the lead tables exist.

    With ``create_tables`` the schema is created in place; otherwise missing
    tables are only reported, since sweeps would fail on every manager.
    """
    configure_logging()
    if not validate_startup_config():
        return
    if create_tables:
        init_db()
        return
    absent = missing_tables()
    if absent:
        logger.warning(
            "startup.database.schema_missing",
            extra={"event": "startup.database.schema_missing", "tables": sorted(absent)},
        )
