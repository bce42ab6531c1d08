"""Configuration module for the telecrm application."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from urllib.parse import urlparse

from dotenv import load_dotenv

from telecrm.core.exceptions import ConfigurationError

load_dotenv()


def _as_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Config:
    """Runtime configuration with validation."""

    APP_NAME: str
    APP_VERSION: str
    ENV: str
    DEBUG: bool
    DATABASE_URL: str
    DB_CONNECTIVITY_REQUIRED: bool
    STORE_TIMEOUT_SECONDS: float
    LOST_COOLING_OFF_DAYS: int
    HOT_COOLING_OFF_DAYS: int
    ASSIGNMENT_MAX_RETRIES: int
    SAME_EMPLOYEE_RESETS_CALL_STATUS: bool
    AUTO_ASSIGN_MAX_COUNT: int
    REASSIGNMENT_SWEEP_INTERVAL_MINUTES: int
    AUDIT_TRAIL_SIZE: int
    CELERY_BROKER_URL: str
    CELERY_RESULT_BACKEND: str
    LOG_LEVEL: str
    LOG_FILE: str

    @property
    def is_production(self) -> bool:
        return self.ENV == "production"


def _build_config(env: str | None = None) -> Config:
    resolved_env = (env or os.getenv("ENV", "development")).strip().lower()
    debug = _as_bool(os.getenv("DEBUG"), default=(resolved_env != "production"))
    redis_url = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    config = Config(
        APP_NAME="telecrm",
        APP_VERSION=os.getenv("APP_VERSION", "1.0.0"),
        ENV=resolved_env,
        DEBUG=debug if resolved_env != "production" else False,
        DATABASE_URL=os.getenv("DATABASE_URL", "sqlite:///./telecrm.db"),
        DB_CONNECTIVITY_REQUIRED=_as_bool(
            os.getenv("DB_CONNECTIVITY_REQUIRED"), default=(resolved_env == "production")
        ),
        STORE_TIMEOUT_SECONDS=float(os.getenv("STORE_TIMEOUT_SECONDS", "10")),
        LOST_COOLING_OFF_DAYS=int(os.getenv("LOST_COOLING_OFF_DAYS", "14")),
        HOT_COOLING_OFF_DAYS=int(os.getenv("HOT_COOLING_OFF_DAYS", "14")),
        ASSIGNMENT_MAX_RETRIES=int(os.getenv("ASSIGNMENT_MAX_RETRIES", "3")),
        SAME_EMPLOYEE_RESETS_CALL_STATUS=_as_bool(
            os.getenv("SAME_EMPLOYEE_RESETS_CALL_STATUS"), default=True
        ),
        AUTO_ASSIGN_MAX_COUNT=int(os.getenv("AUTO_ASSIGN_MAX_COUNT", "500")),
        REASSIGNMENT_SWEEP_INTERVAL_MINUTES=int(os.getenv("REASSIGNMENT_SWEEP_INTERVAL_MINUTES", "60")),
        AUDIT_TRAIL_SIZE=int(os.getenv("AUDIT_TRAIL_SIZE", "1000")),
        CELERY_BROKER_URL=os.getenv("CELERY_BROKER_URL", redis_url),
        CELERY_RESULT_BACKEND=os.getenv("CELERY_RESULT_BACKEND", redis_url),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO").upper(),
        LOG_FILE=os.getenv("LOG_FILE", "telecrm.log"),
    )
    _validate_config(config)
    return config


def _validate_database_url(database_url: str) -> None:
    parsed = urlparse(database_url)
    if parsed.scheme not in {"sqlite", "postgresql", "postgresql+psycopg2", "postgresql+psycopg"}:
        raise ConfigurationError(
            "DATABASE_URL must use sqlite:// or postgresql:// style URL."
        )
    if parsed.scheme.startswith("postgresql") and not parsed.hostname:
        raise ConfigurationError("PostgreSQL DATABASE_URL is missing hostname.")


def _validate_config(config: Config) -> None:
    _validate_database_url(config.DATABASE_URL)

    if config.STORE_TIMEOUT_SECONDS <= 0:
        raise ConfigurationError("STORE_TIMEOUT_SECONDS must be > 0.")
    if config.LOST_COOLING_OFF_DAYS < 1:
        raise ConfigurationError("LOST_COOLING_OFF_DAYS must be >= 1.")
    if config.HOT_COOLING_OFF_DAYS < 1:
        raise ConfigurationError("HOT_COOLING_OFF_DAYS must be >= 1.")
    if config.ASSIGNMENT_MAX_RETRIES < 0:
        raise ConfigurationError("ASSIGNMENT_MAX_RETRIES must be >= 0.")
    if config.AUTO_ASSIGN_MAX_COUNT < 1:
        raise ConfigurationError("AUTO_ASSIGN_MAX_COUNT must be >= 1.")
    if config.REASSIGNMENT_SWEEP_INTERVAL_MINUTES < 1:
        raise ConfigurationError("REASSIGNMENT_SWEEP_INTERVAL_MINUTES must be >= 1.")
    if config.AUDIT_TRAIL_SIZE < 0:
        raise ConfigurationError("AUDIT_TRAIL_SIZE must be >= 0.")
    if config.LOG_LEVEL not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
        raise ConfigurationError("LOG_LEVEL must be one of DEBUG/INFO/WARNING/ERROR/CRITICAL.")
    if config.is_production and "change_me" in config.DATABASE_URL.lower():
        raise ConfigurationError("Production DATABASE_URL uses placeholder credentials.")


@lru_cache(maxsize=8)
def get_config(env: str | None = None) -> Config:
    """Get validated configuration for the requested environment."""
    return _build_config(env)
