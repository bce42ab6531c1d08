"""Session-owning base for services that talk to the lead database."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from telecrm.core.exceptions import StoreFailureError
from telecrm.database.db import SessionLocal


class BaseService:
    """Base class for services that operate on a SQLAlchemy session.

    Services built on one another share a session by passing ``db`` down, so
    a single lead write never spans two transactions.
    """

    def __init__(self, db: Session | None = None) -> None:
        self.db = db or SessionLocal()

    def commit(self) -> None:
        """Commit current transaction and rollback on failure."""
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def rollback(self) -> None:
        self.db.rollback()

    @contextmanager
    def store_errors(self, action: str) -> Iterator[None]:
        """Roll back and re-raise driver errors as :class:`StoreFailureError`."""
        try:
            yield
        except SQLAlchemyError as exc:
            self.rollback()
            raise StoreFailureError(f"Failed to {action}: {exc}") from exc
