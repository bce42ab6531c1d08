"""Lead persistence: typed queries, per-record read-modify-write, bulk field sets."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, TypeVar

from sqlalchemy import and_, false, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from telecrm.core.enums import DeadLeadReason, LeadStatus, Region, Sector
from telecrm.core.exceptions import ConflictError, NotFoundError, ServiceError, StoreFailureError
from telecrm.models import Lead
from telecrm.services.base_service import BaseService

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Columns owned by the assignment engine and the status validator. Bulk
# updates must never touch them.
PROTECTED_FIELDS = frozenset(
    {
        "id",
        "assigned_to_id",
        "created_by_id",
        "assigned_date",
        "call_status",
        "status",
        "follow_up_date",
        "selling_price",
        "loss_reason",
        "reassignment_date",
        "dead_lead_reason",
        "dead_lead_date",
        "version_id",
        "created_at",
        "previous_assignments",
    }
)

SORTS = {
    "created_asc": (Lead.created_at.asc(), Lead.id.asc()),
    "created_desc": (Lead.created_at.desc(), Lead.id.desc()),
    "dead_desc": (Lead.dead_lead_date.desc(), Lead.id.desc()),
    "reassignment_asc": (Lead.reassignment_date.asc(), Lead.id.asc()),
}


@dataclass(frozen=True)
class LeadQuery:
    """Typed lead filter. Every populated field becomes one predicate."""

    status: LeadStatus | None = None
    statuses: tuple[LeadStatus, ...] | None = None
    unassigned: bool | None = None
    assigned_to: int | None = None
    assigned_to_in: tuple[int, ...] | None = None
    created_by: int | None = None
    visible_to_manager: tuple[int, tuple[int, ...]] | None = None
    sector: Sector | None = None
    region: Region | None = None
    reassignment_due_before: datetime | None = None
    dead_lead_reason: DeadLeadReason | None = None
    phone: str | None = None

    def predicates(self) -> list:
        clauses = []
        if self.status is not None:
            clauses.append(Lead.status == self.status)
        if self.statuses is not None:
            clauses.append(Lead.status.in_(self.statuses))
        if self.unassigned is True:
            clauses.append(Lead.assigned_to_id.is_(None))
        elif self.unassigned is False:
            clauses.append(Lead.assigned_to_id.is_not(None))
        if self.assigned_to is not None:
            clauses.append(Lead.assigned_to_id == self.assigned_to)
        if self.assigned_to_in is not None:
            clauses.append(Lead.assigned_to_id.in_(self.assigned_to_in) if self.assigned_to_in else false())
        if self.created_by is not None:
            clauses.append(Lead.created_by_id == self.created_by)
        if self.visible_to_manager is not None:
            manager_id, team = self.visible_to_manager
            scope = [Lead.created_by_id == manager_id]
            if team:
                scope.append(Lead.assigned_to_id.in_(team))
            clauses.append(or_(*scope))
        if self.sector is not None:
            clauses.append(Lead.sector == self.sector)
        if self.region is not None:
            clauses.append(Lead.region == self.region)
        if self.reassignment_due_before is not None:
            clauses.append(
                and_(
                    Lead.reassignment_date.is_not(None),
                    Lead.reassignment_date <= self.reassignment_due_before,
                )
            )
        if self.dead_lead_reason is not None:
            clauses.append(Lead.dead_lead_reason == self.dead_lead_reason)
        if self.phone is not None:
            clauses.append(Lead.phone == self.phone)
        return clauses


class LeadStore(BaseService):
    """SQLAlchemy-backed lead store.

    ``version_id`` on the lead row gives compare-and-set semantics: a save
    against a row that changed since it was read raises ConflictError.
    """

    def find_by_id(self, lead_id: int) -> Lead | None:
        with self.store_errors(f"load lead {lead_id}"):
            return self.db.get(Lead, lead_id, populate_existing=True)

    def find_many(self, query: LeadQuery, sort: str = "created_asc", limit: int | None = None, offset: int = 0) -> list[Lead]:
        if sort not in SORTS:
            raise ServiceError(f"Unknown sort: {sort}")
        stmt = select(Lead).where(*query.predicates()).order_by(*SORTS[sort])
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        with self.store_errors("query leads"):
            return list(self.db.scalars(stmt).all())

    def count_documents(self, query: LeadQuery) -> int:
        stmt = select(func.count(Lead.id)).where(*query.predicates())
        with self.store_errors("count leads"):
            return int(self.db.scalar(stmt) or 0)

    def save(self, lead: Lead) -> Lead:
        """Upsert the full record in its own transaction."""
        self.db.add(lead)
        try:
            self.commit()
        except StaleDataError as exc:
            raise ConflictError(f"Lead {lead.id} was modified concurrently") from exc
        except SQLAlchemyError as exc:
            raise StoreFailureError(f"Failed to save lead: {exc}") from exc
        return lead

    def update_many(self, query: LeadQuery, patch: dict[str, Any]) -> int:
        """Set plain descriptive fields on every matching lead."""
        protected = sorted(PROTECTED_FIELDS.intersection(patch))
        if protected:
            raise ServiceError(f"update_many cannot set engine-owned fields: {', '.join(protected)}")
        values = {getattr(Lead, key): value for key, value in patch.items()}
        values[Lead.version_id] = Lead.version_id + 1
        stmt = update(Lead).where(*query.predicates()).values(values).execution_options(synchronize_session=False)
        with self.store_errors("bulk update leads"):
            result = self.db.execute(stmt)
            self.commit()
        return int(result.rowcount or 0)

    def read_modify_write(
        self,
        lead_id: int,
        mutate: Callable[[Lead], T],
        max_retries: int,
        should_save: Callable[[T], bool] = bool,
    ) -> tuple[Lead, T]:
        """Apply ``mutate`` to a fresh copy of the lead and persist it atomically.

        ``mutate`` returns an outcome; when ``should_save(outcome)`` is false the
        in-memory changes are discarded. Any exception from ``mutate`` discards
        them as well, as does a failed save, so no partial state ever reaches
        the store or a later write on the same session. Conflicts are
        retried on a re-read copy up to ``max_retries`` times.
        """
        for attempt in range(max_retries + 1):
            lead = self.find_by_id(lead_id)
            if lead is None:
                raise NotFoundError(f"Lead {lead_id} not found")
            try:
                outcome = mutate(lead)
            except Exception:
                self.rollback()
                raise
            if not should_save(outcome):
                self.rollback()
                return lead, outcome
            try:
                self.save(lead)
                return lead, outcome
            except StoreFailureError:
                self.rollback()
                raise
            except ConflictError:
                logger.warning(
                    "lead_store.save.conflict",
                    extra={"event": "lead_store.save.conflict", "lead_id": lead_id, "attempt": attempt},
                )
        raise ConflictError(f"Lead {lead_id} update gave up after {max_retries + 1} attempts")

    def phone_exists(self, phone: str) -> bool:
        return self.count_documents(LeadQuery(phone=phone)) > 0
