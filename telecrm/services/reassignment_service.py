"""Redistribution of Hot and Lost leads whose cooling-off window has elapsed."""

from __future__ import annotations

import logging
import random
from threading import Event

from sqlalchemy.orm import Session

from telecrm.auth.rbac import Actor
from telecrm.core.enums import REDISTRIBUTABLE_STATUSES
from telecrm.core.exceptions import AuthorizationError, TeleCRMException
from telecrm.schemas.leads import LeadError, SweepResult
from telecrm.services.assignment_service import AssignmentService
from telecrm.services.base_service import BaseService
from telecrm.services.lead_store import LeadQuery

logger = logging.getLogger(__name__)

NOTHING_TO_DO = "No leads need reassignment"


class ReassignmentService(BaseService):
    """Sweeps a manager's stalled leads and moves each to another team member.

    The candidate pool for a lead is the manager's employees minus its current
    assignee, and the pick is uniform over that pool. ``rng`` is injectable so
    tests can pin the choice.
    """

    def __init__(
        self,
        db: Session | None = None,
        assignment: AssignmentService | None = None,
        rng: random.Random | None = None,
    ) -> None:
        super().__init__(db=db)
        self.assignment = assignment or AssignmentService(db=self.db)
        self.rng = rng or random.Random()

    @property
    def store(self):
        return self.assignment.store

    @property
    def directory(self):
        return self.assignment.directory

    def find_eligible(self, manager_id: int, team: tuple[int, ...]) -> list[int]:
        now = self.assignment.clock()
        leads = self.store.find_many(
            LeadQuery(
                statuses=REDISTRIBUTABLE_STATUSES,
                reassignment_due_before=now,
                visible_to_manager=(manager_id, team),
            ),
            sort="reassignment_asc",
        )
        return [lead.id for lead in leads]

    def sweep(self, manager_id: int, actor: Actor, cancel_event: Event | None = None) -> SweepResult:
        """Redistribute every eligible lead visible to ``manager_id``.

        Safe to re-run: a moved lead has its ``reassignment_date`` cleared and is
        not selected again. Per-lead failures are reported in ``errors``.
        """
        if not actor.is_admin and not (actor.is_manager and actor.id == manager_id):
            raise AuthorizationError("Only the manager or an admin can redistribute these leads.")

        team = tuple(self.directory.find_employees_of_manager(manager_id))
        if not team:
            logger.info(
                "reassignment.sweep.no_team",
                extra={"event": "reassignment.sweep.no_team", "manager_id": manager_id},
            )
            return SweepResult(message="No employees found under this manager", manager_id=manager_id)

        eligible = self.find_eligible(manager_id, team)
        if not eligible:
            return SweepResult(message=NOTHING_TO_DO, manager_id=manager_id)

        result = SweepResult(message="", manager_id=manager_id, eligible_count=len(eligible))
        for lead_id in eligible:
            if cancel_event is not None and cancel_event.is_set():
                result.cancelled = True
                break
            try:
                lead = self.store.find_by_id(lead_id)
                if lead is None:
                    continue
                pool = [employee_id for employee_id in team if employee_id != lead.assigned_to_id]
                if not pool:
                    result.unmoved_lead_ids.append(lead_id)
                    continue
                new_employee_id = self.rng.choice(pool)
                moved = self.assignment.redistribute(
                    lead_id,
                    new_employee_id,
                    manager_id=manager_id,
                    team=team,
                    actor=actor,
                    now=self.assignment.clock(),
                )
            except TeleCRMException as exc:
                logger.warning(
                    "reassignment.sweep.lead_failed",
                    extra={"event": "reassignment.sweep.lead_failed", "lead_id": lead_id, "error": str(exc)},
                )
                result.errors.append(LeadError(lead_id=lead_id, error=str(exc), error_type=exc.__class__.__name__))
                continue
            if moved:
                result.reassigned_lead_ids.append(lead_id)
            else:
                result.unmoved_lead_ids.append(lead_id)

        result.reassigned_count = len(result.reassigned_lead_ids)
        result.message = f"{result.reassigned_count} leads reassigned"
        logger.info(
            "reassignment.sweep.completed",
            extra={
                "event": "reassignment.sweep.completed",
                "manager_id": manager_id,
                "actor_id": actor.id,
                "eligible": result.eligible_count,
                "reassigned": result.reassigned_count,
                "errors": len(result.errors),
                "cancelled": result.cancelled,
            },
        )
        return result
