"""Lead assignment engine: allocate, reassign, bulk and automatic assignment."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime
from threading import Event

from sqlalchemy.orm import Session

from telecrm.auth.rbac import Actor, can_manage_lead, require_admin
from telecrm.core.config import Config, get_config
from telecrm.core.enums import (
    ALREADY_ASSIGNED,
    AssignmentEventType,
    AssignType,
    CallStatus,
    REDISTRIBUTABLE_STATUSES,
    UserRole,
)
from telecrm.core.exceptions import (
    AuthorizationError,
    ServiceError,
    TeleCRMException,
    ValidationError,
)
from telecrm.models import Lead, LeadAssignment, utcnow_naive
from telecrm.orchestration.state_machine import conditional_fields_consistent
from telecrm.schemas.leads import (
    AutoAssignRequest,
    AutoAssignResult,
    BulkAssignResult,
    LeadError,
    SkippedLead,
)
from telecrm.services.audit_service import AssignmentEvent, AuditSink, LoggingAuditSink
from telecrm.services.base_service import BaseService
from telecrm.services.directory_service import DirectoryService, DirectoryUser, TeamCache
from telecrm.services.lead_store import LeadQuery, LeadStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def hand_off(
    lead: Lead,
    new_assignee_id: int,
    now: datetime,
    reassigned_by_id: int | None = None,
    reset_same_assignee: bool = True,
) -> int | None:
    """Move ownership of ``lead`` to ``new_assignee_id``.

    The outgoing assignee, if different, is appended to the history with the
    status the lead had at hand-off. Returns the outgoing assignee id.
    """
    previous = lead.assigned_to_id
    if previous is not None and previous != new_assignee_id:
        lead.previous_assignments.append(
            LeadAssignment(
                employee_id=previous,
                assigned_at=now,
                status=lead.status,
                reassigned_by_id=reassigned_by_id,
            )
        )
    if previous != new_assignee_id or reset_same_assignee:
        lead.call_status = CallStatus.PENDING
    lead.assigned_to_id = new_assignee_id
    lead.assigned_date = now
    lead.updated_at = now
    return previous


def _lead_error(lead_id: int, exc: Exception) -> LeadError:
    return LeadError(lead_id=lead_id, error=str(exc), error_type=exc.__class__.__name__)


class AssignmentService(BaseService):
    """Owns every ownership change of a lead.

    All operations take an explicit :class:`Actor`. Manager-facing operations
    are limited to leads the manager created or that sit with one of their
    employees; admin operations bypass that scope.
    """

    def __init__(
        self,
        db: Session | None = None,
        store: LeadStore | None = None,
        directory: DirectoryService | None = None,
        audit_sink: AuditSink | None = None,
        clock: Clock | None = None,
        config: Config | None = None,
    ) -> None:
        super().__init__(db=db)
        self.store = store or LeadStore(db=self.db)
        self.directory = directory or DirectoryService(db=self.db)
        self.audit_sink = audit_sink or LoggingAuditSink()
        self.clock = clock or utcnow_naive
        self.config = config or get_config()

    # -- single-lead operations -------------------------------------------------

    def allocate(self, lead_id: int, employee_id: int, actor: Actor) -> Lead:
        """First-time (or repeated) assignment of a lead to an employee."""
        team = self.authorize_target(employee_id, actor)
        lead, _ = self._assign(
            lead_id,
            employee_id,
            actor,
            team=team,
            reassigned_by_id=None,
            event_type=AssignmentEventType.ALLOCATED,
        )
        return lead

    def reassign(self, lead_id: int, new_employee_id: int, actor: Actor) -> Lead:
        """Manual reassignment; the history entry records who moved the lead."""
        team = self.authorize_target(new_employee_id, actor)
        lead, _ = self._assign(
            lead_id,
            new_employee_id,
            actor,
            team=team,
            reassigned_by_id=actor.id,
            event_type=AssignmentEventType.REASSIGNED,
        )
        return lead

    def redistribute(
        self,
        lead_id: int,
        new_employee_id: int,
        manager_id: int,
        team: tuple[int, ...],
        actor: Actor,
        now: datetime,
    ) -> bool:
        """Move a stalled Hot/Lost lead to ``new_employee_id`` and clear its cooling-off date.

        Eligibility is re-checked on the freshly read record, so a lead that was
        already moved by a concurrent sweep or manager is left alone and False
        is returned.
        """
        previous: dict[str, int | None] = {}

        def mutate(lead: Lead) -> bool:
            if lead.status not in REDISTRIBUTABLE_STATUSES:
                return False
            if lead.reassignment_date is None or lead.reassignment_date > now:
                return False
            if lead.assigned_to_id == new_employee_id:
                return False
            if not can_manage_lead(manager_id, lead.created_by_id, lead.assigned_to_id, team):
                raise AuthorizationError(f"Manager {manager_id} has no scope over lead {lead.id}")
            before = lead.assigned_to_id
            previous["id"] = hand_off(lead, new_employee_id, now, reassigned_by_id=actor.id)
            lead.reassignment_date = None
            self.assert_invariants(lead, before)
            return True

        lead, moved = self.store.read_modify_write(
            lead_id, mutate, max_retries=self.config.ASSIGNMENT_MAX_RETRIES
        )
        if moved:
            self._emit(lead, AssignmentEventType.REDISTRIBUTED, actor, now, previous=previous.get("id"))
        return moved

    # -- batch operations -------------------------------------------------------

    def bulk_assign_by_manager(
        self,
        lead_ids: Iterable[int],
        employee_id: int,
        actor: Actor,
        cancel_event: Event | None = None,
    ) -> BulkAssignResult:
        """Assign many leads to one employee, reporting per-lead outcomes.

        A bad lead id never aborts the batch: it lands in ``errors``. Leads
        already held by the target employee land in ``skipped``.
        """
        teams = TeamCache(self.directory)
        target_team = self.authorize_target(employee_id, actor, teams=teams)
        result = BulkAssignResult()

        for lead_id in lead_ids:
            if cancel_event is not None and cancel_event.is_set():
                result.cancelled = True
                logger.info(
                    "assignment.bulk.cancelled",
                    extra={"event": "assignment.bulk.cancelled", "actor_id": actor.id, "next_lead_id": lead_id},
                )
                break
            try:
                _, outcome = self._assign(
                    lead_id,
                    employee_id,
                    actor,
                    team=target_team,
                    reassigned_by_id=actor.id,
                    event_type=AssignmentEventType.REASSIGNED,
                    skip_if_assigned_to_target=True,
                )
            except TeleCRMException as exc:
                result.errors.append(_lead_error(lead_id, exc))
                continue
            if outcome == ALREADY_ASSIGNED:
                result.skipped.append(SkippedLead(lead_id=lead_id, reason=ALREADY_ASSIGNED))
            else:
                result.assigned.append(lead_id)

        logger.info(
            "assignment.bulk.completed",
            extra={
                "event": "assignment.bulk.completed",
                "actor_id": actor.id,
                "employee_id": employee_id,
                "assigned": len(result.assigned),
                "skipped": len(result.skipped),
                "errors": len(result.errors),
            },
        )
        return result

    def auto_assign(
        self,
        request: AutoAssignRequest,
        actor: Actor,
        cancel_event: Event | None = None,
    ) -> AutoAssignResult:
        """Hand the oldest unassigned leads matching the filters to one person.

        Provenance follows the org chart: assigning to an employee makes their
        manager the lead's ``created_by``; assigning to a manager makes the
        manager the ``created_by``.
        """
        require_admin(actor)
        person = self.directory.get_user(request.person_id)
        if person.role.value != request.assign_type.value:
            raise ValidationError("person_id", f"Person is not an {request.assign_type.value}")
        if not person.is_active:
            raise ValidationError("person_id", "Person is not active")

        count = min(request.count, self.config.AUTO_ASSIGN_MAX_COUNT)
        candidates = self.store.find_many(
            LeadQuery(
                status=request.status,
                unassigned=True,
                sector=request.sector,
                region=request.region,
            ),
            sort="created_asc",
            limit=count,
        )
        candidate_ids = [lead.id for lead in candidates]
        if not candidate_ids:
            return AutoAssignResult(message="No leads available for assignment with the given criteria")

        provenance = self._auto_assign_provenance(person, request.assign_type)
        result = AutoAssignResult(total_processed=len(candidate_ids))

        for lead_id in candidate_ids:
            if cancel_event is not None and cancel_event.is_set():
                result.cancelled = True
                result.total_processed = result.assigned_count + result.skipped_count
                break
            now = self.clock()

            def mutate(lead: Lead) -> bool:
                if lead.assigned_to_id is not None:
                    return False
                before = lead.assigned_to_id
                hand_off(lead, person.id, now, reset_same_assignee=True)
                if provenance is not None:
                    lead.created_by_id = provenance
                self.assert_invariants(lead, before)
                return True

            try:
                lead, assigned = self.store.read_modify_write(
                    lead_id, mutate, max_retries=self.config.ASSIGNMENT_MAX_RETRIES
                )
            except TeleCRMException as exc:
                logger.warning(
                    "assignment.auto.lead_failed",
                    extra={"event": "assignment.auto.lead_failed", "lead_id": lead_id, "error": str(exc)},
                )
                result.skipped_count += 1
                result.errors.append(_lead_error(lead_id, exc))
                continue
            if not assigned:
                result.skipped_count += 1
                continue
            result.assigned_count += 1
            result.assigned_lead_ids.append(lead_id)
            self._emit(lead, AssignmentEventType.AUTO_ASSIGNED, actor, now, previous=None)

        logger.info(
            "assignment.auto.completed",
            extra={
                "event": "assignment.auto.completed",
                "actor_id": actor.id,
                "person_id": person.id,
                "assign_type": request.assign_type.value,
                "assigned": result.assigned_count,
                "skipped": result.skipped_count,
            },
        )
        return result

    # -- internals --------------------------------------------------------------

    def _assign(
        self,
        lead_id: int,
        employee_id: int,
        actor: Actor,
        team: tuple[int, ...] | None,
        reassigned_by_id: int | None,
        event_type: AssignmentEventType,
        skip_if_assigned_to_target: bool = False,
    ) -> tuple[Lead, str | None]:
        now = self.clock()
        previous: dict[str, int | None] = {}

        def mutate(lead: Lead) -> str | None:
            self._authorize_lead(lead, actor, team)
            if skip_if_assigned_to_target and lead.assigned_to_id == employee_id:
                return ALREADY_ASSIGNED
            before = lead.assigned_to_id
            previous["id"] = hand_off(
                lead,
                employee_id,
                now,
                reassigned_by_id=reassigned_by_id,
                reset_same_assignee=self.config.SAME_EMPLOYEE_RESETS_CALL_STATUS,
            )
            self.assert_invariants(lead, before)
            return None

        lead, outcome = self.store.read_modify_write(
            lead_id,
            mutate,
            max_retries=self.config.ASSIGNMENT_MAX_RETRIES,
            should_save=lambda result: result is None,
        )
        if outcome is None:
            self._emit(lead, event_type, actor, now, previous=previous.get("id"))
        return lead, outcome

    def authorize_target(
        self,
        employee_id: int,
        actor: Actor,
        teams: TeamCache | None = None,
    ) -> tuple[int, ...] | None:
        """Resolve the target employee and, for managers, the manager's team.

        Returns the team for manager actors and None for admins.
        """
        if not (actor.is_manager or actor.is_admin):
            raise AuthorizationError("Only managers and admins can assign leads.")
        target = self.directory.get_user(employee_id)
        if target.role != UserRole.EMPLOYEE:
            raise ValidationError("employee_id", f"User {employee_id} is not an employee")
        if not target.is_active:
            raise ValidationError("employee_id", f"Employee {employee_id} is not active")
        if actor.is_admin:
            return None
        team = (teams or TeamCache(self.directory)).employees_of(actor.id)
        if employee_id not in team:
            raise AuthorizationError("Can only assign to employees under your management")
        return team

    @staticmethod
    def _authorize_lead(lead: Lead, actor: Actor, team: tuple[int, ...] | None) -> None:
        if actor.is_admin:
            return
        if team is None or not can_manage_lead(actor.id, lead.created_by_id, lead.assigned_to_id, team):
            raise AuthorizationError(f"Not authorized to assign lead {lead.id}")

    @staticmethod
    def _auto_assign_provenance(person: DirectoryUser, assign_type: AssignType) -> int | None:
        if assign_type == AssignType.MANAGER:
            return person.id
        return person.manager_id

    @staticmethod
    def assert_invariants(lead: Lead, assignee_before: int | None) -> None:
        if lead.assigned_to_id != assignee_before and lead.call_status != CallStatus.PENDING:
            raise ServiceError(f"Lead {lead.id} changed assignee without resetting call status")
        if not conditional_fields_consistent(lead):
            raise ServiceError(f"Lead {lead.id} has status fields inconsistent with {lead.status.value}")

    def _emit(
        self,
        lead: Lead,
        event_type: AssignmentEventType,
        actor: Actor,
        now: datetime,
        previous: int | None,
    ) -> None:
        self.audit_sink.emit(
            AssignmentEvent(
                lead_id=lead.id,
                event_type=event_type,
                actor_id=actor.id,
                timestamp=now,
                employee_id=lead.assigned_to_id,
                previous_employee_id=previous,
            )
        )

