"""Lead service: creation, status updates, call tracking and history views."""

from __future__ import annotations

import logging
import math
from datetime import timedelta

from sqlalchemy.orm import Session

from telecrm.auth.rbac import Actor, can_manage_lead, require_admin, require_scopes
from telecrm.core.config import Config, get_config
from telecrm.core.enums import AssignmentEventType, CallStatus, DeadLeadReason, LeadStatus, UserRole
from telecrm.core.exceptions import (
    AuthorizationError,
    DuplicateLeadError,
    NotFoundError,
    ValidationError,
)
from telecrm.models import Lead
from telecrm.orchestration.state_machine import StatusFields, apply_transition, validate_transition
from telecrm.schemas.leads import (
    AssignmentHistoryEntry,
    DeadLeadPage,
    LeadCreateRequest,
    LeadResponse,
    StatusUpdateRequest,
)
from telecrm.services.assignment_service import AssignmentService, hand_off
from telecrm.services.audit_service import AssignmentEvent
from telecrm.services.base_service import BaseService
from telecrm.services.lead_store import LeadQuery

logger = logging.getLogger(__name__)


class LeadService(BaseService):
    """Lead lifecycle operations outside of pure ownership changes.

    Status writes always go through the transition validator; a rejected
    transition leaves the stored record untouched.
    """

    def __init__(
        self,
        db: Session | None = None,
        assignment: AssignmentService | None = None,
        config: Config | None = None,
    ) -> None:
        super().__init__(db=db)
        self.config = config or get_config()
        self.assignment = assignment or AssignmentService(db=self.db, config=self.config)

    @property
    def store(self):
        return self.assignment.store

    @property
    def directory(self):
        return self.assignment.directory

    @property
    def clock(self):
        return self.assignment.clock

    def create_lead(self, request: LeadCreateRequest, actor: Actor) -> Lead:
        require_scopes(actor, ["leads.create"])
        if self.store.phone_exists(request.phone):
            raise DuplicateLeadError(request.phone)
        now = self.clock()
        lead = Lead(
            name=request.name,
            phone=request.phone,
            email=request.email,
            sector=request.sector,
            region=request.region,
            notes=request.notes,
            status=LeadStatus.NEW,
            call_status=CallStatus.PENDING,
            assigned_to_id=None,
            created_by_id=actor.id,
            created_at=now,
            updated_at=now,
        )
        self.store.save(lead)
        logger.info(
            "lead.created",
            extra={"event": "lead.created", "lead_id": lead.id, "actor_id": actor.id},
        )
        return lead

    def get_lead(self, lead_id: int) -> Lead:
        lead = self.store.find_by_id(lead_id)
        if lead is None:
            raise NotFoundError(f"Lead {lead_id} not found")
        return lead

    def update_status(
        self,
        lead_id: int,
        request: StatusUpdateRequest,
        actor: Actor,
        assign_to: int | None = None,
    ) -> Lead:
        """Change a lead's status, optionally moving it to another employee in the same write.

        Employees may only update leads assigned to them and may not reassign.
        Managers may update leads in their scope and reassign within their team.
        """
        require_scopes(actor, ["leads.status.update"])
        team = self._team_for(actor)
        if assign_to is not None:
            if actor.role == UserRole.EMPLOYEE:
                raise AuthorizationError("Employees cannot reassign leads.")
            self.assignment.authorize_target(assign_to, actor)

        now = self.clock()
        previous: dict[str, int | None] = {}

        def mutate(lead: Lead) -> bool:
            self._authorize_lead(lead, actor, team)
            before = lead.assigned_to_id
            if lead.status == LeadStatus.DEAD and request.status != LeadStatus.DEAD:
                raise ValidationError("status", "Dead leads can only be brought back through reactivation")
            result = validate_transition(
                current=lead.status,
                target=request.status,
                candidate=request.to_fields(),
                now=now,
                hot_cooling_off=self._hot_window(),
                lost_cooling_off=self._lost_window(),
            )
            if assign_to is not None:
                previous["id"] = hand_off(
                    lead,
                    assign_to,
                    now,
                    reassigned_by_id=actor.id,
                    reset_same_assignee=self.config.SAME_EMPLOYEE_RESETS_CALL_STATUS,
                )
            apply_transition(lead, result, now)
            self.assignment.assert_invariants(lead, before)
            return True

        lead, _ = self.store.read_modify_write(lead_id, mutate, max_retries=self.config.ASSIGNMENT_MAX_RETRIES)
        if assign_to is not None:
            self.assignment.audit_sink.emit(
                AssignmentEvent(
                    lead_id=lead.id,
                    event_type=AssignmentEventType.REASSIGNED,
                    actor_id=actor.id,
                    timestamp=now,
                    employee_id=lead.assigned_to_id,
                    previous_employee_id=previous.get("id"),
                )
            )
        logger.info(
            "lead.status.updated",
            extra={
                "event": "lead.status.updated",
                "lead_id": lead.id,
                "status": lead.status.value,
                "actor_id": actor.id,
            },
        )
        return lead

    def mark_dead(self, lead_id: int, reason: DeadLeadReason, actor: Actor) -> Lead:
        return self.update_status(
            lead_id,
            StatusUpdateRequest(status=LeadStatus.DEAD, dead_lead_reason=reason),
            actor,
        )

    def reactivate(self, lead_id: int, actor: Actor) -> Lead:
        """Bring a Dead lead back to New, clearing dead-lead fields and call counters."""
        require_admin(actor)
        now = self.clock()

        def mutate(lead: Lead) -> bool:
            if lead.status != LeadStatus.DEAD:
                raise ValidationError("status", "Lead is not dead")
            result = validate_transition(
                current=lead.status,
                target=LeadStatus.NEW,
                candidate=StatusFields(),
                now=now,
                hot_cooling_off=self._hot_window(),
            )
            apply_transition(lead, result, now)
            return True

        lead, _ = self.store.read_modify_write(lead_id, mutate, max_retries=self.config.ASSIGNMENT_MAX_RETRIES)
        logger.info("lead.reactivated", extra={"event": "lead.reactivated", "lead_id": lead.id, "actor_id": actor.id})
        return lead

    def update_call_status(self, lead_id: int, call_status: CallStatus, actor: Actor) -> Lead:
        """The current assignee reports progress on their call."""
        require_scopes(actor, ["leads.call.update"])
        now = self.clock()

        def mutate(lead: Lead) -> bool:
            self._require_assignee(lead, actor)
            lead.call_status = call_status
            lead.updated_at = now
            return True

        lead, _ = self.store.read_modify_write(lead_id, mutate, max_retries=self.config.ASSIGNMENT_MAX_RETRIES)
        return lead

    def record_call_attempt(self, lead_id: int, actor: Actor, notes: str | None = None) -> Lead:
        """Count a call made by the current assignee and mark the call as completed."""
        require_scopes(actor, ["leads.call.update"])
        now = self.clock()

        def mutate(lead: Lead) -> bool:
            self._require_assignee(lead, actor)
            lead.call_attempts = (lead.call_attempts or 0) + 1
            lead.last_call_attempt = now
            lead.call_status = CallStatus.COMPLETED
            if notes and notes.strip():
                entry = f"[{now.isoformat()}] {actor.id}: {notes.strip()}"
                lead.notes = f"{lead.notes}\n\n{entry}" if lead.notes else entry
            lead.updated_at = now
            return True

        lead, _ = self.store.read_modify_write(lead_id, mutate, max_retries=self.config.ASSIGNMENT_MAX_RETRIES)
        return lead

    def list_employee_leads(self, employee_id: int, actor: Actor) -> list[Lead]:
        if actor.role == UserRole.EMPLOYEE and actor.id != employee_id:
            raise AuthorizationError("Employees can only list their own leads.")
        if actor.is_manager and employee_id not in (self._team_for(actor) or ()):
            raise AuthorizationError("Employee is not under your management.")
        return self.store.find_many(LeadQuery(assigned_to=employee_id), sort="created_desc")

    def list_dead_leads(
        self,
        actor: Actor,
        created_by: int | None = None,
        reason: DeadLeadReason | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> DeadLeadPage:
        require_admin(actor)
        if page < 1 or limit < 1:
            raise ValidationError("page", "page and limit must be positive")
        query = LeadQuery(status=LeadStatus.DEAD, created_by=created_by, dead_lead_reason=reason)
        total = self.store.count_documents(query)
        leads = self.store.find_many(query, sort="dead_desc", limit=limit, offset=(page - 1) * limit)
        return DeadLeadPage(
            leads=[LeadResponse.model_validate(lead) for lead in leads],
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit),
        )

    @staticmethod
    def get_assignment_history(lead: Lead) -> list[AssignmentHistoryEntry]:
        """Derived, newest-first view of who has held the lead.

        The current holder is represented by a synthetic entry stamped with the
        lead's ``updated_at``; nothing here is persisted.
        """
        entries = [
            AssignmentHistoryEntry(
                employee_id=lead.assigned_to_id,
                timestamp=lead.updated_at,
                status=lead.status,
                is_current=True,
            )
        ]
        entries.extend(
            AssignmentHistoryEntry(
                employee_id=item.employee_id,
                timestamp=item.assigned_at,
                status=item.status,
                reassigned_by_id=item.reassigned_by_id,
            )
            for item in lead.previous_assignments
        )
        return sorted(entries, key=lambda entry: entry.timestamp, reverse=True)

    # -- internals --------------------------------------------------------------

    def _hot_window(self) -> timedelta:
        return timedelta(days=self.config.HOT_COOLING_OFF_DAYS)

    def _lost_window(self) -> timedelta:
        return timedelta(days=self.config.LOST_COOLING_OFF_DAYS)

    def _team_for(self, actor: Actor) -> tuple[int, ...] | None:
        if actor.is_manager:
            return tuple(self.directory.find_employees_of_manager(actor.id))
        return None

    @staticmethod
    def _authorize_lead(lead: Lead, actor: Actor, team: tuple[int, ...] | None) -> None:
        if actor.is_admin:
            return
        if actor.role == UserRole.EMPLOYEE:
            LeadService._require_assignee(lead, actor)
            return
        if team is None or not can_manage_lead(actor.id, lead.created_by_id, lead.assigned_to_id, team):
            raise AuthorizationError(f"Not authorized to update lead {lead.id}")

    @staticmethod
    def _require_assignee(lead: Lead, actor: Actor) -> None:
        if lead.assigned_to_id is None or lead.assigned_to_id != actor.id:
            raise AuthorizationError(f"Lead {lead.id} is not assigned to you")
