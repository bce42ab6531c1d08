from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from telecrm.auth.rbac import Actor
from telecrm.core.enums import AssignmentEventType, CallStatus, DeadLeadReason, LeadStatus, UserRole
from telecrm.core.exceptions import AuthorizationError, DuplicateLeadError, NotFoundError, ValidationError
from telecrm.models import User
from telecrm.schemas.leads import LeadCreateRequest, StatusUpdateRequest


def _employee(employee_id: int) -> Actor:
    return Actor(id=employee_id, role=UserRole.EMPLOYEE)


def test_create_and_fetch_lead(lead_service, org):
    created = lead_service.create_lead(
        LeadCreateRequest(name="  Ari ", phone=" 9876543210 ", email="ari@example.com"),
        org.manager,
    )

    fetched = lead_service.get_lead(created.id)
    assert fetched.name == "Ari"
    assert fetched.phone == "9876543210"
    assert fetched.status == LeadStatus.NEW
    assert fetched.call_status == CallStatus.PENDING
    assert fetched.assigned_to_id is None
    assert fetched.created_by_id == org.manager.id


def test_create_rejects_duplicate_phone(lead_service, org):
    lead_service.create_lead(LeadCreateRequest(name="Ari", phone="9876543210"), org.manager)

    with pytest.raises(DuplicateLeadError):
        lead_service.create_lead(LeadCreateRequest(name="Someone", phone="9876543210"), org.admin)


def test_employee_cannot_create_leads(lead_service, org):
    with pytest.raises(AuthorizationError):
        lead_service.create_lead(LeadCreateRequest(phone="12345"), _employee(org.employee_a))


def test_get_missing_lead_raises(lead_service, org):
    with pytest.raises(NotFoundError):
        lead_service.get_lead(404)


def test_hot_lead_won_with_reassignment_to_teammate(lead_service, org, make_lead, clock, sink):
    lead = make_lead(created_by_id=org.manager.id, assigned_to_id=org.employee_a)
    lead_service.update_status(lead.id, StatusUpdateRequest(status=LeadStatus.HOT), _employee(org.employee_a))
    assert lead_service.get_lead(lead.id).reassignment_date == clock.now + timedelta(days=14)

    clock.advance(days=2)
    updated = lead_service.update_status(
        lead.id,
        StatusUpdateRequest(status=LeadStatus.WON, selling_price=50000),
        org.manager,
        assign_to=org.employee_b,
    )

    assert updated.status == LeadStatus.WON
    assert updated.selling_price == 50000
    assert updated.reassignment_date is None
    assert updated.assigned_to_id == org.employee_b
    assert updated.call_status == CallStatus.PENDING
    assert updated.previous_assignments[-1].employee_id == org.employee_a
    assert updated.previous_assignments[-1].status == LeadStatus.HOT
    assert sink.events[-1].event_type == AssignmentEventType.REASSIGNED


def test_rejected_transition_leaves_lead_unchanged(lead_service, org, make_lead, session):
    lead = make_lead(created_by_id=org.manager.id, assigned_to_id=org.employee_a, status=LeadStatus.INTERESTED)

    with pytest.raises(ValidationError):
        lead_service.update_status(
            lead.id,
            StatusUpdateRequest(status=LeadStatus.WON),
            org.manager,
            assign_to=org.employee_b,
        )

    stored = lead_service.get_lead(lead.id)
    assert stored.status == LeadStatus.INTERESTED
    assert stored.assigned_to_id == org.employee_a
    assert stored.previous_assignments == []


def test_employee_may_only_update_own_leads(lead_service, org, make_lead):
    lead = make_lead(created_by_id=org.manager.id, assigned_to_id=org.employee_b)

    with pytest.raises(AuthorizationError):
        lead_service.update_status(
            lead.id, StatusUpdateRequest(status=LeadStatus.INTERESTED), _employee(org.employee_a)
        )


def test_employee_cannot_reassign(lead_service, org, make_lead):
    lead = make_lead(created_by_id=org.manager.id, assigned_to_id=org.employee_a)

    with pytest.raises(AuthorizationError):
        lead_service.update_status(
            lead.id,
            StatusUpdateRequest(status=LeadStatus.INTERESTED),
            _employee(org.employee_a),
            assign_to=org.employee_b,
        )


def test_manager_reassign_target_must_be_on_team(lead_service, org, make_lead):
    lead = make_lead(created_by_id=org.manager.id, assigned_to_id=org.employee_a)

    with pytest.raises(AuthorizationError, match="under your management"):
        lead_service.update_status(
            lead.id,
            StatusUpdateRequest(status=LeadStatus.INTERESTED),
            org.manager,
            assign_to=org.outsider,
        )


def test_status_update_cannot_reassign_to_inactive_employee(lead_service, session, org, make_lead):
    lead = make_lead(created_by_id=org.manager.id, assigned_to_id=org.employee_a)
    session.get(User, org.employee_b).is_active = False
    session.commit()

    with pytest.raises(ValidationError, match="not active"):
        lead_service.update_status(
            lead.id,
            StatusUpdateRequest(status=LeadStatus.INTERESTED),
            org.admin,
            assign_to=org.employee_b,
        )

    unchanged = lead_service.get_lead(lead.id)
    assert unchanged.status == LeadStatus.NEW
    assert unchanged.assigned_to_id == org.employee_a


def test_follow_up_then_interested_clears_follow_up_date(lead_service, org, make_lead, clock):
    lead = make_lead(created_by_id=org.manager.id, assigned_to_id=org.employee_a)
    actor = _employee(org.employee_a)

    lead_service.update_status(
        lead.id,
        StatusUpdateRequest(status=LeadStatus.FOLLOW_UP, follow_up_date=clock.now + timedelta(days=3)),
        actor,
    )
    updated = lead_service.update_status(lead.id, StatusUpdateRequest(status=LeadStatus.INTERESTED), actor)

    assert updated.follow_up_date is None


def test_follow_up_date_with_offset_is_stored_as_utc(lead_service, org, make_lead):
    lead = make_lead(created_by_id=org.manager.id, assigned_to_id=org.employee_a)

    updated = lead_service.update_status(
        lead.id,
        StatusUpdateRequest(status=LeadStatus.FOLLOW_UP, follow_up_date="2026-03-05T10:00:00+05:30"),
        _employee(org.employee_a),
    )

    assert updated.follow_up_date == datetime(2026, 3, 5, 4, 30)


def test_past_follow_up_date_leaves_lead_untouched(lead_service, org, make_lead, clock):
    lead = make_lead(created_by_id=org.manager.id, assigned_to_id=org.employee_a)

    with pytest.raises(ValidationError, match="cannot be in the past"):
        lead_service.update_status(
            lead.id,
            StatusUpdateRequest(status=LeadStatus.FOLLOW_UP, follow_up_date=clock.now - timedelta(days=1)),
            _employee(org.employee_a),
        )

    assert lead_service.get_lead(lead.id).status == LeadStatus.NEW


def test_dead_lead_cannot_be_revived_by_status_update(lead_service, org, make_lead, clock):
    lead = make_lead(created_by_id=org.manager.id, assigned_to_id=org.employee_a)
    dead = lead_service.mark_dead(lead.id, DeadLeadReason.WRONG_NUMBER, org.manager)
    assert dead.status == LeadStatus.DEAD
    assert dead.dead_lead_date == clock.now

    with pytest.raises(ValidationError):
        lead_service.update_status(lead.id, StatusUpdateRequest(status=LeadStatus.NEW), org.manager)


def test_reactivate_resets_dead_fields_and_counters(lead_service, org, make_lead, clock):
    lead = make_lead(
        created_by_id=org.manager.id,
        assigned_to_id=org.employee_a,
        call_attempts=5,
        last_call_attempt=clock.now,
    )
    lead_service.mark_dead(lead.id, DeadLeadReason.NO_ANSWER, org.manager)

    revived = lead_service.reactivate(lead.id, org.admin)

    assert revived.status == LeadStatus.NEW
    assert revived.dead_lead_reason is None
    assert revived.dead_lead_date is None
    assert revived.call_attempts == 0
    assert revived.last_call_attempt is None


def test_reactivate_requires_admin_and_dead_lead(lead_service, org, make_lead):
    lead = make_lead(created_by_id=org.manager.id)

    with pytest.raises(AuthorizationError):
        lead_service.reactivate(lead.id, org.manager)
    with pytest.raises(ValidationError, match="Lead is not dead"):
        lead_service.reactivate(lead.id, org.admin)


def test_call_status_and_attempts_belong_to_assignee(lead_service, org, make_lead, clock):
    lead = make_lead(created_by_id=org.manager.id, assigned_to_id=org.employee_a)
    actor = _employee(org.employee_a)

    in_progress = lead_service.update_call_status(lead.id, CallStatus.IN_PROGRESS, actor)
    assert in_progress.call_status == CallStatus.IN_PROGRESS

    clock.advance(minutes=10)
    called = lead_service.record_call_attempt(lead.id, actor, notes="Asked for a quote")
    assert called.call_attempts == 1
    assert called.last_call_attempt == clock.now
    assert called.call_status == CallStatus.COMPLETED
    assert "Asked for a quote" in called.notes

    with pytest.raises(AuthorizationError):
        lead_service.update_call_status(lead.id, CallStatus.PENDING, _employee(org.employee_b))


def test_assignment_history_view_is_newest_first(lead_service, assignment, org, make_lead, clock):
    lead = make_lead(created_by_id=org.manager.id, assigned_to_id=org.employee_a, status=LeadStatus.INTERESTED)
    clock.advance(hours=1)
    assignment.reassign(lead.id, org.employee_b, org.manager)

    history = lead_service.get_assignment_history(lead_service.get_lead(lead.id))

    assert [entry.employee_id for entry in history] == [org.employee_b, org.employee_a]
    assert history[0].is_current is True
    assert history[1].reassigned_by_id == org.manager.id
    assert history[1].status == LeadStatus.INTERESTED


def test_list_employee_leads_scopes(lead_service, org, make_lead):
    mine = make_lead(created_by_id=org.manager.id, assigned_to_id=org.employee_a)
    make_lead(created_by_id=org.manager.id, assigned_to_id=org.employee_b)

    leads = lead_service.list_employee_leads(org.employee_a, _employee(org.employee_a))
    assert [lead.id for lead in leads] == [mine.id]

    with pytest.raises(AuthorizationError):
        lead_service.list_employee_leads(org.employee_b, _employee(org.employee_a))
    with pytest.raises(AuthorizationError):
        lead_service.list_employee_leads(org.outsider, org.manager)


def test_dead_lead_page(lead_service, org, make_lead, clock):
    for _ in range(3):
        lead = make_lead(created_by_id=org.manager.id)
        lead_service.mark_dead(lead.id, DeadLeadReason.SWITCHED_OFF, org.admin)
        clock.advance(minutes=1)
    other = make_lead(created_by_id=org.other_manager.id)
    lead_service.mark_dead(other.id, DeadLeadReason.DO_NOT_CALL, org.admin)

    page = lead_service.list_dead_leads(org.admin, created_by=org.manager.id, page=1, limit=2)

    assert page.total == 3
    assert page.total_pages == 2
    assert len(page.leads) == 2
    assert page.leads[0].dead_lead_date >= page.leads[1].dead_lead_date

    by_reason = lead_service.list_dead_leads(org.admin, reason=DeadLeadReason.DO_NOT_CALL)
    assert [item.id for item in by_reason.leads] == [other.id]

    with pytest.raises(AuthorizationError):
        lead_service.list_dead_leads(org.manager)
