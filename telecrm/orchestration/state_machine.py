"""Status transition rules for the lead lifecycle.

Every status write goes through :func:`validate_transition`, which returns the
complete normalized set of status-conditional fields for the target status.
Fields that the target status does not own are always returned cleared, so
applying the result can never leave stale values behind.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from telecrm.core.enums import DeadLeadReason, LeadStatus
from telecrm.core.exceptions import ValidationError

LOST_COOLING_OFF = timedelta(days=14)


@dataclass(frozen=True)
class StatusFields:
    """Candidate or normalized status-conditional fields."""

    follow_up_date: datetime | None = None
    selling_price: float | None = None
    loss_reason: str | None = None
    reassignment_date: datetime | None = None
    dead_lead_reason: DeadLeadReason | None = None
    dead_lead_date: datetime | None = None


@dataclass(frozen=True)
class TransitionResult:
    status: LeadStatus
    fields: StatusFields
    reactivated: bool = False


def _coerce_dead_reason(value: DeadLeadReason | str | None) -> DeadLeadReason | None:
    if value is None or isinstance(value, DeadLeadReason):
        return value
    try:
        return DeadLeadReason(value)
    except ValueError as exc:
        raise ValidationError("dead_lead_reason", f"Unknown dead lead reason: {value}") from exc


def validate_transition(
    current: LeadStatus,
    target: LeadStatus,
    candidate: StatusFields,
    now: datetime,
    hot_cooling_off: timedelta,
    lost_cooling_off: timedelta = LOST_COOLING_OFF,
) -> TransitionResult:
    """Return the normalized fields for moving a lead from ``current`` to ``target``.

    Raises :class:`ValidationError` without side effects when a required field
    is missing. ``reassignment_date`` and ``dead_lead_date`` are computed here
    and never taken from the caller.
    """
    if current == LeadStatus.DEAD and target not in (LeadStatus.DEAD, LeadStatus.NEW):
        raise ValidationError("status", "Dead leads can only be reactivated to New")

    cleared = StatusFields()

    if target == LeadStatus.FOLLOW_UP:
        if candidate.follow_up_date is None:
            raise ValidationError("follow_up_date", "Follow-up date is required for Follow-up status")
        if candidate.follow_up_date < now.replace(hour=0, minute=0, second=0, microsecond=0):
            raise ValidationError("follow_up_date", "Follow-up date cannot be in the past")
        fields = replace(cleared, follow_up_date=candidate.follow_up_date)
    elif target == LeadStatus.WON:
        if candidate.selling_price is None:
            raise ValidationError("selling_price", "Selling price is required for Won status")
        if not math.isfinite(candidate.selling_price) or candidate.selling_price <= 0:
            raise ValidationError("selling_price", "Selling price must be a finite amount greater than zero")
        fields = replace(cleared, selling_price=candidate.selling_price)
    elif target == LeadStatus.LOST:
        loss_reason = (candidate.loss_reason or "").strip()
        if not loss_reason:
            raise ValidationError("loss_reason", "Loss reason is required for Lost status")
        fields = replace(cleared, loss_reason=loss_reason, reassignment_date=now + lost_cooling_off)
    elif target == LeadStatus.HOT:
        fields = replace(cleared, reassignment_date=now + hot_cooling_off)
    elif target == LeadStatus.DEAD:
        reason = _coerce_dead_reason(candidate.dead_lead_reason)
        if reason is None:
            raise ValidationError("dead_lead_reason", "Dead lead reason is required for Dead status")
        fields = replace(cleared, dead_lead_reason=reason, dead_lead_date=now)
    else:
        fields = cleared

    return TransitionResult(
        status=target,
        fields=fields,
        reactivated=current == LeadStatus.DEAD and target == LeadStatus.NEW,
    )


def apply_transition(lead, result: TransitionResult, now: datetime) -> None:
    """Write a validated transition onto ``lead`` in one step."""
    lead.status = result.status
    lead.follow_up_date = result.fields.follow_up_date
    lead.selling_price = result.fields.selling_price
    lead.loss_reason = result.fields.loss_reason
    lead.reassignment_date = result.fields.reassignment_date
    lead.dead_lead_reason = result.fields.dead_lead_reason
    lead.dead_lead_date = result.fields.dead_lead_date
    if result.reactivated:
        lead.call_attempts = 0
        lead.last_call_attempt = None
    lead.updated_at = now


def conditional_fields_consistent(lead) -> bool:
    """Check that only the fields owned by the lead's status are populated."""
    owned = {
        LeadStatus.FOLLOW_UP: {"follow_up_date"},
        LeadStatus.WON: {"selling_price"},
        LeadStatus.LOST: {"loss_reason", "reassignment_date"},
        LeadStatus.HOT: {"reassignment_date"},
        LeadStatus.DEAD: {"dead_lead_reason", "dead_lead_date"},
    }.get(lead.status, set())
    for name in (
        "follow_up_date",
        "selling_price",
        "loss_reason",
        "reassignment_date",
        "dead_lead_reason",
        "dead_lead_date",
    ):
        populated = getattr(lead, name) is not None
        if name in owned and name != "reassignment_date" and not populated:
            return False
        if name not in owned and populated:
            return False
    return True
