"""Lead request/result schemas for engine contracts."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator

from telecrm.core.enums import (
    AssignType,
    CallStatus,
    DeadLeadReason,
    LeadStatus,
    Region,
    Sector,
)
from telecrm.orchestration.state_machine import StatusFields


class LeadCreateRequest(BaseModel):
    name: str = Field(default="", max_length=255)
    phone: str = Field(min_length=3, max_length=40)
    email: str | None = Field(default=None, max_length=320)
    sector: Sector = Sector.OTHER
    region: Region = Region.MAHARASHTRA
    notes: str | None = Field(default=None, max_length=10000)

    @field_validator("name", "phone")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()


class StatusUpdateRequest(BaseModel):
    status: LeadStatus
    follow_up_date: datetime | None = None
    selling_price: float | None = None
    loss_reason: str | None = Field(default=None, max_length=500)
    dead_lead_reason: DeadLeadReason | None = None

    @field_validator("follow_up_date")
    @classmethod
    def _naive_utc(cls, value: datetime | None) -> datetime | None:
        # Stored datetimes are naive UTC.
        if value is not None and value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    def to_fields(self) -> StatusFields:
        return StatusFields(
            follow_up_date=self.follow_up_date,
            selling_price=self.selling_price,
            loss_reason=self.loss_reason,
            dead_lead_reason=self.dead_lead_reason,
        )


class AutoAssignRequest(BaseModel):
    status: LeadStatus
    assign_type: AssignType
    person_id: int
    count: int = Field(ge=1)
    sector: Sector | None = None
    region: Region | None = None


class SkippedLead(BaseModel):
    lead_id: int
    reason: str


class LeadError(BaseModel):
    lead_id: int
    error: str
    error_type: str = "TeleCRMException"


class BulkAssignResult(BaseModel):
    assigned: list[int] = Field(default_factory=list)
    skipped: list[SkippedLead] = Field(default_factory=list)
    errors: list[LeadError] = Field(default_factory=list)
    cancelled: bool = False


class AutoAssignResult(BaseModel):
    message: str = "Auto assignment completed"
    assigned_count: int = 0
    skipped_count: int = 0
    total_processed: int = 0
    assigned_lead_ids: list[int] = Field(default_factory=list)
    errors: list[LeadError] = Field(default_factory=list)
    cancelled: bool = False


class SweepResult(BaseModel):
    message: str
    manager_id: int
    eligible_count: int = 0
    reassigned_count: int = 0
    reassigned_lead_ids: list[int] = Field(default_factory=list)
    unmoved_lead_ids: list[int] = Field(default_factory=list)
    errors: list[LeadError] = Field(default_factory=list)
    cancelled: bool = False


class AssignmentHistoryEntry(BaseModel):
    employee_id: int | None
    timestamp: datetime
    status: LeadStatus
    reassigned_by_id: int | None = None
    is_current: bool = False


class LeadResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    phone: str
    email: str | None = None
    sector: Sector
    region: Region
    status: LeadStatus
    call_status: CallStatus
    assigned_to_id: int | None = None
    created_by_id: int | None = None
    assigned_date: datetime | None = None
    follow_up_date: datetime | None = None
    selling_price: float | None = None
    loss_reason: str | None = None
    reassignment_date: datetime | None = None
    dead_lead_reason: DeadLeadReason | None = None
    dead_lead_date: datetime | None = None
    call_attempts: int = 0
    last_call_attempt: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class DeadLeadPage(BaseModel):
    leads: list[LeadResponse]
    total: int
    page: int
    limit: int
    total_pages: int
