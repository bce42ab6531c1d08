"""Pydantic contracts for lead lifecycle requests and results."""

from telecrm.schemas.leads import (
    AssignmentHistoryEntry,
    AutoAssignRequest,
    AutoAssignResult,
    BulkAssignResult,
    DeadLeadPage,
    LeadCreateRequest,
    LeadError,
    LeadResponse,
    SkippedLead,
    StatusUpdateRequest,
    SweepResult,
)

__all__ = [
    "AssignmentHistoryEntry",
    "AutoAssignRequest",
    "AutoAssignResult",
    "BulkAssignResult",
    "DeadLeadPage",
    "LeadCreateRequest",
    "LeadError",
    "LeadResponse",
    "SkippedLead",
    "StatusUpdateRequest",
    "SweepResult",
]
