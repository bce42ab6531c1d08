"""Enums for the telecrm lead lifecycle.

Values are title case to match what the calling UI and the stored records use.
"""

from __future__ import annotations

import enum


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"


class LeadStatus(str, enum.Enum):
    """Sales pipeline status. Exactly one applies to a lead at any time."""

    NEW = "New"
    INTERESTED = "Interested"
    NOT_INTERESTED = "Not Interested"
    HOT = "Hot"
    FOLLOW_UP = "Follow-up"
    WON = "Won"
    LOST = "Lost"
    DEAD = "Dead"


class CallStatus(str, enum.Enum):
    """Whether the current assignee has acted on the lead since the last hand-off."""

    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    NOT_REQUIRED = "Not Required"


class Sector(str, enum.Enum):
    TECHNOLOGY = "Technology"
    HEALTHCARE = "Healthcare"
    FINANCE = "Finance"
    EDUCATION = "Education"
    REAL_ESTATE = "Real Estate"
    RETAIL = "Retail"
    MANUFACTURING = "Manufacturing"
    OTHER = "Other"


class Region(str, enum.Enum):
    MAHARASHTRA = "Maharashtra"
    GUJARAT = "Gujarat"
    KARNATAKA = "Karnataka"
    TAMIL_NADU = "Tamil Nadu"
    DELHI = "Delhi"
    TELANGANA = "Telangana"
    WEST_BENGAL = "West Bengal"
    RAJASTHAN = "Rajasthan"
    UTTAR_PRADESH = "Uttar Pradesh"
    OTHER = "Other"


class DeadLeadReason(str, enum.Enum):
    NO_ANSWER = "No Answer"
    WRONG_NUMBER = "Wrong Number"
    SWITCHED_OFF = "Switched Off"
    NOT_REACHABLE = "Not Reachable"
    DO_NOT_CALL = "Do Not Call"
    DUPLICATE = "Duplicate"
    OTHER = "Other"


class AssignType(str, enum.Enum):
    EMPLOYEE = "employee"
    MANAGER = "manager"


class AssignmentEventType(str, enum.Enum):
    ALLOCATED = "Allocated"
    REASSIGNED = "Reassigned"
    AUTO_ASSIGNED = "AutoAssigned"
    REDISTRIBUTED = "Redistributed"


# Statuses whose reassignment_date makes them eligible for redistribution.
REDISTRIBUTABLE_STATUSES = (LeadStatus.HOT, LeadStatus.LOST)

ALREADY_ASSIGNED = "Already assigned to this employee"
