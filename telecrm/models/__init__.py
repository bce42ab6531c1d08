"""SQLAlchemy model package for the telecrm schema."""

from telecrm.models.base import Base, utcnow_naive
from telecrm.models.lead import Lead, LeadAssignment
from telecrm.models.user import User

__all__ = [
    "Base",
    "Lead",
    "LeadAssignment",
    "User",
    "utcnow_naive",
]
