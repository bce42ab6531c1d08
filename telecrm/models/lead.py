"""Lead and lead assignment history models."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from telecrm.core.enums import CallStatus, DeadLeadReason, LeadStatus, Region, Sector
from telecrm.models.base import AuditMixin, Base, enum_column, utcnow_naive


class Lead(Base, AuditMixin):
    """A sales prospect tracked through assignment, calling and conversion.

    Status-conditional columns (follow_up_date, selling_price, loss_reason,
    reassignment_date, dead_lead_reason, dead_lead_date) are only ever written
    through the status transition validator.
    """

    __tablename__ = "leads"
    __table_args__ = (
        Index("idx_leads_phone", "phone"),
        Index("idx_leads_assigned_to", "assigned_to_id"),
        Index("idx_leads_status", "status"),
        Index("idx_leads_created_at", "created_at"),
        Index("idx_leads_status_reassignment", "status", "reassignment_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    phone: Mapped[str] = mapped_column(String(40), nullable=False)
    email: Mapped[str | None] = mapped_column(String(320))
    sector: Mapped[Sector] = mapped_column(enum_column(Sector), default=Sector.OTHER, nullable=False)
    region: Mapped[Region] = mapped_column(enum_column(Region), default=Region.MAHARASHTRA, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)

    status: Mapped[LeadStatus] = mapped_column(enum_column(LeadStatus), default=LeadStatus.NEW, nullable=False)
    call_status: Mapped[CallStatus] = mapped_column(
        enum_column(CallStatus), default=CallStatus.PENDING, nullable=False
    )

    assigned_to_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    created_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    assigned_date: Mapped[datetime | None] = mapped_column(DateTime)

    follow_up_date: Mapped[datetime | None] = mapped_column(DateTime)
    selling_price: Mapped[float | None] = mapped_column(Float)
    loss_reason: Mapped[str | None] = mapped_column(String(500))
    reassignment_date: Mapped[datetime | None] = mapped_column(DateTime)
    dead_lead_reason: Mapped[DeadLeadReason | None] = mapped_column(enum_column(DeadLeadReason))
    dead_lead_date: Mapped[datetime | None] = mapped_column(DateTime)

    call_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_call_attempt: Mapped[datetime | None] = mapped_column(DateTime)

    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    previous_assignments: Mapped[list["LeadAssignment"]] = relationship(
        back_populates="lead",
        order_by="LeadAssignment.id",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version_id}


class LeadAssignment(Base):
    """Append-only record of an assignee handing a lead off.

    Rows are history only; ownership always lives on Lead.assigned_to_id.
    """

    __tablename__ = "lead_assignments"
    __table_args__ = (Index("idx_lead_assignments_lead", "lead_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    lead_id: Mapped[int] = mapped_column(ForeignKey("leads.id", ondelete="CASCADE"), nullable=False)
    employee_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    assigned_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow_naive, nullable=False)
    status: Mapped[LeadStatus] = mapped_column(enum_column(LeadStatus), nullable=False)
    reassigned_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))

    lead: Mapped[Lead] = relationship(back_populates="previous_assignments")
