"""
Event model with attendee capacity tracking and dual approval state.

Key design decisions:
- `current_attendees` is denormalized so the capacity check and the increment
  are a single conditional UPDATE (no COUNT over tickets)
- CHECK current_attendees <= max_attendees is the final safety net against
  overselling
- The two approval stages are flat columns (venue_approval_*, admin_approval_*)
  so each stage can be decided with a conditional UPDATE on its own status
- private_code is written once at creation and never regenerated
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Column, Integer, String, Text, Date, Time, DateTime, ForeignKey, Index, CheckConstraint, UniqueConstraint,
)

from app.db.base import Base, TimestampMixin
from app.models.enums import (
    ApprovalStatus, ApprovalStage, EventStatus, EventType, TicketPricing, check_in,
)


@dataclass(frozen=True)
class Approval:
    status: str
    reason: Optional[str]
    responded_by: Optional[int]
    responded_at: Optional[datetime]


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    organizer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    venue_id = Column(Integer, ForeignKey("venues.id"), nullable=False, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=True)

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    event_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    event_type = Column(String(20), nullable=False, default=EventType.PUBLIC.value)
    ticket_type = Column(String(20), nullable=False, default=TicketPricing.FREE.value)
    ticket_price = Column(Integer, nullable=False, default=0)
    max_attendees = Column(Integer, nullable=False)
    current_attendees = Column(Integer, nullable=False, default=0)
    private_code = Column(String(16), nullable=True)

    status = Column(String(20), nullable=False, default=EventStatus.PENDING.value)
    cancellation_reason = Column(String(500), nullable=True)

    venue_approval_status = Column(String(20), nullable=False, default=ApprovalStatus.PENDING.value)
    venue_approval_reason = Column(String(500), nullable=True)
    venue_approval_by = Column(Integer, nullable=True)
    venue_approval_at = Column(DateTime(timezone=True), nullable=True)

    admin_approval_status = Column(String(20), nullable=False, default=ApprovalStatus.PENDING.value)
    admin_approval_reason = Column(String(500), nullable=True)
    admin_approval_by = Column(Integer, nullable=True)
    admin_approval_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("max_attendees > 0", name="check_event_max_attendees_positive"),
        CheckConstraint("current_attendees >= 0", name="check_event_attendees_non_negative"),
        CheckConstraint("current_attendees <= max_attendees", name="check_event_attendees_lte_max"),
        CheckConstraint("ticket_price >= 0", name="check_event_price_non_negative"),
        CheckConstraint(
            "(ticket_type = 'free' AND ticket_price = 0) OR (ticket_type = 'paid' AND ticket_price > 0)",
            name="check_event_pricing",
        ),
        CheckConstraint(check_in("status", EventStatus), name="check_event_status"),
        CheckConstraint(check_in("event_type", EventType), name="check_event_type"),
        CheckConstraint(check_in("venue_approval_status", ApprovalStatus), name="check_event_venue_approval"),
        CheckConstraint(check_in("admin_approval_status", ApprovalStatus), name="check_event_admin_approval"),
        # Listing query: upcoming public events by date
        Index("ix_events_status_date", "status", "event_date"),
    )

    def approval(self, stage: ApprovalStage) -> Approval:
        prefix = f"{ApprovalStage(stage).value}_approval"
        return Approval(
            status=getattr(self, f"{prefix}_status"),
            reason=getattr(self, f"{prefix}_reason"),
            responded_by=getattr(self, f"{prefix}_by"),
            responded_at=getattr(self, f"{prefix}_at"),
        )

    @property
    def venue_approval(self) -> Approval:
        return self.approval(ApprovalStage.VENUE)

    @property
    def admin_approval(self) -> Approval:
        return self.approval(ApprovalStage.ADMIN)

    @property
    def is_private(self) -> bool:
        return self.event_type == EventType.PRIVATE

    @property
    def is_ticketable(self) -> bool:
        return (
            self.status == EventStatus.UPCOMING
            and self.venue_approval_status == ApprovalStatus.APPROVED
            and self.admin_approval_status == ApprovalStatus.APPROVED
        )

    @property
    def available_spots(self) -> int:
        return self.max_attendees - self.current_attendees

    def __repr__(self) -> str:
        return (
            f"<Event(id={self.id}, name={self.name}, status={self.status}, "
            f"attendees={self.current_attendees}/{self.max_attendees})>"
        )


class EventAccessRequest(Base, TimestampMixin):
    """
    A user's request to join a private event.

    The row is created only after the user presents the correct code, which
    is enough to see the event and buy tickets. The organizer reviews
    requests afterwards; a rejection revokes access.
    """

    __tablename__ = "event_access_requests"

    id = Column(Integer, primary_key=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    message = Column(String(500), nullable=True)
    status = Column(String(20), nullable=False, default=ApprovalStatus.PENDING.value)
    responded_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    responded_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_access_request"),
        CheckConstraint(check_in("status", ApprovalStatus), name="check_access_request_status"),
    )

    @property
    def grants_access(self) -> bool:
        return self.status != ApprovalStatus.REJECTED
