"""
Payout model: money owed to a venue owner for a completed booking, or to an
organizer for the ticket sales of a finished event.

The platform commission is split off the gross amount with the same
half-up rounding as payment fees. (type, reference_id) is unique, so each
booking or event is paid out at most once.
"""

from sqlalchemy import (
    Column, Integer, String, Float, DateTime, ForeignKey, Index, CheckConstraint, UniqueConstraint,
)

from app.db.base import Base, TimestampMixin
from app.models.enums import PayoutStatus, PayoutType, check_in


class Payout(Base, TimestampMixin):
    __tablename__ = "payouts"

    id = Column(Integer, primary_key=True, index=True)
    recipient_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(20), nullable=False)
    # Booking id for venue_booking payouts, event id for event_tickets payouts
    reference_id = Column(Integer, nullable=False)

    gross_amount = Column(Integer, nullable=False)
    platform_commission_percentage = Column(Float, nullable=False)
    platform_commission = Column(Integer, nullable=False)
    net_amount = Column(Integer, nullable=False)

    bank_details = Column(String(500), nullable=True)
    status = Column(String(20), nullable=False, default=PayoutStatus.PENDING.value)
    processed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    failure_reason = Column(String(500), nullable=True)

    __table_args__ = (
        UniqueConstraint("type", "reference_id", name="uq_payout_reference"),
        Index("ix_payouts_status_created", "status", "created_at"),
        CheckConstraint("gross_amount > 0", name="check_payout_gross_positive"),
        CheckConstraint("net_amount = gross_amount - platform_commission", name="check_payout_net"),
        CheckConstraint(check_in("type", PayoutType), name="check_payout_type"),
        CheckConstraint(check_in("status", PayoutStatus), name="check_payout_status"),
    )

    def __repr__(self) -> str:
        return (
            f"<Payout(id={self.id}, type={self.type}, reference={self.reference_id}, "
            f"net={self.net_amount}, status={self.status})>"
        )
