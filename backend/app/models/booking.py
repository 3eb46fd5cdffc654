"""
Booking model representing a request to use a venue for a time window.

Key design decisions:
- status tracks the owner's decision; payment_status tracks money, and only
  the payment orchestrator moves it to 'paid'
- Composite index on (venue_id, booking_date, status) serves the overlap
  check run on every create/accept
- Cancelled/rejected rows are kept for audit and ignored by conflict checks
"""

from sqlalchemy import Column, Integer, String, Date, Time, DateTime, ForeignKey, Index, CheckConstraint

from app.db.base import Base, TimestampMixin
from app.models.enums import BookingStatus, BookingPaymentStatus, check_in


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    requester_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    venue_id = Column(Integer, ForeignKey("venues.id"), nullable=False)
    # Set when an event is created against this booking
    event_id = Column(Integer, nullable=True)

    booking_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    expected_guests = Column(Integer, nullable=False, default=0)
    purpose = Column(String(500), nullable=True)

    total_amount = Column(Integer, nullable=False)
    platform_fee = Column(Integer, nullable=False, default=0)

    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value)
    payment_status = Column(String(20), nullable=False, default=BookingPaymentStatus.PENDING.value)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=True)

    rejection_reason = Column(String(500), nullable=True)
    owner_responded_at = Column(DateTime(timezone=True), nullable=True)
    # Window the requester asked for, kept when the owner accepts with different dates
    requested_booking_date = Column(Date, nullable=True)
    requested_start_time = Column(Time, nullable=True)
    requested_end_time = Column(Time, nullable=True)

    __table_args__ = (
        Index("ix_bookings_venue_date_status", "venue_id", "booking_date", "status"),
        CheckConstraint("end_time > start_time", name="check_booking_window"),
        CheckConstraint("total_amount >= 0", name="check_booking_amount_non_negative"),
        CheckConstraint("expected_guests >= 0", name="check_booking_guests_non_negative"),
        CheckConstraint(check_in("status", BookingStatus), name="check_booking_status"),
        CheckConstraint(check_in("payment_status", BookingPaymentStatus), name="check_booking_payment_status"),
    )

    @property
    def is_paid(self) -> bool:
        return self.payment_status == BookingPaymentStatus.PAID

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, venue={self.venue_id}, date={self.booking_date}, "
            f"status={self.status}, payment={self.payment_status})>"
        )
