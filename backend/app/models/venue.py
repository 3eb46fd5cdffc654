"""
Venue and its blocked calendar slots.

Only the fields the booking workflow needs live here: who owns the venue
(delegated approval rights), how bookings are priced, and how many guests
it holds.
"""

from sqlalchemy import Column, Integer, String, Boolean, Date, Time, ForeignKey, CheckConstraint, Index

from app.db.base import Base, TimestampMixin


class Venue(Base, TimestampMixin):
    __tablename__ = "venues"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    hourly_rate = Column(Integer, nullable=False, default=0)
    capacity = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("hourly_rate >= 0", name="check_venue_rate_non_negative"),
        CheckConstraint("capacity > 0", name="check_venue_capacity_positive"),
    )

    def __repr__(self) -> str:
        return f"<Venue(id={self.id}, name={self.name}, owner={self.owner_id})>"


class VenueBlockedSlot(Base, TimestampMixin):
    """A window the owner has taken off the calendar. Null times block the whole day."""

    __tablename__ = "venue_blocked_slots"

    id = Column(Integer, primary_key=True)
    venue_id = Column(Integer, ForeignKey("venues.id"), nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)
    reason = Column(String(255), nullable=True)

    __table_args__ = (
        Index("ix_blocked_slots_venue_date", "venue_id", "date"),
        CheckConstraint(
            "(start_time IS NULL AND end_time IS NULL) OR (start_time < end_time)",
            name="check_blocked_slot_window",
        ),
    )

    @property
    def is_full_day(self) -> bool:
        return self.start_time is None
