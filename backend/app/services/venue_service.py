"""
Venue service: venue registration, calendar blocks and the window
availability check shared by booking creation and acceptance.
"""

from datetime import date, time
from typing import Optional

from sqlalchemy import select, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import Forbidden, InvalidWindow, NotFound
from app.core.logging import get_logger
from app.models.booking import Booking
from app.models.enums import BookingStatus
from app.models.venue import Venue, VenueBlockedSlot
from app.schemas.venue import VenueCreate, BlockedSlotCreate

logger = get_logger(__name__)

# Bookings in these states occupy the venue calendar
OCCUPYING_BOOKING_STATUSES = (BookingStatus.ACCEPTED.value, BookingStatus.COMPLETED.value)


async def create_venue(db: AsyncSession, owner_id: int, venue_data: VenueCreate) -> Venue:
    venue = Venue(
        owner_id=owner_id,
        name=venue_data.name,
        hourly_rate=venue_data.hourly_rate,
        capacity=venue_data.capacity,
    )
    db.add(venue)
    await db.flush()
    await db.refresh(venue)

    logger.info("venue_created", venue_id=venue.id, owner_id=owner_id, capacity=venue.capacity)
    return venue


async def get_venue(db: AsyncSession, venue_id: int) -> Venue:
    result = await db.execute(select(Venue).where(Venue.id == venue_id))
    venue = result.scalar_one_or_none()
    if not venue:
        raise NotFound(f"Venue {venue_id} not found")
    return venue


async def lock_venue(db: AsyncSession, venue_id: int) -> Venue:
    """
    Load a venue with a row lock held until the transaction ends.

    Every booking create/accept for a venue goes through this lock, so the
    overlap check that follows cannot interleave with another writer.
    """
    result = await db.execute(
        select(Venue).where(Venue.id == venue_id).with_for_update()
    )
    venue = result.scalar_one_or_none()
    if not venue:
        raise NotFound(f"Venue {venue_id} not found")
    return venue


async def add_blocked_slot(
    db: AsyncSession,
    venue_id: int,
    owner_id: int,
    slot_data: BlockedSlotCreate,
) -> VenueBlockedSlot:
    venue = await get_venue(db, venue_id)
    if venue.owner_id != owner_id:
        raise Forbidden("Only the venue owner can block slots")

    if (slot_data.start_time is None) != (slot_data.end_time is None):
        raise InvalidWindow("Provide both start_time and end_time, or neither for a full day")
    if slot_data.start_time is not None and slot_data.start_time >= slot_data.end_time:
        raise InvalidWindow("start_time must be before end_time")

    slot = VenueBlockedSlot(
        venue_id=venue_id,
        date=slot_data.date,
        start_time=slot_data.start_time,
        end_time=slot_data.end_time,
        reason=slot_data.reason,
    )
    db.add(slot)
    await db.flush()
    await db.refresh(slot)

    logger.info("venue_slot_blocked", venue_id=venue_id, slot_id=slot.id, date=str(slot.date))
    return slot


async def list_blocked_slots(db: AsyncSession, venue_id: int) -> list[VenueBlockedSlot]:
    await get_venue(db, venue_id)
    result = await db.execute(
        select(VenueBlockedSlot)
        .where(VenueBlockedSlot.venue_id == venue_id)
        .order_by(VenueBlockedSlot.date.asc(), VenueBlockedSlot.start_time.asc())
    )
    return list(result.scalars().all())


async def find_window_conflict(
    db: AsyncSession,
    venue_id: int,
    on_date: date,
    start_time: time,
    end_time: time,
    exclude_booking_id: Optional[int] = None,
) -> Optional[str]:
    """
    Return a description of what occupies the window, or None if it is free.

    Windows are half-open: a booking ending at 14:00 does not overlap one
    starting at 14:00.
    """
    slot_query = select(VenueBlockedSlot.id).where(
        VenueBlockedSlot.venue_id == venue_id,
        VenueBlockedSlot.date == on_date,
        or_(
            VenueBlockedSlot.start_time.is_(None),
            and_(VenueBlockedSlot.start_time < end_time, VenueBlockedSlot.end_time > start_time),
        ),
    ).limit(1)
    if (await db.execute(slot_query)).scalar_one_or_none() is not None:
        return "Venue is blocked for the requested time"

    booking_query = select(Booking.id).where(
        Booking.venue_id == venue_id,
        Booking.booking_date == on_date,
        Booking.status.in_(OCCUPYING_BOOKING_STATUSES),
        Booking.start_time < end_time,
        Booking.end_time > start_time,
    )
    if exclude_booking_id is not None:
        booking_query = booking_query.where(Booking.id != exclude_booking_id)
    clash = (await db.execute(booking_query.limit(1))).scalar_one_or_none()
    if clash is not None:
        return f"Venue already booked for an overlapping window (booking {clash})"
    return None
