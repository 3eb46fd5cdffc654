"""
Attendee counter updates for events.

CONCURRENCY STRATEGY: Conditional UPDATE
========================================

Problem:
  Two buyers race for the last seats of an event. Both read
  current_attendees = 98 of 100, both ask for 2, both write 100.
  Result: 102 people admitted to a 100-person room.

Solution:
  The capacity check and the increment are the same statement:

    UPDATE events SET current_attendees = current_attendees + :q
    WHERE id = :event_id AND status = 'upcoming'
      AND current_attendees + :q <= max_attendees

  If rows_affected == 0 the event was full (or no longer upcoming) at the
  moment the row was written. There is no read-modify-write window to
  retry, and the CHECK current_attendees <= max_attendees is the final
  safety net.

  Callers keep the ticket insert in the same transaction, so a failed
  insert rolls the increment back with it.
"""

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.core.metrics import record_capacity_conflict
from app.models.enums import EventStatus
from app.models.event import Event

logger = get_logger(__name__)


async def reserve_attendees(db: AsyncSession, event_id: int, quantity: int) -> bool:
    """Atomically add `quantity` attendees. Returns False if it would exceed capacity."""
    result = await db.execute(
        update(Event)
        .where(
            Event.id == event_id,
            Event.status == EventStatus.UPCOMING.value,
            Event.current_attendees + quantity <= Event.max_attendees,
        )
        .values(current_attendees=Event.current_attendees + quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        record_capacity_conflict("event_attendees")
        logger.info("attendee_reservation_rejected", event_id=event_id, requested=quantity)
        return False
    return True


async def release_attendees(db: AsyncSession, event_id: int, quantity: int) -> None:
    """Give back `quantity` attendee slots; never drives the counter below zero."""
    result = await db.execute(
        update(Event)
        .where(Event.id == event_id, Event.current_attendees >= quantity)
        .values(current_attendees=Event.current_attendees - quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.warning("attendee_release_skipped", event_id=event_id, quantity=quantity)
