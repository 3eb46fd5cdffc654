"""
Event service: creation against a venue, organizer edits and deletion,
approvals, private access requests, listing and organizer cancellation.
"""

import secrets
from datetime import date, datetime, time, timezone
from typing import Optional

from sqlalchemy import select, func, update, delete, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    AlreadyDecided, Conflict, Forbidden, InvalidState, InvalidWindow, NotFound, ValidationError,
    VenueUnavailable,
)
from app.core.logging import get_logger
from app.models.booking import Booking
from app.models.enums import (
    ApprovalStage, ApprovalStatus, BookingStatus, EventStatus, EventType, RefundReason, TicketPricing,
    TicketStatus,
)
from app.models.event import Event, EventAccessRequest
from app.models.ticket import Ticket
from app.models.user import User
from app.models.venue import Venue
from app.schemas.event import EventCreate, EventUpdate
from app.services.approval import CLOSED_EVENT_STATUSES, decide_approval
from app.services.refund_service import get_payment, open_refund
from app.services.venue_service import find_window_conflict, get_venue

logger = get_logger(__name__)

# Events in these states still hold their slot at the venue
SCHEDULED_EVENT_STATUSES = (EventStatus.PENDING.value, EventStatus.UPCOMING.value, EventStatus.ONGOING.value)

# Events that have started can no longer be deleted
STARTED_EVENT_STATUSES = (EventStatus.ONGOING, EventStatus.COMPLETED)


def _generate_private_code() -> str:
    return secrets.token_hex(4).upper()


def _check_schedule(event_date: date, start_time: time, end_time: time) -> None:
    if start_time >= end_time:
        raise InvalidWindow("start_time must be before end_time")
    if event_date < datetime.now(timezone.utc).date():
        raise ValidationError("Event date must not be in the past")


def _check_pricing(ticket_type, ticket_price: int) -> None:
    is_paid = TicketPricing(ticket_type) == TicketPricing.PAID
    if is_paid != (ticket_price > 0):
        raise ValidationError("Paid events need a positive ticket_price; free events must have ticket_price 0")


def _check_capacity(venue: Venue, max_attendees: int) -> None:
    if max_attendees > venue.capacity:
        raise ValidationError(f"max_attendees ({max_attendees}) exceeds venue capacity ({venue.capacity})")


def _check_within_booking(booking: Booking, event_date: date, start_time: time, end_time: time) -> None:
    if event_date != booking.booking_date or start_time < booking.start_time or end_time > booking.end_time:
        raise InvalidWindow("Event must fall within the booked window")


async def _check_event_clash(
    db: AsyncSession,
    venue_id: int,
    event_date: date,
    start_time: time,
    end_time: time,
    exclude_event_id: Optional[int] = None,
) -> None:
    """Raise VenueUnavailable when another scheduled event overlaps the window."""
    query = select(Event.id).where(
        Event.venue_id == venue_id,
        Event.event_date == event_date,
        Event.status.in_(SCHEDULED_EVENT_STATUSES),
        and_(Event.start_time < end_time, Event.end_time > start_time),
    )
    if exclude_event_id is not None:
        query = query.where(Event.id != exclude_event_id)
    clash = await db.execute(query.limit(1))
    clashing_id = clash.scalar_one_or_none()
    if clashing_id is not None:
        raise VenueUnavailable(f"Another event ({clashing_id}) is scheduled at this venue in that window")


async def create_event(db: AsyncSession, event_data: EventCreate, organizer_id: int) -> Event:
    """Create an event awaiting venue and admin approval."""
    _check_schedule(event_data.event_date, event_data.start_time, event_data.end_time)
    _check_pricing(event_data.ticket_type, event_data.ticket_price)

    venue = await get_venue(db, event_data.venue_id)
    _check_capacity(venue, event_data.max_attendees)

    booking = None
    if event_data.booking_id is not None:
        result = await db.execute(select(Booking).where(Booking.id == event_data.booking_id))
        booking = result.scalar_one_or_none()
        if not booking:
            raise NotFound(f"Booking {event_data.booking_id} not found")
        if booking.requester_id != organizer_id:
            raise Forbidden("Events can only be created against your own booking")
        if booking.venue_id != venue.id:
            raise ValidationError("Booking is for a different venue")
        if booking.status not in (BookingStatus.ACCEPTED, BookingStatus.COMPLETED):
            raise InvalidState(f"Booking {booking.id} is {booking.status}, not accepted")
        if booking.event_id is not None:
            raise Conflict(f"Booking {booking.id} already has an event")
        _check_within_booking(booking, event_data.event_date, event_data.start_time, event_data.end_time)
    else:
        conflict = await find_window_conflict(
            db, venue.id, event_data.event_date, event_data.start_time, event_data.end_time
        )
        if conflict:
            raise VenueUnavailable(conflict)

    await _check_event_clash(db, venue.id, event_data.event_date, event_data.start_time, event_data.end_time)

    event = Event(
        organizer_id=organizer_id,
        venue_id=venue.id,
        booking_id=booking.id if booking else None,
        name=event_data.name,
        description=event_data.description,
        event_date=event_data.event_date,
        start_time=event_data.start_time,
        end_time=event_data.end_time,
        event_type=EventType(event_data.event_type).value,
        ticket_type=TicketPricing(event_data.ticket_type).value,
        ticket_price=event_data.ticket_price,
        max_attendees=event_data.max_attendees,
        current_attendees=0,
        private_code=_generate_private_code() if event_data.event_type == EventType.PRIVATE else None,
        status=EventStatus.PENDING.value,
    )
    db.add(event)
    await db.flush()
    if booking is not None:
        booking.event_id = event.id
        await db.flush()
    await db.refresh(event)

    logger.info(
        "event_created",
        event_id=event.id,
        venue_id=venue.id,
        organizer_id=organizer_id,
        max_attendees=event.max_attendees,
        event_type=event.event_type,
    )
    return event


def _is_awaiting_approval(event: Event) -> bool:
    return (
        event.status == EventStatus.PENDING
        and event.venue_approval_status == ApprovalStatus.PENDING
        and event.admin_approval_status == ApprovalStatus.PENDING
    )


async def update_event(db: AsyncSession, event_id: int, organizer_id: int, changes: EventUpdate) -> Event:
    """
    Edit an event before anyone has reviewed it.

    Once either approval stage is decided the details are frozen, so the
    reviewers always approve what ends up on sale. The event type, and with
    it the private code, cannot be changed. The merged details go through the
    same checks as creation; the event's own slot is excluded from the clash
    check.
    """
    event = await get_event(db, event_id)
    if event.organizer_id != organizer_id:
        raise Forbidden("Only the organizer can edit this event")
    if not _is_awaiting_approval(event):
        raise InvalidState(f"Event {event_id} can only be edited while both approvals are pending")

    values = {field: value for field, value in changes.model_dump(exclude_unset=True).items() if value is not None}
    if not values:
        return event
    if "ticket_type" in values:
        values["ticket_type"] = TicketPricing(values["ticket_type"]).value

    merged = {
        field: values.get(field, getattr(event, field))
        for field in ("event_date", "start_time", "end_time", "ticket_type", "ticket_price", "max_attendees")
    }
    _check_schedule(merged["event_date"], merged["start_time"], merged["end_time"])
    _check_pricing(merged["ticket_type"], merged["ticket_price"])

    venue = await get_venue(db, event.venue_id)
    _check_capacity(venue, merged["max_attendees"])

    window = (merged["event_date"], merged["start_time"], merged["end_time"])
    if window != (event.event_date, event.start_time, event.end_time):
        if event.booking_id is not None:
            booking = (await db.execute(select(Booking).where(Booking.id == event.booking_id))).scalar_one()
            _check_within_booking(booking, *window)
        else:
            conflict = await find_window_conflict(db, venue.id, *window)
            if conflict:
                raise VenueUnavailable(conflict)
        await _check_event_clash(db, venue.id, *window, exclude_event_id=event.id)

    result = await db.execute(
        update(Event)
        .where(
            Event.id == event_id,
            Event.status == EventStatus.PENDING.value,
            Event.venue_approval_status == ApprovalStatus.PENDING.value,
            Event.admin_approval_status == ApprovalStatus.PENDING.value,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    await db.refresh(event)
    if result.rowcount == 0:
        raise InvalidState(f"Event {event_id} can only be edited while both approvals are pending")

    logger.info("event_updated", event_id=event_id, organizer_id=organizer_id, fields=sorted(values))
    return event


async def delete_event(db: AsyncSession, event_id: int, actor: User) -> None:
    """
    Remove an event that never sold or issued a ticket.

    Events with tickets must be cancelled instead, so holders are settled
    and refunded. A linked booking is kept and becomes free for a new event.
    """
    event = await get_event(db, event_id)
    if event.organizer_id != actor.id and not actor.is_admin:
        raise Forbidden("Only the organizer or an admin can delete this event")
    if event.status in STARTED_EVENT_STATUSES:
        raise InvalidState(f"Event {event_id} is {event.status}")

    ticket_count = (
        await db.execute(select(func.count()).select_from(Ticket).where(Ticket.event_id == event_id))
    ).scalar()
    if ticket_count:
        raise InvalidState(f"Event {event_id} has {ticket_count} ticket(s); cancel it instead")

    await db.execute(
        update(Booking)
        .where(Booking.event_id == event_id)
        .values(event_id=None)
        .execution_options(synchronize_session=False)
    )
    await db.execute(delete(EventAccessRequest).where(EventAccessRequest.event_id == event_id))
    await db.delete(event)
    await db.flush()

    logger.info("event_deleted", event_id=event_id, actor_id=actor.id, booking_id=event.booking_id)


async def get_event(db: AsyncSession, event_id: int) -> Event:
    result = await db.execute(select(Event).where(Event.id == event_id))
    event = result.scalar_one_or_none()
    if not event:
        raise NotFound(f"Event {event_id} not found")
    return event


async def _get_access_request(db: AsyncSession, event_id: int, user_id: int) -> Optional[EventAccessRequest]:
    result = await db.execute(
        select(EventAccessRequest).where(
            EventAccessRequest.event_id == event_id,
            EventAccessRequest.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def has_access(db: AsyncSession, event: Event, user_id: int) -> bool:
    """Organizers always see their own private events; others need a request that was not rejected."""
    if not event.is_private or event.organizer_id == user_id:
        return True
    request = await _get_access_request(db, event.id, user_id)
    return request is not None and request.grants_access


async def get_event_for_viewer(db: AsyncSession, event_id: int, user_id: int) -> Event:
    event = await get_event(db, event_id)
    if not await has_access(db, event, user_id):
        raise Forbidden("This is a private event; unlock it with the access code first")
    return event


async def list_events(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[Event], int]:
    """
    List upcoming public events with pagination.
    Uses the ix_events_status_date index.
    """
    query = select(Event).where(
        Event.status == EventStatus.UPCOMING.value,
        Event.event_type == EventType.PUBLIC.value,
        Event.event_date >= datetime.now(timezone.utc).date(),
    )

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar()

    events_query = (
        query
        .order_by(Event.event_date.asc(), Event.start_time.asc(), Event.id.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(events_query)
    return list(result.scalars().all()), total


async def list_venue_requests(db: AsyncSession, owner_id: int) -> list[Event]:
    """Events awaiting this owner's venue approval."""
    owned_venues = select(Venue.id).where(Venue.owner_id == owner_id)
    result = await db.execute(
        select(Event)
        .where(
            Event.venue_id.in_(owned_venues),
            Event.venue_approval_status == ApprovalStatus.PENDING.value,
            Event.status == EventStatus.PENDING.value,
        )
        .order_by(Event.created_at.asc(), Event.id.asc())
    )
    return list(result.scalars().all())


async def list_admin_pending(db: AsyncSession, admin: User) -> list[Event]:
    """Venue-approved events waiting for an admin."""
    if not admin.is_admin:
        raise Forbidden("Only admins can review events")
    result = await db.execute(
        select(Event)
        .where(
            Event.venue_approval_status == ApprovalStatus.APPROVED.value,
            Event.admin_approval_status == ApprovalStatus.PENDING.value,
            Event.status == EventStatus.PENDING.value,
        )
        .order_by(Event.created_at.asc(), Event.id.asc())
    )
    return list(result.scalars().all())


async def list_organizer_events(db: AsyncSession, organizer_id: int) -> list[Event]:
    result = await db.execute(
        select(Event)
        .where(Event.organizer_id == organizer_id)
        .order_by(Event.event_date.desc(), Event.id.desc())
    )
    return list(result.scalars().all())


async def venue_approve(
    db: AsyncSession,
    event_id: int,
    owner_id: int,
    decision: str,
    reason: Optional[str] = None,
) -> Event:
    event = await get_event(db, event_id)
    venue = await get_venue(db, event.venue_id)
    if venue.owner_id != owner_id:
        raise Forbidden("Only the venue owner can approve events at this venue")
    return await decide_approval(db, event, ApprovalStage.VENUE, decision, owner_id, reason)


async def admin_approve(
    db: AsyncSession,
    event_id: int,
    admin: User,
    decision: str,
    reason: Optional[str] = None,
) -> Event:
    if not admin.is_admin:
        raise Forbidden("Only admins can approve events")
    event = await get_event(db, event_id)
    return await decide_approval(db, event, ApprovalStage.ADMIN, decision, admin.id, reason)


async def request_private_access(
    db: AsyncSession,
    event_id: int,
    user_id: int,
    code: str,
    message: Optional[str] = None,
) -> EventAccessRequest:
    """
    Present a private event's code and leave a request for the organizer.

    A correct code opens the event right away; the request stays pending
    until the organizer reviews it. Presenting the code again returns the
    existing request.
    """
    event = await get_event(db, event_id)
    if not event.is_private:
        raise InvalidState(f"Event {event_id} is public; no access code needed")
    if event.organizer_id == user_id:
        raise InvalidState("Organizers already have access to their own events")

    presented = code.strip().upper().encode("utf-8")
    if not secrets.compare_digest(presented, (event.private_code or "").encode("utf-8")):
        logger.warning("private_event_code_rejected", event_id=event_id, user_id=user_id)
        raise Forbidden("Invalid access code")

    existing = await _get_access_request(db, event_id, user_id)
    if existing is not None:
        if not existing.grants_access:
            raise Forbidden("The organizer declined your access to this event")
        return existing

    request = EventAccessRequest(
        event_id=event_id,
        user_id=user_id,
        message=message,
        status=ApprovalStatus.PENDING.value,
    )
    db.add(request)
    await db.flush()
    await db.refresh(request)

    logger.info("private_access_requested", event_id=event_id, user_id=user_id, request_id=request.id)
    return request


async def list_access_requests(db: AsyncSession, event_id: int, organizer_id: int) -> list[EventAccessRequest]:
    event = await get_event(db, event_id)
    if event.organizer_id != organizer_id:
        raise Forbidden("Only the organizer can review access requests")
    result = await db.execute(
        select(EventAccessRequest)
        .where(EventAccessRequest.event_id == event_id)
        .order_by(EventAccessRequest.created_at.asc(), EventAccessRequest.id.asc())
    )
    return list(result.scalars().all())


async def decide_access_request(
    db: AsyncSession,
    event_id: int,
    request_id: int,
    organizer_id: int,
    decision: str,
) -> EventAccessRequest:
    """Approve or reject a pending access request. Rejecting revokes the user's access."""
    decision = ApprovalStatus(decision)
    if decision == ApprovalStatus.PENDING:
        raise ValidationError("Decision must be 'approved' or 'rejected'")

    event = await get_event(db, event_id)
    if event.organizer_id != organizer_id:
        raise Forbidden("Only the organizer can review access requests")

    result = await db.execute(
        update(EventAccessRequest)
        .where(
            EventAccessRequest.id == request_id,
            EventAccessRequest.event_id == event_id,
            EventAccessRequest.status == ApprovalStatus.PENDING.value,
        )
        .values(
            status=decision.value,
            responded_by=organizer_id,
            responded_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )
    request = (
        await db.execute(
            select(EventAccessRequest).where(
                EventAccessRequest.id == request_id,
                EventAccessRequest.event_id == event_id,
            )
        )
    ).scalar_one_or_none()
    if request is None:
        raise NotFound(f"Access request {request_id} not found for event {event_id}")
    await db.refresh(request)
    if result.rowcount == 0:
        raise AlreadyDecided(f"Access request {request_id} is already {request.status}")

    logger.info(
        "private_access_decided",
        event_id=event_id,
        request_id=request_id,
        user_id=request.user_id,
        decision=decision.value,
    )
    return request


async def cancel_event(db: AsyncSession, event_id: int, actor: User, reason: str) -> dict:
    """
    Cancel an event and settle every live ticket.

    Free tickets are cancelled, paid active tickets are cancelled with a
    refund opened for the holder, and unpaid pending tickets are expired.
    The attendee counter ends at zero.
    """
    event = await get_event(db, event_id)
    if event.organizer_id != actor.id and not actor.is_admin:
        raise Forbidden("Only the organizer or an admin can cancel this event")
    if event.status in CLOSED_EVENT_STATUSES or event.status == EventStatus.REJECTED:
        raise InvalidState(f"Event {event_id} is {event.status}")

    result = await db.execute(
        update(Event)
        .where(
            Event.id == event_id,
            Event.status.in_([EventStatus.DRAFT.value, *SCHEDULED_EVENT_STATUSES]),
        )
        .values(
            status=EventStatus.CANCELLED.value,
            cancellation_reason=reason,
            current_attendees=0,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.refresh(event)
        raise InvalidState(f"Event {event_id} is {event.status}")

    live_tickets = await db.execute(
        select(Ticket).where(
            Ticket.event_id == event_id,
            Ticket.status.in_([TicketStatus.ACTIVE.value, TicketStatus.PENDING.value]),
        )
    )
    cancelled = expired = refunds = 0
    for ticket in live_tickets.scalars().all():
        if ticket.status == TicketStatus.PENDING:
            ticket.status = TicketStatus.EXPIRED.value
            ticket.cancellation_reason = "Event cancelled"
            expired += 1
            continue

        ticket.status = TicketStatus.CANCELLED.value
        ticket.cancellation_reason = "Event cancelled"
        cancelled += 1
        if ticket.is_free or ticket.payment_id is None:
            continue

        payment = await get_payment(db, ticket.payment_id)
        try:
            await open_refund(
                db, payment, ticket.user_id, RefundReason.EVENT_CANCELLED, reason_details=reason
            )
            refunds += 1
        except Conflict:
            # The holder already asked for this refund
            logger.info("event_cancel_refund_already_open", ticket_id=ticket.id, payment_id=payment.id)

    await db.flush()
    await db.refresh(event)

    logger.info(
        "event_cancelled",
        event_id=event_id,
        actor_id=actor.id,
        tickets_cancelled=cancelled,
        tickets_expired=expired,
        refunds_opened=refunds,
    )
    return {
        "event": event,
        "tickets_cancelled": cancelled,
        "tickets_expired": expired,
        "refunds_opened": refunds,
    }
