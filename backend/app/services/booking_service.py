"""
Venue booking workflow: request, edit, owner decision (optionally with a
counter-offered window), cancellation, completion.

CONCURRENCY STRATEGY: Venue row lock + overlap check
====================================================

Problem:
  Two requesters ask for overlapping windows at the same venue, or an
  owner accepts two overlapping pending requests at once. Both overlap
  checks read "no accepted booking", both writes succeed.
  Result: a double-booked venue.

Solution:
  Create, edit and accept first take SELECT ... FOR UPDATE on the venue row.
  All writers for one venue queue on that lock, so the overlap query that
  follows sees every accepted booking committed before it. Bookings at
  different venues never contend.

  The state change itself is a conditional UPDATE on the expected current
  status, so two owners (or an owner and a cancelling requester) racing on
  the same booking cannot both win: the loser sees rowcount == 0.

Money never moves here: a booking only becomes 'paid' through the payment
orchestrator, and a paid cancellation opens a refund instead of touching
payment_status.
"""

from datetime import date, datetime, time, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    Forbidden, InvalidState, InvalidWindow, NotFound, ValidationError, VenueUnavailable,
)
from app.core.logging import get_logger
from app.core.metrics import record_booking_transition, record_capacity_conflict
from app.models.booking import Booking
from app.models.enums import BookingPaymentStatus, BookingStatus, RefundReason
from app.models.payment import PaymentReference
from app.models.refund import Refund
from app.schemas.booking import BookingUpdate, BookingWindow
from app.services.refund_service import get_payment, open_refund
from app.services.venue_service import find_window_conflict, get_venue, lock_venue

logger = get_logger(__name__)


def booking_amount(hourly_rate: int, start_time: time, end_time: time) -> int:
    """hourly_rate x hours, rounded half-up to a whole currency unit."""
    minutes = (end_time.hour * 60 + end_time.minute) - (start_time.hour * 60 + start_time.minute)
    amount = Decimal(hourly_rate) * Decimal(minutes) / Decimal(60)
    return int(amount.quantize(Decimal(1), rounding=ROUND_HALF_UP))


async def create_booking(
    db: AsyncSession,
    requester_id: int,
    venue_id: int,
    booking_date: date,
    start_time: time,
    end_time: time,
    expected_guests: int = 0,
    purpose: Optional[str] = None,
) -> Booking:
    """Request a venue window. The booking starts pending owner review."""
    if start_time >= end_time:
        raise InvalidWindow("start_time must be before end_time")

    venue = await lock_venue(db, venue_id)
    if not venue.is_active:
        raise InvalidState(f"Venue {venue_id} is not accepting bookings")
    if expected_guests > venue.capacity:
        raise ValidationError(
            f"Expected guests ({expected_guests}) exceed venue capacity ({venue.capacity})"
        )

    conflict = await find_window_conflict(db, venue_id, booking_date, start_time, end_time)
    if conflict:
        record_capacity_conflict("venue_window")
        logger.info("booking_rejected_unavailable", venue_id=venue_id, date=str(booking_date), detail=conflict)
        raise VenueUnavailable(conflict)

    booking = Booking(
        requester_id=requester_id,
        venue_id=venue_id,
        booking_date=booking_date,
        start_time=start_time,
        end_time=end_time,
        expected_guests=expected_guests,
        purpose=purpose,
        total_amount=booking_amount(venue.hourly_rate, start_time, end_time),
        status=BookingStatus.PENDING.value,
        payment_status=BookingPaymentStatus.PENDING.value,
    )
    db.add(booking)
    await db.flush()
    await db.refresh(booking)

    record_booking_transition("created")
    logger.info(
        "booking_created",
        booking_id=booking.id,
        venue_id=venue_id,
        requester_id=requester_id,
        total_amount=booking.total_amount,
    )
    return booking


async def get_booking(db: AsyncSession, booking_id: int) -> Booking:
    result = await db.execute(select(Booking).where(Booking.id == booking_id))
    booking = result.scalar_one_or_none()
    if not booking:
        raise NotFound(f"Booking {booking_id} not found")
    return booking


async def get_booking_for_actor(db: AsyncSession, booking_id: int, actor_id: int) -> Booking:
    """A booking is visible to its requester and to the venue owner."""
    booking = await get_booking(db, booking_id)
    if booking.requester_id != actor_id:
        venue = await get_venue(db, booking.venue_id)
        if venue.owner_id != actor_id:
            raise Forbidden("Not allowed to view this booking")
    return booking


async def _transition(
    db: AsyncSession,
    booking: Booking,
    from_statuses: tuple,
    **values,
) -> None:
    result = await db.execute(
        update(Booking)
        .where(Booking.id == booking.id, Booking.status.in_([s.value for s in from_statuses]))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.refresh(booking)
        raise InvalidState(f"Booking {booking.id} is {booking.status}")
    await db.refresh(booking)


async def update_booking(
    db: AsyncSession,
    booking_id: int,
    requester_id: int,
    changes: BookingUpdate,
) -> Booking:
    """
    Edit a request the owner has not answered yet.

    The merged window is checked again under the venue lock, ignoring the
    booking's own slot, and the price is recomputed from the venue rate.
    """
    booking = await get_booking(db, booking_id)
    if booking.requester_id != requester_id:
        raise Forbidden("Only the requester can edit this booking")
    if booking.status != BookingStatus.PENDING:
        raise InvalidState(f"Booking {booking_id} is {booking.status}, not pending")

    values = {field: value for field, value in changes.model_dump(exclude_unset=True).items() if value is not None}
    if not values:
        return booking

    booking_date = values.get("booking_date", booking.booking_date)
    start_time = values.get("start_time", booking.start_time)
    end_time = values.get("end_time", booking.end_time)
    if start_time >= end_time:
        raise InvalidWindow("start_time must be before end_time")

    venue = await lock_venue(db, booking.venue_id)
    expected_guests = values.get("expected_guests", booking.expected_guests)
    if expected_guests > venue.capacity:
        raise ValidationError(
            f"Expected guests ({expected_guests}) exceed venue capacity ({venue.capacity})"
        )

    conflict = await find_window_conflict(
        db, venue.id, booking_date, start_time, end_time, exclude_booking_id=booking.id
    )
    if conflict:
        record_capacity_conflict("venue_window")
        raise VenueUnavailable(conflict)

    values["total_amount"] = booking_amount(venue.hourly_rate, start_time, end_time)
    await _transition(db, booking, (BookingStatus.PENDING,), **values)
    record_booking_transition("updated")
    logger.info(
        "booking_updated",
        booking_id=booking_id,
        requester_id=requester_id,
        fields=sorted(values),
        total_amount=booking.total_amount,
    )
    return booking


async def respond_to_booking(
    db: AsyncSession,
    booking_id: int,
    owner_id: int,
    decision: str,
    reason: Optional[str] = None,
    modified_window: Optional[BookingWindow] = None,
) -> Booking:
    """
    Owner accepts or rejects a pending booking.

    Accepting with `modified_window` is a counter-offer: the booking moves to
    the owner's window, repriced, and the window originally asked for is
    kept in the requested_* columns.
    """
    booking = await get_booking(db, booking_id)
    venue = await lock_venue(db, booking.venue_id)
    if venue.owner_id != owner_id:
        raise Forbidden("Only the venue owner can respond to this booking")

    if booking.status != BookingStatus.PENDING:
        raise InvalidState(f"Booking {booking_id} is {booking.status}, not pending")

    if modified_window is not None and decision != "accept":
        raise ValidationError("A modified window can only be offered when accepting")

    now = datetime.now(timezone.utc)
    if decision == "accept":
        values = {}
        window = (booking.booking_date, booking.start_time, booking.end_time)
        if modified_window is not None:
            window = (modified_window.booking_date, modified_window.start_time, modified_window.end_time)
            if window[1] >= window[2]:
                raise InvalidWindow("start_time must be before end_time")
            values = {
                "booking_date": window[0],
                "start_time": window[1],
                "end_time": window[2],
                "total_amount": booking_amount(venue.hourly_rate, window[1], window[2]),
                "requested_booking_date": booking.booking_date,
                "requested_start_time": booking.start_time,
                "requested_end_time": booking.end_time,
            }
        conflict = await find_window_conflict(
            db, booking.venue_id, *window, exclude_booking_id=booking.id
        )
        if conflict:
            record_capacity_conflict("venue_window")
            logger.info("booking_accept_rejected_unavailable", booking_id=booking_id, detail=conflict)
            raise VenueUnavailable(conflict)
        await _transition(
            db, booking, (BookingStatus.PENDING,),
            status=BookingStatus.ACCEPTED.value,
            owner_responded_at=now,
            **values,
        )
        record_booking_transition("accepted")
    elif decision == "reject":
        if not reason:
            raise ValidationError("A reason is required to reject a booking")
        await _transition(
            db, booking, (BookingStatus.PENDING,),
            status=BookingStatus.REJECTED.value,
            rejection_reason=reason,
            owner_responded_at=now,
        )
        record_booking_transition("rejected")
    else:
        raise ValidationError(f"Unknown decision: {decision}")

    logger.info(
        "booking_responded",
        booking_id=booking_id,
        owner_id=owner_id,
        status=booking.status,
        counter_offer=modified_window is not None,
    )
    return booking


async def cancel_booking(
    db: AsyncSession,
    booking_id: int,
    actor_id: int,
    reason: str,
) -> tuple[Booking, Optional[Refund]]:
    """
    Cancel a pending or accepted booking.

    A paid booking stays 'paid' until its refund completes; the refund is
    opened here for the requester regardless of who cancelled.
    """
    booking = await get_booking(db, booking_id)
    venue = await get_venue(db, booking.venue_id)
    if actor_id not in (booking.requester_id, venue.owner_id):
        raise Forbidden("Only the requester or the venue owner can cancel this booking")

    await _transition(
        db, booking, (BookingStatus.PENDING, BookingStatus.ACCEPTED),
        status=BookingStatus.CANCELLED.value,
        rejection_reason=reason,
    )
    record_booking_transition("cancelled")

    refund = None
    if booking.is_paid and booking.payment_id is not None:
        payment = await get_payment(db, booking.payment_id)
        refund = await open_refund(
            db,
            payment,
            booking.requester_id,
            RefundReason.BOOKING_CANCELLED,
            reason_details=reason,
        )

    logger.info(
        "booking_cancelled",
        booking_id=booking_id,
        actor_id=actor_id,
        refund_id=refund.id if refund else None,
    )
    return booking, refund


async def complete_booking(db: AsyncSession, booking_id: int, owner_id: int) -> Booking:
    """Owner marks a settled, accepted booking as completed."""
    booking = await get_booking(db, booking_id)
    venue = await get_venue(db, booking.venue_id)
    if venue.owner_id != owner_id:
        raise Forbidden("Only the venue owner can complete this booking")
    if booking.total_amount > 0 and not booking.is_paid:
        raise InvalidState(f"Booking {booking_id} cannot be completed before it is paid")

    await _transition(
        db, booking, (BookingStatus.ACCEPTED,),
        status=BookingStatus.COMPLETED.value,
    )
    record_booking_transition("completed")
    logger.info("booking_completed", booking_id=booking_id)
    return booking


async def initiate_booking_payment(db: AsyncSession, booking_id: int, payer_id: int, orchestrator):
    """Start checkout for an accepted booking. Returns the pending Payment."""
    booking = await get_booking(db, booking_id)
    if booking.requester_id != payer_id:
        raise Forbidden("Only the requester can pay for this booking")
    if booking.status != BookingStatus.ACCEPTED:
        raise InvalidState(f"Booking {booking_id} is {booking.status}; only accepted bookings can be paid")
    if booking.payment_status != BookingPaymentStatus.PENDING:
        raise InvalidState(f"Booking {booking_id} payment is already {booking.payment_status}")

    payment = await orchestrator.initiate(
        db, PaymentReference.booking(booking.id), booking.total_amount, payer_id
    )
    booking.platform_fee = payment.platform_fee
    await db.flush()
    return payment


async def list_user_bookings(db: AsyncSession, user_id: int) -> list[Booking]:
    result = await db.execute(
        select(Booking)
        .where(Booking.requester_id == user_id)
        .order_by(Booking.created_at.desc(), Booking.id.desc())
    )
    return list(result.scalars().all())


async def list_venue_bookings(
    db: AsyncSession,
    venue_id: int,
    owner_id: int,
    status: Optional[BookingStatus] = None,
) -> list[Booking]:
    venue = await get_venue(db, venue_id)
    if venue.owner_id != owner_id:
        raise Forbidden("Only the venue owner can list its bookings")
    query = select(Booking).where(Booking.venue_id == venue_id)
    if status is not None:
        query = query.where(Booking.status == BookingStatus(status).value)
    result = await db.execute(query.order_by(Booking.booking_date.asc(), Booking.start_time.asc()))
    return list(result.scalars().all())
