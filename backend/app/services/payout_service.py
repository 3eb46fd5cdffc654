"""
Payouts: settling what the platform owes venue owners and organizers.

A venue booking is paid out to the venue owner once it is completed and
paid. An event is paid out to its organizer after the event date, for the
sum of its ticket payments that are still settled (refunded payments drop
out). The platform commission is split off the gross amount with the same
rounding as payment fees, at the percentage passed in by the caller.

Each booking or event is paid out at most once; the unique
(type, reference_id) constraint backs up the explicit check.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AlreadyProcessed, Conflict, Forbidden, InvalidAmount, InvalidState, NotFound
from app.core.logging import get_logger
from app.core.metrics import record_payout
from app.models.booking import Booking
from app.models.enums import BookingStatus, EventStatus, PaymentStatus, PayoutStatus, PayoutType, ReferenceModel
from app.models.event import Event
from app.models.payment import Payment, split_platform_fee
from app.models.payout import Payout
from app.models.ticket import Ticket
from app.models.user import User
from app.services.venue_service import get_venue

logger = get_logger(__name__)

# Events in these states have run (or are running) and owe the organizer their sales
PAYABLE_EVENT_STATUSES = (EventStatus.UPCOMING, EventStatus.ONGOING, EventStatus.COMPLETED)


def _require_admin(user: User) -> None:
    if not user.is_admin:
        raise Forbidden("Only admins can manage payouts")


async def _booking_payout_terms(db: AsyncSession, booking_id: int) -> tuple[int, int]:
    """(recipient_id, gross_amount) for a venue booking."""
    result = await db.execute(select(Booking).where(Booking.id == booking_id))
    booking = result.scalar_one_or_none()
    if not booking:
        raise NotFound(f"Booking {booking_id} not found")
    if booking.status != BookingStatus.COMPLETED:
        raise InvalidState(f"Booking {booking_id} is {booking.status}; only completed bookings are paid out")
    if not booking.is_paid:
        raise InvalidState(f"Booking {booking_id} payment is {booking.payment_status}")
    venue = await get_venue(db, booking.venue_id)
    return venue.owner_id, booking.total_amount


async def _event_payout_terms(db: AsyncSession, event_id: int) -> tuple[int, int]:
    """(recipient_id, gross_amount) for an event's ticket sales."""
    result = await db.execute(select(Event).where(Event.id == event_id))
    event = result.scalar_one_or_none()
    if not event:
        raise NotFound(f"Event {event_id} not found")
    if event.status not in PAYABLE_EVENT_STATUSES:
        raise InvalidState(f"Event {event_id} is {event.status}")
    if event.event_date >= datetime.now(timezone.utc).date():
        raise InvalidState(f"Event {event_id} has not taken place yet")

    event_tickets = select(Ticket.id).where(Ticket.event_id == event_id)
    sales = await db.execute(
        select(func.coalesce(func.sum(Payment.amount), 0)).where(
            Payment.reference_model == ReferenceModel.TICKET.value,
            Payment.reference_id.in_(event_tickets),
            Payment.status == PaymentStatus.SUCCESS.value,
        )
    )
    return event.organizer_id, int(sales.scalar())


async def process_payout(
    db: AsyncSession,
    admin: User,
    payout_type: PayoutType,
    reference_id: int,
    commission_percentage: float,
    bank_details: Optional[str] = None,
) -> Payout:
    """Create a pending payout for a completed booking or a past event."""
    _require_admin(admin)
    payout_type = PayoutType(payout_type)

    if payout_type == PayoutType.VENUE_BOOKING:
        recipient_id, gross = await _booking_payout_terms(db, reference_id)
    else:
        recipient_id, gross = await _event_payout_terms(db, reference_id)
    if gross <= 0:
        raise InvalidAmount(f"Nothing to pay out for {payout_type.value} {reference_id}")

    existing = await db.execute(
        select(Payout.id).where(Payout.type == payout_type.value, Payout.reference_id == reference_id)
    )
    existing_id = existing.scalar_one_or_none()
    if existing_id is not None:
        raise Conflict(f"{payout_type.value} {reference_id} was already paid out (payout {existing_id})")

    commission, net = split_platform_fee(gross, commission_percentage)
    payout = Payout(
        recipient_id=recipient_id,
        type=payout_type.value,
        reference_id=reference_id,
        gross_amount=gross,
        platform_commission_percentage=commission_percentage,
        platform_commission=commission,
        net_amount=net,
        bank_details=bank_details,
        status=PayoutStatus.PENDING.value,
    )
    db.add(payout)
    await db.flush()
    await db.refresh(payout)

    record_payout(payout_type.value, "created")
    logger.info(
        "payout_created",
        payout_id=payout.id,
        type=payout.type,
        reference_id=reference_id,
        recipient_id=recipient_id,
        gross_amount=gross,
        net_amount=net,
    )
    return payout


async def list_payouts(
    db: AsyncSession,
    admin: User,
    status: Optional[PayoutStatus] = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[Payout], int]:
    _require_admin(admin)
    query = select(Payout)
    if status is not None:
        query = query.where(Payout.status == PayoutStatus(status).value)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar()
    result = await db.execute(
        query
        .order_by(Payout.created_at.desc(), Payout.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(result.scalars().all()), total


async def settle_payout(
    db: AsyncSession,
    payout_id: int,
    admin: User,
    status: PayoutStatus,
    failure_reason: Optional[str] = None,
) -> Payout:
    """Record the bank transfer outcome. Only a pending payout can be settled."""
    _require_admin(admin)
    status = PayoutStatus(status)
    if status == PayoutStatus.PENDING:
        raise InvalidState("A payout can only be settled as processed or failed")

    result = await db.execute(select(Payout).where(Payout.id == payout_id))
    payout = result.scalar_one_or_none()
    if not payout:
        raise NotFound(f"Payout {payout_id} not found")

    outcome = await db.execute(
        update(Payout)
        .where(Payout.id == payout_id, Payout.status == PayoutStatus.PENDING.value)
        .values(
            status=status.value,
            processed_by=admin.id,
            processed_at=datetime.now(timezone.utc),
            failure_reason=failure_reason if status == PayoutStatus.FAILED else None,
        )
        .execution_options(synchronize_session=False)
    )
    await db.refresh(payout)
    if outcome.rowcount == 0:
        raise AlreadyProcessed(f"Payout {payout_id} is already {payout.status}")

    record_payout(payout.type, status.value)
    logger.info("payout_settled", payout_id=payout_id, status=status.value, admin_id=admin.id)
    return payout
