"""
Ticket workflow: purchase, door validation and check-in, cancellation.

Free tickets are issued immediately: the attendee counter is incremented
with a conditional UPDATE (see capacity.py) and the ticket row is inserted
in the same transaction. Paid tickets are inserted 'pending' and hold no
capacity until the payment orchestrator verifies the payment.

Check-in is a conditional UPDATE on is_used = false, so two scanners
presenting the same QR code at once admit exactly one holder.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    AlreadyUsed, Conflict, Forbidden, InvalidState, InvalidTicket, NotFound, ValidationError, WrongEvent,
)
from app.core.logging import get_logger
from app.core.metrics import record_checkin, record_ticket_purchase
from app.models.enums import RefundReason, TicketStatus, TicketType
from app.models.payment import PaymentReference
from app.models.refund import Refund
from app.models.ticket import Ticket, decode_qr_payload
from app.models.user import User
from app.services.capacity import release_attendees, reserve_attendees
from app.services.event_service import get_event, has_access
from app.services.refund_service import get_payment, open_refund
from app.services.venue_service import get_venue

logger = get_logger(__name__)


async def purchase_ticket(
    db: AsyncSession,
    user_id: int,
    event_id: int,
    quantity: int = 1,
    ticket_type: TicketType = TicketType.GENERAL,
) -> tuple[Ticket, bool]:
    """
    Buy `quantity` admissions to an event.

    Returns (ticket, payment_required). A free ticket comes back active; a
    paid one comes back pending and must go through checkout.
    """
    if quantity <= 0:
        raise ValidationError("Quantity must be positive")

    event = await get_event(db, event_id)
    if not event.is_ticketable:
        raise InvalidState(f"Event {event_id} is not open for tickets")
    if event.is_private and not await has_access(db, event, user_id):
        raise Forbidden("This is a private event; unlock it with the access code first")

    price = event.ticket_price * quantity
    ticket = Ticket.issue(
        user_id,
        event_id,
        ticket_type=TicketType(ticket_type).value,
        price=price,
        quantity=quantity,
        status=(TicketStatus.PENDING if price > 0 else TicketStatus.ACTIVE).value,
    )

    if price == 0:
        if not await reserve_attendees(db, event_id, quantity):
            record_ticket_purchase("conflict")
            await db.refresh(event)
            raise Conflict(
                f"Not enough spots. Requested: {quantity}, Available: {event.available_spots}"
            )
        db.add(ticket)
        await db.flush()
        await db.refresh(ticket)
        record_ticket_purchase("issued")
        logger.info("ticket_issued", ticket_id=ticket.id, event_id=event_id, user_id=user_id, quantity=quantity)
        return ticket, False

    # Early refusal only; capacity is taken when the payment verifies
    if event.available_spots < quantity:
        record_ticket_purchase("conflict")
        raise Conflict(f"Not enough spots. Requested: {quantity}, Available: {event.available_spots}")

    db.add(ticket)
    await db.flush()
    await db.refresh(ticket)
    record_ticket_purchase("payment_required")
    logger.info("ticket_pending_payment", ticket_id=ticket.id, event_id=event_id, user_id=user_id, price=price)
    return ticket, True


async def initiate_ticket_payment(db: AsyncSession, ticket_id: int, payer_id: int, orchestrator):
    """Start checkout for a pending paid ticket. Returns the pending Payment."""
    ticket = await get_ticket(db, ticket_id)
    if ticket.user_id != payer_id:
        raise Forbidden("Only the ticket holder can pay for this ticket")
    if ticket.status != TicketStatus.PENDING or ticket.is_free:
        raise InvalidState(f"Ticket {ticket_id} is {ticket.status}; nothing to pay")

    event = await get_event(db, ticket.event_id)
    if not event.is_ticketable:
        raise InvalidState(f"Event {event.id} is not open for tickets")

    return await orchestrator.initiate(db, PaymentReference.ticket(ticket.id), ticket.price, payer_id)


async def get_ticket(db: AsyncSession, ticket_id: int) -> Ticket:
    result = await db.execute(select(Ticket).where(Ticket.id == ticket_id))
    ticket = result.scalar_one_or_none()
    if not ticket:
        raise NotFound(f"Ticket {ticket_id} not found")
    return ticket


async def get_ticket_for_actor(db: AsyncSession, ticket_id: int, actor_id: int) -> Ticket:
    ticket = await get_ticket(db, ticket_id)
    if ticket.user_id != actor_id:
        raise Forbidden("Not allowed to view this ticket")
    return ticket


async def _get_ticket_by_code(db: AsyncSession, ticket_code: str) -> Ticket:
    result = await db.execute(select(Ticket).where(Ticket.ticket_code == ticket_code))
    ticket = result.scalar_one_or_none()
    if not ticket:
        raise NotFound(f"Ticket {ticket_code} not found")
    return ticket


async def validate_ticket(
    db: AsyncSession,
    ticket_code: str,
    qr_payload: str,
    scanner_event_id: int,
) -> Ticket:
    """Check a scanned ticket without admitting it."""
    try:
        scanned = decode_qr_payload(qr_payload)
    except ValueError:
        record_checkin("invalid")
        raise InvalidTicket("QR payload could not be read")

    ticket = await _get_ticket_by_code(db, ticket_code)
    if not ticket.matches_qr(*scanned):
        record_checkin("invalid")
        logger.warning("ticket_qr_mismatch", ticket_code=ticket_code)
        raise InvalidTicket("QR payload does not match this ticket")
    if ticket.event_id != scanner_event_id:
        record_checkin("wrong_event")
        raise WrongEvent(f"Ticket {ticket_code} is for event {ticket.event_id}, not {scanner_event_id}")
    if ticket.is_used:
        record_checkin("already_used")
        raise AlreadyUsed(f"Ticket {ticket_code} was already used at {ticket.used_at}")
    if ticket.status != TicketStatus.ACTIVE:
        record_checkin("invalid")
        raise InvalidState(f"Ticket {ticket_code} is {ticket.status}")
    return ticket


async def _can_check_in(db: AsyncSession, checker: User, event_id: int) -> bool:
    if checker.is_admin:
        return True
    event = await get_event(db, event_id)
    if event.organizer_id == checker.id:
        return True
    venue = await get_venue(db, event.venue_id)
    return venue.owner_id == checker.id


async def check_in_ticket(
    db: AsyncSession,
    ticket_code: str,
    qr_payload: str,
    scanner_event_id: int,
    checker: User,
) -> Ticket:
    """Admit the holder: validate, then flip is_used exactly once."""
    if not await _can_check_in(db, checker, scanner_event_id):
        raise Forbidden("Only the organizer, the venue owner or an admin can check tickets in")

    ticket = await validate_ticket(db, ticket_code, qr_payload, scanner_event_id)

    result = await db.execute(
        update(Ticket)
        .where(
            Ticket.id == ticket.id,
            Ticket.is_used.is_(False),
            Ticket.status == TicketStatus.ACTIVE.value,
        )
        .values(
            is_used=True,
            status=TicketStatus.USED.value,
            used_at=datetime.now(timezone.utc),
            checked_in_by=checker.id,
        )
        .execution_options(synchronize_session=False)
    )
    await db.refresh(ticket)
    if result.rowcount == 0:
        record_checkin("already_used")
        logger.info("ticket_checkin_raced", ticket_code=ticket_code)
        raise AlreadyUsed(f"Ticket {ticket_code} was already used")

    record_checkin("admitted")
    logger.info("ticket_checked_in", ticket_id=ticket.id, event_id=ticket.event_id, checker_id=checker.id)
    return ticket


async def cancel_ticket(
    db: AsyncSession,
    ticket_id: int,
    actor_id: int,
    reason: str,
) -> tuple[Ticket, Optional[Refund]]:
    """
    Holder cancels a ticket.

    Free and unpaid tickets are cancelled on the spot (free ones give their
    seats back). A paid ticket stays active and a refund is opened; the
    ticket is cancelled when that refund completes.
    """
    ticket = await get_ticket(db, ticket_id)
    if ticket.user_id != actor_id:
        raise Forbidden("Only the ticket holder can cancel this ticket")
    if ticket.status not in (TicketStatus.ACTIVE, TicketStatus.PENDING):
        raise InvalidState(f"Ticket {ticket_id} is {ticket.status}")

    if ticket.status == TicketStatus.ACTIVE and not ticket.is_free:
        payment = await get_payment(db, ticket.payment_id)
        refund = await open_refund(db, payment, ticket.user_id, RefundReason.USER_REQUEST, reason_details=reason)
        logger.info("ticket_refund_requested", ticket_id=ticket_id, refund_id=refund.id)
        return ticket, refund

    was_active = ticket.status == TicketStatus.ACTIVE
    result = await db.execute(
        update(Ticket)
        .where(Ticket.id == ticket_id, Ticket.status == ticket.status)
        .values(status=TicketStatus.CANCELLED.value, cancellation_reason=reason)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.refresh(ticket)
        raise InvalidState(f"Ticket {ticket_id} is {ticket.status}")
    if was_active:
        await release_attendees(db, ticket.event_id, ticket.quantity)
    await db.refresh(ticket)

    logger.info("ticket_cancelled", ticket_id=ticket_id, event_id=ticket.event_id, released=was_active)
    return ticket, None


async def list_user_tickets(db: AsyncSession, user_id: int) -> list[Ticket]:
    result = await db.execute(
        select(Ticket)
        .where(Ticket.user_id == user_id)
        .order_by(Ticket.created_at.desc(), Ticket.id.desc())
    )
    return list(result.scalars().all())


async def list_event_tickets(db: AsyncSession, event_id: int, actor: User) -> list[Ticket]:
    event = await get_event(db, event_id)
    if event.organizer_id != actor.id and not actor.is_admin:
        raise Forbidden("Only the organizer or an admin can list an event's tickets")
    result = await db.execute(
        select(Ticket).where(Ticket.event_id == event_id).order_by(Ticket.id.asc())
    )
    return list(result.scalars().all())
