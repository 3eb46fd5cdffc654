"""
Refund workflow: opening refund requests and the admin review saga.

Review is a two-step saga around the gateway call:

  1. pending -> processing is claimed with a conditional UPDATE and
     committed, so a second reviewer gets AlreadyDecided and a crash after
     this point leaves a visible 'processing' row instead of a lost refund
  2. the gateway refund runs outside any open transaction
  3. the outcome (completed + cascade, or failed) is written in a new
     transaction

At most one refund per payment may be open (pending/approved/processing).
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    AlreadyDecided, Conflict, Forbidden, GatewayFailure, InvalidAmount, InvalidState, NotFound,
)
from app.core.logging import get_logger
from app.core.metrics import gateway_latency, record_refund
from app.infrastructure.gateway import GatewayError, PaymentGateway
from app.models.booking import Booking
from app.models.enums import (
    BookingPaymentStatus, PaymentStatus, ReferenceModel, RefundReason, RefundStatus, RefundType,
    TicketStatus,
)
from app.models.payment import Payment
from app.models.refund import Refund, OPEN_REFUND_STATUSES
from app.models.ticket import Ticket
from app.models.user import User
from app.services.capacity import release_attendees

logger = get_logger(__name__)


async def get_payment(db: AsyncSession, payment_id: int) -> Payment:
    result = await db.execute(select(Payment).where(Payment.id == payment_id))
    payment = result.scalar_one_or_none()
    if not payment:
        raise NotFound(f"Payment {payment_id} not found")
    return payment


async def get_open_refund(db: AsyncSession, payment_id: int) -> Optional[Refund]:
    result = await db.execute(
        select(Refund).where(
            Refund.payment_id == payment_id,
            Refund.status.in_([s.value for s in OPEN_REFUND_STATUSES]),
        )
    )
    return result.scalars().first()


async def open_refund(
    db: AsyncSession,
    payment: Payment,
    user_id: int,
    reason: RefundReason,
    reason_details: Optional[str] = None,
    amount: Optional[int] = None,
) -> Refund:
    """
    Create a pending refund against a successful payment.

    No authorization here: workflows that cancel on someone's behalf (an
    owner cancelling a booking, an organizer cancelling an event) open
    refunds for the payer through this function.
    """
    if payment.status != PaymentStatus.SUCCESS:
        raise InvalidState(f"Payment {payment.id} is {payment.status}; only successful payments can be refunded")

    refund_amount = payment.amount if amount is None else amount
    if refund_amount <= 0 or refund_amount > payment.amount:
        raise InvalidAmount(f"Refund amount must be between 1 and {payment.amount}")

    if await get_open_refund(db, payment.id) is not None:
        raise Conflict(f"Payment {payment.id} already has an open refund")

    refund = Refund(
        payment_id=payment.id,
        user_id=user_id,
        reason=RefundReason(reason).value,
        reason_details=reason_details,
        amount=refund_amount,
        refund_type=(RefundType.FULL if refund_amount == payment.amount else RefundType.PARTIAL).value,
        status=RefundStatus.PENDING.value,
    )
    db.add(refund)
    await db.flush()
    await db.refresh(refund)

    record_refund("requested")
    logger.info(
        "refund_requested",
        refund_id=refund.id,
        payment_id=payment.id,
        amount=refund_amount,
        reason=refund.reason,
    )
    return refund


async def request_refund(
    db: AsyncSession,
    payment_id: int,
    requester: User,
    reason: RefundReason = RefundReason.USER_REQUEST,
    reason_details: Optional[str] = None,
    amount: Optional[int] = None,
) -> Refund:
    payment = await get_payment(db, payment_id)
    if payment.user_id != requester.id and not requester.is_admin:
        raise Forbidden("Only the payer or an admin can request a refund")
    return await open_refund(db, payment, payment.user_id, reason, reason_details, amount)


async def get_refund(db: AsyncSession, refund_id: int) -> Refund:
    result = await db.execute(select(Refund).where(Refund.id == refund_id))
    refund = result.scalar_one_or_none()
    if not refund:
        raise NotFound(f"Refund {refund_id} not found")
    return refund


async def list_refunds(
    db: AsyncSession,
    actor: User,
    status: Optional[RefundStatus] = None,
) -> list[Refund]:
    """Admins see every refund; other users see their own."""
    query = select(Refund)
    if not actor.is_admin:
        query = query.where(Refund.user_id == actor.id)
    if status is not None:
        query = query.where(Refund.status == RefundStatus(status).value)
    result = await db.execute(query.order_by(Refund.created_at.desc(), Refund.id.desc()))
    return list(result.scalars().all())


async def review_refund(
    db: AsyncSession,
    refund_id: int,
    reviewer: User,
    decision: str,
    gateway: PaymentGateway,
    notes: Optional[str] = None,
) -> Refund:
    """Approve (and execute) or reject a pending refund."""
    if not reviewer.is_admin:
        raise Forbidden("Only admins can review refunds")
    await get_refund(db, refund_id)

    now = datetime.now(timezone.utc)
    approved = decision == RefundStatus.APPROVED
    claim = await db.execute(
        update(Refund)
        .where(Refund.id == refund_id, Refund.status == RefundStatus.PENDING.value)
        .values(
            status=(RefundStatus.PROCESSING if approved else RefundStatus.REJECTED).value,
            reviewed_by=reviewer.id,
            reviewed_at=now,
            admin_notes=notes,
        )
        .execution_options(synchronize_session=False)
    )
    if claim.rowcount == 0:
        logger.info("refund_review_rejected", refund_id=refund_id, reason="already_decided")
        raise AlreadyDecided(f"Refund {refund_id} has already been reviewed")

    if not approved:
        refund = await get_refund(db, refund_id)
        await db.refresh(refund)
        record_refund("rejected")
        logger.info("refund_rejected", refund_id=refund_id, reviewer_id=reviewer.id)
        return refund

    # Checkpoint: the claim is durable before money moves
    await db.commit()

    refund = await get_refund(db, refund_id)
    await db.refresh(refund)
    payment = await get_payment(db, refund.payment_id)

    try:
        with gateway_latency.labels(operation="refund").time():
            outcome = await gateway.refund(payment.gateway_transaction_id, refund.amount)
    except GatewayError as e:
        await _mark_refund_failed(db, refund, str(e))
        raise GatewayFailure(f"Refund {refund.id} failed at the gateway: {e}")

    if not outcome.succeeded:
        await _mark_refund_failed(db, refund, f"Gateway reported refund status '{outcome.status}'")
        raise GatewayFailure(f"Refund {refund.id} was not processed by the gateway")

    await complete_refund(db, refund, payment, outcome.refund_id)
    return refund


async def _mark_refund_failed(db: AsyncSession, refund: Refund, failure_reason: str) -> None:
    refund.status = RefundStatus.FAILED.value
    refund.failure_reason = failure_reason[:500]
    await db.commit()
    record_refund("failed")
    logger.error("refund_failed", refund_id=refund.id, payment_id=refund.payment_id, error=failure_reason)


async def complete_refund(
    db: AsyncSession,
    refund: Refund,
    payment: Payment,
    gateway_refund_id: str,
) -> None:
    """Record a processed refund and cascade it to the payment and what it paid for."""
    refund.status = RefundStatus.COMPLETED.value
    refund.gateway_refund_id = gateway_refund_id
    refund.processed_at = datetime.now(timezone.utc)

    await db.execute(
        update(Payment)
        .where(Payment.id == payment.id, Payment.status == PaymentStatus.SUCCESS.value)
        .values(status=PaymentStatus.REFUNDED.value)
        .execution_options(synchronize_session=False)
    )

    reference = payment.reference
    if reference.kind == ReferenceModel.BOOKING:
        await _refund_booking(db, reference.id)
    elif reference.kind == ReferenceModel.TICKET:
        await _refund_ticket(db, reference.id)
    else:
        raise ValueError(f"Unhandled payment reference: {reference}")

    await db.flush()
    await db.refresh(payment)
    record_refund("completed")
    logger.info(
        "refund_completed",
        refund_id=refund.id,
        payment_id=payment.id,
        reference=str(reference),
        amount=refund.amount,
    )


async def _refund_booking(db: AsyncSession, booking_id: int) -> None:
    await db.execute(
        update(Booking)
        .where(Booking.id == booking_id, Booking.payment_status == BookingPaymentStatus.PAID.value)
        .values(payment_status=BookingPaymentStatus.REFUNDED.value)
        .execution_options(synchronize_session=False)
    )


async def _refund_ticket(db: AsyncSession, ticket_id: int) -> None:
    ticket = (await db.execute(select(Ticket).where(Ticket.id == ticket_id))).scalar_one()

    # An active ticket gives its seats back; a cancelled one already has
    cancelled = await db.execute(
        update(Ticket)
        .where(Ticket.id == ticket_id, Ticket.status == TicketStatus.ACTIVE.value)
        .values(status=TicketStatus.CANCELLED.value, cancellation_reason="Refunded")
        .execution_options(synchronize_session=False)
    )
    if cancelled.rowcount == 1:
        await release_attendees(db, ticket.event_id, ticket.quantity)
    elif ticket.status == TicketStatus.USED:
        logger.warning("refund_for_used_ticket", ticket_id=ticket_id)
