"""
Payment orchestrator: the only code path that marks money as collected.

VERIFY STRATEGY: Compare-and-set claim
======================================

Problem:
  Gateways retry callbacks, and users double-click "I paid". Two verify
  calls for the same order both read status='pending', both activate the
  ticket, and the event counter is incremented twice.

Solution:
  The first thing verify does is

    UPDATE payments SET status = 'processing'
    WHERE gateway_order_id = :order AND status = 'pending'

  Exactly one caller gets rowcount == 1 and owns the payment for the rest
  of the transaction; every other caller gets AlreadyProcessed. The claim,
  the success write and the cascade onto the Booking or Ticket commit
  together, so a crash mid-way rolls the payment back to 'pending' and the
  callback can be retried.

  A paid ticket reserves event capacity only here, with the same
  conditional UPDATE purchase uses. If the event sold out (or the booking
  was cancelled) between checkout and verification the payment still
  succeeds, and a refund is opened automatically.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.exceptions import (
    AlreadyProcessed, Forbidden, GatewayFailure, InvalidAmount, NotFound, ValidationError,
)
from app.core.logging import get_logger
from app.core.metrics import gateway_latency, record_verification
from app.infrastructure.gateway import GatewayError, PaymentGateway
from app.models.booking import Booking
from app.models.enums import (
    BookingPaymentStatus, BookingStatus, PaymentStatus, ReferenceModel, RefundReason, TicketStatus,
)
from app.models.payment import Payment, PaymentReference
from app.models.ticket import Ticket
from app.models.user import User
from app.services import booking_service, ticket_service
from app.services.capacity import reserve_attendees
from app.services.refund_service import open_refund

logger = get_logger(__name__)


class PaymentOrchestrator:
    """Creates gateway orders and settles them onto bookings and tickets."""

    def __init__(self, gateway: PaymentGateway, fee_percentage: float, currency: str):
        self.gateway = gateway
        self.fee_percentage = fee_percentage
        self.currency = currency

    async def initiate(
        self,
        db: AsyncSession,
        reference: PaymentReference,
        amount: int,
        user_id: int,
    ) -> Payment:
        """
        Open a pending payment and its gateway order.

        An unfinished checkout for the same reference is handed back instead
        of creating a second order the user could also pay.
        """
        if amount <= 0:
            raise InvalidAmount("Payment amount must be positive")

        existing = await db.execute(
            select(Payment).where(
                Payment.reference_model == reference.kind.value,
                Payment.reference_id == reference.id,
                Payment.status == PaymentStatus.PENDING.value,
            )
        )
        payment = existing.scalars().first()
        if payment is not None and payment.amount == amount and payment.user_id == user_id:
            logger.info("payment_checkout_reused", payment_id=payment.id, reference=str(reference))
            return payment

        try:
            with gateway_latency.labels(operation="initiate").time():
                order = await self.gateway.initiate(amount, self.currency, str(reference))
        except GatewayError as e:
            logger.error("gateway_initiate_failed", reference=str(reference), error=str(e))
            raise GatewayFailure(f"Could not create a gateway order: {e}")

        payment = Payment(
            reference,
            user_id=user_id,
            amount=amount,
            currency=self.currency,
            platform_fee_percentage=self.fee_percentage,
            gateway_order_id=order.order_id,
            status=PaymentStatus.PENDING.value,
        )
        db.add(payment)
        await db.flush()
        await db.refresh(payment)

        logger.info(
            "payment_initiated",
            payment_id=payment.id,
            reference=str(reference),
            amount=amount,
            platform_fee=payment.platform_fee,
            gateway_order_id=order.order_id,
        )
        return payment

    async def initiate_for_reference(
        self,
        db: AsyncSession,
        reference_model: ReferenceModel,
        reference_id: int,
        payer_id: int,
    ) -> Payment:
        """Dispatch a generic checkout request to the workflow that owns the reference."""
        kind = ReferenceModel(reference_model)
        if kind == ReferenceModel.BOOKING:
            return await booking_service.initiate_booking_payment(db, reference_id, payer_id, self)
        if kind == ReferenceModel.TICKET:
            return await ticket_service.initiate_ticket_payment(db, reference_id, payer_id, self)
        raise ValidationError(f"Unsupported reference model: {reference_model}")

    async def verify(
        self,
        db: AsyncSession,
        gateway_order_id: str,
        gateway_payment_id: str,
        signature: str,
    ) -> Payment:
        claim = await db.execute(
            update(Payment)
            .where(
                Payment.gateway_order_id == gateway_order_id,
                Payment.status == PaymentStatus.PENDING.value,
            )
            .values(status=PaymentStatus.PROCESSING.value)
            .execution_options(synchronize_session=False)
        )
        payment = await _get_by_order(db, gateway_order_id)
        if claim.rowcount == 0:
            if payment is None:
                raise NotFound(f"No payment for gateway order {gateway_order_id}")
            record_verification("already_processed")
            logger.info("payment_verify_duplicate", payment_id=payment.id, status=payment.status)
            raise AlreadyProcessed(f"Payment {payment.id} is already {payment.status}")

        try:
            with gateway_latency.labels(operation="verify").time():
                authentic = await self.gateway.verify(gateway_order_id, gateway_payment_id, signature)
        except GatewayError as e:
            # Nothing committed yet; the payment rolls back to pending
            logger.error("gateway_verify_unreachable", payment_id=payment.id, error=str(e))
            raise GatewayFailure(f"Could not verify payment with the gateway: {e}")

        if not authentic:
            payment.status = PaymentStatus.FAILED.value
            payment.gateway_transaction_id = gateway_payment_id
            payment.failure_reason = "Gateway signature verification failed"
            await db.commit()
            record_verification("failed")
            logger.warning("payment_verify_failed", payment_id=payment.id, gateway_order_id=gateway_order_id)
            raise GatewayFailure(f"Payment {payment.id} could not be verified")

        payment.status = PaymentStatus.SUCCESS.value
        payment.gateway_transaction_id = gateway_payment_id
        payment.paid_at = datetime.now(timezone.utc)
        await db.flush()

        await self._apply_success(db, payment)
        await db.flush()

        record_verification("success", payment.type, payment.amount)
        logger.info(
            "payment_verified",
            payment_id=payment.id,
            reference=str(payment.reference),
            amount=payment.amount,
            platform_fee=payment.platform_fee,
        )
        return payment

    async def _apply_success(self, db: AsyncSession, payment: Payment) -> None:
        reference = payment.reference
        if reference.kind == ReferenceModel.BOOKING:
            await self._settle_booking(db, payment)
        elif reference.kind == ReferenceModel.TICKET:
            await self._settle_ticket(db, payment)
        else:
            raise ValueError(f"Unhandled payment reference: {reference}")

    async def _settle_booking(self, db: AsyncSession, payment: Payment) -> None:
        result = await db.execute(
            update(Booking)
            .where(
                Booking.id == payment.reference_id,
                Booking.status.in_([BookingStatus.ACCEPTED.value, BookingStatus.COMPLETED.value]),
                Booking.payment_status == BookingPaymentStatus.PENDING.value,
            )
            .values(
                payment_status=BookingPaymentStatus.PAID.value,
                payment_id=payment.id,
                platform_fee=payment.platform_fee,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self._refund_unfulfillable(
                db, payment, "Booking was no longer payable when the payment settled"
            )

    async def _settle_ticket(self, db: AsyncSession, payment: Payment) -> None:
        ticket = (
            await db.execute(select(Ticket).where(Ticket.id == payment.reference_id))
        ).scalar_one()

        if ticket.status == TicketStatus.PENDING and await reserve_attendees(
            db, ticket.event_id, ticket.quantity
        ):
            await db.execute(
                update(Ticket)
                .where(Ticket.id == ticket.id, Ticket.status == TicketStatus.PENDING.value)
                .values(status=TicketStatus.ACTIVE.value, payment_id=payment.id)
                .execution_options(synchronize_session=False)
            )
            await db.refresh(ticket)
            logger.info("ticket_activated", ticket_id=ticket.id, event_id=ticket.event_id)
            return

        await db.execute(
            update(Ticket)
            .where(Ticket.id == ticket.id, Ticket.status == TicketStatus.PENDING.value)
            .values(
                status=TicketStatus.CANCELLED.value,
                payment_id=payment.id,
                cancellation_reason="Event unavailable when the payment settled",
            )
            .execution_options(synchronize_session=False)
        )
        await db.refresh(ticket)
        await self._refund_unfulfillable(db, payment, "Event was sold out or unavailable when the payment settled")

    async def _refund_unfulfillable(self, db: AsyncSession, payment: Payment, details: str) -> None:
        refund = await open_refund(db, payment, payment.user_id, RefundReason.OTHER, reason_details=details)
        logger.warning(
            "payment_settled_unfulfillable",
            payment_id=payment.id,
            reference=str(payment.reference),
            refund_id=refund.id,
        )

    async def expire_stale_payments(self, db: AsyncSession, cutoff: datetime) -> int:
        """
        Fail checkouts opened before `cutoff` that were never verified.

        Their pending tickets are expired; they never held capacity.
        """
        stale = await db.execute(
            select(Payment).where(
                Payment.status == PaymentStatus.PENDING.value,
                Payment.created_at < cutoff,
            )
        )
        expired = 0
        for payment in stale.scalars().all():
            result = await db.execute(
                update(Payment)
                .where(Payment.id == payment.id, Payment.status == PaymentStatus.PENDING.value)
                .values(status=PaymentStatus.FAILED.value, failure_reason="Checkout abandoned")
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                continue
            expired += 1
            if payment.reference_model == ReferenceModel.TICKET:
                await db.execute(
                    update(Ticket)
                    .where(Ticket.id == payment.reference_id, Ticket.status == TicketStatus.PENDING.value)
                    .values(status=TicketStatus.EXPIRED.value, cancellation_reason="Checkout abandoned")
                    .execution_options(synchronize_session=False)
                )

        logger.info("stale_payments_expired", count=expired, cutoff=cutoff.isoformat())
        return expired


async def _get_by_order(db: AsyncSession, gateway_order_id: str) -> Optional[Payment]:
    result = await db.execute(
        select(Payment)
        .where(Payment.gateway_order_id == gateway_order_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_payment_for_actor(db: AsyncSession, payment_id: int, actor: User) -> Payment:
    result = await db.execute(select(Payment).where(Payment.id == payment_id))
    payment = result.scalar_one_or_none()
    if not payment:
        raise NotFound(f"Payment {payment_id} not found")
    if payment.user_id != actor.id and not actor.is_admin:
        raise Forbidden("Not allowed to view this payment")
    return payment


async def list_user_payments(db: AsyncSession, user_id: int) -> list[Payment]:
    result = await db.execute(
        select(Payment)
        .where(Payment.user_id == user_id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
    )
    return list(result.scalars().all())


def build_orchestrator(gateway: PaymentGateway) -> PaymentOrchestrator:
    settings = get_settings()
    return PaymentOrchestrator(
        gateway=gateway,
        fee_percentage=settings.PLATFORM_FEE_PERCENTAGE,
        currency=settings.CURRENCY,
    )
