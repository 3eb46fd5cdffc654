"""
Payment endpoints: checkout, gateway verification, refunds on a payment,
and admin payouts to venue owners and organizers.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_payment_orchestrator
from app.core.config import get_settings
from app.core.exceptions import Forbidden
from app.core.security import get_current_user, get_current_user_id
from app.db.session import get_db
from app.models.enums import PayoutStatus
from app.models.user import User
from app.schemas.payment import (
    PaymentInitiateRequest, PaymentInitiateResponse, PaymentVerifyRequest, PaymentResponse,
    RefundCreate, ExpireStaleResponse,
)
from app.schemas.payout import PayoutCreate, PayoutListResponse, PayoutResponse, PayoutSettle
from app.schemas.refund import RefundResponse
from app.services import payment_service, payout_service, refund_service
from app.services.cache_service import invalidate_event_cache
from app.services.payment_service import PaymentOrchestrator

router = APIRouter(prefix="/payments", tags=["Payments"])
settings = get_settings()


@router.post("/initiate", response_model=PaymentInitiateResponse, status_code=status.HTTP_201_CREATED)
async def initiate_payment(
    request: PaymentInitiateRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
):
    """Open checkout for a Booking or a Ticket."""
    payment = await orchestrator.initiate_for_reference(
        db, request.reference_model, request.reference_id, user_id
    )
    return PaymentInitiateResponse.from_payment(payment)


@router.post("/verify", response_model=PaymentResponse)
async def verify_payment(
    request: PaymentVerifyRequest,
    db: AsyncSession = Depends(get_db),
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
):
    """
    Gateway callback. Authenticated by the gateway signature, not a user
    token. Replays return 409 and change nothing.
    """
    payment = await orchestrator.verify(
        db, request.gateway_order_id, request.gateway_payment_id, request.gateway_signature
    )
    await invalidate_event_cache()
    return payment


@router.post("/expire-stale", response_model=ExpireStaleResponse)
async def expire_stale_payments(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
):
    """Admin reaper for checkouts older than PAYMENT_HOLD_MINUTES."""
    if not user.is_admin:
        raise Forbidden("Only admins can expire payments")
    cutoff = datetime.now(timezone.utc) - timedelta(minutes=settings.PAYMENT_HOLD_MINUTES)
    expired = await orchestrator.expire_stale_payments(db, cutoff)
    return ExpireStaleResponse(payments_expired=expired)


@router.get("/", response_model=list[PaymentResponse])
async def list_my_payments(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await payment_service.list_user_payments(db, user_id)


@router.post("/payouts", response_model=PayoutResponse, status_code=status.HTTP_201_CREATED)
async def process_payout(
    payout_data: PayoutCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Admin: pay out a completed booking to its venue owner, or a past event's ticket sales to its organizer."""
    return await payout_service.process_payout(
        db,
        user,
        payout_data.type,
        payout_data.reference_id,
        commission_percentage=settings.PLATFORM_FEE_PERCENTAGE,
        bank_details=payout_data.bank_details,
    )


@router.get("/payouts", response_model=PayoutListResponse)
async def list_payouts(
    status_filter: Optional[PayoutStatus] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    payouts, total = await payout_service.list_payouts(db, user, status_filter, page, page_size)
    return PayoutListResponse(
        payouts=[PayoutResponse.model_validate(p) for p in payouts],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.put("/payouts/{payout_id}", response_model=PayoutResponse)
async def settle_payout(
    payout_id: int,
    settlement: PayoutSettle,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Admin: record whether the transfer went through."""
    return await payout_service.settle_payout(
        db, payout_id, user, settlement.status, settlement.failure_reason
    )


@router.get("/{payment_id}", response_model=PaymentResponse)
async def get_payment(
    payment_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await payment_service.get_payment_for_actor(db, payment_id, user)


@router.post("/{payment_id}/refund", response_model=RefundResponse, status_code=status.HTTP_201_CREATED)
async def request_refund(
    payment_id: int,
    refund_data: RefundCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Payer (or an admin) asks for money back; an admin reviews it later."""
    return await refund_service.request_refund(
        db,
        payment_id,
        user,
        reason=refund_data.reason,
        reason_details=refund_data.reason_details,
        amount=refund_data.amount,
    )
