"""
Refund endpoints: listing and admin review.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import get_current_user
from app.db.session import get_db
from app.infrastructure.gateway import PaymentGateway, get_gateway
from app.models.enums import RefundStatus
from app.models.user import User
from app.schemas.refund import RefundResponse, RefundReview
from app.services import refund_service
from app.services.cache_service import invalidate_event_cache

router = APIRouter(prefix="/refunds", tags=["Refunds"])


@router.get("/", response_model=list[RefundResponse])
async def list_refunds(
    status_filter: Optional[RefundStatus] = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Admins see all refunds, everyone else their own."""
    return await refund_service.list_refunds(db, user, status_filter)


@router.post("/{refund_id}/review", response_model=RefundResponse)
async def review_refund(
    refund_id: int,
    review: RefundReview,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
):
    """
    Approve (the gateway refund runs immediately) or reject a pending
    refund. A second review of the same refund gets 409.
    """
    refund = await refund_service.review_refund(db, refund_id, user, review.decision, gateway, review.notes)
    await invalidate_event_cache()
    return refund
