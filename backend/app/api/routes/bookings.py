"""
Venue booking endpoints.

Create and accept take a row lock on the venue so overlapping windows
cannot both be accepted; see booking_service for the full strategy.
"""

from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_payment_orchestrator
from app.db.session import get_db
from app.models.enums import BookingStatus
from app.schemas.booking import (
    BookingCreate, BookingUpdate, BookingResponse, BookingDecision, BookingCancel, BookingCancelResponse,
)
from app.schemas.payment import PaymentInitiateResponse
from app.services import booking_service
from app.services.payment_service import PaymentOrchestrator
from app.core.security import get_current_user_id

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Request a venue for a time window.

    Fails with 409 if the window overlaps an accepted booking or a blocked
    slot, 400 if the window itself is invalid.
    """
    return await booking_service.create_booking(
        db,
        requester_id=user_id,
        venue_id=booking_data.venue_id,
        booking_date=booking_data.booking_date,
        start_time=booking_data.start_time,
        end_time=booking_data.end_time,
        expected_guests=booking_data.expected_guests,
        purpose=booking_data.purpose,
    )


@router.get("/", response_model=list[BookingResponse])
async def list_my_bookings(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Get all bookings requested by the authenticated user."""
    return await booking_service.list_user_bookings(db, user_id)


@router.get("/venue/{venue_id}", response_model=list[BookingResponse])
async def list_venue_bookings(
    venue_id: int,
    status_filter: Optional[BookingStatus] = None,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await booking_service.list_venue_bookings(db, venue_id, user_id, status_filter)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await booking_service.get_booking_for_actor(db, booking_id, user_id)


@router.put("/{booking_id}", response_model=BookingResponse)
async def update_booking(
    booking_id: int,
    changes: BookingUpdate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Requester edits a booking the owner has not answered yet; the price is recomputed."""
    return await booking_service.update_booking(db, booking_id, user_id, changes)


@router.put("/{booking_id}/status", response_model=BookingResponse)
async def respond_to_booking(
    booking_id: int,
    decision: BookingDecision,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Venue owner accepts or rejects a pending booking, optionally accepting a different window."""
    return await booking_service.respond_to_booking(
        db, booking_id, user_id, decision.decision, decision.reason, decision.modified_window
    )


@router.post("/{booking_id}/cancel", response_model=BookingCancelResponse)
async def cancel_booking(
    booking_id: int,
    cancel_data: BookingCancel,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Requester or owner cancels. A paid booking gets a refund opened."""
    booking, refund = await booking_service.cancel_booking(db, booking_id, user_id, cancel_data.reason)
    return BookingCancelResponse(
        message="Booking cancelled successfully",
        booking_id=booking.id,
        status=booking.status,
        refund_id=refund.id if refund else None,
    )


@router.post("/{booking_id}/complete", response_model=BookingResponse)
async def complete_booking(
    booking_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await booking_service.complete_booking(db, booking_id, user_id)


@router.post("/{booking_id}/pay", response_model=PaymentInitiateResponse, status_code=status.HTTP_201_CREATED)
async def pay_for_booking(
    booking_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
):
    """Open checkout for an accepted booking."""
    payment = await booking_service.initiate_booking_payment(db, booking_id, user_id, orchestrator)
    return PaymentInitiateResponse.from_payment(payment)
