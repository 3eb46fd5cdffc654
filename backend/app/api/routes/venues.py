"""
Venue endpoints: registration, calendar blocks, owner's booking queue.
"""

from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.models.enums import BookingStatus
from app.schemas.booking import BookingResponse
from app.schemas.venue import VenueCreate, VenueResponse, BlockedSlotCreate, BlockedSlotResponse
from app.services import venue_service
from app.services.booking_service import list_venue_bookings
from app.core.security import get_current_user_id

router = APIRouter(prefix="/venues", tags=["Venues"])


@router.post("/", response_model=VenueResponse, status_code=status.HTTP_201_CREATED)
async def create_venue(
    venue_data: VenueCreate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Register a venue owned by the caller."""
    return await venue_service.create_venue(db, user_id, venue_data)


@router.get("/{venue_id}", response_model=VenueResponse)
async def get_venue(venue_id: int, db: AsyncSession = Depends(get_db)):
    return await venue_service.get_venue(db, venue_id)


@router.post(
    "/{venue_id}/blocked-slots",
    response_model=BlockedSlotResponse,
    status_code=status.HTTP_201_CREATED,
)
async def block_slot(
    venue_id: int,
    slot_data: BlockedSlotCreate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Take a window (or a whole day, with no times) off the venue calendar."""
    return await venue_service.add_blocked_slot(db, venue_id, user_id, slot_data)


@router.get("/{venue_id}/blocked-slots", response_model=list[BlockedSlotResponse])
async def list_blocked_slots(venue_id: int, db: AsyncSession = Depends(get_db)):
    return await venue_service.list_blocked_slots(db, venue_id)


@router.get("/{venue_id}/bookings", response_model=list[BookingResponse])
async def venue_bookings(
    venue_id: int,
    status_filter: Optional[BookingStatus] = None,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Owner's view of every booking at the venue."""
    return await list_venue_bookings(db, venue_id, user_id, status_filter)
