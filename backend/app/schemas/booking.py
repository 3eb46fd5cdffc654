"""
Pydantic schemas for venue booking request/response validation.
"""

from datetime import date, time, datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field


class BookingCreate(BaseModel):
    venue_id: int
    booking_date: date
    start_time: time
    end_time: time
    expected_guests: int = Field(default=0, ge=0)
    purpose: Optional[str] = Field(None, max_length=500)


class BookingUpdate(BaseModel):
    """Changes to a pending request; omitted fields are unchanged."""
    booking_date: Optional[date] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    expected_guests: Optional[int] = Field(None, ge=0)
    purpose: Optional[str] = Field(None, max_length=500)


class BookingWindow(BaseModel):
    booking_date: date
    start_time: time
    end_time: time


class BookingResponse(BaseModel):
    id: int
    requester_id: int
    venue_id: int
    event_id: Optional[int]
    booking_date: date
    start_time: time
    end_time: time
    expected_guests: int
    purpose: Optional[str]
    total_amount: int
    platform_fee: int
    status: str
    payment_status: str
    payment_id: Optional[int]
    rejection_reason: Optional[str]
    owner_responded_at: Optional[datetime]
    requested_booking_date: Optional[date] = None
    requested_start_time: Optional[time] = None
    requested_end_time: Optional[time] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class BookingDecision(BaseModel):
    decision: Literal["accept", "reject"]
    reason: Optional[str] = Field(None, max_length=500)
    # Owner counter-offer: accept the request for a different window
    modified_window: Optional[BookingWindow] = None


class BookingCancel(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class BookingCancelResponse(BaseModel):
    message: str
    booking_id: int
    status: str
    refund_id: Optional[int] = None
