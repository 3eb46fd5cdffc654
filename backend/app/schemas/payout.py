"""
Pydantic schemas for payouts to venue owners and organizers.
"""

from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field

from app.models.enums import PayoutType


class PayoutCreate(BaseModel):
    type: PayoutType
    # Booking id for venue_booking, event id for event_tickets
    reference_id: int
    bank_details: Optional[str] = Field(None, max_length=500)


class PayoutResponse(BaseModel):
    id: int
    recipient_id: int
    type: str
    reference_id: int
    gross_amount: int
    platform_commission_percentage: float
    platform_commission: int
    net_amount: int
    bank_details: Optional[str]
    status: str
    processed_by: Optional[int]
    processed_at: Optional[datetime]
    failure_reason: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class PayoutListResponse(BaseModel):
    payouts: list[PayoutResponse]
    total: int
    page: int
    page_size: int


class PayoutSettle(BaseModel):
    status: Literal["processed", "failed"]
    failure_reason: Optional[str] = Field(None, max_length=500)
