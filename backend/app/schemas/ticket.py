"""
Pydantic schemas for ticket purchase, door scanning and cancellation.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from app.core.config import get_settings
from app.models.enums import TicketType
from app.schemas.refund import RefundResponse

settings = get_settings()


class TicketPurchase(BaseModel):
    event_id: int
    quantity: int = Field(default=1, gt=0, le=settings.MAX_TICKETS_PER_PURCHASE)
    ticket_type: TicketType = TicketType.GENERAL


class TicketResponse(BaseModel):
    id: int
    ticket_code: str
    user_id: int
    event_id: int
    qr_payload: str
    ticket_type: str
    price: int
    quantity: int
    payment_id: Optional[int]
    status: str
    is_used: bool
    used_at: Optional[datetime]
    checked_in_by: Optional[int]
    created_at: datetime

    model_config = {"from_attributes": True}


class TicketPurchaseResponse(BaseModel):
    payment_required: bool
    ticket: TicketResponse


class TicketScan(BaseModel):
    qr_payload: str = Field(..., min_length=1, max_length=2048)
    event_id: int


class TicketCancel(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class TicketCancelResponse(BaseModel):
    ticket: TicketResponse
    refund: Optional[RefundResponse] = None
