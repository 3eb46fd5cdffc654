"""
Pydantic schemas for event-related request/response validation.
"""

from datetime import date, time, datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field

from app.models.enums import EventType, TicketPricing


class EventCreate(BaseModel):
    venue_id: int
    booking_id: Optional[int] = None
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    event_date: date
    start_time: time
    end_time: time
    event_type: EventType = EventType.PUBLIC
    ticket_type: TicketPricing = TicketPricing.FREE
    ticket_price: int = Field(default=0, ge=0)
    max_attendees: int = Field(..., gt=0, le=100000)


class EventUpdate(BaseModel):
    """Editable details of an event still awaiting approval; omitted fields are unchanged."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    event_date: Optional[date] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    ticket_type: Optional[TicketPricing] = None
    ticket_price: Optional[int] = Field(None, ge=0)
    max_attendees: Optional[int] = Field(None, gt=0, le=100000)


class ApprovalResponse(BaseModel):
    status: str
    reason: Optional[str]
    responded_by: Optional[int]
    responded_at: Optional[datetime]

    model_config = {"from_attributes": True}


class EventResponse(BaseModel):
    id: int
    organizer_id: int
    venue_id: int
    booking_id: Optional[int]
    name: str
    description: Optional[str]
    event_date: date
    start_time: time
    end_time: time
    event_type: str
    ticket_type: str
    ticket_price: int
    max_attendees: int
    current_attendees: int
    status: str
    venue_approval: ApprovalResponse
    admin_approval: ApprovalResponse
    cancellation_reason: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class OrganizerEventResponse(EventResponse):
    """Organizer view: includes the private access code."""
    private_code: Optional[str]


class EventListResponse(BaseModel):
    events: list[EventResponse]
    total: int
    page: int
    page_size: int
    cached: bool = False


class ApprovalDecision(BaseModel):
    decision: Literal["approved", "rejected"]
    reason: Optional[str] = Field(None, max_length=500)


class PrivateAccessRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=16)
    message: Optional[str] = Field(None, max_length=500)


class AccessRequestResponse(BaseModel):
    id: int
    event_id: int
    user_id: int
    message: Optional[str]
    status: str
    responded_by: Optional[int]
    responded_at: Optional[datetime]
    created_at: datetime

    model_config = {"from_attributes": True}


class AccessRequestDecision(BaseModel):
    status: Literal["approved", "rejected"]


class EventCancel(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class EventCancelResponse(BaseModel):
    event: EventResponse
    tickets_cancelled: int
    tickets_expired: int
    refunds_opened: int
