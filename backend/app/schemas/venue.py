"""
Pydantic schemas for venues and their blocked slots.
"""

from datetime import date, time, datetime
from typing import Optional
from pydantic import BaseModel, Field


class VenueCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    hourly_rate: int = Field(..., ge=0)
    capacity: int = Field(..., gt=0, le=100000)


class VenueResponse(BaseModel):
    id: int
    owner_id: int
    name: str
    hourly_rate: int
    capacity: int
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class BlockedSlotCreate(BaseModel):
    date: date
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    reason: Optional[str] = Field(None, max_length=255)


class BlockedSlotResponse(BaseModel):
    id: int
    venue_id: int
    date: date
    start_time: Optional[time]
    end_time: Optional[time]
    reason: Optional[str]

    model_config = {"from_attributes": True}
