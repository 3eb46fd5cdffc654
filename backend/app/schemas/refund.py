"""
Pydantic schemas for refund review.
"""

from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field


class RefundResponse(BaseModel):
    id: int
    payment_id: int
    user_id: int
    reason: str
    reason_details: Optional[str]
    amount: int
    refund_type: str
    status: str
    reviewed_by: Optional[int]
    reviewed_at: Optional[datetime]
    admin_notes: Optional[str]
    gateway_refund_id: Optional[str]
    failure_reason: Optional[str]
    processed_at: Optional[datetime]
    created_at: datetime

    model_config = {"from_attributes": True}


class RefundReview(BaseModel):
    decision: Literal["approved", "rejected"]
    notes: Optional[str] = Field(None, max_length=1000)
