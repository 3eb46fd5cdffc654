"""
Pydantic schemas for payment initiation, gateway callbacks and refunds.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from app.models.enums import ReferenceModel, RefundReason


class PaymentInitiateRequest(BaseModel):
    reference_model: ReferenceModel
    reference_id: int


class PaymentInitiateResponse(BaseModel):
    payment_id: int
    gateway_order_id: str
    amount: int
    currency: str
    platform_fee: int

    @classmethod
    def from_payment(cls, payment) -> "PaymentInitiateResponse":
        return cls(
            payment_id=payment.id,
            gateway_order_id=payment.gateway_order_id,
            amount=payment.amount,
            currency=payment.currency,
            platform_fee=payment.platform_fee,
        )


class PaymentVerifyRequest(BaseModel):
    gateway_order_id: str = Field(..., min_length=1, max_length=100)
    gateway_payment_id: str = Field(..., min_length=1, max_length=100)
    gateway_signature: str = Field(..., min_length=1, max_length=256)


class PaymentResponse(BaseModel):
    id: int
    user_id: int
    type: str
    reference_model: str
    reference_id: int
    amount: int
    currency: str
    platform_fee_percentage: float
    platform_fee: int
    net_amount: int
    gateway_order_id: Optional[str]
    gateway_transaction_id: Optional[str]
    status: str
    paid_at: Optional[datetime]
    failure_reason: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class RefundCreate(BaseModel):
    reason: RefundReason = RefundReason.USER_REQUEST
    reason_details: Optional[str] = Field(None, max_length=1000)
    amount: Optional[int] = Field(None, gt=0)


class ExpireStaleResponse(BaseModel):
    payments_expired: int
