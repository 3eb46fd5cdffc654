"""
Payment model: one attempt to collect money for a Booking or a Ticket.

Key design decisions:
- The polymorphic (reference_model, reference_id) pair is surfaced as a
  PaymentReference value and is never reassigned after creation
- platform_fee and net_amount are derived; a validator recomputes them on
  every assignment of amount or platform_fee_percentage
- gateway_order_id is unique so a gateway callback resolves to exactly one row
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import validates

from app.db.base import Base, TimestampMixin
from app.models.enums import PaymentStatus, PaymentType, ReferenceModel, check_in


def split_platform_fee(amount: int, percentage: float) -> tuple[int, int]:
    """Return (platform_fee, net_amount) for an amount and a fee percentage.

    The fee is rounded half-up to a whole currency unit, so
    platform_fee + net_amount == amount always holds.
    """
    fee = (Decimal(amount) * Decimal(str(percentage)) / Decimal(100)).quantize(
        Decimal(1), rounding=ROUND_HALF_UP
    )
    platform_fee = int(fee)
    return platform_fee, amount - platform_fee


@dataclass(frozen=True)
class PaymentReference:
    kind: ReferenceModel
    id: int

    @classmethod
    def booking(cls, booking_id: int) -> "PaymentReference":
        return cls(ReferenceModel.BOOKING, booking_id)

    @classmethod
    def ticket(cls, ticket_id: int) -> "PaymentReference":
        return cls(ReferenceModel.TICKET, ticket_id)

    @property
    def payment_type(self) -> PaymentType:
        if self.kind == ReferenceModel.BOOKING:
            return PaymentType.VENUE_BOOKING
        if self.kind == ReferenceModel.TICKET:
            return PaymentType.TICKET_PURCHASE
        raise ValueError(f"Unknown payment reference kind: {self.kind}")

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id}"


class Payment(Base, TimestampMixin):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(30), nullable=False)
    reference_model = Column(String(20), nullable=False)
    reference_id = Column(Integer, nullable=False)

    amount = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="INR")
    platform_fee_percentage = Column(Float, nullable=False, default=0.0)
    platform_fee = Column(Integer, nullable=False, default=0)
    net_amount = Column(Integer, nullable=False, default=0)

    gateway_order_id = Column(String(100), nullable=True, unique=True)
    gateway_transaction_id = Column(String(100), nullable=True, index=True)
    status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    failure_reason = Column(String(500), nullable=True)

    __table_args__ = (
        Index("ix_payments_reference", "reference_model", "reference_id"),
        Index("ix_payments_status_created", "status", "created_at"),
        CheckConstraint("amount >= 0", name="check_payment_amount_non_negative"),
        CheckConstraint(
            "platform_fee_percentage >= 0 AND platform_fee_percentage <= 100",
            name="check_payment_fee_percentage_range",
        ),
        CheckConstraint("platform_fee + net_amount = amount", name="check_payment_fee_split"),
        CheckConstraint(check_in("status", PaymentStatus), name="check_payment_status"),
        CheckConstraint(check_in("reference_model", ReferenceModel), name="check_payment_reference_model"),
        CheckConstraint(check_in("type", PaymentType), name="check_payment_type"),
    )

    def __init__(self, reference: PaymentReference = None, **kwargs):
        if reference is not None:
            kwargs.setdefault("type", reference.payment_type.value)
            kwargs["reference_model"] = reference.kind.value
            kwargs["reference_id"] = reference.id
        super().__init__(**kwargs)

    @validates("amount", "platform_fee_percentage")
    def _derive_fee(self, key, value):
        amount = value if key == "amount" else self.amount
        percentage = value if key == "platform_fee_percentage" else self.platform_fee_percentage
        if amount is not None:
            self.platform_fee, self.net_amount = split_platform_fee(amount, percentage or 0)
        return value

    @validates("reference_model", "reference_id")
    def _freeze_reference(self, key, value):
        current = getattr(self, key)
        if current is not None and current != value:
            raise ValueError(f"Payment {key} is immutable once set")
        return value

    @property
    def reference(self) -> PaymentReference:
        return PaymentReference(ReferenceModel(self.reference_model), self.reference_id)

    @property
    def is_settled(self) -> bool:
        return self.status in (PaymentStatus.SUCCESS, PaymentStatus.FAILED, PaymentStatus.REFUNDED)

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, ref={self.reference_model}:{self.reference_id}, "
            f"amount={self.amount}, status={self.status})>"
        )
