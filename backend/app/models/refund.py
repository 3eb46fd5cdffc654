"""
Refund model: a request to return money from a successful payment.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, CheckConstraint

from app.db.base import Base, TimestampMixin
from app.models.enums import RefundReason, RefundStatus, RefundType, check_in

OPEN_REFUND_STATUSES = (RefundStatus.PENDING, RefundStatus.APPROVED, RefundStatus.PROCESSING)


class Refund(Base, TimestampMixin):
    __tablename__ = "refunds"

    id = Column(Integer, primary_key=True, index=True)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    reason = Column(String(30), nullable=False)
    reason_details = Column(String(1000), nullable=True)
    amount = Column(Integer, nullable=False)
    refund_type = Column(String(10), nullable=False, default=RefundType.FULL.value)
    status = Column(String(20), nullable=False, default=RefundStatus.PENDING.value)

    reviewed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    admin_notes = Column(String(1000), nullable=True)

    gateway_refund_id = Column(String(100), nullable=True)
    failure_reason = Column(String(500), nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_refunds_status_created", "status", "created_at"),
        CheckConstraint("amount > 0", name="check_refund_amount_positive"),
        CheckConstraint(check_in("status", RefundStatus), name="check_refund_status"),
        CheckConstraint(check_in("reason", RefundReason), name="check_refund_reason"),
        CheckConstraint(check_in("refund_type", RefundType), name="check_refund_type"),
    )

    def __repr__(self) -> str:
        return f"<Refund(id={self.id}, payment={self.payment_id}, amount={self.amount}, status={self.status})>"
