"""
Ticket model: proof of admission to an event.

Key design decisions:
- ticket_code (TKT-XXXXXXXXXXXX) is the human-readable identity printed on
  the ticket; qr_payload is derived from (ticket_code, event_id, user_id)
  once, at issue time, and is what the door scanner sends back
- A priced ticket is created 'pending' and only the payment orchestrator
  activates it; the CHECK below rejects an active/used priced ticket with no
  payment link
- is_used only ever goes false -> true
"""

import base64
import json
import secrets

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, Index, CheckConstraint

from app.db.base import Base, TimestampMixin
from app.models.enums import TicketStatus, TicketType, check_in

TICKET_CODE_PREFIX = "TKT-"


def generate_ticket_code() -> str:
    return TICKET_CODE_PREFIX + secrets.token_hex(6).upper()


def encode_qr_payload(ticket_code: str, event_id: int, user_id: int) -> str:
    body = json.dumps(
        {"ticketId": ticket_code, "eventId": str(event_id), "userId": str(user_id)},
        separators=(",", ":"),
        sort_keys=True,
    )
    return base64.b64encode(body.encode("utf-8")).decode("ascii")


def decode_qr_payload(payload: str) -> tuple[str, str, str]:
    """Return (ticket_code, event_id, user_id). Raises ValueError on garbage."""
    try:
        data = json.loads(base64.b64decode(payload.encode("ascii"), validate=True))
        return str(data["ticketId"]), str(data["eventId"]), str(data["userId"])
    except (ValueError, KeyError, TypeError, UnicodeError) as e:
        raise ValueError("Malformed QR payload") from e


class Ticket(Base, TimestampMixin):
    __tablename__ = "tickets"

    id = Column(Integer, primary_key=True, index=True)
    ticket_code = Column(String(20), nullable=False, unique=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    qr_payload = Column(Text, nullable=False)

    ticket_type = Column(String(20), nullable=False, default=TicketType.GENERAL.value)
    price = Column(Integer, nullable=False, default=0)
    quantity = Column(Integer, nullable=False, default=1)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=True)

    status = Column(String(20), nullable=False, default=TicketStatus.ACTIVE.value)
    is_used = Column(Boolean, nullable=False, default=False)
    used_at = Column(DateTime(timezone=True), nullable=True)
    checked_in_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    cancellation_reason = Column(String(500), nullable=True)

    __table_args__ = (
        Index("ix_tickets_event_status", "event_id", "status"),
        CheckConstraint("price >= 0", name="check_ticket_price_non_negative"),
        CheckConstraint("quantity > 0", name="check_ticket_quantity_positive"),
        CheckConstraint(check_in("status", TicketStatus), name="check_ticket_status"),
        CheckConstraint(check_in("ticket_type", TicketType), name="check_ticket_type"),
        CheckConstraint(
            "price = 0 OR status NOT IN ('active', 'used') OR payment_id IS NOT NULL",
            name="check_priced_ticket_paid",
        ),
    )

    @classmethod
    def issue(cls, user_id: int, event_id: int, **kwargs) -> "Ticket":
        code = generate_ticket_code()
        return cls(
            ticket_code=code,
            user_id=user_id,
            event_id=event_id,
            qr_payload=encode_qr_payload(code, event_id, user_id),
            **kwargs,
        )

    @property
    def is_free(self) -> bool:
        return self.price == 0

    def matches_qr(self, ticket_code: str, event_id: str, user_id: str) -> bool:
        return (
            ticket_code == self.ticket_code
            and event_id == str(self.event_id)
            and user_id == str(self.user_id)
        )

    def __repr__(self) -> str:
        return f"<Ticket(id={self.id}, code={self.ticket_code}, event={self.event_id}, status={self.status})>"
