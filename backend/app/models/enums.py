"""
Lifecycle vocabularies for ledger records.

Columns store the plain string values; CHECK constraints on each table are
built from these enums so the database and the workflows agree on the
allowed states.
"""

from enum import Enum


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class BookingStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class BookingPaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"
    FAILED = "failed"


class EventType(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class TicketPricing(str, Enum):
    FREE = "free"
    PAID = "paid"


class EventStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    UPCOMING = "upcoming"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"
    BLOCKED = "blocked"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalStage(str, Enum):
    VENUE = "venue"
    ADMIN = "admin"


class PaymentType(str, Enum):
    VENUE_BOOKING = "venue_booking"
    TICKET_PURCHASE = "ticket_purchase"


class ReferenceModel(str, Enum):
    BOOKING = "Booking"
    TICKET = "Ticket"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"
    REFUNDED = "refunded"


class TicketType(str, Enum):
    GENERAL = "general"
    VIP = "vip"
    EARLY_BIRD = "early_bird"


class TicketStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    USED = "used"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class RefundReason(str, Enum):
    EVENT_CANCELLED = "event_cancelled"
    BOOKING_CANCELLED = "booking_cancelled"
    DUPLICATE_PAYMENT = "duplicate_payment"
    ADMIN_INITIATED = "admin_initiated"
    USER_REQUEST = "user_request"
    OTHER = "other"


class RefundType(str, Enum):
    FULL = "full"
    PARTIAL = "partial"


class RefundStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class PayoutType(str, Enum):
    VENUE_BOOKING = "venue_booking"
    EVENT_TICKETS = "event_tickets"


class PayoutStatus(str, Enum):
    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"


def check_in(column: str, enum_cls) -> str:
    """Render a CHECK constraint body restricting `column` to the enum values."""
    values = ", ".join(f"'{member.value}'" for member in enum_cls)
    return f"{column} IN ({values})"
