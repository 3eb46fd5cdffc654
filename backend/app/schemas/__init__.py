from app.schemas.user import UserCreate, UserResponse, UserLogin, Token
from app.schemas.venue import VenueCreate, VenueResponse, BlockedSlotCreate, BlockedSlotResponse
from app.schemas.booking import BookingCreate, BookingResponse, BookingDecision, BookingCancel
from app.schemas.event import EventCreate, EventResponse, EventListResponse, ApprovalDecision
from app.schemas.payment import PaymentInitiateRequest, PaymentInitiateResponse, PaymentVerifyRequest, PaymentResponse
from app.schemas.ticket import TicketPurchase, TicketResponse, TicketPurchaseResponse, TicketScan
from app.schemas.refund import RefundResponse, RefundReview
from app.schemas.payout import PayoutCreate, PayoutResponse, PayoutListResponse, PayoutSettle

__all__ = [
    "UserCreate", "UserResponse", "UserLogin", "Token",
    "VenueCreate", "VenueResponse", "BlockedSlotCreate", "BlockedSlotResponse",
    "BookingCreate", "BookingResponse", "BookingDecision", "BookingCancel",
    "EventCreate", "EventResponse", "EventListResponse", "ApprovalDecision",
    "PaymentInitiateRequest", "PaymentInitiateResponse", "PaymentVerifyRequest", "PaymentResponse",
    "TicketPurchase", "TicketResponse", "TicketPurchaseResponse", "TicketScan",
    "RefundResponse", "RefundReview",
    "PayoutCreate", "PayoutResponse", "PayoutListResponse", "PayoutSettle",
]
