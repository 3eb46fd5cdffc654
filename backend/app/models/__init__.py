from app.models.user import User
from app.models.venue import Venue, VenueBlockedSlot
from app.models.booking import Booking
from app.models.event import Event, EventAccessRequest
from app.models.payment import Payment, PaymentReference
from app.models.ticket import Ticket
from app.models.refund import Refund
from app.models.payout import Payout

__all__ = [
    "User", "Venue", "VenueBlockedSlot", "Booking", "Event", "EventAccessRequest",
    "Payment", "PaymentReference", "Ticket", "Refund", "Payout",
]
