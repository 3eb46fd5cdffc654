"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from app.api.routes import auth, venues, bookings, events, payments, tickets, refunds

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(auth.router)
api_router.include_router(venues.router)
api_router.include_router(bookings.router)
api_router.include_router(events.router)
api_router.include_router(payments.router)
api_router.include_router(tickets.router)
api_router.include_router(refunds.router)
