"""
Ticket endpoints: purchase, checkout, door scanning, cancellation.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_payment_orchestrator
from app.core.security import get_current_user, get_current_user_id
from app.db.session import get_db
from app.models.user import User
from app.schemas.payment import PaymentInitiateResponse
from app.schemas.refund import RefundResponse
from app.schemas.ticket import (
    TicketPurchase, TicketResponse, TicketPurchaseResponse, TicketScan, TicketCancel, TicketCancelResponse,
)
from app.services import ticket_service
from app.services.cache_service import invalidate_event_cache
from app.services.payment_service import PaymentOrchestrator

router = APIRouter(prefix="/tickets", tags=["Tickets"])


@router.post("/", response_model=TicketPurchaseResponse, status_code=status.HTTP_201_CREATED)
async def purchase_ticket(
    purchase: TicketPurchase,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Buy tickets. Free events issue an active ticket at once (409 when sold
    out); paid events return a pending ticket to check out with /pay.
    """
    ticket, payment_required = await ticket_service.purchase_ticket(
        db, user_id, purchase.event_id, purchase.quantity, purchase.ticket_type
    )
    if not payment_required:
        await invalidate_event_cache()
    return TicketPurchaseResponse(
        payment_required=payment_required,
        ticket=TicketResponse.model_validate(ticket),
    )


@router.get("/", response_model=list[TicketResponse])
async def list_my_tickets(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await ticket_service.list_user_tickets(db, user_id)


@router.get("/event/{event_id}", response_model=list[TicketResponse])
async def list_event_tickets(
    event_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await ticket_service.list_event_tickets(db, event_id, user)


@router.get("/{ticket_id}", response_model=TicketResponse)
async def get_ticket(
    ticket_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await ticket_service.get_ticket_for_actor(db, ticket_id, user_id)


@router.post("/{ticket_id}/pay", response_model=PaymentInitiateResponse, status_code=status.HTTP_201_CREATED)
async def pay_for_ticket(
    ticket_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
):
    payment = await ticket_service.initiate_ticket_payment(db, ticket_id, user_id, orchestrator)
    return PaymentInitiateResponse.from_payment(payment)


@router.post("/{ticket_code}/validate", response_model=TicketResponse)
async def validate_ticket(
    ticket_code: str,
    scan: TicketScan,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Door pre-check: reports whether the ticket would be admitted."""
    return await ticket_service.validate_ticket(db, ticket_code, scan.qr_payload, scan.event_id)


@router.post("/{ticket_code}/checkin", response_model=TicketResponse)
async def check_in_ticket(
    ticket_code: str,
    scan: TicketScan,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Admit the holder. A second scan of the same ticket gets 409."""
    return await ticket_service.check_in_ticket(db, ticket_code, scan.qr_payload, scan.event_id, user)


@router.post("/{ticket_id}/cancel", response_model=TicketCancelResponse)
async def cancel_ticket(
    ticket_id: int,
    cancel_data: TicketCancel,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    ticket, refund = await ticket_service.cancel_ticket(db, ticket_id, user_id, cancel_data.reason)
    if refund is None:
        await invalidate_event_cache()
    return TicketCancelResponse(
        ticket=TicketResponse.model_validate(ticket),
        refund=RefundResponse.model_validate(refund) if refund else None,
    )
