"""
Event endpoints: creation, edits, approvals, private access requests,
cancellation and deletion.

The public upcoming listing is cached in Redis; single-event reads are not
(they carry live attendee counts).
"""

from typing import Union

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.models.user import User
from app.schemas.event import (
    EventCreate, EventUpdate, EventResponse, OrganizerEventResponse, EventListResponse, ApprovalDecision,
    PrivateAccessRequest, AccessRequestResponse, AccessRequestDecision, EventCancel, EventCancelResponse,
)
from app.services import event_service
from app.services.cache_service import get_cached_events, set_cached_events, invalidate_event_cache
from app.core.security import get_current_user, get_current_user_id
from app.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/events", tags=["Events"])


def _present(event, viewer_id: int) -> EventResponse:
    if event.organizer_id == viewer_id:
        return OrganizerEventResponse.model_validate(event)
    return EventResponse.model_validate(event)


@router.post("/", response_model=OrganizerEventResponse, status_code=status.HTTP_201_CREATED)
async def create_event(
    event_data: EventCreate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Create an event. It is listed only after venue and admin approval."""
    return await event_service.create_event(db, event_data, user_id)


@router.get("/", response_model=EventListResponse)
async def list_events(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Upcoming public events, paginated. Served from cache when warm."""
    cached = await get_cached_events(page, page_size)
    if cached:
        cached["cached"] = True
        return EventListResponse(**cached)

    events, total = await event_service.list_events(db, page, page_size)
    response_data = {
        "events": [EventResponse.model_validate(e).model_dump() for e in events],
        "total": total,
        "page": page,
        "page_size": page_size,
        "cached": False,
    }
    await set_cached_events(page, page_size, response_data)
    return EventListResponse(**response_data)


@router.get("/mine", response_model=list[OrganizerEventResponse])
async def my_events(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await event_service.list_organizer_events(db, user_id)


@router.get("/venue-requests", response_model=list[EventResponse])
async def venue_requests(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Events waiting for the caller's approval as venue owner."""
    return await event_service.list_venue_requests(db, user_id)


@router.get("/admin-pending", response_model=list[EventResponse])
async def admin_pending(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await event_service.list_admin_pending(db, user)


@router.get("/{event_id}", response_model=Union[OrganizerEventResponse, EventResponse])
async def get_event(
    event_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Single event with live attendee counts. Private events need the access code first."""
    event = await event_service.get_event_for_viewer(db, event_id, user_id)
    return _present(event, user_id)


@router.put("/{event_id}", response_model=OrganizerEventResponse)
async def update_event(
    event_id: int,
    changes: EventUpdate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Edit an event while both approvals are still pending."""
    return await event_service.update_event(db, event_id, user_id, changes)


@router.delete("/{event_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_event(
    event_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Delete an event that has no tickets. Events with tickets must be cancelled."""
    await event_service.delete_event(db, event_id, user)
    await invalidate_event_cache()


@router.post("/{event_id}/venue-approve", response_model=EventResponse)
async def venue_approve(
    event_id: int,
    decision: ApprovalDecision,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await event_service.venue_approve(db, event_id, user_id, decision.decision, decision.reason)


@router.post("/{event_id}/admin-approve", response_model=EventResponse)
async def admin_approve(
    event_id: int,
    decision: ApprovalDecision,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Final approval; an approved event becomes upcoming and bookable."""
    event = await event_service.admin_approve(db, event_id, user, decision.decision, decision.reason)
    await invalidate_event_cache()
    return event


@router.post("/{event_id}/access", response_model=AccessRequestResponse, status_code=status.HTTP_201_CREATED)
async def request_access(
    event_id: int,
    access: PrivateAccessRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Present a private event's code; a correct code opens the event and files a request."""
    return await event_service.request_private_access(db, event_id, user_id, access.code, access.message)


@router.get("/{event_id}/access-requests", response_model=list[AccessRequestResponse])
async def access_requests(
    event_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await event_service.list_access_requests(db, event_id, user_id)


@router.put("/{event_id}/access/{request_id}", response_model=AccessRequestResponse)
async def decide_access(
    event_id: int,
    request_id: int,
    decision: AccessRequestDecision,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Organizer review of an access request; rejecting revokes access."""
    return await event_service.decide_access_request(db, event_id, request_id, user_id, decision.status)


@router.post("/{event_id}/cancel", response_model=EventCancelResponse)
async def cancel_event(
    event_id: int,
    cancel_data: EventCancel,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Cancel the event, its tickets, and open refunds for paid holders."""
    result = await event_service.cancel_event(db, event_id, user, cancel_data.reason)
    await invalidate_event_cache()
    return EventCancelResponse(
        event=EventResponse.model_validate(result["event"]),
        tickets_cancelled=result["tickets_cancelled"],
        tickets_expired=result["tickets_expired"],
        refunds_opened=result["refunds_opened"],
    )
