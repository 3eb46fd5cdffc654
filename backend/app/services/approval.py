"""
Two-stage event approval: venue owner first, then an admin.

Each stage is decided with a conditional UPDATE guarded on that stage's
status still being 'pending' (and, for the admin stage, on the venue stage
being 'approved'). Two reviewers racing on the same stage cannot both
succeed; the loser gets AlreadyDecided.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AlreadyDecided, InvalidState, ValidationError
from app.core.logging import get_logger
from app.core.metrics import record_approval
from app.models.enums import ApprovalStage, ApprovalStatus, EventStatus
from app.models.event import Event

logger = get_logger(__name__)

CLOSED_EVENT_STATUSES = (EventStatus.CANCELLED, EventStatus.BLOCKED, EventStatus.COMPLETED)


async def decide_approval(
    db: AsyncSession,
    event: Event,
    stage: ApprovalStage,
    decision: str,
    actor_id: int,
    reason: Optional[str] = None,
) -> Event:
    stage = ApprovalStage(stage)
    decision = ApprovalStatus(decision)
    if decision == ApprovalStatus.PENDING:
        raise ValidationError("Decision must be 'approved' or 'rejected'")

    if event.status in CLOSED_EVENT_STATUSES:
        raise InvalidState(f"Event {event.id} is {event.status}")
    if event.approval(stage).status != ApprovalStatus.PENDING:
        raise AlreadyDecided(f"The {stage.value} approval for event {event.id} was already decided")
    if stage == ApprovalStage.ADMIN and event.venue_approval_status != ApprovalStatus.APPROVED:
        raise InvalidState("The venue must approve the event before admin review")

    prefix = f"{stage.value}_approval"
    conditions = [
        Event.id == event.id,
        getattr(Event, f"{prefix}_status") == ApprovalStatus.PENDING.value,
        Event.status.notin_([s.value for s in CLOSED_EVENT_STATUSES]),
    ]
    if stage == ApprovalStage.ADMIN:
        conditions.append(Event.venue_approval_status == ApprovalStatus.APPROVED.value)

    values = {
        f"{prefix}_status": decision.value,
        f"{prefix}_reason": reason,
        f"{prefix}_by": actor_id,
        f"{prefix}_at": datetime.now(timezone.utc),
    }
    if decision == ApprovalStatus.REJECTED:
        values["status"] = EventStatus.REJECTED.value
    elif stage == ApprovalStage.ADMIN:
        values["status"] = EventStatus.UPCOMING.value

    result = await db.execute(
        update(Event).where(*conditions).values(**values).execution_options(synchronize_session=False)
    )
    await db.refresh(event)
    if result.rowcount == 0:
        logger.info("approval_lost_race", event_id=event.id, stage=stage.value)
        raise AlreadyDecided(f"The {stage.value} approval for event {event.id} was already decided")

    record_approval(stage.value, decision.value)
    logger.info(
        "event_approval_decided",
        event_id=event.id,
        stage=stage.value,
        decision=decision.value,
        actor_id=actor_id,
        event_status=event.status,
    )
    return event
