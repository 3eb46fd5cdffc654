"""
Domain error taxonomy shared by all workflows.

Workflows raise these instead of HTTPException; a single handler registered
on the app renders them as {"detail": ..., "code": ...} with the mapped
status code. Capacity conflicts are expected traffic and are logged at info.
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse

from app.core.logging import get_logger

logger = get_logger(__name__)


class DomainError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "domain_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(DomainError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"


class InvalidWindow(ValidationError):
    code = "invalid_window"


class InvalidAmount(ValidationError):
    code = "invalid_amount"


class InvalidTicket(ValidationError):
    code = "invalid_ticket"


class Forbidden(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"


class NotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class InvalidState(DomainError):
    status_code = status.HTTP_409_CONFLICT
    code = "invalid_state"


class Conflict(DomainError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class VenueUnavailable(Conflict):
    code = "venue_unavailable"


class WrongEvent(DomainError):
    status_code = status.HTTP_409_CONFLICT
    code = "wrong_event"


class AlreadyProcessed(DomainError):
    status_code = status.HTTP_409_CONFLICT
    code = "already_processed"


class AlreadyDecided(AlreadyProcessed):
    code = "already_decided"


class AlreadyUsed(AlreadyProcessed):
    code = "already_used"


class GatewayFailure(DomainError):
    status_code = status.HTTP_502_BAD_GATEWAY
    code = "gateway_failure"


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    if isinstance(exc, GatewayFailure):
        logger.error("gateway_failure", error=exc.message)
    elif isinstance(exc, (Conflict, AlreadyProcessed)):
        logger.info("request_rejected", code=exc.code, reason=exc.message)
    else:
        logger.warning("request_rejected", code=exc.code, reason=exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


def register_exception_handlers(app) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)
