"""Domain error taxonomy and its HTTP rendering.

Services raise these; a single exception handler turns them into JSON
responses with a stable ``code`` so clients can tell "already booked" from
"payment failed" from "not yet approved".
"""

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class DomainError(Exception):
    """Base class for all engine errors."""

    code = "domain_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(DomainError):
    """Malformed input: bad time range, blank rejection reason, outside hours."""

    code = "validation_error"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class PermissionDenied(DomainError):
    code = "permission_denied"
    status_code = status.HTTP_403_FORBIDDEN


class PreconditionError(DomainError):
    """The target is not in a state that allows the operation."""

    code = "precondition_failed"
    status_code = status.HTTP_400_BAD_REQUEST


class ConflictError(DomainError):
    """The requested slot overlaps a live booking."""

    code = "slot_conflict"
    status_code = status.HTTP_409_CONFLICT


class DuplicateError(DomainError):
    """The resource already exists."""

    code = "already_exists"
    status_code = status.HTTP_409_CONFLICT


class StaleStateError(DomainError):
    """Optimistic-concurrency mismatch on a facility write."""

    code = "stale_state"
    status_code = status.HTTP_409_CONFLICT


class PaymentError(DomainError):
    """The payment provider call failed or timed out."""

    code = "payment_error"
    status_code = status.HTTP_502_BAD_GATEWAY


class NotFoundError(DomainError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.warning("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
        body: dict[str, Any] = {"detail": exc.message, "code": exc.code}
        if exc.details:
            body["details"] = exc.details
        return JSONResponse(status_code=exc.status_code, content=body)
