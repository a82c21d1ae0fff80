"""
Centralised error handling — exception hierarchy + FastAPI handlers.

Every failure the safety core can report has its own class so callers can
branch on kind instead of parsing messages:

    LocationUnavailable    geolocation denied / timed out (retryable)
    RouteUnavailable       routing provider failed; previous route kept
    LocationRequiredError  SOS triggered with no known position
    PersistenceError       document-store write failed
    ContactsUnavailableError  SOS recorded but contacts unreadable
    DispatchFailure        one contact could not be notified
    NotFoundError          missing or already-resolved resource
    ValidationError        bad input (phone numbers, coordinates, ...)

Usage:
    from safewalk.core.errors import NotFoundError, register_error_handlers

    raise NotFoundError("SOSEvent", id="u1_1700000000000")
"""

from __future__ import annotations

import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from safewalk.core.config import settings

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Exception Hierarchy
# ═══════════════════════════════════════════════════════════════════════════

class SafeWalkError(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


class LocationUnavailable(SafeWalkError):
    """Geolocation denied, unsupported or timed out (503)."""

    def __init__(self, message: str = "Location unavailable", *, reason: str = "error"):
        super().__init__(
            message=message,
            status_code=503,
            error_code="LOCATION_UNAVAILABLE",
            details={"reason": reason},
        )
        self.reason = reason


class RouteUnavailable(SafeWalkError):
    """Routing provider failed or returned a non-OK status (502)."""

    def __init__(self, message: str = "", *, provider_status: Optional[str] = None):
        details: Dict[str, Any] = {}
        if provider_status:
            details["provider_status"] = provider_status
        super().__init__(
            message=f"Route unavailable: {message}" if message else "Route unavailable",
            status_code=502,
            error_code="ROUTE_UNAVAILABLE",
            details=details,
        )
        self.provider_status = provider_status


class LocationRequiredError(SafeWalkError):
    """An operation needs a current position and none is known (409)."""

    def __init__(self, message: str = "A current location is required"):
        super().__init__(
            message=message,
            status_code=409,
            error_code="LOCATION_REQUIRED",
        )


class PersistenceError(SafeWalkError):
    """Document-store read or write failed (503)."""

    def __init__(self, collection: str, key: str = "", message: str = ""):
        super().__init__(
            message=f"Persistence failed for {collection}/{key}: {message}",
            status_code=503,
            error_code="PERSISTENCE_ERROR",
            details={"collection": collection, "key": key},
        )
        self.collection = collection
        self.key = key
        self.reason = message


class ContactsUnavailableError(PersistenceError):
    """SOS event recorded, but contacts or profile could not be read (503).

    Nobody was notified. ``sos_event_id`` names the active event so the
    client can retry the notification or resolve it.
    """

    def __init__(self, sos_event_id: str, cause: PersistenceError):
        super().__init__(cause.collection, cause.key, cause.reason)
        self.error_code = "SOS_CONTACTS_UNAVAILABLE"
        self.details.update(sos_event_id=sos_event_id, event_recorded=True)
        self.sos_event_id = sos_event_id


class DispatchFailure(SafeWalkError):
    """A single notification could not be delivered (502)."""

    def __init__(self, recipient: str, message: str = ""):
        super().__init__(
            message=f"Dispatch to {recipient} failed: {message}",
            status_code=502,
            error_code="DISPATCH_FAILURE",
            details={"recipient": recipient},
        )
        self.recipient = recipient
        self.reason = message


class NotFoundError(SafeWalkError):
    """Resource not found (404)."""

    def __init__(self, resource: str, message: str = "", **identifiers: Any):
        details = {"resource": resource, **identifiers}
        super().__init__(
            message=message or f"{resource} not found",
            status_code=404,
            error_code="NOT_FOUND",
            details=details,
        )


class ValidationError(SafeWalkError):
    """Input validation failed (422)."""

    def __init__(self, message: str, *, field: Optional[str] = None, **details: Any):
        d = {**details}
        if field:
            d["field"] = field
        super().__init__(
            message=message,
            status_code=422,
            error_code="VALIDATION_ERROR",
            details=d,
        )


# ═══════════════════════════════════════════════════════════════════════════
# Error Response Builder
# ═══════════════════════════════════════════════════════════════════════════

def _build_error_response(
    status_code: int,
    error_code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> JSONResponse:
    """Build a consistent JSON error response."""
    body: Dict[str, Any] = {
        "error": {
            "code": error_code,
            "message": message,
            "status": status_code,
        }
    }

    if details:
        body["error"]["details"] = details

    if request and not settings.is_production:
        body["error"]["path"] = str(request.url.path)
        body["error"]["method"] = request.method

    return JSONResponse(status_code=status_code, content=body)


# ═══════════════════════════════════════════════════════════════════════════
# FastAPI Exception Handlers
# ═══════════════════════════════════════════════════════════════════════════

def register_error_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app."""

    @app.exception_handler(SafeWalkError)
    async def handle_safewalk_error(request: Request, exc: SafeWalkError):
        logger.error(
            "API Error [%s]: %s | details=%s",
            exc.error_code, exc.message, exc.details,
        )
        return _build_error_response(
            exc.status_code, exc.error_code, exc.message,
            exc.details, request,
        )

    @app.exception_handler(ValueError)
    async def handle_value_error(request: Request, exc: ValueError):
        logger.warning("ValueError: %s", exc)
        return _build_error_response(
            422, "VALIDATION_ERROR", str(exc), request=request,
        )

    @app.exception_handler(Exception)
    async def handle_unhandled(request: Request, exc: Exception):
        logger.critical(
            "Unhandled exception: %s\n%s",
            exc, traceback.format_exc(),
        )
        message = str(exc) if settings.DEBUG else "Internal server error"
        return _build_error_response(500, "INTERNAL_ERROR", message, request=request)
