# app/core/exceptions.py
from typing import Any, Dict, Optional
import logging

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm.exc import StaleDataError

logger = logging.getLogger(__name__)


class DispatchError(HTTPException):
    """Base error for rejected dispatch operations. Raised before any mutation."""

    error_code = "dispatch_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(status_code=self.status_code, detail=detail)
        self.details = details or {}


class InvalidAssignment(DispatchError):
    """Wrong city or role for the requested assignment"""
    error_code = "invalid_assignment"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class CityMismatch(InvalidAssignment):
    """Agent or vehicle belongs to a different city than the packet phase requires"""
    error_code = "city_mismatch"


class CapacityExceeded(DispatchError):
    error_code = "capacity_exceeded"
    status_code = status.HTTP_409_CONFLICT


class DestinationMismatch(DispatchError):
    error_code = "destination_mismatch"
    status_code = status.HTTP_409_CONFLICT


class UnresolvableDestination(DispatchError):
    error_code = "unresolvable_destination"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class PreconditionFailed(DispatchError):
    """Illegal state transition"""
    error_code = "precondition_failed"
    status_code = status.HTTP_409_CONFLICT


class AlreadyDispatched(DispatchError):
    error_code = "already_dispatched"
    status_code = status.HTTP_409_CONFLICT


class NotFound(DispatchError):
    error_code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class RouteUnavailable(DispatchError):
    error_code = "route_unavailable"
    status_code = status.HTTP_502_BAD_GATEWAY


class ConcurrentModification(DispatchError):
    error_code = "concurrent_modification"
    status_code = status.HTTP_409_CONFLICT


class NotificationDeliveryFailed(Exception):
    """Non-fatal: logged by the notification client, never returned to callers"""

    def __init__(self, kind: str, packet_id: int, reason: str):
        super().__init__(f"{kind} notification for packet {packet_id} failed: {reason}")
        self.kind = kind
        self.packet_id = packet_id
        self.reason = reason


def _error_body(message: str, error_code: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    # Imported lazily so the schemas module stays free of FastAPI app concerns
    from app.shared.schemas.common import ErrorResponse

    body = ErrorResponse(message=message, error_code=error_code, details=details or None)
    return body.model_dump(mode="json")


def setup_exception_handlers(app: FastAPI):
    """Render domain errors as ErrorResponse payloads"""

    @app.exception_handler(DispatchError)
    async def dispatch_error_handler(request: Request, exc: DispatchError):
        logger.warning(
            f"⚠️ {request.method} {request.url.path} rejected: "
            f"{exc.error_code} - {exc.detail}"
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.detail, exc.error_code, exc.details),
        )

    @app.exception_handler(StaleDataError)
    async def stale_data_handler(request: Request, exc: StaleDataError):
        logger.warning(f"⚠️ Concurrent update detected on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=_error_body(
                "Vehicle was modified by another request, please retry",
                ConcurrentModification.error_code,
            ),
        )
