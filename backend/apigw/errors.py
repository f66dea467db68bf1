"""Gestion standardisée des erreurs API avec enveloppes d'erreur.

Ce module fournit une gestion centralisée des erreurs avec des enveloppes standardisées, des codes
d'erreur cohérents (y compris ceux du domaine de contenu) et un support pour le tracing des
requêtes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from backend.domain.errors import (
    ContentError,
    GenerationFailed,
    MissingPayload,
    NotFound,
    PreconditionFailed,
    VersionConflict,
)

log = structlog.get_logger(__name__)


@dataclass
class ErrorEnvelope:
    """Standard error envelope for API responses."""

    code: str
    message: str
    trace_id: str | None = None
    details: dict[str, Any] | None = None


class APIError(HTTPException):
    """Custom API error with standard envelope."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        trace_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize an API error with standardized envelope."""
        super().__init__(status_code=status_code, detail=message)
        self.code = code
        self.message = message
        self.trace_id = trace_id
        self.details = details


# Common error codes
class ErrorCodes:
    """Standard error codes for the API."""

    # Client errors (4xx)
    BAD_REQUEST = "BAD_REQUEST"
    NOT_FOUND = "NOT_FOUND"
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"
    CONFLICT = "CONFLICT"
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Server errors (5xx)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    BAD_GATEWAY = "BAD_GATEWAY"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"

    # Content domain errors
    MISSING_PAYLOAD = MissingPayload.code
    PRECONDITION_FAILED = PreconditionFailed.code
    VERSION_CONFLICT = VersionConflict.code
    GENERATION_FAILED = GenerationFailed.code


# Erreur du domaine -> statut HTTP
CONTENT_ERROR_STATUS: dict[type[ContentError], int] = {
    MissingPayload: 422,
    PreconditionFailed: 409,
    VersionConflict: 409,
    NotFound: 404,
    GenerationFailed: 502,
}


def create_error_response(
    status_code: int,
    code: str,
    message: str,
    trace_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    """Create a standardized error response."""
    envelope = ErrorEnvelope(
        code=code,
        message=message,
        trace_id=trace_id,
        details=details,
    )

    return JSONResponse(
        status_code=status_code,
        content={
            "code": envelope.code,
            "message": envelope.message,
            "trace_id": envelope.trace_id,
            **({"details": envelope.details} if envelope.details else {}),
        },
    )


def extract_trace_id(request: Request) -> str | None:
    """Extract trace ID from request headers or from the request id set by middleware."""
    trace_id = request.headers.get("X-Trace-ID")
    if trace_id:
        return trace_id
    return getattr(request.state, "request_id", None)


def handle_api_error(request: Request, exc: APIError) -> JSONResponse:
    """Handle APIError exceptions with standard envelope."""
    trace_id = extract_trace_id(request) or exc.trace_id
    log.warning(
        "api_error",
        code=exc.code,
        status_code=exc.status_code,
        trace_id=trace_id,
    )
    return create_error_response(
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        trace_id=trace_id,
        details=exc.details,
    )


def status_for(exc: ContentError) -> int:
    """Statut HTTP d'une erreur du domaine (500 pour une erreur non cartographiée)."""
    for cls in type(exc).__mro__:
        if cls in CONTENT_ERROR_STATUS:
            return CONTENT_ERROR_STATUS[cls]
    return 500


def handle_content_error(request: Request, exc: ContentError) -> JSONResponse:
    """Handle domain errors (MissingPayload, PreconditionFailed, ...) with standard envelope."""
    trace_id = extract_trace_id(request)
    status_code = status_for(exc)
    log.warning(
        "content_error",
        code=exc.code,
        status_code=status_code,
        trace_id=trace_id,
        details=exc.details,
    )
    return create_error_response(
        status_code=status_code,
        code=exc.code,
        message=exc.message,
        trace_id=trace_id,
        details=exc.details or None,
    )


def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle FastAPI HTTPException with standard envelope."""
    trace_id = extract_trace_id(request)
    error_codes = {
        400: ErrorCodes.BAD_REQUEST,
        404: ErrorCodes.NOT_FOUND,
        405: ErrorCodes.METHOD_NOT_ALLOWED,
        409: ErrorCodes.CONFLICT,
        422: ErrorCodes.VALIDATION_ERROR,
        500: ErrorCodes.INTERNAL_ERROR,
        502: ErrorCodes.BAD_GATEWAY,
        503: ErrorCodes.SERVICE_UNAVAILABLE,
    }
    code = error_codes.get(exc.status_code, "HTTP_ERROR")
    log.warning("http_exception", code=code, status_code=exc.status_code, trace_id=trace_id)
    return create_error_response(
        status_code=exc.status_code,
        code=code,
        message=str(exc.detail),
        trace_id=trace_id,
    )


def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request body validation errors (422 VALIDATION_ERROR)."""
    return create_error_response(
        status_code=422,
        code=ErrorCodes.VALIDATION_ERROR,
        message="Request validation failed",
        trace_id=extract_trace_id(request),
        details={"errors": [str(e.get("msg")) for e in exc.errors()]},
    )


def handle_generic_exception(request: Request, exc: Exception) -> JSONResponse:
    """Handle generic exceptions with standard envelope."""
    trace_id = extract_trace_id(request)
    log.error(
        "unexpected_error",
        trace_id=trace_id,
        exception_type=type(exc).__name__,
        exc_info=exc,
    )
    return create_error_response(
        status_code=500,
        code=ErrorCodes.INTERNAL_ERROR,
        message="An unexpected error occurred",
        trace_id=trace_id,
    )


def bad_request(
    message: str, trace_id: str | None = None, details: dict[str, Any] | None = None
) -> APIError:
    """Create a 400 Bad Request error."""
    return APIError(400, ErrorCodes.BAD_REQUEST, message, trace_id, details)


def register_error_handlers(app: FastAPI) -> None:
    """Branche les handlers d'enveloppe sur l'application."""
    app.add_exception_handler(APIError, handle_api_error)
    app.add_exception_handler(ContentError, handle_content_error)
    app.add_exception_handler(HTTPException, handle_http_exception)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_generic_exception)
