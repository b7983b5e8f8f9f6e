"""
Exception handlers for FastAPI.
"""

import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from leadflow.core.exceptions import (
    LeadflowException,
    DatabaseError,
    ExternalAPIError,
    ValidationError,
    RateLimitError,
    NotFoundError,
    ConfigurationError,
)

logger = logging.getLogger(__name__)


def status_code_for(exc: LeadflowException) -> int:
    """HTTP status for an engine exception."""
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, RateLimitError):
        return 429
    if isinstance(exc, ExternalAPIError):
        return 502
    if isinstance(exc, DatabaseError):
        return 503
    return 500


async def leadflow_exception_handler(request: Request, exc: LeadflowException) -> JSONResponse:
    """Handler for every custom exception."""
    status_code = status_code_for(exc)
    error_type = exc.__class__.__name__

    logger.error(
        f"{error_type}: {exc.message}",
        extra={"error_type": error_type, "details": exc.details, "path": request.url.path},
    )

    return JSONResponse(
        status_code=status_code,
        content={"error": error_type, "message": exc.message, "details": exc.details},
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception(f"Unhandled error: {exc}", extra={"path": request.url.path})

    return JSONResponse(
        status_code=500,
        content={
            "error": "InternalServerError",
            "message": "Internal server error",
            "details": {},
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register every exception handler on the app.

    Usage:
        app = FastAPI()
        register_exception_handlers(app)
    """
    app.add_exception_handler(LeadflowException, leadflow_exception_handler)

    for exc_class in (
        DatabaseError,
        ExternalAPIError,
        ValidationError,
        RateLimitError,
        NotFoundError,
        ConfigurationError,
    ):
        app.add_exception_handler(exc_class, leadflow_exception_handler)

    app.add_exception_handler(Exception, generic_exception_handler)
