"""
Exception handlers for the session store API.

Every error leaves the API as the same JSON body: error_code, message,
optional details and the request_id of the failing request. Session store
failures are AppException subclasses and go through the same handler;
anything else is logged with its stack trace and answered with a generic
500 body.
"""

import logging
import uuid
from typing import Any, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from errors.codes import ErrorCode
from errors.exceptions import AppException, EngineUnavailableError

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "An unexpected error occurred. Please try again later."


class ErrorResponse(BaseModel):
    """Body of every error response returned by the API."""
    error_code: str
    message: str
    details: Optional[dict[str, Any]] = None
    request_id: str


def get_request_id(request: Request) -> str:
    """
    Return the id RequestIDMiddleware stored on the request.

    A fresh UUID stands in when the middleware is not installed.
    """
    if hasattr(request.state, "request_id"):
        return request.state.request_id

    return str(uuid.uuid4())


def _error_response(status_code: int, body: ErrorResponse) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(exclude_none=True),
    )


async def handle_app_exception(request: Request, exc: AppException) -> JSONResponse:
    """
    Convert an AppException into its structured error response.

    Cache engine outages are logged as errors together with the client
    exception that caused them; every other application error is a warning.

    Args:
        request: The failing request
        exc: The raised AppException

    Returns:
        JSONResponse carrying the exception's status code
    """
    request_id = get_request_id(request)
    log_data = {
        "error_code": exc.error_code.value,
        "error_message": exc.message,
        "status_code": exc.status_code,
        "details": exc.details,
        "request_id": request_id,
        "path": request.url.path,
        "method": request.method,
    }

    if isinstance(exc, EngineUnavailableError):
        log_data["cause"] = repr(exc.__cause__) if exc.__cause__ else None
        logger.error("Session store unavailable", extra=log_data)
    else:
        logger.warning("Application error occurred", extra=log_data)

    return _error_response(
        exc.status_code,
        ErrorResponse(
            error_code=exc.error_code.value,
            message=exc.message,
            details=exc.details,
            request_id=request_id,
        ),
    )


async def handle_unexpected_exception(request: Request, exc: Exception) -> JSONResponse:
    """
    Answer an unhandled exception with a generic 500 response.

    The exception is logged with its stack trace; neither its message nor
    its type reaches the client.
    """
    request_id = get_request_id(request)

    logger.error(
        "Unexpected error occurred",
        extra={
            "error_code": ErrorCode.INTERNAL_ERROR.value,
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
            "exception_type": type(exc).__name__,
            "exception_message": str(exc),
        },
        exc_info=exc,
    )

    return _error_response(
        500,
        ErrorResponse(
            error_code=ErrorCode.INTERNAL_ERROR.value,
            message=GENERIC_ERROR_MESSAGE,
            request_id=request_id,
        ),
    )


def register_exception_handlers(app) -> None:
    """Install the API exception handlers on a FastAPI application."""
    app.add_exception_handler(AppException, handle_app_exception)
    app.add_exception_handler(Exception, handle_unexpected_exception)

    logger.info("Exception handlers registered successfully")
