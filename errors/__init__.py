"""
Error handling module for the session store.

This module provides structured error handling with:
- ErrorCode enum for standardized error codes
- AppException and the session store exception hierarchy
- Error response models for consistent API responses
- Exception handlers for FastAPI integration
"""

from errors.codes import ErrorCode
from errors.exceptions import (
    AppException,
    CookieDecodeError,
    EngineUnavailableError,
    InvalidSessionIDError,
    SerializationError,
    SessionStoreError,
    SizeLimitExceededError,
)
from errors.handlers import (
    ErrorResponse,
    handle_app_exception,
    handle_unexpected_exception,
    register_exception_handlers,
)

__all__ = [
    "ErrorCode",
    "AppException",
    "SessionStoreError",
    "EngineUnavailableError",
    "SizeLimitExceededError",
    "InvalidSessionIDError",
    "CookieDecodeError",
    "SerializationError",
    "ErrorResponse",
    "handle_app_exception",
    "handle_unexpected_exception",
    "register_exception_handlers",
]
