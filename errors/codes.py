"""
Error code catalog for the session store.

This module defines all error codes used throughout the application,
covering request validation, session lifecycle failures, cache engine
failures, and internal errors.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """
    Enumeration of all error codes used in the application.

    Each error code maps to a specific HTTP status code and error category:
    - Validation errors (4xx): Client request issues
    - Session errors (4xx/5xx): Cookie, identifier and payload problems
    - External service errors (5xx): Cache engine failures
    - Internal errors (5xx): Server-side issues
    """

    # Validation errors (4xx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    """Request payload validation failed (HTTP 400)"""

    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    """Requested resource does not exist (HTTP 404)"""

    FORBIDDEN = "FORBIDDEN"
    """Missing or wrong administrative credentials (HTTP 403)"""

    # Session errors
    INVALID_SESSION_ID = "INVALID_SESSION_ID"
    """Operation requires a non-empty session identifier (HTTP 400)"""

    COOKIE_DECODE_FAILED = "COOKIE_DECODE_FAILED"
    """Session cookie signature or format is invalid (HTTP 400)"""

    SESSION_TOO_LARGE = "SESSION_TOO_LARGE"
    """Serialized session exceeds the configured maximum length (HTTP 413)"""

    SERIALIZATION_FAILED = "SERIALIZATION_FAILED"
    """Session values could not be encoded or decoded (HTTP 500)"""

    # External service errors (5xx)
    SESSION_STORE_UNAVAILABLE = "SESSION_STORE_UNAVAILABLE"
    """Redis unavailable or returned a protocol error (HTTP 503)"""

    # Internal errors (5xx)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    """Unexpected server error (HTTP 500)"""


# Mapping of error codes to their default HTTP status codes
ERROR_CODE_STATUS_MAP: dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.RESOURCE_NOT_FOUND: 404,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.INVALID_SESSION_ID: 400,
    ErrorCode.COOKIE_DECODE_FAILED: 400,
    ErrorCode.SESSION_TOO_LARGE: 413,
    ErrorCode.SERIALIZATION_FAILED: 500,
    ErrorCode.SESSION_STORE_UNAVAILABLE: 503,
    ErrorCode.INTERNAL_ERROR: 500,
}


def get_default_status_code(error_code: ErrorCode) -> int:
    """
    Get the default HTTP status code for an error code.

    Args:
        error_code: The error code to look up

    Returns:
        The default HTTP status code for the error code
    """
    return ERROR_CODE_STATUS_MAP.get(error_code, 500)
