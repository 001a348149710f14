"""
Exception classes for the session store.

This module provides the AppException base class, the session store
exception hierarchy raised by the persistence engine and the store facade,
and convenience factory functions for request-level errors.
"""

from typing import Any, Optional

from errors.codes import ErrorCode, get_default_status_code


class AppException(Exception):
    """
    Base exception class for all application-specific errors.

    This exception provides structured error information including:
    - error_code: A standardized error code from the ErrorCode enum
    - message: A human-readable error message
    - status_code: The HTTP status code to return
    - details: Optional additional context (e.g., field-level errors)

    Example:
        raise AppException(
            error_code=ErrorCode.VALIDATION_ERROR,
            message="Session values must be a JSON object",
            status_code=400,
            details={"field": "values"}
        )
    """

    def __init__(
        self,
        error_code: ErrorCode,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None
    ):
        """
        Initialize an AppException.

        Args:
            error_code: The error code from the ErrorCode enum
            message: A human-readable error message
            status_code: The HTTP status code (defaults to the error code's default)
            details: Optional dictionary with additional error context
        """
        self.error_code = error_code
        self.message = message
        self.status_code = status_code or get_default_status_code(error_code)
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the exception to a dictionary for JSON serialization.

        Returns:
            Dictionary containing error_code, message, and details
        """
        result = {
            "error_code": self.error_code.value,
            "message": self.message,
        }
        if self.details is not None:
            result["details"] = self.details
        return result

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(error_code={self.error_code.value!r}, "
            f"message={self.message!r}, status_code={self.status_code}, "
            f"details={self.details!r})"
        )


class SessionStoreError(AppException):
    """Base class for every error raised by the session store."""

    error_code: ErrorCode = ErrorCode.INTERNAL_ERROR
    default_message: str = "Session store error"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[dict[str, Any]] = None
    ):
        super().__init__(
            error_code=type(self).error_code,
            message=message or self.default_message,
            details=details,
        )


class EngineUnavailableError(SessionStoreError):
    """
    The cache engine could not be reached or answered with an error.

    The original client exception is always chained as ``__cause__``.
    No retry is attempted by the store.
    """

    error_code = ErrorCode.SESSION_STORE_UNAVAILABLE
    default_message = "Session store unavailable"


class SizeLimitExceededError(SessionStoreError):
    """The serialized session is larger than the configured max length."""

    error_code = ErrorCode.SESSION_TOO_LARGE
    default_message = "The session value is too big"

    def __init__(self, size: int, max_length: int):
        self.size = size
        self.max_length = max_length
        super().__init__(
            f"The session value is too big ({size} bytes, limit {max_length})",
            details={"size": size, "max_length": max_length},
        )


class InvalidSessionIDError(SessionStoreError):
    """An operation that needs a session identifier got an empty one."""

    error_code = ErrorCode.INVALID_SESSION_ID
    default_message = "Invalid session id"


class CookieDecodeError(SessionStoreError):
    """
    The session cookie failed signature, expiry or decryption checks.

    When raised from ``RedisStore.new`` the fresh session built for the
    request is attached as ``session`` so callers may carry on with it.
    """

    error_code = ErrorCode.COOKIE_DECODE_FAILED
    default_message = "The session cookie could not be decoded"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        session: Any = None
    ):
        super().__init__(message, details)
        self.session = session


class SerializationError(SessionStoreError):
    """Session values could not be serialized or deserialized."""

    error_code = ErrorCode.SERIALIZATION_FAILED
    default_message = "Session values could not be serialized"


# Convenience factory functions for request-level errors

def validation_error(
    message: str,
    details: Optional[dict[str, Any]] = None
) -> AppException:
    """Create a validation error exception."""
    return AppException(
        error_code=ErrorCode.VALIDATION_ERROR,
        message=message,
        details=details
    )


def resource_not_found(
    message: str,
    details: Optional[dict[str, Any]] = None
) -> AppException:
    """Create a resource not found exception."""
    return AppException(
        error_code=ErrorCode.RESOURCE_NOT_FOUND,
        message=message,
        details=details
    )


def forbidden(
    message: str = "Insufficient permissions",
    details: Optional[dict[str, Any]] = None
) -> AppException:
    """Create a forbidden exception."""
    return AppException(
        error_code=ErrorCode.FORBIDDEN,
        message=message,
        details=details
    )
