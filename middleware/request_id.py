"""
Request ID middleware for request correlation.

Every request gets an id, taken from the X-Request-ID header or freshly
generated, that shows up in log entries, error responses and the response
headers.
"""

import uuid
from contextvars import ContextVar
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

# Context variable read by the JSON log formatter
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Attach a request ID to each request and its response.

    The ID is stored in ``request.state.request_id`` for the error handlers
    and in ``request_id_var`` for logging, then echoed back in the
    X-Request-ID response header.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        token = request_id_var.set(request_id)

        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            # Avoid leaking the id into the next request on this task
            request_id_var.reset(token)


def get_request_id() -> str:
    """Return the current request ID, or an empty string outside a request."""
    return request_id_var.get()
