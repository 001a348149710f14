"""
Session saving middleware.

Endpoints load sessions with ``store.get(request, name)``; this middleware
writes every session loaded during the request back to Redis and sets the
matching cookies on the outgoing response.
"""

import logging
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from errors.exceptions import AppException
from errors.handlers import handle_app_exception
from session.registry import REGISTRY_STATE_KEY

logger = logging.getLogger(__name__)


class SessionMiddleware(BaseHTTPMiddleware):
    """
    Save the sessions of the request registry after the endpoint returns.

    Only sessions holding values, or already stored, are written; reading
    a brand new session leaves Redis and the cookie jar untouched.
    Responses with a 5xx status are sent without saving, so a failed
    request never persists half-applied changes. A save failure replaces
    the response with the structured error response of that failure, which
    carries no session cookie.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        response = await call_next(request)

        registry = getattr(request.state, REGISTRY_STATE_KEY, None)
        if registry is None or response.status_code >= 500:
            return response

        try:
            await registry.save(response)
        except AppException as exc:
            logger.debug(f"Discarding response after session save failure: {exc.error_code.value}")
            return await handle_app_exception(request, exc)
        return response
