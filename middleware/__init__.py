"""
Middleware components for the session store service.

This module contains FastAPI middleware for request correlation and for
writing sessions back at the end of each request.
"""

from middleware.request_id import RequestIDMiddleware, request_id_var, get_request_id
from middleware.session import SessionMiddleware

__all__ = [
    "RequestIDMiddleware",
    "request_id_var",
    "get_request_id",
    "SessionMiddleware",
]
