"""
Session store abstraction.

This module defines the interface of a server-side session store: a store
mints and validates signed cookies that reference session values kept in
an external key-value cache. Implementations own the whole session
lifecycle: loading from a request cookie, saving with a fresh cookie,
out-of-band updates, deletion and enumeration.

All methods touching the cache are async so that each network call is an
independently awaitable and cancellable unit of work.
"""

from abc import ABC, abstractmethod
from typing import Any

from session.models import Options, Session


class SessionStore(ABC):
    """
    Abstract base class for session store implementations.

    Configuration setters return the store so calls can be chained. They
    are meant for startup; they are not synchronized against requests in
    flight.
    """

    @property
    @abstractmethod
    def key_prefix(self) -> str:
        """Namespace prepended to session ids to form cache keys."""

    @property
    @abstractmethod
    def options(self) -> Options:
        """Default options copied into every new session."""

    @property
    @abstractmethod
    def max_length(self) -> int:
        """Maximum serialized session size in bytes, 0 for unbounded."""

    @abstractmethod
    def set_key_prefix(self, prefix: str) -> "SessionStore":
        """Set the cache key namespace."""

    @abstractmethod
    def set_options(self, options: Options) -> "SessionStore":
        """Set the default session options."""

    @abstractmethod
    def set_max_length(self, length: int) -> "SessionStore":
        """Set the maximum serialized session size."""

    @abstractmethod
    async def get(self, request: Any, name: str) -> Session:
        """
        Return the session ``name`` for this request.

        Repeated calls within one request return the same session object.
        """

    @abstractmethod
    async def new(self, request: Any, name: str) -> Session:
        """
        Build the session ``name`` from the request cookie, if any.

        Raises:
            CookieDecodeError: If the cookie is invalid. The usable fresh
                session is attached to the exception.
            EngineUnavailableError: If the cache engine fails.
        """

    @abstractmethod
    async def save(self, request: Any, response: Any, session: Session) -> None:
        """
        Persist the session and set its cookie on the response.

        A non-positive ``max_age`` deletes the session and expires the
        cookie instead.
        """

    @abstractmethod
    async def update(self, session: Session) -> None:
        """Persist the session without touching any cookie."""

    @abstractmethod
    async def delete(self, request: Any, response: Any, session: Session) -> None:
        """Remove the session from the cache, expire its cookie and clear its values."""

    @abstractmethod
    async def delete_by_id(self, *ids: str) -> None:
        """Remove sessions by bare or prefixed id in one batch."""

    @abstractmethod
    async def get_all(self) -> list[Session]:
        """Return every session currently stored under the key prefix."""
