"""
Request-scoped session registry.

The registry lives on ``request.state`` and memoizes the outcome of
loading each named session, so that every part of the request handling
sees the same Session object. It also remembers which sessions need to be
written back to the response.
"""

import logging
from typing import Any, Optional

from errors.exceptions import CookieDecodeError
from session.models import Session

logger = logging.getLogger(__name__)

# Attribute of request.state holding the registry
REGISTRY_STATE_KEY = "session_registry"


class SessionRegistry:
    """Sessions loaded during one request, keyed by name."""

    def __init__(self, request: Any):
        self.request = request
        self._sessions: dict[str, tuple[Session, Optional[Exception]]] = {}

    async def get(self, store: Any, name: str) -> Session:
        """
        Return the named session, loading it through ``store.new`` once.

        A cookie decode failure is memoized with its fresh session: the
        same error is raised again on every later call.
        """
        if name in self._sessions:
            session, error = self._sessions[name]
            if error is not None:
                raise error
            return session

        try:
            session = await store.new(self.request, name)
        except CookieDecodeError as e:
            if e.session is not None:
                self._sessions[name] = (e.session, e)
            raise
        self._sessions[name] = (session, None)
        return session

    def discard(self, name: str) -> None:
        """Forget a session so it is not saved at the end of the request."""
        self._sessions.pop(name, None)

    def sessions(self) -> list[Session]:
        """Return every session registered so far."""
        return [session for session, _ in self._sessions.values()]

    async def save(self, response: Any) -> None:
        """
        Save every registered session onto ``response``.

        A new session that is still empty is skipped, so anonymous reads
        neither write a Redis record nor set a cookie. A session loaded
        from a cookie that failed to decode is always saved, to replace
        that cookie.
        """
        saved = 0
        for session, error in self._sessions.values():
            if session.is_new and not session.values and error is None:
                continue
            await session.store.save(self.request, response, session)
            saved += 1
        logger.debug(f"Saved {saved} of {len(self._sessions)} session(s) for request")


def get_registry(request: Any) -> SessionRegistry:
    """Return the registry of ``request``, creating it on first use."""
    registry = getattr(request.state, REGISTRY_STATE_KEY, None)
    if registry is None:
        registry = SessionRegistry(request)
        setattr(request.state, REGISTRY_STATE_KEY, registry)
    return registry
