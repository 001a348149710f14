"""
In-memory session entity.

A Session is built per request by the store and never outlives it. The
only durable state is the payload the persistence engine keeps in Redis;
``options`` travel with the cookie and the store configuration, they are
never persisted.
"""

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Optional

# Values key used by the flash helpers when no key is given
DEFAULT_FLASH_KEY = "_flash"


@dataclass
class Options:
    """
    Cookie and lifetime options of a session.

    Attributes:
        path: Cookie path
        domain: Cookie domain, omitted from the cookie when None
        max_age: Lifetime in seconds; ``<= 0`` marks the session for deletion
        secure: Send the cookie over HTTPS only
        http_only: Hide the cookie from client-side scripts
        same_site: "lax", "strict", "none" or None to omit the attribute
    """
    path: str = "/"
    domain: Optional[str] = None
    max_age: int = 4096
    secure: bool = False
    http_only: bool = True
    same_site: Optional[str] = None

    def copy(self) -> "Options":
        """Return an independent copy of these options."""
        return dataclasses.replace(self)


@dataclass(eq=False)
class Session:
    """
    A named session and its values.

    Attributes:
        name: Cookie name the session is bound to
        id: Opaque identifier, empty until first save or cookie decode
        values: Application data persisted on save
        options: Per-session copy of the store's default options
        is_new: True unless the session was loaded from the store
        store: The store that created the session
    """
    name: str
    id: str = ""
    values: dict[Any, Any] = field(default_factory=dict)
    options: Options = field(default_factory=Options)
    is_new: bool = True
    store: Any = field(default=None, repr=False)

    def add_flash(self, value: Any, key: str = DEFAULT_FLASH_KEY) -> None:
        """Append a one-time value to the flash list stored under ``key``."""
        flashes = self.values.get(key)
        if isinstance(flashes, list):
            flashes.append(value)
        else:
            self.values[key] = [value]

    def flashes(self, key: str = DEFAULT_FLASH_KEY) -> list[Any]:
        """Return and remove the flash list stored under ``key``."""
        flashes = self.values.pop(key, None)
        if flashes is None:
            return []
        if not isinstance(flashes, list):
            return [flashes]
        return list(flashes)

    async def save(self, request: Any, response: Any) -> None:
        """Persist this session through its store and set the cookie."""
        await self.store.save(request, response, self)
