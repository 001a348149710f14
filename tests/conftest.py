"""
Shared pytest fixtures and configuration for all tests.
"""
import fnmatch
import os
from http.cookies import SimpleCookie
from typing import Any, Optional

import pytest
from starlette.requests import Request
from starlette.responses import Response

# Hypothesis configuration for property-based testing
from hypothesis import settings, Verbosity, Phase

from session.codec import CookieCodec, key_pairs_from
from session.persistence import RedisPersistenceEngine
from session.redis_store import RedisStore

settings.register_profile(
    "default",
    max_examples=100,
    verbosity=Verbosity.normal,
    deadline=None,
    print_blob=True,
)

# CI profile: more thorough and reproducible
settings.register_profile(
    "ci",
    max_examples=200,
    verbosity=Verbosity.verbose,
    deadline=None,
    print_blob=True,
    derandomize=True,
)

# Debug profile: minimal examples for quick debugging
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
    print_blob=True,
    phases=[Phase.explicit, Phase.reuse, Phase.generate],  # Skip shrinking for speed
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "default"))


SECRET_KEY = b"secret-key"
COOKIE_NAME = "session-key"


def _key(key: Any) -> str:
    return key.decode("utf-8") if isinstance(key, bytes) else str(key)


class FakeRedis:
    """
    In-memory stand-in for redis.asyncio.Redis.

    Implements the commands the session store uses and records every call.
    Setting ``fail_with`` makes every later command raise that exception.
    """

    def __init__(self):
        self.data: dict[str, bytes] = {}
        self.ttls: dict[str, int] = {}
        self.calls: list[tuple] = []
        self.fail_with: Optional[Exception] = None
        self.ping_result: Any = True
        self.closed = False

    def _record(self, *call: Any) -> None:
        self.calls.append(call)
        if self.fail_with is not None:
            raise self.fail_with

    def commands(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]

    async def get(self, key):
        self._record("GET", _key(key))
        return self.data.get(_key(key))

    async def setex(self, key, ttl, value):
        self._record("SETEX", _key(key), ttl, value)
        self.data[_key(key)] = value if isinstance(value, bytes) else str(value).encode()
        self.ttls[_key(key)] = int(ttl)
        return True

    async def delete(self, *keys):
        self._record("DEL", *[_key(k) for k in keys])
        removed = 0
        for key in keys:
            if self.data.pop(_key(key), None) is not None:
                removed += 1
            self.ttls.pop(_key(key), None)
        return removed

    async def expire(self, key, ttl):
        self._record("EXPIRE", _key(key), ttl)
        if _key(key) not in self.data:
            return False
        self.ttls[_key(key)] = int(ttl)
        return True

    async def ping(self):
        self._record("PING")
        return self.ping_result

    async def scan_iter(self, match=None, count=None):
        self._record("SCAN", match, count)
        pattern = (match or "*").replace("\\", "")
        for key in list(self.data):
            if fnmatch.fnmatchcase(key, pattern):
                yield key.encode("utf-8")

    async def aclose(self):
        self.closed = True


def build_request(cookies: Optional[dict[str, str]] = None) -> Request:
    """Build a bare GET request carrying the given cookies."""
    headers = []
    if cookies:
        cookie_header = "; ".join(f"{name}={value}" for name, value in cookies.items())
        headers.append((b"cookie", cookie_header.encode("latin-1")))
    return Request({
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": headers,
        "query_string": b"",
    })


def parse_set_cookies(response: Response) -> dict[str, Any]:
    """Parse the Set-Cookie headers of a response into morsels by name."""
    cookies = SimpleCookie()
    for header in response.headers.getlist("set-cookie"):
        cookies.load(header)
    return {name: morsel for name, morsel in cookies.items()}


@pytest.fixture
def fake_redis() -> FakeRedis:
    """Create an empty in-memory Redis."""
    return FakeRedis()


@pytest.fixture
def engine(fake_redis) -> RedisPersistenceEngine:
    """Create a persistence engine over the fake Redis."""
    return RedisPersistenceEngine(client=fake_redis, key_prefix="session_")


@pytest.fixture
def codec() -> CookieCodec:
    return CookieCodec(key_pairs_from(SECRET_KEY))


@pytest.fixture
def store(engine, codec) -> RedisStore:
    """Create a store with the default options and JSON serializer."""
    return RedisStore(engine, codec)


@pytest.fixture
def make_request():
    """Factory building requests that carry the given cookies."""
    return build_request


@pytest.fixture
def response_cookies():
    """Parser returning the Set-Cookie morsels of a response by name."""
    return parse_set_cookies
