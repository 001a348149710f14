"""
Redis persistence engine for session payloads.

This module maps session identifiers to namespaced Redis keys and stores
serialized session values with SETEX so that expiry is enforced by Redis
itself. It owns the size limit and the bulk operations (batch DEL and
SCAN-based enumeration).

Every call is a single network round trip with no retry. Failures of the
Redis client surface as EngineUnavailableError with the client exception
chained. Cancellation of the calling task cancels the pending call, and an
optional per-operation timeout bounds each one.
"""

import asyncio
import logging
import re
from typing import Any, AsyncIterator, Awaitable, Optional, TypeVar

from redis.exceptions import RedisError

from errors.exceptions import (
    EngineUnavailableError,
    InvalidSessionIDError,
    SizeLimitExceededError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Default key namespace for session payloads
DEFAULT_KEY_PREFIX = "session_"

# Default maximum serialized payload length in bytes (0 disables the check)
DEFAULT_MAX_LENGTH = 4096

# Page size hint passed to SCAN
SCAN_COUNT = 100

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


def escape_pattern(prefix: str) -> str:
    """Escape Redis glob metacharacters so ``prefix`` matches literally."""
    return _GLOB_SPECIAL.sub(r"\\\1", prefix)


def _to_str(key: Any) -> str:
    return key.decode("utf-8") if isinstance(key, bytes) else str(key)


def _to_bytes(payload: Any) -> bytes:
    return payload.encode("utf-8") if isinstance(payload, str) else bytes(payload)


class RedisPersistenceEngine:
    """
    Session payload storage on top of a redis.asyncio client.

    The client is shared by all requests; redis.asyncio clients are safe to
    use concurrently from many tasks. Configuration attributes are meant to
    be set once at startup.

    Attributes:
        client: Redis async client (set directly or built by connect())
        redis_url: Connection URL used by connect()
        key_prefix: Namespace prepended to every session id
        max_length: Maximum payload size in bytes, 0 for unbounded
        operation_timeout: Optional timeout in seconds for each call
    """

    def __init__(
        self,
        client: Any = None,
        redis_url: Optional[str] = None,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        max_length: int = DEFAULT_MAX_LENGTH,
        operation_timeout: Optional[float] = None
    ):
        self.client = client
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.max_length = max_length
        self.operation_timeout = operation_timeout

    async def connect(self) -> None:
        """
        Build the Redis client from ``redis_url``.

        Payloads are bytes, so responses are not decoded. Does nothing
        when a client was injected.
        """
        if self.client is not None:
            return
        if not self.redis_url:
            raise RuntimeError("No Redis client or redis_url configured.")
        import redis.asyncio as redis
        self.client = redis.from_url(self.redis_url, decode_responses=False)

    async def disconnect(self) -> None:
        """Close the Redis connection."""
        if self.client:
            await self.client.aclose()
            self.client = None

    def get_key(self, session_id: str) -> str:
        """Return the Redis key of a session: prefix and id, no separator."""
        return f"{self.key_prefix}{session_id}"

    def _require_client(self) -> Any:
        if not self.client:
            raise RuntimeError("Redis client not connected. Call connect() first.")
        return self.client

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            if self.operation_timeout:
                return await asyncio.wait_for(awaitable, timeout=self.operation_timeout)
            return await awaitable
        except asyncio.TimeoutError as e:
            raise EngineUnavailableError(
                f"Redis {operation} timed out after {self.operation_timeout} seconds",
                details={"operation": operation},
            ) from e
        except (RedisError, OSError) as e:
            raise EngineUnavailableError(
                f"Redis {operation} failed: {e}",
                details={"operation": operation},
            ) from e

    async def load(self, session_id: str) -> tuple[bool, bytes]:
        """
        Fetch the payload stored for a session.

        Returns:
            ``(True, payload)`` when the key exists, ``(False, b"")`` when it
            does not. A missing key is not an error.

        Raises:
            InvalidSessionIDError: If ``session_id`` is empty.
            EngineUnavailableError: On any Redis failure.
        """
        if not session_id:
            raise InvalidSessionIDError("Cannot load a session without an id")
        client = self._require_client()
        data = await self._call("GET", client.get(self.get_key(session_id)))
        if data is None:
            return False, b""
        return True, _to_bytes(data)

    async def save(self, session_id: str, payload: bytes, ttl_seconds: int) -> None:
        """
        Store a payload with SETEX.

        Non-positive TTLs are not special-cased here; the store routes them
        to delete before reaching this method.

        Raises:
            InvalidSessionIDError: If ``session_id`` is empty.
            SizeLimitExceededError: If the payload exceeds ``max_length``;
                nothing is written.
            EngineUnavailableError: On any Redis failure.
        """
        if not session_id:
            raise InvalidSessionIDError("Cannot save a session without an id")
        if self.max_length != 0 and len(payload) > self.max_length:
            raise SizeLimitExceededError(len(payload), self.max_length)
        client = self._require_client()
        await self._call(
            "SETEX", client.setex(self.get_key(session_id), ttl_seconds, payload)
        )
        logger.debug(f"Stored session payload of {len(payload)} bytes with ttl {ttl_seconds}s")

    async def delete(self, *keys: str) -> None:
        """
        Delete fully-prefixed keys in a single DEL.

        A failure fails the whole batch; there is no per-key result.
        """
        if not keys:
            return
        client = self._require_client()
        await self._call("DEL", client.delete(*keys))

    async def scan_all(self, prefix: Optional[str] = None) -> AsyncIterator[tuple[str, bytes]]:
        """
        Iterate over every key under ``prefix`` with its current payload.

        The SCAN cursor is walked to completion. Keys removed between SCAN
        and GET are skipped; GET failures propagate.

        Args:
            prefix: Key prefix to match, defaults to ``key_prefix``.

        Yields:
            ``(key, payload)`` pairs, keys still carrying the prefix.
        """
        client = self._require_client()
        pattern = escape_pattern(self.key_prefix if prefix is None else prefix) + "*"
        keys = client.scan_iter(match=pattern, count=SCAN_COUNT)
        while True:
            try:
                key = await self._call("SCAN", keys.__anext__())
            except StopAsyncIteration:
                break
            data = await self._call("GET", client.get(key))
            if data is None:
                logger.debug(f"Session key {_to_str(key)!r} vanished during scan")
                continue
            yield _to_str(key), _to_bytes(data)

    async def refresh_ttl(self, session_id: str, ttl_seconds: int) -> bool:
        """
        Refresh the TTL of an existing session without rewriting it.

        Returns:
            True if the session exists and its TTL was reset.
        """
        if not session_id:
            raise InvalidSessionIDError("Cannot refresh a session without an id")
        client = self._require_client()
        # EXPIRE returns True if the key exists and timeout was set
        result = await self._call("EXPIRE", client.expire(self.get_key(session_id), ttl_seconds))
        return bool(result)

    async def ping(self) -> bool:
        """
        Check that Redis acknowledges PING.

        Raises:
            EngineUnavailableError: If the PING itself fails.
        """
        client = self._require_client()
        result = await self._call("PING", client.ping())
        # redis-py parses the PONG status reply into True
        return result is True or result in (b"PONG", "PONG")

    async def health_check(self) -> bool:
        """
        Non-raising variant of ping() for health probes.

        Returns:
            True if Redis is healthy and accessible, False otherwise.
        """
        if not self.client:
            return False
        try:
            return await self.ping()
        except EngineUnavailableError as e:
            logger.warning(f"Session store health check failed: {e.message}")
            return False
