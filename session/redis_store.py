"""
Redis-backed session store implementation.

This module provides RedisStore, the session lifecycle facade: it decodes
the session cookie, loads the serialized values through the persistence
engine, and on save writes the values back with the session max age as
TTL before issuing a freshly signed cookie.

Consistency model: the store keeps no per-session lock and no in-process
cache. Each GET, SETEX and DEL is atomic in Redis, but a load followed by a
save is not; two requests saving the same session concurrently race and the
last write wins, discarding the other request's changes.
"""

import base64
import logging
from typing import Any, AsyncIterator, Optional

from errors.exceptions import (
    CookieDecodeError,
    EngineUnavailableError,
    InvalidSessionIDError,
    SerializationError,
)
from session.codec import (
    DEFAULT_COOKIE_MAX_AGE,
    CookieCodec,
    KeyMaterial,
    generate_random_key,
    key_pairs_from,
)
from session.models import Options, Session
from session.persistence import DEFAULT_KEY_PREFIX, RedisPersistenceEngine
from session.registry import get_registry
from session.serializers import JSONSerializer, SessionSerializer, get_serializer
from session.store import SessionStore

logger = logging.getLogger(__name__)

# Random bytes behind each session id (256 bits)
SESSION_ID_BYTES = 32


def generate_session_id() -> str:
    """Return a new random session id: base32 text without padding."""
    raw = generate_random_key(SESSION_ID_BYTES)
    return base64.b32encode(raw).decode("ascii").rstrip("=")


class RedisStore(SessionStore):
    """
    Session store keeping session values in Redis.

    Attributes:
        engine: Persistence engine holding the Redis client
        codec: Cookie codec signing session ids
        serializer: Serializer for session values
    """

    def __init__(
        self,
        engine: RedisPersistenceEngine,
        codec: CookieCodec,
        serializer: Optional[SessionSerializer] = None,
        options: Optional[Options] = None
    ):
        """
        Initialize the store.

        Args:
            engine: Persistence engine, connected or not
            codec: Cookie codec used for every cookie of this store
            serializer: Serializer for session values, JSON by default
            options: Default session options, ``path="/"`` and
                ``max_age=4096`` by default
        """
        self.engine = engine
        self.codec = codec
        self.serializer = serializer or JSONSerializer()
        self._options = options.copy() if options else Options()

    @classmethod
    async def create(
        cls,
        client: Any,
        key_prefix: str,
        *keys: KeyMaterial,
        serializer: Optional[SessionSerializer] = None,
        options: Optional[Options] = None
    ) -> "RedisStore":
        """
        Build a store around a Redis client and check that Redis answers.

        Args:
            client: redis.asyncio client or a RedisPersistenceEngine
            key_prefix: Namespace of the session keys
            *keys: Alternating hash and block keys, newest pair first
            serializer: Optional serializer, JSON by default
            options: Optional default session options

        Raises:
            EngineUnavailableError: If Redis does not acknowledge PING.
        """
        if isinstance(client, RedisPersistenceEngine):
            engine = client
            engine.key_prefix = key_prefix
        else:
            engine = RedisPersistenceEngine(client=client, key_prefix=key_prefix)
        store = cls(
            engine,
            CookieCodec(key_pairs_from(*keys)),
            serializer=serializer,
            options=options,
        )
        await store.connect()
        return store

    @classmethod
    def from_settings(cls, settings: Any) -> "RedisStore":
        """
        Build an unconnected store from application settings.

        Call connect() before serving requests.
        """
        engine = RedisPersistenceEngine(
            redis_url=settings.effective_redis_url,
            key_prefix=settings.session_key_prefix,
            max_length=settings.session_max_length,
            operation_timeout=settings.session_operation_timeout_seconds,
        )
        codec = CookieCodec(
            settings.session_key_pairs(),
            max_age=settings.session_codec_max_age or DEFAULT_COOKIE_MAX_AGE,
        )
        return cls(
            engine,
            codec,
            serializer=get_serializer(settings.session_serializer),
            options=settings.session_options(),
        )

    async def connect(self) -> None:
        """
        Connect the engine and fail fast when Redis is not alive.

        Raises:
            EngineUnavailableError: If PING fails or is not acknowledged.
        """
        await self.engine.connect()
        if not await self.engine.ping():
            raise EngineUnavailableError("Redis did not acknowledge PING")
        logger.info(f"Session store connected (key prefix {self.key_prefix!r})")

    async def disconnect(self) -> None:
        """Release the Redis connection."""
        await self.engine.disconnect()

    # Configuration

    @property
    def key_prefix(self) -> str:
        return self.engine.key_prefix

    @property
    def options(self) -> Options:
        return self._options

    @property
    def max_length(self) -> int:
        return self.engine.max_length

    @property
    def client(self) -> Any:
        return self.engine.client

    def set_key_prefix(self, prefix: str) -> "RedisStore":
        self.engine.key_prefix = prefix
        return self

    def set_options(self, options: Options) -> "RedisStore":
        self._options = options.copy()
        return self

    def set_max_length(self, length: int) -> "RedisStore":
        """
        Restrict the serialized size of saved sessions.

        0 disables the limit; Redis itself accepts values up to 512MB.
        """
        if length < 0:
            raise ValueError("max_length cannot be negative")
        self.engine.max_length = length
        return self

    def set_serializer(self, serializer: SessionSerializer) -> "RedisStore":
        self.serializer = serializer
        return self

    def set_max_age(self, age: int) -> "RedisStore":
        """Set the default session max age and the cookie signature lifetime."""
        self._options.max_age = age
        self.codec.max_age = age
        return self

    # Cookies

    def _set_cookie(self, response: Any, session: Session, value: str) -> None:
        options = session.options
        response.set_cookie(
            key=session.name,
            value=value,
            max_age=options.max_age,
            expires=options.max_age,
            path=options.path,
            domain=options.domain,
            secure=options.secure,
            httponly=options.http_only,
            samesite=options.same_site,
        )

    def _expire_cookie(self, response: Any, session: Session) -> None:
        options = session.options
        response.delete_cookie(
            key=session.name,
            path=options.path,
            domain=options.domain,
            secure=options.secure,
            httponly=options.http_only,
            samesite=options.same_site,
        )

    # Lifecycle

    async def get(self, request: Any, name: str) -> Session:
        return await get_registry(request).get(self, name)

    async def new(self, request: Any, name: str) -> Session:
        session = Session(
            name=name,
            options=self._options.copy(),
            is_new=True,
            store=self,
        )
        cookie_value = request.cookies.get(name)
        if cookie_value is None:
            return session

        try:
            session_id = self.codec.decode(name, cookie_value)
        except CookieDecodeError as e:
            logger.warning(f"Ignoring invalid cookie for session {name!r}")
            e.session = session
            raise
        if not session_id:
            return session

        session.id = session_id
        found, payload = await self.engine.load(session_id)
        if found:
            self.serializer.deserialize(payload, session.values)
            session.is_new = False
        return session

    async def _persist(self, session: Session) -> None:
        payload = self.serializer.serialize(session.values)
        await self.engine.save(session.id, payload, session.options.max_age)

    async def _remove(self, session: Session) -> None:
        # An id-less session was never written
        if session.id:
            await self.engine.delete(self.engine.get_key(session.id))

    async def save(self, request: Any, response: Any, session: Session) -> None:
        if session.options.max_age <= 0:
            await self._remove(session)
            self._expire_cookie(response, session)
            return

        if not session.id:
            session.id = generate_session_id()
        await self._persist(session)
        encoded = self.codec.encode(session.name, session.id)
        self._set_cookie(response, session, encoded)

    async def update(self, session: Session) -> None:
        if session.options.max_age <= 0:
            await self._remove(session)
            return
        if not session.id:
            raise InvalidSessionIDError("Cannot update a session that was never saved")
        await self._persist(session)

    async def delete(self, request: Any, response: Any, session: Session) -> None:
        await self._remove(session)
        self._expire_cookie(response, session)
        session.values.clear()

    def _prefixed(self, session_id: str) -> str:
        prefix = self.key_prefix
        if session_id.startswith(prefix):
            return session_id
        return prefix + session_id

    async def delete_by_id(self, *ids: str) -> None:
        keys = [self._prefixed(session_id) for session_id in ids]
        await self.engine.delete(*keys)
        logger.info(f"Deleted {len(keys)} session(s) by id")

    async def refresh(self, session: Session) -> bool:
        """Reset the TTL of a stored session to its max age without rewriting it."""
        return await self.engine.refresh_ttl(session.id, session.options.max_age)

    async def iter_all(self) -> AsyncIterator[Session]:
        """
        Iterate over every stored session.

        Each session gets a copy of the store's current default options,
        since options are never persisted. Records that fail to deserialize
        are logged and skipped; Redis failures abort the iteration.
        """
        prefix = self.key_prefix
        async for key, payload in self.engine.scan_all(prefix):
            session = Session(
                name="",
                id=key[len(prefix):],
                options=self._options.copy(),
                is_new=False,
                store=self,
            )
            try:
                self.serializer.deserialize(payload, session.values)
            except SerializationError as e:
                logger.warning(f"Skipping unreadable session record {key!r}: {e.message}")
                continue
            yield session

    async def get_all(self) -> list[Session]:
        return [session async for session in self.iter_all()]
