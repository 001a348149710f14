"""
Server-side session management backed by Redis.

Session values live in Redis under ``<key_prefix><session_id>`` with the
session max age as TTL. The client only holds a signed cookie carrying the
session id.
"""

from session.codec import CookieCodec, KeyPair, generate_random_key, key_pairs_from
from session.models import Options, Session
from session.persistence import RedisPersistenceEngine
from session.redis_store import RedisStore, generate_session_id
from session.registry import SessionRegistry, get_registry
from session.serializers import (
    JSONSerializer,
    PickleSerializer,
    SessionSerializer,
    get_serializer,
)
from session.store import SessionStore

__all__ = [
    "CookieCodec",
    "KeyPair",
    "generate_random_key",
    "key_pairs_from",
    "Options",
    "Session",
    "RedisPersistenceEngine",
    "RedisStore",
    "generate_session_id",
    "SessionRegistry",
    "get_registry",
    "JSONSerializer",
    "PickleSerializer",
    "SessionSerializer",
    "get_serializer",
    "SessionStore",
]
