"""
Session value serializers.

A serializer turns the ``values`` mapping of a session into the bytes the
persistence engine stores, and back. The payload is stored raw: no envelope,
no checksum, no version marker, so switching serializers requires
migrating every stored session.
"""

import base64
import json
import logging
import pickle
from abc import ABC, abstractmethod
from typing import Any

from errors.exceptions import SerializationError

logger = logging.getLogger(__name__)


class SessionSerializer(ABC):
    """Converts a session values mapping to and from bytes."""

    @abstractmethod
    def serialize(self, values: dict[Any, Any]) -> bytes:
        """
        Encode session values.

        Raises:
            SerializationError: If the values cannot be encoded.
        """

    @abstractmethod
    def deserialize(self, data: bytes, values: dict[Any, Any]) -> None:
        """
        Decode ``data`` and merge the result into ``values`` in place.

        Raises:
            SerializationError: If the payload is malformed.
        """


def _json_default(value: Any) -> Any:
    # bytes encode as standard base64 text and come back as str
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _check_string_keys(values: dict[Any, Any]) -> None:
    """Raise SerializationError on a non-string key at any depth."""
    stack: list[Any] = [values]
    seen: set[int] = set()
    while stack:
        value = stack.pop()
        if id(value) in seen:
            continue
        seen.add(id(value))
        if isinstance(value, dict):
            for key, item in value.items():
                if not isinstance(key, str):
                    raise SerializationError(
                        f"Non-string key value, cannot serialize session to JSON: {key!r}",
                        details={"key": repr(key)},
                    )
                if isinstance(item, (dict, list, tuple)):
                    stack.append(item)
        else:
            stack.extend(item for item in value if isinstance(item, (dict, list, tuple)))


class JSONSerializer(SessionSerializer):
    """
    Default serializer: UTF-8 JSON object with string keys.

    Integers and floats keep their type through a round trip. ``bytes``
    values are stored as base64 strings and read back as ``str``. Non-string
    keys, NaN/Infinity and other non-JSON values are rejected.
    """

    def serialize(self, values: dict[Any, Any]) -> bytes:
        # json.dumps would silently turn 1, True and None keys into strings
        _check_string_keys(values)
        try:
            return json.dumps(
                values,
                default=_json_default,
                allow_nan=False,
                separators=(",", ":"),
            ).encode("utf-8")
        except (TypeError, ValueError, RecursionError) as e:
            raise SerializationError(
                f"Cannot serialize session to JSON: {e}"
            ) from e

    def deserialize(self, data: bytes, values: dict[Any, Any]) -> None:
        try:
            decoded = json.loads(data)
        except (UnicodeDecodeError, ValueError, RecursionError) as e:
            raise SerializationError(
                f"Cannot deserialize session from JSON: {e}"
            ) from e
        if not isinstance(decoded, dict):
            raise SerializationError(
                "Cannot deserialize session from JSON: payload is not an object",
                details={"type": type(decoded).__name__},
            )
        values.update(decoded)


class PickleSerializer(SessionSerializer):
    """
    Binary serializer based on pickle.

    Accepts any key and any picklable value. Loading a pickle executes
    code, so only use it when nothing but this application can write to
    the cache engine.
    """

    protocol = pickle.HIGHEST_PROTOCOL

    def serialize(self, values: dict[Any, Any]) -> bytes:
        try:
            return pickle.dumps(dict(values), protocol=self.protocol)
        except (pickle.PicklingError, TypeError, AttributeError, RecursionError) as e:
            raise SerializationError(
                f"Cannot serialize session with pickle: {e}"
            ) from e

    def deserialize(self, data: bytes, values: dict[Any, Any]) -> None:
        try:
            decoded = pickle.loads(data)
        except Exception as e:
            # pickle can raise nearly anything on corrupt input
            raise SerializationError(
                f"Cannot deserialize session with pickle: {e}"
            ) from e
        if not isinstance(decoded, dict):
            raise SerializationError(
                "Cannot deserialize session with pickle: payload is not a mapping",
                details={"type": type(decoded).__name__},
            )
        values.update(decoded)


SERIALIZERS: dict[str, type[SessionSerializer]] = {
    "json": JSONSerializer,
    "pickle": PickleSerializer,
}


def get_serializer(name: str) -> SessionSerializer:
    """
    Build the serializer registered under ``name``.

    Raises:
        ValueError: If no serializer has that name.
    """
    try:
        serializer_cls = SERIALIZERS[name.strip().lower()]
    except KeyError:
        raise ValueError(
            f"Unknown session serializer {name!r}; expected one of: "
            f"{', '.join(sorted(SERIALIZERS))}"
        ) from None
    logger.debug(f"Using {serializer_cls.__name__} for session values")
    return serializer_cls()
