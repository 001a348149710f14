"""
Cookie codec for session identifiers.

Cookie values are signed with itsdangerous (HMAC plus timestamp, salted
with the cookie name) and, when a pair carries a block key, encrypted with
Fernet before signing. Several key pairs may be configured to rotate keys:
the first pair signs new cookies, every pair is tried when decoding.
"""

import base64
import hashlib
import logging
import secrets
from dataclasses import dataclass
from typing import Iterable, Optional, Union

from cryptography.fernet import Fernet, InvalidToken
from itsdangerous import BadData, URLSafeTimedSerializer

from errors.exceptions import CookieDecodeError

logger = logging.getLogger(__name__)

# Default lifetime of a signed cookie value, in seconds (30 days)
DEFAULT_COOKIE_MAX_AGE = 86400 * 30

KeyMaterial = Union[str, bytes]


def generate_random_key(length: int = 32) -> bytes:
    """Return ``length`` bytes from a cryptographically secure source."""
    return secrets.token_bytes(length)


def _to_bytes(key: KeyMaterial) -> bytes:
    return key.encode("utf-8") if isinstance(key, str) else bytes(key)


@dataclass(frozen=True)
class KeyPair:
    """
    A signing key and an optional encryption key.

    Attributes:
        hash_key: Secret used to sign cookie values
        block_key: Secret used to encrypt cookie values, None to only sign
    """
    hash_key: bytes
    block_key: Optional[bytes] = None

    def __post_init__(self) -> None:
        if not self.hash_key:
            raise ValueError("hash_key cannot be empty")

    def fernet(self) -> Optional[Fernet]:
        """Build the Fernet cipher for this pair, None when unencrypted."""
        if not self.block_key:
            return None
        digest = hashlib.sha256(self.block_key).digest()
        return Fernet(base64.urlsafe_b64encode(digest))


def key_pairs_from(*keys: KeyMaterial) -> list[KeyPair]:
    """
    Group flat key arguments into pairs.

    Keys alternate hash key, block key, hash key, block key... An odd
    trailing hash key gets no block key. Empty block keys disable
    encryption for their pair.
    """
    raw = [_to_bytes(key) for key in keys]
    pairs = []
    for i in range(0, len(raw), 2):
        block_key = raw[i + 1] if i + 1 < len(raw) else None
        pairs.append(KeyPair(hash_key=raw[i], block_key=block_key or None))
    return pairs


class CookieCodec:
    """
    Signs, optionally encrypts, and verifies session cookie values.

    Attributes:
        key_pairs: Key pairs, newest first
        max_age: Seconds a signed value stays valid
    """

    def __init__(
        self,
        key_pairs: Iterable[KeyPair],
        max_age: int = DEFAULT_COOKIE_MAX_AGE
    ):
        self.key_pairs = list(key_pairs)
        if not self.key_pairs:
            raise ValueError("At least one key pair is required")
        self.max_age = max_age

    def _signer(self, pair: KeyPair, name: str) -> URLSafeTimedSerializer:
        return URLSafeTimedSerializer(pair.hash_key, salt=name)

    def encode(self, name: str, value: str) -> str:
        """
        Encode ``value`` for the cookie ``name`` with the newest key pair.

        Returns:
            The signed (and possibly encrypted) cookie value.
        """
        pair = self.key_pairs[0]
        payload = value
        fernet = pair.fernet()
        if fernet is not None:
            payload = fernet.encrypt(value.encode("utf-8")).decode("ascii")
        return self._signer(pair, name).dumps(payload)

    def decode(self, name: str, cookie_value: str) -> str:
        """
        Verify and decode a cookie value, trying every key pair in order.

        Raises:
            CookieDecodeError: If no key pair accepts the value.
        """
        if not cookie_value:
            raise CookieDecodeError("The session cookie is empty")

        max_age = self.max_age if self.max_age > 0 else None
        last_error: Optional[Exception] = None
        for pair in self.key_pairs:
            try:
                payload = self._signer(pair, name).loads(cookie_value, max_age=max_age)
                if not isinstance(payload, str):
                    raise BadData("Unexpected cookie payload type")
                fernet = pair.fernet()
                if fernet is None:
                    return payload
                return fernet.decrypt(payload.encode("ascii")).decode("utf-8")
            except (BadData, InvalidToken, UnicodeError, ValueError) as e:
                last_error = e

        logger.debug(f"Cookie {name!r} rejected by all key pairs: {last_error}")
        raise CookieDecodeError(
            "The session cookie could not be decoded",
            details={"cookie": name},
        ) from last_error
