"""Stateless anti-CSRF state tokens.

A state token binds an authorization callback to the login attempt that
issued it, without any server-side storage. The token is::

    b64url(issued_at || nonce) "." b64url(HMAC-SHA256(key, issued_at || nonce))

where ``issued_at`` is an 8-byte big-endian unix timestamp and ``nonce`` is
``length`` bytes drawn from :mod:`secrets`.

Example:
    >>> guard = StateGuard(StateKey.generate())
    >>> token = guard.generate_state()
    >>> guard.verify_state(token)
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import logging
import re
import secrets
import struct
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from idguard.errors import (
    ConfigurationError,
    ExpiredStateError,
    InvalidStateError,
    MalformedStateError,
)

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

KEY_LENGTH = 32
DEFAULT_STATE_LENGTH = 32
DEFAULT_MAX_AGE = 600
PBKDF2_ITERATIONS = 4096

# Tolerated clock drift for tokens minted on another replica
_FUTURE_SKEW_SECONDS = 30

_TIMESTAMP = struct.Struct(">Q")
_TAG_LENGTH = hashlib.sha256().digest_size
_SEPARATOR = "."
_B64URL_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


@dataclass(frozen=True, slots=True)
class StateKey:
    """Secret HMAC key used to tag and verify state tokens.

    Attributes:
        secret: Raw key bytes.
    """

    secret: bytes = field(repr=False)

    def __post_init__(self) -> None:
        """Reject empty keys."""
        if not self.secret:
            raise ConfigurationError("State key must not be empty")

    @classmethod
    def generate(cls) -> StateKey:
        """Create a random per-process key.

        Tokens minted with this key cannot be verified by another process.
        """
        return cls(secrets.token_bytes(KEY_LENGTH))

    @classmethod
    def from_secret(cls, secret: str | bytes) -> StateKey:
        """Use a configured raw secret as the key."""
        if isinstance(secret, str):
            secret = secret.encode("utf-8")
        return cls(secret)

    @classmethod
    def from_passphrase(
        cls,
        passphrase: str,
        salt: str,
        *,
        iterations: int = PBKDF2_ITERATIONS,
    ) -> StateKey:
        """Derive a key from a shared passphrase and salt with PBKDF2-HMAC-SHA256.

        Args:
            passphrase: Shared passphrase.
            salt: Shared salt.
            iterations: PBKDF2 iteration count.

        Returns:
            Derived StateKey.

        Raises:
            ConfigurationError: If passphrase or salt is empty.
        """
        if not passphrase or not salt:
            raise ConfigurationError("Both passphrase and salt are required to derive a state key")
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_LENGTH,
            salt=salt.encode("utf-8"),
            iterations=iterations,
        )
        return cls(kdf.derive(passphrase.encode("utf-8")))


class StateGuard:
    """Mints and verifies state tokens.

    The guard holds no mutable state, so one instance can serve concurrent
    login attempts.

    Args:
        key: Secret HMAC key.
        default_length: Nonce length in bytes when none is given.
        max_age: Validity window in seconds, ``0`` disables the expiry check.
        clock: Time source returning unix seconds.
    """

    def __init__(
        self,
        key: StateKey,
        *,
        default_length: int = DEFAULT_STATE_LENGTH,
        max_age: int = DEFAULT_MAX_AGE,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if default_length <= 0:
            raise ConfigurationError(f"State length must be positive, got {default_length}")
        if max_age < 0:
            raise ConfigurationError(f"State max_age must not be negative, got {max_age}")
        self._key = key
        self._default_length = default_length
        self._max_age = max_age
        self._clock = clock

    @property
    def default_length(self) -> int:
        """Nonce length used by :meth:`generate_state` without argument."""
        return self._default_length

    @property
    def max_age(self) -> int:
        """Validity window in seconds."""
        return self._max_age

    def generate_state(self, length: int | None = None) -> str:
        """Mint a fresh state token.

        Args:
            length: Nonce length in bytes, defaults to ``default_length``.

        Returns:
            Opaque, URL-safe token.

        Raises:
            ValueError: If length is not positive.
        """
        if length is None:
            length = self._default_length
        if length <= 0:
            raise ValueError(f"State length must be positive, got {length}")

        issued_at = int(self._clock())
        payload = _TIMESTAMP.pack(issued_at) + secrets.token_bytes(length)
        tag = self._sign(payload)
        return f"{_b64url_encode(payload)}{_SEPARATOR}{_b64url_encode(tag)}"

    def verify_state(self, candidate: str) -> None:
        """Check that a callback state was minted by this guard's key.

        Malformed and forged tokens cost one HMAC and one constant-time
        comparison either way.

        Args:
            candidate: State value echoed back by the identity provider.

        Raises:
            MalformedStateError: If the token cannot be parsed.
            InvalidStateError: If the tag does not match.
            ExpiredStateError: If the token is older than ``max_age``.
        """
        parsed = _parse(candidate)
        if parsed is None:
            hmac.compare_digest(self._sign(b"\x00" * (_TIMESTAMP.size + 1)), b"\x00" * _TAG_LENGTH)
            raise MalformedStateError("State token is malformed")

        payload, tag = parsed
        if not hmac.compare_digest(self._sign(payload), tag):
            raise InvalidStateError("State token signature mismatch")

        (issued_at,) = _TIMESTAMP.unpack_from(payload)
        now = self._clock()
        if issued_at > now + _FUTURE_SKEW_SECONDS:
            raise InvalidStateError("State token issued in the future", details={"issued_at": issued_at})
        age = now - issued_at
        if self._max_age and age > self._max_age:
            raise ExpiredStateError(age, self._max_age)

        logger.debug("State token verified (age=%ds)", int(age))

    def _sign(self, payload: bytes) -> bytes:
        return hmac.new(self._key.secret, payload, hashlib.sha256).digest()


def _parse(candidate: object) -> tuple[bytes, bytes] | None:
    """Split a token into payload and tag, or return None if malformed."""
    if not isinstance(candidate, str) or not candidate:
        return None

    parts = candidate.split(_SEPARATOR)
    if len(parts) != 2 or not all(_B64URL_PATTERN.match(part) for part in parts):
        return None

    try:
        payload = _b64url_decode(parts[0])
        tag = _b64url_decode(parts[1])
    except (binascii.Error, ValueError):
        return None

    if len(payload) <= _TIMESTAMP.size or len(tag) != _TAG_LENGTH:
        return None
    return payload, tag


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(data: str) -> bytes:
    """Decode unpadded base64url data."""
    padding = -len(data) % 4
    return base64.urlsafe_b64decode(data + "=" * padding)


__all__ = [
    "DEFAULT_MAX_AGE",
    "DEFAULT_STATE_LENGTH",
    "KEY_LENGTH",
    "StateGuard",
    "StateKey",
]
