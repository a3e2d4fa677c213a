"""ID token verification.

Signature checks and claim validation are delegated to ``authlib.jose``;
this module only fetches and caches the provider JWKS and maps authlib
errors onto idguard's exception hierarchy.
"""

from __future__ import annotations

import base64
import json
import logging
import re
import threading
import time
from collections.abc import Sequence
from typing import Any

import httpx
from authlib.jose import JsonWebKey, JsonWebToken, JWTClaims
from authlib.jose.errors import ExpiredTokenError, InvalidClaimError, JoseError, MissingClaimError

from idguard.errors import InvalidClaimsError, InvalidIDTokenError

logger = logging.getLogger(__name__)

DEFAULT_LEEWAY = 60
DEFAULT_JWKS_TTL = 3600
REQUIRED_CLAIMS = ("iss", "sub", "aud", "exp")
SUPPORTED_KEY_TYPES = frozenset({"RSA", "EC", "OKP", "oct"})

_CLAIM_NAME_PATTERN = re.compile(r'"(\w+)"')


class IDTokenVerifier:
    """Verifies ID tokens issued by one OpenID Connect provider.

    Args:
        issuer: Expected ``iss`` claim.
        client_id: Expected audience.
        jwks_uri: URL of the provider signing keys.
        http_client: Client used to fetch the JWKS.
        leeway: Clock skew tolerance in seconds for ``exp``, ``nbf`` and ``iat``.
        jwks_ttl: Seconds before the cached JWKS is fetched again.
        algorithms: Accepted signing algorithms.

    Example:
        >>> verifier = IDTokenVerifier(  # doctest: +SKIP
        ...     "https://sso.example.com", "console", "https://sso.example.com/certs", httpx.Client()
        ... )
        >>> claims = verifier.verify(id_token)  # doctest: +SKIP
        >>> verifier.validate_claims(claims)  # doctest: +SKIP
    """

    def __init__(
        self,
        issuer: str,
        client_id: str,
        jwks_uri: str,
        http_client: httpx.Client,
        *,
        leeway: int = DEFAULT_LEEWAY,
        jwks_ttl: int = DEFAULT_JWKS_TTL,
        algorithms: Sequence[str] = ("RS256",),
    ) -> None:
        self._issuer = issuer
        self._client_id = client_id
        self._jwks_uri = jwks_uri
        self._http = http_client
        self._leeway = leeway
        self._jwks_ttl = jwks_ttl
        self._jwt = JsonWebToken(list(algorithms))
        self._jwks: dict[str, Any] | None = None
        self._jwks_fetched_at = 0.0
        self._lock = threading.Lock()

    @property
    def issuer(self) -> str:
        """Expected issuer."""
        return self._issuer

    @property
    def client_id(self) -> str:
        """Expected audience."""
        return self._client_id

    def verify(self, raw_id_token: str) -> JWTClaims:
        """Check the ID token signature against the provider keys.

        Args:
            raw_id_token: Compact serialized JWT.

        Returns:
            Decoded, signature-verified claims (not yet validated).

        Raises:
            InvalidIDTokenError: If the token is malformed, signed with an
                unknown key or algorithm, or the keys cannot be fetched.
        """
        header = _unverified_header(raw_id_token)
        jwks = self._get_jwks()

        kid = header.get("kid")
        if kid and not _has_kid(jwks, kid):
            logger.debug("Key %r not in cached JWKS, refetching", kid)
            jwks = self._get_jwks(force=True)
            if not _has_kid(jwks, kid):
                raise InvalidIDTokenError(f"Signing key {kid!r} not found in JWKS")

        claims_options = {
            "iss": {"essential": True, "value": self._issuer},
            "aud": {"essential": True, "value": self._client_id},
            "sub": {"essential": True},
            "exp": {"essential": True},
        }
        try:
            return self._jwt.decode(
                raw_id_token,
                JsonWebKey.import_key_set(jwks),
                claims_options=claims_options,
            )
        except JoseError as exc:
            raise InvalidIDTokenError(f"Signature verification failed: {exc}") from exc
        except (KeyError, ValueError) as exc:
            raise InvalidIDTokenError(f"Cannot decode ID token: {exc}") from exc

    def validate_claims(self, claims: JWTClaims) -> None:
        """Validate required claims of a verified token.

        ``sub``, ``exp``, ``aud`` and ``iss`` are required; ``iss`` must match
        the issuer and ``aud`` must contain the client id.

        Raises:
            InvalidClaimsError: If a claim is missing or invalid.
        """
        for name in REQUIRED_CLAIMS:
            if claims.get(name) in (None, "", []):
                raise InvalidClaimsError(f"Missing required claim '{name}'", claim=name)

        try:
            claims.validate(leeway=self._leeway)
        except ExpiredTokenError as exc:
            raise InvalidClaimsError("ID token has expired", claim="exp") from exc
        except (MissingClaimError, InvalidClaimError) as exc:
            claim = _claim_name(exc)
            raise InvalidClaimsError(f"Invalid claim '{claim}': {exc}", claim=claim) from exc
        except JoseError as exc:
            raise InvalidClaimsError(str(exc)) from exc

    def _get_jwks(self, *, force: bool = False) -> dict[str, Any]:
        with self._lock:
            fresh = time.monotonic() - self._jwks_fetched_at < self._jwks_ttl
            if self._jwks is not None and fresh and not force:
                return self._jwks

            try:
                response = self._http.get(self._jwks_uri)
                response.raise_for_status()
                jwks = response.json()
            except httpx.HTTPStatusError as exc:
                raise InvalidIDTokenError(f"JWKS fetch failed: HTTP {exc.response.status_code}") from exc
            except httpx.HTTPError as exc:
                raise InvalidIDTokenError(f"JWKS fetch failed: {exc}") from exc
            except ValueError as exc:
                raise InvalidIDTokenError("JWKS response is not valid JSON") from exc

            if not isinstance(jwks, dict) or not isinstance(jwks.get("keys"), list):
                raise InvalidIDTokenError("JWKS response has no 'keys' list")

            keys = [key for key in jwks["keys"] if isinstance(key, dict) and key.get("kty") in SUPPORTED_KEY_TYPES]
            if len(keys) != len(jwks["keys"]):
                logger.debug("Skipping %d unsupported JWKS entries", len(jwks["keys"]) - len(keys))
            jwks = {**jwks, "keys": keys}

            logger.debug("Fetched %d key(s) from %s", len(keys), self._jwks_uri)
            self._jwks = jwks
            self._jwks_fetched_at = time.monotonic()
            return jwks


def _unverified_header(token: str) -> dict[str, Any]:
    """Decode the JOSE header without verifying anything."""
    if not isinstance(token, str) or token.count(".") != 2:
        raise InvalidIDTokenError("ID token is not a compact JWT")
    segment = token.split(".", 1)[0]
    try:
        header = json.loads(base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4)))
    except ValueError as exc:
        raise InvalidIDTokenError("ID token header cannot be decoded") from exc
    if not isinstance(header, dict):
        raise InvalidIDTokenError("ID token header is not a JSON object")
    return header


def _has_kid(jwks: dict[str, Any], kid: str) -> bool:
    return any(key.get("kid") == kid for key in jwks.get("keys", []))


def _claim_name(exc: JoseError) -> str | None:
    name = getattr(exc, "claim_name", None)
    if name:
        return name
    match = _CLAIM_NAME_PATTERN.search(str(exc))
    return match.group(1) if match else None


__all__ = [
    "DEFAULT_JWKS_TTL",
    "DEFAULT_LEEWAY",
    "REQUIRED_CLAIMS",
    "SUPPORTED_KEY_TYPES",
    "IDTokenVerifier",
]
