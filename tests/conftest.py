"""Shared pytest fixtures for the idguard test suite."""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from typing import Any
from unittest.mock import MagicMock

import pytest
from authlib.jose import JsonWebKey, jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from idguard.state import StateGuard, StateKey
from idguard.verifier import IDTokenVerifier

# pylint: disable=redefined-outer-name

ISSUER = "https://sso.example.com/realms/main"
CLIENT_ID = "console"
JWKS_URI = f"{ISSUER}/protocol/openid-connect/certs"
KEY_ID = "test-key-1"


# ─────────────────────────────────────────────────────────────────────────────
# State fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def state_key() -> StateKey:
    """Deterministic state key."""
    return StateKey.from_secret(b"0123456789abcdef0123456789abcdef")


@pytest.fixture
def state_guard(state_key: StateKey) -> StateGuard:
    """State guard with default settings."""
    return StateGuard(state_key)


# ─────────────────────────────────────────────────────────────────────────────
# Signing key and ID token fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def rsa_private_key() -> rsa.RSAPrivateKey:
    """RSA key the fake identity provider signs with."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_pem(rsa_private_key: rsa.RSAPrivateKey) -> bytes:
    """PEM encoded private signing key."""
    return rsa_private_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )


@pytest.fixture(scope="session")
def jwks(rsa_private_key: rsa.RSAPrivateKey) -> dict[str, Any]:
    """Public JWKS matching the signing key."""
    public_pem = rsa_private_key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    key = JsonWebKey.import_key(public_pem, {"kty": "RSA"}).as_dict()
    key.update({"kid": KEY_ID, "use": "sig", "alg": "RS256"})
    return {"keys": [key]}


@pytest.fixture
def make_claims() -> Callable[..., dict[str, Any]]:
    """Build a valid claim set, overridable per test."""

    def _make(**overrides: Any) -> dict[str, Any]:
        now = int(time.time())
        claims: dict[str, Any] = {
            "iss": ISSUER,
            "sub": "user-123",
            "aud": CLIENT_ID,
            "exp": now + 300,
            "iat": now,
            "email": "jdoe@example.com",
        }
        claims.update(overrides)
        return {k: v for k, v in claims.items() if v is not None}

    return _make


@pytest.fixture
def make_id_token(private_pem: bytes, make_claims: Callable[..., dict[str, Any]]) -> Callable[..., str]:
    """Sign an ID token with the test key."""

    def _make(claims: dict[str, Any] | None = None, *, kid: str = KEY_ID, **overrides: Any) -> str:
        payload = claims if claims is not None else make_claims(**overrides)
        header = {"alg": "RS256", "kid": kid}
        return jwt.encode(header, payload, private_pem).decode("ascii")

    return _make


@pytest.fixture
def jwks_http_client(jwks: dict[str, Any]) -> MagicMock:
    """httpx.Client mock serving the JWKS."""
    response = MagicMock()
    response.json.return_value = jwks
    response.raise_for_status = MagicMock()
    client = MagicMock()
    client.get.return_value = response
    return client


@pytest.fixture
def verifier(jwks_http_client: MagicMock) -> IDTokenVerifier:
    """ID token verifier for the fake identity provider."""
    return IDTokenVerifier(ISSUER, CLIENT_ID, JWKS_URI, jwks_http_client)


# ─────────────────────────────────────────────────────────────────────────────
# OAuth2 client double
# ─────────────────────────────────────────────────────────────────────────────


class FakeOAuth2Client:
    """In-memory OAuth2Client recording every call."""

    def __init__(self, token: Mapping[str, Any] | None = None, *, url_prefix: str = "") -> None:
        self.token: Mapping[str, Any] = token if token is not None else {}
        self.url_prefix = url_prefix
        self.exchange_error: Exception | None = None
        self.states: list[str] = []
        self.exchanges: list[tuple[str, float | None]] = []

    def authorization_url(self, state: str) -> str:
        self.states.append(state)
        return f"{self.url_prefix}{state}"

    def exchange(self, code: str, *, timeout: float | None = None) -> Mapping[str, Any]:
        self.exchanges.append((code, timeout))
        if self.exchange_error is not None:
            raise self.exchange_error
        return self.token


@pytest.fixture
def fake_client() -> FakeOAuth2Client:
    """OAuth2 client double returning the state as the login URL."""
    return FakeOAuth2Client()
