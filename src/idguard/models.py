"""Data models for idguard."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class LoginStage(str, Enum):
    """Progress of a single login attempt.

    ``INIT -> AWAITING_CALLBACK -> VERIFIED -> EXCHANGED -> CLAIMS_VALIDATED
    -> AUTHENTICATED``, or ``FAILED`` from any stage. There are no retries: a
    failed attempt restarts from a new login URL.
    """

    INIT = "init"
    AWAITING_CALLBACK = "awaiting_callback"
    VERIFIED = "verified"
    EXCHANGED = "exchanged"
    CLAIMS_VALIDATED = "claims_validated"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Whether no further transition is possible."""
        return self in (LoginStage.AUTHENTICATED, LoginStage.FAILED)


@dataclass(frozen=True, slots=True)
class ProviderMetadata:
    """Endpoints published by an OpenID Connect discovery document.

    Attributes:
        issuer: Issuer identifier, compared to the ``iss`` claim.
        authorization_endpoint: URL users are redirected to for login.
        token_endpoint: URL the authorization code is exchanged at.
        jwks_uri: URL of the provider signing keys.
        userinfo_endpoint: Optional userinfo URL.
        end_session_endpoint: Optional logout URL.
        scopes_supported: Scopes advertised by the provider.
        id_token_signing_alg_values_supported: Signing algorithms advertised.
    """

    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    jwks_uri: str
    userinfo_endpoint: str | None = None
    end_session_endpoint: str | None = None
    scopes_supported: list[str] = field(default_factory=list)
    id_token_signing_alg_values_supported: list[str] = field(default_factory=list)

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> ProviderMetadata:
        """Build metadata from a parsed discovery document.

        Raises:
            KeyError: If a required field is missing.
        """
        return cls(
            issuer=document["issuer"],
            authorization_endpoint=document["authorization_endpoint"],
            token_endpoint=document["token_endpoint"],
            jwks_uri=document["jwks_uri"],
            userinfo_endpoint=document.get("userinfo_endpoint"),
            end_session_endpoint=document.get("end_session_endpoint"),
            scopes_supported=list(document.get("scopes_supported") or []),
            id_token_signing_alg_values_supported=list(document.get("id_token_signing_alg_values_supported") or []),
        )


@dataclass(frozen=True, slots=True)
class Identity:
    """Authenticated identity extracted from a verified ID token.

    Attributes:
        subject: Stable user identifier (``sub`` claim).
        claims: Full verified claim set.
        issuer: Token issuer (``iss`` claim).
        audience: Token audiences (``aud`` claim, always a list).
        expires_at: Token expiry (``exp`` claim, UTC).
        email: ``email`` claim, when present.
        raw_id_token: The verified ID token as received.
    """

    subject: str
    claims: dict[str, Any]
    issuer: str
    audience: list[str]
    expires_at: datetime
    email: str | None = None
    raw_id_token: str = field(default="", repr=False)

    @classmethod
    def from_claims(cls, claims: dict[str, Any], raw_id_token: str = "") -> Identity:
        """Build an Identity from an already validated claim set."""
        aud = claims.get("aud")
        audience = list(aud) if isinstance(aud, (list, tuple)) else [aud]
        return cls(
            subject=str(claims["sub"]),
            claims=dict(claims),
            issuer=claims.get("iss", ""),
            audience=audience,
            expires_at=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
            email=claims.get("email"),
            raw_id_token=raw_id_token,
        )

    @property
    def is_expired(self) -> bool:
        """Check whether the ID token has expired."""
        return datetime.now(timezone.utc) >= self.expires_at


__all__ = [
    "Identity",
    "LoginStage",
    "ProviderMetadata",
]
