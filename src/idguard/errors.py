"""Exceptions raised by idguard.

Exception hierarchy::

    AuthError
        ConfigurationError (also ValueError)
        DiscoveryError
        StateError
            MalformedStateError
            InvalidStateError
                ExpiredStateError
        AuthenticationError
        TokenError
            TokenExchangeError
            MissingIDTokenError
            TokenValidationError
                InvalidIDTokenError
                InvalidClaimsError
"""

from __future__ import annotations

from typing import Any


class AuthError(Exception):
    """Base exception for all idguard errors.

    Attributes:
        message: Human-readable error message.
        details: Additional error context as key-value pairs.

    Examples:
        >>> raise AuthError("Something went wrong", details={"stage": "init"})
        Traceback (most recent call last):
        ...
        idguard.errors.AuthError: Something went wrong
    """

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize AuthError.

        Args:
            message: Human-readable error message.
            details: Additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(AuthError, ValueError):
    """Configuration is missing or invalid."""


class DiscoveryError(AuthError):
    """OpenID Connect discovery failed.

    Attributes:
        issuer: Issuer (or discovery URL) that was queried.
        reason: Why discovery failed.
    """

    def __init__(self, issuer: str, reason: str) -> None:
        """Initialize DiscoveryError.

        Args:
            issuer: Issuer (or discovery URL) that was queried.
            reason: Why discovery failed.
        """
        super().__init__(
            f"Discovery failed for '{issuer}': {reason}",
            details={"issuer": issuer, "reason": reason},
        )
        self.issuer = issuer
        self.reason = reason


class StateError(AuthError):
    """Base class for state token failures."""


class MalformedStateError(StateError):
    """State token cannot be parsed (wrong shape, encoding or length)."""


class InvalidStateError(StateError):
    """State token integrity tag does not match."""


class ExpiredStateError(InvalidStateError):
    """State token is authentic but older than the allowed window.

    Attributes:
        age: Age of the token in seconds.
        max_age: Allowed age in seconds.
    """

    def __init__(self, age: float, max_age: float) -> None:
        """Initialize ExpiredStateError.

        Args:
            age: Age of the token in seconds.
            max_age: Allowed age in seconds.
        """
        super().__init__(
            f"State token expired ({int(age)}s old, max {int(max_age)}s)",
            details={"age": age, "max_age": max_age},
        )
        self.age = age
        self.max_age = max_age


class AuthenticationError(AuthError):
    """The callback could not be bound to a login attempt."""


class TokenError(AuthError):
    """Base class for token related failures."""


class TokenExchangeError(TokenError):
    """Exchanging the authorization code for a token failed.

    Attributes:
        reason: Why the exchange failed.
        error_code: OAuth2 ``error`` value returned by the provider, if any.
    """

    def __init__(self, reason: str, *, error_code: str | None = None) -> None:
        """Initialize TokenExchangeError.

        Args:
            reason: Why the exchange failed.
            error_code: OAuth2 ``error`` value returned by the provider.
        """
        super().__init__(
            f"Token exchange failed: {reason}",
            details={"reason": reason, "error_code": error_code},
        )
        self.reason = reason
        self.error_code = error_code


class MissingIDTokenError(TokenError):
    """Token response carries no ``id_token``."""


class TokenValidationError(TokenError):
    """ID token failed validation.

    Attributes:
        reason: Why validation failed.
        claim: Offending claim name, if the failure is claim specific.
    """

    def __init__(self, reason: str, *, claim: str | None = None) -> None:
        """Initialize TokenValidationError.

        Args:
            reason: Why validation failed.
            claim: Offending claim name.
        """
        super().__init__(
            f"Token validation failed: {reason}",
            details={"reason": reason, "claim": claim},
        )
        self.reason = reason
        self.claim = claim


class InvalidIDTokenError(TokenValidationError):
    """ID token signature or structure is invalid."""


class InvalidClaimsError(TokenValidationError):
    """A required ID token claim is missing or invalid."""


__all__ = [
    "AuthError",
    "AuthenticationError",
    "ConfigurationError",
    "DiscoveryError",
    "ExpiredStateError",
    "InvalidClaimsError",
    "InvalidIDTokenError",
    "InvalidStateError",
    "MalformedStateError",
    "MissingIDTokenError",
    "StateError",
    "TokenError",
    "TokenExchangeError",
    "TokenValidationError",
]
