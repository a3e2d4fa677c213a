"""idguard - OAuth2 / OpenID Connect login with stateless anti-CSRF state tokens.

Typical usage::

    from idguard import Provider

    provider = Provider.from_config()
    login_url = provider.generate_login_url()
    # redirect the user, then on callback:
    identity = provider.verify_identity(code, state)
"""

from __future__ import annotations

from idguard.client import AuthlibOAuth2Client, OAuth2Client
from idguard.config import load_config
from idguard.errors import (
    AuthenticationError,
    AuthError,
    ConfigurationError,
    DiscoveryError,
    ExpiredStateError,
    InvalidClaimsError,
    InvalidIDTokenError,
    InvalidStateError,
    MalformedStateError,
    MissingIDTokenError,
    StateError,
    TokenError,
    TokenExchangeError,
    TokenValidationError,
)
from idguard.logging import TRACE_LEVEL, init_logging
from idguard.models import Identity, LoginStage, ProviderMetadata
from idguard.provider import Provider
from idguard.state import StateGuard, StateKey
from idguard.verifier import IDTokenVerifier

__version__ = "0.1.0"

__all__ = [
    "TRACE_LEVEL",
    "AuthError",
    "AuthenticationError",
    "AuthlibOAuth2Client",
    "ConfigurationError",
    "DiscoveryError",
    "ExpiredStateError",
    "IDTokenVerifier",
    "Identity",
    "InvalidClaimsError",
    "InvalidIDTokenError",
    "InvalidStateError",
    "LoginStage",
    "MalformedStateError",
    "MissingIDTokenError",
    "OAuth2Client",
    "Provider",
    "ProviderMetadata",
    "StateError",
    "StateGuard",
    "StateKey",
    "TokenError",
    "TokenExchangeError",
    "TokenValidationError",
    "__version__",
    "init_logging",
    "load_config",
]
