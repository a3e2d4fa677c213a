"""Login URL generation and identity verification.

Example:
    >>> from idguard import Provider  # doctest: +SKIP
    >>> provider = Provider.from_config()  # doctest: +SKIP
    >>> url = provider.generate_login_url()  # doctest: +SKIP
    >>> identity = provider.verify_identity(code, state, timeout=10)  # doctest: +SKIP
    >>> identity.subject  # doctest: +SKIP
    'f3c2...'
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx
from box import Box

from idguard.client import AuthlibOAuth2Client
from idguard.config import (
    DEFAULT_CONFIG,
    build_provider_settings,
    build_state_guard,
    deep_merge,
    get_trace_config,
    load_config,
)
from idguard.discovery import discover
from idguard.errors import (
    AuthenticationError,
    AuthError,
    ConfigurationError,
    MissingIDTokenError,
    StateError,
)
from idguard.models import Identity, LoginStage
from idguard.tracing import HTTPTracer
from idguard.verifier import IDTokenVerifier

if TYPE_CHECKING:
    from types import TracebackType

    from idguard.client import OAuth2Client
    from idguard.state import StateGuard

logger = logging.getLogger(__name__)


class Provider:
    """Binds an OAuth2 client, an ID token verifier and a state guard.

    Each login attempt is independent and the provider keeps no per-attempt
    state, so one instance can serve concurrent requests.

    Args:
        oauth2_client: Builds login URLs and exchanges codes.
        verifier: Verifies ID token signatures and claims.
        state_guard: Mints and checks anti-CSRF state tokens.
        http_client: Client owned by the provider, closed by :meth:`close`.
    """

    def __init__(
        self,
        oauth2_client: OAuth2Client,
        verifier: IDTokenVerifier,
        state_guard: StateGuard,
        *,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._client = oauth2_client
        self._verifier = verifier
        self._state_guard = state_guard
        self._http_client = http_client

    @classmethod
    def from_config(
        cls,
        config: dict[str, Any] | Box | None = None,
        *,
        http_client: httpx.Client | None = None,
    ) -> Provider:
        """Build a provider from configuration, running discovery if needed.

        Args:
            config: Configuration mapping, loaded from file when None.
            http_client: Client for discovery and JWKS requests.

        Returns:
            Ready-to-use provider.

        Raises:
            ConfigurationError: If the configuration is incomplete.
            DiscoveryError: If the issuer discovery document cannot be used.
        """
        if config is None:
            cfg = load_config()
        elif isinstance(config, Box):
            cfg = config
        else:
            cfg = Box(deep_merge(DEFAULT_CONFIG, config))
        settings = build_provider_settings(cfg)
        trace_enabled, pretty, max_body = get_trace_config(cfg)
        tracer = None
        if trace_enabled:
            tracer = HTTPTracer(logging.getLogger("idguard.http"), pretty=pretty, max_body_length=max_body)

        owned_http_client = None
        if http_client is None:
            client_kwargs: dict[str, Any] = {"timeout": settings.timeout, "verify": settings.verify}
            if tracer is not None:
                client_kwargs["event_hooks"] = tracer.event_hooks
            http_client = owned_http_client = httpx.Client(**client_kwargs)

        try:
            metadata = discover(settings.issuer, http_client) if settings.issuer and settings.needs_discovery else None

            issuer = metadata.issuer if metadata else settings.issuer
            jwks_uri = settings.jwks_uri or (metadata.jwks_uri if metadata else None)
            if not issuer or not jwks_uri:
                raise ConfigurationError("An issuer and a jwks_uri are required to verify ID tokens")
            if metadata and settings.issuer and metadata.issuer.rstrip("/") != settings.issuer.rstrip("/"):
                logger.warning("Discovered issuer %s differs from configured %s", metadata.issuer, settings.issuer)

            verifier_cfg = cfg.verifier
            verifier = IDTokenVerifier(
                issuer,
                settings.client_id,
                jwks_uri,
                http_client,
                leeway=int(verifier_cfg.get("leeway", 60)),
                jwks_ttl=int(verifier_cfg.get("jwks_ttl", 3600)),
                algorithms=list(verifier_cfg.get("algorithms") or ["RS256"]),
            )
            state_guard = build_state_guard(cfg)
            oauth2_client = AuthlibOAuth2Client.from_settings(settings, metadata, tracer=tracer)
        except AuthError:
            if owned_http_client is not None:
                owned_http_client.close()
            raise
        return cls(oauth2_client, verifier, state_guard, http_client=owned_http_client)

    def close(self) -> None:
        """Close the OAuth2 client session and the owned HTTP client."""
        close_client = getattr(self._client, "close", None)
        if callable(close_client):
            close_client()
        if self._http_client is not None:
            self._http_client.close()

    def __enter__(self) -> Provider:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    @property
    def state_guard(self) -> StateGuard:
        """State guard used by this provider."""
        return self._state_guard

    def generate_login_url(self) -> str:
        """Return the identity provider login URL for a new attempt.

        A fresh state token is embedded as the ``state`` query parameter.

        Raises:
            AuthError: If the OAuth2 client produced an empty URL.
        """
        state = self._state_guard.generate_state()
        url = self._client.authorization_url(state)
        if not url:
            raise AuthError("OAuth2 client returned an empty authorization URL")
        logger.debug("Login attempt stage: %s", LoginStage.AWAITING_CALLBACK.value)
        return url

    def verify_identity(self, code: str, state: str, *, timeout: float | None = None) -> Identity:
        """Authenticate the callback of a login attempt.

        The state is checked first, the code is only exchanged once the state
        is known to be ours. Any failure is final for this attempt.

        Args:
            code: Authorization code from the callback.
            state: State value echoed back by the identity provider.
            timeout: Timeout in seconds for the token exchange.

        Returns:
            The authenticated identity.

        Raises:
            AuthenticationError: If the state is malformed, forged or expired.
            TokenExchangeError: If the code exchange fails.
            MissingIDTokenError: If the token response has no ID token.
            InvalidIDTokenError: If the ID token signature is invalid.
            InvalidClaimsError: If a required claim is missing or invalid.
        """
        stage = LoginStage.AWAITING_CALLBACK
        try:
            try:
                self._state_guard.verify_state(state)
            except StateError as exc:
                raise AuthenticationError(f"Invalid state: {exc.message}") from exc
            stage = self._advance(stage, LoginStage.VERIFIED)

            token = self._client.exchange(code, timeout=timeout)
            stage = self._advance(stage, LoginStage.EXCHANGED)

            raw_id_token = token.get("id_token")
            if not raw_id_token:
                raise MissingIDTokenError("Token response does not contain an id_token")

            claims = self._verifier.verify(raw_id_token)
            self._verifier.validate_claims(claims)
            stage = self._advance(stage, LoginStage.CLAIMS_VALIDATED)
        except AuthError as exc:
            exc.details.setdefault("stage", stage.value)
            logger.info("Login attempt failed at stage %s: %s", stage.value, exc.message)
            self._advance(stage, LoginStage.FAILED)
            raise

        identity = Identity.from_claims(dict(claims), raw_id_token)
        self._advance(stage, LoginStage.AUTHENTICATED)
        logger.info("Authenticated subject %s", identity.subject)
        return identity

    @staticmethod
    def _advance(current: LoginStage, target: LoginStage) -> LoginStage:
        logger.debug("Login attempt stage: %s -> %s", current.value, target.value)
        return target


__all__ = [
    "Provider",
]
