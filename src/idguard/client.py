"""OAuth2 client capability.

:class:`OAuth2Client` is the narrow interface the provider depends on:
building the authorization URL and exchanging a code for a token. Any object
with these two methods works, which keeps tests free of network mocks.
:class:`AuthlibOAuth2Client` implements it on top of authlib's httpx client.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import httpx
from authlib.integrations.base_client import OAuthError
from authlib.integrations.httpx_client import OAuth2Client as _AuthlibSession

from idguard.errors import ConfigurationError, TokenExchangeError

if TYPE_CHECKING:
    from types import TracebackType

    from idguard.config import ProviderSettings
    from idguard.models import ProviderMetadata
    from idguard.tracing import HTTPTracer

logger = logging.getLogger(__name__)


@runtime_checkable
class OAuth2Client(Protocol):
    """Operations consumed from an OAuth2 client."""

    def authorization_url(self, state: str) -> str:
        """Return the provider login URL carrying ``state``."""
        ...

    def exchange(self, code: str, *, timeout: float | None = None) -> Mapping[str, Any]:
        """Exchange an authorization code for a token response."""
        ...


class AuthlibOAuth2Client:
    """:class:`OAuth2Client` backed by ``authlib.integrations.httpx_client``.

    Args:
        client_id: OAuth2 client identifier.
        authorize_url: Provider authorization endpoint.
        token_url: Provider token endpoint.
        client_secret: Client secret, None for public clients.
        redirect_uri: Callback URL registered with the provider.
        scopes: Requested scopes.
        timeout: Default request timeout in seconds.
        verify: TLS verification flag or CA bundle path.
        tracer: Optional TRACE logger hooked into every request.
        session: Pre-built authlib session, mainly for tests.
    """

    def __init__(
        self,
        client_id: str,
        *,
        authorize_url: str,
        token_url: str,
        client_secret: str | None = None,
        redirect_uri: str | None = None,
        scopes: Sequence[str] = ("openid",),
        timeout: float = 10.0,
        verify: bool | str = True,
        tracer: HTTPTracer | None = None,
        session: _AuthlibSession | None = None,
    ) -> None:
        self._authorize_url = authorize_url
        self._token_url = token_url
        if session is None:
            session_kwargs: dict[str, Any] = {"timeout": timeout, "verify": verify}
            if tracer is not None:
                session_kwargs["event_hooks"] = tracer.event_hooks
            session = _AuthlibSession(
                client_id=client_id,
                client_secret=client_secret,
                scope=" ".join(scopes),
                redirect_uri=redirect_uri,
                **session_kwargs,
            )
        self._session = session

    @classmethod
    def from_settings(
        cls,
        settings: ProviderSettings,
        metadata: ProviderMetadata | None = None,
        *,
        tracer: HTTPTracer | None = None,
    ) -> AuthlibOAuth2Client:
        """Build a client, preferring explicit endpoints over discovered ones."""
        authorize_url = settings.authorize_url or (metadata.authorization_endpoint if metadata else None)
        token_url = settings.token_url or (metadata.token_endpoint if metadata else None)
        if not authorize_url or not token_url:
            raise ConfigurationError("authorize_url and token_url are required (configure them or an issuer)")
        return cls(
            settings.client_id,
            authorize_url=authorize_url,
            token_url=token_url,
            client_secret=settings.client_secret,
            redirect_uri=settings.redirect_uri,
            scopes=settings.scopes,
            timeout=settings.timeout,
            verify=settings.verify,
            tracer=tracer,
        )

    @property
    def session(self) -> _AuthlibSession:
        """Underlying authlib session."""
        return self._session

    def authorization_url(self, state: str) -> str:
        """Build the provider login URL with ``state`` embedded."""
        url, _ = self._session.create_authorization_url(self._authorize_url, state=state)
        return url

    def exchange(self, code: str, *, timeout: float | None = None) -> Mapping[str, Any]:
        """Exchange an authorization code at the token endpoint.

        Args:
            code: Authorization code from the callback.
            timeout: Per-call timeout in seconds, client default when None.

        Returns:
            Token response (``access_token``, ``id_token``, ...).

        Raises:
            TokenExchangeError: On provider error response or transport failure.
        """
        kwargs: dict[str, Any] = {} if timeout is None else {"timeout": timeout}
        try:
            token = self._session.fetch_token(self._token_url, code=code, **kwargs)
        except OAuthError as exc:
            reason = exc.description or exc.error or "provider rejected the code"
            raise TokenExchangeError(reason, error_code=exc.error) from exc
        except httpx.HTTPStatusError as exc:
            raise TokenExchangeError(f"HTTP {exc.response.status_code} from token endpoint") from exc
        except httpx.HTTPError as exc:
            raise TokenExchangeError(f"Network error: {exc}") from exc
        except ValueError as exc:
            raise TokenExchangeError("Token endpoint returned invalid JSON") from exc

        logger.debug("Token exchange succeeded (fields: %s)", sorted(token))
        return dict(token)

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self._session.close()

    def __enter__(self) -> AuthlibOAuth2Client:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


__all__ = [
    "AuthlibOAuth2Client",
    "OAuth2Client",
]
