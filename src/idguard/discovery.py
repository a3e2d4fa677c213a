"""OpenID Connect discovery."""

from __future__ import annotations

import logging

import httpx

from idguard.errors import DiscoveryError
from idguard.models import ProviderMetadata

logger = logging.getLogger(__name__)

WELL_KNOWN_PATH = "/.well-known/openid-configuration"


def discovery_url(issuer_or_url: str) -> str:
    """Return the discovery document URL for an issuer.

    Examples:
        >>> discovery_url("https://sso.example.com/realms/main/")
        'https://sso.example.com/realms/main/.well-known/openid-configuration'
        >>> discovery_url("https://sso.example.com/.well-known/openid-configuration")
        'https://sso.example.com/.well-known/openid-configuration'
    """
    if issuer_or_url.rstrip("/").endswith(WELL_KNOWN_PATH):
        return issuer_or_url
    return f"{issuer_or_url.rstrip('/')}{WELL_KNOWN_PATH}"


def discover(issuer_or_url: str, http_client: httpx.Client, *, timeout: float | None = None) -> ProviderMetadata:
    """Fetch and parse the provider discovery document.

    Args:
        issuer_or_url: Issuer identifier or full discovery URL.
        http_client: Client used for the request.
        timeout: Request timeout in seconds, client default when None.

    Returns:
        Parsed provider metadata.

    Raises:
        DiscoveryError: If the document cannot be fetched or lacks required fields.
    """
    url = discovery_url(issuer_or_url)
    logger.debug("Fetching discovery document from %s", url)

    kwargs = {} if timeout is None else {"timeout": timeout}
    try:
        response = http_client.get(url, **kwargs)
        response.raise_for_status()
        document = response.json()
    except httpx.HTTPStatusError as exc:
        raise DiscoveryError(issuer_or_url, f"HTTP {exc.response.status_code}") from exc
    except httpx.HTTPError as exc:
        raise DiscoveryError(issuer_or_url, f"Network error: {exc}") from exc
    except ValueError as exc:
        raise DiscoveryError(issuer_or_url, "Response is not valid JSON") from exc

    if not isinstance(document, dict):
        raise DiscoveryError(issuer_or_url, "Discovery document is not a JSON object")

    try:
        metadata = ProviderMetadata.from_document(document)
    except KeyError as exc:
        raise DiscoveryError(issuer_or_url, f"Missing required field {exc.args[0]!r}") from exc

    logger.debug("Discovered issuer %s (token endpoint %s)", metadata.issuer, metadata.token_endpoint)
    return metadata


__all__ = [
    "WELL_KNOWN_PATH",
    "discover",
    "discovery_url",
]
