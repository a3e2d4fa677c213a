"""Tests for OpenID Connect discovery."""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock

import httpx
import pytest

from idguard.discovery import discover, discovery_url
from idguard.errors import DiscoveryError

from .conftest import ISSUER, JWKS_URI

DISCOVERY_URL = f"{ISSUER}/.well-known/openid-configuration"

# pylint: disable=redefined-outer-name


@pytest.fixture
def document() -> dict[str, Any]:
    """Minimal valid discovery document."""
    return {
        "issuer": ISSUER,
        "authorization_endpoint": f"{ISSUER}/protocol/openid-connect/auth",
        "token_endpoint": f"{ISSUER}/protocol/openid-connect/token",
        "jwks_uri": JWKS_URI,
        "userinfo_endpoint": f"{ISSUER}/protocol/openid-connect/userinfo",
        "scopes_supported": ["openid", "email"],
        "id_token_signing_alg_values_supported": ["RS256"],
    }


def _http_client(payload: Any = None, *, json_error: Exception | None = None) -> MagicMock:
    response = MagicMock()
    if json_error is not None:
        response.json.side_effect = json_error
    else:
        response.json.return_value = payload
    client = MagicMock()
    client.get.return_value = response
    return client


class TestDiscoveryURL:
    """Tests for discovery_url()."""

    @pytest.mark.parametrize("issuer", [ISSUER, f"{ISSUER}/", DISCOVERY_URL])
    def test_variants(self, issuer: str) -> None:
        """Issuers with or without trailing slash and full URLs resolve alike."""
        assert discovery_url(issuer) == DISCOVERY_URL


class TestDiscover:
    """Tests for discover()."""

    def test_success(self, document: dict[str, Any]) -> None:
        """Required and optional fields are parsed."""
        client = _http_client(document)

        metadata = discover(ISSUER, client)

        client.get.assert_called_once_with(DISCOVERY_URL)
        assert metadata.issuer == ISSUER
        assert metadata.jwks_uri == JWKS_URI
        assert metadata.userinfo_endpoint == document["userinfo_endpoint"]
        assert metadata.end_session_endpoint is None
        assert metadata.scopes_supported == ["openid", "email"]

    def test_timeout_forwarded(self, document: dict[str, Any]) -> None:
        """An explicit timeout reaches the HTTP client."""
        client = _http_client(document)

        discover(ISSUER, client, timeout=3.0)

        client.get.assert_called_once_with(DISCOVERY_URL, timeout=3.0)

    @pytest.mark.parametrize("field", ["issuer", "authorization_endpoint", "token_endpoint", "jwks_uri"])
    def test_missing_required_field(self, document: dict[str, Any], field: str) -> None:
        """Each required endpoint must be present."""
        del document[field]

        with pytest.raises(DiscoveryError, match=field) as exc_info:
            discover(ISSUER, _http_client(document))

        assert exc_info.value.issuer == ISSUER

    def test_not_an_object(self) -> None:
        """A JSON array is not a discovery document."""
        with pytest.raises(DiscoveryError, match="not a JSON object"):
            discover(ISSUER, _http_client(["issuer"]))

    def test_invalid_json(self) -> None:
        """Non-JSON bodies are reported."""
        with pytest.raises(DiscoveryError, match="not valid JSON"):
            discover(ISSUER, _http_client(json_error=ValueError("Expecting value")))

    def test_http_error(self) -> None:
        """HTTP errors report the status code."""
        response = MagicMock()
        response.status_code = 404
        client = MagicMock()
        client.get.return_value.raise_for_status.side_effect = httpx.HTTPStatusError(
            "Not Found", request=MagicMock(), response=response
        )

        with pytest.raises(DiscoveryError, match="HTTP 404") as exc_info:
            discover(ISSUER, client)

        assert exc_info.value.reason == "HTTP 404"

    def test_network_error(self) -> None:
        """Connection failures are wrapped."""
        client = MagicMock()
        client.get.side_effect = httpx.ConnectError("Connection refused")

        with pytest.raises(DiscoveryError, match="Network error"):
            discover(ISSUER, client)
