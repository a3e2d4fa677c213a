"""Tests for idguard.errors module."""

import pytest

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


class TestAuthError:
    """Tests for AuthError base exception."""

    def test_message_only(self) -> None:
        """Create error with message only."""
        error = AuthError("Something went wrong")
        assert str(error) == "Something went wrong"
        assert error.message == "Something went wrong"
        assert error.details == {}

    def test_with_details(self) -> None:
        """Create error with message and details."""
        error = AuthError("Failed", details={"stage": "verified"})
        assert error.details == {"stage": "verified"}


class TestConfigurationError:
    """Tests for ConfigurationError."""

    def test_is_value_error(self) -> None:
        """ConfigurationError can be caught as ValueError."""
        with pytest.raises(ValueError):
            raise ConfigurationError("bad config")


class TestDiscoveryError:
    """Tests for DiscoveryError."""

    def test_basic_creation(self) -> None:
        """Create DiscoveryError with issuer and reason."""
        error = DiscoveryError("https://sso.example.com", "HTTP 404")
        assert "https://sso.example.com" in str(error)
        assert "HTTP 404" in str(error)
        assert error.issuer == "https://sso.example.com"
        assert error.reason == "HTTP 404"
        assert error.details == {"issuer": "https://sso.example.com", "reason": "HTTP 404"}


class TestStateErrors:
    """Tests for state token errors."""

    def test_expired_state(self) -> None:
        """ExpiredStateError reports age and window."""
        error = ExpiredStateError(650.4, 600)
        assert "650s" in str(error)
        assert "600s" in str(error)
        assert error.age == 650.4
        assert error.max_age == 600

    @pytest.mark.parametrize("cls", [MalformedStateError, InvalidStateError])
    def test_inherits_state_error(self, cls: type[StateError]) -> None:
        """Malformed and invalid states share StateError."""
        assert issubclass(cls, StateError)
        assert issubclass(cls, AuthError)

    def test_expired_is_invalid(self) -> None:
        """An expired state is an invalid state."""
        assert issubclass(ExpiredStateError, InvalidStateError)


class TestTokenErrors:
    """Tests for token errors."""

    def test_exchange_error(self) -> None:
        """TokenExchangeError keeps reason and OAuth2 error code."""
        error = TokenExchangeError("Code expired", error_code="invalid_grant")
        assert str(error) == "Token exchange failed: Code expired"
        assert error.reason == "Code expired"
        assert error.error_code == "invalid_grant"
        assert error.details["error_code"] == "invalid_grant"

    def test_validation_error(self) -> None:
        """TokenValidationError keeps the offending claim."""
        error = InvalidClaimsError("audience mismatch", claim="aud")
        assert str(error) == "Token validation failed: audience mismatch"
        assert error.claim == "aud"
        assert isinstance(error, TokenValidationError)

    @pytest.mark.parametrize(
        "cls",
        [TokenExchangeError, MissingIDTokenError, TokenValidationError, InvalidIDTokenError, InvalidClaimsError],
    )
    def test_inherits_token_error(self, cls: type[TokenError]) -> None:
        """Every token failure is a TokenError."""
        assert issubclass(cls, TokenError)

    def test_authentication_error_is_not_token_error(self) -> None:
        """State failures at the callback are reported separately."""
        assert not issubclass(AuthenticationError, TokenError)
        assert issubclass(AuthenticationError, AuthError)
