"""Configuration loading for idguard.

Configuration is read from YAML and deep-merged over :data:`DEFAULT_CONFIG`.
The file is looked up in this order:

- the ``path`` argument,
- the ``IDGUARD_CONFIG`` environment variable,
- ``idguard.conf.yml`` in the current directory.

A missing file is not an error: defaults are returned. String values may
reference environment variables as ``${VAR}`` or ``${VAR:-default}``, which
keeps client secrets and state passphrases out of the file::

    provider:
      issuer: https://sso.example.com/realms/main
      client_id: console
      client_secret: ${IDGUARD_CLIENT_SECRET}
      redirect_uri: https://console.example.com/oauth/callback
    state:
      passphrase: ${IDGUARD_STATE_PASSPHRASE}
      salt: ${IDGUARD_STATE_SALT}
"""

from __future__ import annotations

import copy
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from box import Box

from idguard.errors import ConfigurationError
from idguard.state import DEFAULT_MAX_AGE, DEFAULT_STATE_LENGTH, StateGuard, StateKey

log = logging.getLogger(__name__)

CONFIG_ENV_VAR = "IDGUARD_CONFIG"
DEFAULT_CONFIG_FILENAME = "idguard.conf.yml"

DEFAULT_CONFIG: dict[str, Any] = {
    "provider": {
        "issuer": None,
        "client_id": None,
        "client_secret": None,
        "redirect_uri": "http://127.0.0.1:8400/callback",
        "scopes": ["openid", "profile", "email"],
        "authorize_url": None,
        "token_url": None,
        "jwks_uri": None,
    },
    "state": {
        "length": DEFAULT_STATE_LENGTH,
        "max_age": DEFAULT_MAX_AGE,
        "secret": None,
        "passphrase": None,
        "salt": None,
    },
    "http": {
        "timeout": 10.0,
        "verify": True,
    },
    "verifier": {
        "leeway": 60,
        "jwks_ttl": 3600,
        "algorithms": ["RS256"],
    },
    "trace": {
        "enabled": False,
        "pretty": True,
        "max_body_length": 2000,
    },
}

# Hard limits, values outside are clamped
_STATE_LENGTH_MIN = 16
_STATE_LENGTH_MAX = 512
_TRACE_MAX_BODY_HARD_LIMIT = 100_000

_ENV_VAR_PATTERN = re.compile(r"\$\{([a-zA-Z_][a-zA-Z0-9_]*)(?::-([^}]*))?\}")


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge ``override`` into a copy of ``base``, recursing into dicts.

    Examples:
        >>> deep_merge({"a": {"b": 1, "c": 2}}, {"a": {"c": 3}})
        {'a': {'b': 1, 'c': 3}}
    """
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _expand_env_vars(value: str, source: str | None = None) -> str:
    """Expand ``${VAR}`` and ``${VAR:-default}`` references in a string.

    Raises:
        ConfigurationError: If a required variable is not set.

    Examples:
        >>> os.environ["IDGUARD_DOCTEST"] = "hello"
        >>> _expand_env_vars("${IDGUARD_DOCTEST} world")
        'hello world'
        >>> _expand_env_vars("${IDGUARD_MISSING:-fallback}")
        'fallback'
    """

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1)
        default_value = match.group(2)

        env_value = os.environ.get(var_name)
        if env_value is not None:
            return env_value
        if default_value is not None:
            return default_value

        where = f" (required by {source})" if source else ""
        raise ConfigurationError(
            f"Environment variable '{var_name}' is not set{where}",
            details={"var_name": var_name, "source": source},
        )

    return _ENV_VAR_PATTERN.sub(replacer, value)


def _expand_env_vars_recursive(data: Any, source: str | None = None) -> Any:
    if isinstance(data, dict):
        return {k: _expand_env_vars_recursive(v, source) for k, v in data.items()}
    if isinstance(data, list):
        return [_expand_env_vars_recursive(item, source) for item in data]
    if isinstance(data, str):
        return _expand_env_vars(data, source)
    return data


def _resolve_config_path(path: str | Path | None) -> Path | None:
    if path is not None:
        return Path(path)
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    default = Path.cwd() / DEFAULT_CONFIG_FILENAME
    return default if default.is_file() else None


def load_config(path: str | Path | None = None) -> Box:
    """Load idguard configuration.

    Args:
        path: Explicit YAML file. When None, ``$IDGUARD_CONFIG`` then
            ``./idguard.conf.yml`` are tried.

    Returns:
        Merged configuration as a Box.

    Raises:
        ConfigurationError: If an explicit file is missing, is not valid
            YAML, or references an unset environment variable.
    """
    config_path = _resolve_config_path(path)
    if config_path is None:
        log.debug("No configuration file found, using defaults")
        return Box(copy.deepcopy(DEFAULT_CONFIG))

    if not config_path.is_file():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigurationError(f"Configuration root must be a mapping in {config_path}")

    data = _expand_env_vars_recursive(raw, str(config_path))
    log.debug("Loaded configuration from %s", config_path)
    return Box(deep_merge(DEFAULT_CONFIG, data))


def _as_box(config: dict[str, Any] | Box | None) -> Box:
    if config is None:
        return load_config()
    if isinstance(config, Box):
        return config
    return Box(deep_merge(DEFAULT_CONFIG, config))


@dataclass(slots=True)
class ProviderSettings:
    """Validated settings for one identity provider.

    Either ``issuer`` (discovery) or both ``authorize_url`` and ``token_url``
    (manual mode) must be set. In manual mode ``jwks_uri`` is needed to
    verify ID tokens.
    """

    client_id: str
    client_secret: str | None = None
    issuer: str | None = None
    redirect_uri: str = "http://127.0.0.1:8400/callback"
    scopes: list[str] = field(default_factory=lambda: ["openid"])
    authorize_url: str | None = None
    token_url: str | None = None
    jwks_uri: str | None = None
    timeout: float = 10.0
    verify: bool | str = True

    def __post_init__(self) -> None:
        """Validate required fields and make sure ``openid`` is requested."""
        if not self.client_id:
            raise ConfigurationError("provider.client_id is required")
        if not self.issuer and not (self.authorize_url and self.token_url):
            raise ConfigurationError(
                "Either 'issuer' (discovery) or both 'authorize_url' and 'token_url' must be configured"
            )
        if "openid" not in self.scopes:
            self.scopes = ["openid", *self.scopes]

    @property
    def needs_discovery(self) -> bool:
        """Whether endpoints must be fetched from the issuer."""
        return not (self.authorize_url and self.token_url and self.jwks_uri)


def build_provider_settings(config: dict[str, Any] | Box | None = None) -> ProviderSettings:
    """Build :class:`ProviderSettings` from configuration.

    Raises:
        ConfigurationError: If the provider section is incomplete.
    """
    cfg = _as_box(config)
    provider = cfg.provider
    scopes = provider.get("scopes") or ["openid"]
    if isinstance(scopes, str):
        scopes = scopes.replace(",", " ").split()
    return ProviderSettings(
        client_id=provider.get("client_id") or "",
        client_secret=provider.get("client_secret"),
        issuer=provider.get("issuer"),
        redirect_uri=provider.get("redirect_uri") or DEFAULT_CONFIG["provider"]["redirect_uri"],
        scopes=list(scopes),
        authorize_url=provider.get("authorize_url"),
        token_url=provider.get("token_url"),
        jwks_uri=provider.get("jwks_uri"),
        timeout=float(cfg.http.get("timeout", 10.0)),
        verify=cfg.http.get("verify", True),
    )


def build_state_key(config: dict[str, Any] | Box | None = None) -> StateKey:
    """Pick the state key source: raw secret, then passphrase + salt, then random.

    A random key only works for a single process; a warning is logged.
    """
    state = _as_box(config).state
    if state.get("secret"):
        return StateKey.from_secret(state.secret)
    if state.get("passphrase") or state.get("salt"):
        return StateKey.from_passphrase(state.get("passphrase") or "", state.get("salt") or "")
    log.warning("No state secret or passphrase configured, using a random per-process key")
    return StateKey.generate()


def build_state_guard(config: dict[str, Any] | Box | None = None, *, key: StateKey | None = None) -> StateGuard:
    """Build a :class:`StateGuard` from the ``state`` section."""
    cfg = _as_box(config)
    length = int(cfg.state.get("length", DEFAULT_STATE_LENGTH))
    clamped = max(_STATE_LENGTH_MIN, min(length, _STATE_LENGTH_MAX))
    if clamped != length:
        log.warning("state.length %d out of range, using %d", length, clamped)
    return StateGuard(
        key or build_state_key(cfg),
        default_length=clamped,
        max_age=int(cfg.state.get("max_age", DEFAULT_MAX_AGE)),
    )


def get_trace_config(config: dict[str, Any] | Box | None = None) -> tuple[bool, bool, int]:
    """Return ``(enabled, pretty, max_body_length)`` for HTTP tracing."""
    trace = _as_box(config).get("trace") or {}
    defaults = DEFAULT_CONFIG["trace"]
    max_body = int(trace.get("max_body_length", defaults["max_body_length"]))
    return (
        bool(trace.get("enabled", defaults["enabled"])),
        bool(trace.get("pretty", defaults["pretty"])),
        max(0, min(max_body, _TRACE_MAX_BODY_HARD_LIMIT)),
    )


__all__ = [
    "CONFIG_ENV_VAR",
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_FILENAME",
    "ProviderSettings",
    "build_provider_settings",
    "build_state_guard",
    "build_state_key",
    "deep_merge",
    "get_trace_config",
    "load_config",
]
