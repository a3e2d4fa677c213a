"""Command line interface for idguard.

Operator helpers around a configured provider::

    idguard login-url -c idguard.conf.yml
    idguard verify --code <code> --state <state>
    idguard state new --length 48
    idguard state check <token>

Exit codes: 0 (success), 1 (authentication or state check failed),
2 (configuration error or unreachable provider).
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any, NoReturn

import httpx
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from idguard import __version__
from idguard.config import build_state_guard, load_config
from idguard.errors import AuthError, StateError
from idguard.logging import init_logging
from idguard.provider import Provider

if TYPE_CHECKING:
    from idguard.models import Identity
    from idguard.state import StateGuard

console = Console()

app = typer.Typer(name="idguard", help="OAuth2 / OpenID Connect login helper.", no_args_is_help=True)
state_app = typer.Typer(help="Mint and check state tokens.", no_args_is_help=True)
app.add_typer(state_app, name="state")

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="YAML configuration file (default: $IDGUARD_CONFIG or ./idguard.conf.yml)."),
]


def exit_error(message: str, *, code: int = 2) -> NoReturn:
    """Print an error and exit.

    Args:
        message: Error message.
        code: Process exit code.
    """
    console.print(f"[red]Error:[/] {message}")
    raise typer.Exit(code=code)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"idguard {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", "-l", help="Log level (TRACE, DEBUG, INFO, ...)."),
    ] = None,
    version: Annotated[
        bool,
        typer.Option("--version", callback=_version_callback, is_eager=True, help="Show version and exit."),
    ] = False,
) -> None:
    """OAuth2 / OpenID Connect login helper."""
    if log_level is None:
        return
    try:
        init_logging(log_level)
    except ValueError as exc:
        exit_error(str(exc))


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────


def _load_provider(config: Path | None) -> Provider:
    try:
        return Provider.from_config(load_config(config))
    except AuthError as exc:
        exit_error(exc.message)


def _load_state_guard(config: Path | None) -> StateGuard:
    try:
        return build_state_guard(load_config(config))
    except AuthError as exc:
        exit_error(exc.message)


def _failure_exit_code(exc: AuthError) -> int:
    """Transport failures are system errors, everything else is an authentication failure."""
    return 2 if isinstance(exc.__cause__, httpx.HTTPError) else 1


def _identity_to_dict(identity: Identity) -> dict[str, Any]:
    return {
        "subject": identity.subject,
        "issuer": identity.issuer,
        "audience": identity.audience,
        "email": identity.email,
        "expires_at": identity.expires_at.isoformat(),
        "claims": identity.claims,
    }


def _render_identity(identity: Identity) -> None:
    table = Table(show_header=False, box=None)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Subject", identity.subject)
    table.add_row("Issuer", identity.issuer)
    table.add_row("Audience", ", ".join(identity.audience))
    table.add_row("Email", identity.email or "-")
    table.add_row("Expires", identity.expires_at.isoformat())
    console.print(Panel(table, title="Authenticated", style="green"))


# ─────────────────────────────────────────────────────────────────────────────
# Commands
# ─────────────────────────────────────────────────────────────────────────────


@app.command("login-url")
def login_url(config: ConfigOption = None) -> None:
    """Print a login URL carrying a fresh state token."""
    provider = _load_provider(config)
    try:
        url = provider.generate_login_url()
    except AuthError as exc:
        exit_error(exc.message)
    finally:
        provider.close()
    typer.echo(url)


@app.command()
def verify(
    code: Annotated[str, typer.Option("--code", help="Authorization code from the callback.")],
    state: Annotated[str, typer.Option("--state", help="State value from the callback.")],
    config: ConfigOption = None,
    timeout: Annotated[
        float | None,
        typer.Option("--timeout", help="Token exchange timeout in seconds."),
    ] = None,
    as_json: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON for automation.")] = False,
) -> None:
    """Verify a callback and print the authenticated identity."""
    provider = _load_provider(config)
    try:
        identity = provider.verify_identity(code, state, timeout=timeout)
    except AuthError as exc:
        exit_code = _failure_exit_code(exc)
        if as_json:
            typer.echo(json.dumps({"authenticated": False, "error": exc.message, "stage": exc.details.get("stage")}))
            raise typer.Exit(code=exit_code) from exc
        exit_error(f"{exc.message} (stage: {exc.details.get('stage', 'unknown')})", code=exit_code)
    finally:
        provider.close()

    if as_json:
        typer.echo(json.dumps({"authenticated": True, **_identity_to_dict(identity)}, default=str))
        return
    _render_identity(identity)


@state_app.command("new")
def state_new(
    config: ConfigOption = None,
    length: Annotated[
        int | None,
        typer.Option("--length", "-n", min=1, help="Random bytes in the nonce (default: state.length)."),
    ] = None,
) -> None:
    """Mint a state token with the configured key."""
    typer.echo(_load_state_guard(config).generate_state(length))


@state_app.command("check")
def state_check(
    token: Annotated[str, typer.Argument(help="State token to check.")],
    config: ConfigOption = None,
) -> None:
    """Check that a state token was minted with the configured key and is fresh."""
    guard = _load_state_guard(config)
    try:
        guard.verify_state(token)
    except StateError as exc:
        exit_error(exc.message, code=1)
    console.print("[green]State token is valid[/]")


__all__ = [
    "app",
]
