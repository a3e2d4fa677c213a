"""TRACE level HTTP logging for httpx clients.

Attach :class:`HTTPTracer` hooks to an ``httpx.Client`` to log every request
and response exchanged with the identity provider. Credentials and tokens are
redacted before anything is written.
"""

from __future__ import annotations

import json
import logging
import re
from typing import TYPE_CHECKING, Any

from idguard.logging import TRACE_LEVEL

if TYPE_CHECKING:
    import httpx

REDACTED = "***REDACTED***"
SENSITIVE_FIELDS = frozenset(
    {
        "access_token",
        "client_secret",
        "code",
        "code_verifier",
        "id_token",
        "password",
        "refresh_token",
    }
)
SENSITIVE_HEADERS = frozenset({"authorization", "cookie", "set-cookie"})

_FORM_FIELD_PATTERN = re.compile(r"(?P<key>[^&=]+)=(?P<value>[^&]*)")


class HTTPTracer:
    """httpx event hooks logging traffic at TRACE level.

    Args:
        logger: Logger to write to. Nothing is logged unless it is enabled
            for TRACE.
        pretty: Indent JSON bodies.
        max_body_length: Truncate bodies beyond this many characters.
    """

    def __init__(
        self,
        logger: logging.Logger,
        *,
        pretty: bool = True,
        max_body_length: int = 2000,
    ) -> None:
        self._logger = logger
        self._pretty = pretty
        self._max_body_length = max_body_length

    @property
    def event_hooks(self) -> dict[str, list[Any]]:
        """Hooks dict suitable for ``httpx.Client(event_hooks=...)``."""
        return {"request": [self.on_request], "response": [self.on_response]}

    def on_request(self, request: httpx.Request) -> None:
        """Log an outgoing request."""
        if not self._logger.isEnabledFor(TRACE_LEVEL):
            return

        headers = {k: (REDACTED if k.lower() in SENSITIVE_HEADERS else v) for k, v in dict(request.headers).items()}
        self._logger.log(TRACE_LEVEL, "[HTTP] --> %s %s headers=%s", request.method, request.url, headers)

        if not request.content:
            return
        try:
            body = request.content.decode("utf-8")
        except UnicodeDecodeError:
            self._logger.log(TRACE_LEVEL, "[HTTP] --> body: <binary or unparseable, %d bytes>", len(request.content))
            return
        self._logger.log(TRACE_LEVEL, "[HTTP] --> body: %s", self._truncate(redact_form(body)))

    def on_response(self, response: httpx.Response) -> None:
        """Log an incoming response, reading its body first."""
        if not self._logger.isEnabledFor(TRACE_LEVEL):
            return

        request = response.request
        try:
            response.read()
            body = self._format_body(response.text)
        except Exception as exc:  # noqa: BLE001
            body = f"<unable to read body: {exc}>"

        self._logger.log(
            TRACE_LEVEL,
            "[HTTP] <-- %s %s status=%s body: %s",
            request.method,
            request.url,
            response.status_code,
            body,
        )

    def _format_body(self, text: str) -> str:
        try:
            data = json.loads(text)
        except ValueError:
            return self._truncate(text)
        data = redact_mapping(data)
        indent = 2 if self._pretty else None
        return self._truncate(json.dumps(data, indent=indent, ensure_ascii=False))

    def _truncate(self, text: str) -> str:
        if len(text) <= self._max_body_length:
            return text
        return f"{text[: self._max_body_length]}... [truncated, {len(text)} chars total]"


def redact_form(body: str) -> str:
    """Redact sensitive fields in an url-encoded form body.

    Examples:
        >>> redact_form("grant_type=authorization_code&code=abc")
        'grant_type=authorization_code&code=***REDACTED***'
    """

    def _replace(match: re.Match[str]) -> str:
        key = match.group("key")
        if key in SENSITIVE_FIELDS:
            return f"{key}={REDACTED}"
        return match.group(0)

    return _FORM_FIELD_PATTERN.sub(_replace, body)


def redact_mapping(data: Any) -> Any:
    """Recursively redact sensitive keys in decoded JSON."""
    if isinstance(data, dict):
        return {k: (REDACTED if k in SENSITIVE_FIELDS else redact_mapping(v)) for k, v in data.items()}
    if isinstance(data, list):
        return [redact_mapping(item) for item in data]
    return data


__all__ = [
    "REDACTED",
    "HTTPTracer",
    "redact_form",
    "redact_mapping",
]
