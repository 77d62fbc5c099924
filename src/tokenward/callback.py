"""Single-use loopback listener for the authorization redirect.

:class:`CallbackServer` binds ``127.0.0.1`` on an ephemeral port, exposes
the matching ``redirect_uri``, and blocks in :meth:`~CallbackServer.wait_for_callback`
until the authorization server redirects the browser to
``GET /callback?code=...&state=...``.

Wire contract:

- ``/callback`` with ``code`` and ``state`` -- ``200`` with a confirmation page.
- ``/callback`` with ``error`` -- ``400`` with an error page; the wait fails
  with the server-reported error and is not retried.
- ``/callback`` missing ``code`` or ``state`` -- ``400``; the wait fails with
  :class:`~tokenward.exceptions.MissingFieldError`.
- ``/callback`` without a query string, or an unparseable request -- ``400``
  and listening continues.
- Any other path (``/favicon.ico`` ...) -- ``404`` and listening continues.
- A connection idle for longer than the remaining wait (at most two
  seconds) is dropped and listening continues.
"""

from __future__ import annotations

import html
import logging
import time
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Optional, Union
from urllib.parse import parse_qsl, urlsplit

from tokenward.exceptions import (
    AuthError,
    CallbackTimeoutError,
    MissingFieldError,
    OAuthServerError,
)
from tokenward.models import CallbackResult

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/callback"
_POLL_SLICE = 0.5
# Longest a connection may sit idle before it is dropped.
_IDLE_TIMEOUT = 2.0

_PAGE = """<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>{title}</title>
    <style>
        body {{ font-family: -apple-system, "Segoe UI", Roboto, Arial, sans-serif;
               display: flex; justify-content: center; align-items: center;
               height: 100vh; margin: 0; background: {background}; }}
        .container {{ background: white; padding: 3rem; border-radius: 1rem;
                     text-align: center; max-width: 400px; }}
        .icon {{ font-size: 4rem; color: {color}; }}
    </style>
</head>
<body>
    <div class="container">
        <div class="icon">{icon}</div>
        <h1>{title}</h1>
        <p>{message}</p>
    </div>
</body>
</html>
"""

SUCCESS_PAGE = _PAGE.format(
    title="Authorization Successful",
    background="#667eea",
    color="#48bb78",
    icon="&#10003;",
    message=(
        "You have successfully authorized the application. "
        "You can close this window and return to your terminal."
    ),
)


def error_page(message: str, title: str = "Authorization Failed") -> str:
    """Render the HTML error page with *message* escaped."""
    return _PAGE.format(
        title=html.escape(title),
        background="#f5576c",
        color="#f56565",
        icon="&#10007;",
        message=html.escape(message),
    )


def parse_query_params(query: str) -> dict[str, str]:
    """Decode a query string into a flat dict.

    ``%XX`` sequences become bytes (decoded as UTF-8) and ``+`` becomes a
    space. Parameters without ``=`` map to an empty string. When a key
    repeats, the last value wins.

    Example::

        >>> parse_query_params("code=abc%20123&state=xyz%2F789")
        {'code': 'abc 123', 'state': 'xyz/789'}
    """
    return dict(parse_qsl(query, keep_blank_values=True))


Outcome = Union[CallbackResult, AuthError]


class _CallbackHTTPServer(HTTPServer):
    """HTTPServer that records the first terminal outcome of a request."""

    outcome: Optional[Outcome] = None
    connection_timeout: float = _IDLE_TIMEOUT


class _CallbackHandler(BaseHTTPRequestHandler):
    server: _CallbackHTTPServer

    def setup(self) -> None:
        # A pre-connected socket that never sends a request must not stall the wait.
        self.timeout = self.server.connection_timeout
        super().setup()

    def do_GET(self) -> None:
        parsed = urlsplit(self.path)
        if parsed.path != CALLBACK_PATH:
            self._respond(404, error_page("Not found", title="Not Found"))
            return
        if not parsed.query:
            self._respond(400, error_page("Missing query parameters"))
            return

        params = parse_query_params(parsed.query)

        error = params.get("error")
        if error:
            description = params.get("error_description") or None
            self._respond(400, error_page(f"Authorization failed: {error}"))
            self.server.outcome = OAuthServerError.from_response(error, description)
            return

        for field in ("code", "state"):
            if field not in params:
                self._respond(400, error_page(f"Missing required field: {field}"))
                self.server.outcome = MissingFieldError(field)
                return

        self._respond(200, SUCCESS_PAGE)
        self.server.outcome = CallbackResult(code=params["code"], state=params["state"])

    def send_error(self, code: int, message: Optional[str] = None, explain: Optional[str] = None) -> None:
        # Malformed request lines end up here; answer with our own page.
        self._respond(code, error_page(message or "Invalid request", title="Bad Request"))

    def _respond(self, status: int, body: str) -> None:
        payload = body.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(payload)))
        self.send_header("Connection", "close")
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(payload)

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("callback listener: " + format, *args)


class CallbackServer:
    """Loopback HTTP listener that captures one authorization redirect.

    Construct one per authorization attempt; after :meth:`wait_for_callback`
    returns or raises, the listener is closed and cannot be reused.

    Args:
        host: Interface to bind. Always a loopback address in practice.
        port: Port to bind; ``0`` picks a free ephemeral port.

    Example::

        with CallbackServer() as server:
            url = client.build_authorization_url(redirect_uri=server.redirect_uri)
            result = server.wait_for_callback(timeout=120)
    """

    def __init__(self, host: str = "127.0.0.1", port: int = 0) -> None:
        self._httpd = _CallbackHTTPServer((host, port), _CallbackHandler)
        self._host = host
        self._closed = False
        logger.debug("Callback listener bound to %s", self.redirect_uri)

    @property
    def port(self) -> int:
        return self._httpd.server_address[1]

    @property
    def redirect_uri(self) -> str:
        """The ``redirect_uri`` to register in the authorization request."""
        return f"http://{self._host}:{self.port}{CALLBACK_PATH}"

    def wait_for_callback(self, timeout: float) -> CallbackResult:
        """Block until a valid redirect arrives or *timeout* seconds pass.

        Irrelevant or malformed requests are answered with an error page
        and do not end the wait.

        Returns:
            The ``code`` and ``state`` from the redirect.

        Raises:
            OAuthServerError: The redirect carried an ``error`` parameter.
            MissingFieldError: ``code`` or ``state`` was absent.
            CallbackTimeoutError: Nothing valid arrived before the deadline.
            AuthError: The listener was already used.
        """
        if self._closed:
            raise AuthError("Callback listener already used; create a new one")

        deadline = time.monotonic() + timeout
        try:
            while self._httpd.outcome is None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    logger.debug("Callback wait timed out after %ss", timeout)
                    raise CallbackTimeoutError()
                self._httpd.timeout = min(remaining, _POLL_SLICE)
                self._httpd.connection_timeout = min(remaining, _IDLE_TIMEOUT)
                self._httpd.handle_request()
        finally:
            self.close()

        outcome = self._httpd.outcome
        if isinstance(outcome, AuthError):
            raise outcome
        logger.debug("Callback received")
        return outcome

    def close(self) -> None:
        """Release the listening socket. Safe to call more than once."""
        if not self._closed:
            self._closed = True
            self._httpd.server_close()

    def __enter__(self) -> CallbackServer:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
