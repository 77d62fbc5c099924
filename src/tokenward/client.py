"""Authorization orchestrator: PKCE code flow, device flow, exchange and refresh.

:class:`OAuthClient` ties the pieces together for one authorization server:

Code flow (:meth:`OAuthClient.authorize`)::

    CallbackServer  ->  generate_pkce()  ->  save Session(state)
        ->  authorization URL shown to the user / opened in a browser
        ->  wait_for_callback()  ->  exchange_code(code, state)

The session lookup in :meth:`OAuthClient.exchange_code` is the CSRF check:
a ``state`` with no stored session fails with
:class:`~tokenward.exceptions.InvalidStateError`. Sessions are deleted by
the one successful exchange that consumes them.

Device flow (:meth:`OAuthClient.authorize_device`) delegates to
:class:`~tokenward.device.DevicePoller` and returns the token *without*
saving it; the caller picks the key.
"""

from __future__ import annotations

import logging
import secrets
import threading
import webbrowser
from typing import Callable, Optional
from urllib.parse import urlencode

from tokenward.callback import CallbackServer
from tokenward.device import DevicePoller
from tokenward.exceptions import InvalidStateError
from tokenward.models import (
    AuthFlowResult,
    DeviceAuthorization,
    OAuthConfig,
    Session,
    Token,
)
from tokenward.output import show_authorization_url, show_device_code
from tokenward.pkce import CODE_CHALLENGE_METHOD, generate_pkce
from tokenward.storage.base import CredentialStore
from tokenward.transport import HttpTransport, raise_for_oauth_error

logger = logging.getLogger(__name__)

DEFAULT_CALLBACK_TIMEOUT = 120.0


def generate_state() -> str:
    """Return an unguessable ``state`` value: 16 random bytes, hex-encoded."""
    return secrets.token_hex(16)


def open_in_browser(url: str) -> None:
    """Open *url* in a daemon thread; failures are logged and ignored."""

    def _open() -> None:
        try:
            if not webbrowser.open(url):
                logger.debug("No browser available to open the authorization URL")
        except webbrowser.Error as exc:
            logger.debug("Could not open browser: %s", exc)

    threading.Thread(target=_open, daemon=True).start()


class OAuthClient:
    """OAuth 2.0 client for one authorization server and one credential store.

    Args:
        config: Endpoints and client registration.
        store: Where sessions and tokens are kept.
        transport: Form POST transport; defaults to :class:`HttpTransport`.

    Example::

        client = OAuthClient(OAuthConfig.github("Iv1.abc", "repo"), FileStore("my-app"))
        token = client.authorize_device()
        client.save_token("github.com:me", token)
    """

    def __init__(
        self,
        config: OAuthConfig,
        store: CredentialStore,
        transport: Optional[HttpTransport] = None,
    ) -> None:
        self.config = config
        self.store = store
        self.transport = transport or HttpTransport()

    # --- Authorization code flow ---

    def authorize(
        self,
        timeout: float = DEFAULT_CALLBACK_TIMEOUT,
        open_browser: bool = True,
        presenter: Optional[Callable[[str], None]] = None,
    ) -> Token:
        """Run the complete code flow with a loopback listener.

        Args:
            timeout: Seconds to wait for the redirect.
            open_browser: Try to open the URL in the default browser.
            presenter: Called with the authorization URL so it can be shown
                to the user. Defaults to
                :func:`~tokenward.output.show_authorization_url`.

        Returns:
            The issued token. It is not saved; call :meth:`save_token`.

        Raises:
            CallbackTimeoutError: The redirect did not arrive in time.
            OAuthServerError: The server reported an error.
            InvalidStateError: The redirect's ``state`` matched no session.
        """
        with CallbackServer() as server:
            flow = self.start_auth_flow(redirect_uri=server.redirect_uri)
            (presenter or show_authorization_url)(flow.url)
            if open_browser:
                open_in_browser(flow.url)
            result = server.wait_for_callback(timeout)
        return self.exchange_code(result.code, result.state)

    def start_auth_flow(
        self, redirect_uri: Optional[str] = None, domain: Optional[str] = None
    ) -> AuthFlowResult:
        """Create a PKCE session and return the authorization URL.

        For applications that receive the redirect themselves. Pass the
        returned ``state`` and the ``code`` from the redirect to
        :meth:`exchange_code`.

        Args:
            redirect_uri: Override for ``config.redirect_uri``; remembered in
                the session so the exchange sends the same value.
            domain: Optional namespace stored on the session.
        """
        pkce = generate_pkce()
        state = generate_state()
        self.store.save_session(
            state,
            Session(
                state=state,
                code_verifier=pkce.verifier,
                domain=domain,
                redirect_uri=redirect_uri,
            ),
        )
        url = self.build_authorization_url(state, pkce.challenge, redirect_uri)
        logger.debug("Started authorization flow against %s", self.config.authorization_endpoint)
        return AuthFlowResult(url=url, state=state)

    def build_authorization_url(
        self, state: str, code_challenge: str, redirect_uri: Optional[str] = None
    ) -> str:
        """Return the authorization endpoint URL with the PKCE query parameters.

        Values are percent-encoded leaving only RFC 3986 unreserved
        characters as-is; spaces become ``+``.
        """
        params = {
            "client_id": self.config.client_id,
            "redirect_uri": redirect_uri or self.config.redirect_uri,
            "response_type": "code",
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": CODE_CHALLENGE_METHOD,
        }
        if self.config.scope:
            params["scope"] = self.config.scope
        endpoint = self.config.authorization_endpoint
        separator = "&" if "?" in endpoint else "?"
        return f"{endpoint}{separator}{urlencode(params)}"

    def exchange_code(self, code: str, state: str) -> Token:
        """Exchange an authorization code for a token.

        Raises:
            InvalidStateError: No session is stored under *state*.
            OAuthServerError: The token endpoint returned an error; the
                session is kept so the failure can be inspected.
        """
        session = self.store.get_session(state)
        if session is None:
            raise InvalidStateError()

        data = {
            "client_id": self.config.client_id,
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": session.redirect_uri or self.config.redirect_uri,
            "code_verifier": session.code_verifier,
        }
        self._add_client_secret(data)

        response = self.transport.post_form(self.config.token_endpoint, data)
        raise_for_oauth_error(response, "Token exchange")
        token = Token.from_response(response.body)

        self.store.delete_session(state)
        logger.debug("Authorization code exchanged")
        return token

    # --- Device flow ---

    def device_poller(self) -> DevicePoller:
        """Return a fresh :class:`~tokenward.device.DevicePoller` for this client."""
        return DevicePoller(self.config, self.transport)

    def authorize_device(
        self,
        presenter: Optional[Callable[[DeviceAuthorization], None]] = None,
        open_browser: bool = False,
    ) -> Token:
        """Run the device flow to completion.

        Args:
            presenter: Called with the device authorization so the user code
                can be shown. Defaults to
                :func:`~tokenward.output.show_device_code`.
            open_browser: Also try to open the verification URI.

        Returns:
            The issued token. Nothing is saved.
        """
        poller = self.device_poller()
        device_auth = poller.request_device_code()
        (presenter or show_device_code)(device_auth)
        if open_browser:
            open_in_browser(device_auth.verification_uri_complete or device_auth.verification_uri)
        return poller.poll(device_auth)

    # --- Refresh ---

    def refresh_token(self, refresh_token: str) -> Token:
        """POST a ``refresh_token`` grant and return the new token.

        When the server does not rotate the refresh token, the one that was
        sent is carried over to the new token.

        Raises:
            OAuthServerError: Typically :class:`InvalidGrant` for a revoked
                or expired refresh token.
        """
        data = {
            "client_id": self.config.client_id,
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        }
        self._add_client_secret(data)

        response = self.transport.post_form(self.config.token_endpoint, data)
        raise_for_oauth_error(response, "Token refresh")
        token = Token.from_response(response.body)
        if token.refresh_token is None:
            token.refresh_token = refresh_token
        return token

    # --- Token storage ---

    def get_token(self, key: str) -> Optional[Token]:
        return self.store.get_token(key)

    def save_token(self, key: str, token: Token) -> None:
        self.store.save_token(key, token)

    def delete_token(self, key: str) -> None:
        self.store.delete_token(key)

    def _add_client_secret(self, data: dict[str, str]) -> None:
        if self.config.client_secret:
            data["client_secret"] = self.config.client_secret
