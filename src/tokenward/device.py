"""OAuth 2.0 Device Authorization Grant (:rfc:`8628`) poller.

For headless terminals (SSH, containers, CI) where no browser can reach a
loopback redirect. :class:`DevicePoller` walks this state machine::

    REQUESTING --> PENDING --> SUCCESS
         |            |------> DENIED   (access_denied)
         |            |------> EXPIRED  (expired_token, or local deadline)
         +------------+------> FATAL    (anything else, surfaced verbatim)

While ``PENDING`` it sleeps ``interval`` seconds between token requests.
``authorization_pending`` keeps polling unchanged; ``slow_down`` adds five
seconds to the interval, with no upper bound. The expiry deadline is
checked both before and after every sleep, so an interval inflated by
``slow_down`` cannot carry a poll past the deadline.
"""

from __future__ import annotations

import enum
import logging
import time
from typing import Callable, Optional

from pydantic import ValidationError

from tokenward.exceptions import (
    AuthError,
    DeviceCodeExpired,
    InvalidResponseError,
    MissingFieldError,
    OAuthServerError,
    TokenwardError,
)
from tokenward.models import DeviceAuthorization, OAuthConfig, Token
from tokenward.transport import HttpTransport, raise_for_oauth_error

logger = logging.getLogger(__name__)

DEVICE_CODE_GRANT = "urn:ietf:params:oauth:grant-type:device_code"
SLOW_DOWN_INCREMENT = 5


class DeviceState(str, enum.Enum):
    """Position of a :class:`DevicePoller` in the device flow."""

    REQUESTING = "requesting"
    PENDING = "pending"
    SUCCESS = "success"
    DENIED = "denied"
    EXPIRED = "expired"
    FATAL = "fatal"


class DevicePoller:
    """Runs one device-flow attempt against a single authorization server.

    Args:
        config: Endpoints and client registration. Must have
            ``device_authorization_endpoint`` set.
        transport: Form POST transport; defaults to :class:`HttpTransport`.
        sleep: Sleep function, replaceable in tests.
        clock: Monotonic clock used for the expiry deadline.

    Attributes:
        state: Current :class:`DeviceState`.
        interval: Current poll interval in seconds.
    """

    def __init__(
        self,
        config: OAuthConfig,
        transport: Optional[HttpTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._transport = transport or HttpTransport()
        self._sleep = sleep
        self._clock = clock
        self.state = DeviceState.REQUESTING
        self.interval = 5
        self.polls = 0

    def request_device_code(self) -> DeviceAuthorization:
        """POST ``client_id`` (and ``scope``) to the device authorization endpoint.

        Returns:
            The parsed :class:`~tokenward.models.DeviceAuthorization`. The
            poller moves to ``PENDING``.

        Raises:
            AuthError: No device endpoint is configured.
            OAuthServerError: The server answered with an OAuth error.
            MissingFieldError: ``device_code`` or ``user_code`` was absent.
        """
        endpoint = self._config.device_authorization_endpoint
        if not endpoint:
            self.state = DeviceState.FATAL
            raise AuthError("device_authorization_endpoint not configured")

        data: dict[str, str] = {"client_id": self._config.client_id}
        if self._config.scope:
            data["scope"] = self._config.scope

        try:
            response = self._transport.post_form(endpoint, data)
            raise_for_oauth_error(response, "Device authorization request")
            body = dict(response.body)
            # Google calls it verification_url.
            if "verification_uri" not in body and "verification_url" in body:
                body["verification_uri"] = body["verification_url"]
            for field in ("device_code", "user_code", "verification_uri", "expires_in"):
                if field not in body:
                    raise MissingFieldError(field)
            try:
                device_auth = DeviceAuthorization.model_validate(body)
            except ValidationError as exc:
                raise InvalidResponseError(f"Invalid device authorization response: {exc}") from exc
        except TokenwardError:
            self.state = DeviceState.FATAL
            raise

        self.state = DeviceState.PENDING
        self.interval = device_auth.interval
        logger.debug(
            "Device code issued (expires in %ss, interval %ss)",
            device_auth.expires_in,
            device_auth.interval,
        )
        return device_auth

    def poll(self, device_auth: DeviceAuthorization) -> Token:
        """Poll the token endpoint until the user approves, denies, or the code expires.

        Returns:
            The issued :class:`~tokenward.models.Token`. Nothing is persisted.

        Raises:
            AuthorizationDenied: The user declined (``DENIED``).
            DeviceCodeExpired: ``expired_token`` or the local deadline passed
                (``EXPIRED``).
            OAuthServerError: Any other server error, verbatim (``FATAL``).
            TransportError: Network failure (``FATAL``).
        """
        self.state = DeviceState.PENDING
        self.interval = device_auth.interval
        deadline = self._clock() + device_auth.expires_in

        data = {
            "client_id": self._config.client_id,
            "device_code": device_auth.device_code,
            "grant_type": DEVICE_CODE_GRANT,
        }

        while True:
            self._check_deadline(deadline)
            self._sleep(self.interval)
            self._check_deadline(deadline)

            self.polls += 1
            try:
                response = self._transport.post_form(self._config.token_endpoint, data)
            except TokenwardError:
                self.state = DeviceState.FATAL
                raise

            error = response.body.get("error")
            if response.is_success and not error:
                try:
                    token = Token.from_response(response.body)
                except TokenwardError:
                    self.state = DeviceState.FATAL
                    raise
                self.state = DeviceState.SUCCESS
                logger.debug("Device authorization approved after %d poll(s)", self.polls)
                return token

            if error == "authorization_pending":
                logger.debug("Authorization pending, polling again in %ss", self.interval)
                continue
            if error == "slow_down":
                self.interval += SLOW_DOWN_INCREMENT
                logger.debug("Server asked to slow down, interval now %ss", self.interval)
                continue

            self._fail(response.status_code, error, response.body.get("error_description"))

    def _check_deadline(self, deadline: float) -> None:
        if self._clock() >= deadline:
            self.state = DeviceState.EXPIRED
            logger.debug("Device code expired locally")
            raise DeviceCodeExpired()

    def _fail(self, status_code: int, error: Optional[str], description: Optional[str]) -> None:
        if not error:
            self.state = DeviceState.FATAL
            raise InvalidResponseError(f"Device token request failed with HTTP {status_code}")
        exc = OAuthServerError.from_response(error, description)
        if error == "access_denied":
            self.state = DeviceState.DENIED
        elif error == "expired_token":
            self.state = DeviceState.EXPIRED
        else:
            self.state = DeviceState.FATAL
        raise exc
