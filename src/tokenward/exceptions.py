"""Exception hierarchy for tokenward.

All exceptions inherit from :class:`TokenwardError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`tokenward.exit_codes`.
The top-level error handler in :func:`tokenward.app.main` catches
``TokenwardError`` and exits with the appropriate code.

Only two server-reported conditions are ever recovered locally
(``authorization_pending`` and ``slow_down``, inside the device poller).
Everything else below propagates to the caller unchanged.

Subclass hierarchy::

    TokenwardError (exit 1)
    +-- ConfigError            (exit 1)
    +-- AuthError              (exit 3)
    |   +-- OAuthServerError   -- server-reported ``error`` / ``error_description``
    |   |   +-- AuthorizationDenied
    |   |   +-- DeviceCodeExpired
    |   |   +-- InvalidGrant
    |   |   +-- InvalidClient
    |   +-- InvalidStateError
    |   +-- MissingFieldError
    |   +-- NoRefreshTokenError
    |   +-- InvalidResponseError
    |   +-- CallbackTimeoutError
    +-- TokenNotFoundError     (exit 4)
    +-- TransportError         (exit 6)
    +-- StorageError           (exit 8)
"""

from __future__ import annotations

from typing import Optional

from tokenward.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_NOT_FOUND,
    EXIT_STORAGE_ERROR,
)


class TokenwardError(Exception):
    """Base exception for all tokenward errors.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigError(TokenwardError):
    """Raised for configuration problems (missing providers, invalid JSON, bad credential sources)."""

    exit_code = EXIT_GENERIC_FAILURE


class AuthError(TokenwardError):
    """Raised when an authorization, exchange or refresh step fails."""

    exit_code = EXIT_AUTH_FAILURE


class OAuthServerError(AuthError):
    """The authorization server answered with an OAuth ``error`` response.

    The server's error code and description are kept verbatim so callers
    can branch on :attr:`error` without parsing the message.

    Args:
        error: The ``error`` code, e.g. ``"invalid_grant"``.
        description: The optional ``error_description`` text.
    """

    def __init__(self, error: str, description: Optional[str] = None):
        self.error = error
        self.description = description
        message = f"OAuth error: {error}"
        if description:
            message += f" ({description})"
        super().__init__(message)

    @classmethod
    def from_response(cls, error: str, description: Optional[str] = None) -> OAuthServerError:
        """Build the most specific subclass for a server ``error`` code."""
        subclass = _ERROR_CODE_CLASSES.get(error, cls)
        return subclass(error, description)


class AuthorizationDenied(OAuthServerError):
    """The resource owner declined the request (``access_denied``)."""

    def __init__(self, error: str = "access_denied", description: Optional[str] = None):
        super().__init__(error, description)


class DeviceCodeExpired(OAuthServerError):
    """The device code expired before the user approved it."""

    def __init__(self, error: str = "expired_token", description: Optional[str] = None):
        super().__init__(error, description or "device code expired")


class InvalidGrant(OAuthServerError):
    """The code or refresh token was rejected (``invalid_grant``)."""


class InvalidClient(OAuthServerError):
    """Client authentication failed (``invalid_client``)."""


_ERROR_CODE_CLASSES: dict[str, type[OAuthServerError]] = {
    "access_denied": AuthorizationDenied,
    "expired_token": DeviceCodeExpired,
    "invalid_grant": InvalidGrant,
    "invalid_client": InvalidClient,
}


class InvalidStateError(AuthError):
    """No pending session matches the ``state`` returned by the redirect."""

    def __init__(self, message: str = "Invalid state parameter"):
        super().__init__(message)


class MissingFieldError(AuthError):
    """A required field was absent from a callback or server response."""

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Missing required field: {field}")


class NoRefreshTokenError(AuthError):
    """A refresh was needed but the stored token carries no refresh token."""

    def __init__(self, message: str = "No refresh token available"):
        super().__init__(message)


class InvalidResponseError(AuthError):
    """The server response could not be interpreted."""


class CallbackTimeoutError(AuthError):
    """The authorization redirect never reached the local listener."""

    def __init__(self, message: str = "Callback not received in time"):
        super().__init__(message)


class TokenNotFoundError(TokenwardError):
    """No token is stored under the requested key."""

    exit_code = EXIT_NOT_FOUND

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"No token stored for '{key}'")


class TransportError(TokenwardError):
    """Raised on network-level failures (timeout, DNS resolution, connection refused)."""

    exit_code = EXIT_CONNECTION_ERROR


class StorageError(TokenwardError):
    """Raised when the credential store or a lock file fails.

    The message is whatever the backing store reported; callers should not
    parse it.
    """

    exit_code = EXIT_STORAGE_ERROR
