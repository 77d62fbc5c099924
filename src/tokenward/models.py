"""Canonical Pydantic models shared across all tokenward modules.

This is the single source of truth for data shapes in the project. The
models fall into two groups:

**Flow and credential models** -- created and consumed by the token engine:
    :class:`PkceChallenge`, :class:`Session`, :class:`Token`,
    :class:`DeviceAuthorization`, :class:`CallbackResult`, and
    :class:`AuthFlowResult`.

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`OAuthConfig`, :class:`ProviderProfile`, and :class:`GlobalConfig`.

Timestamps are integer epoch seconds so that tokens written by one process
compare identically when read by another.
"""

from __future__ import annotations

import time
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from tokenward.exceptions import InvalidResponseError, MissingFieldError


def _now() -> int:
    return int(time.time())


# --- Flow and credential models ---


class PkceChallenge(BaseModel):
    """A PKCE verifier/challenge pair for a single authorization attempt.

    Produced by :func:`tokenward.pkce.generate_pkce` and discarded once the
    authorization code has been exchanged.
    """

    model_config = ConfigDict(frozen=True)

    verifier: str = Field(description="URL-safe base64 of 32 random bytes, no padding")
    challenge: str = Field(description="URL-safe base64 SHA-256 of the verifier, no padding")
    method: str = Field(default="S256", description="Always 'S256'")


class Session(BaseModel):
    """Pending authorization attempt, keyed by its ``state`` value.

    Saved when the authorization URL is built and deleted by the single
    successful code exchange that consumes it.
    """

    state: str
    code_verifier: str
    created_at: int = Field(default_factory=_now)
    domain: Optional[str] = Field(
        default=None, description="Namespace hint used by file-backed stores"
    )
    redirect_uri: Optional[str] = Field(
        default=None, description="Redirect URI sent in the authorization request"
    )


class Token(BaseModel):
    """An OAuth bearer credential.

    ``expires_at`` is computed once when the token is issued or refreshed and
    is the only field consulted by :meth:`is_expired`. A token without
    ``expires_at`` never expires.
    """

    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "Bearer"
    expires_in: Optional[int] = None
    expires_at: Optional[int] = None
    scope: Optional[str] = None

    def is_expired(self, now: Optional[float] = None) -> bool:
        """Return ``True`` once the current time has reached ``expires_at``."""
        if self.expires_at is None:
            return False
        current = time.time() if now is None else now
        return current >= self.expires_at

    @classmethod
    def from_response(cls, data: dict[str, Any], now: Optional[int] = None) -> Token:
        """Build a token from a token-endpoint JSON body.

        ``expires_at`` is set to ``now + expires_in`` when the server sent a
        lifetime and left unset otherwise.

        Raises:
            MissingFieldError: If ``access_token`` is absent.
            InvalidResponseError: If a field has an unusable value, such as
                a non-numeric ``expires_in``.
        """
        issued = _now() if now is None else now
        if not data.get("access_token"):
            raise MissingFieldError("access_token")
        expires_in = data.get("expires_in")
        try:
            if expires_in is not None:
                expires_in = int(expires_in)
            return cls(
                access_token=data["access_token"],
                refresh_token=data.get("refresh_token"),
                token_type=data.get("token_type") or "Bearer",
                expires_in=expires_in,
                expires_at=issued + expires_in if expires_in is not None else None,
                scope=data.get("scope"),
            )
        except (TypeError, ValueError) as exc:
            # pydantic.ValidationError is a ValueError.
            raise InvalidResponseError(f"Malformed token response: {exc}") from exc


class DeviceAuthorization(BaseModel):
    """Device authorization response (:rfc:`8628` section 3.2)."""

    device_code: str
    user_code: str
    verification_uri: str
    verification_uri_complete: Optional[str] = None
    expires_in: int
    interval: int = 5


class CallbackResult(BaseModel):
    """The ``code`` and ``state`` captured by the redirect listener."""

    code: str
    state: str


class AuthFlowResult(BaseModel):
    """Authorization URL and the ``state`` value its session is stored under."""

    url: str
    state: str


# --- Configuration models ---


class OAuthConfig(BaseModel):
    """Endpoints and client registration for one authorization server.

    Presets for well-known providers are available as class methods::

        OAuthConfig.github("my-client-id", "repo user")
    """

    client_id: str
    authorization_endpoint: str
    token_endpoint: str
    redirect_uri: str = "http://127.0.0.1:8080/callback"
    scope: Optional[str] = None
    device_authorization_endpoint: Optional[str] = None
    client_secret: Optional[str] = Field(
        default=None, description="Only for confidential clients; PKCE clients omit it"
    )

    @classmethod
    def github(cls, client_id: str, scope: Optional[str] = None) -> OAuthConfig:
        return cls(
            client_id=client_id,
            authorization_endpoint="https://github.com/login/oauth/authorize",
            token_endpoint="https://github.com/login/oauth/access_token",
            scope=scope,
            device_authorization_endpoint="https://github.com/login/device/code",
        )

    @classmethod
    def google(cls, client_id: str, scope: Optional[str] = None) -> OAuthConfig:
        return cls(
            client_id=client_id,
            authorization_endpoint="https://accounts.google.com/o/oauth2/v2/auth",
            token_endpoint="https://oauth2.googleapis.com/token",
            scope=scope,
            device_authorization_endpoint="https://oauth2.googleapis.com/device/code",
        )

    @classmethod
    def microsoft(
        cls, client_id: str, tenant: str = "common", scope: Optional[str] = None
    ) -> OAuthConfig:
        base = f"https://login.microsoftonline.com/{tenant}/oauth2/v2.0"
        return cls(
            client_id=client_id,
            authorization_endpoint=f"{base}/authorize",
            token_endpoint=f"{base}/token",
            scope=scope,
            device_authorization_endpoint=f"{base}/devicecode",
        )

    @classmethod
    def gitlab(
        cls, client_id: str, scope: Optional[str] = None, base_url: Optional[str] = None
    ) -> OAuthConfig:
        # GitLab has no device authorization endpoint.
        base = (base_url or "https://gitlab.com").rstrip("/")
        return cls(
            client_id=client_id,
            authorization_endpoint=f"{base}/oauth/authorize",
            token_endpoint=f"{base}/oauth/token",
            scope=scope,
        )

    @classmethod
    def tuist(
        cls, client_id: str, scope: Optional[str] = None, base_url: Optional[str] = None
    ) -> OAuthConfig:
        base = (base_url or "https://cloud.tuist.io").rstrip("/")
        return cls(
            client_id=client_id,
            authorization_endpoint=f"{base}/oauth/authorize",
            token_endpoint=f"{base}/oauth/token",
            scope=scope,
            device_authorization_endpoint=f"{base}/oauth/device/code",
        )


PRESETS = ("github", "google", "microsoft", "gitlab", "tuist")
"""Names accepted by :func:`build_preset`."""


def build_preset(
    name: str,
    client_id: str,
    scope: Optional[str] = None,
    base_url: Optional[str] = None,
    tenant: str = "common",
) -> OAuthConfig:
    """Return the :class:`OAuthConfig` preset called *name*.

    Raises:
        ValueError: If *name* is not one of :data:`PRESETS`.
    """
    if name == "github":
        return OAuthConfig.github(client_id, scope)
    if name == "google":
        return OAuthConfig.google(client_id, scope)
    if name == "microsoft":
        return OAuthConfig.microsoft(client_id, tenant, scope)
    if name == "gitlab":
        return OAuthConfig.gitlab(client_id, scope, base_url)
    if name == "tuist":
        return OAuthConfig.tuist(client_id, scope, base_url)
    raise ValueError(f"Unknown preset '{name}'. Available: {', '.join(PRESETS)}")


class ProviderProfile(BaseModel):
    """A named authorization server configuration stored on disk.

    ``client_id_source`` and ``client_secret_source`` are credential source
    descriptors resolved by :func:`tokenward.config.resolve_credential`, so
    secrets never have to live in the profile file itself.

    Example::

        ProviderProfile(
            name="github",
            oauth=OAuthConfig.github("placeholder"),
            client_id_source="env:GITHUB_CLIENT_ID",
        )
    """

    model_config = ConfigDict(extra="allow")

    name: str = Field(description="Unique provider name (also the file name)")
    oauth: OAuthConfig
    client_id_source: Optional[str] = Field(
        default=None, description="Where to read the client ID (env:, file:, literal:, prompt)"
    )
    client_secret_source: Optional[str] = Field(
        default=None, description="Where to read the client secret, if any"
    )
    storage: str = Field(default="file", description="Token store backend: file, keyring or memory")
    refresh_threshold: Optional[float] = Field(
        default=None, description="Fraction of lifetime after which tokens are refreshed early"
    )


class GlobalConfig(BaseModel):
    """User-wide defaults stored in ``config.json``."""

    default_provider: Optional[str] = None
    callback_timeout: int = Field(default=120, description="Seconds to wait for the redirect")
    refresh_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    cross_process_locking: bool = Field(
        default=True, description="Coordinate refreshes across processes with lock files"
    )
