"""Form-encoded POST transport for the token and device endpoints.

Every outbound call the engine makes is a ``POST`` with an
``application/x-www-form-urlencoded`` body whose answer is JSON, so the
transport surface is a single method. Tests substitute
:class:`HttpTransport` with a fake, or patch ``tokenward.transport.httpx.post``.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import BaseModel, Field

from tokenward.exceptions import InvalidResponseError, OAuthServerError, TransportError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class FormResponse(BaseModel):
    """Status code and decoded JSON object of one endpoint reply."""

    status_code: int
    body: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300


class HttpTransport:
    """POSTs form bodies with :mod:`httpx` and decodes the JSON reply.

    Args:
        timeout: Per-request timeout in seconds.
        verify: TLS verification flag or CA bundle path, passed to httpx.
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, verify: bool | str = True) -> None:
        self.timeout = timeout
        self.verify = verify

    def post_form(self, url: str, data: dict[str, str]) -> FormResponse:
        """POST *data* to *url* and return the decoded reply.

        The status code is not interpreted here; callers decide whether a
        non-2xx reply is an OAuth error or something else.

        Raises:
            TransportError: On network-level failures (DNS, refused, timeout).
            InvalidResponseError: If the body is not a JSON object.
        """
        logger.debug("POST %s (fields: %s)", url, ", ".join(sorted(data)))
        try:
            response = httpx.post(
                url,
                data=data,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
                verify=self.verify,
            )
        except httpx.HTTPError as exc:
            raise TransportError(f"Request to {url} failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise InvalidResponseError(
                f"Non-JSON response from {url} (HTTP {response.status_code})"
            ) from exc
        if not isinstance(body, dict):
            raise InvalidResponseError(f"Unexpected JSON payload from {url}")

        logger.debug("HTTP %s from %s", response.status_code, url)
        return FormResponse(status_code=response.status_code, body=body)


def raise_for_oauth_error(response: FormResponse, context: str) -> None:
    """Raise if *response* carries an OAuth ``error`` or a non-2xx status.

    Some servers (GitHub among them) answer token requests with HTTP 200
    and an ``error`` field, so the body is checked even on success.

    Raises:
        OAuthServerError: The server-reported error code and description.
        InvalidResponseError: Non-2xx status without an ``error`` field.
    """
    error = response.body.get("error")
    if error:
        raise OAuthServerError.from_response(
            str(error), response.body.get("error_description")
        )
    if not response.is_success:
        raise InvalidResponseError(f"{context} failed with HTTP {response.status_code}")
