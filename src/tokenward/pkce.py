"""PKCE (Proof Key for Code Exchange, :rfc:`7636`) challenge generation.

A verifier is 32 bytes from :mod:`secrets`, base64url-encoded without
padding (43 characters). The challenge is the base64url SHA-256 digest of
the verifier (also 43 characters) and the method is always ``S256``.
"""

from __future__ import annotations

import base64
import hashlib
import secrets

from tokenward.models import PkceChallenge

CODE_CHALLENGE_METHOD = "S256"


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def challenge_for(verifier: str) -> str:
    """Derive the S256 code challenge for *verifier*."""
    return _b64url(hashlib.sha256(verifier.encode("ascii")).digest())


def generate_pkce() -> PkceChallenge:
    """Generate a fresh verifier/challenge pair.

    Returns:
        A frozen :class:`~tokenward.models.PkceChallenge`.
    """
    verifier = _b64url(secrets.token_bytes(32))
    return PkceChallenge(
        verifier=verifier,
        challenge=challenge_for(verifier),
        method=CODE_CHALLENGE_METHOD,
    )
