"""OS credential manager store.

Tokens go to the platform keychain through :mod:`keyring` (macOS Keychain,
Windows Credential Locker, the freedesktop Secret Service on Linux), one
entry per token::

    service:  tokenward-<app_name>
    account:  <token key>
    password: the token as JSON

Sessions only live for the length of one login and hold nothing the
keychain needs to protect for long, so they stay in a :class:`FileStore`.
"""

from __future__ import annotations

import logging
from typing import Optional

import keyring
from keyring.backend import KeyringBackend
from keyring.errors import KeyringError, PasswordDeleteError
from pydantic import ValidationError

from tokenward.config import APP_NAME
from tokenward.exceptions import StorageError
from tokenward.models import Session, Token
from tokenward.storage.base import CredentialStore
from tokenward.storage.file import FileStore

logger = logging.getLogger(__name__)


class KeyringStore(CredentialStore):
    """Tokens in the OS keychain, sessions in JSON files.

    Args:
        app_name: Application name; selects the keychain service and the
            data directory of the session store.
        session_store: Store for sessions. Defaults to ``FileStore(app_name)``.
        backend: Keyring backend to use instead of the one :mod:`keyring`
            selects for this platform.

    Raises:
        StorageError: If the session directory cannot be created.

    Example::

        store = KeyringStore("my-app")
        store.save_token("github.com:me", token)
        # -> keychain entry service="tokenward-my-app", account="github.com:me"
    """

    def __init__(
        self,
        app_name: str = APP_NAME,
        session_store: Optional[CredentialStore] = None,
        backend: Optional[KeyringBackend] = None,
    ) -> None:
        self.service = f"tokenward-{app_name}"
        self._sessions = session_store if session_store is not None else FileStore(app_name)
        self._backend = backend

    @property
    def name(self) -> str:
        return "keyring"

    def _keyring(self) -> KeyringBackend:
        return self._backend if self._backend is not None else keyring.get_keyring()

    # --- Sessions ---

    def save_session(self, state: str, session: Session) -> None:
        self._sessions.save_session(state, session)

    def get_session(self, state: str) -> Optional[Session]:
        return self._sessions.get_session(state)

    def delete_session(self, state: str) -> None:
        self._sessions.delete_session(state)

    # --- Tokens ---

    def save_token(self, key: str, token: Token) -> None:
        try:
            self._keyring().set_password(self.service, key, token.model_dump_json())
        except KeyringError as exc:
            raise StorageError(f"Failed to save token to keyring: {exc}") from exc
        logger.debug("Saved token for %s to keyring service %s", key, self.service)

    def get_token(self, key: str) -> Optional[Token]:
        try:
            payload = self._keyring().get_password(self.service, key)
        except KeyringError as exc:
            raise StorageError(f"Failed to read token from keyring: {exc}") from exc
        if payload is None:
            return None
        try:
            return Token.model_validate_json(payload)
        except ValidationError as exc:
            raise StorageError(f"Invalid token in keyring for '{key}': {exc}") from exc

    def delete_token(self, key: str) -> None:
        try:
            self._keyring().delete_password(self.service, key)
        except PasswordDeleteError:
            logger.debug("No keyring entry for %s to delete", key)
        except KeyringError as exc:
            raise StorageError(f"Failed to delete token from keyring: {exc}") from exc
