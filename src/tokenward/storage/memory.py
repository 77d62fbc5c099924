"""In-memory credential store.

Suitable for tests and short-lived processes. Nothing survives the process,
so cross-process refresh coordination is meaningless with this backend.
"""

from __future__ import annotations

import threading
from typing import Optional

from tokenward.models import Session, Token
from tokenward.storage.base import CredentialStore


class MemoryStore(CredentialStore):
    """Two dictionaries guarded by one re-entrant lock.

    Example::

        store = MemoryStore()
        store.save_token("github.com:me", Token(access_token="abc"))
        assert store.get_token("github.com:me").access_token == "abc"
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._sessions: dict[str, Session] = {}
        self._tokens: dict[str, Token] = {}

    @property
    def name(self) -> str:
        return "memory"

    def save_session(self, state: str, session: Session) -> None:
        with self._lock:
            self._sessions[state] = session.model_copy()

    def get_session(self, state: str) -> Optional[Session]:
        with self._lock:
            session = self._sessions.get(state)
            return session.model_copy() if session is not None else None

    def delete_session(self, state: str) -> None:
        with self._lock:
            self._sessions.pop(state, None)

    def save_token(self, key: str, token: Token) -> None:
        with self._lock:
            self._tokens[key] = token.model_copy()

    def get_token(self, key: str) -> Optional[Token]:
        with self._lock:
            token = self._tokens.get(key)
            return token.model_copy() if token is not None else None

    def delete_token(self, key: str) -> None:
        with self._lock:
            self._tokens.pop(key, None)

    def token_keys(self) -> list[str]:
        """Return the stored token keys, sorted."""
        with self._lock:
            return sorted(self._tokens)
