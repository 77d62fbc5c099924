"""Abstract credential store consumed by the token engine.

A store holds two independent collections:

- **Sessions** keyed by the random ``state`` value of a pending
  authorization attempt.
- **Tokens** keyed by an application-chosen string, conventionally
  ``"<domain>:<principal>"`` (e.g. ``"github.com:octocat"``).

Every implementation must be safe to call from several threads at once and
each individual ``save_*``/``delete_*`` must be atomic from the store's
point of view. Composite read-modify-write sequences are serialised by
:class:`~tokenward.refresher.TokenRefresher`, not by the store.

Failures of the backing medium are reported as
:class:`~tokenward.exceptions.StorageError`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from tokenward.models import Session, Token


class CredentialStore(ABC):
    """Capability interface for session and token persistence.

    Implementations: :class:`~tokenward.storage.memory.MemoryStore`,
    :class:`~tokenward.storage.file.FileStore` and
    :class:`~tokenward.storage.keyring.KeyringStore`. Embedding applications may
    provide their own (a database, a secrets service) by subclassing this.
    """

    @property
    def name(self) -> str:
        """Short backend identifier used in log and status output."""
        return type(self).__name__

    # --- Sessions ---

    @abstractmethod
    def save_session(self, state: str, session: Session) -> None:
        """Store *session* under *state*, replacing any existing entry."""
        ...

    @abstractmethod
    def get_session(self, state: str) -> Optional[Session]:
        """Return the session stored under *state*, or ``None``."""
        ...

    @abstractmethod
    def delete_session(self, state: str) -> None:
        """Remove the session stored under *state*. Missing entries are ignored."""
        ...

    # --- Tokens ---

    @abstractmethod
    def save_token(self, key: str, token: Token) -> None:
        """Store *token* under *key*, replacing any existing entry."""
        ...

    @abstractmethod
    def get_token(self, key: str) -> Optional[Token]:
        """Return the token stored under *key*, or ``None``."""
        ...

    @abstractmethod
    def delete_token(self, key: str) -> None:
        """Remove the token stored under *key*. Missing entries are ignored."""
        ...
