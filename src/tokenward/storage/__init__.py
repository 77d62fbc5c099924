"""Credential store backends.

- :class:`CredentialStore` -- abstract capability interface.
- :class:`MemoryStore` -- process-local dictionaries.
- :class:`FileStore` -- per-domain JSON files under the data directory.
- :class:`KeyringStore` -- tokens in the OS keychain, sessions in files.

:func:`open_store` builds a backend from the name stored in a
:class:`~tokenward.models.ProviderProfile`.
"""

from __future__ import annotations

from tokenward.exceptions import ConfigError
from tokenward.storage.base import CredentialStore
from tokenward.storage.file import FileStore
from tokenward.storage.keyring import KeyringStore
from tokenward.storage.memory import MemoryStore

STORE_BACKENDS = ("file", "keyring", "memory")


def open_store(name: str, app_name: str = "tokenward") -> CredentialStore:
    """Return a new store for backend *name*.

    Raises:
        ConfigError: If *name* is not one of :data:`STORE_BACKENDS`.
    """
    if name == "file":
        return FileStore(app_name)
    if name == "keyring":
        return KeyringStore(app_name)
    if name == "memory":
        return MemoryStore()
    raise ConfigError(
        f"Unknown storage backend '{name}'. Available: {', '.join(STORE_BACKENDS)}"
    )


__all__ = [
    "CredentialStore",
    "FileStore",
    "KeyringStore",
    "MemoryStore",
    "STORE_BACKENDS",
    "open_store",
]
