"""JSON file credential store.

Sessions and tokens are grouped by domain into one JSON object per file::

    <data_dir>/<app_name>/
        sessions_default.json
        sessions_github.com.json
        tokens_default.json
        tokens_github.com.json

A session's domain is :attr:`Session.domain` (``"default"`` when unset). A
token's domain is the part of its key before the first ``:``
(``"github.com:octocat"`` lives in ``tokens_github.com.json``); keys without
a colon go to ``tokens_default.json``.

Every write replaces the whole file atomically with ``0o600`` permissions,
so a reader in another process sees either the old or the new content and
never a truncated file. Read-modify-write cycles inside one process are
serialised by an internal lock; across processes they are serialised by
the refresh lock held around each refresh.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import ValidationError

from tokenward.config import APP_NAME, atomic_write, get_data_dir
from tokenward.exceptions import StorageError
from tokenward.models import Session, Token
from tokenward.storage.base import CredentialStore

logger = logging.getLogger(__name__)

DEFAULT_DOMAIN = "default"
_SESSIONS_PREFIX = "sessions_"
_TOKENS_PREFIX = "tokens_"


def _safe_domain(domain: str) -> str:
    for ch in ("/", "\\", ":"):
        domain = domain.replace(ch, "_")
    return domain


def token_domain(key: str) -> str:
    """Return the file domain for a token *key* (the prefix before the first ``:``)."""
    if ":" in key:
        return key.split(":", 1)[0] or DEFAULT_DOMAIN
    return DEFAULT_DOMAIN


class FileStore(CredentialStore):
    """Credential store backed by per-domain JSON files.

    Args:
        app_name: Application name; files go to ``get_data_dir(app_name)``.
            Ignored when *path* is given.
        path: Explicit storage directory.

    Raises:
        StorageError: If the storage directory cannot be created.

    Example::

        store = FileStore(path=tmp_path)
        store.save_token("github.com:me", token)
        # -> tmp_path / "tokens_github.com.json"
    """

    def __init__(self, app_name: str = APP_NAME, path: Union[str, Path, None] = None) -> None:
        try:
            if path is not None:
                self._base = Path(path)
                self._base.mkdir(parents=True, exist_ok=True)
            else:
                self._base = get_data_dir(app_name)
        except OSError as exc:
            raise StorageError(f"Failed to create storage directory: {exc}") from exc
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "file"

    @property
    def path(self) -> Path:
        """The directory holding the JSON files."""
        return self._base

    def sessions_path(self, domain: str) -> Path:
        return self._base / f"{_SESSIONS_PREFIX}{_safe_domain(domain)}.json"

    def tokens_path(self, domain: str) -> Path:
        return self._base / f"{_TOKENS_PREFIX}{_safe_domain(domain)}.json"

    # --- File helpers ---

    def _read(self, path: Path) -> dict[str, Any]:
        if not path.is_file():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise StorageError(f"Failed to read {path.name}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise StorageError(f"Failed to parse {path.name}: {exc}") from exc
        if not isinstance(data, dict):
            raise StorageError(f"Failed to parse {path.name}: expected a JSON object")
        return data

    def _write(self, path: Path, data: dict[str, Any]) -> None:
        try:
            atomic_write(path, json.dumps(data, indent=2) + "\n", mode=0o600)
        except OSError as exc:
            raise StorageError(f"Failed to write {path.name}: {exc}") from exc

    def _session_files(self) -> list[Path]:
        try:
            files = sorted(self._base.glob(f"{_SESSIONS_PREFIX}*.json"))
        except OSError as exc:
            raise StorageError(f"Failed to read storage directory: {exc}") from exc
        # The default domain is searched first.
        default = self.sessions_path(DEFAULT_DOMAIN)
        return sorted(files, key=lambda p: p != default)

    # --- Sessions ---

    def save_session(self, state: str, session: Session) -> None:
        path = self.sessions_path(session.domain or DEFAULT_DOMAIN)
        with self._lock:
            sessions = self._read(path)
            sessions[state] = session.model_dump(mode="json")
            self._write(path, sessions)

    def get_session(self, state: str) -> Optional[Session]:
        with self._lock:
            for path in self._session_files():
                entry = self._read(path).get(state)
                if entry is not None:
                    return self._load_model(Session, entry, path)
        return None

    def delete_session(self, state: str) -> None:
        with self._lock:
            for path in self._session_files():
                sessions = self._read(path)
                if state in sessions:
                    del sessions[state]
                    self._write(path, sessions)
                    return

    # --- Tokens ---

    def save_token(self, key: str, token: Token) -> None:
        path = self.tokens_path(token_domain(key))
        with self._lock:
            tokens = self._read(path)
            tokens[key] = token.model_dump(mode="json")
            self._write(path, tokens)
        logger.debug("Saved token for %s to %s", key, path.name)

    def get_token(self, key: str) -> Optional[Token]:
        path = self.tokens_path(token_domain(key))
        with self._lock:
            entry = self._read(path).get(key)
        if entry is None:
            return None
        return self._load_model(Token, entry, path)

    def delete_token(self, key: str) -> None:
        path = self.tokens_path(token_domain(key))
        with self._lock:
            tokens = self._read(path)
            if key in tokens:
                del tokens[key]
                self._write(path, tokens)

    def token_keys(self) -> list[str]:
        """Return every stored token key across all domain files, sorted."""
        keys: list[str] = []
        with self._lock:
            for path in sorted(self._base.glob(f"{_TOKENS_PREFIX}*.json")):
                keys.extend(self._read(path))
        return sorted(keys)

    @staticmethod
    def _load_model(model: Any, entry: Any, path: Path) -> Any:
        try:
            return model.model_validate(entry)
        except ValidationError as exc:
            raise StorageError(f"Invalid entry in {path.name}: {exc}") from exc
