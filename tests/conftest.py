"""Shared test fixtures for tokenward.

Provides config isolation, a scripted form transport standing in for the
token and device endpoints, ready-made client/store pairs, and a CLI
runner. These fixtures are automatically discovered by pytest and
available to all test modules without explicit imports.
"""

from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import Any, Union

import pytest

from tokenward.client import OAuthClient
from tokenward.models import OAuthConfig, Token
from tokenward.output import OutputFormat, OutputManager, reset_output, set_output
from tokenward.storage import MemoryStore
from tokenward.transport import FormResponse


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time. When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale
    ("I/O operation on closed file"). Resetting forces a fresh manager
    to be created on next use.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Scripted transport
# ---------------------------------------------------------------------------


class FakeTransport:
    """Replays queued replies to ``post_form`` and records every call.

    Queued items are :class:`FormResponse` objects or exceptions to raise.
    The last queued item is replayed once the queue would otherwise run
    dry. ``delay`` keeps each call in flight for that many seconds, which
    lets concurrency tests pile callers up behind one refresh.
    """

    def __init__(self) -> None:
        self.replies: list[Union[FormResponse, Exception]] = []
        self.calls: list[tuple[str, dict[str, str]]] = []
        self.delay = 0.0
        self._lock = threading.Lock()

    def reply(self, body: dict[str, Any], status_code: int = 200) -> FakeTransport:
        self.replies.append(FormResponse(status_code=status_code, body=body))
        return self

    def fail(self, exc: Exception) -> FakeTransport:
        self.replies.append(exc)
        return self

    def post_form(self, url: str, data: dict[str, str]) -> FormResponse:
        with self._lock:
            self.calls.append((url, dict(data)))
            if not self.replies:
                raise AssertionError(f"Unexpected request to {url}")
            item = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if self.delay:
            time.sleep(self.delay)
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


# ---------------------------------------------------------------------------
# Engine fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def oauth_config() -> OAuthConfig:
    """Endpoints of an imaginary authorization server."""
    return OAuthConfig(
        client_id="test-client",
        authorization_endpoint="https://auth.example.com/authorize",
        token_endpoint="https://auth.example.com/token",
        device_authorization_endpoint="https://auth.example.com/device/code",
        redirect_uri="http://127.0.0.1:8080/callback",
        scope="read write",
    )


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def client(oauth_config: OAuthConfig, memory_store: MemoryStore, transport: FakeTransport) -> OAuthClient:
    """An OAuthClient wired to a MemoryStore and the scripted transport."""
    return OAuthClient(oauth_config, memory_store, transport=transport)


def make_token(
    access_token: str = "access-1",
    refresh_token: str | None = "refresh-1",
    expires_in: int | None = 3600,
    issued_at: int | None = None,
) -> Token:
    """Build a token issued at *issued_at* (default: now)."""
    issued = int(time.time()) if issued_at is None else issued_at
    return Token(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=expires_in,
        expires_at=issued + expires_in if expires_in is not None else None,
    )


@pytest.fixture
def token_factory():
    """Return :func:`make_token` so tests can build tokens with specific lifetimes."""
    return make_token


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration, data and lock files to a temporary directory.

    Sets XDG_CONFIG_HOME, XDG_DATA_HOME and XDG_RUNTIME_DIR to
    subdirectories of tmp_path so that tests never touch real user
    config or tokens, and clears TOKENWARD_PROVIDER.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setattr("tokenward.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setenv("XDG_RUNTIME_DIR", str(tmp_path / "run"))
    monkeypatch.delenv("TOKENWARD_PROVIDER", raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
