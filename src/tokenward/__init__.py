"""tokenward -- obtain, store and keep fresh OAuth 2.0 tokens for CLI and headless tools.

The package implements the Authorization Code flow with PKCE (through a
loopback redirect listener) and the Device Authorization flow, persists
tokens in a pluggable credential store, and refreshes them with at most
one network call per key, even when many threads or processes race.

Typical library use::

    from tokenward import FileStore, OAuthClient, OAuthConfig, TokenRefresher

    client = OAuthClient(OAuthConfig.github("Iv1.abc", "repo"), FileStore("my-app"))
    client.save_token("github.com:me", client.authorize_device())

    refresher = TokenRefresher.with_file_locking(client, "my-app")
    token = refresher.ensure_fresh("github.com:me")

Modules:
    pkce: PKCE verifier/challenge generation.
    callback: Single-use loopback redirect listener.
    device: Device flow polling state machine.
    client: Authorization orchestrator (code flow, device flow, refresh).
    lock: Cross-process refresh locks.
    refresher: Single-flight and cross-process refresh coordination.
    storage: Credential store interface and backends.
    config: XDG-aware configuration and provider profiles.
    app: Typer CLI entry point.
"""

__version__ = "0.1.0"

from tokenward.callback import CallbackServer  # noqa: E402
from tokenward.client import OAuthClient  # noqa: E402
from tokenward.device import DevicePoller, DeviceState  # noqa: E402
from tokenward.lock import RefreshLock, RefreshLockManager  # noqa: E402
from tokenward.models import OAuthConfig, Session, Token  # noqa: E402
from tokenward.pkce import generate_pkce  # noqa: E402
from tokenward.refresher import TokenRefresher  # noqa: E402
from tokenward.storage import CredentialStore, FileStore, KeyringStore, MemoryStore  # noqa: E402

__all__ = [
    "CallbackServer",
    "CredentialStore",
    "DevicePoller",
    "DeviceState",
    "FileStore",
    "KeyringStore",
    "MemoryStore",
    "OAuthClient",
    "OAuthConfig",
    "RefreshLock",
    "RefreshLockManager",
    "Session",
    "Token",
    "TokenRefresher",
    "__version__",
    "generate_pkce",
]
