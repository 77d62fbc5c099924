"""Assemble client, store and refresher for a configured provider.

The CLI commands never build the engine pieces themselves; they call
:func:`open_engine`, which applies config precedence and the global
settings (cross-process locking, refresh threshold) in one place.
"""

from __future__ import annotations

from typing import NamedTuple, Optional

from tokenward.client import OAuthClient
from tokenward.config import APP_NAME, build_oauth_config, resolve_provider
from tokenward.lock import RefreshLockManager
from tokenward.models import GlobalConfig, ProviderProfile
from tokenward.refresher import TokenRefresher
from tokenward.storage import open_store


class Engine(NamedTuple):
    config: GlobalConfig
    provider: ProviderProfile
    client: OAuthClient
    refresher: TokenRefresher

    @property
    def refresh_threshold(self) -> float:
        """Provider override, else the global default."""
        if self.provider.refresh_threshold is not None:
            return self.provider.refresh_threshold
        return self.config.refresh_threshold


def open_engine(provider_name: Optional[str] = None, app_name: str = APP_NAME) -> Engine:
    """Resolve the active provider and wire up its token engine.

    Cross-process locking is used with the ``file`` and ``keyring`` stores;
    a memory store is never shared between processes.

    Raises:
        ConfigError: No provider could be resolved, or a credential source
            failed.
    """
    global_cfg, provider = resolve_provider(provider_name)
    store = open_store(provider.storage, app_name)
    client = OAuthClient(build_oauth_config(provider), store)

    lock_manager = None
    if global_cfg.cross_process_locking and provider.storage != "memory":
        lock_manager = RefreshLockManager.for_app(app_name)
    return Engine(global_cfg, provider, client, TokenRefresher(client, lock_manager))
