"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for tokenward:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.tokenward/`` on macOS and Windows. See :func:`get_config_dir`,
  :func:`get_data_dir`, :func:`get_providers_dir`, and
  :func:`get_runtime_dir`.
* **Global config** -- A single :class:`~tokenward.models.GlobalConfig`
  JSON file storing defaults (default provider, callback timeout, refresh
  threshold, cross-process locking).
* **Providers** -- One JSON file per authorization server, each
  deserialised into a :class:`~tokenward.models.ProviderProfile`.
* **Precedence resolution** -- :func:`resolve_provider` picks the active
  provider from the CLI flag, ``TOKENWARD_PROVIDER``, or the global default.
* **Credential resolution** -- :func:`resolve_credential` reads client IDs
  and secrets from env vars, files, literals, or interactive prompts.

All file writes go through :func:`atomic_write` (temp file + rename) so a
crash never leaves a half-written token or profile behind.
"""

from __future__ import annotations

import getpass
import json
import os
import platform
import sys
import tempfile
from pathlib import Path
from typing import Optional

from tokenward.exceptions import ConfigError
from tokenward.models import GlobalConfig, OAuthConfig, ProviderProfile

APP_NAME = "tokenward"
_CONFIG_FILENAME = "config.json"
_PROVIDER_ENV = "TOKENWARD_PROVIDER"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/tokenward/`` (default ``~/.config/tokenward/``).
    On macOS/Windows: ``~/.tokenward/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir(app_name: str = APP_NAME) -> Path:
    """Return the data directory (tokens, sessions, crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/<app_name>/`` (default ``~/.local/share/<app_name>/``).
    On macOS/Windows: ``~/.<app_name>/data/``.

    Args:
        app_name: Sub-directory name. Embedding applications pass their own
            name so their tokens do not mix with the CLI's.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / app_name
    else:
        path = Path.home() / f".{app_name}" / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_providers_dir() -> Path:
    """Return the providers directory (``<config_dir>/providers/``), creating it if necessary."""
    path = get_config_dir() / "providers"
    path.mkdir(parents=True, exist_ok=True)
    return path


def _user_id() -> str:
    getuid = getattr(os, "getuid", None)
    if getuid is not None:
        return str(getuid())
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


def get_runtime_dir() -> Path:
    """Return the parent directory for refresh lock files.

    Prefers the per-session runtime directory (``$XDG_RUNTIME_DIR``) and
    falls back to a per-user sub-directory of the system temp dir. The
    directory is *not* created here; :class:`~tokenward.lock.RefreshLockManager`
    creates it lazily.
    """
    runtime_dir = os.environ.get("XDG_RUNTIME_DIR", "")
    if runtime_dir:
        return Path(runtime_dir) / f"{APP_NAME}-locks"
    return Path(tempfile.gettempdir()) / f"{APP_NAME}-locks-{_user_id()}"


# --- Atomic file writes ---


def atomic_write(path: Path, data: str, mode: Optional[int] = None) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems. When *mode* is
    given, permissions are applied to the temp file before any content is
    written, so secrets are never world-readable, even momentarily.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        if mode is not None:
            os.chmod(tmp_path, mode)
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close below
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Global config ---


def _global_config_path() -> Path:
    return get_config_dir() / _CONFIG_FILENAME


def load_global_config() -> GlobalConfig:
    """Load the global configuration.

    Returns:
        The deserialised :class:`~tokenward.models.GlobalConfig`, or a
        default instance when the file does not exist.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or fails
            Pydantic validation.
    """
    path = _global_config_path()
    if not path.is_file():
        return GlobalConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return GlobalConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid global config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    """Persist the global configuration atomically to disk."""
    data = config.model_dump(mode="json")
    atomic_write(_global_config_path(), json.dumps(data, indent=2) + "\n")


# --- Providers ---


def _provider_path(name: str) -> Path:
    return get_providers_dir() / f"{name}.json"


def list_providers() -> list[str]:
    """Return all provider names, sorted alphabetically."""
    return sorted(p.stem for p in get_providers_dir().glob("*.json") if p.is_file())


def load_provider(name: str) -> ProviderProfile:
    """Load and validate a provider profile from disk.

    Raises:
        ConfigError: If the provider does not exist, contains invalid
            JSON, or fails Pydantic validation.
    """
    path = _provider_path(name)
    if not path.is_file():
        raise ConfigError(f"Provider '{name}' not found at {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return ProviderProfile.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid provider '{name}' at {path}: {exc}") from exc


def save_provider(provider: ProviderProfile) -> None:
    """Persist a provider profile atomically, named after ``provider.name``."""
    data = provider.model_dump(mode="json")
    atomic_write(_provider_path(provider.name), json.dumps(data, indent=2) + "\n", mode=0o600)


def delete_provider(name: str) -> None:
    """Delete a provider profile.

    Raises:
        ConfigError: If the provider does not exist.
    """
    path = _provider_path(name)
    if not path.is_file():
        raise ConfigError(f"Provider '{name}' not found at {path}")
    path.unlink()


def provider_exists(name: str) -> bool:
    return _provider_path(name).is_file()


# --- Precedence resolution ---


def resolve_provider(cli_provider: Optional[str] = None) -> tuple[GlobalConfig, ProviderProfile]:
    """Resolve the active provider.

    Precedence (high to low):
        1. CLI flag (``--provider``)
        2. Environment variable (``TOKENWARD_PROVIDER``)
        3. ``default_provider`` in the global config
        4. The only configured provider, if exactly one exists

    Returns:
        A tuple of ``(global_config, provider)``.

    Raises:
        ConfigError: If no provider can be determined or it fails to load.
    """
    global_cfg = load_global_config()

    name: Optional[str] = global_cfg.default_provider
    env_provider = os.environ.get(_PROVIDER_ENV)
    if env_provider:
        name = env_provider
    if cli_provider is not None:
        name = cli_provider

    if name is None:
        providers = list_providers()
        if len(providers) == 1:
            name = providers[0]
        else:
            raise ConfigError(
                "No provider selected. Pass --provider, set "
                f"{_PROVIDER_ENV}, or set a default provider."
            )

    return global_cfg, load_provider(name)


def build_oauth_config(provider: ProviderProfile) -> OAuthConfig:
    """Return the provider's :class:`OAuthConfig` with client credentials resolved."""
    oauth = provider.oauth.model_copy()
    if provider.client_id_source:
        oauth.client_id = resolve_credential(provider.client_id_source)
    if provider.client_secret_source:
        oauth.client_secret = resolve_credential(provider.client_secret_source)
    return oauth


# --- Credential source resolution ---


def resolve_credential(source: str) -> str:
    """Resolve a credential from its source descriptor.

    Supported formats:
        - ``"env:VAR_NAME"`` -- reads ``os.environ["VAR_NAME"]``
        - ``"file:/path/to/file"`` -- reads file content, stripped of whitespace
        - ``"literal:VALUE"`` -- the value itself (public client IDs)
        - ``"prompt"`` -- prompts user interactively (requires a TTY)

    Raises:
        ConfigError: If the source can't be resolved.
    """
    if source.startswith("env:"):
        var_name = source[4:]
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigError(
                f"Environment variable '{var_name}' is not set (source: {source})"
            )
        return value

    if source.startswith("file:"):
        path = Path(source[5:]).expanduser()
        if not path.is_file():
            raise ConfigError(f"Credential file not found: {path} (source: {source})")
        try:
            return path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise ConfigError(f"Cannot read credential file {path}: {exc}") from exc

    if source.startswith("literal:"):
        return source[8:]

    if source == "prompt":
        if not sys.stdin.isatty():
            raise ConfigError(
                "Cannot prompt for credentials: stdin is not a TTY (source: prompt)"
            )
        return getpass.getpass("Enter credential: ")

    raise ConfigError(f"Unknown credential source format: {source}")
