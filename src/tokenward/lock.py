"""Cross-process refresh locks backed by ``flock(2)`` on per-key lock files.

:class:`RefreshLockManager` maps a token key to ``<lock_dir>/<key>.lock``
(with path-hostile characters replaced by ``_``) and takes an exclusive
advisory lock on it. Mutual exclusion rests on the OS lock alone; the
lock file itself is advisory and is unlinked, best effort, on release.

Because a releasing holder unlinks the file while still holding the lock,
a waiter may end up locking an inode that no longer has a name. After every
successful ``flock`` the manager therefore checks that the path still
refers to the locked inode, and starts over if it does not.

Typical use::

    manager = RefreshLockManager.for_app("my-app")
    with manager.locked("github.com:me"):
        ...  # re-read, refresh, save
"""

from __future__ import annotations

import errno
import fcntl
import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional, Union

from tokenward.config import get_runtime_dir
from tokenward.exceptions import StorageError

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = ("/", "\\", ":", "*", "?", '"', "<", ">", "|")


def sanitize_key(key: str) -> str:
    """Replace characters that are unsafe in file names with ``_``."""
    for ch in _UNSAFE_CHARS:
        key = key.replace(ch, "_")
    return key


class RefreshLock:
    """An exclusive lock held on one lock file.

    Released by :meth:`release`, by leaving a ``with`` block, or when the
    manager's :meth:`~RefreshLockManager.locked` context exits. Releasing
    twice is a no-op.
    """

    def __init__(self, fd: int, path: Path, key: str) -> None:
        self._fd: Optional[int] = fd
        self.path = path
        self.key = key

    @property
    def held(self) -> bool:
        return self._fd is not None

    def release(self) -> None:
        """Unlink the lock file (best effort), then unlock and close it."""
        fd = self._fd
        if fd is None:
            return
        self._fd = None
        try:
            os.unlink(self.path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Could not remove lock file %s: %s", self.path, exc)
        try:
            fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)
        logger.debug("Released refresh lock for %s", self.key)

    def __enter__(self) -> RefreshLock:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.release()

    def __repr__(self) -> str:
        return f"RefreshLock(key={self.key!r}, held={self.held})"


class RefreshLockManager:
    """Hands out named exclusive locks inside one lock directory.

    Args:
        lock_dir: Directory for lock files. Created on demand; concurrent
            creation by several processes is fine.

    Raises:
        StorageError: If the lock directory cannot be created.
    """

    def __init__(self, lock_dir: Union[str, Path]) -> None:
        self.lock_dir = Path(lock_dir)
        self._ensure_dir()

    @classmethod
    def for_app(cls, app_name: str) -> RefreshLockManager:
        """Use a per-application sub-directory of the default lock directory."""
        return cls(get_runtime_dir() / sanitize_key(app_name))

    def lock_path(self, key: str) -> Path:
        return self.lock_dir / f"{sanitize_key(key)}.lock"

    def acquire_lock(self, key: str) -> RefreshLock:
        """Block until the lock for *key* is held.

        There is no timeout; use :meth:`try_acquire_lock` in a loop for a
        bounded wait.

        Raises:
            StorageError: The lock file could not be opened or locked.
        """
        lock = self._acquire(key, blocking=True)
        assert lock is not None
        return lock

    def try_acquire_lock(self, key: str) -> Optional[RefreshLock]:
        """Take the lock for *key* if it is free.

        Returns:
            The held lock, or ``None`` if another holder has it.

        Raises:
            StorageError: The lock file could not be opened or locked.
        """
        return self._acquire(key, blocking=False)

    @contextmanager
    def locked(self, key: str) -> Iterator[RefreshLock]:
        """Hold the lock for *key* for the duration of the ``with`` block."""
        lock = self.acquire_lock(key)
        try:
            yield lock
        finally:
            lock.release()

    def _ensure_dir(self) -> None:
        try:
            self.lock_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Failed to create lock directory {self.lock_dir}: {exc}") from exc

    def _acquire(self, key: str, blocking: bool) -> Optional[RefreshLock]:
        path = self.lock_path(key)
        flags = fcntl.LOCK_EX if blocking else fcntl.LOCK_EX | fcntl.LOCK_NB

        while True:
            self._ensure_dir()
            try:
                fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o600)
            except OSError as exc:
                raise StorageError(f"Failed to open lock file {path}: {exc}") from exc

            try:
                fcntl.flock(fd, flags)
            except OSError as exc:
                os.close(fd)
                if exc.errno in (errno.EAGAIN, errno.EWOULDBLOCK, errno.EACCES):
                    logger.debug("Refresh lock for %s is busy", key)
                    return None
                raise StorageError(f"Failed to lock {path}: {exc}") from exc

            if self._still_linked(fd, path):
                logger.debug("Acquired refresh lock for %s", key)
                return RefreshLock(fd, path, key)

            # The previous holder removed the file after we opened it.
            fcntl.flock(fd, fcntl.LOCK_UN)
            os.close(fd)

    @staticmethod
    def _still_linked(fd: int, path: Path) -> bool:
        try:
            on_disk = os.stat(path)
        except FileNotFoundError:
            return False
        held = os.fstat(fd)
        return (held.st_dev, held.st_ino) == (on_disk.st_dev, on_disk.st_ino)
