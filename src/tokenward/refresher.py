"""Refresh coordination: at most one network refresh per key at a time.

:class:`TokenRefresher` composes two layers of mutual exclusion:

1. **In-process single-flight.** Callers refreshing the same key share one
   *flight*. The first caller (the leader) performs the work; everyone who
   arrives while it runs blocks on a condition variable and receives the
   leader's token, or the leader's exception if the refresh failed.
2. **Cross-process check-then-refresh** (optional). The leader takes the
   key's file lock from :class:`~tokenward.lock.RefreshLockManager`
   *before* reading storage, re-reads the token, and returns it untouched
   if it is no longer due (another process already refreshed it). Only
   otherwise does it call the token endpoint and save the result. The lock
   is released on every exit path.

Proactive refresh: :meth:`TokenRefresher.get_valid_token_with_threshold`
refreshes once a given fraction of the token's lifetime has elapsed,
computed as::

    fraction_elapsed = (expires_in - max(expires_at - now, 0)) / expires_in

Tokens without ``expires_at`` and ``expires_in`` are never refreshed early.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import nullcontext
from typing import Callable, Optional

from tokenward.client import OAuthClient
from tokenward.exceptions import NoRefreshTokenError, TokenNotFoundError
from tokenward.lock import RefreshLockManager
from tokenward.models import Token

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.8


class _Flight:
    """One in-progress refresh shared by every caller for the same key."""

    __slots__ = ("done", "token", "error")

    def __init__(self) -> None:
        self.done = False
        self.token: Optional[Token] = None
        self.error: Optional[BaseException] = None


class TokenRefresher:
    """Keeps stored tokens fresh without duplicate refreshes.

    Args:
        client: Client whose store holds the tokens and whose token
            endpoint performs refreshes.
        lock_manager: Enables cross-process coordination when given.

    Example::

        refresher = TokenRefresher.with_file_locking(client, "my-app")
        token = refresher.ensure_fresh("github.com:me")
    """

    def __init__(
        self,
        client: OAuthClient,
        lock_manager: Optional[RefreshLockManager] = None,
    ) -> None:
        self.client = client
        self.lock_manager = lock_manager
        self._cond = threading.Condition()
        self._flights: dict[str, _Flight] = {}

    @classmethod
    def with_file_locking(cls, client: OAuthClient, app_name: str = "tokenward") -> TokenRefresher:
        """Build a refresher that also coordinates with other processes."""
        return cls(client, RefreshLockManager.for_app(app_name))

    # --- Public API ---

    def ensure_fresh(self, key: str) -> Token:
        """Return the token for *key*, refreshing it first if it has expired.

        Raises:
            TokenNotFoundError: Nothing is stored under *key*.
            NoRefreshTokenError: The token expired and cannot be refreshed.
            OAuthServerError: The token endpoint rejected the refresh.
        """
        token = self._load(key)
        if not token.is_expired():
            return token
        return self._refresh(key, lambda current: current.is_expired())

    get_valid_token = ensure_fresh

    def refresh_token_for_key(self, key: str) -> Token:
        """Refresh the token for *key*, sharing the work with concurrent callers.

        Without a lock manager this always calls the token endpoint. With
        one, the token is re-read once the file lock is held and returned
        untouched unless it has expired, so processes that queued behind
        another's refresh make no request of their own.

        Raises:
            TokenNotFoundError: Nothing is stored under *key*.
            NoRefreshTokenError: A refresh was due but there is no refresh token.
        """
        self._load(key)
        if self.lock_manager is None:
            return self._refresh(key, lambda current: True)
        return self._refresh(key, lambda current: current.is_expired())

    def force_refresh(self, key: str) -> Token:
        """Refresh the token for *key* even if it is still valid.

        Under the file lock the token is re-read, and the request is skipped
        only when another process has replaced the access token seen
        before waiting with a live one.

        Raises:
            TokenNotFoundError: Nothing is stored under *key*.
            NoRefreshTokenError: The stored token has no refresh token.
        """
        observed = self._load(key)

        def needs_refresh(current: Token) -> bool:
            return current.access_token == observed.access_token or current.is_expired()

        return self._refresh(key, needs_refresh)

    def get_valid_token_with_threshold(self, key: str, threshold: float = DEFAULT_THRESHOLD) -> Token:
        """Return the token for *key*, refreshing once *threshold* of its lifetime has passed.

        *threshold* is clamped into ``[0, 1]``; ``1.0`` behaves like
        :meth:`ensure_fresh`.
        """
        threshold = _clamp(threshold)
        token = self._load(key)
        if not self.should_refresh(token, threshold):
            return token
        return self._refresh(key, lambda current: self.should_refresh(current, threshold))

    @staticmethod
    def should_refresh(token: Token, threshold: float, now: Optional[float] = None) -> bool:
        """Return ``True`` if *token* is expired or past *threshold* of its lifetime."""
        current = time.time() if now is None else now
        if token.is_expired(current):
            return True
        if token.expires_at is None or not token.expires_in:
            return False
        remaining = max(token.expires_at - current, 0)
        fraction_elapsed = (token.expires_in - remaining) / token.expires_in
        return fraction_elapsed >= _clamp(threshold)

    def wait_for_refresh(self, key: str, timeout: Optional[float] = None) -> bool:
        """Block until no in-process refresh for *key* is running.

        Returns:
            ``False`` if *timeout* elapsed first, else ``True``.
        """
        with self._cond:
            return self._cond.wait_for(lambda: key not in self._flights, timeout)

    def refreshing(self, key: str) -> bool:
        """Return ``True`` while an in-process refresh for *key* is running."""
        with self._cond:
            return key in self._flights

    # --- Internals ---

    def _load(self, key: str) -> Token:
        token = self.client.get_token(key)
        if token is None:
            raise TokenNotFoundError(key)
        return token

    def _refresh(self, key: str, needs_refresh: Callable[[Token], bool]) -> Token:
        with self._cond:
            flight = self._flights.get(key)
            leader = flight is None
            if leader:
                flight = _Flight()
                self._flights[key] = flight
        assert flight is not None

        if not leader:
            logger.debug("Waiting for in-flight refresh of %s", key)
            with self._cond:
                self._cond.wait_for(lambda: flight.done)
            if flight.error is not None:
                raise flight.error
            assert flight.token is not None
            return flight.token.model_copy()

        try:
            flight.token = self._refresh_exclusive(key, needs_refresh)
            return flight.token.model_copy()
        except BaseException as exc:
            flight.error = exc
            raise
        finally:
            with self._cond:
                flight.done = True
                del self._flights[key]
                self._cond.notify_all()

    def _refresh_exclusive(self, key: str, needs_refresh: Callable[[Token], bool]) -> Token:
        guard = self.lock_manager.locked(key) if self.lock_manager else nullcontext()
        with guard:
            current = self._load(key)
            if not needs_refresh(current):
                logger.debug("Token for %s was already refreshed elsewhere", key)
                return current
            if not current.refresh_token:
                raise NoRefreshTokenError()
            new_token = self.client.refresh_token(current.refresh_token)
            self.client.save_token(key, new_token)
            logger.debug("Refreshed token for %s", key)
            return new_token


def _clamp(threshold: float) -> float:
    return min(max(threshold, 0.0), 1.0)
