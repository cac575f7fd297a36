"""Per-environment exclusive sections.

Convergence and release append for one ``(app_id, environment)`` key must
never interleave, while unrelated keys run fully in parallel. There is no
global lock; the registry mutex only guards the map of per-key locks.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from helmsman.core.errors import CallTimeoutError
from helmsman.models.releases import EnvironmentKey

logger = logging.getLogger(__name__)


class KeyedLocks:
    """A map of ``EnvironmentKey -> threading.RLock`` populated on demand.

    Reentrant, so a rollback that holds the section may call helpers that
    take it again on the same thread.

    Each lock is reference-counted by the threads holding or waiting on it
    and dropped from the map when the last one leaves, so the map only ever
    holds keys that are in use.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[EnvironmentKey, threading.RLock] = {}
        self._users: dict[EnvironmentKey, int] = {}

    def _checkout(self, key: EnvironmentKey) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            self._users[key] = self._users.get(key, 0) + 1
            return lock

    def _checkin(self, key: EnvironmentKey) -> None:
        with self._guard:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    @contextmanager
    def exclusive(
        self, key: EnvironmentKey, timeout: float | None = None
    ) -> Iterator[None]:
        """Hold the exclusive section for *key* for the ``with`` body.

        Raises
        ------
        CallTimeoutError
            If the section cannot be acquired within *timeout* seconds.
        """
        lock = self._checkout(key)
        try:
            acquired = lock.acquire(timeout=-1 if timeout is None else timeout)
            if not acquired:
                raise CallTimeoutError(
                    f"Timed out after {timeout:g}s waiting for exclusive access to {key}"
                )
            logger.debug("Acquired exclusive section for %s", key)
            try:
                yield
            finally:
                lock.release()
                logger.debug("Released exclusive section for %s", key)
        finally:
            self._checkin(key)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
