"""Write coordinator serializing ledger operations per user.

This module provides the WriteCoordinator class that guarantees a
multi-step ledger operation (check balance, debit cash, credit holding)
is never interleaved with another operation on the same user, and that
shutdown waits for in-flight operations before the store is closed.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

from data.repositories.base_repository import RepositoryError

logger = logging.getLogger(__name__)


class LedgerShuttingDownError(RepositoryError):
    """Raised when an operation starts after shutdown has begun."""
    pass


class _UserLock:
    """A user's lock plus the number of operations holding or waiting for it."""

    __slots__ = ("lock", "holders")

    def __init__(self):
        self.lock = threading.RLock()
        self.holders = 0


class WriteCoordinator:
    """Hands out one reentrant lock per user id and tracks in-flight work.

    Operations on different users run in parallel; operations on the same
    user are serialized. A user's lock is dropped once nothing holds or
    waits for it, so the registry only covers users with work in progress.
    Once ``drain`` is called no new operation is admitted, and ``drain``
    returns when the in-flight count reaches zero.
    """

    def __init__(self):
        self._user_locks: Dict[int, _UserLock] = {}
        self._registry_lock = threading.Lock()
        self._state = threading.Condition()
        self._in_flight = 0
        self._accepting = True

    @contextmanager
    def user_lock(self, user_id: int) -> Iterator[None]:
        """Hold the lock for ``user_id`` for the duration of the block.

        Raises:
            LedgerShuttingDownError: If shutdown has already begun
        """
        self._admit()
        try:
            entry = self._checkout(user_id)
            try:
                with entry.lock:
                    yield
            finally:
                self._checkin(user_id, entry)
        finally:
            self._release()

    def drain(self, timeout: Optional[float] = None) -> bool:
        """Stop admitting operations and wait for in-flight ones to finish.

        Args:
            timeout: Maximum seconds to wait, None to wait indefinitely

        Returns:
            True if no operation is in flight when this returns
        """
        with self._state:
            self._accepting = False
            pending = self._in_flight
            if pending:
                logger.info(f"Waiting for {pending} in-flight ledger operation(s) to finish")
            finished = self._state.wait_for(lambda: self._in_flight == 0, timeout=timeout)
        if not finished:
            logger.warning("Timed out waiting for in-flight ledger operations")
        return finished

    @property
    def accepting(self) -> bool:
        with self._state:
            return self._accepting

    @property
    def in_flight(self) -> int:
        with self._state:
            return self._in_flight

    def _admit(self) -> None:
        with self._state:
            if not self._accepting:
                raise LedgerShuttingDownError("Ledger is shutting down")
            self._in_flight += 1

    def _release(self) -> None:
        with self._state:
            self._in_flight -= 1
            if self._in_flight == 0:
                self._state.notify_all()

    @property
    def tracked_users(self) -> int:
        """Number of users whose lock is currently held or awaited."""
        with self._registry_lock:
            return len(self._user_locks)

    def _checkout(self, user_id: int) -> _UserLock:
        with self._registry_lock:
            entry = self._user_locks.get(user_id)
            if entry is None:
                entry = _UserLock()
                self._user_locks[user_id] = entry
            entry.holders += 1
            return entry

    def _checkin(self, user_id: int, entry: _UserLock) -> None:
        with self._registry_lock:
            entry.holders -= 1
            if entry.holders == 0:
                del self._user_locks[user_id]
