"""
Write transaction coordinators.

A coordinator decides what "fresh" means for reads and how a mutation is made
durable.  Both coordinators expose the same two methods:

``refresh()``
    Bring the store up to date before a read.

``run_exclusive(mutation)``
    Run ``mutation(store)`` as a write transaction and return its result.

:py:class:`FileLockTransactions` is used when several processes share one
snapshot file: each transaction takes an exclusive lock on the snapshot's lock
file, reloads the snapshot if another process changed it, applies the mutation
and persists before releasing the lock.

:py:class:`SharedMemoryTransactions` is used when every connection lives in one
process and shares one store directly.  It adds no locking at all.
"""

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from django.core.files import locks

from .directory import DirectoryStore
from .exceptions import BackendError

logger = logging.getLogger(__name__)


class SharedMemoryTransactions:
    """
    Coordinator for a single process whose connections share one store.

    The snapshot is only read at startup and written at shutdown, so reads need
    no refresh and writes are neither locked nor persisted.  Simultaneous
    writers from different connections are not isolated from each other.

    Args:
        store: The shared store.

    """

    def __init__(self, store: DirectoryStore) -> None:
        self.store = store

    def refresh(self) -> bool:
        return False

    def run_exclusive(self, mutation: Callable[[DirectoryStore], Any]) -> Any:
        return mutation(self.store)


class FileLockTransactions:
    """
    Coordinator for processes sharing one snapshot file.

    Lock acquisition blocks until the lock is free: there is no timeout and no
    fairness between waiters.  The lock is a ``flock`` on the open lock file, so
    it is released by the operating system if the process dies while holding it.

    A thread that calls :py:meth:`run_exclusive` while already inside a
    transaction runs the inner mutation inline; the outermost transaction
    persists.

    Args:
        store: This process's cache of the snapshot.

    """

    def __init__(self, store: DirectoryStore) -> None:
        if store.path is None:
            msg = "FileLockTransactions needs a DirectoryStore with a snapshot path"
            raise ValueError(msg)
        self.store = store
        # keys in this dictionary get manipulated by .lock()
        self._holders: dict[threading.Thread, int] = {}

    def in_transaction(self) -> bool:
        """
        Return ``True`` if the current thread holds our lock.
        """
        return threading.current_thread() in self._holders

    @contextmanager
    def lock(self) -> Iterator[None]:
        """
        Hold the exclusive cross-process lock for the duration of the block.
        """
        lock_path = self.store.lock_path
        lock_path.parent.mkdir(parents=True, exist_ok=True)  # type: ignore[union-attr]
        # Open for append: the lock file's contents are never read or truncated.
        with open(lock_path, "a") as fh:  # type: ignore[arg-type]
            locks.lock(fh, locks.LOCK_EX)
            self._holders[threading.current_thread()] = fh.fileno()
            logger.debug("ldapstore.transactions.lock.acquired path=%s", lock_path)
            try:
                yield
            finally:
                # We do this in a finally: branch so that the lock gets released
                # no matter what happens inside the transaction.
                del self._holders[threading.current_thread()]
                locks.unlock(fh)
                logger.debug("ldapstore.transactions.lock.released path=%s", lock_path)

    def refresh(self) -> bool:
        return self.store.refresh_if_stale()

    def run_exclusive(self, mutation: Callable[[DirectoryStore], Any]) -> Any:
        """
        Run ``mutation`` against a fresh store while holding the lock, then
        persist.

        If ``mutation`` or the persist raises, nothing is written, the cache is
        invalidated so that the next refresh reloads the last committed
        snapshot, and the exception propagates.

        Args:
            mutation: Called with the store; its return value is returned.

        Returns:
            Whatever ``mutation`` returned.

        """
        if self.in_transaction():
            return mutation(self.store)
        with self.lock():
            # Another process may have written since our last read.
            self.store.refresh_if_stale()
            try:
                result = mutation(self.store)
                self.store.persist()
            except BackendError as e:
                logger.debug(
                    "ldapstore.transactions.refused path=%s error=%s", self.store.path, e
                )
                self.store.invalidate()
                raise
            except Exception as e:
                logger.warning(
                    "ldapstore.transactions.aborted path=%s error=%s",
                    self.store.path,
                    e,
                )
                self.store.invalidate()
                raise
        return result
