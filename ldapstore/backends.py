"""
Directory backend operations.

This module provides :py:class:`DirectoryBackend`, the object a protocol
engine calls for every search, add, delete and modify request, together with
the ``atomic`` decorator that routes each operation through the backend's
transaction coordinator.

The same backend serves both deployment shapes; only the store and the
coordinator it is built with differ:

* :py:meth:`DirectoryBackend.file_backed` for worker processes that share one
  snapshot file, and
* :py:meth:`DirectoryBackend.shared_memory` for a single process whose
  connections share one in-memory directory.
"""

import atexit
import logging
from collections.abc import Callable
from functools import wraps
from pathlib import Path
from typing import Any

import ldap
from django.utils.encoding import force_str

from .directory import DirectoryStore
from .entry import Entry, coerce_values, normalize_dn
from .exceptions import EntryAlreadyExists, NoSuchObject, UnwillingToPerform
from .search import FilterEvaluator, SearchEvaluator
from .transactions import FileLockTransactions, SharedMemoryTransactions
from .typing import ModifyModlist, ResultCallback

logger = logging.getLogger(__name__)

#: Names a protocol engine may use instead of the python-ldap MOD_* constants
MODIFY_OPERATIONS: dict[str, int] = {
    "add": ldap.MOD_ADD,
    "delete": ldap.MOD_DELETE,
    "replace": ldap.MOD_REPLACE,
}


# -----------------------
# Decorators
# -----------------------


def atomic(key: str = "read") -> Callable:
    """
    Decorator for backend operations that touch the directory.

    The wrapped method receives the store as its first argument after ``self``.

    Args:
        key: Either "read" or "write".  "read" refreshes the store before
            calling the method; "write" runs the method as a write transaction.

    Returns:
        A decorator that supplies a fresh store to the wrapped method.

    """
    if key not in ("read", "write"):
        msg = f'atomic() key must be "read" or "write", not {key!r}'
        raise ValueError(msg)

    def real_decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(self, *args, **kwargs) -> Any:
            if key == "write":
                return self.transactions.run_exclusive(
                    lambda store: func(self, store, *args, **kwargs)
                )
            self.transactions.refresh()
            return func(self, self.store, *args, **kwargs)

        return wrapper

    return real_decorator


# -----------------------
# DirectoryBackend
# -----------------------


class DirectoryBackend:
    """
    The four directory operations a protocol engine needs.

    Every DN is normalized before it is used.  Failures are raised as
    :py:class:`~ldapstore.exceptions.NoSuchObject`,
    :py:class:`~ldapstore.exceptions.EntryAlreadyExists` or
    :py:class:`~ldapstore.exceptions.UnwillingToPerform`, which the protocol
    engine translates into result codes.

    Args:
        store: The directory cache.
        transactions: The coordinator for ``store``, either
            :py:class:`~ldapstore.transactions.FileLockTransactions` or
            :py:class:`~ldapstore.transactions.SharedMemoryTransactions`.

    Keyword Args:
        filter_evaluator: Evaluator used for search filters.

    """

    def __init__(
        self,
        store: DirectoryStore,
        transactions: FileLockTransactions | SharedMemoryTransactions,
        filter_evaluator: FilterEvaluator | None = None,
    ) -> None:
        self.logger = logger
        self.store = store
        self.transactions = transactions
        self.searcher = SearchEvaluator(filter_evaluator)
        self.closed: bool = False

    @classmethod
    def file_backed(
        cls,
        path: str | Path,
        filter_evaluator: FilterEvaluator | None = None,
        file_mode: int = 0o644,
    ) -> "DirectoryBackend":
        """
        Build a backend for a worker process that shares ``path`` with other
        processes.  Every search reloads a changed snapshot; every write runs
        under the snapshot's lock and is persisted before the lock is released.

        Args:
            path: The snapshot file.  It need not exist yet.

        Keyword Args:
            filter_evaluator: Evaluator used for search filters.
            file_mode: Permission bits for written snapshots.

        Returns:
            A file-backed backend.

        """
        store = DirectoryStore(path, file_mode=file_mode)
        store.load()
        return cls(store, FileLockTransactions(store), filter_evaluator)

    @classmethod
    def shared_memory(
        cls,
        path: str | Path | None = None,
        filter_evaluator: FilterEvaluator | None = None,
        persist_on_exit: bool = False,
        file_mode: int = 0o644,
    ) -> "DirectoryBackend":
        """
        Build a backend whose directory lives in this process's memory.

        The snapshot at ``path``, if given, is read now and written back by
        :py:meth:`close`.

        Keyword Args:
            path: The snapshot file, or ``None`` for a purely in-memory
                directory.
            filter_evaluator: Evaluator used for search filters.
            persist_on_exit: Register :py:meth:`close` to run at interpreter
                exit.
            file_mode: Permission bits for written snapshots.

        Returns:
            A shared-memory backend.

        """
        store = DirectoryStore(path, file_mode=file_mode)
        store.load()
        backend = cls(store, SharedMemoryTransactions(store), filter_evaluator)
        if persist_on_exit and path is not None:
            atexit.register(backend.close)
        return backend

    @atomic(key="read")
    def search(
        self,
        store: DirectoryStore,
        basedn: str,
        scope: int,
        searchfilter: Any,
        callback: ResultCallback,
        attributes: list[str] | None = None,
    ) -> int:
        """
        Send the entries matching a search request to ``callback``.

        Searches take no lock: they see the snapshot that was current when the
        store was refreshed.

        Args:
            basedn: The search base DN.
            scope: ``ldap.SCOPE_BASE`` or ``ldap.SCOPE_SUBTREE``.
            searchfilter: A filter string, an ``ldap_filter`` object, or
                ``None`` to match everything.
            callback: Called as ``callback(dn, attributes)`` for each match.

        Keyword Args:
            attributes: Attribute names to return; all if not given.

        Raises:
            NoSuchObject: A base scope search named a DN that does not exist.
            UnwillingToPerform: The scope is not supported.

        Returns:
            The number of entries sent.

        """
        return self.searcher.search(
            store, basedn, scope, searchfilter, callback, attrlist=attributes
        )

    @atomic(key="write")
    def add(self, store: DirectoryStore, dn: str, attributes: Any) -> None:
        """
        Add a new entry.

        Args:
            dn: The DN of the new entry.
            attributes: A mapping of attribute name to values, or a python-ldap
                style add modlist of ``(attribute, values)`` pairs.

        Raises:
            EntryAlreadyExists: An entry already exists at ``dn``.

        """
        dn = normalize_dn(dn)
        if dn in store:
            raise EntryAlreadyExists(dn, matched=dn)
        store.insert(Entry(dn, attributes))
        self.logger.debug("ldapstore.backend.add dn=%s", dn)

    @atomic(key="write")
    def delete(self, store: DirectoryStore, dn: str) -> None:
        """
        Delete an entry.

        Args:
            dn: The DN of the entry to delete.

        Raises:
            NoSuchObject: No entry exists at ``dn``.

        """
        dn = normalize_dn(dn)
        if dn not in store:
            raise NoSuchObject(dn)
        store.remove(dn)
        self.logger.debug("ldapstore.backend.delete dn=%s", dn)

    @atomic(key="write")
    def modify(self, store: DirectoryStore, dn: str, modlist: ModifyModlist) -> None:
        """
        Apply a list of changes to an entry, in order, as one unit.

        Each change is an ``(op, attribute, values)`` tuple where ``op`` is one
        of ``ldap.MOD_ADD``, ``ldap.MOD_DELETE`` or ``ldap.MOD_REPLACE`` (or
        ``"add"``, ``"delete"``, ``"replace"``):

        * add: merge ``values`` into the attribute, skipping duplicates.
        * delete: remove ``values`` from the attribute, or the whole attribute
          if ``values`` is an empty list or ``None``.  A lone ``""`` is one
          value, not an empty list.
        * replace: set the attribute to exactly ``values``, or remove it if
          ``values`` is empty.

        An attribute left without values is removed.

        Args:
            dn: The DN of the entry to modify.
            modlist: The changes to apply.

        Raises:
            NoSuchObject: No entry exists at ``dn``.
            UnwillingToPerform: A change uses an unsupported operation.  No
                change from ``modlist`` is applied.

        """
        dn = normalize_dn(dn)
        entry = store.get(dn)
        if entry is None:
            raise NoSuchObject(dn)
        # Work on a copy so that a bad change leaves the stored entry untouched.
        new = entry.copy()
        for op, attr, values in modlist:
            op = MODIFY_OPERATIONS.get(op, op) if isinstance(op, str) else op
            attr = force_str(attr)
            values = coerce_values(values)
            if op == ldap.MOD_ADD:
                new.add_values(attr, values)
            elif op == ldap.MOD_DELETE:
                if values:
                    new.delete_values(attr, values)
                else:
                    new.delete_attribute(attr)
            elif op == ldap.MOD_REPLACE:
                new.replace_values(attr, values)
            else:
                msg = f"modify operation {op!r} on {attr!r} is not supported"
                raise UnwillingToPerform(msg)
        store.insert(new)
        self.logger.debug("ldapstore.backend.modify dn=%s changes=%d", dn, len(modlist))

    def close(self) -> None:
        """
        Write a shared-memory directory back to its snapshot.  Safe to call more
        than once; does nothing for file-backed backends, which persist after
        every write.
        """
        if self.closed:
            return
        self.closed = True
        if isinstance(self.transactions, SharedMemoryTransactions):
            self.store.persist()
