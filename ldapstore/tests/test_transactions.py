"""
Tests for the write transaction coordinators.
"""

import tempfile
import threading
import unittest
from pathlib import Path
from unittest.mock import patch

import pytest

from ldapstore.directory import DirectoryStore
from ldapstore.entry import Entry
from ldapstore.exceptions import NoSuchObject
from ldapstore.transactions import FileLockTransactions, SharedMemoryTransactions


class TestFileLockTransactions(unittest.TestCase):
    """Test lock, refresh and persist around a mutation."""

    def setUp(self):
        """Set up test fixtures."""
        self.tmpdir = tempfile.TemporaryDirectory()
        self.path = Path(self.tmpdir.name) / "ldapdb.yaml"
        self.store = DirectoryStore(self.path)
        self.store.load()
        self.transactions = FileLockTransactions(self.store)

    def tearDown(self):
        """Remove the scratch directory."""
        self.tmpdir.cleanup()

    def other_store(self):
        store = DirectoryStore(self.path)
        store.load()
        return store

    def test_requires_snapshot_path(self):
        """Test that a memory-only store is refused."""
        with pytest.raises(ValueError):
            FileLockTransactions(DirectoryStore())

    def test_mutation_is_persisted(self):
        """Test that a successful mutation is persisted."""
        result = self.transactions.run_exclusive(
            lambda store: store.insert(Entry("dc=com", {"dc": ["com"]})) or "done"
        )
        self.assertEqual(result, "done")
        self.assertIn("dc=com", self.other_store())

    def test_refreshes_inside_lock(self):
        """Test that the store is refreshed after the lock is taken."""
        other = self.other_store()
        other.insert(Entry("dc=org", {"dc": ["org"]}))
        other.persist()

        seen = self.transactions.run_exclusive(lambda store: list(store))
        self.assertEqual(seen, ["dc=org"])

    def test_lock_is_held_during_mutation(self):
        """Test that the lock is held only while the mutation runs."""
        def mutation(store):
            self.assertTrue(self.transactions.in_transaction())

        self.transactions.run_exclusive(mutation)
        self.assertFalse(self.transactions.in_transaction())
        self.assertTrue(self.store.lock_path.exists())

    def test_failed_mutation_is_not_persisted(self):
        """Test that a failed mutation is not persisted."""
        self.transactions.run_exclusive(
            lambda store: store.insert(Entry("dc=com", {"dc": ["com"]}))
        )
        before = self.path.read_bytes()

        def mutation(store):
            store.insert(Entry("dc=org", {"dc": ["org"]}))
            raise NoSuchObject("cn=nobody")

        with patch.object(self.store, "persist") as persist:
            with pytest.raises(NoSuchObject):
                self.transactions.run_exclusive(mutation)
            persist.assert_not_called()
        self.assertEqual(self.path.read_bytes(), before)
        self.assertFalse(self.transactions.in_transaction())

    def test_failed_mutation_is_not_served_from_cache(self):
        """Test that changes from a failed mutation are dropped from the cache."""
        def mutation(store):
            store.insert(Entry("dc=org", {"dc": ["org"]}))
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            self.transactions.run_exclusive(mutation)
        self.transactions.refresh()
        self.assertNotIn("dc=org", self.store)

    def test_failed_persist_releases_lock(self):
        """Test that the lock is released when persist fails."""
        with patch.object(self.store, "persist", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                self.transactions.run_exclusive(lambda store: None)
        # A second transaction would block forever if the lock were still held.
        self.transactions.run_exclusive(
            lambda store: store.insert(Entry("dc=com", {"dc": ["com"]}))
        )
        self.assertIn("dc=com", self.other_store())

    def test_nested_transaction_runs_inline(self):
        """Test that a nested transaction runs inline and persists once."""
        def inner(store):
            store.insert(Entry("dc=org", {"dc": ["org"]}))

        def outer(store):
            store.insert(Entry("dc=com", {"dc": ["com"]}))
            self.transactions.run_exclusive(inner)

        with patch.object(self.store, "persist", wraps=self.store.persist) as persist:
            self.transactions.run_exclusive(outer)
            self.assertEqual(persist.call_count, 1)
        self.assertEqual(sorted(self.other_store()), ["dc=com", "dc=org"])

    def test_second_writer_waits_for_lock(self):
        """Test that a second writer blocks until the first releases the lock."""
        other = FileLockTransactions(self.other_store())
        inside = threading.Event()
        release = threading.Event()
        order = []

        def slow(store):
            inside.set()
            release.wait(5)
            order.append("first")

        def fast(store):
            order.append("second")

        first = threading.Thread(target=self.transactions.run_exclusive, args=(slow,))
        first.start()
        inside.wait(5)
        second = threading.Thread(target=other.run_exclusive, args=(fast,))
        second.start()
        second.join(0.2)
        self.assertTrue(second.is_alive())
        release.set()
        first.join(5)
        second.join(5)
        self.assertEqual(order, ["first", "second"])


class TestSharedMemoryTransactions(unittest.TestCase):
    """Test the lock-free coordinator."""

    def test_runs_mutation_without_persisting(self):
        """Test that the shared-memory coordinator never persists."""
        store = DirectoryStore()
        transactions = SharedMemoryTransactions(store)
        with patch.object(store, "persist") as persist:
            transactions.run_exclusive(
                lambda store: store.insert(Entry("dc=com", {"dc": ["com"]}))
            )
            persist.assert_not_called()
        self.assertIn("dc=com", store)
        self.assertFalse(transactions.refresh())
