"""
In-memory directory cache backed by a single YAML snapshot file.

This module provides :py:class:`DirectoryStore`, which owns the in-memory copy
of every entry, decides when that copy is stale relative to the snapshot on
disk, and writes the snapshot back atomically.  Several processes may each hold
their own ``DirectoryStore`` for the same snapshot; the only thing they share is
the file itself.
"""

import logging
import os
import tempfile
from collections import namedtuple
from collections.abc import Iterator
from contextlib import suppress
from pathlib import Path

import yaml

from .entry import Entry, normalize_dn
from .exceptions import SnapshotError
from .typing import DirectoryData

logger = logging.getLogger(__name__)


class FreshnessToken(namedtuple("FreshnessToken", ["device", "inode", "mtime_ns", "size"])):
    """
    The identity and modification time of one version of the snapshot file.

    Two tokens compare equal only if they describe the same version of the file.
    """

    __slots__ = ()

    @classmethod
    def from_stat(cls, stat: os.stat_result) -> "FreshnessToken":
        return cls(stat.st_dev, stat.st_ino, stat.st_mtime_ns, stat.st_size)


class DirectoryStore:
    """
    The cached directory plus the freshness token of the snapshot it came from.

    Callers must call :py:meth:`refresh_if_stale` before relying on the contents
    for a search or for the read phase of a write transaction.

    A store created without a ``path`` lives purely in memory: loading,
    refreshing and persisting do nothing.

    Args:
        path: The snapshot file, or ``None`` for a memory-only store.

    Keyword Args:
        file_mode: Permission bits for newly written snapshots.

    """

    def __init__(self, path: str | Path | None = None, file_mode: int = 0o644) -> None:
        self.path: Path | None = Path(path) if path is not None else None
        self.file_mode = file_mode
        #: normalized DN -> :py:class:`Entry`
        self.entries: dict[str, Entry] = {}
        #: Token of the snapshot our entries were loaded from or written to
        self.token: FreshnessToken | None = None
        self.loaded: bool = False

    @property
    def lock_path(self) -> Path | None:
        """
        The lock file that serializes writers of our snapshot.
        """
        if self.path is None:
            return None
        return self.path.with_name(self.path.name + ".lock")

    # -----------------------
    # Snapshot I/O
    # -----------------------

    def _parse(self, data: object) -> dict[str, Entry]:
        """
        Convert a loaded YAML document into entries keyed by normalized DN.

        Raises:
            SnapshotError: The document is not a mapping of DN to attributes.

        """
        if data is None:
            return {}
        if not isinstance(data, dict):
            msg = f"{self.path}: snapshot must be a mapping of DN to attributes"
            raise SnapshotError(msg)
        entries: dict[str, Entry] = {}
        for dn, attributes in data.items():
            if attributes is None:
                attributes = {}
            if not isinstance(attributes, dict):
                msg = f"{self.path}: attributes of {dn!r} must be a mapping"
                raise SnapshotError(msg)
            entry = Entry(str(dn), attributes)
            entries[entry.dn] = entry
        return entries

    def load(self) -> None:
        """
        Read the snapshot, replacing whatever we had cached.  A missing snapshot
        is an empty directory, not an error.
        """
        if self.path is None:
            self.loaded = True
            return
        try:
            with self.path.open(encoding="utf-8") as fh:
                token = FreshnessToken.from_stat(os.fstat(fh.fileno()))
                entries = self._parse(yaml.safe_load(fh))
        except FileNotFoundError:
            entries = {}
            token = None
            logger.info("ldapstore.store.load.missing path=%s", self.path)
        else:
            logger.info(
                "ldapstore.store.load path=%s entries=%d", self.path, len(entries)
            )
        # Replace both together so the cache always describes one snapshot.
        self.entries, self.token = entries, token
        self.loaded = True

    def refresh_if_stale(self) -> bool:
        """
        Reload the snapshot if it changed on disk since we last read or wrote it.

        Returns:
            ``True`` if the cache was reloaded, ``False`` if it was already fresh.

        """
        if self.path is None:
            return False
        try:
            current: FreshnessToken | None = FreshnessToken.from_stat(
                os.stat(self.path)
            )
        except FileNotFoundError:
            current = None
        if self.loaded and current == self.token:
            return False
        self.load()
        logger.debug(
            "ldapstore.store.refresh.reloaded path=%s entries=%d",
            self.path,
            len(self.entries),
        )
        return True

    def invalidate(self) -> None:
        """
        Forget our freshness token so that the next refresh re-reads the
        snapshot.  Used to throw away uncommitted in-memory changes.
        """
        self.token = None
        self.loaded = False

    def persist(self) -> None:
        """
        Write the whole directory to a temporary file beside the snapshot and
        rename it over the snapshot.  Readers see either the old or the new
        snapshot, never a partial one.
        """
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                yaml.safe_dump(
                    self.to_dict(),
                    fh,
                    default_flow_style=False,
                    sort_keys=False,
                    allow_unicode=True,
                )
                fh.flush()
                os.fsync(fh.fileno())
            os.chmod(tmp_path, self.file_mode)
            os.replace(tmp_path, self.path)
        except Exception:
            with suppress(FileNotFoundError):
                os.unlink(tmp_path)
            raise
        self.token = FreshnessToken.from_stat(os.stat(self.path))
        self.loaded = True
        logger.info(
            "ldapstore.store.persist path=%s entries=%d", self.path, len(self.entries)
        )

    # -----------------------
    # Entry access
    # -----------------------

    def get(self, dn: str) -> Entry | None:
        return self.entries.get(normalize_dn(dn))

    def insert(self, entry: Entry) -> None:
        self.entries[entry.dn] = entry

    def remove(self, dn: str) -> None:
        del self.entries[normalize_dn(dn)]

    def items(self) -> list[tuple[str, Entry]]:
        """
        Return a snapshot of ``(dn, entry)`` pairs that stays valid while the
        directory is mutated.
        """
        return list(self.entries.items())

    def to_dict(self) -> DirectoryData:
        return {dn: entry.to_dict() for dn, entry in self.entries.items()}

    def __contains__(self, dn: str) -> bool:
        return normalize_dn(dn) in self.entries

    def __iter__(self) -> Iterator[str]:
        return iter(list(self.entries))

    def __len__(self) -> int:
        return len(self.entries)
