"""
Backend configuration from Django settings.

Backends are declared in ``settings.LDAPSTORE_BACKENDS``::

    LDAPSTORE_BACKENDS = {
        "default": {
            "MODE": "file",
            "PATH": "/var/lib/ldapstore/ldapdb.yaml",
        },
        "scratch": {
            "MODE": "memory",
            "PATH": "/var/lib/ldapstore/scratch.yaml",
            "PERSIST_ON_EXIT": True,
        },
    }

``MODE`` is ``"file"`` for worker processes sharing one snapshot (the default)
or ``"memory"`` for a single process whose connections share the directory in
memory.  ``PATH`` is required for ``"file"`` and optional for ``"memory"``.
``FILE_MODE`` sets the permission bits of written snapshots.
"""

import logging
import threading
from typing import Any, ClassVar

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from .backends import DirectoryBackend

logger = logging.getLogger(__name__)

#: The modes a backend may be configured with
MODES = ("file", "memory")


class BackendRegistry:
    """
    Builds each configured backend once and hands out the same instance
    afterwards.
    """

    #: Class-level cache of built backends per alias
    _backends: ClassVar[dict[str, DirectoryBackend]] = {}
    #: Thread lock for cache access
    _lock = threading.Lock()

    @classmethod
    def _get_config(cls, alias: str) -> dict[str, Any]:
        """
        Look up and validate the configuration for ``alias``.

        Args:
            alias: A key of ``settings.LDAPSTORE_BACKENDS``.

        Raises:
            ImproperlyConfigured: The configuration is missing or invalid.

        Returns:
            The backend's configuration dictionary.

        """
        try:
            backends = settings.LDAPSTORE_BACKENDS
        except AttributeError as e:
            msg = "settings.LDAPSTORE_BACKENDS does not exist!"
            raise ImproperlyConfigured(msg) from e
        try:
            config = backends[alias]
        except KeyError as e:
            msg = f"settings.LDAPSTORE_BACKENDS has no key '{alias}'"
            raise ImproperlyConfigured(msg) from e
        mode = config.get("MODE", "file")
        if mode not in MODES:
            msg = (
                f"settings.LDAPSTORE_BACKENDS['{alias}']['MODE'] must be one of "
                f"{', '.join(MODES)}, not {mode!r}"
            )
            raise ImproperlyConfigured(msg)
        if mode == "file" and not config.get("PATH"):
            msg = f"settings.LDAPSTORE_BACKENDS['{alias}'] has MODE 'file' but no 'PATH'"
            raise ImproperlyConfigured(msg)
        return config

    @classmethod
    def _build(cls, alias: str) -> DirectoryBackend:
        config = cls._get_config(alias)
        file_mode = config.get("FILE_MODE", 0o644)
        if config.get("MODE", "file") == "file":
            backend = DirectoryBackend.file_backed(config["PATH"], file_mode=file_mode)
        else:
            backend = DirectoryBackend.shared_memory(
                config.get("PATH"),
                persist_on_exit=config.get("PERSIST_ON_EXIT", False),
                file_mode=file_mode,
            )
        logger.info(
            "ldapstore.conf.backend.built alias=%s mode=%s path=%s",
            alias,
            config.get("MODE", "file"),
            config.get("PATH"),
        )
        return backend

    @classmethod
    def get(cls, alias: str = "default") -> DirectoryBackend:
        with cls._lock:
            if alias not in cls._backends:
                cls._backends[alias] = cls._build(alias)
            return cls._backends[alias]

    @classmethod
    def clear_cache(cls) -> None:
        """Forget every built backend.  Mostly useful in tests."""
        with cls._lock:
            cls._backends.clear()


def get_backend(alias: str = "default") -> DirectoryBackend:
    """
    Return the backend configured as ``alias`` in
    ``settings.LDAPSTORE_BACKENDS``.

    Args:
        alias: The backend's key in ``settings.LDAPSTORE_BACKENDS``.

    Raises:
        ImproperlyConfigured: The backend is not configured correctly.

    Returns:
        The backend, built on first use.

    """
    return BackendRegistry.get(alias)


def clear_cache() -> None:
    BackendRegistry.clear_cache()
