"""
Per-request glue between a protocol engine and a :py:class:`DirectoryBackend`.

A protocol engine that would rather not catch exceptions can create one
:py:class:`Operation` per request and get an :py:class:`LDAPResult` back: the
result code, the diagnostic message and, for searches, the entries that were
sent.
"""

import logging
from collections.abc import Callable
from typing import Any, NamedTuple

from .backends import DirectoryBackend
from .exceptions import BackendError
from .typing import EntryAttributes, ModifyModlist

logger = logging.getLogger(__name__)

#: The result code for a successful operation
SUCCESS = 0


class LDAPResult(NamedTuple):
    message_id: int
    result_code: int
    matched_dn: str
    message: str
    entries: list[tuple[str, EntryAttributes]]


class Operation:
    """
    One client request against a backend.

    Typed backend failures become result codes; any other exception (I/O
    errors, for example) propagates to the protocol engine.

    Args:
        backend: The backend to run the request against.
        message_id: The protocol message id of the request.

    Keyword Args:
        send_entry: Called as ``send_entry(dn, attributes)`` for each search
            result, in addition to collecting it in the result.

    """

    def __init__(
        self,
        backend: DirectoryBackend,
        message_id: int,
        send_entry: Callable[[str, EntryAttributes], None] | None = None,
    ) -> None:
        self.backend = backend
        self.message_id = message_id
        self.send_entry = send_entry
        self.entries: list[tuple[str, EntryAttributes]] = []

    def send_search_result_entry(self, dn: str, attributes: EntryAttributes) -> None:
        self.entries.append((dn, attributes))
        if self.send_entry is not None:
            self.send_entry(dn, attributes)

    def _run(self, name: str, func: Callable, *args, **kwargs) -> LDAPResult:
        try:
            func(*args, **kwargs)
        except BackendError as e:
            logger.debug(
                "ldapstore.operation.%s.failed msgid=%s code=%s info=%s",
                name,
                self.message_id,
                e.result_code,
                e.info,
            )
            return LDAPResult(
                self.message_id, e.result_code, e.matched, e.info, self.entries
            )
        return LDAPResult(self.message_id, SUCCESS, "", "", self.entries)

    def search(
        self,
        basedn: str,
        scope: int,
        searchfilter: Any,
        attributes: list[str] | None = None,
    ) -> LDAPResult:
        return self._run(
            "search",
            self.backend.search,
            basedn,
            scope,
            searchfilter,
            self.send_search_result_entry,
            attributes=attributes,
        )

    def add(self, dn: str, attributes: Any) -> LDAPResult:
        return self._run("add", self.backend.add, dn, attributes)

    def delete(self, dn: str) -> LDAPResult:
        return self._run("delete", self.backend.delete, dn)

    def modify(self, dn: str, modlist: ModifyModlist) -> LDAPResult:
        return self._run("modify", self.backend.modify, dn, modlist)
