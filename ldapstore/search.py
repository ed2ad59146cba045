"""
Search scope handling and filter evaluation.

The directory is a flat key space, so "subtree" is emulated by a literal suffix
match on the normalized DN.  Filter evaluation is delegated to an evaluator
object with an ``evaluate(filter, attributes) -> bool`` method; by default
that is :py:class:`LdapFilterEvaluator`, which uses ``ldap_filter``.
"""

import logging
from functools import lru_cache
from typing import Any, Protocol

import ldap
from ldap_filter import Filter

from .directory import DirectoryStore
from .entry import Entry, normalize_dn
from .exceptions import NoSuchObject, UnwillingToPerform
from .typing import EntryAttributes, ResultCallback

logger = logging.getLogger(__name__)


class FilterEvaluator(Protocol):
    def evaluate(self, searchfilter: Any, attributes: EntryAttributes) -> bool: ...


@lru_cache(maxsize=256)
def parse_filter(searchfilter: str) -> Filter:
    """
    Parse an LDAP filter string, caching the result.

    Args:
        searchfilter: An RFC 4515 filter string, e.g. ``(cn=bob)``.

    Returns:
        The parsed ``ldap_filter`` object.

    """
    return Filter.parse(searchfilter)


class LdapFilterEvaluator:
    """
    Evaluate filters with ``ldap_filter``.

    The filter may be ``None`` (match everything), a filter string, or an
    ``ldap_filter`` object such as the ones built with ``Filter.attribute()``.
    """

    def evaluate(self, searchfilter: Any, attributes: EntryAttributes) -> bool:
        if searchfilter is None:
            return True
        if isinstance(searchfilter, bytes):
            searchfilter = searchfilter.decode("utf-8")
        if isinstance(searchfilter, str):
            searchfilter = parse_filter(searchfilter)
        return bool(searchfilter.match(attributes))


def select_attributes(
    attributes: EntryAttributes, attrlist: list[str] | None
) -> EntryAttributes:
    """
    Restrict ``attributes`` to the names in ``attrlist``.

    Args:
        attributes: The full attributes of an entry.
        attrlist: Requested attribute names.  ``None``, an empty list or a list
            containing ``"*"`` means every attribute.

    Returns:
        The selected attributes.

    """
    if not attrlist or "*" in attrlist:
        return attributes
    return {attr: values for attr, values in attributes.items() if attr in attrlist}


class SearchEvaluator:
    """
    Interpret a search scope against a store and send the matching entries.

    Keyword Args:
        filter_evaluator: The evaluator used to test entries against the search
            filter.

    """

    def __init__(self, filter_evaluator: FilterEvaluator | None = None) -> None:
        self.filter_evaluator: FilterEvaluator = (
            filter_evaluator if filter_evaluator is not None else LdapFilterEvaluator()
        )

    def _send(
        self,
        entry: Entry,
        callback: ResultCallback,
        attrlist: list[str] | None,
    ) -> None:
        logger.debug("ldapstore.search.send dn=%s", entry.dn)
        callback(entry.dn, select_attributes(entry.to_dict(), attrlist))

    def matches(self, entry: Entry, searchfilter: Any) -> bool:
        return self.filter_evaluator.evaluate(searchfilter, entry.to_dict())

    def search(
        self,
        store: DirectoryStore,
        basedn: str,
        scope: int,
        searchfilter: Any,
        callback: ResultCallback,
        attrlist: list[str] | None = None,
    ) -> int:
        """
        Send every entry within ``scope`` of ``basedn`` that matches
        ``searchfilter`` to ``callback``.

        Args:
            store: A store that has just been refreshed.
            basedn: The search base.
            scope: ``ldap.SCOPE_BASE`` or ``ldap.SCOPE_SUBTREE``.
            searchfilter: The filter handed to the filter evaluator.
            callback: Called as ``callback(dn, attributes)`` for each match.
            attrlist: Attribute names to return; see :py:func:`select_attributes`.

        Raises:
            NoSuchObject: A base scope search named a DN that does not exist.
            UnwillingToPerform: ``scope`` is not supported.

        Returns:
            The number of entries sent.

        """
        basedn = normalize_dn(basedn)
        logger.debug(
            "ldapstore.search basedn=%s scope=%s filter=%s", basedn, scope, searchfilter
        )
        if scope == ldap.SCOPE_BASE:
            entry = store.get(basedn)
            if entry is None:
                raise NoSuchObject(basedn)
            if not self.matches(entry, searchfilter):
                return 0
            self._send(entry, callback, attrlist)
            return 1
        if scope == ldap.SCOPE_SUBTREE:
            sent = 0
            for dn, entry in store.items():
                if not dn.endswith(basedn):
                    continue
                if not self.matches(entry, searchfilter):
                    continue
                self._send(entry, callback, attrlist)
                sent += 1
            return sent
        msg = f"search scope {scope} is not implemented"
        raise UnwillingToPerform(msg)
