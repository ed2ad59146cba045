"""
Directory entry model.

An :py:class:`Entry` is one directory record: a normalized DN plus a mapping
of attribute name to a deduplicated, insertion-ordered list of string values.
An attribute never exists with no values.
"""

from collections.abc import Iterable, Mapping
from typing import Any

from django.utils.encoding import force_str

from .typing import AttributeValues, EntryAttributes


def normalize_dn(dn: str | bytes) -> str:
    """
    Return the canonical form of ``dn`` used for every storage and lookup key.

    Args:
        dn: The distinguished name as given by the client.

    Returns:
        The lower-cased DN.

    """
    return force_str(dn).lower()


def coerce_values(values: Any) -> AttributeValues:
    """
    Turn whatever the protocol engine handed us into a list of ``str`` values.

    A lone string or bytes value is treated as a one element list, and ``None``
    as no values at all.

    Args:
        values: A value, an iterable of values, or ``None``.

    Returns:
        A list of decoded string values, in their original order.

    """
    if values is None:
        return []
    if isinstance(values, (str, bytes)):
        values = [values]
    return [force_str(value) for value in values]


class Entry:
    """
    A single directory entry.

    None of the mutators raise: callers are responsible for existence checks.

    Args:
        dn: The distinguished name of the entry.  It is stored normalized.

    Keyword Args:
        attributes: Initial attributes, either a mapping or an iterable of
            ``(attribute, values)`` pairs.  Repeated attributes are merged.

    """

    def __init__(
        self,
        dn: str | bytes,
        attributes: dict[str, Any] | Iterable[tuple[str, Any]] | None = None,
    ) -> None:
        self.dn: str = normalize_dn(dn)
        self.attributes: EntryAttributes = {}
        if attributes:
            pairs = attributes.items() if isinstance(attributes, Mapping) else attributes
            for attr, values in pairs:
                self.add_values(force_str(attr), values)

    def get(self, attr: str) -> AttributeValues:
        """
        Return a copy of the values of ``attr``, or an empty list if absent.
        """
        return list(self.attributes.get(attr, []))

    def add_values(self, attr: str, values: Any) -> None:
        """
        Merge ``values`` into ``attr``, skipping any value already present.

        Args:
            attr: The attribute name.
            values: The values to add.

        """
        current = self.attributes.get(attr, [])
        merged = list(current)
        for value in coerce_values(values):
            if value not in merged:
                merged.append(value)
        if merged:
            self.attributes[attr] = merged

    def delete_values(self, attr: str, values: Any) -> None:
        """
        Remove ``values`` from ``attr``.  If nothing is left, the attribute is
        removed entirely.

        Args:
            attr: The attribute name.
            values: The values to remove.  Values not present are ignored.

        """
        if attr not in self.attributes:
            return
        doomed = coerce_values(values)
        remaining = [value for value in self.attributes[attr] if value not in doomed]
        self.replace_values(attr, remaining)

    def replace_values(self, attr: str, values: Any) -> None:
        """
        Set ``attr`` to exactly ``values``, or delete it if ``values`` is empty.

        Args:
            attr: The attribute name.
            values: The new values.

        """
        self.delete_attribute(attr)
        self.add_values(attr, values)

    def delete_attribute(self, attr: str) -> None:
        self.attributes.pop(attr, None)

    def copy(self) -> "Entry":
        entry = Entry(self.dn)
        entry.attributes = self.to_dict()
        return entry

    def to_dict(self) -> EntryAttributes:
        """
        Return the attributes as a plain ``dict`` of lists, safe for callers to
        mutate.
        """
        return {attr: list(values) for attr, values in self.attributes.items()}

    def __contains__(self, attr: str) -> bool:
        return attr in self.attributes

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Entry):
            return NotImplemented
        if self.dn != other.dn or self.attributes.keys() != other.attributes.keys():
            return False
        return all(
            set(values) == set(other.attributes[attr])
            for attr, values in self.attributes.items()
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"<Entry dn={self.dn!r} attributes={self.attributes!r}>"
