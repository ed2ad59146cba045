"""
LDAP store type definitions.

This module provides type aliases for the directory data structures and the
callables exchanged with the protocol engine, using Python 3.10+ type hinting
conventions.
"""

from collections.abc import Callable
from typing import Any

AttributeValues = list[str]
EntryAttributes = dict[str, AttributeValues]
DirectoryData = dict[str, EntryAttributes]
ModifyOperation = tuple[int | str, str, Any]
ModifyModlist = list[ModifyOperation]
ResultCallback = Callable[[str, EntryAttributes], None]
