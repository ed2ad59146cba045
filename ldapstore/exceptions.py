"""
Typed failures raised by directory backend operations.

Each failure is also an instance of the matching python-ldap exception class,
so a protocol engine that already speaks python-ldap can catch
``ldap.NO_SUCH_OBJECT`` and friends without knowing about this package.  Every
failure carries the LDAP result code the engine should answer with.
"""

import ldap


class BackendError(ldap.LDAPError):
    """
    Base class for failures that map onto an LDAP result code.

    Args:
        info: Human readable diagnostic message.

    Keyword Args:
        matched: The matched DN to report back to the client, if any.

    """

    #: The LDAP result code for this failure.
    result_code: int = 80
    #: The short description python-ldap would report for this result code.
    desc: str = "Other (e.g., implementation specific) error"

    def __init__(self, info: str = "", matched: str = "") -> None:
        self.info = info
        self.matched = matched
        super().__init__(
            {
                "result": self.result_code,
                "desc": self.desc,
                "info": info,
                "matched": matched,
            }
        )

    def __str__(self) -> str:
        if self.info:
            return f"{self.desc}: {self.info}"
        return self.desc


class NoSuchObject(BackendError, ldap.NO_SUCH_OBJECT):
    """Raised when the target DN of an operation does not exist."""

    result_code = 32
    desc = "No such object"


class EntryAlreadyExists(BackendError, ldap.ALREADY_EXISTS):
    """Raised by ``add`` when an entry already exists at the target DN."""

    result_code = 68
    desc = "Already exists"


class UnwillingToPerform(BackendError, ldap.UNWILLING_TO_PERFORM):
    """Raised for requests this backend explicitly does not support."""

    result_code = 53
    desc = "Server is unwilling to perform"


class SnapshotError(ValueError):
    """Raised when a persisted snapshot is not a mapping of DN to attributes."""
