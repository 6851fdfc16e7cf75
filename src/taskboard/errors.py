from __future__ import annotations


class BoardError(Exception):
    """Base class for every error raised by the board core."""


# PUBLIC_INTERFACE
class ValidationError(BoardError):
    """A required field (task/column title, personnel name, ...) is empty or malformed."""


# PUBLIC_INTERFACE
class AuthError(BoardError):
    """An operation was attempted before an identity was resolved."""


# PUBLIC_INTERFACE
class ProtectedEntityError(BoardError):
    """Attempt to delete one of the reserved columns."""


# PUBLIC_INTERFACE
class NotFoundError(BoardError):
    """The referenced task, column, checklist item or person is not loaded."""


class RemoteError(BoardError):
    """A call to the remote document store failed."""


# PUBLIC_INTERFACE
class RemoteWriteError(RemoteError):
    """A create/merge/delete against the remote store failed."""


# PUBLIC_INTERFACE
class RemoteReadError(RemoteError):
    """A read or subscription against the remote store failed."""
