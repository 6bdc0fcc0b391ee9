"""Typed failures for ledger operations.

Every rejected call maps to exactly one ErrorKind. All three are terminal:
the core never retries, and a failure always means nothing was written.
"""

from __future__ import annotations

import enum


class ErrorKind(str, enum.Enum):
    """Classification of rejected ledger calls."""
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    INVALID_ARGUMENT = "invalid_argument"


class LedgerError(ValueError):
    """Base class for typed ledger failures."""
    kind: ErrorKind

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class Unauthorized(LedgerError):
    """Caller lacks the required role or ownership relation."""
    kind = ErrorKind.UNAUTHORIZED


class NotFound(LedgerError):
    """Referenced batch id was never created."""
    kind = ErrorKind.NOT_FOUND


class InvalidArgument(LedgerError):
    """Null or self-referential target, or malformed reading arrays."""
    kind = ErrorKind.INVALID_ARGUMENT
