"""Error taxonomy for the ledger core.

Every failure the core reports is a :class:`LedgerError` tagged with an
:class:`ErrorKind`.  The kind decides the transport status, but that mapping
happens only at the HTTP boundary (``ledger.main``); nothing inside the core
knows about status codes.

Integrity-audit findings are *not* errors and never appear here.
"""
from __future__ import annotations

import enum
from typing import Any


class ErrorKind(str, enum.Enum):
    VALIDATION = "validation"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    AUTHORIZATION = "authorization"


# Default machine-readable code per kind
_DEFAULT_CODES: dict[ErrorKind, str] = {
    ErrorKind.VALIDATION: "VALIDATION_ERROR",
    ErrorKind.CONFLICT: "CONFLICT",
    ErrorKind.NOT_FOUND: "NOT_FOUND",
    ErrorKind.AUTHORIZATION: "FORBIDDEN",
}


class LedgerError(Exception):
    """Base class carrying a kind, a code, a human hint and structured details."""

    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        hint: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or _DEFAULT_CODES[self.kind]
        self.hint = hint
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "kind": self.kind.value,
            "code": self.code,
            "message": self.message,
        }
        if self.hint:
            body["hint"] = self.hint
        if self.details is not None:
            body["details"] = self.details
        return body

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.code}: {self.message!r}>"


class ValidationError(LedgerError):
    """Malformed or semantically invalid input."""

    kind = ErrorKind.VALIDATION


class ConflictError(LedgerError):
    """A legitimate competing state blocks the request."""

    kind = ErrorKind.CONFLICT


class NotFoundError(LedgerError):
    """The referenced record does not exist in the caller's organization."""

    kind = ErrorKind.NOT_FOUND


class AuthorizationError(LedgerError):
    """The caller lacks permissions or holds a stale membership."""

    kind = ErrorKind.AUTHORIZATION
