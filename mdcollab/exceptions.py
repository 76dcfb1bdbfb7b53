"""Application-level exception types.

Convention:
- ``DocumentError`` subclasses carry a client-safe message. Callers map them
  to their transport (HTTP status, CLI exit code) by type:

  ``NotFoundError`` (missing file/folder/edit/user), ``ForbiddenError``
  (role or ownership check failed), ``ConflictError`` (duplicate name),
  ``InvalidStateError`` (wrong workflow state or wrong kind of node),
  ``UpstreamError`` (GitHub non-2xx or network failure), ``ValidationError``
  (malformed id, missing field) and ``OperationCancelledError``.
- ``ValidationError`` is also a ``ValueError`` so generic business-validation
  handlers keep treating it as safe to forward.
- ``InternalServerError`` is for errors whose details must never reach clients
  (e.g. a corrupted folder hierarchy).
"""

from __future__ import annotations


class DocumentError(Exception):
    """Base class for recoverable errors raised by the service layer."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(DocumentError):
    """A referenced file, folder, edit, notification or user does not exist."""


class ForbiddenError(DocumentError):
    """The actor lacks the required role or ownership."""


class ConflictError(DocumentError):
    """The operation would create a duplicate."""


class InvalidStateError(DocumentError):
    """The target exists but is in the wrong state for the operation."""


class UpstreamError(DocumentError):
    """GitHub returned a non-2xx status or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ValidationError(DocumentError, ValueError):
    """Input is malformed or a required field is missing."""


class OperationCancelledError(DocumentError):
    """A caller-supplied cancellation signal stopped a long-running walk."""


class InternalServerError(Exception):
    """Raised for internal errors whose details must not be exposed to clients.

    Callers should log the full message server-side and report a generic
    failure.
    """
