"""Request-level errors shared by guards, repositories and handlers."""

from __future__ import annotations


class PortalError(Exception):
    """Base class for errors that map onto an HTTP status.

    Attributes:
        message: Human-readable error message
        status_code: HTTP status used by the error presentation layer
    """

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(PortalError):
    """Resource missing, or hidden from anonymous callers."""

    status_code = 404

    def __init__(self, message: str = "Not Found") -> None:
        super().__init__(message)


class ForbiddenError(PortalError):
    """Session identity is not allowed to touch the resource."""

    status_code = 403

    def __init__(self, message: str = "Forbidden") -> None:
        super().__init__(message)


class ValidationError(PortalError):
    """Invalid input for a single field.

    Attributes:
        field: Name of the offending field
    """

    status_code = 400

    def __init__(self, field: str, message: str | None = None) -> None:
        super().__init__(message or f"The {field} field is required.")
        self.field = field
