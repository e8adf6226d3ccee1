"""Typed failures raised by the explorer core.

Routers never catch these: the exception handler registered in
``dbexplorer.main`` renders them into the standard error envelope.
"""

from typing import Any

from fastapi import status


class ExplorerError(Exception):
    """Base class for failures surfaced to API callers."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error: str = "internal_error"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.error,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(ExplorerError):
    """A connection profile or saved query does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    error = "not_found"


class ValidationFailedError(ExplorerError):
    """Caller-supplied input was rejected before any network call."""

    status_code = status.HTTP_400_BAD_REQUEST
    error = "validation_failed"


class ConnectionFailedError(ExplorerError):
    """A session with the target database could not be established."""

    status_code = status.HTTP_400_BAD_REQUEST
    error = "connection_failed"


class QueryFailedError(ExplorerError):
    """The target database rejected a statement."""

    status_code = status.HTTP_400_BAD_REQUEST
    error = "query_failed"

    @classmethod
    def from_driver_error(cls, exc: Exception, **details: Any) -> "QueryFailedError":
        """Wrap a driver exception, keeping its message verbatim."""
        driver_message = str(exc)
        sqlstate = getattr(exc, "sqlstate", None)
        if sqlstate:
            details["sqlstate"] = sqlstate
        details["driver_message"] = driver_message
        return cls(f"Query execution failed: {driver_message}", details)
