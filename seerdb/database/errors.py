"""Error taxonomy shared by every driver."""

from __future__ import annotations


class ConfigurationError(ValueError):
    """Raised synchronously when a connection cannot even be constructed."""


class DatabaseError(RuntimeError):
    """A driver failure carrying the native error code and detail."""

    def __init__(self, message: str, code: str | None = None, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.detail = detail

    def __str__(self) -> str:
        return self.message


class DatabaseConnectionError(DatabaseError):
    """Authentication or network failure while opening a connection."""


class QueryTimeoutError(DatabaseError):
    """A statement exceeded its deadline."""

    def __init__(self, message: str = "Query timed out.", code: str | None = None, detail: str | None = None) -> None:
        super().__init__(message, code, detail)


__all__ = [
    "ConfigurationError",
    "DatabaseConnectionError",
    "DatabaseError",
    "QueryTimeoutError",
]
