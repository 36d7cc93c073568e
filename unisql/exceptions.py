"""Core exceptions for unisql."""

from typing import Any, Dict, Optional


class UniSQLError(Exception):
    """Base exception for all unisql errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(UniSQLError):
    """Raised when a configuration bundle or file is invalid."""
    pass


class DatabaseError(UniSQLError):
    """Raised when a driver or the backend behind it reports an error.

    ``message`` holds the backend diagnostic exactly as reported and
    ``driver_tag`` identifies the driver that raised it. The string form
    joins both as ``"<driver_tag>: <message>"``.
    """

    def __init__(
        self,
        message: str,
        driver_tag: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.driver_tag = driver_tag

    def __str__(self) -> str:
        if self.driver_tag:
            return f"{self.driver_tag}: {self.message}"
        return self.message


class ConnectionFailedError(DatabaseError):
    """Raised when a session cannot be opened or authenticated."""
    pass


class StatementError(DatabaseError):
    """Raised when a statement cannot be prepared or parsed."""
    pass


class ExecutionError(DatabaseError):
    """Raised when a prepared statement or transaction command fails."""
    pass


class ResourceStateError(DatabaseError):
    """Raised on use of a closed handle, or when closing a connection
    that still has open cursors."""
    pass


class UnsupportedTypeError(DatabaseError):
    """Raised when a column carries a native type with no value mapping."""

    def __init__(
        self,
        message: str,
        native_type: Any = None,
        driver_tag: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, driver_tag, details)
        self.native_type = native_type
