"""unisql: a uniform environment/connection/cursor layer over native database clients.

unisql provides:
- One object model for every backend: Environment, Connection, Cursor
- Embedded SQLite, MySQL and PostgreSQL drivers
- Explicit transaction-mode control with auto-commit switching
- Typed configuration with YAML data source files
- A small CLI for running statements against configured data sources
"""

__version__ = "0.1.0"
__author__ = "David Schaaf"
__email__ = "your.email@example.com"
__license__ = "MIT"

# Core exports
from unisql.exceptions import (
    UniSQLError,
    ConfigurationError,
    DatabaseError,
    ConnectionFailedError,
    StatementError,
    ExecutionError,
    ResourceStateError,
    UnsupportedTypeError,
)
from unisql.db import Connection, Cursor, Environment, open_environment

__all__ = [
    "__version__",
    "UniSQLError",
    "ConfigurationError",
    "DatabaseError",
    "ConnectionFailedError",
    "StatementError",
    "ExecutionError",
    "ResourceStateError",
    "UnsupportedTypeError",
    "Connection",
    "Cursor",
    "Environment",
    "open_environment",
]
