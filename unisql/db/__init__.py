"""Environment, connection and cursor layer over the driver adapters."""

from unisql.db.base import (
    BaseDriver,
    ColumnInfo,
    ColumnValue,
    StatementResult,
    ValueKind,
)
from unisql.db.cursor import Cursor, CursorState
from unisql.db.connection import Connection
from unisql.db.environment import DriverFactory, Environment, open_environment
from unisql.db.manager import (
    DataSourceManager,
    get_data_source_manager,
    set_data_source_manager,
)
from unisql.db.adapters import (
    SQLiteDriver,
    MySQLDriver,
    PostgreSQLDriver,
)

__all__ = [
    # Base classes
    "BaseDriver",
    "ColumnInfo",
    "ColumnValue",
    "StatementResult",
    "ValueKind",
    # Object model
    "Environment",
    "Connection",
    "Cursor",
    "CursorState",
    "open_environment",
    # Driver and data source management
    "DriverFactory",
    "DataSourceManager",
    "get_data_source_manager",
    "set_data_source_manager",
    # Driver adapters
    "SQLiteDriver",
    "MySQLDriver",
    "PostgreSQLDriver",
]
