"""Driver adapters for the supported backends."""

from unisql.db.adapters.sqlite import SQLiteDriver
from unisql.db.adapters.mysql import MySQLDriver
from unisql.db.adapters.postgresql import PostgreSQLDriver

__all__ = [
    "SQLiteDriver",
    "MySQLDriver",
    "PostgreSQLDriver",
]
