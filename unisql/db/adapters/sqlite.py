"""SQLite driver adapter."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Sequence, Tuple, Type

import apsw

from unisql.config.models import ConnectConfig, DriverType
from unisql.db.base import BaseDriver, ColumnInfo, ColumnValue, StatementResult, ValueKind
from unisql.exceptions import (
    ConnectionFailedError,
    DatabaseError,
    ExecutionError,
    StatementError,
)

logger = logging.getLogger(__name__)

# The engine reports one of five storage classes per value; apsw hands each
# back as a fixed Python type.
STORAGE_CLASSES = {
    int: ValueKind.INTEGER,
    float: ValueKind.FLOAT,
    str: ValueKind.TEXT,
    bytes: ValueKind.BINARY,
    type(None): ValueKind.NULL,
}

SQLITE_NATIVE_ERRORS = (apsw.Error,)

OPEN_FLAGS = apsw.SQLITE_OPEN_READWRITE | apsw.SQLITE_OPEN_CREATE


@dataclass
class SQLiteStatement:
    """A stepping apsw cursor."""
    cursor: apsw.Cursor


class SQLiteDriver(BaseDriver):
    """SQLite driver adapter built on apsw.

    apsw never issues ``BEGIN`` on its own, so transactions are begun and
    ended only on request of the owning Connection. Result columns report
    the type named in the table definition (``VARCHAR(10)``, ``DATETIME``);
    expression columns have no declared type and report an empty name.
    """

    driver_type = DriverType.SQLITE3
    supports_lock_timeout = True

    def get_driver_name(self) -> str:
        """Get the driver name for SQLite."""
        return "sqlite3"

    def open_session(self, config: ConnectConfig) -> apsw.Connection:
        """Open (creating if needed) the database file named by ``config.source``.

        A negative ``lock_timeout_ms`` disables waiting on locks.
        """
        source = config.source
        flags = OPEN_FLAGS

        if source.startswith("file:"):
            flags |= apsw.SQLITE_OPEN_URI
        elif source != ":memory:":
            db_path = Path(source)
            if not db_path.is_absolute():
                db_path = Path.cwd() / db_path
            db_path.parent.mkdir(parents=True, exist_ok=True)
            source = str(db_path)

        timeout_ms = config.lock_timeout_ms if config.lock_timeout_ms is not None else 0

        try:
            session = apsw.Connection(source, flags=flags)
            if timeout_ms >= 0:
                session.set_busy_timeout(timeout_ms)
        except SQLITE_NATIVE_ERRORS as exc:
            raise self.wrap_error(ConnectionFailedError, exc) from exc

        logger.debug("Opened SQLite session on %s (lock timeout %sms)", source, timeout_ms)
        return session

    def close_session(self, session: apsw.Connection) -> None:
        try:
            session.close()
        except SQLITE_NATIVE_ERRORS as exc:
            raise self.wrap_error(ExecutionError, exc) from exc

    def execute(self, session: apsw.Connection, sql: str) -> StatementResult:
        """Execute ``sql``; a statement with any result columns is a query, even with no rows."""
        cursor = session.cursor()
        described = []

        def capture_description(trace_cursor: apsw.Cursor, statement: str, bindings: Any) -> bool:
            # Runs once the statement is prepared and before its first step,
            # so the description exists even when no row follows.
            described.append(trace_cursor.get_description())
            return True

        cursor.exec_trace = capture_description
        changes_before = session.total_changes()
        try:
            cursor.execute(sql)
        except SQLITE_NATIVE_ERRORS as exc:
            cursor.close()
            raise self.wrap_error(self._error_class(exc), exc) from exc

        description = described[-1] if described else ()
        if not description:
            cursor.close()
            return StatementResult(rows_affected=session.total_changes() - changes_before)

        cursor.exec_trace = None
        return StatementResult(
            handle=SQLiteStatement(cursor=cursor),
            columns=self._columns(description),
        )

    def fetch_row(self, handle: SQLiteStatement) -> Optional[Tuple[ColumnValue, ...]]:
        try:
            raw_row = next(handle.cursor)
        except StopIteration:
            return None
        except SQLITE_NATIVE_ERRORS as exc:
            raise self.wrap_error(ExecutionError, exc) from exc
        return self.decode_row([type(raw) for raw in raw_row], raw_row)

    def finalize(self, handle: SQLiteStatement) -> None:
        try:
            handle.cursor.close()
        except SQLITE_NATIVE_ERRORS as exc:
            raise self.wrap_error(ExecutionError, exc) from exc

    def begin(self, session: apsw.Connection) -> None:
        self._run(session, "BEGIN")

    def commit(self, session: apsw.Connection) -> None:
        # COMMIT outside a transaction is an engine error; treat it as a no-op
        # like the network backends do.
        if session.in_transaction:
            self._run(session, "COMMIT")

    def rollback(self, session: apsw.Connection) -> None:
        if session.in_transaction:
            self._run(session, "ROLLBACK")

    def set_autocommit(self, session: apsw.Connection, enabled: bool) -> None:
        # The engine auto-commits whenever no explicit transaction is open.
        pass

    def last_insert_id(self, session: apsw.Connection) -> int:
        try:
            return session.last_insert_rowid()
        except SQLITE_NATIVE_ERRORS as exc:
            raise self.wrap_error(ExecutionError, exc) from exc

    def escape(self, session: apsw.Connection, text: str) -> str:
        return text.replace("'", "''")

    def decode_value(self, native_type: Any, raw: Any) -> ColumnValue:
        kind = STORAGE_CLASSES.get(native_type)
        if kind is None:
            raise self.unsupported_type(native_type)
        return ColumnValue(kind, raw)

    def diagnostic(self, exc: BaseException) -> str:
        # apsw prefixes messages with the exception class name
        message = str(exc)
        prefix = f"{type(exc).__name__}: "
        return message[len(prefix):] if message.startswith(prefix) else message

    def _run(self, session: apsw.Connection, sql: str) -> None:
        try:
            session.execute(sql)
        except SQLITE_NATIVE_ERRORS as exc:
            raise self.wrap_error(ExecutionError, exc) from exc

    @staticmethod
    def _columns(description: Sequence[Tuple[str, Optional[str]]]) -> list:
        return [
            ColumnInfo(name=name, declared_type=declared_type or "")
            for name, declared_type in description
        ]

    @staticmethod
    def _error_class(exc: BaseException) -> Type[DatabaseError]:
        """Separate preparation failures (SQLITE_ERROR) from failures while running."""
        if isinstance(exc, apsw.SQLError):
            return StatementError
        return ExecutionError
