"""MySQL driver adapter."""

import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple, Type

import pymysql
from pymysql.constants import FIELD_TYPE
from pymysql.converters import conversions

from unisql.config.models import ConnectConfig, DriverType
from unisql.db.base import BaseDriver, ColumnInfo, ColumnValue, StatementResult, ValueKind
from unisql.exceptions import (
    ConnectionFailedError,
    DatabaseError,
    ExecutionError,
    StatementError,
)

logger = logging.getLogger(__name__)

# Encoders only. With no decoders registered pymysql hands every value back
# exactly as the server sent it (text, or bytes for binary collations) and
# the type tables below do the decoding.
RAW_CONVERSIONS = {key: value for key, value in conversions.items() if not isinstance(key, int)}

INTEGER_TYPES = frozenset({
    FIELD_TYPE.TINY, FIELD_TYPE.SHORT, FIELD_TYPE.LONG, FIELD_TYPE.LONGLONG,
    FIELD_TYPE.INT24, FIELD_TYPE.YEAR,
})
FLOAT_TYPES = frozenset({
    FIELD_TYPE.DECIMAL, FIELD_TYPE.NEWDECIMAL, FIELD_TYPE.FLOAT, FIELD_TYPE.DOUBLE,
})
TEXT_TYPES = frozenset({
    FIELD_TYPE.VARCHAR, FIELD_TYPE.VAR_STRING, FIELD_TYPE.STRING,
    FIELD_TYPE.ENUM, FIELD_TYPE.SET, FIELD_TYPE.JSON,
    FIELD_TYPE.DATE, FIELD_TYPE.NEWDATE, FIELD_TYPE.DATETIME,
    FIELD_TYPE.TIME, FIELD_TYPE.TIMESTAMP,
})
BINARY_TYPES = frozenset({
    FIELD_TYPE.TINY_BLOB, FIELD_TYPE.MEDIUM_BLOB, FIELD_TYPE.LONG_BLOB,
    FIELD_TYPE.BLOB, FIELD_TYPE.BIT, FIELD_TYPE.GEOMETRY,
})

COLUMN_TYPE_NAMES = {
    FIELD_TYPE.VAR_STRING: "string",
    FIELD_TYPE.VARCHAR: "string",
    FIELD_TYPE.STRING: "string",
    FIELD_TYPE.JSON: "string",
    FIELD_TYPE.DECIMAL: "number",
    FIELD_TYPE.NEWDECIMAL: "number",
    FIELD_TYPE.SHORT: "number",
    FIELD_TYPE.LONG: "number",
    FIELD_TYPE.FLOAT: "number",
    FIELD_TYPE.DOUBLE: "number",
    FIELD_TYPE.LONGLONG: "number",
    FIELD_TYPE.INT24: "number",
    FIELD_TYPE.YEAR: "number",
    FIELD_TYPE.TINY: "number",
    FIELD_TYPE.TINY_BLOB: "binary",
    FIELD_TYPE.MEDIUM_BLOB: "binary",
    FIELD_TYPE.LONG_BLOB: "binary",
    FIELD_TYPE.BLOB: "binary",
    FIELD_TYPE.BIT: "binary",
    FIELD_TYPE.GEOMETRY: "binary",
    FIELD_TYPE.DATE: "date",
    FIELD_TYPE.NEWDATE: "date",
    FIELD_TYPE.DATETIME: "datetime",
    FIELD_TYPE.TIME: "time",
    FIELD_TYPE.TIMESTAMP: "timestamp",
    FIELD_TYPE.ENUM: "set",
    FIELD_TYPE.SET: "set",
    FIELD_TYPE.NULL: "null",
}

# Extra pymysql.connect keywords accepted from ConnectConfig.options.
PASSTHROUGH_OPTIONS = (
    "read_timeout",
    "write_timeout",
    "unix_socket",
    "init_command",
    "sql_mode",
    "ssl",
)


@dataclass
class MySQLStatement:
    """A buffered result and the native type code of each column."""
    cursor: Any
    type_codes: List[int]


class MySQLDriver(BaseDriver):
    """MySQL driver adapter."""

    driver_type = DriverType.MYSQL
    default_port = 3306

    def get_driver_name(self) -> str:
        """Get the driver name for MySQL."""
        return "pymysql"

    def open_session(self, config: ConnectConfig) -> Any:
        if config.lock_timeout_ms is not None:
            logger.debug("lock_timeout_ms does not apply to MySQL sessions; ignoring it")

        options = config.options
        connect_args = {key: options[key] for key in PASSTHROUGH_OPTIONS if key in options}

        try:
            session = pymysql.connect(
                host=config.host or "localhost",
                port=config.port or self.default_port,
                user=config.username,
                password=config.password or "",
                database=config.source,
                charset=options.get("charset", "utf8mb4"),
                connect_timeout=options.get("connect_timeout", 10),
                autocommit=True,
                conv=RAW_CONVERSIONS,
                **connect_args,
            )
        except pymysql.MySQLError as exc:
            raise self.wrap_error(ConnectionFailedError, exc) from exc

        logger.debug("Opened MySQL session on %s:%s/%s", config.host, config.port, config.source)
        return session

    def close_session(self, session: Any) -> None:
        self._call(session.close)

    def execute(self, session: Any, sql: str) -> StatementResult:
        cursor = session.cursor()
        try:
            # No arguments are passed, so pymysql leaves '%' in the SQL untouched.
            cursor.execute(sql)
        except pymysql.MySQLError as exc:
            cursor.close()
            raise self.wrap_error(self._error_class(exc), exc) from exc

        if cursor.description is None:
            rows_affected = cursor.rowcount
            cursor.close()
            return StatementResult(rows_affected=max(rows_affected, 0))

        columns = [
            ColumnInfo(
                name=description[0],
                declared_type=f"{self.column_type_name(description[1])}({description[3]})",
            )
            for description in cursor.description
        ]
        type_codes = [description[1] for description in cursor.description]
        return StatementResult(
            handle=MySQLStatement(cursor=cursor, type_codes=type_codes),
            columns=columns,
        )

    def fetch_row(self, handle: MySQLStatement) -> Optional[Tuple[ColumnValue, ...]]:
        try:
            raw_row = handle.cursor.fetchone()
        except pymysql.MySQLError as exc:
            raise self.wrap_error(ExecutionError, exc) from exc
        if raw_row is None:
            return None
        return self.decode_row(handle.type_codes, raw_row)

    def finalize(self, handle: MySQLStatement) -> None:
        self._call(handle.cursor.close)

    def row_count(self, handle: MySQLStatement) -> Optional[int]:
        return handle.cursor.rowcount

    def begin(self, session: Any) -> None:
        self._call(session.begin)

    def commit(self, session: Any) -> None:
        self._call(session.commit)

    def rollback(self, session: Any) -> None:
        self._call(session.rollback)

    def set_autocommit(self, session: Any, enabled: bool) -> None:
        self._call(session.autocommit, enabled)

    def last_insert_id(self, session: Any) -> int:
        return session.insert_id()

    def escape(self, session: Any, text: str) -> str:
        return session.escape_string(text)

    def decode_value(self, native_type: Any, raw: Any) -> ColumnValue:
        if raw is None or native_type == FIELD_TYPE.NULL:
            return ColumnValue.null()
        if native_type in INTEGER_TYPES:
            return ColumnValue(ValueKind.INTEGER, int(raw))
        if native_type in FLOAT_TYPES:
            return ColumnValue(ValueKind.FLOAT, float(raw))
        if native_type in TEXT_TYPES or native_type in BINARY_TYPES:
            # Binary collations arrive as bytes whatever the column type.
            if isinstance(raw, (bytes, bytearray)):
                return ColumnValue(ValueKind.BINARY, bytes(raw))
            return ColumnValue(ValueKind.TEXT, raw)
        raise self.unsupported_type(native_type)

    @staticmethod
    def column_type_name(type_code: int) -> str:
        return COLUMN_TYPE_NAMES.get(type_code, "undefined")

    def diagnostic(self, exc: BaseException) -> str:
        # pymysql errors carry (errno, message)
        if len(exc.args) >= 2 and isinstance(exc.args[1], str):
            return exc.args[1]
        return str(exc)

    def _call(self, method: Callable[..., Any], *args: Any) -> Any:
        try:
            return method(*args)
        except pymysql.MySQLError as exc:
            raise self.wrap_error(ExecutionError, exc) from exc

    @staticmethod
    def _error_class(exc: BaseException) -> Type[DatabaseError]:
        if isinstance(exc, pymysql.err.ProgrammingError):
            return StatementError
        return ExecutionError
