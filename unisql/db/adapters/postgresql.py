"""PostgreSQL driver adapter."""

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Callable, List, Optional, Tuple, Type

from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Connection, CursorResult, Engine
from sqlalchemy.exc import DBAPIError, ProgrammingError, SQLAlchemyError
from sqlalchemy.pool import NullPool

from unisql.config.models import ConnectConfig, DriverType
from unisql.db.base import BaseDriver, ColumnInfo, ColumnValue, StatementResult, ValueKind
from unisql.exceptions import (
    ConnectionFailedError,
    DatabaseError,
    ExecutionError,
    StatementError,
)

logger = logging.getLogger(__name__)

# pg_type OIDs reported in cursor descriptions.
PG_TYPES = {
    16: (ValueKind.INTEGER, "bool"),
    20: (ValueKind.INTEGER, "int8"),
    21: (ValueKind.INTEGER, "int2"),
    23: (ValueKind.INTEGER, "int4"),
    26: (ValueKind.INTEGER, "oid"),
    700: (ValueKind.FLOAT, "float4"),
    701: (ValueKind.FLOAT, "float8"),
    1700: (ValueKind.FLOAT, "numeric"),
    18: (ValueKind.TEXT, "char"),
    19: (ValueKind.TEXT, "name"),
    25: (ValueKind.TEXT, "text"),
    705: (ValueKind.TEXT, "unknown"),
    1042: (ValueKind.TEXT, "bpchar"),
    1043: (ValueKind.TEXT, "varchar"),
    1082: (ValueKind.TEXT, "date"),
    1083: (ValueKind.TEXT, "time"),
    1114: (ValueKind.TEXT, "timestamp"),
    1184: (ValueKind.TEXT, "timestamptz"),
    1186: (ValueKind.TEXT, "interval"),
    2950: (ValueKind.TEXT, "uuid"),
    1266: (ValueKind.TEXT, "timetz"),
    790: (ValueKind.TEXT, "money"),
    142: (ValueKind.TEXT, "xml"),
    650: (ValueKind.TEXT, "cidr"),
    869: (ValueKind.TEXT, "inet"),
    829: (ValueKind.TEXT, "macaddr"),
    1560: (ValueKind.TEXT, "bit"),
    1562: (ValueKind.TEXT, "varbit"),
    114: (ValueKind.TEXT, "json"),
    3802: (ValueKind.TEXT, "jsonb"),
    17: (ValueKind.BINARY, "bytea"),
}

# psycopg2 parses these into Python objects; they are handed back as JSON text.
JSON_TYPES = {114, 3802}


@dataclass
class PostgreSQLSession:
    """A single, unpooled SQLAlchemy connection and the engine that made it."""
    engine: Engine
    connection: Connection
    auto_commit: bool = True


@dataclass
class PostgreSQLStatement:
    result: CursorResult
    type_codes: List[int]


class PostgreSQLDriver(BaseDriver):
    """PostgreSQL driver adapter.

    Sessions run with the ``AUTOCOMMIT`` isolation level while the owning
    Connection is in auto-commit mode and switch back to the server's
    default level when it is not.
    """

    driver_type = DriverType.POSTGRESQL
    default_port = 5432

    def get_driver_name(self) -> str:
        """Get the driver name for PostgreSQL."""
        return "psycopg2"

    def build_connection_url(self, config: ConnectConfig) -> URL:
        """Build the SQLAlchemy URL for ``config``; ``source`` names the database."""
        return URL.create(
            "postgresql+psycopg2",
            username=config.username,
            password=config.password,
            host=config.host or "localhost",
            port=config.port or self.default_port,
            database=config.source,
            query={"sslmode": str(config.options.get("sslmode", "prefer"))},
        )

    def open_session(self, config: ConnectConfig) -> PostgreSQLSession:
        if config.lock_timeout_ms is not None:
            logger.debug("lock_timeout_ms does not apply to PostgreSQL sessions; ignoring it")

        engine = create_engine(
            self.build_connection_url(config),
            poolclass=NullPool,
            connect_args={
                'connect_timeout': config.options.get('connect_timeout', 10),
                'application_name': config.options.get('application_name', 'unisql'),
            },
        )
        try:
            connection = engine.connect()
            connection.execution_options(isolation_level="AUTOCOMMIT")
        except SQLAlchemyError as exc:
            engine.dispose()
            raise self.wrap_error(ConnectionFailedError, exc) from exc

        logger.debug("Opened PostgreSQL session on %s:%s/%s", config.host, config.port, config.source)
        return PostgreSQLSession(engine=engine, connection=connection)

    def close_session(self, session: PostgreSQLSession) -> None:
        try:
            session.connection.close()
        except SQLAlchemyError as exc:
            raise self.wrap_error(ExecutionError, exc) from exc
        finally:
            session.engine.dispose()

    def execute(self, session: PostgreSQLSession, sql: str) -> StatementResult:
        try:
            result = session.connection.exec_driver_sql(sql)
        except SQLAlchemyError as exc:
            raise self.wrap_error(self._error_class(exc), exc) from exc

        if not result.returns_rows:
            rows_affected = result.rowcount
            result.close()
            return StatementResult(rows_affected=max(rows_affected, 0))

        description = result.cursor.description
        columns = [
            ColumnInfo(name=column[0], declared_type=self.column_type_name(column[1]))
            for column in description
        ]
        return StatementResult(
            handle=PostgreSQLStatement(result=result, type_codes=[column[1] for column in description]),
            columns=columns,
        )

    def fetch_row(self, handle: PostgreSQLStatement) -> Optional[Tuple[ColumnValue, ...]]:
        try:
            row = handle.result.fetchone()
        except SQLAlchemyError as exc:
            raise self.wrap_error(ExecutionError, exc) from exc
        if row is None:
            return None
        return self.decode_row(handle.type_codes, tuple(row))

    def finalize(self, handle: PostgreSQLStatement) -> None:
        self._call(handle.result.close)

    def row_count(self, handle: PostgreSQLStatement) -> Optional[int]:
        return handle.result.rowcount

    def begin(self, session: PostgreSQLSession) -> None:
        if not session.connection.in_transaction():
            self._call(session.connection.begin)

    def commit(self, session: PostgreSQLSession) -> None:
        self._call(session.connection.commit)

    def rollback(self, session: PostgreSQLSession) -> None:
        self._call(session.connection.rollback)

    def set_autocommit(self, session: PostgreSQLSession, enabled: bool) -> None:
        connection = session.connection
        # The isolation level cannot change while SQLAlchemy holds a transaction.
        if connection.in_transaction():
            self._call(connection.rollback if enabled else connection.commit)
        level = "AUTOCOMMIT" if enabled else connection.default_isolation_level
        self._call(lambda: connection.execution_options(isolation_level=level))
        session.auto_commit = enabled

    def last_insert_id(self, session: PostgreSQLSession) -> int:
        """Value most recently produced by a sequence in this session.

        Outside auto-commit mode the lookup runs under a savepoint so that a
        session with no sequence activity does not abort the open transaction.
        """
        connection = session.connection
        try:
            if not session.auto_commit and connection.in_transaction():
                with connection.begin_nested():
                    return connection.exec_driver_sql("SELECT lastval()").scalar()
            return connection.exec_driver_sql("SELECT lastval()").scalar()
        except SQLAlchemyError as exc:
            raise self.wrap_error(ExecutionError, exc) from exc

    def escape(self, session: PostgreSQLSession, text: str) -> str:
        # standard_conforming_strings: only quotes need doubling
        return text.replace("'", "''")

    def decode_value(self, native_type: Any, raw: Any) -> ColumnValue:
        if raw is None:
            return ColumnValue.null()
        entry = PG_TYPES.get(native_type)
        if entry is None:
            raise self.unsupported_type(native_type)

        kind = entry[0]
        if kind is ValueKind.INTEGER:
            return ColumnValue(kind, int(raw))
        if kind is ValueKind.FLOAT:
            return ColumnValue(kind, float(raw))
        if kind is ValueKind.BINARY:
            return ColumnValue(kind, bytes(raw))
        if native_type in JSON_TYPES:
            return ColumnValue(kind, json.dumps(raw))
        if isinstance(raw, (date, datetime, time)):
            return ColumnValue(kind, raw.isoformat())
        return ColumnValue(kind, str(raw))

    @staticmethod
    def column_type_name(type_code: int) -> str:
        entry = PG_TYPES.get(type_code)
        return entry[1] if entry else f"oid{type_code}"

    def diagnostic(self, exc: BaseException) -> str:
        if isinstance(exc, DBAPIError) and exc.orig is not None:
            return str(exc.orig)
        return str(exc)

    def _call(self, method: Callable[..., Any], *args: Any) -> Any:
        try:
            return method(*args)
        except SQLAlchemyError as exc:
            raise self.wrap_error(ExecutionError, exc) from exc

    @staticmethod
    def _error_class(exc: BaseException) -> Type[DatabaseError]:
        if isinstance(exc, ProgrammingError):
            return StatementError
        return ExecutionError
