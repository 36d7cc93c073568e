"""Base driver adapter and the common row/column model."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Sequence, Tuple, Type, Union

from unisql.config.models import ConnectConfig, DriverType
from unisql.exceptions import DatabaseError, UnsupportedTypeError

PythonValue = Union[int, float, str, bytes, None]


class ValueKind(str, Enum):
    """The closed set of value kinds a column value decodes to."""
    INTEGER = "integer"
    FLOAT = "float"
    TEXT = "text"
    BINARY = "binary"
    NULL = "null"


@dataclass(frozen=True)
class ColumnValue:
    """A decoded column value tagged with its kind."""
    kind: ValueKind
    value: PythonValue = None

    @classmethod
    def null(cls) -> "ColumnValue":
        return cls(ValueKind.NULL, None)


@dataclass(frozen=True)
class ColumnInfo:
    """Name and backend-declared type of a result column."""
    name: str
    declared_type: str


@dataclass
class StatementResult:
    """Outcome of submitting one statement to a driver.

    A result with a ``handle`` is a query: the handle is the live native
    statement and ``columns`` its schema. Otherwise the statement was a
    mutation and ``rows_affected`` holds the backend's count.
    """
    rows_affected: int = 0
    handle: Any = None
    columns: List[ColumnInfo] = field(default_factory=list)

    @property
    def returns_rows(self) -> bool:
        return self.handle is not None


class BaseDriver(ABC):
    """Base class for driver adapters.

    A driver is stateless with respect to sessions: every native object it
    creates is handed back to the caller (Connection or Cursor), which owns
    it exclusively and passes it back in on each call.
    """

    driver_type: DriverType
    supports_lock_timeout = False

    @property
    def tag(self) -> str:
        """Fixed prefix identifying this driver in surfaced errors."""
        return f"unisql.{self.driver_type.value}"

    @abstractmethod
    def get_driver_name(self) -> str:
        """Get the name of the native client library behind this driver."""
        pass

    # Sessions

    @abstractmethod
    def open_session(self, config: ConnectConfig) -> Any:
        """Open a native session.

        ``config.lock_timeout_ms`` has already been resolved against the
        environment defaults.

        Raises:
            ConnectionFailedError: If the backend refuses the session.
        """
        pass

    @abstractmethod
    def close_session(self, session: Any) -> None:
        """Release a native session."""
        pass

    # Statements

    @abstractmethod
    def execute(self, session: Any, sql: str) -> StatementResult:
        """Submit ``sql`` and classify the outcome as a query or a mutation.

        Raises:
            StatementError: If the statement cannot be prepared.
            ExecutionError: If the prepared statement fails.
        """
        pass

    @abstractmethod
    def fetch_row(self, handle: Any) -> Optional[Tuple[ColumnValue, ...]]:
        """Step ``handle`` and return the next decoded row, or None at end of data."""
        pass

    @abstractmethod
    def finalize(self, handle: Any) -> None:
        """Release the native statement behind ``handle``."""
        pass

    def row_count(self, handle: Any) -> Optional[int]:
        """Number of rows in the result behind ``handle``, when the backend knows it."""
        return None

    # Transactions

    @abstractmethod
    def begin(self, session: Any) -> None:
        pass

    @abstractmethod
    def commit(self, session: Any) -> None:
        pass

    @abstractmethod
    def rollback(self, session: Any) -> None:
        pass

    @abstractmethod
    def set_autocommit(self, session: Any, enabled: bool) -> None:
        """Switch the session's native auto-commit flag, where it has one."""
        pass

    # Session utilities

    @abstractmethod
    def last_insert_id(self, session: Any) -> int:
        pass

    @abstractmethod
    def escape(self, session: Any, text: str) -> str:
        pass

    # Value decoding

    @abstractmethod
    def decode_value(self, native_type: Any, raw: Any) -> ColumnValue:
        """Decode ``raw`` according to the backend-reported ``native_type``.

        Raises:
            UnsupportedTypeError: If ``native_type`` has no mapping.
        """
        pass

    def decode_row(self, native_types: Sequence[Any], raw_row: Sequence[Any]) -> Tuple[ColumnValue, ...]:
        return tuple(
            self.decode_value(native_type, raw)
            for native_type, raw in zip(native_types, raw_row)
        )

    # Error helpers

    def diagnostic(self, exc: BaseException) -> str:
        """Extract the backend's diagnostic text from a native exception."""
        return str(exc)

    def wrap_error(self, error_class: Type[DatabaseError], exc: BaseException) -> DatabaseError:
        """Wrap a native exception, keeping its diagnostic text verbatim."""
        return error_class(self.diagnostic(exc), driver_tag=self.tag)

    def unsupported_type(self, native_type: Any) -> UnsupportedTypeError:
        return UnsupportedTypeError(
            f"Unrecognized column type: {native_type!r}",
            native_type=native_type,
            driver_tag=self.tag,
        )
