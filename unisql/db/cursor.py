"""Row-by-row iteration over a query result."""

import logging
from collections.abc import MutableMapping
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Optional, Sequence, Tuple

import pandas as pd
from pydantic import ValidationError

from unisql.config.models import CursorOptions, FetchMode
from unisql.db.base import BaseDriver, ColumnInfo, ColumnValue, PythonValue
from unisql.exceptions import ConfigurationError, DatabaseError, ResourceStateError

if TYPE_CHECKING:
    from unisql.db.connection import Connection

logger = logging.getLogger(__name__)


class CursorState(str, Enum):
    """Lifecycle states of a cursor."""
    OPEN = "open"
    EXHAUSTED = "exhausted"
    CLOSED = "closed"


class Cursor:
    """Iterator over the rows of one executed query.

    A cursor is created by :meth:`Connection.execute` for every statement
    that has a column schema. It stays open until its rows run out, a
    step fails, or it is closed; any of these releases the native
    statement and decrements the owning connection's open cursor count
    exactly once.

    Column metadata is captured when the cursor is created and stays
    readable after the rows run out.
    """

    MAX_POSITIONAL_COLUMNS = 8000

    def __init__(
        self,
        connection: "Connection",
        driver: BaseDriver,
        handle: Any,
        columns: Sequence[ColumnInfo],
        options: Optional[CursorOptions] = None,
    ) -> None:
        self._connection = connection
        self._driver = driver
        self._handle = handle
        self._columns: Tuple[ColumnInfo, ...] = tuple(columns)
        self._options = options or CursorOptions()
        self._row_count = driver.row_count(handle)
        self._state = CursorState.OPEN

    # Fetching

    def fetch(self, target: Any = None) -> Any:
        """Fetch the next row.

        Args:
            target: Optional container to fill in place. With the ``INDEX``
                fetch mode values are written at positions ``0..n-1`` (a list
                grows as needed); with ``NAME`` they are written under the
                column names (a mapping is required); ``BOTH`` does both.

        Returns:
            A tuple of column values, or ``target`` when one is given, or
            None once the result is exhausted.

        Raises:
            ResourceStateError: If the cursor was closed explicitly.
            DatabaseError: If stepping the statement fails. The cursor is
                released first and later calls return None.
            UnsupportedTypeError: If a value has no mapping for its native type.
        """
        if self._state is CursorState.CLOSED:
            raise ResourceStateError("cursor is closed", driver_tag=self._driver.tag)
        if self._state is CursorState.EXHAUSTED:
            return None
        if target is None and len(self._columns) > self.MAX_POSITIONAL_COLUMNS:
            raise DatabaseError("too many columns", driver_tag=self._driver.tag)

        with self._connection._lock:
            try:
                row = self._driver.fetch_row(self._handle)
            except DatabaseError:
                self._release_after_error()
                raise
            if row is None:
                self._release(CursorState.EXHAUSTED)
                return None

        return self._fill(row, target)

    def fetch_all(self) -> List[Tuple[PythonValue, ...]]:
        """Fetch every remaining row."""
        return list(self)

    def to_dataframe(self) -> pd.DataFrame:
        """Fetch every remaining row into a pandas DataFrame named by column."""
        return pd.DataFrame(self.fetch_all(), columns=self.get_column_names())

    def __iter__(self) -> Iterator[Tuple[PythonValue, ...]]:
        while True:
            row = self.fetch()
            if row is None:
                return
            yield row

    def _fill(self, row: Tuple[ColumnValue, ...], target: Any) -> Any:
        values = [cell.value for cell in row]
        if target is None:
            return tuple(values)

        mode = self._options.fetch_mode
        if mode.by_name and not isinstance(target, MutableMapping):
            raise TypeError(f"fetch mode '{mode.value}' requires a mapping target")
        if mode.by_index:
            if isinstance(target, list) and len(target) < len(values):
                target.extend([None] * (len(values) - len(target)))
            for index, value in enumerate(values):
                target[index] = value
        if mode.by_name:
            for column, value in zip(self._columns, values):
                target[column.name] = value
        return target

    # Release

    def close(self) -> bool:
        """Release the cursor.

        Returns:
            True if this call released the cursor, False if it was already
            released (closed, exhausted, or failed).
        """
        if self._state is not CursorState.OPEN:
            return False
        with self._connection._lock:
            if self._state is not CursorState.OPEN:
                return False
            self._release(CursorState.CLOSED)
        return True

    def _release(self, state: CursorState) -> None:
        """Move out of the OPEN state, return the cursor slot and finalize the statement."""
        if self._state is not CursorState.OPEN:
            return
        self._state = state
        handle, self._handle = self._handle, None
        self._connection._release_cursor(self)
        logger.debug("Released %s cursor (%s)", self._driver.tag, state.value)
        self._driver.finalize(handle)

    def _release_after_error(self) -> None:
        try:
            self._release(CursorState.EXHAUSTED)
        except DatabaseError as exc:
            logger.debug("Ignoring finalize failure after fetch error: %s", exc)

    # Metadata and options

    @property
    def state(self) -> CursorState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._state is not CursorState.OPEN

    @property
    def columns(self) -> Tuple[ColumnInfo, ...]:
        self._ensure_not_closed()
        return self._columns

    @property
    def row_count(self) -> Optional[int]:
        """Rows in the result as reported by the backend, or None when unknown."""
        return self._row_count

    def get_column_names(self) -> List[str]:
        self._ensure_not_closed()
        return [column.name for column in self._columns]

    def get_column_types(self) -> List[str]:
        self._ensure_not_closed()
        return [column.declared_type for column in self._columns]

    @property
    def fetch_mode(self) -> FetchMode:
        return self._options.fetch_mode

    @fetch_mode.setter
    def fetch_mode(self, mode: Any) -> None:
        self.set(fetch_mode=mode)

    def get(self, *keys: str) -> Dict[str, Any]:
        """Read cursor options by name; unknown keys are left out."""
        self._ensure_not_closed()
        return self._options.pick(list(keys))

    def set(self, **options: Any) -> bool:
        """Update cursor options; unknown keys are ignored.

        Raises:
            ConfigurationError: If an option value is invalid.
        """
        self._ensure_not_closed()
        try:
            self._options = self._options.merged(options)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid cursor options: {exc}") from exc
        return True

    def _ensure_not_closed(self) -> None:
        if self._state is CursorState.CLOSED:
            raise ResourceStateError("cursor is closed", driver_tag=self._driver.tag)

    # Context manager and finalization

    def __enter__(self) -> "Cursor":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __del__(self) -> None:
        if getattr(self, "_state", None) is CursorState.OPEN:
            try:
                self._release(CursorState.CLOSED)
            except DatabaseError as exc:
                logger.debug("Ignoring finalize failure on garbage-collected cursor: %s", exc)

    def __repr__(self) -> str:
        names = [column.name for column in self._columns]
        return f"<Cursor {self._driver.tag} columns={names} state={self._state.value}>"
