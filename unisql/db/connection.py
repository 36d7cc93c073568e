"""Live database sessions."""

import logging
import threading
from typing import TYPE_CHECKING, Any, Dict, Union

from pydantic import ValidationError

from unisql.config.models import ConnectConfig, ConnectionOptions
from unisql.db.base import BaseDriver
from unisql.db.cursor import Cursor
from unisql.exceptions import ConfigurationError, DatabaseError, ResourceStateError

if TYPE_CHECKING:
    from unisql.db.environment import Environment

logger = logging.getLogger(__name__)


class Connection:
    """A live session with one backend.

    Connections start in auto-commit mode. With auto-commit off a
    transaction is always open: :meth:`commit` and :meth:`rollback` end the
    current one and immediately begin the next.

    All access to the native session, including cursor steps, is serialized
    through a per-connection re-entrant lock.
    """

    def __init__(
        self,
        environment: "Environment",
        driver: BaseDriver,
        session: Any,
        config: ConnectConfig,
    ) -> None:
        self._environment = environment
        self._driver = driver
        self._session = session
        self._config = config
        self._options = ConnectionOptions()
        self._open_cursors = 0
        self._closed = False
        self._lock = threading.RLock()

    # Statements

    def execute(self, sql: str) -> Union[int, Cursor]:
        """Execute a single SQL statement.

        Args:
            sql: Statement text, passed to the backend unchanged.

        Returns:
            A Cursor when the statement has result columns (even if it yields
            no rows), otherwise the number of rows affected.

        Raises:
            ResourceStateError: If the connection is closed.
            StatementError: If the statement cannot be prepared.
            ExecutionError: If the statement fails while running.
        """
        with self._lock:
            self._ensure_open()
            result = self._driver.execute(self._session, sql)
            if not result.returns_rows:
                return result.rows_affected
            cursor = Cursor(self, self._driver, result.handle, result.columns)
            self._open_cursors += 1
        return cursor

    # Transactions

    def commit(self) -> bool:
        """Commit the current transaction.

        Raises:
            ExecutionError: If the backend rejects the commit. No rollback is
                attempted.
        """
        with self._lock:
            self._ensure_open()
            self._driver.commit(self._session)
            if not self._options.auto_commit:
                self._driver.begin(self._session)
        return True

    def rollback(self) -> bool:
        """Roll back the current transaction."""
        with self._lock:
            self._ensure_open()
            self._driver.rollback(self._session)
            if not self._options.auto_commit:
                self._driver.begin(self._session)
        return True

    def set_auto_commit(self, enabled: bool) -> bool:
        """Turn auto-commit on or off.

        Turning it on rolls back any open transaction; a failure of that
        rollback is ignored. Turning it off begins a new transaction. Once
        the session has left auto-commit the connection reports it off, even
        if that first ``BEGIN`` fails; the next commit or rollback begins
        again.

        Raises:
            ExecutionError: If the new transaction cannot be begun.
        """
        enabled = bool(enabled)
        with self._lock:
            self._ensure_open()
            if enabled:
                try:
                    self._driver.rollback(self._session)
                except DatabaseError as exc:
                    logger.debug("Ignoring rollback failure while enabling auto-commit: %s", exc)
                self._driver.set_autocommit(self._session, True)
                self._options = self._options.model_copy(update={"auto_commit": True})
            elif self._options.auto_commit:
                self._driver.set_autocommit(self._session, False)
                self._options = self._options.model_copy(update={"auto_commit": False})
                self._driver.begin(self._session)
        logger.debug("Auto-commit %s on %s connection", "enabled" if enabled else "disabled", self._driver.tag)
        return True

    @property
    def auto_commit(self) -> bool:
        return self._options.auto_commit

    @auto_commit.setter
    def auto_commit(self, enabled: bool) -> None:
        self.set_auto_commit(enabled)

    # Session utilities

    def get_last_insert_id(self) -> int:
        """Return the id generated by the most recent insert on this session."""
        with self._lock:
            self._ensure_open()
            return self._driver.last_insert_id(self._session)

    def escape(self, text: str) -> str:
        """Escape ``text`` for use inside a quoted SQL string literal.

        The surrounding quotes are not added.
        """
        with self._lock:
            self._ensure_open()
            return self._driver.escape(self._session, text)

    def get(self, *keys: str) -> Dict[str, Any]:
        """Read connection options by name; unknown keys are left out."""
        self._ensure_open()
        return self._options.pick(list(keys))

    def set(self, **options: Any) -> bool:
        """Update connection options; unknown keys are ignored.

        Raises:
            ConfigurationError: If an option value is invalid.
        """
        self._ensure_open()
        try:
            update = ConnectionOptions.model_validate(options)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid connection options: {exc}") from exc
        if "auto_commit" in update.model_fields_set:
            self.set_auto_commit(update.auto_commit)
        return True

    # State

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def open_cursor_count(self) -> int:
        return self._open_cursors

    @property
    def environment(self) -> "Environment":
        return self._environment

    @property
    def driver(self) -> BaseDriver:
        return self._driver

    @property
    def config(self) -> ConnectConfig:
        return self._config

    @property
    def native_handle(self) -> Any:
        """The backend session object owned by this connection."""
        self._ensure_open()
        return self._session

    def _release_cursor(self, cursor: Cursor) -> None:
        with self._lock:
            self._open_cursors -= 1

    def _ensure_open(self) -> None:
        if self._closed:
            raise ResourceStateError("connection is closed", driver_tag=self._driver.tag)

    # Release

    def close(self) -> bool:
        """Close the session.

        Returns:
            True if this call closed the connection, False if it was already
            closed.

        Raises:
            ResourceStateError: If cursors produced by this connection are
                still open. The connection stays fully usable.
        """
        with self._lock:
            if self._open_cursors > 0:
                raise ResourceStateError("there are open cursors", driver_tag=self._driver.tag)
            if self._closed:
                return False
            self._closed = True
            session, self._session = self._session, None
            self._driver.close_session(session)
        logger.debug("Closed %s connection to %s", self._driver.tag, self._config.source)
        return True

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __del__(self) -> None:
        if getattr(self, "_closed", True):
            return
        self._closed = True
        try:
            self._driver.close_session(self._session)
        except DatabaseError as exc:
            logger.debug("Ignoring close failure on garbage-collected connection: %s", exc)

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<Connection {self._driver.tag} source={self._config.source!r} {state}>"
