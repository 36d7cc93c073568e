"""Connection factories and the driver registry."""

import logging
from typing import Any, Dict, List, Mapping, Optional, Type, Union

from pydantic import ValidationError

from unisql.config.models import ConnectConfig, DriverType, EnvironmentDefaults
from unisql.db.adapters.mysql import MySQLDriver
from unisql.db.adapters.postgresql import PostgreSQLDriver
from unisql.db.adapters.sqlite import SQLiteDriver
from unisql.db.base import BaseDriver
from unisql.db.connection import Connection
from unisql.exceptions import ConfigurationError, ResourceStateError

logger = logging.getLogger(__name__)


class DriverFactory:
    """Factory for creating driver adapters."""

    _drivers: Dict[DriverType, Type[BaseDriver]] = {
        DriverType.SQLITE3: SQLiteDriver,
        DriverType.MYSQL: MySQLDriver,
        DriverType.POSTGRESQL: PostgreSQLDriver,
    }

    @classmethod
    def create_driver(cls, driver_type: Union[DriverType, str]) -> BaseDriver:
        """Create a driver adapter for a driver type.

        Args:
            driver_type: A DriverType or its name, e.g. ``"sqlite3"``.

        Returns:
            Driver adapter instance.

        Raises:
            ConfigurationError: If the driver type is not supported.
        """
        supported_types = [supported.value for supported in cls._drivers]
        try:
            driver_type = DriverType(driver_type)
        except ValueError as exc:
            raise ConfigurationError(
                f"Unsupported driver type: {driver_type}. Supported types: {supported_types}"
            ) from exc

        driver_class = cls._drivers.get(driver_type)
        if not driver_class:
            raise ConfigurationError(
                f"Unsupported driver type: {driver_type.value}. Supported types: {supported_types}"
            )
        return driver_class()

    @classmethod
    def register_driver(cls, driver_type: DriverType, driver_class: Type[BaseDriver]) -> None:
        """Register a custom driver adapter.

        Args:
            driver_type: Driver type.
            driver_class: Adapter class to register.
        """
        cls._drivers[driver_type] = driver_class

    @classmethod
    def get_supported_types(cls) -> List[DriverType]:
        """Get list of supported driver types."""
        return list(cls._drivers.keys())


class Environment:
    """Factory for connections to one backend.

    An environment holds the defaults new connections inherit. It owns no
    native resource, so closing it only stops further connects.
    """

    def __init__(self, driver: BaseDriver, defaults: Optional[EnvironmentDefaults] = None) -> None:
        self._driver = driver
        self._defaults = defaults or EnvironmentDefaults()
        self._closed = False

    def connect(
        self,
        config: Union[ConnectConfig, Mapping[str, Any], str, None] = None,
        **options: Any,
    ) -> Connection:
        """Open a connection.

        Args:
            config: A ConnectConfig, a mapping of connect keys, or the bare
                source (database file or name).
            **options: Connect keys applied over ``config``.

        Returns:
            A new Connection in auto-commit mode.

        Raises:
            ResourceStateError: If the environment is closed.
            ConfigurationError: If the connect keys are invalid.
            ConnectionFailedError: If the backend refuses the session.
        """
        self._ensure_open()
        connect_config = self._resolve_config(config, options)
        session = self._driver.open_session(connect_config)
        logger.debug("Connected %s to %s", self._driver.tag, connect_config.source)
        return Connection(self, self._driver, session, connect_config)

    def _resolve_config(
        self,
        config: Union[ConnectConfig, Mapping[str, Any], str, None],
        options: Mapping[str, Any],
    ) -> ConnectConfig:
        if config is None:
            values: Dict[str, Any] = {}
        elif isinstance(config, ConnectConfig):
            values = config.model_dump(exclude_unset=True)
        elif isinstance(config, str):
            values = {"source": config}
        elif isinstance(config, Mapping):
            values = self._normalize_keys(config)
        else:
            raise ConfigurationError(f"Unsupported connect configuration: {type(config).__name__}")
        values.update(self._normalize_keys(options))

        try:
            connect_config = ConnectConfig.model_validate(values)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid connect configuration: {exc}") from exc

        if connect_config.lock_timeout_ms is None and self._driver.supports_lock_timeout:
            connect_config = connect_config.model_copy(
                update={"lock_timeout_ms": self._defaults.lock_timeout_ms}
            )
        return connect_config

    @staticmethod
    def _normalize_keys(values: Mapping[str, Any]) -> Dict[str, Any]:
        # Aliases collapse onto field names so later keys override earlier ones.
        return {ConnectConfig.resolve_key(key) or key: value for key, value in values.items()}

    # Defaults

    @property
    def defaults(self) -> EnvironmentDefaults:
        return self._defaults

    @property
    def lock_timeout_ms(self) -> int:
        return self._defaults.lock_timeout_ms

    @lock_timeout_ms.setter
    def lock_timeout_ms(self, value: int) -> None:
        self.set(lock_timeout_ms=value)

    def get(self, *keys: str) -> Dict[str, Any]:
        """Read environment defaults by name; unknown keys are left out."""
        self._ensure_open()
        return self._defaults.pick(list(keys))

    def set(self, **options: Any) -> bool:
        """Update environment defaults; unknown keys are ignored.

        Raises:
            ConfigurationError: If an option value is invalid.
        """
        self._ensure_open()
        try:
            self._defaults = self._defaults.merged(options)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid environment options: {exc}") from exc
        return True

    # State

    @property
    def driver(self) -> BaseDriver:
        return self._driver

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> bool:
        """Close the environment; returns False if it was already closed."""
        if self._closed:
            return False
        self._closed = True
        logger.debug("Closed %s environment", self._driver.tag)
        return True

    def _ensure_open(self) -> None:
        if self._closed:
            raise ResourceStateError("environment is closed", driver_tag=self._driver.tag)

    def __enter__(self) -> "Environment":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<Environment {self._driver.tag} {state}>"


def open_environment(driver: Union[DriverType, str], **defaults: Any) -> Environment:
    """Create an Environment for a driver.

    Args:
        driver: Driver type or name (``"sqlite3"``, ``"mysql"``, ``"postgresql"``).
        **defaults: Environment defaults such as ``lock_timeout_ms``.

    Raises:
        ConfigurationError: If the driver is unknown or a default is invalid.
    """
    try:
        environment_defaults = EnvironmentDefaults.model_validate(defaults)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid environment options: {exc}") from exc
    return Environment(DriverFactory.create_driver(driver), environment_defaults)
