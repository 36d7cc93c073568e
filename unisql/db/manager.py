"""Connections to named data sources from the configuration file."""

import logging
import time
from typing import Any, Dict, List, Optional, Tuple

from unisql.config.models import DataSourceConfig, DriverType, UniSQLConfig
from unisql.db.connection import Connection
from unisql.db.environment import DriverFactory, Environment
from unisql.exceptions import ConfigurationError, UniSQLError

logger = logging.getLogger(__name__)


class DataSourceManager:
    """Opens connections to the data sources declared in a UniSQLConfig.

    One Environment is kept per driver type, seeded with the configured
    environment defaults. Connections are not pooled: every call to
    :meth:`connect` opens a new session that the caller must close.
    """

    def __init__(self, config: UniSQLConfig) -> None:
        """Initialize data source manager.

        Args:
            config: unisql configuration.
        """
        self.config = config
        self._environments: Dict[DriverType, Environment] = {}
        self._factory = DriverFactory()

    def get_data_source(self, name: Optional[str] = None) -> Tuple[str, DataSourceConfig]:
        """Look up a data source by name.

        Args:
            name: Data source name. If None, uses the default data source.

        Returns:
            The resolved name and its configuration.

        Raises:
            ConfigurationError: If the data source is not configured.
        """
        if name is None:
            name = self.config.default_data_source

        if not name:
            raise ConfigurationError("No data source specified and no default data source configured")

        if name not in self.config.data_sources:
            available = list(self.config.data_sources.keys())
            raise ConfigurationError(
                f"Data source '{name}' not found in configuration. "
                f"Available data sources: {available}"
            )
        return name, self.config.data_sources[name]

    def get_environment(self, driver_type: DriverType) -> Environment:
        """Get (creating on first use) the environment for a driver type."""
        environment = self._environments.get(driver_type)
        if environment is None or environment.closed:
            driver = self._factory.create_driver(driver_type)
            environment = Environment(driver, self.config.environment.model_copy())
            self._environments[driver_type] = environment
        return environment

    def connect(self, name: Optional[str] = None) -> Connection:
        """Open a new connection to a data source.

        Args:
            name: Data source name. If None, uses the default data source.

        Raises:
            ConfigurationError: If the data source is not configured.
            ConnectionFailedError: If the backend refuses the session.
        """
        name, data_source = self.get_data_source(name)
        environment = self.get_environment(data_source.driver)
        logger.debug("Opening data source '%s' (%s)", name, data_source.driver.value)
        return environment.connect(data_source.connect_config())

    def test_connection(self, name: Optional[str] = None) -> Dict[str, Any]:
        """Test a data source by opening a session and running ``SELECT 1``.

        Args:
            name: Data source name.

        Returns:
            Connection test result with timing and status information.
        """
        start_time = time.time()
        data_source_name = name or self.config.default_data_source

        try:
            data_source_name, data_source = self.get_data_source(name)
            with self.connect(data_source_name) as connection:
                with connection.execute("SELECT 1") as cursor:
                    cursor.fetch()

            end_time = time.time()
            return {
                'data_source': data_source_name,
                'status': 'success',
                'message': 'Connection successful',
                'response_time': round((end_time - start_time) * 1000, 2),  # milliseconds
                'driver': connection.driver.get_driver_name(),
                'driver_type': data_source.driver.value,
            }

        except UniSQLError as e:
            end_time = time.time()
            return {
                'data_source': data_source_name,
                'status': 'failed',
                'message': str(e),
                'response_time': round((end_time - start_time) * 1000, 2),
                'error': type(e).__name__,
            }

    def test_all_connections(self) -> Dict[str, Dict[str, Any]]:
        """Test all configured data sources.

        Returns:
            Dictionary of connection test results for each data source.
        """
        results = {}

        for name in self.config.data_sources.keys():
            results[name] = self.test_connection(name)

        return results

    def list_data_sources(self) -> List[str]:
        return list(self.config.data_sources.keys())

    def get_data_source_info(self, name: Optional[str] = None) -> Dict[str, Any]:
        """Describe a data source without connecting; the password is never included."""
        name, data_source = self.get_data_source(name)
        return {
            'data_source': name,
            'driver_type': data_source.driver.value,
            'source': data_source.source,
            'host': data_source.host,
            'port': data_source.port,
            'username': data_source.username,
            'default': name == self.config.default_data_source,
        }

    def close_all(self) -> None:
        """Close every environment opened by this manager."""
        for environment in self._environments.values():
            environment.close()
        self._environments.clear()


# Global data source manager instance
_data_source_manager: Optional[DataSourceManager] = None


def get_data_source_manager(config: Optional[UniSQLConfig] = None) -> DataSourceManager:
    """Get the global data source manager instance.

    Args:
        config: unisql configuration. If None, loads the global configuration.

    Returns:
        Global DataSourceManager instance.
    """
    global _data_source_manager

    if _data_source_manager is None:
        if config is None:
            from unisql.config import get_config
            config = get_config()

        _data_source_manager = DataSourceManager(config)

    return _data_source_manager


def set_data_source_manager(manager: Optional[DataSourceManager]) -> None:
    """Set (or clear, with None) the global data source manager instance."""
    global _data_source_manager
    _data_source_manager = manager
