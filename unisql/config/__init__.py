"""Configuration management for unisql."""

from unisql.config.models import (
    DriverType,
    FetchMode,
    OptionsModel,
    EnvironmentDefaults,
    ConnectionOptions,
    CursorOptions,
    ConnectConfig,
    DataSourceConfig,
    UniSQLConfig,
    EnvironmentSettings,
)
from unisql.config.parser import (
    ConfigParser,
    get_config,
    validate_config_file,
    create_sample_config,
)

__all__ = [
    # Models
    "DriverType",
    "FetchMode",
    "OptionsModel",
    "EnvironmentDefaults",
    "ConnectionOptions",
    "CursorOptions",
    "ConnectConfig",
    "DataSourceConfig",
    "UniSQLConfig",
    "EnvironmentSettings",
    # Parser
    "ConfigParser",
    "get_config",
    "validate_config_file",
    "create_sample_config",
]
