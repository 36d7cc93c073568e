"""Loading of unisql data source files.

A data source file is a YAML mapping with the sections ``data_sources``,
``default_data_source`` and ``environment``. String values may reference
process environment variables as ``${NAME}`` or ``${NAME:-fallback}``.
An ``include`` entry names further files, relative to the including file,
whose data sources and environment defaults are layered underneath it.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Type, Union

import yaml
from pydantic import ValidationError

from unisql.config.models import (
    DataSourceConfig,
    EnvironmentDefaults,
    EnvironmentSettings,
    OptionsModel,
    UniSQLConfig,
)
from unisql.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

SECTIONS = ("include", "data_sources", "default_data_source", "environment")

DEFAULT_LOCATIONS = ("unisql.yaml", "unisql.yml", os.path.join("config", "unisql.yaml"))

ENV_REFERENCE = re.compile(r"\$\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*(?::-([^}]*))?\}")


def interpolate(value: Any) -> Any:
    """Replace environment references in every string inside ``value``.

    Raises:
        ConfigurationError: If a reference without a fallback names an unset variable.
    """
    if isinstance(value, dict):
        return {key: interpolate(item) for key, item in value.items()}
    if isinstance(value, list):
        return [interpolate(item) for item in value]
    if not isinstance(value, str):
        return value

    def resolve(match: re.Match) -> str:
        name, fallback = match.group(1), match.group(2)
        resolved = os.getenv(name, fallback)
        if resolved is None:
            raise ConfigurationError(f"Required environment variable '{name}' is not set")
        return resolved

    return ENV_REFERENCE.sub(resolve, value)


class ConfigParser:
    """Reads data source files into validated UniSQLConfig objects."""

    def __init__(self) -> None:
        self.env_settings = EnvironmentSettings()

    def load_config(self, config_path: Optional[Union[str, Path]] = None) -> UniSQLConfig:
        """Load a data source file and everything it includes.

        Args:
            config_path: Path to the file. If None, ``UNISQL_CONFIG_FILE`` and
                then the default locations in the working directory are tried.

        Returns:
            Validated UniSQLConfig instance.

        Raises:
            ConfigurationError: If a file is missing, unreadable or invalid.
        """
        config_file = self.locate(config_path)
        document = self._read_layered(config_file, ())
        config = self._build(document, config_file)
        logger.debug(
            "Loaded %d data source(s) from %s (default: %s)",
            len(config.data_sources), config_file, config.default_data_source,
        )
        return config

    def locate(self, config_path: Optional[Union[str, Path]] = None) -> Path:
        """Resolve which data source file to read.

        Raises:
            ConfigurationError: If an explicit path does not exist or no
                default location holds a file.
        """
        if config_path:
            path = Path(config_path)
            if not path.is_file():
                raise ConfigurationError(f"Configuration file '{config_path}' not found")
            return path

        candidates = [Path.cwd() / location for location in DEFAULT_LOCATIONS]
        if self.env_settings.config_file:
            candidates.insert(0, Path(self.env_settings.config_file))

        for candidate in candidates:
            if candidate.is_file():
                return candidate

        raise ConfigurationError(
            f"No configuration file found in default locations: {[str(c) for c in candidates]}"
        )

    def validate_config_file(self, config_path: Union[str, Path]) -> bool:
        """Validate a data source file.

        Raises:
            ConfigurationError: If configuration is invalid.
        """
        self.load_config(config_path)
        return True

    def create_sample_config(self, output_path: Union[str, Path]) -> None:
        """Write a sample file with one data source per supported driver."""
        sample = {
            'data_sources': {
                'local': {
                    'driver': 'sqlite3',
                    'source': './unisql.db',
                    'lock_timeout_ms': 250,
                },
                'reporting': {
                    'driver': 'mysql',
                    'source': 'reports',
                    'host': 'localhost',
                    'port': 3306,
                    'username': 'report',
                    'password': '${REPORT_DB_PASSWORD:-report_password}',
                    'options': {'charset': 'utf8mb4', 'connect_timeout': 10},
                },
                'warehouse': {
                    'driver': 'postgresql',
                    'source': 'warehouse',
                    'host': 'localhost',
                    'port': 5432,
                    'username': 'analyst',
                    'password': '${WAREHOUSE_DB_PASSWORD:-analyst_password}',
                    'options': {'sslmode': 'prefer'},
                },
            },
            'default_data_source': 'local',
            'environment': EnvironmentDefaults().model_dump(),
        }

        with open(output_path, 'w', encoding='utf-8') as file:
            yaml.safe_dump(sample, file, default_flow_style=False, sort_keys=False)

    # Reading

    def _read_layered(self, path: Path, including: Tuple[Path, ...]) -> Dict[str, Any]:
        """Read ``path`` with its includes layered underneath, in listed order."""
        resolved = path.resolve()
        if resolved in including:
            chain = " -> ".join(str(p) for p in including + (resolved,))
            raise ConfigurationError(f"Configuration include cycle: {chain}")

        document = self._read_document(path, required=not including)
        layered: Dict[str, Any] = {'data_sources': {}, 'environment': {}}

        for include in self._include_list(document.pop('include', None), path):
            include_path = path.parent / include
            if not include_path.is_file():
                raise ConfigurationError(f"Included file '{include_path}' not found")
            logger.debug("Including %s from %s", include_path, path)
            self._layer(layered, self._read_layered(include_path, including + (resolved,)))

        self._layer(layered, document)
        return layered

    def _read_document(self, path: Path, required: bool) -> Dict[str, Any]:
        try:
            with open(path, 'r', encoding='utf-8') as file:
                raw = yaml.safe_load(file)
        except FileNotFoundError as e:
            raise ConfigurationError(f"Configuration file '{path}' not found") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in '{path}': {e}") from e

        if not raw:
            if required:
                raise ConfigurationError(f"Configuration file '{path}' is empty")
            return {}
        if not isinstance(raw, dict):
            raise ConfigurationError(
                f"Configuration file '{path}' must hold a mapping, not {type(raw).__name__}"
            )

        unknown = sorted(str(key) for key in raw if key not in SECTIONS)
        if unknown:
            logger.warning("Ignoring unknown sections in %s: %s", path, ", ".join(unknown))

        document = interpolate({key: value for key, value in raw.items() if key in SECTIONS})

        data_sources = document.get('data_sources') or {}
        if not isinstance(data_sources, dict):
            raise ConfigurationError(f"'data_sources' in '{path}' must be a mapping of names")
        document['data_sources'] = {
            name: self._canonical_keys(DataSourceConfig, entry, f"data source '{name}'", path)
            for name, entry in data_sources.items()
        }
        if 'environment' in document:
            document['environment'] = self._canonical_keys(
                EnvironmentDefaults, document['environment'] or {}, "environment", path
            )
        return document

    @staticmethod
    def _include_list(includes: Any, path: Path) -> List[str]:
        if includes is None:
            return []
        if isinstance(includes, str):
            return [includes]
        if isinstance(includes, list) and all(isinstance(item, str) for item in includes):
            return includes
        raise ConfigurationError(f"'include' in '{path}' must be a file name or a list of file names")

    @staticmethod
    def _canonical_keys(
        model: Type[OptionsModel], entry: Any, label: str, path: Path
    ) -> Dict[str, Any]:
        """Rename aliased keys (``type``, ``path``, ``user``, ...) to field names."""
        if not isinstance(entry, dict):
            raise ConfigurationError(f"The {label} in '{path}' must be a mapping")
        return {model.resolve_key(key) or key: value for key, value in entry.items()}

    @staticmethod
    def _layer(base: Dict[str, Any], document: Dict[str, Any]) -> None:
        """Apply ``document`` over ``base``; data sources merge key by key."""
        for name, entry in document.get('data_sources', {}).items():
            base['data_sources'][name] = {**base['data_sources'].get(name, {}), **entry}
        base['environment'].update(document.get('environment', {}))
        if document.get('default_data_source') is not None:
            base['default_data_source'] = document['default_data_source']

    # Validation

    @staticmethod
    def _build(document: Dict[str, Any], path: Path) -> UniSQLConfig:
        data_sources: Dict[str, DataSourceConfig] = {}
        for name, entry in document['data_sources'].items():
            try:
                data_sources[name] = DataSourceConfig.model_validate(entry)
            except ValidationError as e:
                raise ConfigurationError(
                    f"Configuration validation failed for data source '{name}' in '{path}': {e}"
                ) from e

        try:
            environment = EnvironmentDefaults.model_validate(document['environment'])
        except ValidationError as e:
            raise ConfigurationError(
                f"Configuration validation failed for environment in '{path}': {e}"
            ) from e

        try:
            return UniSQLConfig(
                data_sources=data_sources,
                default_data_source=document.get('default_data_source'),
                environment=environment,
            )
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed in '{path}': {e}") from e


# Global configuration instance
_config_parser = ConfigParser()
_loaded_config: Optional[UniSQLConfig] = None


def get_config(config_path: Optional[Union[str, Path]] = None, reload: bool = False) -> UniSQLConfig:
    """Get the global configuration instance.

    Args:
        config_path: Path to configuration file.
        reload: Force reload of configuration.

    Returns:
        Global UniSQLConfig instance.
    """
    global _loaded_config

    if _loaded_config is None or reload:
        _loaded_config = _config_parser.load_config(config_path)

    return _loaded_config


def validate_config_file(config_path: Union[str, Path]) -> bool:
    """Validate a configuration file."""
    return _config_parser.validate_config_file(config_path)


def create_sample_config(output_path: Union[str, Path]) -> None:
    """Create a sample configuration file."""
    _config_parser.create_sample_config(output_path)
