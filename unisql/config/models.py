"""Pydantic models for unisql configuration."""

from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict


class DriverType(str, Enum):
    """Supported driver types."""
    SQLITE3 = "sqlite3"
    MYSQL = "mysql"
    POSTGRESQL = "postgresql"


class FetchMode(str, Enum):
    """How ``Cursor.fetch`` writes values into a caller-supplied container."""
    INDEX = "index"
    NAME = "name"
    BOTH = "both"

    @classmethod
    def _missing_(cls, value: object) -> Optional["FetchMode"]:
        # Mode strings of the form "n", "a", "an" select positional and/or
        # named keys.
        if isinstance(value, str) and value and set(value.lower()) <= {"n", "a"}:
            letters = set(value.lower())
            if letters == {"n", "a"}:
                return cls.BOTH
            return cls.INDEX if letters == {"n"} else cls.NAME
        return None

    @property
    def by_index(self) -> bool:
        return self in (FetchMode.INDEX, FetchMode.BOTH)

    @property
    def by_name(self) -> bool:
        return self in (FetchMode.NAME, FetchMode.BOTH)


class OptionsModel(BaseModel):
    """Base for option bundles read and written through ``get``/``set``.

    Unknown keys are ignored so that newer callers can pass options older
    drivers do not understand.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @classmethod
    def resolve_key(cls, key: str) -> Optional[str]:
        """Map a field name or one of its aliases to the field name."""
        for name, field in cls.model_fields.items():
            if key == name:
                return name
            alias = field.validation_alias
            if isinstance(alias, AliasChoices) and key in alias.choices:
                return name
        return None

    def merged(self, options: Mapping[str, Any]) -> "OptionsModel":
        """Return a copy with the recognized entries of ``options`` applied."""
        update = type(self).model_validate(dict(options))
        return self.model_copy(update=update.model_dump(include=update.model_fields_set))

    def pick(self, keys: List[str]) -> Dict[str, Any]:
        """Return the values for ``keys``, keyed as requested; unknown keys are skipped."""
        values: Dict[str, Any] = {}
        for key in keys:
            name = self.resolve_key(key)
            if name is not None:
                values[key] = getattr(self, name)
        return values


class EnvironmentDefaults(OptionsModel):
    """Backend-wide defaults held by an Environment."""
    lock_timeout_ms: int = Field(
        default=100,
        validation_alias=AliasChoices("lock_timeout_ms", "lockTimeoutMs", "locktimeout"),
        description="Milliseconds the embedded engine waits on a locked database",
    )


class ConnectionOptions(OptionsModel):
    """Settable options of a Connection."""
    auto_commit: bool = Field(
        default=True,
        validation_alias=AliasChoices("auto_commit", "autoCommit", "autocommit"),
    )


class CursorOptions(OptionsModel):
    """Settable options of a Cursor."""
    fetch_mode: FetchMode = Field(
        default=FetchMode.INDEX,
        validation_alias=AliasChoices("fetch_mode", "fetchMode", "fetchmode"),
    )

    @field_validator('fetch_mode', mode='before')
    def parse_mode_string(cls, v):
        """Accept short mode strings such as ``"an"``."""
        if isinstance(v, str):
            return FetchMode(v)
        return v


class ConnectConfig(OptionsModel):
    """Connect-time configuration bundle."""

    source: str = Field(validation_alias=AliasChoices("source", "sourcename", "database", "path"))
    username: Optional[str] = Field(default=None, validation_alias=AliasChoices("username", "user"))
    password: Optional[str] = None
    host: Optional[str] = None
    port: Optional[int] = None
    lock_timeout_ms: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("lock_timeout_ms", "lockTimeoutMs", "locktimeout"),
    )
    options: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('source')
    def validate_source(cls, v):
        """Require a non-blank connection target."""
        if not v or not v.strip():
            raise ValueError("source must not be empty")
        return v

    @field_validator('port')
    def validate_port(cls, v):
        """Validate port number range."""
        if v is not None and (v < 1 or v > 65535):
            raise ValueError("Port must be between 1 and 65535")
        return v


class DataSourceConfig(ConnectConfig):
    """A named data source: a connect bundle plus the driver to use."""
    driver: DriverType = Field(validation_alias=AliasChoices("driver", "type"))

    def connect_config(self) -> ConnectConfig:
        """Strip the driver selection, leaving the connect bundle."""
        return ConnectConfig.model_validate(self.model_dump(exclude={"driver"}))


class UniSQLConfig(BaseModel):
    """Main configuration model for unisql."""
    data_sources: Dict[str, DataSourceConfig]
    default_data_source: Optional[str] = None
    environment: EnvironmentDefaults = Field(default_factory=EnvironmentDefaults)

    @model_validator(mode='after')
    def validate_default_data_source(self):
        """Ensure default_data_source exists in data_sources."""
        if self.default_data_source and self.default_data_source not in self.data_sources:
            raise ValueError(
                f"default_data_source '{self.default_data_source}' not found in data_sources"
            )
        return self

    @model_validator(mode='after')
    def set_default_data_source(self):
        """Set default data source if not specified."""
        if not self.default_data_source and self.data_sources:
            self.default_data_source = next(iter(self.data_sources))
        return self


class EnvironmentSettings(BaseSettings):
    """Process environment settings."""
    log_level: str = Field(default="WARNING")
    debug: bool = Field(default=False)
    config_file: Optional[str] = Field(default=None)

    model_config = SettingsConfigDict(env_prefix="UNISQL_", case_sensitive=False)
