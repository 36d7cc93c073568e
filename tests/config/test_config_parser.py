"""Tests for YAML configuration loading."""

from pathlib import Path

import pytest
import yaml

from unisql.config import ConfigParser, create_sample_config, get_config, validate_config_file
from unisql.config.models import DriverType
from unisql.config.parser import interpolate
from unisql.exceptions import ConfigurationError


def write_yaml(path: Path, data) -> Path:
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


@pytest.fixture
def parser() -> ConfigParser:
    return ConfigParser()


def test_load_minimal_config(parser, tmp_path):
    config_file = write_yaml(tmp_path / "unisql.yaml", {
        "data_sources": {"local": {"driver": "sqlite3", "source": "app.db"}},
    })
    config = parser.load_config(config_file)
    assert config.default_data_source == "local"
    assert config.data_sources["local"].driver is DriverType.SQLITE3


def test_env_var_substitution(parser, tmp_path, monkeypatch):
    monkeypatch.setenv("UNISQL_TEST_PASSWORD", "hunter2")
    monkeypatch.delenv("UNISQL_TEST_PORT", raising=False)
    config_file = tmp_path / "unisql.yaml"
    config_file.write_text(
        "data_sources:\n"
        "  reporting:\n"
        "    driver: mysql\n"
        "    source: reports\n"
        "    password: ${UNISQL_TEST_PASSWORD}\n"
        "    port: ${UNISQL_TEST_PORT:-3307}\n",
        encoding="utf-8",
    )
    config = parser.load_config(config_file)
    reporting = config.data_sources["reporting"]
    assert reporting.password == "hunter2"
    assert reporting.port == 3307


def test_missing_required_env_var(parser, tmp_path, monkeypatch):
    monkeypatch.delenv("UNISQL_TEST_UNSET", raising=False)
    config_file = tmp_path / "unisql.yaml"
    config_file.write_text(
        "data_sources:\n"
        "  local:\n"
        "    driver: sqlite3\n"
        "    source: ${UNISQL_TEST_UNSET}\n",
        encoding="utf-8",
    )
    with pytest.raises(ConfigurationError, match="UNISQL_TEST_UNSET"):
        parser.load_config(config_file)


def test_include_files_are_merged(parser, tmp_path):
    write_yaml(tmp_path / "shared.yaml", {
        "data_sources": {"shared": {"driver": "sqlite3", "source": "shared.db"}},
        "environment": {"lock_timeout_ms": 500},
    })
    config_file = write_yaml(tmp_path / "unisql.yaml", {
        "include": "shared.yaml",
        "data_sources": {"local": {"driver": "sqlite3", "source": "local.db"}},
        "default_data_source": "local",
    })
    config = parser.load_config(config_file)
    assert set(config.data_sources) == {"shared", "local"}
    assert config.environment.lock_timeout_ms == 500


def test_missing_include(parser, tmp_path):
    config_file = write_yaml(tmp_path / "unisql.yaml", {
        "include": ["nowhere.yaml"],
        "data_sources": {"local": {"driver": "sqlite3", "source": "local.db"}},
    })
    with pytest.raises(ConfigurationError, match="not found"):
        parser.load_config(config_file)


def test_empty_file(parser, tmp_path):
    config_file = tmp_path / "unisql.yaml"
    config_file.write_text("", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="empty"):
        parser.load_config(config_file)


def test_invalid_yaml(parser, tmp_path):
    config_file = tmp_path / "unisql.yaml"
    config_file.write_text("data_sources: [unclosed", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="Invalid YAML"):
        parser.load_config(config_file)


def test_validation_failure(parser, tmp_path):
    config_file = write_yaml(tmp_path / "unisql.yaml", {
        "data_sources": {"local": {"driver": "sqlite3"}},
    })
    with pytest.raises(ConfigurationError, match="validation failed"):
        parser.load_config(config_file)


def test_missing_explicit_path(parser, tmp_path):
    with pytest.raises(ConfigurationError, match="not found"):
        parser.load_config(tmp_path / "absent.yaml")


def test_default_location(parser, tmp_path, monkeypatch):
    write_yaml(tmp_path / "unisql.yml", {
        "data_sources": {"local": {"driver": "sqlite3", "source": "app.db"}},
    })
    monkeypatch.chdir(tmp_path)
    assert parser.load_config().data_sources["local"].source == "app.db"


def test_sample_config_round_trip(tmp_path):
    sample = tmp_path / "sample.yaml"
    create_sample_config(sample)
    assert validate_config_file(sample) is True

    config = get_config(sample, reload=True)
    assert config.default_data_source == "local"
    assert config.data_sources["reporting"].driver is DriverType.MYSQL
    assert config.data_sources["warehouse"].driver is DriverType.POSTGRESQL
    assert config.data_sources["warehouse"].options["sslmode"] == "prefer"


def test_get_config_caches_until_reload(tmp_path):
    first = write_yaml(tmp_path / "first.yaml", {
        "data_sources": {"first": {"driver": "sqlite3", "source": "first.db"}},
    })
    second = write_yaml(tmp_path / "second.yaml", {
        "data_sources": {"second": {"driver": "sqlite3", "source": "second.db"}},
    })
    assert get_config(first, reload=True).default_data_source == "first"
    assert get_config(second).default_data_source == "first"
    assert get_config(second, reload=True).default_data_source == "second"


def test_aliased_keys_layer_onto_included_data_source(parser, tmp_path):
    write_yaml(tmp_path / "shared.yaml", {
        "data_sources": {"local": {"type": "sqlite3", "path": "shared.db", "locktimeout": 50}},
    })
    config_file = write_yaml(tmp_path / "unisql.yaml", {
        "include": ["shared.yaml"],
        "data_sources": {"local": {"source": "override.db"}},
    })
    local = parser.load_config(config_file).data_sources["local"]
    assert local.source == "override.db"
    assert local.driver is DriverType.SQLITE3
    assert local.lock_timeout_ms == 50


def test_nested_includes_resolve_relative_to_including_file(parser, tmp_path):
    (tmp_path / "conf").mkdir()
    write_yaml(tmp_path / "conf" / "base.yaml", {
        "data_sources": {"base": {"driver": "postgresql", "database": "warehouse", "user": "analyst"}},
    })
    write_yaml(tmp_path / "conf" / "team.yaml", {
        "include": "base.yaml",
        "environment": {"lockTimeoutMs": 300},
    })
    config_file = write_yaml(tmp_path / "unisql.yaml", {
        "include": "conf/team.yaml",
        "default_data_source": "base",
    })
    config = parser.load_config(config_file)
    assert config.data_sources["base"].username == "analyst"
    assert config.data_sources["base"].source == "warehouse"
    assert config.environment.lock_timeout_ms == 300


def test_include_cycle(parser, tmp_path):
    write_yaml(tmp_path / "a.yaml", {"include": "b.yaml"})
    write_yaml(tmp_path / "b.yaml", {"include": "a.yaml"})
    with pytest.raises(ConfigurationError, match="include cycle"):
        parser.load_config(tmp_path / "a.yaml")


def test_empty_included_file_is_skipped(parser, tmp_path):
    (tmp_path / "blank.yaml").write_text("", encoding="utf-8")
    config_file = write_yaml(tmp_path / "unisql.yaml", {
        "include": "blank.yaml",
        "data_sources": {"local": {"driver": "sqlite3", "source": "local.db"}},
    })
    assert list(parser.load_config(config_file).data_sources) == ["local"]


def test_data_source_error_names_the_source(parser, tmp_path):
    config_file = write_yaml(tmp_path / "unisql.yaml", {
        "data_sources": {
            "good": {"driver": "sqlite3", "source": "good.db"},
            "bad": {"driver": "oracle", "source": "x"},
        },
    })
    with pytest.raises(ConfigurationError, match="data source 'bad'"):
        parser.load_config(config_file)


def test_invalid_environment_block(parser, tmp_path):
    config_file = write_yaml(tmp_path / "unisql.yaml", {
        "data_sources": {"local": {"driver": "sqlite3", "source": "local.db"}},
        "environment": {"lock_timeout_ms": "soon"},
    })
    with pytest.raises(ConfigurationError, match="validation failed for environment"):
        parser.load_config(config_file)


def test_data_source_entry_must_be_mapping(parser, tmp_path):
    config_file = write_yaml(tmp_path / "unisql.yaml", {"data_sources": {"local": "app.db"}})
    with pytest.raises(ConfigurationError, match="data source 'local'.*mapping"):
        parser.load_config(config_file)


def test_top_level_must_be_mapping(parser, tmp_path):
    config_file = write_yaml(tmp_path / "unisql.yaml", ["not", "a", "mapping"])
    with pytest.raises(ConfigurationError, match="must hold a mapping"):
        parser.load_config(config_file)


def test_unknown_sections_are_ignored(parser, tmp_path, caplog):
    config_file = write_yaml(tmp_path / "unisql.yaml", {
        "data_sources": {"local": {"driver": "sqlite3", "source": "app.db"}},
        "databases": {"old": {}},
    })
    with caplog.at_level("WARNING", logger="unisql.config.parser"):
        config = parser.load_config(config_file)
    assert list(config.data_sources) == ["local"]
    assert "databases" in caplog.text


def test_config_file_setting(tmp_path, monkeypatch):
    target = write_yaml(tmp_path / "elsewhere.yaml", {
        "data_sources": {"remote": {"driver": "mysql", "source": "reports"}},
    })
    monkeypatch.setenv("UNISQL_CONFIG_FILE", str(target))
    monkeypatch.chdir(tmp_path)
    assert ConfigParser().locate() == target


def test_interpolate_nested_values(monkeypatch):
    monkeypatch.setenv("UNISQL_TEST_HOST", "db.internal")
    monkeypatch.delenv("UNISQL_TEST_MISSING", raising=False)
    value = {"hosts": ["${UNISQL_TEST_HOST}", "${ UNISQL_TEST_MISSING :-fallback}"], "port": 5432}
    assert interpolate(value) == {"hosts": ["db.internal", "fallback"], "port": 5432}
