from __future__ import annotations

from pathlib import Path
import shutil

import pytest


@pytest.fixture
def temp_dir(tmp_path_factory: pytest.TempPathFactory) -> Path:
    """Provide a scratch directory removed after the test."""
    path = tmp_path_factory.mktemp("unisql")
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)


@pytest.fixture(autouse=True)
def reset_global_state():
    """Drop the cached configuration and data source manager between tests."""
    import unisql.config.parser as parser
    from unisql.db import set_data_source_manager

    yield
    parser._loaded_config = None
    set_data_source_manager(None)
