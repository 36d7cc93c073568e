"""Shared fixtures for the database layer tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from unisql.db import Connection, Environment, open_environment


@pytest.fixture
def env() -> Environment:
    environment = open_environment("sqlite3")
    yield environment
    environment.close()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "unisql_test.db"


@pytest.fixture
def conn(env: Environment, db_path: Path) -> Connection:
    connection = env.connect(str(db_path))
    yield connection
    if not connection.closed and connection.open_cursor_count == 0:
        connection.close()


@pytest.fixture
def populated(conn: Connection) -> Connection:
    """Connection with a small ``people`` table."""
    conn.execute("CREATE TABLE people (id INTEGER PRIMARY KEY, name TEXT, score REAL)")
    conn.execute("INSERT INTO people (name, score) VALUES ('ann', 1.5)")
    conn.execute("INSERT INTO people (name, score) VALUES ('bob', 2.0)")
    conn.execute("INSERT INTO people (name, score) VALUES ('cy', NULL)")
    return conn
