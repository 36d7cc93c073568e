"""Tests for Cursor against a real SQLite database."""

import gc

import pandas as pd
import pytest

from unisql.config.models import FetchMode
from unisql.db import Cursor, CursorState
from unisql.db.adapters import sqlite as sqlite_adapter
from unisql.exceptions import (
    ConfigurationError,
    DatabaseError,
    ExecutionError,
    ResourceStateError,
    UnsupportedTypeError,
)


class TestMetadata:

    def test_names_and_types(self, populated):
        with populated.execute("SELECT id, name, score FROM people ORDER BY id") as cursor:
            assert cursor.get_column_names() == ["id", "name", "score"]
            assert cursor.get_column_types() == ["INTEGER", "TEXT", "REAL"]
            assert [column.name for column in cursor.columns] == ["id", "name", "score"]

    def test_empty_result_is_still_a_cursor(self, populated):
        cursor = populated.execute("SELECT name FROM people WHERE 0")
        assert isinstance(cursor, Cursor)
        assert cursor.get_column_names() == ["name"]
        assert cursor.get_column_types() == ["TEXT"]
        assert cursor.fetch() is None
        assert populated.open_cursor_count == 0

    def test_declared_types_are_reported(self, conn):
        conn.execute("CREATE TABLE t(a INT, d DATETIME, s VARCHAR(10))")
        with conn.execute("SELECT a, d, s FROM t") as cursor:
            assert cursor.get_column_types() == ["INT", "DATETIME", "VARCHAR(10)"]

        conn.execute("INSERT INTO t VALUES (1, NULL, 'x')")
        with conn.execute("SELECT a, d, s FROM t") as cursor:
            assert cursor.get_column_types() == ["INT", "DATETIME", "VARCHAR(10)"]
            assert cursor.fetch() == (1, None, "x")

    def test_expression_columns_have_no_declared_type(self, conn):
        with conn.execute("SELECT 1 AS n") as cursor:
            assert cursor.get_column_types() == [""]

    def test_explain_is_a_cursor(self, conn):
        cursor = conn.execute("EXPLAIN SELECT 1")
        assert isinstance(cursor, Cursor)
        assert cursor.fetch_all()
        assert conn.open_cursor_count == 0

    def test_metadata_survives_exhaustion(self, populated):
        cursor = populated.execute("SELECT name FROM people")
        cursor.fetch_all()
        assert cursor.state is CursorState.EXHAUSTED
        assert cursor.get_column_names() == ["name"]

    def test_metadata_unavailable_after_close(self, populated):
        cursor = populated.execute("SELECT name FROM people")
        cursor.close()
        with pytest.raises(ResourceStateError):
            cursor.get_column_names()
        with pytest.raises(ResourceStateError):
            cursor.get_column_types()

    def test_row_count_unknown_for_sqlite(self, populated):
        with populated.execute("SELECT name FROM people") as cursor:
            assert cursor.row_count is None


class TestValues:

    def test_value_kinds(self, conn):
        cursor = conn.execute("SELECT 1, 2.5, 'x', NULL, x'01'")
        assert cursor.fetch() == (1, 2.5, "x", None, b"\x01")
        assert cursor.fetch() is None

    def test_embedded_nul_in_text(self, conn):
        with conn.execute("SELECT 'a' || char(0) || 'b'") as cursor:
            assert cursor.fetch() == ("a\x00b",)

    def test_embedded_nul_in_stored_text(self, conn):
        conn.execute("CREATE TABLE t(s TEXT)")
        assert conn.execute("INSERT INTO t VALUES ('a' || char(0) || 'b')") == 1
        with conn.execute("SELECT s, length(CAST(s AS BLOB)) FROM t") as cursor:
            assert cursor.get_column_types() == ["TEXT", ""]
            assert cursor.fetch() == ("a\x00b", 3)

    def test_embedded_nul_in_blob(self, conn):
        conn.execute("CREATE TABLE t(b BLOB)")
        conn.execute("INSERT INTO t VALUES (x'00ff00')")
        with conn.execute("SELECT b FROM t") as cursor:
            assert cursor.fetch() == (b"\x00\xff\x00",)

    def test_unsupported_type(self, conn, monkeypatch):
        monkeypatch.delitem(sqlite_adapter.STORAGE_CLASSES, float)
        cursor = conn.execute("SELECT 1.5")

        with pytest.raises(UnsupportedTypeError) as excinfo:
            cursor.fetch()

        assert excinfo.value.native_type is float
        assert excinfo.value.driver_tag == "unisql.sqlite3"
        assert cursor.closed
        assert conn.open_cursor_count == 0
        assert cursor.fetch() is None


class TestFetchTargets:

    def test_list_target_grows(self, populated):
        with populated.execute("SELECT id, name FROM people ORDER BY id") as cursor:
            row = []
            assert cursor.fetch(row) is row
            assert row == [1, "ann"]

            longer = [None, None, "kept"]
            cursor.fetch(longer)
            assert longer == [2, "bob", "kept"]

    def test_name_mode(self, populated):
        with populated.execute("SELECT id, name FROM people ORDER BY id") as cursor:
            cursor.set(fetchmode="a")
            assert cursor.fetch({}) == {"id": 1, "name": "ann"}

    def test_both_mode(self, populated):
        with populated.execute("SELECT id, name FROM people ORDER BY id") as cursor:
            cursor.fetch_mode = "an"
            assert cursor.fetch_mode is FetchMode.BOTH
            assert cursor.fetch({}) == {0: 1, 1: "ann", "id": 1, "name": "ann"}

    def test_name_mode_requires_mapping(self, populated):
        with populated.execute("SELECT id FROM people") as cursor:
            cursor.fetch_mode = FetchMode.NAME
            with pytest.raises(TypeError):
                cursor.fetch([])

    def test_too_many_columns(self, conn):
        with conn.execute("SELECT 1, 2") as cursor:
            cursor.MAX_POSITIONAL_COLUMNS = 1
            with pytest.raises(DatabaseError, match="too many columns"):
                cursor.fetch()
            assert cursor.fetch([]) == [1, 2]


class TestLifecycle:

    def test_exhausted_fetch_returns_none(self, populated):
        cursor = populated.execute("SELECT name FROM people")
        assert len(cursor.fetch_all()) == 3
        assert cursor.fetch() is None
        assert cursor.fetch() is None
        assert cursor.close() is False
        assert populated.open_cursor_count == 0

    def test_explicit_close(self, populated):
        cursor = populated.execute("SELECT name FROM people")
        assert cursor.close() is True
        assert cursor.close() is False
        assert cursor.state is CursorState.CLOSED
        assert populated.open_cursor_count == 0
        with pytest.raises(ResourceStateError):
            cursor.fetch()

    def test_open_cursor_count_tracks_every_release(self, populated):
        first = populated.execute("SELECT name FROM people")
        second = populated.execute("SELECT id FROM people")
        third = populated.execute("SELECT score FROM people")
        assert populated.open_cursor_count == 3

        first.close()
        assert populated.open_cursor_count == 2

        second.fetch_all()
        assert populated.open_cursor_count == 1

        del third
        gc.collect()
        assert populated.open_cursor_count == 0
        assert populated.close() is True

    def test_finalize_error_is_raised_once(self, conn, monkeypatch):
        cursor = conn.execute("SELECT 1")
        assert cursor.fetch() == (1,)

        def failing_finalize(handle):
            raise ExecutionError("finalize failed", driver_tag="unisql.sqlite3")

        monkeypatch.setattr(conn.driver, "finalize", failing_finalize)
        with pytest.raises(ExecutionError, match="finalize failed"):
            cursor.fetch()
        assert cursor.fetch() is None
        assert conn.open_cursor_count == 0

    def test_step_error_releases_cursor(self, conn, monkeypatch):
        cursor = conn.execute("SELECT 1")

        def failing_fetch_row(handle):
            raise ExecutionError("step failed", driver_tag="unisql.sqlite3")

        monkeypatch.setattr(conn.driver, "fetch_row", failing_fetch_row)
        with pytest.raises(ExecutionError, match="step failed"):
            cursor.fetch()
        assert cursor.closed
        assert conn.open_cursor_count == 0
        assert cursor.fetch() is None

    def test_context_manager(self, populated):
        with populated.execute("SELECT name FROM people") as cursor:
            cursor.fetch()
        assert cursor.closed
        assert populated.open_cursor_count == 0


class TestOptionsAndHelpers:

    def test_get_and_set(self, populated):
        with populated.execute("SELECT name FROM people") as cursor:
            assert cursor.get("fetchmode") == {"fetchmode": FetchMode.INDEX}
            assert cursor.set(fetch_mode="both", bogus=1) is True
            assert cursor.get("fetch_mode") == {"fetch_mode": FetchMode.BOTH}

    def test_invalid_mode(self, populated):
        with populated.execute("SELECT name FROM people") as cursor:
            with pytest.raises(ConfigurationError):
                cursor.set(fetch_mode="zz")
            assert cursor.fetch_mode is FetchMode.INDEX

    def test_iteration(self, populated):
        cursor = populated.execute("SELECT name FROM people ORDER BY id")
        assert [row[0] for row in cursor] == ["ann", "bob", "cy"]
        assert cursor.closed

    def test_to_dataframe(self, populated):
        cursor = populated.execute("SELECT name, score FROM people ORDER BY id")
        frame = cursor.to_dataframe()
        assert isinstance(frame, pd.DataFrame)
        assert list(frame.columns) == ["name", "score"]
        assert frame["name"].tolist() == ["ann", "bob", "cy"]
        assert frame["score"].iloc[0] == 1.5

    def test_to_dataframe_empty(self, populated):
        frame = populated.execute("SELECT name FROM people WHERE 0").to_dataframe()
        assert list(frame.columns) == ["name"]
        assert frame.empty
