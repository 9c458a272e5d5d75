"""Unit tests for the destination store handle."""

from __future__ import annotations

import sqlite3

import pytest

from core.errors import MigratorStoreError
from store.destination_store import (
    DestinationStore,
    count_rows,
    existing_tables,
    foreign_key_violations,
)
from store.schema import expected_index_names
from tests.snapshot_factory import make_id


def test_initialize_schema_creates_tables_and_indexes(tmp_path) -> None:
    """Initializing should create every table and index once."""
    store = DestinationStore(tmp_path / "database.db")

    applied = store.initialize_schema()
    reapplied = store.initialize_schema()

    with store.connect() as connection:
        tables = existing_tables(connection)
        indexes = {
            row[0]
            for row in connection.execute("SELECT name FROM sqlite_master WHERE type = 'index'")
        }
    assert applied and reapplied == ()
    assert {"departments", "users", "submissions", "notifications", "audit_logs"} <= tables
    assert set(expected_index_names()) <= indexes


def test_table_counts_on_empty_store(tmp_path) -> None:
    """Missing tables should count as zero rows."""
    store = DestinationStore(tmp_path / "database.db")

    assert store.table_counts() == {
        "departments": 0,
        "users": 0,
        "submissions": 0,
        "notifications": 0,
        "audit_logs": 0,
    }


def test_foreign_keys_are_enforced(tmp_path) -> None:
    """Writes referencing missing parents should be refused."""
    store = DestinationStore(tmp_path / "database.db")
    store.initialize_schema()

    with store.connect() as connection:
        with pytest.raises(sqlite3.IntegrityError, match="FOREIGN KEY"):
            connection.execute(
                "INSERT INTO notifications (id, user_id, message, read_flag, created_at) "
                "VALUES (?, ?, 'hi', 0, '2024-01-01T00:00:00Z')",
                (make_id("notifications", 0), make_id("users", 99)),
            )


def test_transaction_without_commit_discards_writes(tmp_path) -> None:
    """A non-committing transaction should leave the store unchanged."""
    store = DestinationStore(tmp_path / "database.db")
    store.initialize_schema()

    with store.connect() as connection:
        with store.transaction(connection, commit=False):
            connection.execute(
                "INSERT INTO departments (id, name, code, created_at, updated_at) "
                "VALUES (?, 'Physics', 'PHY', '2024-01-01', '2024-01-01')",
                (make_id("departments", 0),),
            )
        counts = count_rows(connection)

    assert counts["departments"] == 0


def test_connections_are_tracked_and_released(tmp_path) -> None:
    """Scoped connections should be counted only while open."""
    store = DestinationStore(tmp_path / "database.db")

    with store.connect():
        assert store.open_connection_count == 1
    assert store.open_connection_count == 0


def test_close_all_blocks_connections_until_reopen(tmp_path) -> None:
    """A closed handle should refuse connections until reopened."""
    store = DestinationStore(tmp_path / "database.db")
    store.initialize_schema()

    store.close_all()
    with pytest.raises(MigratorStoreError, match="closed for maintenance"):
        with store.connect():
            pass
    store.reopen()

    assert store.table_counts()["users"] == 0


def test_foreign_key_violations_lists_orphans(tmp_path) -> None:
    """Rows written with enforcement off should be reported as violations."""
    store = DestinationStore(tmp_path / "database.db")
    store.initialize_schema()

    with store.connect() as connection:
        connection.execute("PRAGMA foreign_keys = OFF")
        connection.execute(
            "INSERT INTO notifications (id, user_id, message, read_flag, created_at) "
            "VALUES (?, ?, 'hi', 0, '2024-01-01T00:00:00Z')",
            (make_id("notifications", 0), make_id("users", 99)),
        )
        violations = foreign_key_violations(connection)

    assert [(table, parent) for table, _, parent in violations] == [("notifications", "users")]


def test_exists_requires_non_empty_file(tmp_path) -> None:
    """An empty placeholder file is not a store."""
    database_path = tmp_path / "database.db"
    database_path.touch()

    assert not DestinationStore(database_path).exists
