"""Destination store handle.

This module owns every connection to the embedded destination store.
Connections are acquired through scoped context managers and tracked by
the handle so maintenance operations such as rollback can close them all,
swap the underlying file, and reopen without leaving stale writers behind.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from core.constants import ENTITY_ORDER
from core.errors import MigratorStoreError
from core.logging_config import get_logger
from store.schema import apply_schema

_LOGGER = get_logger(__name__)

_BUSY_TIMEOUT_MS = 5000


class DestinationStore:
    """Explicit handle for one destination store file."""

    def __init__(self, database_path: Path) -> None:
        """Create a handle without opening the store.

        Args:
            database_path: Destination SQLite file path.
        """
        self._path = database_path
        self._connections: list[sqlite3.Connection] = []
        self._closed = False

    @property
    def path(self) -> Path:
        return self._path

    @property
    def exists(self) -> bool:
        return self._path.is_file() and self._path.stat().st_size > 0

    @property
    def open_connection_count(self) -> int:
        return len(self._connections)

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Open one tracked connection for the duration of a ``with`` block.

        Connections run in autocommit mode; callers issue explicit
        ``BEGIN``/``SAVEPOINT`` statements for transactional work.

        Raises:
            MigratorStoreError: If the handle is closed or the file cannot be opened.
        """
        connection = self._open()
        try:
            yield connection
        finally:
            self._release(connection)

    @contextmanager
    def transaction(self, connection: sqlite3.Connection, commit: bool = True) -> Iterator[None]:
        """Run a block in one outer transaction, committing or rolling back at exit.

        Args:
            connection: Connection acquired from ``connect``.
            commit: Whether to commit on success; ``False`` always rolls back.
        """
        connection.execute("BEGIN")
        try:
            yield
        except BaseException:
            connection.execute("ROLLBACK")
            raise
        connection.execute("COMMIT" if commit else "ROLLBACK")

    def initialize_schema(self) -> tuple[str, ...]:
        """Create missing tables and indexes, returning newly applied versions."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self.connect() as connection:
            with self.transaction(connection):
                return apply_schema(connection)

    def table_counts(self) -> dict[str, int]:
        """Count rows per migrated table; missing tables count as zero."""
        with self.connect() as connection:
            return count_rows(connection)

    def close_all(self) -> int:
        """Close every tracked connection and refuse new ones until ``reopen``.

        Returns:
            Number of connections closed.
        """
        closed = 0
        for connection in list(self._connections):
            connection.close()
            closed += 1
        self._connections.clear()
        self._closed = True
        _LOGGER.info("destination_connections_closed", path=str(self._path), closed=closed)
        return closed

    def reopen(self) -> None:
        """Allow new connections after a maintenance window."""
        self._closed = False
        _LOGGER.info("destination_store_reopened", path=str(self._path))

    def _open(self) -> sqlite3.Connection:
        if self._closed:
            raise MigratorStoreError(
                f"Destination store {self._path} is closed for maintenance. "
                "Wait for the rollback to finish before opening connections."
            )
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            connection = sqlite3.connect(str(self._path), isolation_level=None)
            connection.row_factory = sqlite3.Row
            connection.execute("PRAGMA foreign_keys = ON")
            connection.execute(f"PRAGMA busy_timeout = {_BUSY_TIMEOUT_MS}")
        except (sqlite3.Error, OSError) as error:
            raise MigratorStoreError(
                f"Failed to open destination store at {self._path}: {error}. "
                "Check the path and file permissions."
            ) from error
        self._connections.append(connection)
        return connection

    def _release(self, connection: sqlite3.Connection) -> None:
        if connection in self._connections:
            self._connections.remove(connection)
            connection.close()


def count_rows(connection: sqlite3.Connection) -> dict[str, int]:
    """Count rows per migrated table on an open connection."""
    existing = existing_tables(connection)
    counts: dict[str, int] = {}
    for table in ENTITY_ORDER:
        if table not in existing:
            counts[table] = 0
            continue
        counts[table] = int(connection.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0])
    return counts


def existing_tables(connection: sqlite3.Connection) -> set[str]:
    rows = connection.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    return {str(row[0]) for row in rows}


def foreign_key_violations(connection: sqlite3.Connection) -> list[tuple[str, int, str]]:
    """Return ``(table, rowid, parent)`` for every row failing a foreign key."""
    rows = connection.execute("PRAGMA foreign_key_check").fetchall()
    return [(str(row[0]), int(row[1]) if row[1] is not None else -1, str(row[2])) for row in rows]
