"""Atomic batch writes into the destination store.

This module writes one batch of records inside a savepoint. Every record
in the batch is attempted so all offending records are identified; if
any failed, the whole batch is rolled back and none of its writes remain.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Literal, Sequence

from core.errors import BatchConstraintError, RecordFailure
from core.logging_config import get_logger
from core.natural_keys import NaturalKeys
from importer.duplicate_detection import find_existing_ids
from importer.record_validation import PreparedRecord

_LOGGER = get_logger(__name__)

WriteAction = Literal["inserted", "updated", "skipped"]


@dataclass(frozen=True)
class RecordWrite:
    """One record's effect inside a batch."""

    record: PreparedRecord
    action: WriteAction
    destination_id: str
    duplicate: bool


@dataclass(frozen=True)
class BatchOutcome:
    """Result of one batch; ``writes`` only persist when ``committed``."""

    entity: str
    batch_number: int
    committed: bool
    writes: tuple[RecordWrite, ...]
    failures: tuple[RecordFailure, ...]


class _RecordConflict(Exception):
    """Raised when a record cannot be matched to a single destination row."""


@contextmanager
def batch_scope(connection: sqlite3.Connection, name: str) -> Iterator[None]:
    """Run a block inside one savepoint, rolling it back if the block raises."""
    connection.execute(f"SAVEPOINT {name}")
    try:
        yield
    except BaseException:
        connection.execute(f"ROLLBACK TO SAVEPOINT {name}")
        connection.execute(f"RELEASE SAVEPOINT {name}")
        raise
    connection.execute(f"RELEASE SAVEPOINT {name}")


def write_batch(
    connection: sqlite3.Connection,
    entity: str,
    items: Sequence[tuple[PreparedRecord, dict[str, object]]],
    keys: NaturalKeys,
    skip_duplicates: bool,
    batch_number: int,
) -> BatchOutcome:
    """Write one batch atomically.

    Args:
        connection: Open destination connection.
        entity: Entity table name.
        items: Records paired with the row to write (references already remapped).
        keys: Natural keys per entity.
        skip_duplicates: Skip natural-key matches instead of updating them.
        batch_number: 1-based batch number within the entity.

    Returns:
        Batch outcome; on rollback, ``failures`` names every offending record.
    """
    writes: list[RecordWrite] = []
    failures: list[RecordFailure] = []
    try:
        with batch_scope(connection, f"batch_{entity}_{batch_number}"):
            for record, row in items:
                try:
                    write = _write_record(connection, entity, record, row, keys, skip_duplicates)
                except (sqlite3.Error, _RecordConflict) as error:
                    label = record.record_id or f"index {record.index}"
                    failures.append(RecordFailure(entity, label, str(error)))
                    continue
                writes.append(write)
            if failures:
                raise BatchConstraintError(entity, batch_number, tuple(failures))
    except BatchConstraintError as error:
        _LOGGER.warning(
            "batch_rolled_back",
            entity=entity,
            batch=batch_number,
            records=len(items),
            failures=len(error.failures),
        )
        return BatchOutcome(entity, batch_number, False, tuple(writes), error.failures)
    _LOGGER.info("batch_committed", entity=entity, batch=batch_number, records=len(items))
    return BatchOutcome(entity, batch_number, True, tuple(writes), ())


def _write_record(
    connection: sqlite3.Connection,
    entity: str,
    record: PreparedRecord,
    row: dict[str, object],
    keys: NaturalKeys,
    skip_duplicates: bool,
) -> RecordWrite:
    matches = find_existing_ids(connection, entity, row, keys)
    if not matches:
        columns = list(row)
        placeholders = ", ".join("?" for _ in columns)
        connection.execute(
            f"INSERT INTO {entity} ({', '.join(columns)}) VALUES ({placeholders})",
            tuple(row[column] for column in columns),
        )
        return RecordWrite(record, "inserted", str(row.get("id")), duplicate=False)
    if skip_duplicates:
        return RecordWrite(record, "skipped", matches[0], duplicate=True)
    if len(matches) > 1:
        raise _RecordConflict(
            f"natural key matches {len(matches)} existing {entity} rows ({', '.join(matches)})"
        )
    columns = [column for column in row if column != "id"]
    assignments = ", ".join(f"{column} = ?" for column in columns)
    connection.execute(
        f"UPDATE {entity} SET {assignments} WHERE id = ?",
        (*(row[column] for column in columns), matches[0]),
    )
    return RecordWrite(record, "updated", matches[0], duplicate=True)


def chunked(records: Sequence[PreparedRecord], size: int) -> Iterator[Sequence[PreparedRecord]]:
    """Yield consecutive slices of at most ``size`` records."""
    for start in range(0, len(records), size):
        yield records[start : start + size]
