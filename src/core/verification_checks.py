"""Verification check implementations for migrated destination stores."""

from __future__ import annotations

import json
import sqlite3
from typing import Any, Callable, Mapping

from core.entities import ENTITY_SPECS, EntitySpec
from core.errors import RecordValidationError
from core.verification_types import VerificationOptions, VerificationRuntime
from importer.duplicate_detection import find_existing_ids
from store.destination_store import count_rows, existing_tables, foreign_key_violations
from store.schema import INDEX_NAMES
from store.snapshot_store import load_snapshot

CheckCallable = Callable[[VerificationRuntime], str]
CheckRow = tuple[str, str, CheckCallable]


class CheckSkipped(Exception):
    """Raised by a check that has nothing to examine."""


_ORPHAN_QUERIES: tuple[tuple[str, str, str], ...] = (
    (
        "submissions",
        "submission(s) reference a missing user",
        "SELECT COUNT(*) FROM submissions s LEFT JOIN users u ON s.user_id = u.id "
        "WHERE u.id IS NULL",
    ),
    (
        "notifications",
        "notification(s) reference a missing user",
        "SELECT COUNT(*) FROM notifications n LEFT JOIN users u ON n.user_id = u.id "
        "WHERE u.id IS NULL",
    ),
    (
        "audit_logs",
        "audit log(s) reference a missing user",
        "SELECT COUNT(*) FROM audit_logs a LEFT JOIN users u ON a.user_id = u.id "
        "WHERE a.user_id IS NOT NULL AND u.id IS NULL",
    ),
    (
        "users",
        "user(s) reference a missing department",
        "SELECT COUNT(*) FROM users u LEFT JOIN departments d ON u.department_id = d.id "
        "WHERE u.department_id IS NOT NULL AND d.id IS NULL",
    ),
    (
        "departments",
        "department(s) reference a missing head of department",
        "SELECT COUNT(*) FROM departments d LEFT JOIN users u ON d.hod_user_id = u.id "
        "WHERE d.hod_user_id IS NOT NULL AND u.id IS NULL",
    ),
)


def build_runtime(
    connection: sqlite3.Connection, options: VerificationOptions
) -> VerificationRuntime:
    """Load the snapshot and table inventory shared by later checks."""
    snapshot = load_snapshot(options.snapshot_path) if options.snapshot_path else None
    return VerificationRuntime(
        connection=connection,
        options=options,
        snapshot=snapshot,
        existing_tables=existing_tables(connection),
    )


def build_checks() -> tuple[CheckRow, ...]:
    """Build ordered check list."""
    return (
        ("V001", "Schema Shape", check_schema_shape),
        ("V002", "Record Counts", check_record_counts),
        ("V003", "Referential Integrity", check_referential_integrity),
        ("V004", "Data Quality", check_data_quality),
        ("V005", "Structured Round-Trip", check_structured_round_trip),
    )


def check_schema_shape(runtime: VerificationRuntime) -> str:
    """Verify required tables and columns; missing indexes only warn."""
    missing_columns = 0
    for spec in ENTITY_SPECS:
        if spec.name not in runtime.existing_tables:
            runtime.errors.append(f"Missing table: {spec.name}")
            continue
        present = {
            str(row[1])
            for row in runtime.connection.execute(f"PRAGMA table_info({spec.name})").fetchall()
        }
        for column in spec.columns:
            if column not in present:
                missing_columns += 1
                runtime.errors.append(f"Missing column: {spec.name}.{column}")
    present_indexes = {
        str(row[0])
        for row in runtime.connection.execute(
            "SELECT name FROM sqlite_master WHERE type = 'index'"
        ).fetchall()
    }
    missing_indexes = 0
    for table, indexes in INDEX_NAMES.items():
        for index_name, _ in indexes:
            if index_name not in present_indexes:
                missing_indexes += 1
                runtime.warnings.append(f"Missing index: {index_name} on {table}")
    return (
        f"tables={len(ENTITY_SPECS)} missing_columns={missing_columns} "
        f"missing_indexes={missing_indexes}"
    )


def check_record_counts(runtime: VerificationRuntime) -> str:
    """Count rows and confirm every snapshot record reached the destination."""
    runtime.table_counts = count_rows(runtime.connection)
    total = sum(runtime.table_counts.values())
    if runtime.snapshot is None:
        return f"total_records={total} snapshot=none"
    missing_total = 0
    for spec in ENTITY_SPECS:
        if spec.name not in runtime.existing_tables:
            continue
        records = runtime.snapshot.records.get(spec.name, ())
        missing = sum(
            1
            for index, payload in enumerate(records)
            if not isinstance(payload, dict)
            or not find_existing_ids(
                runtime.connection,
                spec.name,
                _comparable_row(spec, index, payload),
                runtime.options.natural_keys,
            )
        )
        if missing:
            missing_total += missing
            runtime.errors.append(
                f"Count mismatch for {spec.name}: {missing} of {len(records)} snapshot "
                "records are missing from the destination"
            )
    return f"total_records={total} missing_snapshot_records={missing_total}"


def check_referential_integrity(runtime: VerificationRuntime) -> str:
    """Count dangling references per relationship."""
    found = 0
    for table, description, query in _ORPHAN_QUERIES:
        if not _tables_present(runtime, table, "users", "departments"):
            continue
        count = int(runtime.connection.execute(query).fetchone()[0])
        if count:
            found += count
            runtime.errors.append(f"Found {count} {description}")
    violations = foreign_key_violations(runtime.connection)
    # Both sources see the same dangling rows when the schema declares the reference.
    runtime.integrity_issues += max(found, len(violations))
    if violations:
        tables = sorted({table for table, _, _ in violations})
        runtime.errors.append(
            f"Foreign key check reported {len(violations)} violation(s) in: {', '.join(tables)}"
        )
    return f"dangling_references={found} foreign_key_violations={len(violations)}"


def check_data_quality(runtime: VerificationRuntime) -> str:
    """Flag duplicate user keys and incomplete rows."""
    if not _tables_present(runtime, "users", "departments", "submissions"):
        raise CheckSkipped("required tables missing")
    for column in ("employee_id", "email"):
        duplicates = runtime.connection.execute(
            f"SELECT {column}, COUNT(*) FROM users GROUP BY {column} HAVING COUNT(*) > 1"
        ).fetchall()
        if duplicates:
            runtime.errors.append(f"Found {len(duplicates)} duplicate user {column} value(s)")
    warnings = (
        ("SELECT COUNT(*) FROM users WHERE department_id IS NULL", "user(s) have no department"),
        (
            "SELECT COUNT(*) FROM departments WHERE hod_user_id IS NULL",
            "department(s) have no head of department",
        ),
        (
            "SELECT COUNT(*) FROM submissions WHERE document_url IS NULL OR document_url = ''",
            "submission(s) have no document",
        ),
    )
    flagged: list[str] = []
    for query, description in warnings:
        count = int(runtime.connection.execute(query).fetchone()[0])
        if count:
            runtime.warnings.append(f"{count} {description}")
            flagged.append(f"{count} {description}")
    return "; ".join(flagged) if flagged else "no data quality findings"


def check_structured_round_trip(runtime: VerificationRuntime) -> str:
    """Compare a sample of structured fields against the snapshot."""
    if runtime.snapshot is None:
        raise CheckSkipped("no snapshot to compare against")
    sample_size = runtime.options.sample_size
    compared = 0
    mismatches = 0
    for table, column in (("submissions", "form_data"), ("notifications", "read_flag")):
        if table not in runtime.existing_tables:
            continue
        sample = [
            item for item in runtime.snapshot.records.get(table, ()) if isinstance(item, dict)
        ]
        for payload in sample[:sample_size]:
            stored = runtime.connection.execute(
                f"SELECT {column} FROM {table} WHERE id = ?", (payload.get("id"),)
            ).fetchone()
            if stored is None:
                continue
            compared += 1
            if not _same_value(column, payload.get(column), stored[0]):
                mismatches += 1
                runtime.warnings.append(
                    f"{table} {payload.get('id')}: {column} does not match the snapshot"
                )
    return f"compared={compared} mismatches={mismatches}"


def _comparable_row(spec: EntitySpec, index: int, payload: dict[str, Any]) -> Mapping[str, Any]:
    # Rows imported without validation were stored raw.
    try:
        return spec.parse(payload, index).to_row()
    except RecordValidationError:
        return payload


def _same_value(column: str, expected: object, stored: object) -> bool:
    if column == "read_flag":
        return _as_flag(expected) == _as_flag(stored)
    return _as_json(expected) == _as_json(stored)


def _as_flag(value: object) -> int | None:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, str)) and str(value).strip() in ("0", "1"):
        return int(str(value).strip())
    return None


def _as_json(value: object) -> object:
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value


def _tables_present(runtime: VerificationRuntime, *tables: str) -> bool:
    return all(table in runtime.existing_tables for table in tables)
