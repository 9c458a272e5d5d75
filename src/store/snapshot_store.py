"""Portable snapshot files.

This module writes immutable, self-describing snapshot files and loads
them back with structural checks. Snapshots carry a format marker and
declared per-entity record counts so a reader can detect truncation.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from core.constants import (
    ENTITY_ORDER,
    REQUIRED_SNAPSHOT_ENTITIES,
    SNAPSHOT_FILE_INFIX,
    SNAPSHOT_FORMAT_MARKER,
    SNAPSHOT_FORMAT_VERSION,
)
from core.errors import MigratorIOError
from core.formatting import file_timestamp, format_timestamp, utc_now
from core.logging_config import get_logger
from store.report_io import read_json_file, unique_artifact_path, write_json_file

_LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class Snapshot:
    """Loaded snapshot contents.

    Attributes:
        path: File the snapshot was read from.
        source: Legacy source label.
        created_at: Export timestamp.
        version: Snapshot format version.
        records: Raw records per entity type, in dependency order.
        declared_counts: Record counts declared by the snapshot header.
        legacy_format: Whether the file lacked the metadata header.
    """

    path: Path
    source: str
    created_at: str
    version: int
    records: dict[str, tuple[Any, ...]]
    declared_counts: dict[str, int]
    legacy_format: bool = False

    @property
    def total_records(self) -> int:
        return sum(len(rows) for rows in self.records.values())


def write_snapshot(
    exports_dir: Path,
    source: str,
    records: Mapping[str, list[dict[str, object]]],
) -> Path:
    """Write one immutable snapshot file.

    Args:
        exports_dir: Directory receiving the snapshot.
        source: Legacy source label.
        records: Transformed records per entity type.

    Returns:
        Path of the written, read-only snapshot.

    Raises:
        MigratorIOError: If the file cannot be written.
    """
    moment = utc_now()
    created_at = format_timestamp(moment)
    payload: dict[str, object] = {
        "format": SNAPSHOT_FORMAT_MARKER,
        "version": SNAPSHOT_FORMAT_VERSION,
        "source": source,
        "created_at": created_at,
        "record_counts": {entity: len(records.get(entity, [])) for entity in ENTITY_ORDER},
    }
    for entity in ENTITY_ORDER:
        payload[entity] = list(records.get(entity, []))
    stem = f"{source}-{SNAPSHOT_FILE_INFIX}-{file_timestamp(moment)}"
    snapshot_path = unique_artifact_path(exports_dir, stem, ".json")
    write_json_file(snapshot_path, payload, read_only=True)
    _LOGGER.info(
        "snapshot_written",
        path=str(snapshot_path),
        source=source,
        record_counts=payload["record_counts"],
    )
    return snapshot_path


def latest_snapshot(exports_dir: Path) -> Path | None:
    """Return the most recently written snapshot in a directory, if any."""
    if not exports_dir.is_dir():
        return None
    candidates = sorted(
        exports_dir.glob(f"*-{SNAPSHOT_FILE_INFIX}-*.json"),
        key=lambda path: (path.stat().st_mtime, path.name),
    )
    return candidates[-1] if candidates else None


def load_snapshot(snapshot_path: Path) -> Snapshot:
    """Load and structurally check one snapshot file.

    Args:
        snapshot_path: Snapshot JSON path.

    Returns:
        Loaded snapshot.

    Raises:
        MigratorIOError: If the file is missing, unparseable, or inconsistent.
    """
    if not snapshot_path.is_file():
        raise MigratorIOError(
            f"Snapshot file not found at {snapshot_path}. "
            "Run an export first or pass an existing --import-file."
        )
    payload = read_json_file(snapshot_path)
    if not isinstance(payload, dict):
        raise MigratorIOError(
            f"Invalid snapshot at {snapshot_path}: expected a JSON object at top level."
        )
    legacy_format = "format" not in payload
    if not legacy_format and payload.get("format") != SNAPSHOT_FORMAT_MARKER:
        raise MigratorIOError(
            f"Invalid snapshot at {snapshot_path}: "
            f"unknown format marker {payload.get('format')!r}."
        )
    version = _parse_version(payload, snapshot_path, legacy_format)
    records = _parse_entity_arrays(payload, snapshot_path)
    declared_counts = _parse_declared_counts(payload, snapshot_path, records, legacy_format)
    return Snapshot(
        path=snapshot_path,
        source=str(payload.get("source") or "unknown"),
        created_at=str(payload.get("created_at") or ""),
        version=version,
        records=records,
        declared_counts=declared_counts,
        legacy_format=legacy_format,
    )


def _parse_version(payload: dict[str, Any], snapshot_path: Path, legacy_format: bool) -> int:
    if legacy_format:
        return 0
    version = payload.get("version")
    if not isinstance(version, int) or isinstance(version, bool):
        raise MigratorIOError(f"Invalid snapshot at {snapshot_path}: version must be an integer.")
    if version > SNAPSHOT_FORMAT_VERSION:
        raise MigratorIOError(
            f"Snapshot at {snapshot_path} uses format version {version}, newer than supported "
            f"version {SNAPSHOT_FORMAT_VERSION}. Upgrade the migrator before importing."
        )
    return version


def _parse_entity_arrays(
    payload: dict[str, Any],
    snapshot_path: Path,
) -> dict[str, tuple[Any, ...]]:
    records: dict[str, tuple[Any, ...]] = {}
    for entity in ENTITY_ORDER:
        rows = payload.get(entity)
        if rows is None and entity not in REQUIRED_SNAPSHOT_ENTITIES:
            rows = []
        if not isinstance(rows, list):
            raise MigratorIOError(
                f"Invalid snapshot at {snapshot_path}: '{entity}' must be an array of records."
            )
        records[entity] = tuple(rows)
    return records


def _parse_declared_counts(
    payload: dict[str, Any],
    snapshot_path: Path,
    records: dict[str, tuple[Any, ...]],
    legacy_format: bool,
) -> dict[str, int]:
    actual = {entity: len(rows) for entity, rows in records.items()}
    if legacy_format:
        return actual
    raw_counts = payload.get("record_counts")
    if not isinstance(raw_counts, dict):
        raise MigratorIOError(
            f"Invalid snapshot at {snapshot_path}: record_counts must be an object."
        )
    mismatched = [
        f"{entity} declared {raw_counts.get(entity, 0)} but holds {count}"
        for entity, count in actual.items()
        if raw_counts.get(entity, 0) != count
    ]
    if mismatched:
        raise MigratorIOError(
            f"Snapshot at {snapshot_path} is inconsistent: {'; '.join(mismatched)}. "
            "The file may be truncated; export again."
        )
    return actual
