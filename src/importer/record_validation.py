"""Snapshot record validation.

This module turns raw snapshot records into typed, writable rows. With
validation enabled, malformed records, in-snapshot duplicates, and
records whose references cannot be resolved are excluded and reported
as issues; exclusions cascade to dependent records. Without validation,
records pass through as raw rows and the destination's own constraints
decide.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Mapping

from core.entities import ENTITY_SPECS, EntitySpec
from core.errors import RecordValidationError
from core.formatting import format_timestamp
from core.natural_keys import NaturalKeys
from importer.duplicate_detection import SnapshotKeyTracker
from store.snapshot_store import Snapshot

_TIMESTAMP_COLUMNS = ("created_at", "updated_at", "timestamp")


@dataclass(frozen=True)
class PreparedRecord:
    """One snapshot record ready to be written."""

    entity: str
    index: int
    record_id: str
    row: dict[str, object]


@dataclass(frozen=True)
class ValidationIssue:
    """One record excluded from import."""

    entity: str
    index: int
    record_id: str | None
    message: str

    def render(self) -> str:
        suffix = f" (id={self.record_id})" if self.record_id else ""
        return f"{self.entity}[{self.index}]{suffix}: {self.message}"


@dataclass
class PreparedSnapshot:
    """Writable records per entity plus the exclusions and warnings found."""

    records: dict[str, list[PreparedRecord]] = field(default_factory=dict)
    issues: list[ValidationIssue] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def validate_snapshot(
    snapshot: Snapshot,
    destination_ids: Mapping[str, set[str]],
    keys: NaturalKeys,
) -> PreparedSnapshot:
    """Validate every snapshot record in dependency order.

    Args:
        snapshot: Loaded snapshot.
        destination_ids: Ids already present in the destination, per table.
        keys: Natural keys per entity.

    Returns:
        Accepted records, exclusion issues, and data-quality warnings.
    """
    prepared = PreparedSnapshot()
    accepted_ids: dict[str, set[str]] = {}
    key_tracker = SnapshotKeyTracker(keys)
    for spec in ENTITY_SPECS:
        accepted: list[PreparedRecord] = []
        for index, payload in enumerate(snapshot.records[spec.name]):
            record_id = _raw_id(payload)
            checked = _check_record(
                spec, index, payload, key_tracker, accepted_ids, destination_ids
            )
            if isinstance(checked, str):
                prepared.issues.append(ValidationIssue(spec.name, index, record_id, checked))
                continue
            accepted.append(checked)
        accepted_ids[spec.name] = {record.record_id for record in accepted}
        prepared.records[spec.name] = accepted
        prepared.warnings.extend(_quality_warnings(spec.name, accepted))
    return prepared


def prepare_unvalidated(snapshot: Snapshot) -> PreparedSnapshot:
    """Pass records through as raw rows; only non-object records are excluded."""
    prepared = PreparedSnapshot()
    for spec in ENTITY_SPECS:
        accepted: list[PreparedRecord] = []
        for index, payload in enumerate(snapshot.records[spec.name]):
            if not isinstance(payload, dict):
                prepared.issues.append(
                    ValidationIssue(spec.name, index, None, "record must be a JSON object")
                )
                continue
            row = {column: _bindable(payload.get(column)) for column in spec.columns}
            for column in _TIMESTAMP_COLUMNS:
                if column in row and row[column] in (None, ""):
                    row[column] = format_timestamp()
            accepted.append(PreparedRecord(spec.name, index, str(row.get("id") or ""), row))
        prepared.records[spec.name] = accepted
    return prepared


def _check_record(
    spec: EntitySpec,
    index: int,
    payload: Any,
    key_tracker: SnapshotKeyTracker,
    accepted_ids: Mapping[str, set[str]],
    destination_ids: Mapping[str, set[str]],
) -> PreparedRecord | str:
    try:
        row = spec.parse(payload, index).to_row()
    except RecordValidationError as error:
        return f"{error.field}: {error.message}" if error.field else error.message
    duplicate = key_tracker.first_occurrence(spec.name, index, row)
    if duplicate is not None:
        return duplicate
    for foreign_key in spec.foreign_keys:
        value = row.get(foreign_key.column)
        if value is None or foreign_key.deferred:
            continue
        known = accepted_ids.get(foreign_key.target, set())
        if value in known or value in destination_ids.get(foreign_key.target, set()):
            continue
        return f"{foreign_key.column} references missing {foreign_key.target} id {value}"
    return PreparedRecord(spec.name, index, str(row["id"]), row)


def _quality_warnings(entity: str, records: list[PreparedRecord]) -> list[str]:
    warnings: list[str] = []
    if entity == "users":
        for column in ("designation", "institution"):
            missing = sum(1 for record in records if not record.row.get(column))
            if missing:
                warnings.append(f"{missing} user(s) have no {column}")
    if entity == "submissions":
        uncommented = sum(
            1
            for record in records
            if record.row.get("status") in ("approved", "rejected")
            and not (record.row.get("hod_comment") or record.row.get("admin_comment"))
        )
        if uncommented:
            warnings.append(f"{uncommented} reviewed submission(s) have no reviewer comment")
    return warnings


def _raw_id(payload: Any) -> str | None:
    if isinstance(payload, dict) and payload.get("id"):
        return str(payload["id"])
    return None


def _bindable(value: object) -> object:
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    if isinstance(value, bool):
        return int(value)
    return value
