"""Snapshot importer.

This module loads a snapshot, guards the destination store with a verified
backup, validates records, and writes them in dependency order through
atomic batches. A failing batch rolls back alone and the run continues,
so unrelated data still imports; the result records every exclusion,
failure, and rollback. Dry runs execute the same work inside one outer
transaction that is rolled back, so reported counts match a real run.
"""

from __future__ import annotations

import sqlite3
import time
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Sequence

from core.config import MigratorConfig
from core.constants import IMPORT_REPORT_PREFIX
from core.entities import ENTITY_SPECS, EntitySpec
from core.errors import (
    MigratorBackupError,
    MigratorConfigError,
    MigratorIOError,
    MigratorStoreError,
)
from core.formatting import file_timestamp
from core.logging_config import get_logger
from core.natural_keys import NaturalKeys, load_natural_keys
from core.progress_tracker import ProgressListener, ProgressTracker
from core.types import EntityImportCounts, ImportOptions, ImportResult
from importer.batch_import import BatchOutcome, batch_scope, chunked, write_batch
from importer.record_validation import (
    PreparedRecord,
    PreparedSnapshot,
    prepare_unvalidated,
    validate_snapshot,
)
from store.backup_manager import BackupManager
from store.destination_store import DestinationStore, existing_tables, foreign_key_violations
from store.report_io import unique_artifact_path, write_json_file
from store.schema import apply_schema
from store.snapshot_store import Snapshot, load_snapshot

_LOGGER = get_logger(__name__)

_COUNT_FIELDS = ("total", "imported", "skipped", "duplicates", "errors", "rolled_back")


@dataclass
class _ImportRun:
    """Mutable tallies for one import run."""

    counts: dict[str, dict[str, int]] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    id_maps: dict[str, dict[str, str]] = field(default_factory=dict)
    unavailable: dict[str, set[str]] = field(default_factory=dict)
    pending_heads: list[tuple[str, str]] = field(default_factory=list)
    failed_batches: int = 0
    unresolved_references: int = 0
    fatal: bool = False

    def tally(self, entity: str, name: str, amount: int = 1) -> None:
        entity_counts = self.counts.setdefault(entity, {key: 0 for key in _COUNT_FIELDS})
        entity_counts[name] += amount

    def total(self, name: str) -> int:
        return sum(entity_counts[name] for entity_counts in self.counts.values())

    def mark_unavailable(self, entity: str, record_id: str) -> None:
        if record_id:
            self.unavailable.setdefault(entity, set()).add(record_id)


class SnapshotImporter:
    """Import snapshots into the destination store."""

    def __init__(
        self,
        config: MigratorConfig,
        store: DestinationStore | None = None,
        keys: NaturalKeys | None = None,
        listeners: Sequence[ProgressListener] = (),
    ) -> None:
        """Create an importer.

        Args:
            config: Runtime configuration.
            store: Destination store handle; built from config when omitted.
            keys: Natural keys per entity; loaded from config when omitted.
            listeners: Progress listeners subscribed to every run.
        """
        self._config = config
        self._store = store or DestinationStore(config.database_path)
        self._keys = keys if keys is not None else load_natural_keys(config.keys_file)
        self._backups = BackupManager(self._store.path, config.backups_dir)
        self._listeners = tuple(listeners)

    def import_from_file(
        self,
        snapshot_path: Path,
        options: ImportOptions | None = None,
    ) -> ImportResult:
        """Import one snapshot file.

        Args:
            snapshot_path: Snapshot JSON path.
            options: Import options; defaults when omitted.

        Returns:
            Import outcome. Fatal problems (unreadable snapshot, failed backup)
            are reported in the result rather than raised.
        """
        options = options or ImportOptions()
        started_at = time.monotonic()
        tracker = self._build_tracker()
        run = _ImportRun()
        backup_path: Path | None = None
        total_records = 0
        _LOGGER.info("import_started", snapshot=str(snapshot_path), **asdict(options))
        try:
            if options.batch_size < 1:
                raise MigratorConfigError(
                    f"Batch size must be at least 1, got {options.batch_size}."
                )
            snapshot = self._load(snapshot_path, tracker, run)
            total_records = snapshot.total_records
            if options.dry_run:
                backup_path = self._backup(options, tracker)
            elif self._store.exists:
                backup_path = self._backup(options, tracker)
                self._store.initialize_schema()
            else:
                # A new store is backed up once it holds an empty schema.
                self._store.initialize_schema()
                backup_path = self._backup(options, tracker)
            with self._store.connect() as connection:
                if options.dry_run:
                    with self._store.transaction(connection, commit=False):
                        apply_schema(connection)
                        self._write_all(connection, snapshot, options, tracker, run)
                else:
                    self._write_all(connection, snapshot, options, tracker, run)
        except (
            MigratorConfigError,
            MigratorIOError,
            MigratorBackupError,
            MigratorStoreError,
            sqlite3.Error,
        ) as error:
            run.fatal = True
            _abort_remaining_steps(tracker, str(error))
            run.errors.append(str(error))
            _LOGGER.error("import_aborted", snapshot=str(snapshot_path), error=str(error))
        result = _build_result(run, options, total_records, backup_path, started_at, tracker)
        result = self._write_report(result, options, tracker)
        _LOGGER.info(
            "import_finished",
            success=result.success,
            dry_run=result.dry_run,
            imported=result.imported_records,
            skipped=result.skipped_records,
            errors=result.error_records,
            failed_batches=result.failed_batches,
        )
        return result

    def _build_tracker(self) -> ProgressTracker:
        tracker = ProgressTracker("Snapshot import")
        tracker.add_step("load_snapshot", "Load snapshot", weight=1)
        tracker.add_step("create_backup", "Back up destination store", weight=1)
        tracker.add_step("validate_records", "Validate records", weight=2)
        tracker.add_step("import_departments", "Import departments", weight=2)
        tracker.add_step("import_users", "Import users", weight=3)
        tracker.add_step("link_department_heads", "Link department heads", weight=1)
        tracker.add_step("import_submissions", "Import submissions", weight=3)
        tracker.add_step("import_notifications", "Import notifications", weight=2)
        tracker.add_step("import_audit_logs", "Import audit logs", weight=1)
        tracker.add_step("verify_import", "Verify foreign keys", weight=2)
        for listener in self._listeners:
            tracker.subscribe(listener)
        return tracker

    def _load(self, snapshot_path: Path, tracker: ProgressTracker, run: _ImportRun) -> Snapshot:
        tracker.start_step("load_snapshot")
        snapshot = load_snapshot(snapshot_path)
        if snapshot.legacy_format:
            run.warnings.append(
                f"Snapshot {snapshot_path.name} has no format header; "
                "declared counts were taken from its arrays."
            )
        tracker.complete_step(
            "load_snapshot",
            {"records": snapshot.total_records, "source": snapshot.source},
        )
        return snapshot

    def _backup(self, options: ImportOptions, tracker: ProgressTracker) -> Path | None:
        if options.dry_run:
            tracker.skip_step("create_backup", "dry run makes no writes")
            return None
        if not options.create_backup:
            tracker.skip_step("create_backup", "backup disabled")
            return None
        tracker.start_step("create_backup")
        backup_path = self._backups.create_backup()
        tracker.complete_step("create_backup", {"path": backup_path.name})
        return backup_path

    def _write_all(
        self,
        connection: sqlite3.Connection,
        snapshot: Snapshot,
        options: ImportOptions,
        tracker: ProgressTracker,
        run: _ImportRun,
    ) -> None:
        prepared = self._prepare(connection, snapshot, options, tracker)
        for issue in prepared.issues:
            run.tally(issue.entity, "errors")
            run.mark_unavailable(issue.entity, issue.record_id or "")
            run.errors.append(issue.render())
        run.warnings.extend(prepared.warnings)
        for spec in ENTITY_SPECS:
            run.tally(spec.name, "total", len(snapshot.records[spec.name]))
            step = f"import_{spec.name}"
            tracker.start_step(step)
            self._import_entity(connection, spec, prepared.records[spec.name], options, run)
            tracker.complete_step(step, dict(run.counts[spec.name]))
            if spec.name == "users":
                self._link_department_heads(connection, tracker, run)
        tracker.start_step("verify_import")
        violations = foreign_key_violations(connection)
        for table, rowid, parent in violations:
            run.warnings.append(
                f"Foreign key check: {table} row {rowid} references missing {parent} row"
            )
        tracker.complete_step("verify_import", {"violations": len(violations)})

    def _prepare(
        self,
        connection: sqlite3.Connection,
        snapshot: Snapshot,
        options: ImportOptions,
        tracker: ProgressTracker,
    ) -> PreparedSnapshot:
        if not options.validate_data:
            tracker.skip_step("validate_records", "validation disabled")
            return prepare_unvalidated(snapshot)
        tracker.start_step("validate_records")
        destination_ids = _destination_ids(connection)
        prepared = validate_snapshot(snapshot, destination_ids, self._keys)
        tracker.complete_step(
            "validate_records",
            {
                "accepted": sum(len(rows) for rows in prepared.records.values()),
                "excluded": len(prepared.issues),
            },
        )
        return prepared

    def _import_entity(
        self,
        connection: sqlite3.Connection,
        spec: EntitySpec,
        records: list[PreparedRecord],
        options: ImportOptions,
        run: _ImportRun,
    ) -> None:
        writable: list[PreparedRecord] = []
        for record in records:
            blocked = _blocked_reference(spec, record, run)
            if blocked is None:
                writable.append(record)
                continue
            run.tally(spec.name, "errors")
            run.mark_unavailable(spec.name, record.record_id)
            run.errors.append(f"{spec.name}[{record.index}] (id={record.record_id}): {blocked}")
        for batch_number, batch in enumerate(chunked(writable, options.batch_size), start=1):
            items = [(record, _remap_row(spec, record, run)) for record in batch]
            outcome = write_batch(
                connection,
                spec.name,
                items,
                self._keys,
                options.skip_duplicates,
                batch_number,
            )
            _apply_outcome(spec, outcome, items, run)

    def _link_department_heads(
        self,
        connection: sqlite3.Connection,
        tracker: ProgressTracker,
        run: _ImportRun,
    ) -> None:
        tracker.start_step("link_department_heads")
        linked = 0
        user_ids = run.id_maps.get("users", {})
        with batch_scope(connection, "link_department_heads"):
            for department_id, head_id in run.pending_heads:
                user_id = user_ids.get(head_id, head_id)
                exists = connection.execute(
                    "SELECT 1 FROM users WHERE id = ?", (user_id,)
                ).fetchone()
                if exists is None:
                    run.unresolved_references += 1
                    run.errors.append(
                        f"departments (id={department_id}): head user {head_id} "
                        "was not imported; hod_user_id left empty"
                    )
                    continue
                connection.execute(
                    "UPDATE departments SET hod_user_id = ? WHERE id = ?",
                    (user_id, department_id),
                )
                linked += 1
        tracker.complete_step(
            "link_department_heads",
            {"linked": linked, "unresolved": run.unresolved_references},
        )

    def _write_report(
        self,
        result: ImportResult,
        options: ImportOptions,
        tracker: ProgressTracker,
    ) -> ImportResult:
        report_path = unique_artifact_path(
            self._config.reports_dir, f"{IMPORT_REPORT_PREFIX}-{file_timestamp()}", ".json"
        )
        payload = {
            "result": asdict(result),
            "options": asdict(options),
            "progress": tracker.to_payload(),
        }
        try:
            write_json_file(report_path, payload)
        except MigratorIOError as error:
            _LOGGER.warning("import_report_write_failed", error=str(error))
            return replace(result, warnings=(*result.warnings, str(error)))
        return replace(result, report_path=str(report_path))


def _destination_ids(connection: sqlite3.Connection) -> dict[str, set[str]]:
    tables = existing_tables(connection)
    ids: dict[str, set[str]] = {}
    for spec in ENTITY_SPECS:
        if spec.name not in tables:
            ids[spec.name] = set()
            continue
        rows = connection.execute(f"SELECT id FROM {spec.name}").fetchall()
        ids[spec.name] = {str(row[0]) for row in rows}
    return ids


def _blocked_reference(spec: EntitySpec, record: PreparedRecord, run: _ImportRun) -> str | None:
    for foreign_key in spec.foreign_keys:
        value = record.row.get(foreign_key.column)
        if foreign_key.deferred or value is None:
            continue
        if str(value) in run.unavailable.get(foreign_key.target, set()):
            return (
                f"{foreign_key.column} references {foreign_key.target} id {value}, "
                "which was not imported"
            )
    return None


def _remap_row(spec: EntitySpec, record: PreparedRecord, run: _ImportRun) -> dict[str, object]:
    row = dict(record.row)
    for foreign_key in spec.foreign_keys:
        value = row.get(foreign_key.column)
        if value is None:
            continue
        if foreign_key.deferred:
            row[foreign_key.column] = None
            continue
        row[foreign_key.column] = run.id_maps.get(foreign_key.target, {}).get(str(value), value)
    return row


def _apply_outcome(
    spec: EntitySpec,
    outcome: BatchOutcome,
    items: list[tuple[PreparedRecord, dict[str, object]]],
    run: _ImportRun,
) -> None:
    id_map = run.id_maps.setdefault(spec.name, {})
    for write in outcome.writes:
        record = write.record
        if write.action == "skipped":
            run.tally(spec.name, "skipped")
            run.tally(spec.name, "duplicates")
            id_map[record.record_id] = write.destination_id
            continue
        if not outcome.committed:
            run.tally(spec.name, "rolled_back")
            run.mark_unavailable(spec.name, record.record_id)
            continue
        run.tally(spec.name, "imported")
        if write.duplicate:
            run.tally(spec.name, "duplicates")
        id_map[record.record_id] = write.destination_id
        head_id = record.row.get("hod_user_id") if spec.name == "departments" else None
        if head_id:
            run.pending_heads.append((write.destination_id, str(head_id)))
    if outcome.committed:
        return
    run.failed_batches += 1
    for failure in outcome.failures:
        run.tally(spec.name, "errors")
        run.mark_unavailable(spec.name, failure.record_id)
        run.errors.append(
            f"{spec.name} batch {outcome.batch_number}: record {failure.record_id}: "
            f"{failure.message}"
        )
    run.errors.append(
        f"{spec.name} batch {outcome.batch_number} rolled back "
        f"({len(items)} record(s), {len(outcome.failures)} rejected)"
    )


def _abort_remaining_steps(tracker: ProgressTracker, reason: str) -> None:
    for step in tracker.steps:
        if step.state == "running":
            tracker.fail_step(step.name, reason)
        elif step.state == "pending":
            tracker.skip_step(step.name, "import aborted")


def _build_result(
    run: _ImportRun,
    options: ImportOptions,
    total_records: int,
    backup_path: Path | None,
    started_at: float,
    tracker: ProgressTracker,
) -> ImportResult:
    error_records = run.total("errors")
    success = (
        not run.fatal
        and error_records == 0
        and run.failed_batches == 0
        and run.unresolved_references == 0
    )
    warnings = [*run.warnings, *tracker.warnings]
    if options.dry_run:
        warnings.append("Dry run: all writes were rolled back; the destination is unchanged.")
    return ImportResult(
        success=success,
        dry_run=options.dry_run,
        total_records=total_records,
        imported_records=run.total("imported"),
        skipped_records=run.total("skipped"),
        duplicate_records=run.total("duplicates"),
        error_records=error_records,
        rolled_back_records=run.total("rolled_back"),
        unresolved_references=run.unresolved_references,
        failed_batches=run.failed_batches,
        duration_seconds=round(time.monotonic() - started_at, 3),
        backup_path=str(backup_path) if backup_path else None,
        entity_counts={
            entity: EntityImportCounts(**counts) for entity, counts in run.counts.items()
        },
        errors=tuple(run.errors),
        warnings=tuple(warnings),
    )
