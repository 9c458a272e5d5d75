"""Legacy store exporter.

This module reads every migrated table from the legacy store, normalizes
rows into the portable schema, validates the result, and writes one
immutable snapshot per run. Nothing is written unless every required
table was read successfully, and the snapshot is removed again if a later
artifact of the same run cannot be written.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Any

from core.config import MigratorConfig
from core.constants import (
    ENTITY_ORDER,
    EXPORT_REPORT_PREFIX,
    EXPORT_SUMMARY_PREFIX,
    RAW_EXPORT_FILE_INFIX,
    REQUIRED_SNAPSHOT_ENTITIES,
    SNAPSHOT_FORMAT_VERSION,
    VALIDATION_REPORT_PREFIX,
)
from core.errors import MigratorConfigError, MigratorExportError, MigratorIOError
from core.formatting import file_timestamp, format_duration, format_timestamp
from core.logging_config import get_logger
from core.natural_keys import NaturalKeys, load_natural_keys
from core.progress_tracker import ProgressTracker
from core.types import ExportResult
from importer.record_validation import PreparedSnapshot, validate_snapshot
from legacy.legacy_reader import LegacyReader, build_legacy_reader
from legacy.record_transform import TransformOutcome, transform_rows
from store.report_io import unique_artifact_path, write_json_file, write_text_file
from store.snapshot_store import Snapshot, write_snapshot

_LOGGER = get_logger(__name__)


class Exporter:
    """Export the legacy store into a portable snapshot."""

    def __init__(
        self,
        config: MigratorConfig,
        reader: LegacyReader | None = None,
        keys: NaturalKeys | None = None,
    ) -> None:
        """Create an exporter.

        Args:
            config: Runtime configuration.
            reader: Optional legacy reader; built from config when omitted.
            keys: Natural keys used to validate the export; loaded from
                config when omitted.
        """
        self._config = config
        self._reader = reader
        self._keys = keys

    def export_all(self) -> bool:
        """Run one export and report whether it fully succeeded."""
        return self.export().success

    def export(self) -> ExportResult:
        """Run one export.

        Returns:
            Export outcome with snapshot path and per-entity counts.
        """
        started_at = time.monotonic()
        source = self._config.legacy_source
        tracker = _build_tracker(source)
        _LOGGER.info("export_started", source=source)
        try:
            reader = self._reader or build_legacy_reader(self._config)
            keys = self._keys
            if keys is None:
                keys = load_natural_keys(self._config.keys_file)
            raw_rows = _read_all_tables(reader, tracker)
        except (MigratorConfigError, MigratorExportError) as error:
            _LOGGER.error("export_read_failed", source=source, error=str(error))
            return ExportResult(
                success=False,
                source=source,
                duration_seconds=round(time.monotonic() - started_at, 3),
                errors=tuple(tracker.errors) or (str(error),),
                warnings=tuple(tracker.warnings),
            )
        outcomes = _transform_all(raw_rows, tracker)
        validation = _validate_all(source, outcomes, keys, tracker)
        try:
            result = self._write_artifacts(
                source, raw_rows, outcomes, validation, tracker, started_at
            )
        except MigratorIOError as error:
            _LOGGER.error("export_write_failed", source=source, error=str(error))
            return ExportResult(
                success=False,
                source=source,
                duration_seconds=round(time.monotonic() - started_at, 3),
                validation_passed=not validation.issues,
                errors=(*tracker.errors, str(error)),
                warnings=tuple(tracker.warnings),
            )
        _LOGGER.info(
            "export_completed",
            source=source,
            success=result.success,
            validation_passed=result.validation_passed,
            snapshot=result.snapshot_path,
            record_counts=result.record_counts,
        )
        return result

    def _write_artifacts(
        self,
        source: str,
        raw_rows: dict[str, list[Any]],
        outcomes: dict[str, TransformOutcome],
        validation: PreparedSnapshot,
        tracker: ProgressTracker,
        started_at: float,
    ) -> ExportResult:
        exports_dir = self._config.exports_dir
        stamp = file_timestamp()
        validation_passed = not validation.issues
        tracker.start_step("write_snapshot")
        raw_path = unique_artifact_path(
            exports_dir, f"{source}-{RAW_EXPORT_FILE_INFIX}-{stamp}", ".json"
        )
        write_json_file(
            raw_path,
            {"source": source, "exported_at": format_timestamp(), **raw_rows},
        )
        validation_path = unique_artifact_path(
            exports_dir, f"{VALIDATION_REPORT_PREFIX}-{stamp}", ".txt"
        )
        write_text_file(validation_path, render_validation_report(validation, outcomes))
        records = {entity: outcome.records for entity, outcome in outcomes.items()}
        snapshot_path = write_snapshot(exports_dir, source, records)
        try:
            record_counts = {entity: len(rows) for entity, rows in records.items()}
            tracker.complete_step("write_snapshot", {"path": snapshot_path.name})
            report_path = unique_artifact_path(
                exports_dir, f"{EXPORT_REPORT_PREFIX}-{stamp}", ".txt"
            )
            summary_path = unique_artifact_path(
                exports_dir, f"{EXPORT_SUMMARY_PREFIX}-{stamp}", ".json"
            )
            write_json_file(
                summary_path,
                {
                    "exported_at": format_timestamp(),
                    "source": source,
                    "total_records": sum(len(rows) for rows in raw_rows.values()),
                    "record_counts": {
                        "raw": {entity: len(rows) for entity, rows in raw_rows.items()},
                        "transformed": record_counts,
                    },
                    "validation_passed": validation_passed,
                    "processing_time": format_duration(time.monotonic() - started_at),
                    "errors": list(tracker.errors),
                    "warnings": list(tracker.warnings),
                    "files": {
                        "raw_export": raw_path.name,
                        "snapshot": snapshot_path.name,
                        "progress_report": report_path.name,
                        "validation_report": validation_path.name,
                        "summary": summary_path.name,
                    },
                },
            )
            write_text_file(report_path, tracker.generate_report() + "\n")
        except MigratorIOError:
            _discard_snapshot(snapshot_path)
            raise
        return ExportResult(
            success=not tracker.errors,
            source=source,
            duration_seconds=round(time.monotonic() - started_at, 3),
            snapshot_path=str(snapshot_path),
            raw_export_path=str(raw_path),
            report_path=str(report_path),
            validation_report_path=str(validation_path),
            summary_path=str(summary_path),
            validation_passed=validation_passed,
            record_counts=record_counts,
            errors=tuple(tracker.errors),
            warnings=tuple(tracker.warnings),
        )


def render_validation_report(
    validation: PreparedSnapshot,
    outcomes: dict[str, TransformOutcome],
) -> str:
    """Render the export validation findings as text."""
    total = sum(len(outcome.records) for outcome in outcomes.values())
    rule = "=" * 60
    lines = [
        rule,
        "DATA VALIDATION REPORT",
        rule,
        "",
        "SUMMARY:",
        f"  Total Records: {total}",
        f"  Valid Records: {total - len(validation.issues)}",
        f"  Invalid Records: {len(validation.issues)}",
        f"  Warnings: {len(validation.warnings)}",
        f"  Overall Status: {'INVALID' if validation.issues else 'VALID'}",
        "",
    ]
    if validation.issues:
        lines.append("ERRORS:")
        lines.extend(
            f"  {number}. {issue.render()}"
            for number, issue in enumerate(validation.issues, start=1)
        )
        lines.append("")
    if validation.warnings:
        lines.append("WARNINGS:")
        lines.extend(
            f"  {number}. {message}"
            for number, message in enumerate(validation.warnings, start=1)
        )
        lines.append("")
    lines.append(rule)
    return "\n".join(lines) + "\n"


def _build_tracker(source: str) -> ProgressTracker:
    tracker = ProgressTracker(f"Export from {source}")
    for entity in ENTITY_ORDER:
        tracker.add_step(f"fetch_{entity}", f"Fetch {entity}", weight=2)
    tracker.add_step("transform", "Transform records", weight=2)
    tracker.add_step("validate", "Validate transformed records", weight=1)
    tracker.add_step("write_snapshot", "Write snapshot", weight=1)
    return tracker


def _read_all_tables(reader: LegacyReader, tracker: ProgressTracker) -> dict[str, list[Any]]:
    raw_rows: dict[str, list[Any]] = {}
    for entity in ENTITY_ORDER:
        step = f"fetch_{entity}"
        tracker.start_step(step)
        try:
            rows = reader.fetch_rows(entity)
        except MigratorExportError as error:
            if entity in REQUIRED_SNAPSHOT_ENTITIES:
                tracker.fail_step(step, str(error))
                raise
            tracker.add_warning(f"Optional table {entity} could not be read: {error}")
            rows = []
        tracker.complete_step(step, {"rows": len(rows)})
        raw_rows[entity] = rows
    return raw_rows


def _transform_all(
    raw_rows: dict[str, list[Any]],
    tracker: ProgressTracker,
) -> dict[str, TransformOutcome]:
    tracker.start_step("transform")
    outcomes: dict[str, TransformOutcome] = {}
    for entity, rows in raw_rows.items():
        outcome = transform_rows(entity, rows)
        outcomes[entity] = outcome
        for message in outcome.errors:
            tracker.add_error(message)
        for message in outcome.warnings:
            tracker.add_warning(message)
    rejected = sum(outcome.rejected for outcome in outcomes.values())
    metadata: dict[str, object] = {
        entity: len(outcome.records) for entity, outcome in outcomes.items()
    }
    metadata["rejected"] = rejected
    tracker.complete_step("transform", metadata)
    return outcomes


def _validate_all(
    source: str,
    outcomes: dict[str, TransformOutcome],
    keys: NaturalKeys,
    tracker: ProgressTracker,
) -> PreparedSnapshot:
    """Validate transformed records as an import into an empty store would."""
    tracker.start_step("validate")
    records = {entity: tuple(outcome.records) for entity, outcome in outcomes.items()}
    snapshot = Snapshot(
        path=Path(),
        source=source,
        created_at=format_timestamp(),
        version=SNAPSHOT_FORMAT_VERSION,
        records=records,
        declared_counts={entity: len(rows) for entity, rows in records.items()},
    )
    validation = validate_snapshot(snapshot, {}, keys)
    for issue in validation.issues:
        tracker.add_error(f"Validation: {issue.render()}")
    for message in validation.warnings:
        tracker.add_warning(f"Validation: {message}")
    tracker.complete_step(
        "validate",
        {
            "valid": not validation.issues,
            "invalid_records": len(validation.issues),
            "warnings": len(validation.warnings),
        },
    )
    _LOGGER.info(
        "export_validated",
        source=source,
        invalid_records=len(validation.issues),
        warnings=len(validation.warnings),
    )
    return validation


def _discard_snapshot(snapshot_path: Path) -> None:
    snapshot_path.unlink(missing_ok=True)
    _LOGGER.warning("snapshot_discarded", path=str(snapshot_path))
