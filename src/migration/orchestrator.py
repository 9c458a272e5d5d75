"""Migration orchestrator.

This module sequences Export -> Import -> Verify -> Finalize according to
the run's phase flags. Each phase converts its own failures into result
objects; finalization is wrapped independently so a timestamped summary
is persisted even when an upstream phase fails.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field, is_dataclass, replace
from pathlib import Path
from typing import Any, Sequence

from core.config import MigratorConfig
from core.constants import MIGRATION_SUMMARY_PREFIX
from core.errors import MigratorError
from core.formatting import file_timestamp, format_duration, format_timestamp
from core.logging_config import get_logger
from core.natural_keys import NaturalKeys, describe_keys, load_natural_keys
from core.progress_tracker import ProgressListener, ProgressTracker
from core.types import (
    ExportResult,
    ImportResult,
    MigrationOptions,
    MigrationResult,
    PhaseName,
    PhaseOutcome,
    PhaseStatus,
)
from core.verification import run_verification, save_verification_report
from core.verification_types import VerificationOptions, VerificationResult
from importer.snapshot_importer import SnapshotImporter
from legacy.exporter import Exporter
from legacy.legacy_reader import LegacyReader
from store.destination_store import DestinationStore
from store.report_io import unique_artifact_path, write_json_file
from store.snapshot_store import latest_snapshot

_LOGGER = get_logger(__name__)


@dataclass
class _MigrationRun:
    """Mutable state shared by the phases of one run."""

    phases: list[PhaseOutcome] = field(default_factory=list)
    export: ExportResult | None = None
    import_result: ImportResult | None = None
    verification: VerificationResult | None = None
    snapshot_path: Path | None = None
    verification_report_path: str | None = None
    refused: str | None = None

    def record(self, phase: PhaseName, status: PhaseStatus, detail: str) -> None:
        self.phases.append(PhaseOutcome(phase, status, detail))


class MigrationOrchestrator:
    """Run a complete migration from the legacy store to the destination store."""

    def __init__(
        self,
        config: MigratorConfig,
        store: DestinationStore | None = None,
        reader: LegacyReader | None = None,
        keys: NaturalKeys | None = None,
        listeners: Sequence[ProgressListener] = (),
    ) -> None:
        """Create an orchestrator.

        Args:
            config: Runtime configuration.
            store: Destination store handle shared by every phase.
            reader: Optional legacy reader for the export phase.
            keys: Natural keys per entity; loaded from config when omitted.
            listeners: Progress listeners for phase-level events.
        """
        self._config = config
        self._store = store or DestinationStore(config.database_path)
        self._reader = reader
        self._keys = keys if keys is not None else load_natural_keys(config.keys_file)
        self._listeners = tuple(listeners)

    def execute_migration(self, options: MigrationOptions | None = None) -> MigrationResult:
        """Run every enabled phase, then finalize.

        Args:
            options: Phase flags and import options; defaults when omitted.

        Returns:
            Combined result. Skipped phases do not count against success and
            a verification failure is recorded as a warning.
        """
        options = options or MigrationOptions()
        started_at = time.monotonic()
        tracker = self._build_tracker()
        run = _MigrationRun()
        _LOGGER.info(
            "migration_started", natural_keys=describe_keys(self._keys), **_payload(options)
        )
        try:
            self._run_phases(options, tracker, run)
        finally:
            result = self._finalize(options, tracker, run, started_at)
        _LOGGER.info(
            "migration_finished",
            success=result.success,
            duration_seconds=result.duration_seconds,
            summary=result.summary_path,
        )
        return result

    def _build_tracker(self) -> ProgressTracker:
        tracker = ProgressTracker("Complete migration")
        tracker.add_step("export", "Export legacy store", weight=3)
        tracker.add_step("import", "Import snapshot", weight=5)
        tracker.add_step("verify", "Verify destination store", weight=2)
        tracker.add_step("finalize", "Write migration summary", weight=1)
        for listener in self._listeners:
            tracker.subscribe(listener)
        return tracker

    def _run_phases(
        self,
        options: MigrationOptions,
        tracker: ProgressTracker,
        run: _MigrationRun,
    ) -> None:
        run_export = not (options.skip_export or options.import_only)
        run_import = not (options.skip_import or options.export_only)
        run_verify = not (options.skip_verification or options.export_only)
        if options.export_only and options.import_only:
            self._refuse(tracker, run, "Choose at most one of --export-only and --import-only.")
            return
        if not (run_export or run_import or run_verify):
            self._refuse(
                tracker,
                run,
                "Every phase is disabled by the given flags. Drop a --skip-* flag to run one.",
            )
            return

        if run_export:
            self._export_phase(tracker, run)
        else:
            self._skip(tracker, run, "export", "export disabled by flags")

        export_failed = run.export is not None and not run.export.success
        if run_import and export_failed and options.import_file is None:
            reason = "export failed and no import file was supplied"
            tracker.add_warning(f"Import and verification skipped: {reason}.")
            self._skip(tracker, run, "import", reason)
            self._skip(tracker, run, "verify", reason)
            return
        if run_import:
            self._import_phase(options, tracker, run)
        else:
            self._skip(tracker, run, "import", "import disabled by flags")

        import_result = run.import_result
        if run_verify and run_import and (import_result is None or not import_result.success):
            reason = "import did not succeed"
            tracker.add_warning(f"Verification skipped: {reason}.")
            self._skip(tracker, run, "verify", reason)
        elif run_verify and import_result is not None and import_result.dry_run:
            reason = "dry run wrote nothing to verify"
            tracker.add_warning(f"Verification skipped: {reason}.")
            self._skip(tracker, run, "verify", reason)
        elif run_verify:
            self._verify_phase(options, tracker, run)
        else:
            self._skip(tracker, run, "verify", "verification disabled by flags")

    def _export_phase(self, tracker: ProgressTracker, run: _MigrationRun) -> None:
        tracker.start_step("export")
        export = Exporter(self._config, reader=self._reader, keys=self._keys).export()
        run.export = export
        tracker.warnings.extend(export.warnings)
        if not export.success:
            reason = "; ".join(export.errors) or "export failed"
            tracker.fail_step("export", reason)
            run.record("export", "failed", reason)
            return
        run.snapshot_path = Path(export.snapshot_path) if export.snapshot_path else None
        total = sum(export.record_counts.values())
        tracker.complete_step(
            "export", {"records": total, "snapshot": export.snapshot_path or ""}
        )
        run.record("export", "succeeded", f"{total} records exported to {export.snapshot_path}")

    def _import_phase(
        self,
        options: MigrationOptions,
        tracker: ProgressTracker,
        run: _MigrationRun,
    ) -> None:
        tracker.start_step("import")
        snapshot_path = options.import_file or run.snapshot_path
        if snapshot_path is None:
            snapshot_path = latest_snapshot(self._config.exports_dir)
            if snapshot_path is not None:
                tracker.add_warning(f"Importing the most recent snapshot {snapshot_path}.")
        if snapshot_path is None:
            reason = (
                f"No import file specified and no snapshot found in {self._config.exports_dir}. "
                "Pass --import-file or run an export first."
            )
            tracker.fail_step("import", reason)
            run.record("import", "failed", reason)
            return
        run.snapshot_path = snapshot_path
        importer = SnapshotImporter(self._config, store=self._store, keys=self._keys)
        result = importer.import_from_file(snapshot_path, options.import_options)
        run.import_result = result
        tracker.warnings.extend(result.warnings)
        detail = (
            f"{result.imported_records} imported, {result.skipped_records} skipped, "
            f"{result.error_records} errors"
        )
        if result.success:
            tracker.complete_step(
                "import",
                {
                    "imported": result.imported_records,
                    "skipped": result.skipped_records,
                    "errors": result.error_records,
                    "backup": result.backup_path or "",
                },
            )
            run.record("import", "succeeded", detail)
            return
        tracker.errors.extend(result.errors)
        tracker.fail_step("import", detail)
        run.record("import", "failed", detail)

    def _verify_phase(
        self,
        options: MigrationOptions,
        tracker: ProgressTracker,
        run: _MigrationRun,
    ) -> None:
        tracker.start_step("verify")
        snapshot_path = run.snapshot_path or options.import_file
        if snapshot_path is None:
            snapshot_path = latest_snapshot(self._config.exports_dir)
            if snapshot_path is not None:
                tracker.add_warning(f"Verifying against the most recent snapshot {snapshot_path}.")
        if snapshot_path is None:
            tracker.add_warning("No snapshot available; verification compares no record counts.")
        verify_options = VerificationOptions(snapshot_path=snapshot_path, natural_keys=self._keys)
        try:
            verification = run_verification(self._store, verify_options)
            report_path = save_verification_report(verification, self._config.reports_dir)
        except MigratorError as error:
            message = f"Verification could not complete: {error}"
            tracker.fail_step("verify", str(error))
            tracker.add_warning(message)
            run.record("verify", "warning", message)
            return
        run.verification = verification
        run.verification_report_path = str(report_path)
        tracker.complete_step(
            "verify",
            {
                "success": verification.success,
                "total_records": verification.total_records,
                "integrity_issues": verification.integrity_issues,
                "report": str(report_path),
            },
        )
        tracker.warnings.extend(verification.warnings)
        detail = (
            f"{verification.total_records} records, "
            f"{verification.integrity_issues} integrity issues"
        )
        if verification.success:
            run.record("verify", "succeeded", detail)
            return
        tracker.warnings.extend(verification.errors)
        tracker.add_warning("Verification found issues; the imported data was kept.")
        run.record("verify", "warning", detail)

    def _refuse(self, tracker: ProgressTracker, run: _MigrationRun, message: str) -> None:
        tracker.add_error(message)
        run.refused = message
        for phase in ("export", "import", "verify"):
            self._skip(tracker, run, phase, "refused phase flags")

    def _skip(
        self,
        tracker: ProgressTracker,
        run: _MigrationRun,
        phase: PhaseName,
        reason: str,
    ) -> None:
        tracker.skip_step(phase, reason)
        run.record(phase, "skipped", reason)

    def _finalize(
        self,
        options: MigrationOptions,
        tracker: ProgressTracker,
        run: _MigrationRun,
        started_at: float,
    ) -> MigrationResult:
        tracker.start_step("finalize")
        failed = any(phase.status == "failed" for phase in run.phases)
        success = run.refused is None and not failed
        result = MigrationResult(
            success=success,
            phases=tuple(run.phases),
            duration_seconds=round(time.monotonic() - started_at, 3),
            export=run.export,
            import_result=run.import_result,
            verification=run.verification,
            verification_report_path=run.verification_report_path,
            errors=tuple(tracker.errors),
            warnings=tuple(tracker.warnings),
        )
        summary_path = unique_artifact_path(
            self._config.reports_dir, f"{MIGRATION_SUMMARY_PREFIX}-{file_timestamp()}", ".json"
        )
        try:
            tracker.complete_step("finalize", {"summary": summary_path.name})
            write_json_file(
                summary_path,
                {
                    "result": _payload(result),
                    "options": _payload(options),
                    "timestamp": format_timestamp(),
                    "progress": tracker.to_payload(),
                    "progress_report": tracker.generate_report(),
                },
            )
        except MigratorError as error:
            _LOGGER.warning("migration_summary_failed", error=str(error))
            return replace(
                result,
                warnings=(*result.warnings, f"Failed to write migration summary: {error}"),
            )
        _LOGGER.info("migration_summary_saved", path=str(summary_path))
        return replace(result, summary_path=str(summary_path))


def render_migration_report(result: MigrationResult) -> str:
    """Render the final run report shown after every migration."""
    rule = "=" * 72
    lines = [
        rule,
        "COMPLETE MIGRATION REPORT",
        rule,
        "Migration completed successfully."
        if result.success
        else "Migration completed with issues.",
        "",
    ]
    for phase in result.phases:
        lines.append(f"[{phase.status.upper()}] {phase.phase}: {phase.detail}")
    lines.append("")
    lines.append(f"duration={format_duration(result.duration_seconds)}")
    lines.append(f"errors={len(result.errors)}")
    lines.append(f"warnings={len(result.warnings)}")
    if result.backup_path:
        lines.append(f"backup={result.backup_path}")
    if result.verification_report_path:
        lines.append(f"verification_report={result.verification_report_path}")
    if result.summary_path:
        lines.append(f"summary={result.summary_path}")
    lines.append(rule)
    lines.extend(f"ERROR: {message}" for message in result.errors)
    lines.extend(f"WARNING: {message}" for message in result.warnings)
    import_result = result.import_result
    if import_result is not None and not import_result.success and result.backup_path:
        lines.append("")
        lines.append("To restore the store as it was before this import, run:")
        lines.append(f"  migrator rollback {result.backup_path} --force")
    return "\n".join(lines)


def _payload(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return _payload(asdict(value))
    if isinstance(value, dict):
        return {str(key): _payload(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_payload(item) for item in value]
    if isinstance(value, Path):
        return str(value)
    return value
