"""Unit tests for the migration orchestrator."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from core.progress_tracker import ProgressEvent
from core.types import ImportOptions, MigrationOptions, MigrationResult
from migration.orchestrator import MigrationOrchestrator, render_migration_report
from store.destination_store import DestinationStore
from tests.snapshot_factory import (
    build_config,
    department,
    notification,
    sample_payload,
    snapshot_payload,
    submission,
    user,
    write_snapshot_file,
)


class _FakeReader:
    def __init__(self, tables: dict[str, list[Any]]) -> None:
        self._tables = tables

    def fetch_rows(self, table: str) -> list[dict[str, Any]]:
        return list(self._tables.get(table, []))


def _legacy_tables() -> dict[str, list[Any]]:
    return {
        "departments": [department(0), department(1)],
        "users": [user(0, 0), user(1, 1)],
        "submissions": [submission(0, 0)],
        "notifications": [notification(0, 1)],
        "audit_logs": [],
    }


def _orchestrator(tmp_path, reader=None, listeners=()) -> MigrationOrchestrator:
    config = build_config(tmp_path)
    return MigrationOrchestrator(
        config,
        store=DestinationStore(config.database_path),
        reader=reader,
        listeners=listeners,
    )


def _phases(result: MigrationResult) -> dict[str, str]:
    return {phase.phase: phase.status for phase in result.phases}


def test_full_migration_runs_every_phase(tmp_path) -> None:
    """A healthy run should export, import, verify, and write a summary."""
    orchestrator = _orchestrator(tmp_path, reader=_FakeReader(_legacy_tables()))

    result = orchestrator.execute_migration()

    assert result.success
    assert _phases(result) == {"export": "succeeded", "import": "succeeded", "verify": "succeeded"}
    assert result.import_result is not None and result.import_result.imported_records == 6
    assert result.verification_report_path is not None
    summary = json.loads(Path(str(result.summary_path)).read_text(encoding="utf-8"))
    assert summary["result"]["success"] is True
    assert summary["progress"]["percentage"] == 100.0
    assert "=== Complete migration ===" in summary["progress_report"]


def test_export_only_skips_later_phases(tmp_path) -> None:
    """Export-only runs should still succeed with skipped phases."""
    orchestrator = _orchestrator(tmp_path, reader=_FakeReader(_legacy_tables()))

    result = orchestrator.execute_migration(MigrationOptions(export_only=True))

    assert result.success
    assert _phases(result) == {"export": "succeeded", "import": "skipped", "verify": "skipped"}


def test_export_failure_skips_import_without_file(tmp_path) -> None:
    """Without a fresh snapshot or import file nothing is imported."""
    orchestrator = _orchestrator(tmp_path)

    result = orchestrator.execute_migration()

    assert not result.success
    assert _phases(result) == {"export": "failed", "import": "skipped", "verify": "skipped"}
    assert result.summary_path is not None
    assert any("export failed" in warning for warning in result.warnings)


def test_export_failure_with_import_file_still_imports(tmp_path) -> None:
    """A supplied snapshot should import even when the export failed."""
    snapshot_path = write_snapshot_file(tmp_path / "given.json", sample_payload())
    orchestrator = _orchestrator(tmp_path)

    result = orchestrator.execute_migration(MigrationOptions(import_file=snapshot_path))

    assert not result.success
    assert _phases(result) == {"export": "failed", "import": "succeeded", "verify": "succeeded"}


def test_import_only_uses_latest_snapshot(tmp_path) -> None:
    """Import-only runs without a file should pick the newest snapshot."""
    config = build_config(tmp_path)
    write_snapshot_file(
        config.exports_dir / "supabase-transformed-export-2024-01-01T00-00-00.json",
        sample_payload(),
    )
    orchestrator = _orchestrator(tmp_path)

    result = orchestrator.execute_migration(MigrationOptions(import_only=True))

    assert result.success
    assert _phases(result) == {"export": "skipped", "import": "succeeded", "verify": "succeeded"}
    assert any("most recent snapshot" in warning for warning in result.warnings)


def test_import_only_without_snapshot_fails(tmp_path) -> None:
    """Import-only runs need a snapshot from somewhere."""
    orchestrator = _orchestrator(tmp_path)

    result = orchestrator.execute_migration(MigrationOptions(import_only=True))

    assert not result.success
    assert _phases(result) == {"export": "skipped", "import": "failed", "verify": "skipped"}
    assert any("No import file specified" in error for error in result.errors)


def test_conflicting_scope_flags_run_nothing(tmp_path) -> None:
    """Export-only plus import-only should be refused."""
    orchestrator = _orchestrator(tmp_path, reader=_FakeReader(_legacy_tables()))

    result = orchestrator.execute_migration(MigrationOptions(export_only=True, import_only=True))

    assert not result.success
    assert set(_phases(result).values()) == {"skipped"}
    assert "Choose at most one of --export-only and --import-only." in result.errors


def test_failed_import_skips_verification_and_suggests_rollback(tmp_path) -> None:
    """A failed import should skip verification and print the rollback command."""
    config = build_config(tmp_path)
    DestinationStore(config.database_path).initialize_schema()
    payload = snapshot_payload(departments=[department(0)], users=[user(0, department_index=5)])
    snapshot_path = write_snapshot_file(tmp_path / "bad.json", payload)
    orchestrator = _orchestrator(tmp_path)

    result = orchestrator.execute_migration(
        MigrationOptions(skip_export=True, import_file=snapshot_path)
    )

    assert not result.success and _phases(result)["verify"] == "skipped"
    report = render_migration_report(result)
    assert "Migration completed with issues." in report
    assert f"  migrator rollback {result.backup_path} --force" in report


def test_dry_run_skips_verification(tmp_path) -> None:
    """Dry runs write nothing, so there is nothing to verify."""
    snapshot_path = write_snapshot_file(tmp_path / "given.json", sample_payload())
    orchestrator = _orchestrator(tmp_path)

    result = orchestrator.execute_migration(
        MigrationOptions(
            skip_export=True,
            import_file=snapshot_path,
            import_options=ImportOptions(dry_run=True),
        )
    )

    assert result.success and _phases(result)["verify"] == "skipped"


def test_skip_flags_are_respected(tmp_path) -> None:
    """Skipped phases should not count against success."""
    snapshot_path = write_snapshot_file(tmp_path / "given.json", sample_payload())
    orchestrator = _orchestrator(tmp_path)

    result = orchestrator.execute_migration(
        MigrationOptions(skip_export=True, skip_verification=True, import_file=snapshot_path)
    )

    assert result.success
    assert _phases(result) == {"export": "skipped", "import": "succeeded", "verify": "skipped"}


def test_verification_findings_are_warnings(tmp_path) -> None:
    """A failing verification should not fail the migration."""
    config = build_config(tmp_path)
    store = DestinationStore(config.database_path)
    store.initialize_schema()
    with store.connect() as connection:
        connection.execute("PRAGMA foreign_keys = OFF")
        connection.execute(
            "INSERT INTO submissions (id, user_id, module_type, status, form_data, "
            "created_at, updated_at) VALUES ('orphan', 'nobody', 'attended', 'pending', '{}', "
            "'2024-01-01T00:00:00Z', '2024-01-01T00:00:00Z')"
        )
    snapshot_path = write_snapshot_file(tmp_path / "given.json", sample_payload())
    orchestrator = MigrationOrchestrator(config, store=store)

    result = orchestrator.execute_migration(
        MigrationOptions(skip_export=True, import_file=snapshot_path)
    )

    assert result.success and _phases(result)["verify"] == "warning"
    assert result.verification is not None and not result.verification.success
    assert any("submission(s) reference a missing user" in item for item in result.warnings)


def test_listeners_receive_phase_events(tmp_path) -> None:
    """Progress listeners should see the finalize step complete at 100%."""
    events: list[ProgressEvent] = []
    orchestrator = _orchestrator(
        tmp_path, reader=_FakeReader(_legacy_tables()), listeners=(events.append,)
    )

    orchestrator.execute_migration()

    assert events[0].message == "Started: Export legacy store"
    assert events[-1].message == "Completed: Write migration summary"
    assert events[-1].percentage == 100.0


def test_report_for_successful_run(tmp_path) -> None:
    """Successful runs should render phase lines and artifact paths."""
    orchestrator = _orchestrator(tmp_path, reader=_FakeReader(_legacy_tables()))
    result = orchestrator.execute_migration()

    report = render_migration_report(result)

    assert "Migration completed successfully." in report
    assert "[SUCCEEDED] import: 6 imported, 0 skipped, 0 errors" in report
    assert f"summary={result.summary_path}" in report
    assert "migrator rollback" not in report


def test_numeric_natural_keys_verify_without_crashing(tmp_path) -> None:
    """A snapshot with numeric employee ids should import and verify cleanly."""
    payload = snapshot_payload(departments=[department(0)], users=[user(0, employee_id=10**20)])
    snapshot_path = write_snapshot_file(tmp_path / "numeric.json", payload)
    orchestrator = _orchestrator(tmp_path)

    result = orchestrator.execute_migration(
        MigrationOptions(skip_export=True, import_file=snapshot_path)
    )

    assert result.success and _phases(result)["verify"] == "succeeded"
    assert result.summary_path is not None


def test_verify_only_run_compares_against_import_file(tmp_path) -> None:
    """Verifying without importing should still use the supplied snapshot."""
    snapshot_path = write_snapshot_file(tmp_path / "given.json", sample_payload())
    orchestrator = _orchestrator(tmp_path)
    orchestrator.execute_migration(
        MigrationOptions(skip_export=True, skip_verification=True, import_file=snapshot_path)
    )

    result = orchestrator.execute_migration(
        MigrationOptions(skip_export=True, skip_import=True, import_file=snapshot_path)
    )

    assert result.success
    assert _phases(result) == {"export": "skipped", "import": "skipped", "verify": "succeeded"}
    assert result.verification is not None
    assert result.verification.snapshot_path == str(snapshot_path)
    checks = {row.check_id: row.status for row in result.verification.checks}
    assert checks["V005"] == "passed"


def test_verify_only_run_falls_back_to_latest_snapshot(tmp_path) -> None:
    """Without an import file verification should use the newest snapshot."""
    config = build_config(tmp_path)
    snapshot_path = write_snapshot_file(
        config.exports_dir / "supabase-transformed-export-2024-01-01T00-00-00.json",
        sample_payload(),
    )
    orchestrator = _orchestrator(tmp_path)
    orchestrator.execute_migration(MigrationOptions(import_only=True, skip_verification=True))
    with DestinationStore(config.database_path).connect() as connection:
        connection.execute("DELETE FROM notifications")

    result = orchestrator.execute_migration(MigrationOptions(skip_export=True, skip_import=True))

    assert result.success and _phases(result)["verify"] == "warning"
    assert result.verification is not None
    assert result.verification.snapshot_path == str(snapshot_path)
    assert any("most recent snapshot" in warning for warning in result.warnings)
    assert any("Count mismatch for notifications" in warning for warning in result.warnings)


def test_all_phases_disabled_is_refused(tmp_path) -> None:
    """Disabling every phase should be rejected with a clear error."""
    orchestrator = _orchestrator(tmp_path)

    result = orchestrator.execute_migration(
        MigrationOptions(skip_export=True, skip_import=True, skip_verification=True)
    )

    assert not result.success
    assert set(_phases(result).values()) == {"skipped"}
    assert any("Every phase is disabled" in error for error in result.errors)
    assert result.summary_path is not None
