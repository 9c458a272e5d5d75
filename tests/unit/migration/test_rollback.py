"""Unit tests for the rollback tool."""

from __future__ import annotations

from pathlib import Path

from core.types import RollbackOptions
from migration.rollback import RollbackTool, render_backup_list, render_rollback_report
from store.backup_manager import BackupManager, file_digest
from store.destination_store import DestinationStore
from tests.snapshot_factory import build_config, department


def _setup(tmp_path) -> tuple[RollbackTool, DestinationStore, Path]:
    config = build_config(tmp_path)
    store = DestinationStore(config.database_path)
    store.initialize_schema()
    backup = BackupManager(store.path, config.backups_dir).create_backup()
    with store.connect() as connection:
        connection.execute(
            "INSERT INTO departments (id, name, code, hod_user_id, created_at, updated_at) "
            "VALUES (:id, :name, :code, :hod_user_id, :created_at, :updated_at)",
            department(0),
        )
    return RollbackTool(config, store=store), store, backup


def test_rollback_without_force_leaves_store_untouched(tmp_path) -> None:
    """Unconfirmed rollbacks should be cancelled with a warning."""
    tool, store, backup = _setup(tmp_path)
    digest_before = file_digest(store.path)

    result = tool.execute_rollback(RollbackOptions(backup_file=backup))

    assert not result.success and result.errors == ()
    assert "Rerun with --force" in result.warnings[0]
    assert file_digest(store.path) == digest_before
    assert store.table_counts()["departments"] == 1


def test_forced_rollback_restores_backup_and_keeps_previous_store(tmp_path) -> None:
    """Forced rollbacks should restore the backup and save the replaced store."""
    tool, store, backup = _setup(tmp_path)

    result = tool.execute_rollback(RollbackOptions(backup_file=backup, force=True))

    assert result.success and result.quick_verify is not None and result.quick_verify.success
    assert store.table_counts()["departments"] == 0
    assert result.pre_rollback_backup is not None
    assert Path(result.pre_rollback_backup).name.startswith("pre-rollback-backup-")
    assert DestinationStore(Path(result.pre_rollback_backup)).table_counts()["departments"] == 1


def test_rollback_resolves_names_inside_backups_dir(tmp_path) -> None:
    """A bare file name should be looked up in the backups directory."""
    tool, _, backup = _setup(tmp_path)

    result = tool.execute_rollback(
        RollbackOptions(backup_file=Path(backup.name), verify=False, force=True)
    )

    assert result.success and result.backup_file == str(backup)
    assert result.quick_verify is None


def test_rollback_rejects_invalid_backup(tmp_path) -> None:
    """A file that is not a store backup should never be restored."""
    tool, store, _ = _setup(tmp_path)
    bogus = tmp_path / "bogus.db"
    bogus.write_text("definitely not a database", encoding="utf-8")

    result = tool.execute_rollback(RollbackOptions(backup_file=bogus, force=True))

    assert not result.success and "not a valid store backup" in result.errors[0]
    assert store.table_counts()["departments"] == 1


def test_rollback_rejects_missing_backup(tmp_path) -> None:
    """A missing backup file should fail without touching the store."""
    tool, _, _ = _setup(tmp_path)

    result = tool.execute_rollback(
        RollbackOptions(backup_file=tmp_path / "nope.db", force=True)
    )

    assert not result.success and "Backup file not found" in result.errors[0]


def test_rollback_removes_stale_journal_files(tmp_path) -> None:
    """Journal files of the replaced store should not survive the swap."""
    tool, store, backup = _setup(tmp_path)
    journal = Path(f"{store.path}-journal")
    journal.write_bytes(b"stale")

    tool.execute_rollback(RollbackOptions(backup_file=backup, force=True))

    assert not journal.exists()


def test_rollback_without_live_store_warns(tmp_path) -> None:
    """Restoring onto a missing store should skip the pre-rollback backup."""
    tool, store, backup = _setup(tmp_path)
    store.path.unlink()

    result = tool.execute_rollback(RollbackOptions(backup_file=backup, force=True))

    assert result.success and result.pre_rollback_backup is None
    assert "skipped the pre-rollback backup" in result.warnings[0]


def test_render_rollback_report_shows_outcome(tmp_path) -> None:
    """The report should include status, sizes, and verification."""
    tool, _, backup = _setup(tmp_path)
    result = tool.execute_rollback(RollbackOptions(backup_file=backup, force=True))

    text = render_rollback_report(result)

    assert text.startswith("ROLLBACK REPORT\nstatus=succeeded")
    assert "backup_size=" in text and "quick_verify=passed" in text


def test_render_backup_list(tmp_path) -> None:
    """Backups should be numbered; an empty list says so."""
    tool, _, backup = _setup(tmp_path)

    assert render_backup_list([]) == "No backups found."
    assert f"  1. {backup.name}" in render_backup_list(tool.list_backups())
