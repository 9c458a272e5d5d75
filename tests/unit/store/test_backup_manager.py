"""Unit tests for destination store backups."""

from __future__ import annotations

import os

import pytest

from core.errors import MigratorBackupError
from store.backup_manager import BackupManager, file_digest, validate_store_file
from store.destination_store import DestinationStore


def _initialized_store(tmp_path) -> DestinationStore:
    store = DestinationStore(tmp_path / "database.db")
    store.initialize_schema()
    return store


def test_create_backup_copies_store_byte_for_byte(tmp_path) -> None:
    """Backups should match the live store's digest."""
    store = _initialized_store(tmp_path)
    manager = BackupManager(store.path, tmp_path / "backups")

    backup_path = manager.create_backup()

    assert backup_path.name.startswith("database-backup-")
    assert backup_path.suffix == ".db"
    assert file_digest(backup_path) == file_digest(store.path)


def test_create_backup_never_reuses_a_name(tmp_path) -> None:
    """Back-to-back backups should not overwrite each other."""
    store = _initialized_store(tmp_path)
    manager = BackupManager(store.path, tmp_path / "backups")

    first = manager.create_backup()
    second = manager.create_backup()

    assert first != second and first.exists() and second.exists()


def test_create_backup_requires_live_store(tmp_path) -> None:
    """Backing up a missing store should fail."""
    manager = BackupManager(tmp_path / "database.db", tmp_path / "backups")

    with pytest.raises(MigratorBackupError, match="does not exist"):
        manager.create_backup()


def test_validate_store_file_rejects_empty_file(tmp_path) -> None:
    """Empty files are not valid backups."""
    backup_path = tmp_path / "empty.db"
    backup_path.touch()

    with pytest.raises(MigratorBackupError, match="empty"):
        validate_store_file(backup_path)


def test_validate_store_file_rejects_foreign_header(tmp_path) -> None:
    """Files without the store header are not valid backups."""
    backup_path = tmp_path / "notes.db"
    backup_path.write_text("not a database file at all", encoding="utf-8")

    with pytest.raises(MigratorBackupError, match="unexpected format header"):
        validate_store_file(backup_path)


def test_verify_backup_detects_digest_mismatch(tmp_path) -> None:
    """A backup differing from the expected digest should fail verification."""
    store = _initialized_store(tmp_path)
    manager = BackupManager(store.path, tmp_path / "backups")
    backup_path = manager.create_backup()

    with pytest.raises(MigratorBackupError, match="byte for byte"):
        manager.verify_backup(backup_path, expected_digest="0" * 64)


def test_list_backups_returns_newest_first(tmp_path) -> None:
    """Backups should be listed newest first with their sizes."""
    store = _initialized_store(tmp_path)
    manager = BackupManager(store.path, tmp_path / "backups")
    older = manager.create_backup()
    newer = manager.create_backup(prefix="pre-rollback")
    os.utime(older, (1_000_000, 1_000_000))
    os.utime(newer, (2_000_000, 2_000_000))

    backups = manager.list_backups()

    assert [item.path for item in backups] == [newer, older]
    assert backups[0].size_bytes == newer.stat().st_size


def test_list_backups_without_directory(tmp_path) -> None:
    """A missing backups directory should list nothing."""
    manager = BackupManager(tmp_path / "database.db", tmp_path / "backups")

    assert manager.list_backups() == []
