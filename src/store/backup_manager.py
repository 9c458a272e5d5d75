"""Verified byte-exact backups of the destination store.

This module copies the live destination store file before destructive
operations, checks the copy's format header and digest, and lists
existing backups for the rollback tool.
"""

from __future__ import annotations

import hashlib
import shutil
from datetime import datetime, timezone
from pathlib import Path

from core.constants import BACKUP_FILE_SUFFIX, DEFAULT_BACKUP_PREFIX, STORE_FILE_SIGNATURE
from core.errors import MigratorBackupError
from core.formatting import file_timestamp, format_timestamp
from core.logging_config import get_logger
from core.types import BackupInfo
from store.report_io import unique_artifact_path

_LOGGER = get_logger(__name__)

_DIGEST_CHUNK_BYTES = 1024 * 1024


class BackupManager:
    """Create, verify, and list destination store backups."""

    def __init__(self, database_path: Path, backups_dir: Path) -> None:
        """Create a manager for one destination store.

        Args:
            database_path: Live destination store file.
            backups_dir: Directory receiving backup copies.
        """
        self._database_path = database_path
        self._backups_dir = backups_dir

    @property
    def backups_dir(self) -> Path:
        return self._backups_dir

    def create_backup(self, prefix: str = DEFAULT_BACKUP_PREFIX) -> Path:
        """Copy the live store to a new timestamped backup and verify it.

        Args:
            prefix: Backup file name prefix.

        Returns:
            Path of the verified backup.

        Raises:
            MigratorBackupError: If the store is missing or the copy cannot be verified.
        """
        if not self._database_path.is_file():
            raise MigratorBackupError(
                f"Cannot back up destination store: {self._database_path} does not exist. "
                "Initialize the store before requesting a backup."
            )
        stem = f"{prefix}-backup-{file_timestamp()}"
        try:
            self._backups_dir.mkdir(parents=True, exist_ok=True)
            backup_path = unique_artifact_path(self._backups_dir, stem, BACKUP_FILE_SUFFIX)
            shutil.copy2(self._database_path, backup_path)
        except OSError as error:
            raise MigratorBackupError(
                f"Failed to copy destination store {self._database_path} to "
                f"{self._backups_dir}: {error}."
            ) from error
        self.verify_backup(backup_path, expected_digest=file_digest(self._database_path))
        _LOGGER.info(
            "backup_created",
            source=str(self._database_path),
            backup=str(backup_path),
            size_bytes=backup_path.stat().st_size,
        )
        return backup_path

    def verify_backup(self, backup_path: Path, expected_digest: str | None = None) -> None:
        """Check a backup's format header and, optionally, its digest.

        Raises:
            MigratorBackupError: If the file is missing, empty, or not a store file.
        """
        validate_store_file(backup_path)
        if expected_digest is not None and file_digest(backup_path) != expected_digest:
            raise MigratorBackupError(
                f"Backup {backup_path} does not match the destination store byte for byte. "
                "Retry the backup while no other process writes to the store."
            )

    def list_backups(self) -> list[BackupInfo]:
        """List backups newest first."""
        if not self._backups_dir.is_dir():
            return []
        backups: list[BackupInfo] = []
        for path in self._backups_dir.glob(f"*-backup-*{BACKUP_FILE_SUFFIX}"):
            stat = path.stat()
            modified = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
            backups.append(
                BackupInfo(
                    path=path,
                    size_bytes=stat.st_size,
                    modified_at=format_timestamp(modified),
                )
            )
        return sorted(backups, key=lambda item: (item.modified_at, item.path.name), reverse=True)


def validate_store_file(store_path: Path) -> None:
    """Check that a file exists, is non-empty, and carries the store header.

    Raises:
        MigratorBackupError: If any check fails.
    """
    if not store_path.is_file():
        raise MigratorBackupError(f"Backup file not found: {store_path}.")
    if store_path.stat().st_size == 0:
        raise MigratorBackupError(f"Backup file is empty: {store_path}.")
    try:
        with store_path.open("rb") as handle:
            header = handle.read(len(STORE_FILE_SIGNATURE))
    except OSError as error:
        raise MigratorBackupError(f"Failed to read backup file {store_path}: {error}.") from error
    if header != STORE_FILE_SIGNATURE:
        raise MigratorBackupError(
            f"File {store_path} is not a valid store backup: unexpected format header."
        )


def file_digest(path: Path) -> str:
    """Compute the SHA-256 hex digest of one file."""
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(_DIGEST_CHUNK_BYTES), b""):
            digest.update(chunk)
    return digest.hexdigest()
