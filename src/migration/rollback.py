"""Destination store rollback.

This module restores a verified backup as the live destination store.
Nothing is touched without explicit operator confirmation. Before the
swap every tracked connection is closed and the current store is itself
backed up, so a failed restore leaves both files available for manual
recovery.
"""

from __future__ import annotations

import os
import shutil
import time
from datetime import datetime, timezone
from pathlib import Path

from core.config import MigratorConfig
from core.constants import PRE_ROLLBACK_BACKUP_PREFIX
from core.errors import MigratorBackupError, RollbackConfirmationRequired
from core.formatting import format_duration, format_size, format_timestamp
from core.logging_config import get_logger
from core.types import BackupInfo, RollbackOptions, RollbackResult
from core.verification import quick_verify
from store.backup_manager import BackupManager, file_digest, validate_store_file
from store.destination_store import DestinationStore

_LOGGER = get_logger(__name__)

_SIDECAR_SUFFIXES = ("-journal", "-wal", "-shm")


class RollbackTool:
    """Restore the destination store from a backup file."""

    def __init__(self, config: MigratorConfig, store: DestinationStore | None = None) -> None:
        self._store = store or DestinationStore(config.database_path)
        self._backups = BackupManager(self._store.path, config.backups_dir)

    def list_backups(self) -> list[BackupInfo]:
        """List available backups newest first."""
        return self._backups.list_backups()

    def execute_rollback(self, options: RollbackOptions) -> RollbackResult:
        """Replace the live store with one backup.

        Args:
            options: Backup to restore, verification and confirmation flags.

        Returns:
            Rollback outcome. Without ``force`` the result is unsuccessful,
            carries a cancellation warning, and the store is untouched.
        """
        started_at = time.monotonic()
        backup_file = self._resolve_backup(options.backup_file)
        _LOGGER.info(
            "rollback_started",
            backup=str(backup_file),
            verify=options.verify,
            force=options.force,
        )
        try:
            validate_store_file(backup_file)
        except MigratorBackupError as error:
            _LOGGER.error("rollback_backup_invalid", backup=str(backup_file), error=str(error))
            return RollbackResult(
                success=False,
                backup_file=str(backup_file),
                duration_seconds=time.monotonic() - started_at,
                errors=(str(error),),
            )
        stat = backup_file.stat()
        backup_size = stat.st_size
        backup_date = format_timestamp(datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc))
        try:
            _require_confirmation(options, self._store.path, backup_file)
        except RollbackConfirmationRequired as error:
            _LOGGER.warning("rollback_cancelled", backup=str(backup_file))
            return RollbackResult(
                success=False,
                backup_file=str(backup_file),
                duration_seconds=time.monotonic() - started_at,
                backup_size_bytes=backup_size,
                backup_date=backup_date,
                warnings=(str(error),),
            )

        self._store.close_all()
        pre_rollback: Path | None = None
        warnings: list[str] = []
        try:
            if self._store.path.is_file():
                pre_rollback = self._backups.create_backup(prefix=PRE_ROLLBACK_BACKUP_PREFIX)
            else:
                warnings.append(
                    f"No live store at {self._store.path}; skipped the pre-rollback backup."
                )
            self._restore(backup_file)
        except (MigratorBackupError, OSError) as error:
            message = (
                f"Rollback failed while replacing {self._store.path}: {error}. "
                f"Backup {backup_file} is intact"
            )
            if pre_rollback is not None:
                message += f" and the previous store was saved to {pre_rollback}"
            _LOGGER.error("rollback_failed", backup=str(backup_file), error=str(error))
            return RollbackResult(
                success=False,
                backup_file=str(backup_file),
                duration_seconds=time.monotonic() - started_at,
                backup_size_bytes=backup_size,
                backup_date=backup_date,
                pre_rollback_backup=str(pre_rollback) if pre_rollback else None,
                errors=(message + ".",),
                warnings=tuple(warnings),
            )
        finally:
            self._store.reopen()

        verification = None
        if options.verify:
            verification = quick_verify(self._store)
            if not verification.success:
                warnings.append(
                    f"Quick verification failed after rollback: {verification.message}"
                )
        _LOGGER.info(
            "rollback_finished",
            backup=str(backup_file),
            pre_rollback_backup=str(pre_rollback) if pre_rollback else None,
            verified=verification.success if verification else None,
        )
        return RollbackResult(
            success=True,
            backup_file=str(backup_file),
            duration_seconds=time.monotonic() - started_at,
            backup_size_bytes=backup_size,
            backup_date=backup_date,
            pre_rollback_backup=str(pre_rollback) if pre_rollback else None,
            quick_verify=verification,
            warnings=tuple(warnings),
        )

    def _resolve_backup(self, backup_file: Path) -> Path:
        if backup_file.is_file() or backup_file.is_absolute():
            return backup_file
        candidate = self._backups.backups_dir / backup_file
        return candidate if candidate.is_file() else backup_file

    def _restore(self, backup_file: Path) -> None:
        target = self._store.path
        staged = target.with_name(f".{target.name}.restore")
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(backup_file, staged)
        if file_digest(staged) != file_digest(backup_file):
            staged.unlink(missing_ok=True)
            raise MigratorBackupError(f"Restored copy of {backup_file} does not match the backup")
        # Journal files belong to the store being replaced.
        for suffix in _SIDECAR_SUFFIXES:
            Path(f"{target}{suffix}").unlink(missing_ok=True)
        os.replace(staged, target)
        _LOGGER.info("destination_store_restored", backup=str(backup_file), path=str(target))


def _require_confirmation(options: RollbackOptions, database_path: Path, backup: Path) -> None:
    if not options.force:
        raise RollbackConfirmationRequired(
            f"Rollback cancelled: replacing {database_path} with {backup} requires explicit "
            "confirmation. Rerun with --force to proceed."
        )


def render_rollback_report(result: RollbackResult) -> str:
    """Render a rollback result for CLI output."""
    lines = [
        "ROLLBACK REPORT",
        f"status={'succeeded' if result.success else 'failed'}",
        f"backup_file={result.backup_file}",
        f"duration={format_duration(result.duration_seconds)}",
    ]
    if result.backup_size_bytes is not None:
        lines.append(f"backup_size={format_size(result.backup_size_bytes)}")
    if result.backup_date:
        lines.append(f"backup_date={result.backup_date}")
    if result.pre_rollback_backup:
        lines.append(f"pre_rollback_backup={result.pre_rollback_backup}")
    if result.quick_verify is not None:
        status = "passed" if result.quick_verify.success else "failed"
        lines.append(f"quick_verify={status} :: {result.quick_verify.message}")
    lines.extend(f"ERROR: {message}" for message in result.errors)
    lines.extend(f"WARNING: {message}" for message in result.warnings)
    return "\n".join(lines)


def render_backup_list(backups: list[BackupInfo]) -> str:
    """Render available backups, newest first."""
    if not backups:
        return "No backups found."
    lines = ["Available backups (newest first):"]
    for index, backup in enumerate(backups, start=1):
        lines.append(
            f"{index:>3}. {backup.path.name}  {format_size(backup.size_bytes)}  "
            f"{backup.modified_at}"
        )
    return "\n".join(lines)

