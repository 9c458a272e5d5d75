"""Shared typed models.

This module defines immutable option and result models used by the
exporter, importer, rollback tool, orchestrator, and CLI to keep
interfaces explicit and stable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from core.constants import DEFAULT_IMPORT_BATCH_SIZE
from core.verification_types import VerificationResult


@dataclass(frozen=True)
class ImportOptions:
    """Options controlling one snapshot import.

    Attributes:
        batch_size: Records per atomic batch.
        skip_duplicates: Count natural-key matches as skipped instead of updating them.
        validate_data: Check records structurally before writing.
        create_backup: Take a verified store backup before the first write.
        dry_run: Run every check and write inside a transaction that is rolled back.
    """

    batch_size: int = DEFAULT_IMPORT_BATCH_SIZE
    skip_duplicates: bool = True
    validate_data: bool = True
    create_backup: bool = True
    dry_run: bool = False


@dataclass(frozen=True)
class EntityImportCounts:
    """Per-entity import tallies."""

    total: int = 0
    imported: int = 0
    skipped: int = 0
    duplicates: int = 0
    errors: int = 0
    rolled_back: int = 0


@dataclass(frozen=True)
class ImportResult:
    """Outcome of one snapshot import."""

    success: bool
    dry_run: bool
    total_records: int
    imported_records: int
    skipped_records: int
    duplicate_records: int
    error_records: int
    rolled_back_records: int
    unresolved_references: int
    failed_batches: int
    duration_seconds: float
    backup_path: str | None = None
    report_path: str | None = None
    entity_counts: dict[str, EntityImportCounts] = field(default_factory=dict)
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class ExportResult:
    """Outcome of one legacy store export."""

    success: bool
    source: str
    duration_seconds: float
    snapshot_path: str | None = None
    raw_export_path: str | None = None
    report_path: str | None = None
    validation_report_path: str | None = None
    summary_path: str | None = None
    validation_passed: bool = True
    record_counts: dict[str, int] = field(default_factory=dict)
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class QuickVerifyResult:
    """Outcome of the cheap post-restore store check."""

    success: bool
    message: str


@dataclass(frozen=True)
class BackupInfo:
    """One backup file on disk."""

    path: Path
    size_bytes: int
    modified_at: str


@dataclass(frozen=True)
class RollbackOptions:
    """Options controlling one rollback.

    Attributes:
        backup_file: Backup to restore as the live destination store.
        verify: Run a quick verification after the swap.
        force: Explicit operator confirmation; without it nothing is touched.
    """

    backup_file: Path
    verify: bool = True
    force: bool = False


@dataclass(frozen=True)
class RollbackResult:
    """Outcome of one rollback."""

    success: bool
    backup_file: str
    duration_seconds: float
    backup_size_bytes: int | None = None
    backup_date: str | None = None
    pre_rollback_backup: str | None = None
    quick_verify: QuickVerifyResult | None = None
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class MigrationOptions:
    """Phase flags for one orchestrated migration.

    Attributes:
        export_only: Run only the export phase.
        import_only: Run only the import phase (requires an existing snapshot).
        import_file: Snapshot to import instead of the one just exported.
        skip_export: Do not export from the legacy store.
        skip_import: Do not import into the destination store.
        skip_verification: Do not verify after importing.
        import_options: Options forwarded to the importer.
    """

    export_only: bool = False
    import_only: bool = False
    import_file: Path | None = None
    skip_export: bool = False
    skip_import: bool = False
    skip_verification: bool = False
    import_options: ImportOptions = field(default_factory=ImportOptions)


PhaseName = Literal["export", "import", "verify", "finalize"]
PhaseStatus = Literal["succeeded", "warning", "failed", "skipped"]


@dataclass(frozen=True)
class PhaseOutcome:
    """Status of one orchestrator phase."""

    phase: PhaseName
    status: PhaseStatus
    detail: str


@dataclass(frozen=True)
class MigrationResult:
    """Combined outcome of one orchestrated migration.

    Attributes:
        success: Every phase that actually ran succeeded.
        phases: Per-phase outcomes in execution order.
        export: Export result when the export phase ran.
        import_result: Import result when the import phase ran.
        verification: Verification result when the verify phase ran.
        duration_seconds: Wall-clock duration of the whole run.
        summary_path: Persisted migration summary, once finalize wrote it.
        verification_report_path: Persisted verification text report.
        errors: Run-level error messages.
        warnings: Run-level warning messages.
    """

    success: bool
    phases: tuple[PhaseOutcome, ...]
    duration_seconds: float
    export: ExportResult | None = None
    import_result: ImportResult | None = None
    verification: VerificationResult | None = None
    summary_path: str | None = None
    verification_report_path: str | None = None
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def backup_path(self) -> str | None:
        return self.import_result.backup_path if self.import_result else None
