"""Python SDK for migration operations.

This module exposes high-level APIs for export, import, verification,
rollback, and complete migrations that share one destination store handle.
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

from core.config import MigratorConfig
from core.natural_keys import NaturalKeys, load_natural_keys
from core.progress_tracker import ProgressListener
from core.types import (
    BackupInfo,
    ExportResult,
    ImportOptions,
    ImportResult,
    MigrationOptions,
    MigrationResult,
    QuickVerifyResult,
    RollbackOptions,
    RollbackResult,
)
from core.verification import quick_verify, run_verification
from core.verification_types import VerificationOptions, VerificationResult
from importer.snapshot_importer import SnapshotImporter
from legacy.exporter import Exporter
from legacy.legacy_reader import LegacyReader
from migration.orchestrator import MigrationOrchestrator
from migration.rollback import RollbackTool
from store.destination_store import DestinationStore


class MigratorClient:
    """Primary SDK entry point for migration workflows."""

    def __init__(
        self,
        config: MigratorConfig | None = None,
        reader: LegacyReader | None = None,
        listeners: Sequence[ProgressListener] = (),
    ) -> None:
        """Create SDK client.

        Args:
            config: Optional runtime configuration.
            reader: Optional legacy reader used by exports.
            listeners: Progress listeners attached to imports and migrations.
        """
        self._config = config or MigratorConfig.from_env()
        self._reader = reader
        self._listeners = tuple(listeners)
        self._store = DestinationStore(self._config.database_path)
        self._keys: NaturalKeys | None = None

    @property
    def config(self) -> MigratorConfig:
        return self._config

    @property
    def store(self) -> DestinationStore:
        return self._store

    def natural_keys(self) -> NaturalKeys:
        """Natural keys per entity, loaded once from the configured keys file.

        Raises:
            MigratorConfigError: If the keys file is invalid.
        """
        if self._keys is None:
            self._keys = load_natural_keys(self._config.keys_file)
        return self._keys

    def export(self) -> ExportResult:
        """Export the legacy store into a new snapshot."""
        return Exporter(self._config, reader=self._reader, keys=self._keys).export()

    def import_snapshot(
        self,
        snapshot_path: Path,
        options: ImportOptions | None = None,
    ) -> ImportResult:
        """Import one snapshot into the destination store."""
        importer = SnapshotImporter(
            self._config,
            store=self._store,
            keys=self.natural_keys(),
            listeners=self._listeners,
        )
        return importer.import_from_file(snapshot_path, options)

    def verify(self, snapshot_path: Path | None = None) -> VerificationResult:
        """Run every verification check, comparing against a snapshot when given.

        Raises:
            MigratorVerificationError: If verification cannot run.
        """
        options = VerificationOptions(
            snapshot_path=snapshot_path, natural_keys=self.natural_keys()
        )
        return run_verification(self._store, options)

    def quick_verify(self) -> QuickVerifyResult:
        return quick_verify(self._store)

    def migrate(
        self,
        options: MigrationOptions | None = None,
        listeners: Sequence[ProgressListener] = (),
    ) -> MigrationResult:
        """Run a complete migration, publishing phase events to extra listeners."""
        orchestrator = MigrationOrchestrator(
            self._config,
            store=self._store,
            reader=self._reader,
            keys=self.natural_keys(),
            listeners=(*self._listeners, *listeners),
        )
        return orchestrator.execute_migration(options)

    def rollback(self, options: RollbackOptions) -> RollbackResult:
        """Restore the destination store from a backup."""
        return RollbackTool(self._config, store=self._store).execute_rollback(options)

    def list_backups(self) -> list[BackupInfo]:
        return RollbackTool(self._config, store=self._store).list_backups()
