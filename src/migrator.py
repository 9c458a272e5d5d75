"""Public SDK surface for Migrator.

This module provides a stable import path for migration users.
It re-exports the primary client and typed option models.
"""

from __future__ import annotations

from core.config import MigratorConfig
from core.types import (
    ExportResult,
    ImportOptions,
    ImportResult,
    MigrationOptions,
    MigrationResult,
    QuickVerifyResult,
    RollbackOptions,
    RollbackResult,
)
from core.verification_types import VerificationResult
from migration.migrator_sdk import MigratorClient
from migration.orchestrator import MigrationOrchestrator, render_migration_report
from migration.rollback import RollbackTool

__all__ = [
    "ExportResult",
    "ImportOptions",
    "ImportResult",
    "MigrationOptions",
    "MigrationOrchestrator",
    "MigrationResult",
    "MigratorClient",
    "MigratorConfig",
    "QuickVerifyResult",
    "RollbackOptions",
    "RollbackResult",
    "RollbackTool",
    "VerificationResult",
    "render_migration_report",
]
