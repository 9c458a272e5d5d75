"""Migrator exception hierarchy.

This module defines traceable domain errors with clear boundaries.
Each subsystem raises a specific error type for debuggability.
"""

from __future__ import annotations

from dataclasses import dataclass


class MigratorError(Exception):
    """Base exception for all migrator failures."""


class MigratorConfigError(MigratorError):
    """Raised for invalid runtime configuration."""


class MigratorIOError(MigratorError):
    """Raised when a snapshot, report, or store file cannot be read or written."""


class MigratorExportError(MigratorError):
    """Raised for legacy store read failures."""


class MigratorStoreError(MigratorError):
    """Raised for destination store open and schema failures."""


class MigratorBackupError(MigratorError):
    """Raised when a backup cannot be created or verified."""


class MigratorVerificationError(MigratorError):
    """Raised when verification cannot run at all."""


class ProgressStateError(MigratorError):
    """Raised for illegal progress step transitions."""


class RollbackConfirmationRequired(MigratorError):
    """Raised when a rollback is requested without explicit operator intent."""


class RecordValidationError(MigratorError):
    """Raised when one snapshot record is structurally invalid."""

    def __init__(self, entity: str, index: int, field: str | None, message: str) -> None:
        self.entity = entity
        self.index = index
        self.field = field
        self.message = message
        location = f"{entity}[{index}]" + (f".{field}" if field else "")
        super().__init__(f"{location}: {message}")


@dataclass(frozen=True)
class RecordFailure:
    """One record the destination store refused to write."""

    entity: str
    record_id: str
    message: str


class BatchConstraintError(MigratorError):
    """Raised inside a batch scope when the destination rejected writes."""

    def __init__(
        self,
        entity: str,
        batch_number: int,
        failures: tuple[RecordFailure, ...],
    ) -> None:
        self.entity = entity
        self.batch_number = batch_number
        self.failures = failures
        super().__init__(
            f"Batch {batch_number} of {entity} rejected {len(failures)} record(s); "
            "the batch was rolled back."
        )
