"""Typed models for verification workflows."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from core.constants import DEFAULT_VERIFICATION_SAMPLE_SIZE
from core.natural_keys import DEFAULT_NATURAL_KEYS, NaturalKeys
from store.snapshot_store import Snapshot

VerificationStatus = Literal["passed", "warning", "failed", "skipped"]


@dataclass(frozen=True)
class VerificationOptions:
    """Options controlling verification execution."""

    snapshot_path: Path | None = None
    sample_size: int = DEFAULT_VERIFICATION_SAMPLE_SIZE
    natural_keys: NaturalKeys = field(default_factory=lambda: dict(DEFAULT_NATURAL_KEYS))
    fail_fast: bool = False


@dataclass(frozen=True)
class VerificationCheckResult:
    """One verification check result row."""

    check_id: str
    title: str
    status: VerificationStatus
    details: str
    duration_seconds: float


@dataclass(frozen=True)
class VerificationResult:
    """Final verification outcome for one destination store.

    Attributes:
        success: False only on count mismatches or constraint violations.
        total_records: Rows examined across migrated tables.
        integrity_issues: Dangling references found.
        table_counts: Rows per migrated table.
        errors: Blocking findings.
        warnings: Non-blocking integrity warnings.
        checks: Per-check rows in execution order.
        snapshot_path: Snapshot compared against, if any.
    """

    success: bool
    total_records: int
    integrity_issues: int
    table_counts: dict[str, int]
    errors: tuple[str, ...]
    warnings: tuple[str, ...]
    checks: tuple[VerificationCheckResult, ...]
    snapshot_path: str | None = None
    report_path: str | None = None

    @property
    def failed_count(self) -> int:
        """Count failed checks in this result."""
        return sum(1 for check in self.checks if check.status == "failed")

    @property
    def passed_count(self) -> int:
        """Count passed checks in this result."""
        return sum(1 for check in self.checks if check.status == "passed")


@dataclass
class VerificationRuntime:
    """Shared mutable runtime state used by check functions."""

    connection: sqlite3.Connection
    options: VerificationOptions
    snapshot: Snapshot | None = None
    existing_tables: set[str] = field(default_factory=set)
    table_counts: dict[str, int] = field(default_factory=dict)
    integrity_issues: int = 0
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
