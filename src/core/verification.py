"""Verification workflow orchestration and report formatting."""

from __future__ import annotations

import sqlite3
import time
from pathlib import Path
from typing import Callable

from core.constants import ENTITY_ORDER, VERIFICATION_REPORT_PREFIX
from core.errors import MigratorError, MigratorVerificationError
from core.formatting import file_timestamp, format_timestamp
from core.logging_config import get_logger
from core.types import QuickVerifyResult
from core.verification_checks import CheckRow, CheckSkipped, build_checks, build_runtime
from core.verification_types import (
    VerificationCheckResult,
    VerificationOptions,
    VerificationResult,
    VerificationRuntime,
    VerificationStatus,
)
from store.destination_store import DestinationStore, count_rows, existing_tables
from store.report_io import unique_artifact_path, write_text_file

__all__ = [
    "VerificationCheckResult",
    "VerificationOptions",
    "VerificationResult",
    "quick_verify",
    "run_verification",
    "render_verification_report",
    "save_verification_report",
]

_LOGGER = get_logger(__name__)


def run_verification(store: DestinationStore, options: VerificationOptions) -> VerificationResult:
    """Run verification checks and return a structured result.

    Args:
        store: Destination store handle.
        options: Snapshot to compare against and sampling options.

    Returns:
        Verification result; ``success`` is false on any blocking finding.

    Raises:
        MigratorVerificationError: If the store is missing or the snapshot
            cannot be loaded.
    """
    if not store.exists:
        raise MigratorVerificationError(
            f"Destination store not found at {store.path}. Run an import before verifying."
        )
    with store.connect() as connection:
        try:
            runtime = build_runtime(connection, options)
        except MigratorError as error:
            raise MigratorVerificationError(
                f"Verification could not start for {store.path}: {error}"
            ) from error
        results = _run_checks(runtime, build_checks(), options.fail_fast)
        if not runtime.table_counts:
            runtime.table_counts = count_rows(connection)
    result = VerificationResult(
        success=not runtime.errors,
        total_records=sum(runtime.table_counts.values()),
        integrity_issues=runtime.integrity_issues,
        table_counts=dict(runtime.table_counts),
        errors=tuple(runtime.errors),
        warnings=tuple(runtime.warnings),
        checks=tuple(results),
        snapshot_path=str(options.snapshot_path) if options.snapshot_path else None,
    )
    _LOGGER.info(
        "verification_finished",
        success=result.success,
        total_records=result.total_records,
        integrity_issues=result.integrity_issues,
        errors=len(result.errors),
        warnings=len(result.warnings),
    )
    return result


def _run_checks(
    runtime: VerificationRuntime,
    checks: tuple[CheckRow, ...],
    fail_fast: bool,
) -> list[VerificationCheckResult]:
    results: list[VerificationCheckResult] = []
    for check_id, title, check_fn in checks:
        started_at = time.monotonic()
        status, details = _run_single_check(check_id, title, check_fn, runtime)
        results.append(
            VerificationCheckResult(
                check_id=check_id,
                title=title,
                status=status,
                details=details,
                duration_seconds=round(time.monotonic() - started_at, 3),
            )
        )
        if status == "failed" and fail_fast:
            break
    return results


def _run_single_check(
    check_id: str,
    title: str,
    check_fn: Callable[[VerificationRuntime], str],
    runtime: VerificationRuntime,
) -> tuple[VerificationStatus, str]:
    errors_before = len(runtime.errors)
    warnings_before = len(runtime.warnings)
    try:
        details = str(check_fn(runtime))
    except CheckSkipped as skipped:
        return "skipped", str(skipped)
    except Exception as error:
        runtime.errors.append(f"{check_id} {title} could not run: {error}")
        _LOGGER.warning(
            "verification_check_error",
            check_id=check_id,
            error_type=type(error).__name__,
            error=str(error),
        )
        return "failed", str(error)
    if len(runtime.errors) > errors_before:
        return "failed", details
    if len(runtime.warnings) > warnings_before:
        return "warning", details
    return "passed", details


def quick_verify(store: DestinationStore) -> QuickVerifyResult:
    """Run the cheap store check used after a restore.

    Succeeds on an empty but well-formed store.
    """
    if not store.exists:
        return QuickVerifyResult(False, f"Destination store not found at {store.path}.")
    try:
        with store.connect() as connection:
            missing = [table for table in ENTITY_ORDER if table not in existing_tables(connection)]
            if missing:
                return QuickVerifyResult(False, f"Missing tables: {', '.join(missing)}.")
            orphans = {
                table: int(
                    connection.execute(
                        f"SELECT COUNT(*) FROM {table} t LEFT JOIN users u ON t.user_id = u.id "
                        "WHERE u.id IS NULL"
                    ).fetchone()[0]
                )
                for table in ("submissions", "notifications")
            }
            counts = count_rows(connection)
    except (sqlite3.Error, MigratorError) as error:
        return QuickVerifyResult(False, f"Store check failed: {error}")
    dangling = {table: count for table, count in orphans.items() if count}
    if dangling:
        detail = ", ".join(f"{count} orphaned {table}" for table, count in dangling.items())
        return QuickVerifyResult(False, f"Found {detail}.")
    return QuickVerifyResult(
        True,
        f"Store is consistent: {sum(counts.values())} records across {len(counts)} tables.",
    )


def render_verification_report(result: VerificationResult) -> str:
    """Render a verification result into stable multi-line text."""
    lines = [
        "MIGRATION VERIFICATION REPORT",
        f"generated_at={format_timestamp()}",
        f"status={'passed' if result.success else 'failed'}",
        f"total_records={result.total_records}",
        f"integrity_issues={result.integrity_issues}",
        f"snapshot={result.snapshot_path or 'none'}",
        "",
        "Record counts:",
    ]
    for table, count in result.table_counts.items():
        lines.append(f"  {table}={count}")
    lines.append("")
    lines.append("Checks:")
    for row in result.checks:
        lines.append(
            f"[{row.status.upper()}] {row.check_id} {row.title} "
            f"({row.duration_seconds:.3f}s) :: {row.details}"
        )
    lines.append(f"passed={result.passed_count}")
    lines.append(f"failed={result.failed_count}")
    if result.errors:
        lines.append("")
        lines.append("Errors:")
        lines.extend(f"  - {message}" for message in result.errors)
    if result.warnings:
        lines.append("")
        lines.append("Warnings:")
        lines.extend(f"  - {message}" for message in result.warnings)
    return "\n".join(lines) + "\n"


def save_verification_report(result: VerificationResult, reports_dir: Path) -> Path:
    """Persist the text report as a new timestamped artifact."""
    report_path = unique_artifact_path(
        reports_dir, f"{VERIFICATION_REPORT_PREFIX}-{file_timestamp()}", ".txt"
    )
    write_text_file(report_path, render_verification_report(result))
    _LOGGER.info("verification_report_saved", path=str(report_path))
    return report_path
