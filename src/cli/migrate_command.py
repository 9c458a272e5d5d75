"""Migrate command wiring for Migrator CLI."""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any

from core.constants import DEFAULT_IMPORT_BATCH_SIZE
from core.progress_tracker import ProgressEvent
from core.types import ImportOptions, MigrationOptions
from migration.migrator_sdk import MigratorClient
from migration.orchestrator import render_migration_report


def add_migrate_command(subparsers: Any) -> None:
    """Register migrate subcommand."""
    parser = subparsers.add_parser(
        "migrate",
        help="Export, import, verify, and summarize one migration run",
    )
    scope = parser.add_mutually_exclusive_group()
    scope.add_argument("--export-only", action="store_true", help="Only export a snapshot")
    scope.add_argument("--import-only", action="store_true", help="Only import a snapshot")
    parser.add_argument("--import-file", help="Snapshot file to import instead of a fresh export")
    parser.add_argument("--skip-export", action="store_true", help="Skip the export phase")
    parser.add_argument("--skip-import", action="store_true", help="Skip the import phase")
    parser.add_argument(
        "--skip-verification",
        action="store_true",
        help="Skip post-import verification",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=DEFAULT_IMPORT_BATCH_SIZE,
        help="Records per atomic import batch",
    )
    parser.add_argument(
        "--no-skip-duplicates",
        action="store_true",
        help="Update records whose natural key already exists instead of skipping them",
    )
    parser.add_argument(
        "--no-validation",
        action="store_true",
        help="Let destination constraints decide instead of validating records first",
    )
    parser.add_argument(
        "--no-backup",
        action="store_true",
        help="Do not back up the destination store before importing",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate and detect duplicates without keeping any writes",
    )


def run_migrate_command(client: MigratorClient, args: argparse.Namespace) -> int:
    """Execute one migration and print the final report."""
    options = MigrationOptions(
        export_only=args.export_only,
        import_only=args.import_only,
        import_file=Path(args.import_file).expanduser() if args.import_file else None,
        skip_export=args.skip_export,
        skip_import=args.skip_import,
        skip_verification=args.skip_verification,
        import_options=ImportOptions(
            batch_size=args.batch_size,
            skip_duplicates=not args.no_skip_duplicates,
            validate_data=not args.no_validation,
            create_backup=not args.no_backup,
            dry_run=args.dry_run,
        ),
    )
    result = client.migrate(options, listeners=(_print_progress,))
    print(render_migration_report(result))
    return 0 if result.success else 1


def _print_progress(event: ProgressEvent) -> None:
    print(f"[{event.percentage:5.1f}%] {event.message}")
