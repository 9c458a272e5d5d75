"""Rollback command wiring for Migrator CLI."""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any

from core.types import RollbackOptions
from migration.migrator_sdk import MigratorClient
from migration.rollback import render_backup_list, render_rollback_report


def add_rollback_command(subparsers: Any) -> None:
    """Register rollback subcommand."""
    parser = subparsers.add_parser(
        "rollback",
        help="Restore the destination store from a backup file",
    )
    parser.add_argument("backup_file", nargs="?", help="Backup file to restore")
    parser.add_argument(
        "--no-verify",
        action="store_true",
        help="Skip the quick verification after restoring",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Confirm replacing the live destination store",
    )
    parser.add_argument(
        "--list-backups",
        action="store_true",
        help="List available backups and exit",
    )


def run_rollback_command(client: MigratorClient, args: argparse.Namespace) -> int:
    """Execute rollback or list backups."""
    if args.list_backups:
        print(render_backup_list(client.list_backups()))
        return 0
    if not args.backup_file:
        print("rollback_error=A backup file is required. Use --list-backups to see candidates.")
        return 1
    result = client.rollback(
        RollbackOptions(
            backup_file=Path(args.backup_file).expanduser(),
            verify=not args.no_verify,
            force=args.force,
        )
    )
    print(render_rollback_report(result))
    return 0 if result.success else 1
