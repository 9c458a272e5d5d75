"""Migrator CLI entry points.

This module exposes the migrate and rollback commands.
It maps argparse commands onto SDK calls.
"""

from __future__ import annotations

import argparse
import os
from dataclasses import replace
from pathlib import Path
from typing import Sequence

from cli.migrate_command import add_migrate_command, run_migrate_command
from cli.rollback_command import add_rollback_command, run_rollback_command
from core.config import MigratorConfig
from core.errors import MigratorConfigError
from migration.migrator_sdk import MigratorClient


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level CLI parser.

    Returns:
        Configured argument parser.
    """
    parser = argparse.ArgumentParser(
        prog="migrator",
        description="Migrate records from the legacy store into the embedded destination store",
    )
    parser.add_argument("--data-root", help="Override MIGRATOR_DATA_ROOT for this command")
    parser.add_argument("--database", help="Override MIGRATOR_DATABASE_PATH for this command")
    parser.add_argument("--keys-file", help="YAML file overriding natural keys per entity")
    subparsers = parser.add_subparsers(dest="command", required=True)
    add_migrate_command(subparsers)
    add_rollback_command(subparsers)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the Migrator CLI.

    Args:
        argv: Optional argument vector.

    Returns:
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        client = _build_client(args)
        if args.command == "migrate":
            return run_migrate_command(client, args)
        if args.command == "rollback":
            return run_rollback_command(client, args)
    except MigratorConfigError as error:
        print(f"config_error={error}")
        return 1
    parser.error(f"Unsupported command: {args.command}")
    return 2


def _build_client(args: argparse.Namespace) -> MigratorClient:
    """Build SDK client with optional path overrides.

    Args:
        args: Parsed CLI args.

    Returns:
        Configured SDK client.
    """
    config = MigratorConfig.from_env()
    if args.data_root:
        data_root = _resolve(args.data_root)
        config = replace(config, data_root=data_root)
        if not args.database and not os.getenv("MIGRATOR_DATABASE_PATH"):
            config = replace(config, database_path=data_root / config.database_path.name)
    if args.database:
        config = replace(config, database_path=_resolve(args.database))
    if args.keys_file:
        config = replace(config, keys_file=_resolve(args.keys_file))
    return MigratorClient(config)


def _resolve(raw_value: str) -> Path:
    return Path(raw_value).expanduser().resolve()
