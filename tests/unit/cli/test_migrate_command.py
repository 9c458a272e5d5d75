"""Unit tests for the migrate command."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

import pytest

from cli.main import build_parser
from cli.migrate_command import run_migrate_command
from core.progress_tracker import ProgressListener
from core.types import MigrationOptions, MigrationResult, PhaseOutcome


class _FakeClient:
    def __init__(self, success: bool = True) -> None:
        self.success = success
        self.options: MigrationOptions | None = None

    def migrate(
        self,
        options: MigrationOptions | None = None,
        listeners: Sequence[ProgressListener] = (),
    ) -> MigrationResult:
        self.options = options
        _ = listeners
        return MigrationResult(
            success=self.success,
            phases=(PhaseOutcome("export", "skipped", "export disabled by flags"),),
            duration_seconds=0.5,
        )


def test_migrate_flags_map_onto_options(capsys) -> None:
    """Every CLI flag should land in the migration options."""
    args = build_parser().parse_args(
        [
            "migrate",
            "--import-only",
            "--import-file",
            "snap.json",
            "--skip-verification",
            "--batch-size",
            "25",
            "--no-skip-duplicates",
            "--no-validation",
            "--no-backup",
            "--dry-run",
        ]
    )
    client = _FakeClient()

    exit_code = run_migrate_command(client, args)

    options = client.options
    assert exit_code == 0 and options is not None
    assert options.import_only and not options.export_only
    assert options.import_file == Path("snap.json")
    assert options.skip_verification
    import_options = options.import_options
    assert import_options.batch_size == 25
    assert not import_options.skip_duplicates and not import_options.validate_data
    assert not import_options.create_backup and import_options.dry_run
    assert "[SKIPPED] export: export disabled by flags" in capsys.readouterr().out


def test_migrate_defaults(capsys) -> None:
    """Without flags every phase runs with default import options."""
    args = build_parser().parse_args(["migrate"])
    client = _FakeClient()

    run_migrate_command(client, args)
    capsys.readouterr()

    assert client.options == MigrationOptions()


def test_migrate_failure_exit_code(capsys) -> None:
    """Unsuccessful migrations should exit with 1."""
    args = build_parser().parse_args(["migrate"])

    exit_code = run_migrate_command(_FakeClient(success=False), args)

    assert exit_code == 1
    assert "Migration completed with issues." in capsys.readouterr().out


def test_export_only_and_import_only_are_exclusive() -> None:
    """The scope flags cannot be combined on the command line."""
    with pytest.raises(SystemExit):
        build_parser().parse_args(["migrate", "--export-only", "--import-only"])
