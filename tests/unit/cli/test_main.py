"""Unit tests for CLI command handling."""

from __future__ import annotations

import json

import pytest

from cli.main import _build_client, build_parser, main
from tests.snapshot_factory import department, notification, submission, user


def _write_dump(tmp_path):
    dump_path = tmp_path / "legacy-dump.json"
    dump_path.write_text(
        json.dumps(
            {
                "departments": [department(0)],
                "users": [user(0), user(1)],
                "submissions": [submission(0)],
                "notifications": [notification(0)],
                "audit_logs": [],
            }
        ),
        encoding="utf-8",
    )
    return dump_path


@pytest.fixture(autouse=True)
def _clean_environment(monkeypatch) -> None:
    for name in (
        "MIGRATOR_DATA_ROOT",
        "MIGRATOR_DATABASE_PATH",
        "MIGRATOR_LEGACY_URL",
        "MIGRATOR_LEGACY_KEY",
        "MIGRATOR_LEGACY_DUMP",
        "MIGRATOR_KEYS_FILE",
        "MIGRATOR_PAGE_SIZE",
    ):
        monkeypatch.delenv(name, raising=False)


def test_cli_migrate_runs_complete_migration(tmp_path, monkeypatch, capsys) -> None:
    """CLI migrate should print progress and the final report."""
    monkeypatch.setenv("MIGRATOR_LEGACY_DUMP", str(_write_dump(tmp_path)))

    exit_code = main(["--data-root", str(tmp_path / "data"), "migrate"])
    output = capsys.readouterr().out

    assert exit_code == 0
    assert "COMPLETE MIGRATION REPORT" in output
    assert "Migration completed successfully." in output
    assert "[100.0%] Completed: Write migration summary" in output
    assert (tmp_path / "data" / "database.db").is_file()


def test_cli_migrate_failure_returns_nonzero(tmp_path, capsys) -> None:
    """Without a legacy source the export fails and the exit code is 1."""
    exit_code = main(["--data-root", str(tmp_path), "migrate"])
    output = capsys.readouterr().out

    assert exit_code == 1 and "Migration completed with issues." in output


def test_cli_reports_config_errors(tmp_path, monkeypatch, capsys) -> None:
    """Invalid environment values should print a config error."""
    monkeypatch.setenv("MIGRATOR_PAGE_SIZE", "many")

    exit_code = main(["--data-root", str(tmp_path), "rollback", "--list-backups"])
    output = capsys.readouterr().out

    assert exit_code == 1 and output.startswith("config_error=Invalid MIGRATOR_PAGE_SIZE")


def test_data_root_moves_default_database(tmp_path) -> None:
    """Overriding the data root should move the default store with it."""
    args = build_parser().parse_args(["--data-root", str(tmp_path), "migrate"])

    client = _build_client(args)

    assert client.config.database_path == tmp_path.resolve() / "database.db"
    assert client.config.backups_dir == tmp_path.resolve() / "backups"


def test_database_flag_wins_over_data_root(tmp_path) -> None:
    """An explicit database path should not follow the data root."""
    args = build_parser().parse_args(
        [
            "--data-root",
            str(tmp_path / "root"),
            "--database",
            str(tmp_path / "elsewhere.db"),
            "rollback",
            "--list-backups",
        ]
    )

    client = _build_client(args)

    assert client.config.database_path == (tmp_path / "elsewhere.db").resolve()


def test_parser_requires_a_command() -> None:
    """Running without a subcommand should be a usage error."""
    with pytest.raises(SystemExit):
        build_parser().parse_args([])
