"""Integration tests for end-to-end migration scenarios."""

from __future__ import annotations

from dataclasses import replace

from core.types import ImportOptions, MigrationOptions
from migration.migrator_sdk import MigratorClient
from tests.snapshot_factory import (
    build_config,
    department,
    notification,
    sample_payload,
    snapshot_payload,
    user,
    write_snapshot_file,
)


def _client(tmp_path) -> MigratorClient:
    return MigratorClient(build_config(tmp_path))


def test_users_with_missing_department_are_excluded(tmp_path) -> None:
    """Two users pointing at an absent department should be the only exclusions."""
    client = _client(tmp_path)
    users = [user(index, index % 5) for index in range(8)]
    users += [user(8, department_index=40), user(9, department_index=41)]
    payload = snapshot_payload(departments=[department(index) for index in range(5)], users=users)
    snapshot_path = write_snapshot_file(tmp_path / "snap.json", payload)

    result = client.migrate(MigrationOptions(skip_export=True, import_file=snapshot_path))

    import_result = result.import_result
    assert import_result is not None
    assert import_result.imported_records == 13 and import_result.error_records == 2
    assert not import_result.success and not result.success
    assert sum(client.store.table_counts().values()) == 13


def test_repeated_migration_is_idempotent(tmp_path) -> None:
    """A second migration of the same snapshot should skip every record."""
    client = _client(tmp_path)
    snapshot_path = write_snapshot_file(tmp_path / "snap.json", sample_payload())
    options = MigrationOptions(skip_export=True, import_file=snapshot_path)
    client.migrate(options)
    counts_before = client.store.table_counts()

    result = client.migrate(options)

    import_result = result.import_result
    assert result.success and import_result is not None
    assert import_result.imported_records == 0 and import_result.skipped_records == 12
    assert client.store.table_counts() == counts_before


def test_dry_run_matches_real_run_counts(tmp_path) -> None:
    """A dry run should report what a real run then does."""
    client = _client(tmp_path)
    payload = sample_payload()
    payload["users"].append(user(9, department_index=30))
    payload["record_counts"]["users"] += 1
    snapshot_path = write_snapshot_file(tmp_path / "snap.json", payload)

    dry = client.import_snapshot(snapshot_path, ImportOptions(dry_run=True))
    counts_after_dry = client.store.table_counts()
    real = client.import_snapshot(snapshot_path)

    assert sum(counts_after_dry.values()) == 0
    assert (dry.imported_records, dry.skipped_records, dry.error_records) == (
        real.imported_records,
        real.skipped_records,
        real.error_records,
    )
    assert dry.entity_counts == real.entity_counts


def test_failed_batch_keeps_other_batches(tmp_path) -> None:
    """With destination constraints deciding, only the offending batch is lost."""
    client = _client(tmp_path)
    departments = [department(index) for index in range(6)]
    departments[3] = department(3, code="TOO-LONG-CODE")
    snapshot_path = write_snapshot_file(
        tmp_path / "snap.json", snapshot_payload(departments=departments)
    )

    result = client.import_snapshot(
        snapshot_path, ImportOptions(batch_size=2, validate_data=False)
    )

    assert result.failed_batches == 1 and not result.success
    assert result.imported_records == 4 and result.rolled_back_records == 1
    assert result.error_records == 1
    with client.store.connect() as connection:
        rows = connection.execute("SELECT code FROM departments ORDER BY code").fetchall()
    codes = [row[0] for row in rows]
    assert codes == ["D00", "D01", "D04", "D05"]


def test_custom_natural_keys_change_duplicate_matching(tmp_path) -> None:
    """Keying notifications on their message should merge re-issued copies."""
    keys_file = tmp_path / "keys.yaml"
    keys_file.write_text("natural_keys:\n  notifications: [message]\n", encoding="utf-8")
    client = MigratorClient(replace(build_config(tmp_path), keys_file=keys_file))
    base = {"departments": [department(0)], "users": [user(0)]}
    first = write_snapshot_file(
        tmp_path / "first.json",
        snapshot_payload(**base, notifications=[notification(0)]),
    )
    second = write_snapshot_file(
        tmp_path / "second.json",
        snapshot_payload(**base, notifications=[notification(7, message="Notification 0")]),
    )
    client.import_snapshot(first)

    result = client.import_snapshot(second)

    assert result.success and result.skipped_records == 3
    assert client.store.table_counts()["notifications"] == 1
