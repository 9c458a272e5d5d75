"""Unit tests for snapshot record validation."""

from __future__ import annotations

from core.natural_keys import DEFAULT_NATURAL_KEYS
from importer.record_validation import prepare_unvalidated, validate_snapshot
from store.snapshot_store import Snapshot, load_snapshot
from tests.snapshot_factory import (
    department,
    make_id,
    sample_payload,
    snapshot_payload,
    submission,
    user,
    write_snapshot_file,
)


def _snapshot(tmp_path, payload) -> Snapshot:
    return load_snapshot(write_snapshot_file(tmp_path / "snap.json", payload))


def _no_destination() -> dict[str, set[str]]:
    return {
        name: set()
        for name in ("departments", "users", "submissions", "notifications", "audit_logs")
    }


def test_valid_snapshot_is_fully_accepted(tmp_path) -> None:
    """Consistent snapshots should produce no issues."""
    snapshot = _snapshot(tmp_path, sample_payload())

    prepared = validate_snapshot(snapshot, _no_destination(), DEFAULT_NATURAL_KEYS)

    assert prepared.issues == []
    assert {entity: len(rows) for entity, rows in prepared.records.items()}["users"] == 4


def test_missing_parent_excludes_record_and_cascades(tmp_path) -> None:
    """Excluding a user should also exclude the user's submissions."""
    payload = snapshot_payload(
        departments=[department(0)],
        users=[user(0), user(1, department_index=9)],
        submissions=[submission(0, user_index=1)],
    )
    snapshot = _snapshot(tmp_path, payload)

    prepared = validate_snapshot(snapshot, _no_destination(), DEFAULT_NATURAL_KEYS)

    assert [(issue.entity, issue.index) for issue in prepared.issues] == [
        ("users", 1),
        ("submissions", 0),
    ]
    assert "references missing departments" in prepared.issues[0].message


def test_parent_already_in_destination_is_accepted(tmp_path) -> None:
    """References may point at rows that already exist in the destination."""
    payload = snapshot_payload(users=[user(0)])
    destination = _no_destination()
    destination["departments"] = {make_id("departments", 0)}

    prepared = validate_snapshot(_snapshot(tmp_path, payload), destination, DEFAULT_NATURAL_KEYS)

    assert prepared.issues == [] and len(prepared.records["users"]) == 1


def test_in_snapshot_duplicates_are_excluded(tmp_path) -> None:
    """A second user with the same email should be excluded."""
    payload = snapshot_payload(
        departments=[department(0)],
        users=[user(0), user(1, email="user0@example.edu")],
    )

    prepared = validate_snapshot(
        _snapshot(tmp_path, payload), _no_destination(), DEFAULT_NATURAL_KEYS
    )

    assert prepared.issues[0].render().startswith(
        f"users[1] (id={make_id('users', 1)}): duplicate email"
    )


def test_malformed_record_is_reported_with_field(tmp_path) -> None:
    """Structural failures should name the offending field."""
    payload = snapshot_payload(departments=[department(0, code="WAY-TOO-LONG-CODE")])

    prepared = validate_snapshot(
        _snapshot(tmp_path, payload), _no_destination(), DEFAULT_NATURAL_KEYS
    )

    assert prepared.issues[0].message == "code: must be at most 10 characters"


def test_quality_warnings_are_collected(tmp_path) -> None:
    """Missing optional profile fields should be reported as warnings."""
    payload = snapshot_payload(departments=[department(0)], users=[user(0, designation=None)])

    prepared = validate_snapshot(
        _snapshot(tmp_path, payload), _no_destination(), DEFAULT_NATURAL_KEYS
    )

    assert prepared.warnings == ["1 user(s) have no designation"]


def test_prepare_unvalidated_passes_raw_rows_through(tmp_path) -> None:
    """Without validation only non-object records are excluded."""
    payload = snapshot_payload(
        departments=[department(0, code="WAY-TOO-LONG-CODE"), "not a record"]
    )

    prepared = prepare_unvalidated(_snapshot(tmp_path, payload))

    assert prepared.records["departments"][0].row["code"] == "WAY-TOO-LONG-CODE"
    assert [issue.index for issue in prepared.issues] == [1]
