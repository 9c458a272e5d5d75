"""Unit tests for legacy row normalization."""

from __future__ import annotations

import json

from core.constants import PLACEHOLDER_PASSWORD_HASH
from legacy.record_transform import transform_rows
from tests.snapshot_factory import department, notification, submission, user


def test_user_role_alias_and_email_case_are_normalized() -> None:
    """Legacy role names and mixed-case emails should be normalized."""
    outcome = transform_rows("users", [user(1, role="Teacher", email="User1@Example.EDU")])

    record = outcome.records[0]
    assert record["role"] == "faculty" and record["email"] == "user1@example.edu"
    assert outcome.errors == []


def test_unknown_role_rejects_row() -> None:
    """Rows with unknown roles should be rejected with their index."""
    outcome = transform_rows("users", [user(0), user(1, role="janitor")])

    assert len(outcome.records) == 1 and outcome.rejected == 1
    assert outcome.errors[0].startswith("users[1]: invalid role")


def test_missing_password_hash_gets_placeholder_with_warning() -> None:
    """Users without a hash should get the placeholder and a warning."""
    outcome = transform_rows("users", [user(1, password_hash=None)])

    assert outcome.records[0]["password_hash"] == PLACEHOLDER_PASSWORD_HASH
    assert "placeholder" in outcome.warnings[0]


def test_structured_form_data_becomes_json_text() -> None:
    """Mapping form data should be serialized."""
    outcome = transform_rows("submissions", [submission(1, form_data={"hours": 3})])

    assert json.loads(str(outcome.records[0]["form_data"])) == {"hours": 3}


def test_submission_aliases_are_normalized() -> None:
    """Module type and status aliases should map onto destination values."""
    outcome = transform_rows(
        "submissions", [submission(1, module_type="Conducted", status="accepted")]
    )

    assert outcome.records[0]["module_type"] == "organized"
    assert outcome.records[0]["status"] == "approved"


def test_boolean_read_flag_becomes_integer() -> None:
    """Boolean read flags should be stored as 0 or 1."""
    outcome = transform_rows(
        "notifications", [notification(0, read_flag=True), notification(1, read_flag=False)]
    )

    assert [record["read_flag"] for record in outcome.records] == [1, 0]


def test_invalid_timestamp_is_replaced_with_warning() -> None:
    """Unparseable timestamps should be replaced and reported."""
    outcome = transform_rows("departments", [department(1, created_at="not a date")])

    assert outcome.records[0]["created_at"] != "not a date"
    assert "invalid created_at" in outcome.warnings[0]


def test_null_row_is_rejected() -> None:
    """Null rows should be rejected without aborting the entity."""
    outcome = transform_rows("departments", [None, department(1)])

    assert len(outcome.records) == 1
    assert outcome.errors == ["departments[0]: row is null or not an object"]


def test_missing_required_fields_are_named() -> None:
    """Rejections should name every missing required field."""
    outcome = transform_rows("departments", [department(1, name="", code=None)])

    assert outcome.errors == ["departments[0]: missing required fields: name, code"]
