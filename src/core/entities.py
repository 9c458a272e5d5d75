"""Typed entity variants moved by the migrator.

This module defines one frozen dataclass per migrated table together with
strict payload parsing, row rendering, and the dependency-ordered registry
of table specs used by the importer and verifier.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Mapping, NoReturn, Union

from core.constants import (
    MAX_DEPARTMENT_CODE_LENGTH,
    SUBMISSION_MODULE_TYPES,
    SUBMISSION_STATUSES,
    USER_ROLES,
)
from core.errors import MigratorError, RecordValidationError
from core.formatting import format_timestamp, parse_timestamp


@dataclass(frozen=True)
class Department:
    """Academic department row."""

    id: str
    name: str
    code: str
    hod_user_id: str | None
    created_at: str
    updated_at: str

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], index: int) -> "Department":
        """Parse one snapshot department record.

        Raises:
            RecordValidationError: If a field is missing or malformed.
        """
        fields = _FieldReader("departments", index, payload)
        code = fields.text("code")
        if len(code) > MAX_DEPARTMENT_CODE_LENGTH:
            fields.fail("code", f"must be at most {MAX_DEPARTMENT_CODE_LENGTH} characters")
        created_at = fields.timestamp("created_at")
        return cls(
            id=fields.uuid("id"),
            name=fields.text("name"),
            code=code,
            hod_user_id=fields.optional_uuid("hod_user_id"),
            created_at=created_at,
            updated_at=fields.timestamp("updated_at", fallback=created_at),
        )

    def to_row(self) -> dict[str, object]:
        return _row_from_fields(self)


@dataclass(frozen=True)
class User:
    """Faculty, head-of-department, or admin account row."""

    id: str
    employee_id: str
    name: str
    email: str
    role: str
    department_id: str | None
    designation: str | None
    institution: str | None
    password_hash: str
    created_at: str
    updated_at: str

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], index: int) -> "User":
        """Parse one snapshot user record.

        Raises:
            RecordValidationError: If a field is missing or malformed.
        """
        fields = _FieldReader("users", index, payload)
        email = fields.text("email")
        if "@" not in email or len(email) <= 5:
            fields.fail("email", f"invalid email address {email!r}")
        created_at = fields.timestamp("created_at")
        return cls(
            id=fields.uuid("id"),
            employee_id=fields.text("employee_id"),
            name=fields.text("name"),
            email=email,
            role=fields.choice("role", USER_ROLES),
            department_id=fields.optional_uuid("department_id"),
            designation=fields.optional_text("designation"),
            institution=fields.optional_text("institution"),
            password_hash=fields.text("password_hash"),
            created_at=created_at,
            updated_at=fields.timestamp("updated_at", fallback=created_at),
        )

    def to_row(self) -> dict[str, object]:
        return _row_from_fields(self)


@dataclass(frozen=True)
class Submission:
    """Faculty activity submission row."""

    id: str
    user_id: str
    module_type: str
    status: str
    form_data: str
    document_url: str | None
    hod_comment: str | None
    admin_comment: str | None
    created_at: str
    updated_at: str

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], index: int) -> "Submission":
        """Parse one snapshot submission record.

        Raises:
            RecordValidationError: If a field is missing or malformed.
        """
        fields = _FieldReader("submissions", index, payload)
        created_at = fields.timestamp("created_at")
        return cls(
            id=fields.uuid("id"),
            user_id=fields.uuid("user_id"),
            module_type=fields.choice("module_type", SUBMISSION_MODULE_TYPES),
            status=fields.choice("status", SUBMISSION_STATUSES, default="pending"),
            form_data=fields.json_text("form_data"),
            document_url=fields.optional_text("document_url"),
            hod_comment=fields.optional_text("hod_comment"),
            admin_comment=fields.optional_text("admin_comment"),
            created_at=created_at,
            updated_at=fields.timestamp("updated_at", fallback=created_at),
        )

    def to_row(self) -> dict[str, object]:
        return _row_from_fields(self)


@dataclass(frozen=True)
class Notification:
    """User notification row."""

    id: str
    user_id: str
    message: str
    link: str | None
    read_flag: int
    created_at: str

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], index: int) -> "Notification":
        """Parse one snapshot notification record.

        Raises:
            RecordValidationError: If a field is missing or malformed.
        """
        fields = _FieldReader("notifications", index, payload)
        return cls(
            id=fields.uuid("id"),
            user_id=fields.uuid("user_id"),
            message=fields.text("message"),
            link=fields.optional_text("link"),
            read_flag=fields.flag("read_flag"),
            created_at=fields.timestamp("created_at"),
        )

    def to_row(self) -> dict[str, object]:
        return _row_from_fields(self)


@dataclass(frozen=True)
class AuditLog:
    """Audit trail row."""

    id: str
    user_id: str | None
    action: str
    entity_type: str
    entity_id: str | None
    details: str | None
    ip_address: str | None
    user_agent: str | None
    timestamp: str

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], index: int) -> "AuditLog":
        """Parse one snapshot audit log record.

        Raises:
            RecordValidationError: If a field is missing or malformed.
        """
        fields = _FieldReader("audit_logs", index, payload)
        return cls(
            id=fields.uuid("id"),
            user_id=fields.optional_uuid("user_id"),
            action=fields.text("action"),
            entity_type=fields.text("entity_type"),
            entity_id=fields.optional_text("entity_id"),
            details=fields.optional_serialized("details"),
            ip_address=fields.optional_text("ip_address"),
            user_agent=fields.optional_text("user_agent"),
            timestamp=fields.timestamp("timestamp", fallback=fields.raw("created_at")),
        )

    def to_row(self) -> dict[str, object]:
        return _row_from_fields(self)


EntityRecord = Union[Department, User, Submission, Notification, AuditLog]


@dataclass(frozen=True)
class ForeignKey:
    """One reference column from an entity table to a parent table.

    Attributes:
        column: Referencing column.
        target: Referenced table (always keyed by ``id``).
        required: Whether the column is NOT NULL.
        deferred: Whether the reference is linked after the parent exists.
    """

    column: str
    target: str
    required: bool
    deferred: bool = False


@dataclass(frozen=True)
class EntitySpec:
    """Destination table contract for one entity type."""

    name: str
    columns: tuple[str, ...]
    foreign_keys: tuple[ForeignKey, ...]
    parse: Callable[[Mapping[str, Any], int], EntityRecord]
    required_in_snapshot: bool = True


ENTITY_SPECS: tuple[EntitySpec, ...] = (
    EntitySpec(
        name="departments",
        columns=("id", "name", "code", "hod_user_id", "created_at", "updated_at"),
        foreign_keys=(ForeignKey("hod_user_id", "users", required=False, deferred=True),),
        parse=Department.from_payload,
    ),
    EntitySpec(
        name="users",
        columns=(
            "id",
            "employee_id",
            "name",
            "email",
            "role",
            "department_id",
            "designation",
            "institution",
            "password_hash",
            "created_at",
            "updated_at",
        ),
        foreign_keys=(ForeignKey("department_id", "departments", required=False),),
        parse=User.from_payload,
    ),
    EntitySpec(
        name="submissions",
        columns=(
            "id",
            "user_id",
            "module_type",
            "status",
            "form_data",
            "document_url",
            "hod_comment",
            "admin_comment",
            "created_at",
            "updated_at",
        ),
        foreign_keys=(ForeignKey("user_id", "users", required=True),),
        parse=Submission.from_payload,
    ),
    EntitySpec(
        name="notifications",
        columns=("id", "user_id", "message", "link", "read_flag", "created_at"),
        foreign_keys=(ForeignKey("user_id", "users", required=True),),
        parse=Notification.from_payload,
    ),
    EntitySpec(
        name="audit_logs",
        columns=(
            "id",
            "user_id",
            "action",
            "entity_type",
            "entity_id",
            "details",
            "ip_address",
            "user_agent",
            "timestamp",
        ),
        foreign_keys=(ForeignKey("user_id", "users", required=False),),
        parse=AuditLog.from_payload,
        required_in_snapshot=False,
    ),
)


def entity_spec(name: str) -> EntitySpec:
    """Look up one entity spec by table name.

    Raises:
        MigratorError: If the table is not migrated.
    """
    for spec in ENTITY_SPECS:
        if spec.name == name:
            return spec
    known = ", ".join(spec.name for spec in ENTITY_SPECS)
    raise MigratorError(f"Unknown entity type {name!r}. Expected one of: {known}.")


def _row_from_fields(record: EntityRecord) -> dict[str, object]:
    columns = entity_spec(_TABLE_BY_TYPE[type(record)]).columns
    return {column: getattr(record, column) for column in columns}


_TABLE_BY_TYPE: dict[type, str] = {
    Department: "departments",
    User: "users",
    Submission: "submissions",
    Notification: "notifications",
    AuditLog: "audit_logs",
}


class _FieldReader:
    """Reads typed fields from one raw record, raising located errors."""

    def __init__(self, entity: str, index: int, payload: Mapping[str, Any]) -> None:
        if not isinstance(payload, Mapping):
            raise RecordValidationError(entity, index, None, "record must be a JSON object")
        self._entity = entity
        self._index = index
        self._payload = payload

    def fail(self, field: str, message: str) -> NoReturn:
        raise RecordValidationError(self._entity, self._index, field, message)

    def raw(self, field: str) -> Any:
        return self._payload.get(field)

    def text(self, field: str) -> str:
        value = self.optional_text(field)
        if value is None:
            self.fail(field, "required field is missing or empty")
        return str(value)

    def optional_text(self, field: str) -> str | None:
        value = self._payload.get(field)
        if value is None:
            return None
        if not isinstance(value, (str, int, float)) or isinstance(value, bool):
            self.fail(field, f"expected text, got {type(value).__name__}")
        text = str(value).strip()
        return text or None

    def uuid(self, field: str) -> str:
        value = self.optional_uuid(field)
        if value is None:
            self.fail(field, "required reference is missing")
        return str(value)

    def optional_uuid(self, field: str) -> str | None:
        value = self.optional_text(field)
        if value is None:
            return None
        try:
            uuid.UUID(value)
        except ValueError:
            self.fail(field, f"expected a UUID, got {value!r}")
        return value

    def choice(self, field: str, allowed: tuple[str, ...], default: str | None = None) -> str:
        value = self.optional_text(field) or default
        if value not in allowed:
            self.fail(field, f"expected one of {', '.join(allowed)}, got {value!r}")
        return str(value)

    def flag(self, field: str) -> int:
        value = self._payload.get(field, 0)
        if value in (0, 1) and not isinstance(value, float):
            return int(value)
        self.fail(field, f"expected 0 or 1, got {value!r}")

    def json_text(self, field: str) -> str:
        value = self.optional_json_text(field)
        if value is None:
            self.fail(field, "required JSON field is missing")
        return str(value)

    def optional_json_text(self, field: str) -> str | None:
        value = self._payload.get(field)
        if value is None:
            return None
        if isinstance(value, (dict, list)):
            return json.dumps(value)
        if not isinstance(value, str):
            self.fail(field, f"expected JSON text, got {type(value).__name__}")
        try:
            json.loads(value)
        except json.JSONDecodeError as error:
            self.fail(field, f"invalid JSON: {error.msg}")
        return value

    def timestamp(self, field: str, fallback: object = None) -> str:
        value = self._payload.get(field)
        if value is None or value == "":
            value = fallback
        if value is None or value == "":
            return format_timestamp()
        parsed = parse_timestamp(value)
        if parsed is None:
            self.fail(field, f"expected an ISO-8601 timestamp, got {value!r}")
        return str(value)

    def optional_serialized(self, field: str) -> str | None:
        value = self._payload.get(field)
        if isinstance(value, (dict, list)):
            return json.dumps(value)
        return self.optional_text(field)
