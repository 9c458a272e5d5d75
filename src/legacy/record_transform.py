"""Legacy row normalization into the portable snapshot schema.

This module converts legacy representations (role and status aliases,
JSON columns, boolean flags, timestamp formats) into the destination
store's conventions. Rows that cannot be converted are rejected with a
message naming the entity and index; the rest are returned unchanged in
order.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Callable

from core.constants import PLACEHOLDER_PASSWORD_HASH
from core.formatting import format_timestamp, parse_timestamp

ROLE_ALIASES = {
    "faculty": "faculty",
    "teacher": "faculty",
    "professor": "faculty",
    "lecturer": "faculty",
    "hod": "hod",
    "head": "hod",
    "department_head": "hod",
    "admin": "admin",
    "administrator": "admin",
    "system_admin": "admin",
}
MODULE_TYPE_ALIASES = {
    "attended": "attended",
    "attend": "attended",
    "participation": "attended",
    "organized": "organized",
    "organize": "organized",
    "conducted": "organized",
    "certification": "certification",
    "certificate": "certification",
    "certified": "certification",
}
STATUS_ALIASES = {
    "pending": "pending",
    "submitted": "pending",
    "under_review": "pending",
    "approved": "approved",
    "accepted": "approved",
    "verified": "approved",
    "rejected": "rejected",
    "declined": "rejected",
    "denied": "rejected",
}


class RowRejected(Exception):
    """Raised by one row transform when the row cannot be converted."""


@dataclass
class TransformOutcome:
    """Transformed rows plus per-row rejections and warnings for one entity."""

    entity: str
    records: list[dict[str, object]] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def rejected(self) -> int:
        return len(self.errors)


def transform_rows(entity: str, rows: list[Any]) -> TransformOutcome:
    """Normalize every legacy row of one entity type.

    Args:
        entity: Entity table name.
        rows: Raw legacy rows.

    Returns:
        Outcome holding converted rows and messages for rejected rows.
    """
    transform = _TRANSFORMS[entity]
    outcome = TransformOutcome(entity=entity)
    for index, row in enumerate(rows):
        context = _RowContext(entity, index, outcome.warnings)
        try:
            if not isinstance(row, dict):
                raise RowRejected("row is null or not an object")
            outcome.records.append(transform(row, context))
        except RowRejected as error:
            outcome.errors.append(f"{entity}[{index}]: {error}")
    return outcome


class _RowContext:
    def __init__(self, entity: str, index: int, warnings: list[str]) -> None:
        self._entity = entity
        self._index = index
        self._warnings = warnings

    def warn(self, message: str) -> None:
        self._warnings.append(f"{self._entity}[{self._index}]: {message}")

    def timestamp(self, raw_value: object, field_name: str) -> str:
        parsed = parse_timestamp(raw_value)
        if parsed is None:
            if raw_value not in (None, ""):
                self.warn(f"invalid {field_name} {raw_value!r} replaced with current time")
            return format_timestamp()
        return format_timestamp(parsed)


def _required(row: dict[str, Any], *names: str) -> None:
    missing = [name for name in names if not _clean(row.get(name))]
    if missing:
        raise RowRejected(f"missing required fields: {', '.join(missing)}")


def _clean(raw_value: object) -> str | None:
    if raw_value is None:
        return None
    text = str(raw_value).strip()
    return text or None


def _alias(raw_value: object, aliases: dict[str, str], field_name: str) -> str:
    normalized = aliases.get((_clean(raw_value) or "").lower())
    if normalized is None:
        raise RowRejected(f"invalid {field_name} {raw_value!r}")
    return normalized


def _json_text(raw_value: object) -> str:
    if raw_value is None:
        return "{}"
    if isinstance(raw_value, str):
        try:
            json.loads(raw_value)
        except json.JSONDecodeError:
            return json.dumps(raw_value)
        return raw_value
    return json.dumps(raw_value)


def _transform_department(row: dict[str, Any], context: _RowContext) -> dict[str, object]:
    _required(row, "id", "name", "code")
    created_at = context.timestamp(row.get("created_at"), "created_at")
    return {
        "id": _clean(row["id"]),
        "name": _clean(row["name"]),
        "code": _clean(row["code"]),
        "hod_user_id": _clean(row.get("hod_user_id")),
        "created_at": created_at,
        "updated_at": context.timestamp(row.get("updated_at") or created_at, "updated_at"),
    }


def _transform_user(row: dict[str, Any], context: _RowContext) -> dict[str, object]:
    _required(row, "id", "email", "name", "employee_id")
    password_hash = _clean(row.get("password_hash"))
    if password_hash is None:
        password_hash = PLACEHOLDER_PASSWORD_HASH
        context.warn("no password hash; placeholder assigned, password reset required")
    created_at = context.timestamp(row.get("created_at"), "created_at")
    return {
        "id": _clean(row["id"]),
        "employee_id": _clean(row["employee_id"]),
        "name": _clean(row["name"]),
        "email": str(_clean(row["email"])).lower(),
        "role": _alias(row.get("role"), ROLE_ALIASES, "role"),
        "department_id": _clean(row.get("department_id")),
        "designation": _clean(row.get("designation")),
        "institution": _clean(row.get("institution")),
        "password_hash": password_hash,
        "created_at": created_at,
        "updated_at": context.timestamp(row.get("updated_at") or created_at, "updated_at"),
    }


def _transform_submission(row: dict[str, Any], context: _RowContext) -> dict[str, object]:
    _required(row, "id", "user_id")
    created_at = context.timestamp(row.get("created_at"), "created_at")
    return {
        "id": _clean(row["id"]),
        "user_id": _clean(row["user_id"]),
        "module_type": _alias(row.get("module_type"), MODULE_TYPE_ALIASES, "module_type"),
        "status": _alias(row.get("status"), STATUS_ALIASES, "status"),
        "form_data": _json_text(row.get("form_data")),
        "document_url": _clean(row.get("document_url")),
        "hod_comment": _clean(row.get("hod_comment")),
        "admin_comment": _clean(row.get("admin_comment")),
        "created_at": created_at,
        "updated_at": context.timestamp(row.get("updated_at") or created_at, "updated_at"),
    }


def _transform_notification(row: dict[str, Any], context: _RowContext) -> dict[str, object]:
    _required(row, "id", "user_id", "message")
    return {
        "id": _clean(row["id"]),
        "user_id": _clean(row["user_id"]),
        "message": _clean(row["message"]),
        "link": _clean(row.get("link")),
        "read_flag": 1 if row.get("read_flag") else 0,
        "created_at": context.timestamp(row.get("created_at"), "created_at"),
    }


def _transform_audit_log(row: dict[str, Any], context: _RowContext) -> dict[str, object]:
    _required(row, "id", "action", "entity_type")
    details = row.get("details")
    return {
        "id": _clean(row["id"]),
        "user_id": _clean(row.get("user_id")),
        "action": _clean(row["action"]),
        "entity_type": _clean(row["entity_type"]),
        "entity_id": _clean(row.get("entity_id")),
        "details": json.dumps(details) if isinstance(details, (dict, list)) else _clean(details),
        "ip_address": _clean(row.get("ip_address")),
        "user_agent": _clean(row.get("user_agent")),
        "timestamp": context.timestamp(row.get("timestamp") or row.get("created_at"), "timestamp"),
    }


_TRANSFORMS: dict[str, Callable[[dict[str, Any], _RowContext], dict[str, object]]] = {
    "departments": _transform_department,
    "users": _transform_user,
    "submissions": _transform_submission,
    "notifications": _transform_notification,
    "audit_logs": _transform_audit_log,
}
