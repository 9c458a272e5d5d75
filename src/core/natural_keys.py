"""Natural key configuration for duplicate detection.

This module defines the per-entity fields used to recognize a snapshot
record that already exists in the destination store, and loads operator
overrides from a YAML file.
"""

from __future__ import annotations

from pathlib import Path
from typing import Mapping

import yaml

from core.entities import ENTITY_SPECS, entity_spec
from core.errors import MigratorConfigError, MigratorError

NaturalKeys = Mapping[str, tuple[str, ...]]

DEFAULT_NATURAL_KEYS: dict[str, tuple[str, ...]] = {
    "departments": ("code", "name"),
    "users": ("employee_id", "email"),
    "submissions": ("id",),
    "notifications": ("id",),
    "audit_logs": ("id",),
}


def load_natural_keys(keys_file: Path | None) -> dict[str, tuple[str, ...]]:
    """Load natural keys, applying overrides from an optional YAML file.

    Args:
        keys_file: Optional YAML path with a ``natural_keys`` mapping.

    Returns:
        Natural key fields per entity type.

    Raises:
        MigratorConfigError: If the file is unreadable or names unknown fields.
    """
    keys = dict(DEFAULT_NATURAL_KEYS)
    if keys_file is None:
        return keys
    try:
        payload = yaml.safe_load(keys_file.read_text(encoding="utf-8"))
    except OSError as error:
        raise MigratorConfigError(
            f"Failed to read natural keys file {keys_file}: {error}. "
            "Check MIGRATOR_KEYS_FILE or --keys-file."
        ) from error
    except yaml.YAMLError as error:
        raise MigratorConfigError(
            f"Failed to parse natural keys file {keys_file}: {error}."
        ) from error
    overrides = _extract_overrides(payload, keys_file)
    keys.update(overrides)
    return keys


def _extract_overrides(payload: object, keys_file: Path) -> dict[str, tuple[str, ...]]:
    if not isinstance(payload, dict) or not isinstance(payload.get("natural_keys"), dict):
        raise MigratorConfigError(
            f"Invalid natural keys file {keys_file}: expected a top-level 'natural_keys' mapping."
        )
    overrides: dict[str, tuple[str, ...]] = {}
    for entity, raw_fields in payload["natural_keys"].items():
        try:
            spec = entity_spec(str(entity))
        except MigratorError as error:
            raise MigratorConfigError(f"Invalid natural keys file {keys_file}: {error}") from error
        fields = _parse_field_list(raw_fields, str(entity), keys_file)
        unknown = [field for field in fields if field not in spec.columns]
        if unknown:
            raise MigratorConfigError(
                f"Invalid natural keys file {keys_file}: {entity} has no column(s) "
                f"{', '.join(unknown)}. Known columns: {', '.join(spec.columns)}."
            )
        overrides[spec.name] = fields
    return overrides


def _parse_field_list(raw_fields: object, entity: str, keys_file: Path) -> tuple[str, ...]:
    if isinstance(raw_fields, str):
        raw_fields = [raw_fields]
    if not isinstance(raw_fields, list) or not raw_fields:
        raise MigratorConfigError(
            f"Invalid natural keys file {keys_file}: {entity} must list at least one field."
        )
    return tuple(str(field) for field in raw_fields)


def record_key_values(
    keys: NaturalKeys,
    entity: str,
    row: Mapping[str, object],
) -> tuple[tuple[str, object], ...]:
    """Return the non-empty natural key ``(field, value)`` pairs of one row.

    Values are returned as text so raw payload numbers bind like the parsed
    text stored in the destination.
    """
    pairs: list[tuple[str, object]] = []
    for field in keys.get(entity, ("id",)):
        value = row.get(field)
        if value is None or value == "":
            continue
        pairs.append((field, value if isinstance(value, str) else str(value)))
    return tuple(pairs)


def describe_keys(keys: NaturalKeys) -> str:
    """Render natural keys as ``entity=field+field`` pairs in dependency order."""
    return " ".join(
        f"{spec.name}={'+'.join(keys.get(spec.name, ('id',)))}" for spec in ENTITY_SPECS
    )
