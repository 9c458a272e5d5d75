"""Natural-key duplicate detection.

This module finds destination rows that already represent a snapshot
record, and flags records that repeat a key within one snapshot.
"""

from __future__ import annotations

import sqlite3
from typing import Mapping

from core.natural_keys import NaturalKeys, record_key_values


def find_existing_ids(
    connection: sqlite3.Connection,
    entity: str,
    row: Mapping[str, object],
    keys: NaturalKeys,
) -> list[str]:
    """Return ids of destination rows matching a record by id or any natural key field.

    Queries run on the caller's connection so matches include rows written
    earlier in the same run, including earlier batches.

    Args:
        connection: Open destination connection.
        entity: Entity table name.
        row: Candidate row.
        keys: Natural keys per entity.

    Returns:
        Matching destination ids, primary-key match first.
    """
    pairs = _key_pairs(keys, entity, row)
    if not pairs:
        return []
    where = " OR ".join(f"{field} = ?" for field, _ in pairs)
    cursor = connection.execute(
        f"SELECT id FROM {entity} WHERE {where}",
        tuple(value for _, value in pairs),
    )
    found = [str(item[0]) for item in cursor.fetchall()]
    record_id = str(row.get("id") or "")
    return sorted(found, key=lambda existing: existing != record_id)


class SnapshotKeyTracker:
    """Remember natural key values seen so far within one snapshot."""

    def __init__(self, keys: NaturalKeys) -> None:
        self._keys = keys
        self._seen: dict[tuple[str, str, object], int] = {}

    def first_occurrence(self, entity: str, index: int, row: Mapping[str, object]) -> str | None:
        """Register a record's keys; describe the earlier record if one repeats.

        Returns:
            ``None`` for a first occurrence, otherwise a message naming the
            repeated field and the earlier index.
        """
        pairs = _key_pairs(self._keys, entity, row)
        for field, value in pairs:
            earlier = self._seen.get((entity, field, value))
            if earlier is not None:
                return f"duplicate {field} {value!r} already used by {entity}[{earlier}]"
        for field, value in pairs:
            self._seen[(entity, field, value)] = index
        return None


def _key_pairs(
    keys: NaturalKeys,
    entity: str,
    row: Mapping[str, object],
) -> list[tuple[str, object]]:
    pairs = list(record_key_values(keys, entity, row))
    record_id = row.get("id")
    if record_id and ("id", str(record_id)) not in pairs:
        pairs.insert(0, ("id", str(record_id)))
    return pairs
