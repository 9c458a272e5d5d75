"""JSON and text I/O helpers for snapshots and reports."""

from __future__ import annotations

import json
import os
from pathlib import Path

from core.errors import MigratorIOError


def unique_artifact_path(directory: Path, stem: str, suffix: str) -> Path:
    """Return ``directory/stem+suffix``, adding ``-1``, ``-2``... if that name is taken."""
    candidate = directory / f"{stem}{suffix}"
    counter = 1
    while candidate.exists():
        candidate = directory / f"{stem}-{counter}{suffix}"
        counter += 1
    return candidate


def read_json_file(payload_path: Path) -> object:
    """Read one JSON payload from disk with traceable errors."""
    try:
        return json.loads(payload_path.read_text(encoding="utf-8"))
    except FileNotFoundError as error:
        raise MigratorIOError(
            f"Missing file at {payload_path}. Check the path and rerun."
        ) from error
    except json.JSONDecodeError as error:
        raise MigratorIOError(f"Failed to parse JSON at {payload_path}: {error.msg}.") from error
    except (OSError, UnicodeDecodeError) as error:
        raise MigratorIOError(f"Failed to read file {payload_path}: {error}.") from error


def write_json_file(payload_path: Path, payload: object, read_only: bool = False) -> Path:
    """Atomically write one JSON payload to disk."""
    return write_text_file(payload_path, json.dumps(payload, indent=2) + "\n", read_only)


def write_text_file(payload_path: Path, text: str, read_only: bool = False) -> Path:
    """Atomically write text, never leaving a partial file at the final path.

    Args:
        payload_path: Final destination path.
        text: File contents.
        read_only: Drop write permission once the file is in place.

    Returns:
        The written path.

    Raises:
        MigratorIOError: If the directory or file cannot be written.
    """
    temp_path = payload_path.with_name(f".{payload_path.name}.tmp")
    try:
        payload_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path.write_text(text, encoding="utf-8")
        os.replace(temp_path, payload_path)
        if read_only:
            payload_path.chmod(0o444)
    except OSError as error:
        temp_path.unlink(missing_ok=True)
        raise MigratorIOError(f"Failed to write file {payload_path}: {error}.") from error
    return payload_path
