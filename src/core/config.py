"""Runtime configuration model for the migrator.

This module owns all environment variable parsing and validation.
Other modules consume a typed config object instead of raw env reads.
"""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path

from core.constants import (
    BACKUPS_DIR_NAME,
    DATABASE_FILE_NAME,
    DEFAULT_DATA_ROOT,
    DEFAULT_LEGACY_PAGE_SIZE,
    DEFAULT_LEGACY_SOURCE,
    EXPORTS_DIR_NAME,
    REPORTS_DIR_NAME,
)
from core.errors import MigratorConfigError


@dataclass(frozen=True)
class MigratorConfig:
    """Validated runtime configuration.

    Attributes:
        data_root: Local root directory for exports, backups, and reports.
        database_path: Destination SQLite store file.
        legacy_source: Source label used in export file names.
        legacy_url: Optional legacy REST base URL.
        legacy_key: Optional legacy service key.
        legacy_dump_path: Optional raw JSON dump used instead of the REST API.
        keys_file: Optional YAML file overriding natural keys.
        page_size: Rows per legacy REST page.
    """

    data_root: Path
    database_path: Path
    legacy_source: str
    legacy_url: str | None
    legacy_key: str | None
    legacy_dump_path: Path | None
    keys_file: Path | None
    page_size: int

    @classmethod
    def from_env(cls) -> "MigratorConfig":
        """Build config from process environment variables.

        Returns:
            A validated config object.

        Raises:
            MigratorConfigError: If environment values are invalid.
        """
        data_root = _resolve_path(os.getenv("MIGRATOR_DATA_ROOT", str(DEFAULT_DATA_ROOT)))
        database_value = os.getenv("MIGRATOR_DATABASE_PATH")
        database_path = (
            _resolve_path(database_value) if database_value else data_root / DATABASE_FILE_NAME
        )
        source_value = os.getenv("MIGRATOR_LEGACY_SOURCE", DEFAULT_LEGACY_SOURCE)
        dump_value = os.getenv("MIGRATOR_LEGACY_DUMP")
        keys_value = os.getenv("MIGRATOR_KEYS_FILE")
        return cls(
            data_root=data_root,
            database_path=database_path,
            legacy_source=_parse_source(source_value),
            legacy_url=os.getenv("MIGRATOR_LEGACY_URL") or None,
            legacy_key=os.getenv("MIGRATOR_LEGACY_KEY") or None,
            legacy_dump_path=_resolve_path(dump_value) if dump_value else None,
            keys_file=_resolve_path(keys_value) if keys_value else None,
            page_size=_parse_page_size(
                os.getenv("MIGRATOR_PAGE_SIZE", str(DEFAULT_LEGACY_PAGE_SIZE))
            ),
        )

    @property
    def exports_dir(self) -> Path:
        """Directory holding raw exports and snapshots."""
        return self.data_root / EXPORTS_DIR_NAME

    @property
    def backups_dir(self) -> Path:
        """Directory holding destination store backups."""
        return self.data_root / BACKUPS_DIR_NAME

    @property
    def reports_dir(self) -> Path:
        """Directory holding import, verification, and summary reports."""
        return self.data_root / REPORTS_DIR_NAME


def _resolve_path(raw_value: str) -> Path:
    return Path(raw_value).expanduser().resolve()


def _parse_source(raw_value: str) -> str:
    source = raw_value.strip()
    if not source or any(char in source for char in "/\\"):
        raise MigratorConfigError(
            f"Invalid MIGRATOR_LEGACY_SOURCE value '{raw_value}': expected a plain label. "
            "Set MIGRATOR_LEGACY_SOURCE to a name such as 'supabase'."
        )
    return source


def _parse_page_size(raw_value: str) -> int:
    """Parse the legacy page size environment value.

    Args:
        raw_value: Raw string from environment.

    Returns:
        Parsed positive page size.

    Raises:
        MigratorConfigError: If value is not a positive integer.
    """
    try:
        page_size = int(raw_value)
    except ValueError as error:
        raise MigratorConfigError(
            "Invalid MIGRATOR_PAGE_SIZE value: "
            f"expected integer, got '{raw_value}'. "
            "Set MIGRATOR_PAGE_SIZE to a numeric value."
        ) from error
    if page_size < 1:
        raise MigratorConfigError(
            f"Invalid MIGRATOR_PAGE_SIZE value: expected at least 1, got {page_size}."
        )
    return page_size
