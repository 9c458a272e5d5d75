"""Legacy store readers.

This module enumerates raw rows per table from the legacy managed store,
either over its PostgREST HTTP API or from a raw JSON dump on disk.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol

import requests

from core.config import MigratorConfig
from core.errors import MigratorConfigError, MigratorExportError, MigratorIOError
from core.logging_config import get_logger
from store.report_io import read_json_file

_LOGGER = get_logger(__name__)

_REQUEST_TIMEOUT_SECONDS = 30
_ORDER_COLUMNS = {"audit_logs": "timestamp"}


class LegacyReader(Protocol):
    """Read contract consumed by the exporter."""

    def fetch_rows(self, table: str) -> list[dict[str, Any]]: ...


class PostgrestLegacyReader:
    """Paged reader for a PostgREST endpoint such as Supabase."""

    def __init__(
        self,
        base_url: str,
        service_key: str,
        page_size: int,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._page_size = page_size
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "apikey": service_key,
                "Authorization": f"Bearer {service_key}",
                "Accept": "application/json",
            }
        )

    def fetch_rows(self, table: str) -> list[dict[str, Any]]:
        """Fetch every row of one table ordered by creation time.

        Args:
            table: Legacy table name.

        Returns:
            All rows of the table.

        Raises:
            MigratorExportError: If any page request fails or returns non-list JSON.
        """
        url = f"{self._base_url}/rest/v1/{table}"
        order_column = _ORDER_COLUMNS.get(table, "created_at")
        rows: list[dict[str, Any]] = []
        offset = 0
        while True:
            page = self._fetch_page(url, table, order_column, offset)
            rows.extend(page)
            if len(page) < self._page_size:
                break
            offset += self._page_size
        _LOGGER.info("legacy_table_fetched", table=table, rows=len(rows), source="postgrest")
        return rows

    def _fetch_page(
        self,
        url: str,
        table: str,
        order_column: str,
        offset: int,
    ) -> list[dict[str, Any]]:
        params = {
            "select": "*",
            "order": f"{order_column}.asc",
            "limit": str(self._page_size),
            "offset": str(offset),
        }
        try:
            response = self._session.get(url, params=params, timeout=_REQUEST_TIMEOUT_SECONDS)
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as error:
            raise MigratorExportError(
                f"Failed to read legacy table '{table}' at offset {offset}: {error}. "
                "Check MIGRATOR_LEGACY_URL, MIGRATOR_LEGACY_KEY, and network access."
            ) from error
        except ValueError as error:
            raise MigratorExportError(
                f"Legacy table '{table}' returned a non-JSON response at offset {offset}."
            ) from error
        if not isinstance(payload, list):
            raise MigratorExportError(
                f"Legacy table '{table}' returned {type(payload).__name__}, "
                "expected a JSON array."
            )
        return payload


class JsonDumpLegacyReader:
    """Reader over a raw JSON dump holding one array per table."""

    def __init__(self, dump_path: Path) -> None:
        self._dump_path = dump_path
        self._payload: dict[str, Any] | None = None

    def fetch_rows(self, table: str) -> list[dict[str, Any]]:
        """Return one table's rows from the dump.

        Raises:
            MigratorExportError: If the dump is unreadable or lacks the table.
        """
        payload = self._load()
        rows = payload.get(table)
        if not isinstance(rows, list):
            raise MigratorExportError(
                f"Legacy dump {self._dump_path} has no '{table}' array. "
                "Regenerate the dump with every table included."
            )
        _LOGGER.info("legacy_table_fetched", table=table, rows=len(rows), source="dump")
        return list(rows)

    def _load(self) -> dict[str, Any]:
        if self._payload is None:
            try:
                payload = read_json_file(self._dump_path)
            except MigratorIOError as error:
                raise MigratorExportError(str(error)) from error
            if not isinstance(payload, dict):
                raise MigratorExportError(
                    f"Legacy dump {self._dump_path} must be a JSON object of table arrays."
                )
            self._payload = payload
        return self._payload


def build_legacy_reader(config: MigratorConfig) -> LegacyReader:
    """Choose the legacy reader from configuration.

    A configured dump path wins over the REST endpoint.

    Raises:
        MigratorConfigError: If neither a dump nor URL and key are configured.
    """
    if config.legacy_dump_path is not None:
        return JsonDumpLegacyReader(config.legacy_dump_path)
    if config.legacy_url and config.legacy_key:
        return PostgrestLegacyReader(config.legacy_url, config.legacy_key, config.page_size)
    raise MigratorConfigError(
        "No legacy store configured. Set MIGRATOR_LEGACY_DUMP, or both "
        "MIGRATOR_LEGACY_URL and MIGRATOR_LEGACY_KEY, before exporting."
    )
