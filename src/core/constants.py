"""Core constants used across migrator modules.

This module centralizes file-name patterns, defaults, and store signatures.
Keeping values here avoids magic literals in business logic.
"""

from __future__ import annotations

from pathlib import Path

DEFAULT_DATA_ROOT = Path("data")
DATABASE_FILE_NAME = "database.db"
EXPORTS_DIR_NAME = "exports"
BACKUPS_DIR_NAME = "backups"
REPORTS_DIR_NAME = "reports"
DEFAULT_LEGACY_SOURCE = "supabase"
DEFAULT_LEGACY_PAGE_SIZE = 1000

SNAPSHOT_FORMAT_MARKER = "migrator-snapshot"
SNAPSHOT_FORMAT_VERSION = 1
SNAPSHOT_FILE_INFIX = "transformed-export"
RAW_EXPORT_FILE_INFIX = "raw-export"
EXPORT_REPORT_PREFIX = "export-report"
EXPORT_SUMMARY_PREFIX = "export-summary"
VALIDATION_REPORT_PREFIX = "validation-report"
IMPORT_REPORT_PREFIX = "import-report"
MIGRATION_SUMMARY_PREFIX = "migration-summary"
VERIFICATION_REPORT_PREFIX = "migration-verification"

DEFAULT_BACKUP_PREFIX = "database"
PRE_ROLLBACK_BACKUP_PREFIX = "pre-rollback"
BACKUP_FILE_SUFFIX = ".db"

# First 16 bytes of every SQLite 3 database file.
STORE_FILE_SIGNATURE = b"SQLite format 3\x00"

DEFAULT_IMPORT_BATCH_SIZE = 100
DEFAULT_VERIFICATION_SAMPLE_SIZE = 100
PLACEHOLDER_PASSWORD_HASH = "$2b$12$defaulthashformigratedusers.placeholder.hash"
MAX_DEPARTMENT_CODE_LENGTH = 10

ENTITY_ORDER = ("departments", "users", "submissions", "notifications", "audit_logs")
REQUIRED_SNAPSHOT_ENTITIES = ("departments", "users", "submissions", "notifications")

USER_ROLES = ("faculty", "hod", "admin")
SUBMISSION_MODULE_TYPES = ("attended", "organized", "certification")
SUBMISSION_STATUSES = ("pending", "approved", "rejected")
