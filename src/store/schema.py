"""Destination store schema.

This module holds the table and index DDL of the embedded destination
store, grouped into ordered migrations recorded in ``schema_migrations``.
"""

from __future__ import annotations

import sqlite3

from core.formatting import format_timestamp
from core.logging_config import get_logger

_LOGGER = get_logger(__name__)

TABLE_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS departments (
        id TEXT NOT NULL PRIMARY KEY,
        name TEXT UNIQUE NOT NULL,
        code TEXT UNIQUE NOT NULL CHECK (length(code) BETWEEN 1 AND 10),
        hod_user_id TEXT REFERENCES users(id) ON DELETE SET NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT NOT NULL PRIMARY KEY,
        employee_id TEXT UNIQUE NOT NULL,
        name TEXT NOT NULL,
        email TEXT UNIQUE NOT NULL CHECK (email LIKE '%@%' AND length(email) > 5),
        role TEXT NOT NULL CHECK (role IN ('faculty', 'hod', 'admin')),
        department_id TEXT REFERENCES departments(id) ON DELETE SET NULL,
        designation TEXT,
        institution TEXT,
        password_hash TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS submissions (
        id TEXT NOT NULL PRIMARY KEY,
        user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        module_type TEXT NOT NULL
            CHECK (module_type IN ('attended', 'organized', 'certification')),
        status TEXT NOT NULL DEFAULT 'pending'
            CHECK (status IN ('pending', 'approved', 'rejected')),
        form_data TEXT NOT NULL,
        document_url TEXT,
        hod_comment TEXT,
        admin_comment TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS notifications (
        id TEXT NOT NULL PRIMARY KEY,
        user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        message TEXT NOT NULL,
        link TEXT,
        read_flag INTEGER NOT NULL DEFAULT 0 CHECK (read_flag IN (0, 1)),
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS audit_logs (
        id TEXT NOT NULL PRIMARY KEY,
        user_id TEXT REFERENCES users(id) ON DELETE SET NULL,
        action TEXT NOT NULL,
        entity_type TEXT NOT NULL,
        entity_id TEXT,
        details TEXT,
        ip_address TEXT,
        user_agent TEXT,
        timestamp TEXT NOT NULL
    )
    """,
)

INDEX_NAMES: dict[str, tuple[tuple[str, str], ...]] = {
    "users": (
        ("idx_users_employee_id", "employee_id"),
        ("idx_users_email", "email"),
        ("idx_users_department_id", "department_id"),
        ("idx_users_role", "role"),
        ("idx_users_created_at", "created_at"),
    ),
    "departments": (
        ("idx_departments_name", "name"),
        ("idx_departments_code", "code"),
        ("idx_departments_hod_user_id", "hod_user_id"),
    ),
    "submissions": (
        ("idx_submissions_user_id", "user_id"),
        ("idx_submissions_status", "status"),
        ("idx_submissions_module_type", "module_type"),
        ("idx_submissions_created_at", "created_at"),
        ("idx_submissions_user_status", "user_id, status"),
        ("idx_submissions_status_created", "status, created_at"),
    ),
    "notifications": (
        ("idx_notifications_user_id", "user_id"),
        ("idx_notifications_read_flag", "read_flag"),
        ("idx_notifications_created_at", "created_at"),
        ("idx_notifications_user_read", "user_id, read_flag"),
    ),
    "audit_logs": (
        ("idx_audit_logs_user_id", "user_id"),
        ("idx_audit_logs_action", "action"),
        ("idx_audit_logs_entity_type", "entity_type"),
        ("idx_audit_logs_entity_id", "entity_id"),
        ("idx_audit_logs_timestamp", "timestamp"),
        ("idx_audit_logs_user_timestamp", "user_id, timestamp"),
        ("idx_audit_logs_entity_timestamp", "entity_type, entity_id, timestamp"),
    ),
}

SCHEMA_MIGRATIONS_STATEMENT = """
    CREATE TABLE IF NOT EXISTS schema_migrations (
        version TEXT PRIMARY KEY,
        applied_at TEXT NOT NULL
    )
"""

SCHEMA_VERSIONS: tuple[str, ...] = ("001_initial_schema", "002_add_indexes")


def index_statements() -> tuple[str, ...]:
    """Build CREATE INDEX statements for every optional index."""
    return tuple(
        f"CREATE INDEX IF NOT EXISTS {index_name} ON {table} ({columns})"
        for table, indexes in INDEX_NAMES.items()
        for index_name, columns in indexes
    )


def expected_index_names() -> tuple[str, ...]:
    return tuple(name for indexes in INDEX_NAMES.values() for name, _ in indexes)


def apply_schema(connection: sqlite3.Connection) -> tuple[str, ...]:
    """Create missing tables and indexes on one open connection.

    Statements run in the connection's current transaction, if any.

    Args:
        connection: Open destination store connection.

    Returns:
        Schema versions newly recorded by this call.
    """
    connection.execute(SCHEMA_MIGRATIONS_STATEMENT)
    for statement in TABLE_STATEMENTS:
        connection.execute(statement)
    for statement in index_statements():
        connection.execute(statement)
    applied = {
        row[0] for row in connection.execute("SELECT version FROM schema_migrations").fetchall()
    }
    recorded: list[str] = []
    for version in SCHEMA_VERSIONS:
        if version in applied:
            continue
        connection.execute(
            "INSERT INTO schema_migrations (version, applied_at) VALUES (?, ?)",
            (version, format_timestamp()),
        )
        recorded.append(version)
    if recorded:
        _LOGGER.info("schema_migrations_applied", versions=recorded)
    return tuple(recorded)
