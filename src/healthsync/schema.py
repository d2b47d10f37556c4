"""SQLite schema for the record store, versioned with ``PRAGMA user_version``."""

from __future__ import annotations

import logging
import sqlite3
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.services.database import Database

logger = logging.getLogger("healthsync.schema")

SCHEMA_VERSION = 1

_TABLES: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS devices (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        type TEXT NOT NULL CHECK (type IN ('wearos', 'ios')),
        last_seen_at INTEGER NOT NULL,
        last_sync_cursor INTEGER NOT NULL DEFAULT 0,
        is_active INTEGER NOT NULL DEFAULT 1,
        metadata TEXT,
        created_at INTEGER NOT NULL,
        updated_at INTEGER NOT NULL
    )
    """,
    # No UNIQUE(device_id, data_type, timestamp): resubmissions duplicate rows.
    """
    CREATE TABLE IF NOT EXISTS health_data (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        device_id TEXT NOT NULL,
        data_type TEXT NOT NULL,
        timestamp INTEGER NOT NULL,
        value REAL,
        unit TEXT,
        metadata TEXT,
        source_app TEXT,
        created_at INTEGER NOT NULL,
        FOREIGN KEY (device_id) REFERENCES devices (id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sync_sessions (
        id TEXT PRIMARY KEY,
        device_id TEXT NOT NULL,
        kind TEXT NOT NULL CHECK (kind IN ('wifi', 'bluetooth')),
        status TEXT NOT NULL CHECK (status IN ('started', 'completed', 'failed')),
        records_synced INTEGER NOT NULL DEFAULT 0,
        start_time INTEGER NOT NULL,
        end_time INTEGER,
        error_message TEXT,
        FOREIGN KEY (device_id) REFERENCES devices (id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS device_settings (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        device_id TEXT NOT NULL,
        setting_key TEXT NOT NULL,
        setting_value TEXT NOT NULL,
        updated_at INTEGER NOT NULL,
        FOREIGN KEY (device_id) REFERENCES devices (id) ON DELETE CASCADE,
        UNIQUE (device_id, setting_key)
    )
    """,
)

_INDEXES: tuple[str, ...] = (
    "CREATE INDEX IF NOT EXISTS idx_health_data_device_timestamp ON health_data (device_id, timestamp)",
    "CREATE INDEX IF NOT EXISTS idx_health_data_type_timestamp ON health_data (data_type, timestamp)",
    "CREATE INDEX IF NOT EXISTS idx_devices_last_sync ON devices (last_sync_cursor)",
    "CREATE INDEX IF NOT EXISTS idx_sync_sessions_device_time ON sync_sessions (device_id, start_time)",
)


def _get_user_version(conn: sqlite3.Connection) -> int:
    row = conn.execute("PRAGMA user_version").fetchone()
    return int(row[0]) if row else 0


def _migrate_to_v1(conn: sqlite3.Connection) -> None:
    for ddl in _TABLES:
        conn.execute(ddl)
    for ddl in _INDEXES:
        conn.execute(ddl)


def apply_schema(db: Database) -> int:
    """Bring the database up to ``SCHEMA_VERSION``.  Idempotent.

    Returns:
        The schema version after migration.
    """
    with db.connection() as conn:
        version = _get_user_version(conn)
        if version < 1:
            _migrate_to_v1(conn)
            version = 1
            logger.info("Applied schema v1 to %s", db.path)
        if version != SCHEMA_VERSION:
            raise RuntimeError(
                f"Database schema v{version} is newer than supported v{SCHEMA_VERSION}"
            )
        conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
    return version
