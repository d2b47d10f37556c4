"""Embedded SQLite database access.

Every operation opens a short-lived connection.  Concurrency control is left
entirely to SQLite: WAL journaling plus ``busy_timeout`` make concurrent
writers queue for up to the configured timeout instead of failing.

Usage::

    db = get_database()
    with db.connection() as conn:
        conn.execute("SELECT 1")

    rows = db.fetch("SELECT * FROM devices WHERE is_active = ?", 1)
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from src.config import Settings, get_settings
from src.healthsync.errors import StorageError

logger = logging.getLogger("healthsync.db")

PRAGMAS: tuple[str, ...] = (
    "PRAGMA journal_mode = WAL",
    "PRAGMA foreign_keys = ON",
    "PRAGMA synchronous = NORMAL",
    "PRAGMA cache_size = -64000",
    "PRAGMA temp_store = MEMORY",
)


class Database:
    """Connection factory and thin query helpers for one SQLite file."""

    def __init__(self, path: str | Path, busy_timeout_ms: int = 30_000) -> None:
        self.path = Path(path)
        self.busy_timeout_ms = busy_timeout_ms

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Yield a configured connection; commit on success, roll back on error.

        ``sqlite3.Error`` is re-raised as ``StorageError`` so callers never see
        driver exceptions.
        """
        try:
            conn = sqlite3.connect(
                str(self.path), timeout=self.busy_timeout_ms / 1000
            )
        except sqlite3.Error as exc:
            raise StorageError(f"Could not open database {self.path}: {exc}") from exc

        conn.row_factory = sqlite3.Row
        try:
            for pragma in PRAGMAS:
                conn.execute(pragma)
            conn.execute(f"PRAGMA busy_timeout = {int(self.busy_timeout_ms)}")
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            logger.error("Query failed on %s: %s", self.path, exc)
            raise StorageError(str(exc)) from exc
        finally:
            conn.close()

    def execute(self, query: str, *args: Any) -> int:
        """Execute a single statement and return the number of changed rows."""
        with self.connection() as conn:
            return conn.execute(query, args).rowcount

    def insert(self, query: str, *args: Any) -> int:
        """Execute an INSERT and return the new rowid."""
        with self.connection() as conn:
            return int(conn.execute(query, args).lastrowid)

    def fetch(self, query: str, *args: Any) -> list[sqlite3.Row]:
        with self.connection() as conn:
            return conn.execute(query, args).fetchall()

    def fetchrow(self, query: str, *args: Any) -> sqlite3.Row | None:
        with self.connection() as conn:
            return conn.execute(query, args).fetchone()

    def fetchval(self, query: str, *args: Any) -> Any:
        row = self.fetchrow(query, *args)
        return row[0] if row is not None else None

    def ping(self) -> None:
        """Lightweight connectivity check.  Raises StorageError on failure."""
        self.fetchval("SELECT 1")


# Module-level database handle, initialized once at app startup
_database: Database | None = None


def init_database(settings: Settings | None = None) -> Database:
    """Create the database handle and apply the schema.  Call once at startup."""
    from src.healthsync.schema import apply_schema

    global _database
    s = settings or get_settings()
    path = Path(s.db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    db = Database(path, busy_timeout_ms=s.db_busy_timeout_ms)
    apply_schema(db)
    _database = db
    logger.info("Database initialized at %s (busy_timeout=%dms)", path, s.db_busy_timeout_ms)
    return db


def close_database() -> None:
    """Drop the handle.  Connections are per-operation, so nothing stays open."""
    global _database
    if _database is not None:
        logger.info("Database handle released: %s", _database.path)
        _database = None


def get_database() -> Database:
    if _database is None:
        raise RuntimeError("Database not initialized — call init_database() first")
    return _database
