"""Repository: SQL operations for devices, health records, sessions and settings.

This module contains only database interaction.  It maps the canonical
dataclasses to SQL parameters and rows back to dataclasses.  Business rules
(validation, upsert-on-touch policy, session transitions) live in the
registry, ingestion, cursor and session modules.

Notes:
- All writes are single statements; there is no multi-statement transaction
  anywhere in this module.
- Cursor writes use ``MAX(last_sync_cursor, ?)`` so the cursor can never move
  backwards, whatever the caller passes.
- Session completion is a conditional UPDATE on ``status = 'started'``; the
  row count tells the caller whether the transition happened.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import TYPE_CHECKING, Any

from src.healthsync.base import (
    DataTypeStats,
    Device,
    DeviceSetting,
    DeviceSummary,
    DeviceType,
    HealthRecord,
    Metadata,
    RecordFilter,
    SanitizedRecord,
    SessionKind,
    SessionStats,
    SessionStatus,
    StoreStats,
    SyncSession,
)

if TYPE_CHECKING:
    from src.services.database import Database

logger = logging.getLogger("healthsync.record_store")


def _dump(value: Any) -> str | None:
    if value is None:
        return None
    return json.dumps(value, separators=(",", ":"))


def _load(raw: str | None) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        logger.warning("Discarding unparseable JSON column value: %.80r", raw)
        return None


def _row_to_device(row: sqlite3.Row) -> Device:
    return Device(
        id=row["id"],
        name=row["name"],
        type=DeviceType(row["type"]),
        last_seen_at=row["last_seen_at"],
        last_sync_cursor=row["last_sync_cursor"],
        active=bool(row["is_active"]),
        metadata=_load(row["metadata"]) or {},
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_record(row: sqlite3.Row) -> HealthRecord:
    return HealthRecord(
        id=row["id"],
        device_id=row["device_id"],
        data_type=row["data_type"],
        timestamp=row["timestamp"],
        value=row["value"],
        unit=row["unit"],
        metadata=_load(row["metadata"]),
        source_app=row["source_app"],
        created_at=row["created_at"],
    )


def _row_to_session(row: sqlite3.Row) -> SyncSession:
    return SyncSession(
        id=row["id"],
        device_id=row["device_id"],
        kind=SessionKind(row["kind"]),
        status=SessionStatus(row["status"]),
        records_synced=row["records_synced"],
        start_time=row["start_time"],
        end_time=row["end_time"],
        error_message=row["error_message"],
    )


def _where(flt: RecordFilter) -> tuple[str, list[Any]]:
    """Build the WHERE clause shared by a query and its count."""
    conditions: list[str] = []
    params: list[Any] = []

    if flt.device_id is not None:
        conditions.append("device_id = ?")
        params.append(flt.device_id)
    if flt.exclude_device_id is not None:
        conditions.append("device_id != ?")
        params.append(flt.exclude_device_id)
    if flt.data_type is not None:
        conditions.append("data_type = ?")
        params.append(flt.data_type)
    if flt.since is not None:
        conditions.append("timestamp > ?" if flt.since_exclusive else "timestamp >= ?")
        params.append(flt.since)
    if flt.until is not None:
        conditions.append("timestamp <= ?")
        params.append(flt.until)
    if flt.before is not None:
        conditions.append("timestamp < ?")
        params.append(flt.before)

    clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""
    return clause, params


class RecordStore:
    """DB access only.  No business logic here."""

    def __init__(self, db: Database) -> None:
        self.db = db

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------

    def get_device(self, device_id: str) -> Device | None:
        row = self.db.fetchrow("SELECT * FROM devices WHERE id = ?", device_id)
        return _row_to_device(row) if row else None

    def create_device_if_absent(
        self,
        device_id: str,
        name: str,
        device_type: DeviceType,
        metadata: Metadata | None,
        now: int,
    ) -> bool:
        """Insert a device row unless one exists.  Returns True if inserted."""
        changed = self.db.execute(
            """
            INSERT INTO devices (id, name, type, last_seen_at, last_sync_cursor,
                                 is_active, metadata, created_at, updated_at)
            VALUES (?, ?, ?, ?, 0, 1, ?, ?, ?)
            ON CONFLICT (id) DO NOTHING
            """,
            device_id, name, device_type.value, now, _dump(metadata or {}), now, now,
        )
        return changed == 1

    def touch_device(self, device_id: str, now: int) -> bool:
        changed = self.db.execute(
            "UPDATE devices SET last_seen_at = ? WHERE id = ?", now, device_id
        )
        return changed == 1

    def upsert_registration(
        self,
        device_id: str,
        name: str,
        device_type: DeviceType,
        metadata: Metadata,
        now: int,
    ) -> None:
        """Insert or overwrite name/type/metadata and reactivate.  Cursor kept."""
        self.db.execute(
            """
            INSERT INTO devices (id, name, type, last_seen_at, last_sync_cursor,
                                 is_active, metadata, created_at, updated_at)
            VALUES (?, ?, ?, ?, 0, 1, ?, ?, ?)
            ON CONFLICT (id) DO UPDATE SET
                name = excluded.name,
                type = excluded.type,
                metadata = excluded.metadata,
                last_seen_at = excluded.last_seen_at,
                is_active = 1,
                updated_at = excluded.updated_at
            """,
            device_id, name, device_type.value, now, _dump(metadata), now, now,
        )

    def advance_cursor(self, device_id: str, timestamp: int, now: int) -> int | None:
        """Raise the cursor to ``timestamp`` if higher.  Returns the stored cursor."""
        with self.db.connection() as conn:
            conn.execute(
                """
                UPDATE devices
                SET last_sync_cursor = MAX(last_sync_cursor, ?), updated_at = ?
                WHERE id = ?
                """,
                (timestamp, now, device_id),
            )
            row = conn.execute(
                "SELECT last_sync_cursor FROM devices WHERE id = ?", (device_id,)
            ).fetchone()
        return row[0] if row else None

    def set_active(self, device_id: str, active: bool, now: int) -> bool:
        changed = self.db.execute(
            "UPDATE devices SET is_active = ?, updated_at = ? WHERE id = ?",
            int(active), now, device_id,
        )
        return changed == 1

    def list_device_summaries(self) -> list[DeviceSummary]:
        rows = self.db.fetch(
            """
            SELECT d.*,
                   (SELECT COUNT(*) FROM sync_sessions s WHERE s.device_id = d.id) AS total_sessions,
                   (SELECT COUNT(*) FROM sync_sessions s
                     WHERE s.device_id = d.id AND s.status = 'completed') AS completed_sessions,
                   (SELECT COUNT(*) FROM sync_sessions s
                     WHERE s.device_id = d.id AND s.status = 'failed') AS failed_sessions,
                   (SELECT MAX(start_time) FROM sync_sessions s WHERE s.device_id = d.id) AS last_sync_attempt,
                   (SELECT COUNT(*) FROM health_data h WHERE h.device_id = d.id) AS record_count
            FROM devices d
            ORDER BY d.last_seen_at DESC
            """
        )
        return [
            DeviceSummary(
                device=_row_to_device(r),
                session_stats=SessionStats(
                    total_sessions=r["total_sessions"],
                    completed_sessions=r["completed_sessions"],
                    failed_sessions=r["failed_sessions"],
                    last_sync_attempt=r["last_sync_attempt"],
                ),
                record_count=r["record_count"],
            )
            for r in rows
        ]

    # ------------------------------------------------------------------
    # Health records
    # ------------------------------------------------------------------

    def insert_record(
        self, device_id: str, data_type: str, record: SanitizedRecord, now: int
    ) -> int:
        """Insert one record in its own statement.  Returns the new row id."""
        return self.db.insert(
            """
            INSERT INTO health_data (device_id, data_type, timestamp, value, unit,
                                     metadata, source_app, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            device_id,
            data_type,
            record.timestamp,
            record.value,
            record.unit,
            _dump(record.metadata),
            record.source_app,
            now,
        )

    def query_records(
        self, flt: RecordFilter, limit: int, offset: int = 0
    ) -> list[HealthRecord]:
        where, params = _where(flt)
        rows = self.db.fetch(
            f"SELECT * FROM health_data {where} "
            "ORDER BY timestamp DESC, id DESC LIMIT ? OFFSET ?",
            *params, limit, offset,
        )
        return [_row_to_record(r) for r in rows]

    def count_records(self, flt: RecordFilter) -> int:
        where, params = _where(flt)
        return int(self.db.fetchval(f"SELECT COUNT(*) FROM health_data {where}", *params))

    def stats_by_type(self, flt: RecordFilter) -> list[dict[str, Any]]:
        where, params = _where(flt)
        rows = self.db.fetch(
            f"""
            SELECT data_type,
                   COUNT(*) AS record_count,
                   MIN(timestamp) AS earliest_record,
                   MAX(timestamp) AS latest_record,
                   COUNT(DISTINCT device_id) AS device_count
            FROM health_data {where}
            GROUP BY data_type
            ORDER BY record_count DESC
            """,
            *params,
        )
        return [dict(r) for r in rows]

    def device_data_stats(self, device_id: str) -> list[DataTypeStats]:
        rows = self.db.fetch(
            """
            SELECT data_type, COUNT(*) AS count, MAX(timestamp) AS latest_timestamp
            FROM health_data
            WHERE device_id = ?
            GROUP BY data_type
            ORDER BY data_type
            """,
            device_id,
        )
        return [
            DataTypeStats(
                data_type=r["data_type"],
                count=r["count"],
                latest_timestamp=r["latest_timestamp"],
            )
            for r in rows
        ]

    def purge_records(self, flt: RecordFilter) -> int:
        if flt.is_empty:
            raise ValueError("Refusing to purge without a filter")
        where, params = _where(flt)
        return self.db.execute(f"DELETE FROM health_data {where}", *params)

    # ------------------------------------------------------------------
    # Sync sessions
    # ------------------------------------------------------------------

    def insert_session(self, session: SyncSession) -> None:
        self.db.execute(
            """
            INSERT INTO sync_sessions (id, device_id, kind, status, records_synced, start_time)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            session.id,
            session.device_id,
            session.kind.value,
            session.status.value,
            session.records_synced,
            session.start_time,
        )

    def get_session(self, session_id: str) -> SyncSession | None:
        row = self.db.fetchrow("SELECT * FROM sync_sessions WHERE id = ?", session_id)
        return _row_to_session(row) if row else None

    def close_session(
        self,
        session_id: str,
        status: SessionStatus,
        records_synced: int,
        error_message: str | None,
        now: int,
    ) -> bool:
        """Move a started session to a terminal status.  False if not started."""
        changed = self.db.execute(
            """
            UPDATE sync_sessions
            SET status = ?, records_synced = ?, end_time = ?, error_message = ?
            WHERE id = ? AND status = 'started'
            """,
            status.value, records_synced, now, error_message, session_id,
        )
        return changed == 1

    def latest_session(self, device_id: str) -> SyncSession | None:
        row = self.db.fetchrow(
            """
            SELECT * FROM sync_sessions
            WHERE device_id = ?
            ORDER BY start_time DESC, rowid DESC
            LIMIT 1
            """,
            device_id,
        )
        return _row_to_session(row) if row else None

    def list_sessions(self, device_id: str, limit: int, offset: int = 0) -> list[SyncSession]:
        rows = self.db.fetch(
            """
            SELECT * FROM sync_sessions
            WHERE device_id = ?
            ORDER BY start_time DESC, rowid DESC
            LIMIT ? OFFSET ?
            """,
            device_id, limit, offset,
        )
        return [_row_to_session(r) for r in rows]

    # ------------------------------------------------------------------
    # Device settings
    # ------------------------------------------------------------------

    def upsert_setting(self, device_id: str, key: str, value: Any, now: int) -> None:
        self.db.execute(
            """
            INSERT INTO device_settings (device_id, setting_key, setting_value, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT (device_id, setting_key) DO UPDATE SET
                setting_value = excluded.setting_value,
                updated_at = excluded.updated_at
            """,
            device_id, key, json.dumps(value), now,
        )

    def get_setting(self, device_id: str, key: str) -> DeviceSetting | None:
        row = self.db.fetchrow(
            "SELECT * FROM device_settings WHERE device_id = ? AND setting_key = ?",
            device_id, key,
        )
        if row is None:
            return None
        return DeviceSetting(
            device_id=row["device_id"],
            key=row["setting_key"],
            value=_load(row["setting_value"]),
            updated_at=row["updated_at"],
        )

    def list_settings(self, device_id: str) -> list[DeviceSetting]:
        rows = self.db.fetch(
            "SELECT * FROM device_settings WHERE device_id = ? ORDER BY setting_key",
            device_id,
        )
        return [
            DeviceSetting(
                device_id=r["device_id"],
                key=r["setting_key"],
                value=_load(r["setting_value"]),
                updated_at=r["updated_at"],
            )
            for r in rows
        ]

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def stats(self, since: int) -> StoreStats:
        """Database-wide counters.  ``since`` bounds the session count (ms)."""
        return StoreStats(
            active_devices=int(
                self.db.fetchval("SELECT COUNT(*) FROM devices WHERE is_active = 1")
            ),
            total_records=int(self.db.fetchval("SELECT COUNT(*) FROM health_data")),
            sessions_today=int(
                self.db.fetchval(
                    "SELECT COUNT(*) FROM sync_sessions WHERE start_time > ?", since
                )
            ),
        )
