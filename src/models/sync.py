"""Pydantic models for device registration, sync sessions and cursor reads."""

from __future__ import annotations

from typing import Any

from pydantic import Field

from src.healthsync.base import (
    DataTypeStats,
    Device,
    DeviceSummary,
    SyncSession,
)
from src.models.base import HealthSyncBase, Pagination, ResponseEnvelope
from src.models.health_data import HealthRecordOut


# ---------- Devices ----------

class DeviceOut(HealthSyncBase):
    device_id: str
    device_name: str
    device_type: str
    last_seen: int
    last_sync_timestamp: int
    is_active: bool
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: int
    updated_at: int

    @classmethod
    def from_device(cls, device: Device) -> DeviceOut:
        return cls(
            device_id=device.id,
            device_name=device.name,
            device_type=device.type.value,
            last_seen=device.last_seen_at,
            last_sync_timestamp=device.last_sync_cursor,
            is_active=device.active,
            metadata=device.metadata,
            created_at=device.created_at,
            updated_at=device.updated_at,
        )


class DeviceRegisterRequest(HealthSyncBase):
    device_id: str | None = None
    device_name: str | None = None
    device_type: str | None = None
    metadata: dict[str, Any] | None = None


class DeviceRegisterResponse(ResponseEnvelope):
    message: str
    device: DeviceOut


class SessionStatsOut(HealthSyncBase):
    total_sessions: int
    completed_sessions: int
    failed_sessions: int
    last_sync_attempt: int | None = None


class DeviceListItem(DeviceOut):
    session_stats: SessionStatsOut
    record_count: int

    @classmethod
    def from_summary(cls, summary: DeviceSummary) -> DeviceListItem:
        base = DeviceOut.from_device(summary.device).model_dump()
        return cls(
            **base,
            session_stats=SessionStatsOut.model_validate(summary.session_stats),
            record_count=summary.record_count,
        )


class DeviceListResponse(ResponseEnvelope):
    devices: list[DeviceListItem]
    total: int


class DeviceDeactivateResponse(ResponseEnvelope):
    message: str
    device_id: str


# ---------- Sessions ----------

class SessionOut(HealthSyncBase):
    session_id: str
    device_id: str
    sync_type: str
    status: str
    records_synced: int
    start_time: int
    end_time: int | None = None
    error_message: str | None = None

    @classmethod
    def from_session(cls, session: SyncSession) -> SessionOut:
        return cls(
            session_id=session.id,
            device_id=session.device_id,
            sync_type=session.kind.value,
            status=session.status.value,
            records_synced=session.records_synced,
            start_time=session.start_time,
            end_time=session.end_time,
            error_message=session.error_message,
        )


class DataTypeStatsBrief(HealthSyncBase):
    data_type: str
    count: int
    latest_timestamp: int | None = None

    @classmethod
    def from_stats(cls, stats: DataTypeStats) -> DataTypeStatsBrief:
        return cls.model_validate(stats)


class DeviceStatusResponse(ResponseEnvelope):
    device: DeviceOut
    latest_sync: SessionOut | None = None
    data_stats: list[DataTypeStatsBrief]


class SyncStartRequest(HealthSyncBase):
    device_id: str | None = None
    sync_type: str = "wifi"


class SyncStartResponse(ResponseEnvelope):
    session_id: str
    sync_type: str
    start_time: int


class SyncCompleteRequest(HealthSyncBase):
    session_id: str | None = None
    records_synced: int = Field(default=0, ge=0)
    error_message: str | None = None


class SyncCompleteResponse(ResponseEnvelope):
    session_id: str
    status: str
    records_synced: int


class SessionListResponse(ResponseEnvelope):
    sessions: list[SessionOut]


class LatestSessionResponse(ResponseEnvelope):
    session: SessionOut | None = None


# ---------- Cursor ----------

class SyncDataResponse(ResponseEnvelope):
    data: list[HealthRecordOut]
    pagination: Pagination
    since: int
    last_sync_timestamp: int


class TimestampUpdateRequest(HealthSyncBase):
    timestamp: int | None = None


class TimestampUpdateResponse(ResponseEnvelope):
    last_sync_timestamp: int
