"""Sync endpoints: registration, status, sessions, cursor reads and acks."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Query, Response

from src.dependencies import Cursor, Registry, Sessions, to_http_exception
from src.healthsync.errors import HealthSyncError
from src.models.base import Pagination
from src.models.health_data import HealthRecordOut
from src.models.sync import (
    DataTypeStatsBrief,
    DeviceDeactivateResponse,
    DeviceListItem,
    DeviceListResponse,
    DeviceOut,
    DeviceRegisterRequest,
    DeviceRegisterResponse,
    DeviceStatusResponse,
    LatestSessionResponse,
    SessionListResponse,
    SessionOut,
    SyncCompleteRequest,
    SyncCompleteResponse,
    SyncDataResponse,
    SyncStartRequest,
    SyncStartResponse,
    TimestampUpdateRequest,
    TimestampUpdateResponse,
)

router = APIRouter(prefix="/sync", tags=["sync"])


# ---------- Devices ----------


@router.post("/register", response_model=DeviceRegisterResponse)
def register_device(
    body: DeviceRegisterRequest, registry: Registry, response: Response
) -> Any:
    """Register or update a device.  201 on first registration, 200 after."""
    if body.device_type is None:
        raise HTTPException(status_code=400, detail="Device type is required")
    try:
        device, created = registry.register(
            body.device_id, body.device_name, body.device_type, body.metadata
        )
    except HealthSyncError as exc:
        raise to_http_exception(exc) from exc

    response.status_code = 201 if created else 200
    return DeviceRegisterResponse(
        message="Device registered successfully" if created else "Device updated successfully",
        device=DeviceOut.from_device(device),
    )


@router.get("/status/{device_id}", response_model=DeviceStatusResponse)
def get_device_status(device_id: str, registry: Registry) -> Any:
    try:
        status = registry.status(device_id)
    except HealthSyncError as exc:
        raise to_http_exception(exc) from exc

    return DeviceStatusResponse(
        device=DeviceOut.from_device(status.device),
        latest_sync=SessionOut.from_session(status.latest_session)
        if status.latest_session
        else None,
        data_stats=[DataTypeStatsBrief.from_stats(s) for s in status.data_stats],
    )


@router.get("/devices", response_model=DeviceListResponse)
def list_devices(registry: Registry) -> Any:
    summaries = registry.list_devices()
    return DeviceListResponse(
        devices=[DeviceListItem.from_summary(s) for s in summaries],
        total=len(summaries),
    )


@router.delete("/device/{device_id}", response_model=DeviceDeactivateResponse)
def deactivate_device(device_id: str, registry: Registry) -> Any:
    try:
        registry.deactivate(device_id)
    except HealthSyncError as exc:
        raise to_http_exception(exc) from exc
    return DeviceDeactivateResponse(
        message="Device unregistered successfully", device_id=device_id
    )


# ---------- Sessions ----------


@router.post("/start", response_model=SyncStartResponse)
def start_sync(body: SyncStartRequest, sessions: Sessions) -> Any:
    try:
        session = sessions.start(body.device_id, body.sync_type)
    except HealthSyncError as exc:
        raise to_http_exception(exc) from exc
    return SyncStartResponse(
        session_id=session.id,
        sync_type=session.kind.value,
        start_time=session.start_time,
    )


@router.post("/complete", response_model=SyncCompleteResponse)
def complete_sync(body: SyncCompleteRequest, sessions: Sessions) -> Any:
    if not body.session_id:
        raise HTTPException(status_code=400, detail="Session ID is required")
    try:
        session = sessions.complete(
            body.session_id, body.records_synced, body.error_message
        )
    except HealthSyncError as exc:
        raise to_http_exception(exc) from exc
    return SyncCompleteResponse(
        session_id=session.id,
        status=session.status.value,
        records_synced=session.records_synced,
    )


@router.get("/sessions/{device_id}", response_model=SessionListResponse)
def list_sessions(
    device_id: str,
    sessions: Sessions,
    limit: int = Query(default=50),
    offset: int = Query(default=0),
) -> Any:
    try:
        rows = sessions.list_for_device(device_id, limit, offset)
    except HealthSyncError as exc:
        raise to_http_exception(exc) from exc
    return SessionListResponse(sessions=[SessionOut.from_session(s) for s in rows])


@router.get("/sessions/{device_id}/latest", response_model=LatestSessionResponse)
def latest_session(device_id: str, sessions: Sessions) -> Any:
    """Most recent session for the device, or null when it never synced."""
    try:
        session = sessions.latest_for_device(device_id)
    except HealthSyncError as exc:
        raise to_http_exception(exc) from exc
    return LatestSessionResponse(
        session=SessionOut.from_session(session) if session else None
    )


# ---------- Cursor ----------


@router.get("/data/{device_id}", response_model=SyncDataResponse)
def get_sync_data(
    device_id: str,
    cursor: Cursor,
    since: int | None = Query(default=None),
    until: int | None = Query(default=None),
    data_type: str | None = Query(default=None, alias="dataType"),
    limit: int | None = Query(default=None),
    offset: int = Query(default=0),
) -> Any:
    """Records from other devices newer than ``since`` (default: the cursor)."""
    try:
        page = cursor.read(device_id, since, until, data_type, limit, offset)
        stored = cursor.registry.get(device_id).last_sync_cursor
    except HealthSyncError as exc:
        raise to_http_exception(exc) from exc

    return SyncDataResponse(
        data=[HealthRecordOut.from_record(r) for r in page.records],
        pagination=Pagination(
            total=page.total,
            limit=page.limit,
            offset=page.offset,
            has_more=page.has_more,
        ),
        since=page.since,
        last_sync_timestamp=stored,
    )


@router.put("/timestamp/{device_id}", response_model=TimestampUpdateResponse)
def update_sync_timestamp(
    device_id: str, body: TimestampUpdateRequest, cursor: Cursor
) -> Any:
    if body.timestamp is None:
        raise HTTPException(status_code=400, detail="Valid timestamp is required")
    try:
        effective = cursor.advance(device_id, body.timestamp)
    except HealthSyncError as exc:
        raise to_http_exception(exc) from exc
    return TimestampUpdateResponse(last_sync_timestamp=effective)
