"""Health-data endpoints: batch upload, listing, supported types, stats, purge."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Query

from src.dependencies import HealthData, Pipeline, to_http_exception
from src.healthsync.errors import HealthSyncError
from src.models.base import Pagination
from src.models.health_data import (
    DataTypesResponse,
    DataTypeStatsOut,
    HealthDataDeleteResponse,
    HealthDataListResponse,
    HealthDataStatsResponse,
    HealthDataUpload,
    HealthDataUploadResponse,
    HealthRecordOut,
    ProcessedSummary,
    RecordErrorOut,
)

router = APIRouter(prefix="/health-data", tags=["health-data"])
logger = logging.getLogger("healthsync.api.health_data")


@router.post("", response_model=HealthDataUploadResponse, response_model_exclude_none=True)
def upload_health_data(body: HealthDataUpload, pipeline: Pipeline) -> Any:
    """Ingest one batch.  Per-record failures come back in ``errors``."""
    try:
        result = pipeline.ingest(
            body.device_id,
            body.data_type,
            body.records,
            device_name=body.device_name,
            device_type=body.device_type,
        )
    except HealthSyncError as exc:
        raise to_http_exception(exc) from exc

    return HealthDataUploadResponse(
        message=f"Processed {result.total} records",
        processed=ProcessedSummary(
            total=result.total, inserted=result.inserted, errors=len(result.errors)
        ),
        errors=[RecordErrorOut(index=e.index, error=e.error) for e in result.errors] or None,
    )


@router.get("", response_model=HealthDataListResponse)
def list_health_data(
    service: HealthData,
    device_id: str | None = Query(default=None, alias="deviceId"),
    data_type: str | None = Query(default=None, alias="dataType"),
    since: int | None = Query(default=None),
    until: int | None = Query(default=None),
    limit: int = Query(default=100),
    offset: int = Query(default=0),
) -> Any:
    try:
        records, total = service.query(device_id, data_type, since, until, limit, offset)
    except HealthSyncError as exc:
        raise to_http_exception(exc) from exc

    return HealthDataListResponse(
        data=[HealthRecordOut.from_record(r) for r in records],
        pagination=Pagination(
            total=total,
            limit=limit,
            offset=offset,
            has_more=offset + len(records) < total,
        ),
    )


@router.get("/types", response_model=DataTypesResponse)
def get_data_types(service: HealthData) -> Any:
    rules = service.rules
    return DataTypesResponse(
        supported_types=list(rules.supported_types),
        validation=rules.as_dict(),
    )


@router.get("/stats", response_model=HealthDataStatsResponse)
def get_health_data_stats(
    service: HealthData,
    device_id: str | None = Query(default=None, alias="deviceId"),
    since: int | None = Query(default=None),
    until: int | None = Query(default=None),
) -> Any:
    try:
        rows = service.stats(device_id, since, until)
    except HealthSyncError as exc:
        raise to_http_exception(exc) from exc
    return HealthDataStatsResponse(stats=[DataTypeStatsOut.model_validate(r) for r in rows])


@router.delete("", response_model=HealthDataDeleteResponse)
def delete_health_data(
    service: HealthData,
    device_id: str | None = Query(default=None, alias="deviceId"),
    data_type: str | None = Query(default=None, alias="dataType"),
    before: int | None = Query(default=None),
) -> Any:
    """Bulk purge.  Development environments only."""
    try:
        deleted = service.purge(device_id, data_type, before)
    except HealthSyncError as exc:
        raise to_http_exception(exc) from exc

    if deleted:
        logger.warning("Purged %d health records (device=%s, type=%s, before=%s)",
                       deleted, device_id, data_type, before)
    return HealthDataDeleteResponse(
        message=f"Deleted {deleted} records", deleted_records=deleted
    )
