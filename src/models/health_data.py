"""Pydantic models for health-data upload, listing, stats and purge."""

from __future__ import annotations

from typing import Any

from src.healthsync.base import HealthRecord
from src.models.base import HealthSyncBase, Pagination, ResponseEnvelope


# ---------- Upload ----------

class HealthDataUpload(HealthSyncBase):
    """One batch of same-type records.

    ``records`` stays loosely typed: each element is validated individually by
    the ingestion pipeline so one bad record never rejects the batch.
    """

    device_id: str | None = None
    data_type: str | None = None
    records: list[Any] | None = None
    device_name: str | None = None
    device_type: str | None = None


class ProcessedSummary(HealthSyncBase):
    total: int
    inserted: int
    errors: int


class RecordErrorOut(HealthSyncBase):
    index: int
    error: str


class HealthDataUploadResponse(ResponseEnvelope):
    message: str
    processed: ProcessedSummary
    errors: list[RecordErrorOut] | None = None


# ---------- Records ----------

class HealthRecordOut(HealthSyncBase):
    id: int
    device_id: str
    data_type: str
    timestamp: int
    value: float | None = None
    unit: str | None = None
    metadata: dict[str, Any] | None = None
    source_app: str | None = None
    created_at: int

    @classmethod
    def from_record(cls, record: HealthRecord) -> HealthRecordOut:
        return cls.model_validate(record)


class HealthDataListResponse(ResponseEnvelope):
    data: list[HealthRecordOut]
    pagination: Pagination


# ---------- Types / stats / purge ----------

class DataTypesResponse(ResponseEnvelope):
    supported_types: list[str]
    validation: dict[str, Any]


class DataTypeStatsOut(HealthSyncBase):
    data_type: str
    record_count: int
    earliest_record: int | None = None
    latest_record: int | None = None
    device_count: int


class HealthDataStatsResponse(ResponseEnvelope):
    stats: list[DataTypeStatsOut]


class HealthDataDeleteResponse(ResponseEnvelope):
    message: str
    deleted_records: int
