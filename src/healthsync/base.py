"""Canonical data models for the HealthSync core.

Every component (record store, registry, ingestion pipeline, cursor protocol,
session tracker) exchanges these dataclasses.  All timestamps are integer
milliseconds since the Unix epoch (UTC).
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

#: Bounded-depth structured blob: str | number | bool | list | map.
MetadataValue = Union[str, int, float, bool, list["MetadataValue"], dict[str, "MetadataValue"]]
Metadata = dict[str, MetadataValue]


def now_ms() -> int:
    """Wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class DeviceType(str, Enum):
    WEAROS = "wearos"
    IOS = "ios"


class SessionKind(str, Enum):
    WIFI = "wifi"
    BLUETOOTH = "bluetooth"


class SessionStatus(str, Enum):
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not SessionStatus.STARTED


# ---------------------------------------------------------------------------
# Devices
# ---------------------------------------------------------------------------


@dataclass
class Device:
    """A client device known to the registry.

    Attributes:
        id:               Opaque client-chosen identifier.
        name:             Human-readable name.
        type:             'wearos' or 'ios'.
        last_seen_at:     Last contact of any kind (ms).
        last_sync_cursor: Watermark of the last acknowledged sync point (ms).
                          Never decreases.
        active:           False once soft-deactivated.
        metadata:         Registration metadata supplied by the client.
        created_at:       First contact (ms).
        updated_at:       Last row modification (ms).
    """

    id: str
    name: str
    type: DeviceType
    last_seen_at: int
    last_sync_cursor: int = 0
    active: bool = True
    metadata: Metadata = field(default_factory=dict)
    created_at: int = 0
    updated_at: int = 0


@dataclass
class DeviceSetting:
    device_id: str
    key: str
    value: Any
    updated_at: int


@dataclass
class DataTypeStats:
    """Per-dataType record summary for one device."""

    data_type: str
    count: int
    latest_timestamp: int | None


@dataclass
class SessionStats:
    total_sessions: int = 0
    completed_sessions: int = 0
    failed_sessions: int = 0
    last_sync_attempt: int | None = None


@dataclass
class DeviceSummary:
    """A device row enriched with session statistics and record count."""

    device: Device
    session_stats: SessionStats
    record_count: int


# ---------------------------------------------------------------------------
# Health records
# ---------------------------------------------------------------------------


@dataclass
class SanitizedRecord:
    """A raw record that passed validation and sanitization, not yet stored."""

    index: int
    timestamp: int
    value: float
    unit: str | None = None
    metadata: Metadata | None = None
    source_app: str | None = None


@dataclass
class HealthRecord:
    """One stored time-series sample.  Immutable once written.

    Attributes:
        id:         Store-assigned row id.
        device_id:  Device that wrote the record.
        data_type:  Data type slug (e.g. 'heart_rate').
        timestamp:  Sample time (ms); logical key component.
        value:      Numeric sample value.
        unit:       Optional unit label.
        metadata:   Sanitized structured blob.
        source_app: Optional producing application.
        created_at: Ingestion wall-clock (ms).
    """

    id: int
    device_id: str
    data_type: str
    timestamp: int
    value: float | None
    unit: str | None = None
    metadata: Metadata | None = None
    source_app: str | None = None
    created_at: int = 0


@dataclass
class RecordFilter:
    """Shared predicate for record queries and their counts.

    ``since`` is exclusive when ``since_exclusive`` is set (cursor reads) and
    inclusive otherwise (general listing).
    """

    device_id: str | None = None
    exclude_device_id: str | None = None
    data_type: str | None = None
    since: int | None = None
    since_exclusive: bool = True
    until: int | None = None
    before: int | None = None

    @property
    def is_empty(self) -> bool:
        return (
            self.device_id is None
            and self.exclude_device_id is None
            and self.data_type is None
            and self.since is None
            and self.until is None
            and self.before is None
        )


# ---------------------------------------------------------------------------
# Sync sessions
# ---------------------------------------------------------------------------


@dataclass
class SyncSession:
    """One tracked sync attempt, for audit only.

    Attributes:
        id:             uuid4 string.
        device_id:      Device that started the session.
        kind:           'wifi' or 'bluetooth'.
        status:         started → completed | failed.
        records_synced: Count reported by the client on completion.
        start_time:     ms.
        end_time:       ms, set exactly once on completion.
        error_message:  Present iff status is failed.
    """

    id: str
    device_id: str
    kind: SessionKind
    status: SessionStatus
    records_synced: int = 0
    start_time: int = 0
    end_time: int | None = None
    error_message: str | None = None


# ---------------------------------------------------------------------------
# Operation results
# ---------------------------------------------------------------------------


@dataclass
class RecordError:
    index: int
    error: str


@dataclass
class IngestResult:
    """Outcome of one batch.  ``inserted + len(errors) == total`` always."""

    total: int
    inserted: int = 0
    errors: list[RecordError] = field(default_factory=list)
    cursor: int | None = None


@dataclass
class SyncPage:
    records: list[HealthRecord]
    total: int
    limit: int
    offset: int
    since: int

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.records) < self.total


@dataclass
class DeviceStatus:
    device: Device
    latest_session: SyncSession | None
    data_stats: list[DataTypeStats]


@dataclass
class StoreStats:
    active_devices: int
    total_records: int
    sessions_today: int
