"""Batch ingestion pipeline and the health-data query service.

Per batch:
    1. Request-level checks (device id, data type, batch size).  Any failure
       rejects the whole request before a single row is written.
    2. Per record: validate → sanitize → INSERT.  Each record is independent;
       one failure is reported with its original index and the batch goes on.
    3. Side effects: device touch, cursor advance, connection activity and a
       structured ``received`` event.

There is no transaction around the batch: records inserted before a crash
stay inserted.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from src.healthsync.base import (
    HealthRecord,
    IngestResult,
    RecordError,
    RecordFilter,
    now_ms,
)
from src.healthsync.config_loader import IngestionRules
from src.healthsync.connections import ConnectionRegistry
from src.healthsync.errors import (
    BatchTooLargeError,
    ConfigurationError,
    InvalidRequestError,
    RecordValidationError,
    StorageError,
    UnsupportedDataTypeError,
)
from src.healthsync.events import log_health_data
from src.healthsync.record_store import RecordStore
from src.healthsync.registry import DeviceRegistry
from src.healthsync.validation import (
    INT64_MAX,
    sanitize_record,
    validate_device_identity,
    validate_record,
)

logger = logging.getLogger("healthsync.ingestion")

DEFAULT_DEVICE_TYPE = "wearos"


class IngestionPipeline:
    """Validates, sanitizes and persists one batch of same-type records.

    Args:
        store:          Record store.
        registry:       Device registry used for the implicit touch.
        rules:          Loaded ingestion rules.
        max_batch_size: Upper bound on ``len(records)``.
        advance_cursor_on_empty_batch:
                        When nothing was inserted, advance the cursor to
                        ``now`` instead of leaving it alone.
        connections:    Optional connected-device registry to record activity.
        clock:          Returns the current time in ms.
    """

    def __init__(
        self,
        store: RecordStore,
        registry: DeviceRegistry,
        rules: IngestionRules,
        max_batch_size: int = 1000,
        advance_cursor_on_empty_batch: bool = True,
        connections: ConnectionRegistry | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.store = store
        self.registry = registry
        self.rules = rules
        self.max_batch_size = max_batch_size
        self.advance_cursor_on_empty_batch = advance_cursor_on_empty_batch
        self.connections = connections
        self._clock = clock

    def check_request(self, device_id: object, data_type: object, records: object) -> None:
        """Request-level checks.  Raises a ``StateError`` subclass on failure."""
        error = validate_device_identity(device_id)
        if error:
            raise InvalidRequestError(error)
        if not isinstance(data_type, str) or not data_type:
            raise InvalidRequestError("Data type is required")
        if not isinstance(records, list):
            raise InvalidRequestError("Records must be an array")
        if not self.rules.is_supported(data_type):
            raise UnsupportedDataTypeError(data_type, list(self.rules.supported_types))
        if len(records) > self.max_batch_size:
            raise BatchTooLargeError(len(records), self.max_batch_size)

    def ingest(
        self,
        device_id: str,
        data_type: str,
        records: list[Any],
        device_name: str | None = None,
        device_type: str | None = None,
    ) -> IngestResult:
        """Ingest one batch.

        Returns:
            IngestResult where ``inserted + len(errors) == total``.

        Raises:
            InvalidRequestError:      Malformed device id, data type or records.
            UnsupportedDataTypeError: Data type not in the configured set.
            BatchTooLargeError:       More than ``max_batch_size`` records.
        """
        self.check_request(device_id, data_type, records)
        device = self.registry.touch(device_id, device_type or DEFAULT_DEVICE_TYPE, device_name)

        now = self._clock()
        result = IngestResult(total=len(records))
        max_timestamp: int | None = None

        for index, raw in enumerate(records):
            try:
                timestamp, value = validate_record(data_type, raw, self.rules, now)
            except RecordValidationError as exc:
                result.errors.append(RecordError(index=index, error=exc.reason))
                continue

            try:
                clean = sanitize_record(index, raw, timestamp, value, self.rules.sanitization)
                self.store.insert_record(device_id, data_type, clean, now)
            except StorageError as exc:
                logger.error("Insert failed for %s record %d: %s", device_id, index, exc)
                result.errors.append(RecordError(index=index, error=f"Storage error: {exc}"))
                continue
            except Exception as exc:
                logger.warning("Record %d from %s could not be stored: %s", index, device_id, exc)
                result.errors.append(RecordError(index=index, error=f"Invalid record: {exc}"))
                continue

            result.inserted += 1
            if max_timestamp is None or timestamp > max_timestamp:
                max_timestamp = timestamp

        if max_timestamp is not None:
            result.cursor = self.registry.advance_cursor(device_id, max_timestamp)
        elif self.advance_cursor_on_empty_batch:
            result.cursor = self.registry.advance_cursor(device_id, now)

        if self.connections is not None:
            self.connections.record_activity(device_id, device.type.value, result.inserted)

        log_health_data(
            "received",
            device_id,
            data_type,
            result.inserted,
            totalRecords=result.total,
            errors=len(result.errors),
        )
        if result.errors:
            logger.warning(
                "Batch from %s (%s): %d/%d records rejected",
                device_id, data_type, len(result.errors), result.total,
            )
        return result


class HealthDataService:
    """General record listing, per-type statistics and development purge."""

    def __init__(
        self,
        store: RecordStore,
        rules: IngestionRules,
        deletion_allowed: bool = False,
        max_limit: int = 1000,
    ) -> None:
        self.store = store
        self.rules = rules
        self.deletion_allowed = deletion_allowed
        self.max_limit = max_limit

    def _filter(
        self,
        device_id: str | None,
        data_type: str | None,
        since: int | None,
        until: int | None,
    ) -> RecordFilter:
        if data_type is not None and not self.rules.is_supported(data_type):
            raise UnsupportedDataTypeError(data_type, list(self.rules.supported_types))
        for name, bound in (("since", since), ("until", until)):
            if bound is not None and not 0 <= bound <= INT64_MAX:
                raise InvalidRequestError(f"{name} must be a non-negative timestamp")
        return RecordFilter(
            device_id=device_id,
            data_type=data_type,
            since=since,
            since_exclusive=False,
            until=until,
        )

    def query(
        self,
        device_id: str | None = None,
        data_type: str | None = None,
        since: int | None = None,
        until: int | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[HealthRecord], int]:
        """Records across all devices, newest first, with the matching total."""
        if not 1 <= limit <= self.max_limit:
            raise InvalidRequestError(f"limit must be between 1 and {self.max_limit}")
        if not 0 <= offset <= INT64_MAX:
            raise InvalidRequestError("offset must be a non-negative integer")
        flt = self._filter(device_id, data_type, since, until)
        return self.store.query_records(flt, limit, offset), self.store.count_records(flt)

    def stats(
        self,
        device_id: str | None = None,
        since: int | None = None,
        until: int | None = None,
    ) -> list[dict[str, Any]]:
        return self.store.stats_by_type(self._filter(device_id, None, since, until))

    def purge(
        self,
        device_id: str | None = None,
        data_type: str | None = None,
        before: int | None = None,
    ) -> int:
        """Delete matching records.  Development environments only.

        Raises:
            ConfigurationError:  Deletion disabled in this environment.
            InvalidRequestError: No filter given.
        """
        if not self.deletion_allowed:
            raise ConfigurationError("Data deletion is only allowed in development mode")
        if device_id is None and data_type is None and before is None:
            raise InvalidRequestError(
                "At least one filter (deviceId, dataType, before) is required"
            )
        if before is not None and not 0 <= before <= INT64_MAX:
            raise InvalidRequestError("before must be a non-negative timestamp")
        deleted = self.store.purge_records(
            RecordFilter(device_id=device_id, data_type=data_type, before=before)
        )
        log_health_data(
            "deleted",
            device_id or "all",
            data_type or "all",
            deleted,
            before=before,
        )
        return deleted
