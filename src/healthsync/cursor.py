"""Timestamp-cursor sync protocol.

A device pulls records written by *other* devices that are newer than its
cursor, newest first, page by page.  Reading never moves the cursor; the
client acknowledges progress explicitly with ``advance()``.
"""

from __future__ import annotations

import logging
from typing import Callable

from src.healthsync.base import RecordFilter, SyncPage, now_ms
from src.healthsync.config_loader import IngestionRules
from src.healthsync.errors import InvalidRequestError, UnsupportedDataTypeError
from src.healthsync.events import log_sync_operation
from src.healthsync.record_store import RecordStore
from src.healthsync.registry import DeviceRegistry
from src.healthsync.validation import INT64_MAX

logger = logging.getLogger("healthsync.cursor")


class SyncCursor:
    def __init__(
        self,
        store: RecordStore,
        registry: DeviceRegistry,
        rules: IngestionRules,
        max_batch_size: int = 1000,
        default_device_type: str = "wearos",
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.store = store
        self.registry = registry
        self.rules = rules
        self.max_batch_size = max_batch_size
        self.default_device_type = default_device_type
        self._clock = clock

    def read(
        self,
        device_id: str,
        since: int | None = None,
        until: int | None = None,
        data_type: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> SyncPage:
        """One page of foreign records newer than ``since``.

        Args:
            device_id: Requesting device.  Its own records are excluded.
            since:     Exclusive lower bound (ms).  Defaults to the stored cursor.
            until:     Inclusive upper bound (ms).
            data_type: Restrict to one supported data type.
            limit:     Page size, ``1..max_batch_size``.  Defaults to the max.
            offset:    Rows to skip.

        Returns:
            SyncPage ordered by ``timestamp DESC, id DESC`` with ``total``
            counted on the same predicate.
        """
        page_size = self.max_batch_size if limit is None else limit
        if not 1 <= page_size <= self.max_batch_size:
            raise InvalidRequestError(
                f"limit must be between 1 and {self.max_batch_size}"
            )
        if not 0 <= offset <= INT64_MAX:
            raise InvalidRequestError("offset must be a non-negative integer")
        for name, bound in (("since", since), ("until", until)):
            if bound is not None and not 0 <= bound <= INT64_MAX:
                raise InvalidRequestError(f"{name} must be a non-negative timestamp")
        if data_type is not None and not self.rules.is_supported(data_type):
            raise UnsupportedDataTypeError(data_type, list(self.rules.supported_types))

        device = self.registry.touch(device_id, self.default_device_type)
        effective_since = device.last_sync_cursor if since is None else since

        flt = RecordFilter(
            exclude_device_id=device_id,
            data_type=data_type,
            since=effective_since,
            since_exclusive=True,
            until=until,
        )
        records = self.store.query_records(flt, page_size, offset)
        total = self.store.count_records(flt)
        page = SyncPage(
            records=records,
            total=total,
            limit=page_size,
            offset=offset,
            since=effective_since,
        )

        logger.debug(
            "Sync read for %s: %d/%d records since %d (offset %d)",
            device_id, len(records), total, effective_since, offset,
        )
        log_sync_operation(
            "data_retrieved", device_id, "success",
            recordCount=len(records), since=effective_since, dataType=data_type,
        )
        return page

    def advance(self, device_id: str, timestamp: int) -> int:
        """Acknowledge sync progress.  Returns ``MAX(current, timestamp)``."""
        cursor = self.registry.advance_cursor(device_id, timestamp)
        log_sync_operation(
            "timestamp_updated", device_id, "success",
            requested=timestamp, lastSyncTimestamp=cursor,
        )
        return cursor
