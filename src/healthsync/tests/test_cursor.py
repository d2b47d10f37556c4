"""Tests for the cursor-based sync read protocol."""

from __future__ import annotations

import pytest

from src.healthsync.cursor import SyncCursor
from src.healthsync.errors import (
    DeviceNotFoundError,
    InvalidRequestError,
    UnsupportedDataTypeError,
)
from src.healthsync.ingestion import IngestionPipeline
from src.healthsync.record_store import RecordStore

MINUTE = 60_000


@pytest.fixture
def seeded(pipeline: IngestionPipeline, clock) -> int:
    """Two devices write heart rate; returns the oldest timestamp written."""
    t0 = clock.now - 30 * MINUTE
    pipeline.ingest("w1", "heart_rate", [
        {"timestamp": t0, "value": 70},
        {"timestamp": t0 + 10 * MINUTE, "value": 72},
    ])
    pipeline.ingest("p1", "heart_rate", [
        {"timestamp": t0 + 5 * MINUTE, "value": 65},
    ], device_type="ios")
    pipeline.ingest("w2", "steps", [
        {"timestamp": t0 + 20 * MINUTE, "value": 500},
    ])
    return t0


class TestRead:
    def test_excludes_own_records(self, cursor: SyncCursor, seeded: int) -> None:
        page = cursor.read("p1", since=0)
        assert {r.device_id for r in page.records} == {"w1", "w2"}
        assert [r.timestamp for r in page.records] == sorted(
            (r.timestamp for r in page.records), reverse=True
        )
        assert page.total == 3
        assert not page.has_more

    def test_since_is_exclusive(self, cursor: SyncCursor, seeded: int) -> None:
        page = cursor.read("p1", since=seeded)
        assert seeded not in [r.timestamp for r in page.records]
        assert page.total == 2

    def test_until_is_inclusive(self, cursor: SyncCursor, seeded: int) -> None:
        page = cursor.read("p1", since=0, until=seeded + 10 * MINUTE)
        assert [r.timestamp for r in page.records] == [seeded + 10 * MINUTE, seeded]

    def test_total_independent_of_limit(self, cursor: SyncCursor, seeded: int) -> None:
        page = cursor.read("p1", since=0, limit=1)
        assert len(page.records) == 1
        assert page.total == 3
        assert page.has_more

        last = cursor.read("p1", since=0, limit=1, offset=2)
        assert len(last.records) == 1
        assert not last.has_more

    def test_data_type_filter(self, cursor: SyncCursor, seeded: int) -> None:
        page = cursor.read("p1", since=0, data_type="steps")
        assert [r.device_id for r in page.records] == ["w2"]

    def test_defaults_to_stored_cursor(
        self, cursor: SyncCursor, store: RecordStore, seeded: int
    ) -> None:
        # p1's cursor was advanced to its own newest write at ingest time.
        stored = store.get_device("p1").last_sync_cursor
        page = cursor.read("p1")
        assert page.since == stored
        assert all(r.timestamp > stored for r in page.records)

    def test_read_never_advances_cursor(
        self, cursor: SyncCursor, store: RecordStore, seeded: int
    ) -> None:
        before = store.get_device("p1").last_sync_cursor
        cursor.read("p1", since=0)
        assert store.get_device("p1").last_sync_cursor == before

    def test_read_creates_unknown_device(self, cursor: SyncCursor, store: RecordStore) -> None:
        page = cursor.read("newcomer")
        assert page.total == 0
        assert store.get_device("newcomer") is not None

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"limit": 0}, {"limit": 1001}, {"offset": -1}, {"since": -5}, {"until": -1},
            {"since": 2**63}, {"until": 2**63}, {"offset": 2**63},
        ],
    )
    def test_invalid_parameters(self, cursor: SyncCursor, kwargs: dict) -> None:
        with pytest.raises(InvalidRequestError):
            cursor.read("p1", **kwargs)

    def test_unsupported_data_type(self, cursor: SyncCursor) -> None:
        with pytest.raises(UnsupportedDataTypeError):
            cursor.read("p1", data_type="mood")


class TestAdvance:
    def test_advance_is_monotonic(self, cursor: SyncCursor, seeded: int) -> None:
        assert cursor.advance("p1", seeded + 60 * MINUTE) == seeded + 60 * MINUTE
        assert cursor.advance("p1", seeded) == seeded + 60 * MINUTE

    def test_advance_unknown_device(self, cursor: SyncCursor) -> None:
        with pytest.raises(DeviceNotFoundError):
            cursor.advance("ghost", 1)

    def test_advance_beyond_int64(self, cursor: SyncCursor, seeded: int) -> None:
        with pytest.raises(InvalidRequestError):
            cursor.advance("p1", 2**63)

    def test_incremental_sync_round(self, cursor: SyncCursor, pipeline: IngestionPipeline,
                                    seeded: int, clock) -> None:
        """Read, acknowledge, then only newer foreign records come back."""
        first = cursor.read("p1", since=0)
        cursor.advance("p1", first.records[0].timestamp)

        clock.advance(MINUTE)
        pipeline.ingest("w1", "heart_rate", [{"timestamp": clock.now, "value": 80}])

        second = cursor.read("p1")
        assert [r.timestamp for r in second.records] == [clock.now]
