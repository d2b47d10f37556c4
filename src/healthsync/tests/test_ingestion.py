"""Tests for the batch ingestion pipeline and the health-data service."""

from __future__ import annotations

import logging

import pytest

from src.healthsync.base import RecordFilter
from src.healthsync.config_loader import IngestionRules
from src.healthsync.connections import ConnectionRegistry
from src.healthsync.errors import (
    BatchTooLargeError,
    ConfigurationError,
    InvalidRequestError,
    StorageError,
    UnsupportedDataTypeError,
)
from src.healthsync.ingestion import HealthDataService, IngestionPipeline
from src.healthsync.record_store import RecordStore
from src.healthsync.registry import DeviceRegistry

MINUTE = 60_000
DAY = 24 * 60 * MINUTE


# ---------------------------------------------------------------------------
# Request-level checks
# ---------------------------------------------------------------------------


class TestRequestChecks:
    def test_unsupported_type_persists_nothing(
        self, pipeline: IngestionPipeline, store: RecordStore, clock
    ) -> None:
        with pytest.raises(UnsupportedDataTypeError):
            pipeline.ingest("w1", "mood", [{"timestamp": clock.now, "value": 1}])
        assert store.get_device("w1") is None
        assert store.count_records(RecordFilter()) == 0

    def test_batch_too_large(
        self, store: RecordStore, registry: DeviceRegistry, rules: IngestionRules, clock
    ) -> None:
        small = IngestionPipeline(store, registry, rules, max_batch_size=2, clock=clock)
        with pytest.raises(BatchTooLargeError):
            small.ingest("w1", "steps", [{"timestamp": clock.now, "value": 1}] * 3)
        assert store.get_device("w1") is None

    @pytest.mark.parametrize(
        "device_id, data_type, records",
        [("", "steps", []), ("w1", "", []), ("w1", "steps", None), (None, "steps", [])],
    )
    def test_malformed_request(
        self, pipeline: IngestionPipeline, device_id, data_type, records
    ) -> None:
        with pytest.raises(InvalidRequestError):
            pipeline.ingest(device_id, data_type, records)


# ---------------------------------------------------------------------------
# Per-record processing
# ---------------------------------------------------------------------------


class TestIngest:
    def test_partial_batch(self, pipeline: IngestionPipeline, store: RecordStore, clock) -> None:
        """One out-of-range record is reported; the others are stored."""
        t0 = clock.now - 10 * MINUTE
        records = [
            {"timestamp": t0, "value": 72},
            {"timestamp": t0 + MINUTE, "value": 75},
            {"timestamp": t0 + 2 * MINUTE, "value": 1000},
        ]
        result = pipeline.ingest("w1", "heart_rate", records)

        assert result.total == 3
        assert result.inserted == 2
        assert len(result.errors) == 1
        assert result.errors[0].index == 2
        assert "220" in result.errors[0].error
        assert store.count_records(RecordFilter(device_id="w1")) == 2

    def test_inserted_plus_errors_equals_total(self, pipeline: IngestionPipeline, clock) -> None:
        now = clock.now
        records = [
            {"timestamp": now, "value": 80},
            "not-an-object",
            {"value": 80},
            {"timestamp": now - 100 * DAY, "value": 80},
            {"timestamp": now + 10 * MINUTE, "value": 80},
            {"timestamp": now, "value": "abc"},
            {"timestamp": now - 1, "value": 90, "metadata": {"note": "<ok>"}},
        ]
        result = pipeline.ingest("w1", "heart_rate", records)
        assert result.inserted + len(result.errors) == result.total == 7
        assert result.inserted == 2
        assert [e.index for e in result.errors] == [1, 2, 3, 4, 5]

    def test_records_are_sanitized(
        self, pipeline: IngestionPipeline, store: RecordStore, clock
    ) -> None:
        pipeline.ingest(
            "w1",
            "steps",
            [{"timestamp": clock.now, "value": 10, "unit": "<steps>",
              "sourceApp": "Fit & Go", "metadata": {"tag": "'x'"}}],
        )
        [record] = store.query_records(RecordFilter(device_id="w1"), limit=1)
        assert record.unit == "steps"
        assert record.source_app == "Fit  Go"
        assert record.metadata == {"tag": "x"}

    def test_creates_device_with_given_name(
        self, pipeline: IngestionPipeline, store: RecordStore, clock
    ) -> None:
        pipeline.ingest(
            "p1", "steps", [{"timestamp": clock.now, "value": 1}],
            device_name="Phone", device_type="ios",
        )
        device = store.get_device("p1")
        assert device.name == "Phone"
        assert device.type.value == "ios"

    def test_cursor_advances_to_max_inserted(
        self, pipeline: IngestionPipeline, store: RecordStore, clock
    ) -> None:
        now = clock.now
        result = pipeline.ingest(
            "w1", "heart_rate",
            [{"timestamp": now - 5 * MINUTE, "value": 70},
             {"timestamp": now - MINUTE, "value": 300},
             {"timestamp": now - 3 * MINUTE, "value": 70}],
        )
        assert result.cursor == now - 3 * MINUTE
        assert store.get_device("w1").last_sync_cursor == now - 3 * MINUTE

    def test_cursor_never_moves_back(
        self, pipeline: IngestionPipeline, store: RecordStore, clock
    ) -> None:
        now = clock.now
        pipeline.ingest("w1", "steps", [{"timestamp": now, "value": 1}])
        pipeline.ingest("w1", "steps", [{"timestamp": now - DAY, "value": 1}])
        assert store.get_device("w1").last_sync_cursor == now

    def test_empty_batch_advances_cursor_to_now(
        self, pipeline: IngestionPipeline, store: RecordStore, clock
    ) -> None:
        result = pipeline.ingest("w1", "steps", [])
        assert result.total == 0
        assert result.cursor == clock.now
        assert store.get_device("w1").last_sync_cursor == clock.now

    def test_empty_batch_without_advance(
        self, store: RecordStore, registry: DeviceRegistry, rules: IngestionRules, clock
    ) -> None:
        quiet = IngestionPipeline(
            store, registry, rules, advance_cursor_on_empty_batch=False, clock=clock
        )
        result = quiet.ingest("w1", "steps", [{"timestamp": 1, "value": 1}])
        assert result.inserted == 0
        assert result.cursor is None
        assert store.get_device("w1").last_sync_cursor == 0

    def test_storage_error_is_per_record(
        self, pipeline: IngestionPipeline, store: RecordStore, clock, monkeypatch
    ) -> None:
        original = store.insert_record
        calls = {"n": 0}

        def flaky(device_id, data_type, record, now):
            calls["n"] += 1
            if calls["n"] == 2:
                raise StorageError("disk I/O error")
            return original(device_id, data_type, record, now)

        monkeypatch.setattr(store, "insert_record", flaky)
        records = [{"timestamp": clock.now - i, "value": 1} for i in range(3)]
        result = pipeline.ingest("w1", "steps", records)

        assert result.inserted == 2
        assert result.errors[0].index == 1
        assert result.errors[0].error == "Storage error: disk I/O error"

    def test_huge_metadata_integer_is_dropped(
        self, pipeline: IngestionPipeline, store: RecordStore, clock
    ) -> None:
        records = [
            {"timestamp": clock.now - 2 * MINUTE, "value": 70},
            {"timestamp": clock.now - MINUTE, "value": 71, "metadata": {"n": 10**400, "k": 2}},
            {"timestamp": clock.now, "value": 72},
        ]
        result = pipeline.ingest("w1", "heart_rate", records)

        assert result.inserted == 3
        assert result.errors == []
        assert store.get_device("w1").last_sync_cursor == clock.now
        t = clock.now - MINUTE
        [middle] = store.query_records(
            RecordFilter(since=t, since_exclusive=False, until=t), 10, 0
        )
        assert middle.metadata == {"k": 2}

    def test_unexpected_record_failure_does_not_abort_batch(
        self, pipeline: IngestionPipeline, store: RecordStore, clock, monkeypatch
    ) -> None:
        original = store.insert_record

        def broken(device_id, data_type, record, now):
            if record.index == 0:
                raise OverflowError("int too large")
            return original(device_id, data_type, record, now)

        monkeypatch.setattr(store, "insert_record", broken)
        records = [
            {"timestamp": clock.now - MINUTE, "value": 1},
            {"timestamp": clock.now, "value": 2},
        ]
        result = pipeline.ingest("w1", "steps", records)

        assert result.inserted == 1
        assert result.errors[0].index == 0
        assert result.errors[0].error.startswith("Invalid record")
        assert result.cursor == clock.now

    def test_null_device_type_defaults_to_wearos(
        self, pipeline: IngestionPipeline, store: RecordStore, clock
    ) -> None:
        pipeline.ingest("w1", "steps", [{"timestamp": clock.now, "value": 1}], device_type=None)
        assert store.get_device("w1").type.value == "wearos"

    def test_records_connection_activity(
        self, pipeline: IngestionPipeline, connections: ConnectionRegistry, clock
    ) -> None:
        pipeline.ingest("w1", "steps", [{"timestamp": clock.now, "value": 1}] * 2)
        [entry] = connections.snapshot()
        assert entry.device_id == "w1"
        assert entry.data_points == 2
        assert connections.data_points_today == 2

    def test_emits_received_event(
        self, pipeline: IngestionPipeline, clock, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.INFO, logger="healthsync.events.health_data"):
            pipeline.ingest("w1", "steps", [{"timestamp": clock.now, "value": 1}])
        messages = [r.getMessage() for r in caplog.records
                    if r.name == "healthsync.events.health_data"]
        assert any('"action": "received"' in m and '"deviceId": "w1"' in m for m in messages)


# ---------------------------------------------------------------------------
# Listing / stats / purge
# ---------------------------------------------------------------------------


class TestHealthDataService:
    @pytest.fixture(autouse=True)
    def _seed(self, pipeline: IngestionPipeline, clock) -> None:
        now = clock.now
        pipeline.ingest("a", "steps", [{"timestamp": now - i * MINUTE, "value": i} for i in range(3)])
        pipeline.ingest("b", "heart_rate", [{"timestamp": now, "value": 60}])

    def test_query_with_total(self, health_data: HealthDataService) -> None:
        records, total = health_data.query(data_type="steps", limit=2)
        assert total == 3
        assert len(records) == 2
        assert records[0].timestamp > records[1].timestamp

    def test_query_since_is_inclusive(self, health_data: HealthDataService, clock) -> None:
        _, total = health_data.query(device_id="a", since=clock.now - MINUTE)
        assert total == 2

    def test_query_rejects_bad_limit(self, health_data: HealthDataService) -> None:
        with pytest.raises(InvalidRequestError):
            health_data.query(limit=0)

    @pytest.mark.parametrize(
        "kwargs", [{"since": 2**63}, {"until": 2**63}, {"offset": 2**63}, {"since": -1}]
    )
    def test_query_rejects_out_of_range(self, health_data: HealthDataService, kwargs: dict) -> None:
        with pytest.raises(InvalidRequestError):
            health_data.query(**kwargs)

    def test_query_rejects_unknown_type(self, health_data: HealthDataService) -> None:
        with pytest.raises(UnsupportedDataTypeError):
            health_data.query(data_type="mood")

    def test_stats(self, health_data: HealthDataService) -> None:
        stats = {row["data_type"]: row for row in health_data.stats()}
        assert stats["steps"]["record_count"] == 3
        assert stats["heart_rate"]["device_count"] == 1

    def test_purge_requires_filter(self, health_data: HealthDataService) -> None:
        with pytest.raises(InvalidRequestError):
            health_data.purge()
        with pytest.raises(InvalidRequestError):
            health_data.purge(before=2**63)

    def test_purge_by_device(self, health_data: HealthDataService) -> None:
        assert health_data.purge(device_id="a") == 3
        _, total = health_data.query()
        assert total == 1

    def test_purge_refused_outside_development(
        self, store: RecordStore, rules: IngestionRules
    ) -> None:
        locked = HealthDataService(store, rules, deletion_allowed=False)
        with pytest.raises(ConfigurationError):
            locked.purge(device_id="a")
        assert store.count_records(RecordFilter(device_id="a")) == 3
