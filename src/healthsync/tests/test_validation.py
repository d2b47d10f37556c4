"""Tests for per-record validation and sanitization."""

from __future__ import annotations

import pytest

from src.healthsync.config_loader import IngestionRules, SanitizationConfig
from src.healthsync.errors import RecordValidationError
from src.healthsync.validation import (
    coerce_number,
    coerce_timestamp,
    sanitize_metadata,
    sanitize_record,
    sanitize_string,
    validate_device_identity,
    validate_record,
)

NOW = 1_760_000_000_000
DAY = 24 * 60 * 60 * 1000


def _reason(data_type: str, record: object, rules: IngestionRules, now: int = NOW) -> str:
    with pytest.raises(RecordValidationError) as info:
        validate_record(data_type, record, rules, now)
    return info.value.reason


# ---------------------------------------------------------------------------
# Coercion
# ---------------------------------------------------------------------------


class TestCoercion:
    @pytest.mark.parametrize(
        "raw, expected",
        [(1000, 1000), ("1000", 1000), (1000.9, 1000), (0, 0)],
    )
    def test_valid_timestamps(self, raw: object, expected: int) -> None:
        assert coerce_timestamp(raw) == expected

    @pytest.mark.parametrize("raw", [None, True, -1, "abc", float("nan"), [1], 2**63])
    def test_invalid_timestamps(self, raw: object) -> None:
        assert coerce_timestamp(raw) is None

    def test_numbers(self) -> None:
        assert coerce_number("72.5") == 72.5
        assert coerce_number(0) == 0.0
        assert coerce_number(False) is None
        assert coerce_number(float("inf")) is None
        assert coerce_number("seventy") is None


# ---------------------------------------------------------------------------
# Structural / freshness / domain checks
# ---------------------------------------------------------------------------


class TestValidateRecord:
    def test_valid_heart_rate(self, rules: IngestionRules) -> None:
        ts, value = validate_record(
            "heart_rate", {"timestamp": NOW - 1000, "value": 72}, rules, NOW
        )
        assert (ts, value) == (NOW - 1000, 72.0)

    def test_non_mapping(self, rules: IngestionRules) -> None:
        assert _reason("heart_rate", [1, 2], rules) == "Record must be an object"

    def test_missing_fields(self, rules: IngestionRules) -> None:
        assert _reason("heart_rate", {"value": 72}, rules) == (
            "Missing required fields: timestamp and value"
        )

    def test_zero_value_is_present(self, rules: IngestionRules) -> None:
        _, value = validate_record("steps", {"timestamp": NOW, "value": 0}, rules, NOW)
        assert value == 0.0

    def test_invalid_timestamp(self, rules: IngestionRules) -> None:
        assert _reason("steps", {"timestamp": "soon", "value": 1}, rules) == "Invalid timestamp"

    def test_non_numeric_value(self, rules: IngestionRules) -> None:
        assert _reason("steps", {"timestamp": NOW, "value": "many"}, rules) == (
            "Value must be a valid number"
        )

    def test_too_old(self, rules: IngestionRules) -> None:
        reason = _reason("steps", {"timestamp": NOW - 91 * DAY, "value": 1}, rules)
        assert reason.startswith("Record too old")

    def test_future_beyond_grace(self, rules: IngestionRules) -> None:
        reason = _reason("steps", {"timestamp": NOW + 6 * 60_000, "value": 1}, rules)
        assert reason == "Timestamp cannot be in the future"

    def test_future_within_grace(self, rules: IngestionRules) -> None:
        validate_record("steps", {"timestamp": NOW + 4 * 60_000, "value": 1}, rules, NOW)

    @pytest.mark.parametrize("value", [30, 220])
    def test_bounds_are_inclusive(self, rules: IngestionRules, value: int) -> None:
        validate_record("heart_rate", {"timestamp": NOW, "value": value}, rules, NOW)

    def test_out_of_range(self, rules: IngestionRules) -> None:
        assert _reason("heart_rate", {"timestamp": NOW, "value": 1000}, rules) == (
            "Heart rate must be between 30 and 220 bpm"
        )

    def test_blood_pressure_requires_metadata(self, rules: IngestionRules) -> None:
        reason = _reason("blood_pressure", {"timestamp": NOW, "value": 120}, rules)
        assert "systolic and diastolic" in reason

    def test_blood_pressure_bounds(self, rules: IngestionRules) -> None:
        record = {
            "timestamp": NOW,
            "value": 120,
            "metadata": {"systolic": 300, "diastolic": 80},
        }
        assert _reason("blood_pressure", record, rules).startswith("Systolic pressure")

        record["metadata"] = {"systolic": 120, "diastolic": 80}
        validate_record("blood_pressure", record, rules, NOW)

    def test_gps_coordinates(self, rules: IngestionRules) -> None:
        record = {
            "timestamp": NOW,
            "value": 2,
            "metadata": {
                "coordinates": [
                    {"latitude": 51.5, "longitude": -0.12},
                    {"latitude": 95.0, "longitude": 0.0},
                ]
            },
        }
        assert _reason("gps_route", record, rules) == "Invalid GPS coordinates in metadata"

        record["metadata"]["coordinates"].pop()
        validate_record("gps_route", record, rules, NOW)

    def test_type_without_rule_needs_only_a_number(self) -> None:
        from src.healthsync.config_loader import _validate_and_build

        rules = _validate_and_build({"supported_types": ["mood"]})
        validate_record("mood", {"timestamp": NOW, "value": -5}, rules, NOW)


class TestDeviceIdentity:
    def test_valid(self) -> None:
        assert validate_device_identity("w1") is None
        assert validate_device_identity("w1", "Watch", check_name=True) is None

    @pytest.mark.parametrize("device_id", ["", "x" * 101, None, 42])
    def test_invalid_id(self, device_id: object) -> None:
        assert validate_device_identity(device_id).startswith("Device ID")

    def test_invalid_name(self) -> None:
        assert validate_device_identity("w1", "", check_name=True).startswith("Device name")
        assert validate_device_identity("w1", "x" * 256, check_name=True) is not None


# ---------------------------------------------------------------------------
# Sanitization
# ---------------------------------------------------------------------------


class TestSanitization:
    @pytest.fixture
    def config(self) -> SanitizationConfig:
        return SanitizationConfig(max_string_length=10, max_metadata_depth=3, max_array_items=3)

    def test_strips_markup_and_truncates(self, config: SanitizationConfig) -> None:
        assert sanitize_string('  <b>"hi"</b> & more  ', config) == "bhi/b  mor"
        clean = sanitize_string("<script>alert</script>", config)
        assert clean is not None
        assert not set(clean) & set("<>\"'&")
        assert len(clean) <= 10

    def test_non_string(self, config: SanitizationConfig) -> None:
        assert sanitize_string(42, config) is None

    def test_drops_none_and_non_finite(self, config: SanitizationConfig) -> None:
        clean = sanitize_metadata(
            {"a": None, "b": float("nan"), "c": 1.5, "d": True}, config
        )
        assert clean == {"c": 1.5, "d": True}

    def test_drops_integers_outside_int64(self, config: SanitizationConfig) -> None:
        clean = sanitize_metadata(
            {"big": 10**400, "max": 2**63 - 1, "low": -(2**63) - 1, "items": [2**64, 7]},
            config,
        )
        assert clean == {"max": 2**63 - 1, "items": [7]}

    def test_caps_list_items(self, config: SanitizationConfig) -> None:
        clean = sanitize_metadata({"items": [1, 2, 3, 4, 5]}, config)
        assert clean == {"items": [1, 2, 3]}

    def test_drops_values_past_depth_cap(self, config: SanitizationConfig) -> None:
        clean = sanitize_metadata({"l1": {"l2": {"l3": {"l4": 1}}, "x": 1}}, config)
        assert clean == {"l1": {"l2": {}, "x": 1}}

    def test_sanitize_record(self, config: SanitizationConfig) -> None:
        record = {
            "timestamp": NOW,
            "value": 72,
            "unit": "<bpm>",
            "sourceApp": "Fit'App",
            "metadata": {"note": "a&b"},
        }
        clean = sanitize_record(3, record, NOW, 72.0, config)
        assert clean.index == 3
        assert clean.unit == "bpm"
        assert clean.source_app == "FitApp"
        assert clean.metadata == {"note": "ab"}

    def test_record_without_optional_fields(self, config: SanitizationConfig) -> None:
        clean = sanitize_record(0, {"timestamp": NOW, "value": 1}, NOW, 1.0, config)
        assert clean.unit is None and clean.metadata is None and clean.source_app is None
