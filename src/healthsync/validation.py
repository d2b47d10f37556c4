"""Per-record validation and sanitization for the ingestion pipeline.

Validation runs in three stages (structure, then freshness, then domain
bounds) and raises ``RecordValidationError`` with a human-readable reason on
the first failure.  Sanitization runs only on records that passed validation and never
rejects anything: it strips markup-significant characters, bounds string
length, and recursively caps metadata depth and list sizes.

All functions here are pure: no I/O, no clock access (``now`` is passed in).
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any

from src.healthsync.base import Metadata, MetadataValue, SanitizedRecord
from src.healthsync.config_loader import Bounds, IngestionRules, SanitizationConfig
from src.healthsync.errors import RecordValidationError

DEVICE_ID_MAX_LENGTH = 100
DEVICE_NAME_MAX_LENGTH = 255

# SQLite INTEGER range
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------


def coerce_timestamp(value: object) -> int | None:
    """Coerce a wire timestamp to non-negative epoch ms, or None if invalid."""
    if value is None or isinstance(value, bool):
        return None
    try:
        if isinstance(value, float):
            if not math.isfinite(value):
                return None
            ts = int(value)
        else:
            ts = int(str(value).strip()) if isinstance(value, str) else int(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return ts if 0 <= ts <= INT64_MAX else None


def coerce_number(value: object) -> float | None:
    """Coerce to a finite float, or None if the value is not numeric."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_record(
    data_type: str, record: object, rules: IngestionRules, now: int
) -> tuple[int, float]:
    """Run structural, freshness and domain checks on one raw record.

    Args:
        data_type: Batch data type (already checked as supported).
        record:    Raw record as decoded from the wire.
        rules:     Loaded ingestion rules.
        now:       Current wall-clock time in ms.

    Returns:
        ``(timestamp, value)`` coerced to ``(int, float)``.

    Raises:
        RecordValidationError: With the reason for the first failed check.
    """
    # 1. Structure
    if not isinstance(record, Mapping):
        raise RecordValidationError("Record must be an object")
    if record.get("timestamp") is None or record.get("value") is None:
        raise RecordValidationError("Missing required fields: timestamp and value")

    timestamp = coerce_timestamp(record["timestamp"])
    if timestamp is None:
        raise RecordValidationError("Invalid timestamp")

    value = coerce_number(record["value"])
    if value is None:
        raise RecordValidationError("Value must be a valid number")

    # 2. Freshness
    check_freshness(timestamp, rules, now)

    # 3. Domain bounds
    metadata = record.get("metadata")
    validate_value(data_type, value, metadata if isinstance(metadata, Mapping) else {}, rules)

    return timestamp, value


def check_freshness(timestamp: int, rules: IngestionRules, now: int) -> None:
    """Reject timestamps outside ``[now - max_age, now + grace]``."""
    max_age = rules.freshness.max_record_age_ms
    if now - timestamp > max_age:
        raise RecordValidationError(f"Record too old (max age: {max_age}ms)")
    if timestamp > now + rules.freshness.future_grace_ms:
        raise RecordValidationError("Timestamp cannot be in the future")


def validate_value(
    data_type: str, value: float, metadata: Mapping[str, Any], rules: IngestionRules
) -> None:
    """Apply the data-type specific bounds, including composite metadata checks."""
    value_range = rules.value_range(data_type)
    if value_range is not None and not value_range.contains(value):
        raise RecordValidationError(value_range.describe())

    if data_type == "blood_pressure":
        _validate_blood_pressure(metadata, rules)
    elif data_type == "gps_route":
        coordinates = metadata.get("coordinates")
        if isinstance(coordinates, list):
            for coord in coordinates:
                if not validate_gps_coordinate(coord, rules.latitude, rules.longitude):
                    raise RecordValidationError("Invalid GPS coordinates in metadata")


def _validate_blood_pressure(metadata: Mapping[str, Any], rules: IngestionRules) -> None:
    if metadata.get("systolic") is None or metadata.get("diastolic") is None:
        raise RecordValidationError(
            "Blood pressure requires systolic and diastolic values in metadata"
        )
    systolic = coerce_number(metadata["systolic"])
    diastolic = coerce_number(metadata["diastolic"])
    if systolic is None or not rules.systolic.contains(systolic):
        raise RecordValidationError(
            f"Systolic pressure must be between {rules.systolic.min:g} "
            f"and {rules.systolic.max:g} mmHg"
        )
    if diastolic is None or not rules.diastolic.contains(diastolic):
        raise RecordValidationError(
            f"Diastolic pressure must be between {rules.diastolic.min:g} "
            f"and {rules.diastolic.max:g} mmHg"
        )


def validate_gps_coordinate(coord: object, latitude: Bounds, longitude: Bounds) -> bool:
    if not isinstance(coord, Mapping):
        return False
    lat = coerce_number(coord.get("latitude"))
    lng = coerce_number(coord.get("longitude"))
    if lat is None or lng is None:
        return False
    return latitude.contains(lat) and longitude.contains(lng)


def validate_device_identity(device_id: object, name: object = None, check_name: bool = False) -> str | None:
    """Return an error message for an invalid device id / name, else None."""
    if not isinstance(device_id, str) or not 1 <= len(device_id) <= DEVICE_ID_MAX_LENGTH:
        return f"Device ID must be a string between 1 and {DEVICE_ID_MAX_LENGTH} characters"
    if check_name and (
        not isinstance(name, str) or not 1 <= len(name) <= DEVICE_NAME_MAX_LENGTH
    ):
        return f"Device name must be a string between 1 and {DEVICE_NAME_MAX_LENGTH} characters"
    return None


# ---------------------------------------------------------------------------
# Sanitization
# ---------------------------------------------------------------------------


def sanitize_string(value: object, config: SanitizationConfig) -> str | None:
    """Strip markup-significant characters, trim, and bound the length.

    Non-strings return None.
    """
    if not isinstance(value, str):
        return None
    table = str.maketrans("", "", config.stripped_characters)
    return value.translate(table).strip()[: config.max_string_length]


def _sanitize_value(value: object, config: SanitizationConfig, depth: int) -> MetadataValue | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value if INT64_MIN <= value <= INT64_MAX else None
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, str):
        return sanitize_string(value, config)
    if depth >= config.max_metadata_depth:
        return None
    if isinstance(value, Mapping):
        return sanitize_metadata(value, config, depth + 1)
    if isinstance(value, (list, tuple)):
        items = []
        for item in value:
            clean = _sanitize_value(item, config, depth + 1)
            if clean is not None:
                items.append(clean)
            if len(items) >= config.max_array_items:
                break
        return items
    return None


def sanitize_metadata(
    metadata: Mapping[str, Any], config: SanitizationConfig, depth: int = 1
) -> Metadata:
    """Recursively sanitize a metadata mapping.

    Keys are sanitized like strings and dropped when empty.  Nested mappings
    and lists deeper than ``max_metadata_depth`` are dropped, lists are cut to
    ``max_array_items``, and None / non-finite / unsupported values are dropped.
    """
    clean: Metadata = {}
    for key, value in metadata.items():
        clean_key = sanitize_string(str(key), config)
        if not clean_key:
            continue
        clean_value = _sanitize_value(value, config, depth)
        if clean_value is not None:
            clean[clean_key] = clean_value
    return clean


def sanitize_record(
    index: int,
    record: Mapping[str, Any],
    timestamp: int,
    value: float,
    config: SanitizationConfig,
) -> SanitizedRecord:
    metadata = record.get("metadata")
    return SanitizedRecord(
        index=index,
        timestamp=timestamp,
        value=value,
        unit=sanitize_string(record.get("unit"), config),
        metadata=sanitize_metadata(metadata, config) if isinstance(metadata, Mapping) else None,
        source_app=sanitize_string(record.get("sourceApp"), config),
    )
