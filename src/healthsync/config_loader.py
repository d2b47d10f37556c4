"""Load, validate, and hot-reload the ingestion rules.

The rules live in ``ingestion_rules.yaml`` alongside this module.  At startup
they are loaded once and cached.  Call ``reload_ingestion_rules()`` to re-read
from disk after an edit; no restart required.

Usage::

    from src.healthsync.config_loader import get_ingestion_rules

    rules = get_ingestion_rules()
    rules.is_supported("heart_rate")        # True
    rules.value_range("heart_rate").max     # 220.0
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger("healthsync.config")

# Path to the YAML file sitting next to this module
_RULES_PATH = Path(__file__).parent / "ingestion_rules.yaml"


# ---------------------------------------------------------------------------
# Typed config sections
# ---------------------------------------------------------------------------


@dataclass
class Bounds:
    """Inclusive numeric range."""

    min: float
    max: float

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max


@dataclass
class ValueRange(Bounds):
    """Domain bounds for the primary value of one data type."""

    label: str = ""
    unit: str = ""

    def describe(self) -> str:
        suffix = f" {self.unit}" if self.unit else ""
        return f"{self.label} must be between {_fmt(self.min)} and {_fmt(self.max)}{suffix}"


@dataclass
class FreshnessConfig:
    max_record_age_ms: int
    future_grace_ms: int


@dataclass
class SanitizationConfig:
    max_string_length: int = 255
    max_metadata_depth: int = 5
    max_array_items: int = 1000
    stripped_characters: str = "<>\"'&"


@dataclass
class IngestionRules:
    """Complete, validated ingestion rule set.

    Attributes:
        version:          Rules schema version string.
        supported_types:  Data types accepted by ingestion and sync reads.
        freshness:        Accepted timestamp window around "now".
        value_ranges:     data_type → bounds for the record's value.
        systolic:         Blood pressure systolic bounds (metadata.systolic).
        diastolic:        Blood pressure diastolic bounds (metadata.diastolic).
        latitude:         GPS latitude bounds (metadata.coordinates[*]).
        longitude:        GPS longitude bounds.
        sanitization:     String/metadata caps applied after validation.
    """

    version: str
    supported_types: list[str]
    freshness: FreshnessConfig
    value_ranges: dict[str, ValueRange]
    systolic: Bounds
    diastolic: Bounds
    latitude: Bounds
    longitude: Bounds
    sanitization: SanitizationConfig
    _raw: dict = field(default_factory=dict, repr=False)

    def is_supported(self, data_type: str) -> bool:
        return data_type in self.supported_types

    def value_range(self, data_type: str) -> ValueRange | None:
        return self.value_ranges.get(data_type)

    def as_dict(self) -> dict[str, Any]:
        """Plain-dict view for the data-types endpoint."""
        return {
            "valueRanges": {
                k: {"min": v.min, "max": v.max, "unit": v.unit}
                for k, v in self.value_ranges.items()
            },
            "bloodPressure": {
                "systolic": {"min": self.systolic.min, "max": self.systolic.max},
                "diastolic": {"min": self.diastolic.min, "max": self.diastolic.max},
            },
            "maxRecordAgeMs": self.freshness.max_record_age_ms,
            "futureGraceMs": self.freshness.future_grace_ms,
        }


def _fmt(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


# ---------------------------------------------------------------------------
# Loader / validation
# ---------------------------------------------------------------------------


class ConfigValidationError(ValueError):
    """Raised when ingestion_rules.yaml fails validation."""


def _load_yaml(path: Path) -> dict:
    """Read and parse a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigValidationError: If the YAML is malformed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Ingestion rules not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            return yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"YAML parse error in {path}: {exc}") from exc


def _validate_and_build(raw: dict) -> IngestionRules:
    """Validate the raw YAML dict and construct IngestionRules.

    Raises:
        ConfigValidationError: If required fields are missing or invalid.
    """
    errors: list[str] = []

    def _bounds(section: Any, name: str, default: tuple[float, float]) -> Bounds:
        section = section or {}
        if not isinstance(section, dict):
            errors.append(f"{name} must be a mapping with min/max")
            return Bounds(*default)
        try:
            lo = float(section.get("min", default[0]))
            hi = float(section.get("max", default[1]))
        except (TypeError, ValueError):
            errors.append(f"{name}.min/max must be numbers")
            return Bounds(*default)
        if lo > hi:
            errors.append(f"{name}: min {lo} is greater than max {hi}")
        return Bounds(lo, hi)

    version = str(raw.get("version", "1.0"))

    # ── Supported types ──
    supported = raw.get("supported_types") or []
    if not isinstance(supported, list) or not supported:
        errors.append("'supported_types' must be a non-empty list")
        supported = []
    supported_types = [str(t) for t in supported]

    # ── Freshness ──
    fr_raw = raw.get("freshness", {}) or {}
    freshness = FreshnessConfig(
        max_record_age_ms=int(fr_raw.get("max_record_age_ms", 90 * 24 * 60 * 60 * 1000)),
        future_grace_ms=int(fr_raw.get("future_grace_ms", 5 * 60 * 1000)),
    )
    if freshness.max_record_age_ms <= 0:
        errors.append("freshness.max_record_age_ms must be positive")
    if freshness.future_grace_ms < 0:
        errors.append("freshness.future_grace_ms must not be negative")

    # ── Value ranges ──
    value_ranges: dict[str, ValueRange] = {}
    for data_type, cfg in (raw.get("value_ranges") or {}).items():
        if data_type not in supported_types:
            errors.append(f"value_ranges.{data_type} is not a supported type")
            continue
        b = _bounds(cfg, f"value_ranges.{data_type}", (float("-inf"), float("inf")))
        cfg = cfg if isinstance(cfg, dict) else {}
        value_ranges[data_type] = ValueRange(
            min=b.min,
            max=b.max,
            label=str(cfg.get("label", data_type.replace("_", " ").capitalize())),
            unit=str(cfg.get("unit", "")),
        )

    # ── Composite checks ──
    bp_raw = raw.get("blood_pressure", {}) or {}
    systolic = _bounds(bp_raw.get("systolic"), "blood_pressure.systolic", (70, 250))
    diastolic = _bounds(bp_raw.get("diastolic"), "blood_pressure.diastolic", (40, 150))

    gps_raw = raw.get("gps", {}) or {}
    latitude = _bounds(gps_raw.get("latitude"), "gps.latitude", (-90, 90))
    longitude = _bounds(gps_raw.get("longitude"), "gps.longitude", (-180, 180))

    # ── Sanitization ──
    sn_raw = raw.get("sanitization", {}) or {}
    sanitization = SanitizationConfig(
        max_string_length=int(sn_raw.get("max_string_length", 255)),
        max_metadata_depth=int(sn_raw.get("max_metadata_depth", 5)),
        max_array_items=int(sn_raw.get("max_array_items", 1000)),
        stripped_characters=str(sn_raw.get("stripped_characters", "<>\"'&")),
    )
    for key in ("max_string_length", "max_metadata_depth", "max_array_items"):
        if getattr(sanitization, key) < 1:
            errors.append(f"sanitization.{key} must be at least 1")

    if errors:
        raise ConfigValidationError(
            f"ingestion_rules.yaml has {len(errors)} validation error(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )

    return IngestionRules(
        version=version,
        supported_types=supported_types,
        freshness=freshness,
        value_ranges=value_ranges,
        systolic=systolic,
        diastolic=diastolic,
        latitude=latitude,
        longitude=longitude,
        sanitization=sanitization,
        _raw=raw,
    )


def load_ingestion_rules(path: Path | str | None = None) -> IngestionRules:
    """Load and validate the ingestion rules from disk.

    Args:
        path: Override path to YAML. Uses the bundled ingestion_rules.yaml by default.
    """
    target = Path(path) if path else _RULES_PATH
    raw = _load_yaml(target)
    rules = _validate_and_build(raw)
    logger.info("Loaded ingestion rules v%s from %s", rules.version, target)
    return rules


# ---------------------------------------------------------------------------
# Global singleton with hot-reload support
# ---------------------------------------------------------------------------

_rules: IngestionRules | None = None
_rules_lock = threading.Lock()


def get_ingestion_rules() -> IngestionRules:
    """Return the global IngestionRules singleton, loading it on first call.

    Thread-safe.  Use ``reload_ingestion_rules()`` to refresh after YAML changes.
    """
    global _rules
    if _rules is None:
        with _rules_lock:
            if _rules is None:  # double-checked locking
                _rules = load_ingestion_rules()
    return _rules


def reload_ingestion_rules(path: Path | str | None = None) -> IngestionRules:
    """Reload the rules from disk and replace the global singleton.

    If validation fails, the old rules are retained and the error is re-raised.
    """
    global _rules
    new_rules = load_ingestion_rules(path)  # validate before acquiring lock
    with _rules_lock:
        old_version = _rules.version if _rules else "none"
        _rules = new_rules
    logger.info("Reloaded ingestion rules: %s → %s", old_version, new_rules.version)
    return new_rules
