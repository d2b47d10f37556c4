"""HealthSync device synchronization core.

Multiple untrusted client devices (WearOS watches, iOS phones) exchange
time-series health records through a shared embedded store using a
per-device timestamp cursor rather than a central broker.

Subpackages:
    transports/ — Fallback (short-range) transport capability

Core modules:
    base          — Canonical dataclasses and enums
    errors        — Exception taxonomy
    schema        — SQLite schema and migrations
    record_store  — SQL access for devices, records, sessions, settings
    registry      — Device identity, liveness, cursor, settings
    validation    — Per-record validation and sanitization
    ingestion     — Batch ingestion pipeline and record queries
    cursor        — Incremental cursor-based sync reads
    sessions      — Sync session lifecycle tracking
    connections   — Recently active devices and maintenance timers
    config_loader — Load/validate/hot-reload ingestion_rules.yaml
    events        — Structured event log
"""

from src.healthsync.base import (
    Device,
    HealthRecord,
    IngestResult,
    SyncPage,
    SyncSession,
)
from src.healthsync.config_loader import IngestionRules, get_ingestion_rules
from src.healthsync.cursor import SyncCursor
from src.healthsync.ingestion import HealthDataService, IngestionPipeline
from src.healthsync.registry import DeviceRegistry
from src.healthsync.sessions import SessionTracker

__all__ = [
    "Device",
    "HealthRecord",
    "IngestResult",
    "SyncPage",
    "SyncSession",
    "IngestionRules",
    "get_ingestion_rules",
    "DeviceRegistry",
    "IngestionPipeline",
    "HealthDataService",
    "SyncCursor",
    "SessionTracker",
]
