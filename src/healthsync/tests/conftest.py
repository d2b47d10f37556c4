"""Shared fixtures for the HealthSync core and API tests."""

from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from src.config import Settings
from src.healthsync.config_loader import IngestionRules, load_ingestion_rules
from src.healthsync.connections import ConnectionRegistry
from src.healthsync.cursor import SyncCursor
from src.healthsync.ingestion import HealthDataService, IngestionPipeline
from src.healthsync.record_store import RecordStore
from src.healthsync.registry import DeviceRegistry
from src.healthsync.schema import apply_schema
from src.healthsync.sessions import SessionTracker
from src.services.database import Database

# 2025-10-09T08:53:20Z
NOW = 1_760_000_000_000


class FakeClock:
    """Deterministic millisecond clock for components that take ``clock=``."""

    def __init__(self, start: int = NOW) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


# ---------------------------------------------------------------------------
# Storage fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def db(tmp_path: Path) -> Database:
    database = Database(tmp_path / "healthsync.db", busy_timeout_ms=5_000)
    apply_schema(database)
    return database


@pytest.fixture
def store(db: Database) -> RecordStore:
    return RecordStore(db)


@pytest.fixture
def rules() -> IngestionRules:
    """Load the bundled ingestion rules."""
    return load_ingestion_rules()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Component fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def registry(store: RecordStore, clock: FakeClock) -> DeviceRegistry:
    return DeviceRegistry(store, clock=clock)


@pytest.fixture
def connections(clock: FakeClock) -> ConnectionRegistry:
    return ConnectionRegistry(idle_timeout_s=3600, clock=clock)


@pytest.fixture
def pipeline(
    store: RecordStore,
    registry: DeviceRegistry,
    rules: IngestionRules,
    connections: ConnectionRegistry,
    clock: FakeClock,
) -> IngestionPipeline:
    return IngestionPipeline(
        store, registry, rules, max_batch_size=1000, connections=connections, clock=clock
    )


@pytest.fixture
def cursor(
    store: RecordStore, registry: DeviceRegistry, rules: IngestionRules, clock: FakeClock
) -> SyncCursor:
    return SyncCursor(store, registry, rules, max_batch_size=1000, clock=clock)


@pytest.fixture
def sessions(store: RecordStore, registry: DeviceRegistry, clock: FakeClock) -> SessionTracker:
    return SessionTracker(store, registry, clock=clock)


@pytest.fixture
def health_data(store: RecordStore, rules: IngestionRules) -> HealthDataService:
    return HealthDataService(store, rules, deletion_allowed=True)


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def api_settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        db_path=str(tmp_path / "api.db"),
        environment="development",
        connection_eviction_interval_s=3600,
        counter_reset_check_interval_s=3600,
    )


@pytest.fixture
def client(api_settings: Settings) -> Iterator[TestClient]:
    from src.main import create_app

    with TestClient(create_app(api_settings)) as test_client:
        yield test_client
