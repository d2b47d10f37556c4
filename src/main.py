"""HealthSync API — FastAPI application entry point.

Run locally:
    uvicorn src.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from src.config import Settings, get_settings
from src.healthsync.config_loader import get_ingestion_rules, load_ingestion_rules
from src.healthsync.connections import ConnectionRegistry, MaintenanceLoop
from src.healthsync.cursor import SyncCursor
from src.healthsync.ingestion import HealthDataService, IngestionPipeline
from src.healthsync.record_store import RecordStore
from src.healthsync.registry import DeviceRegistry
from src.healthsync.sessions import SessionTracker
from src.healthsync.transports import get_transport
from src.routers import bluetooth, devices, health, health_data, sync
from src.services.database import close_database, init_database

# ---------- Logging ----------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger("healthsync")


# ---------- Lifespan ----------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup / shutdown hooks: open the store, wire the core, run timers."""
    settings: Settings = app.state.settings
    logger.info(
        "Starting %s v%s [%s]",
        settings.app_name,
        settings.app_version,
        settings.environment,
    )

    db = init_database(settings)
    rules = (
        load_ingestion_rules(settings.ingestion_rules_path)
        if settings.ingestion_rules_path
        else get_ingestion_rules()
    )
    store = RecordStore(db)
    registry = DeviceRegistry(store)
    connections = ConnectionRegistry(idle_timeout_s=settings.connection_idle_timeout_s)

    app.state.db = db
    app.state.store = store
    app.state.rules = rules
    app.state.registry = registry
    app.state.connections = connections
    app.state.pipeline = IngestionPipeline(
        store,
        registry,
        rules,
        max_batch_size=settings.max_batch_size,
        advance_cursor_on_empty_batch=settings.advance_cursor_on_empty_batch,
        connections=connections,
    )
    app.state.health_data = HealthDataService(
        store,
        rules,
        deletion_allowed=settings.deletion_allowed,
        max_limit=settings.max_batch_size,
    )
    app.state.cursor = SyncCursor(
        store,
        registry,
        rules,
        max_batch_size=settings.max_batch_size,
        default_device_type=settings.default_device_type,
    )
    app.state.sessions = SessionTracker(
        store, registry, default_device_type=settings.default_device_type
    )
    app.state.transport = get_transport(settings)

    maintenance = MaintenanceLoop(
        connections,
        eviction_interval_s=settings.connection_eviction_interval_s,
        reset_check_interval_s=settings.counter_reset_check_interval_s,
    )
    maintenance.start()

    yield

    await maintenance.stop()
    close_database()
    logger.info("%s shut down", settings.app_name)


# ---------- App factory ----------

def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())

    app = FastAPI(
        title=f"{settings.app_name} API",
        description=(
            "Cursor-based synchronization of health records between "
            "WearOS and iOS devices."
        ),
        version=settings.app_version,
        debug=settings.debug,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings

    # ---------- Health check (outside the v1 prefix, always at /health) ----------
    app.include_router(health.router)

    # ---------- API v1 routes ----------
    v1_prefix = "/api/v1"

    app.include_router(health_data.router, prefix=v1_prefix)
    app.include_router(sync.router, prefix=v1_prefix)
    app.include_router(devices.router, prefix=v1_prefix)
    app.include_router(bluetooth.router, prefix=v1_prefix)

    return app


app = create_app()
