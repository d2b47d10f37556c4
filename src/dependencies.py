"""Shared FastAPI dependencies injected into route handlers.

The app lifespan builds every core component once and hangs it on
``app.state``; these helpers hand them to route handlers.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from src.config import Settings
from src.healthsync.connections import ConnectionRegistry
from src.healthsync.cursor import SyncCursor
from src.healthsync.errors import (
    ConfigurationError,
    HealthSyncError,
    InvalidTransitionError,
    NotFoundError,
    StateError,
    StorageError,
    TransportNotImplementedError,
)
from src.healthsync.ingestion import HealthDataService, IngestionPipeline
from src.healthsync.record_store import RecordStore
from src.healthsync.registry import DeviceRegistry
from src.healthsync.sessions import SessionTracker
from src.healthsync.transports import FallbackTransport
from src.services.database import Database


def to_http_exception(exc: HealthSyncError) -> HTTPException:
    """Map a core error onto the HTTP status the wire contract promises."""
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, InvalidTransitionError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, StateError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, ConfigurationError):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, TransportNotImplementedError):
        return HTTPException(status_code=501, detail=str(exc))
    if isinstance(exc, StorageError):
        return HTTPException(status_code=500, detail="Storage error")
    return HTTPException(status_code=500, detail="Internal server error")


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_db(request: Request) -> Database:
    return request.app.state.db


def get_store(request: Request) -> RecordStore:
    return request.app.state.store


def get_registry(request: Request) -> DeviceRegistry:
    return request.app.state.registry


def get_pipeline(request: Request) -> IngestionPipeline:
    return request.app.state.pipeline


def get_health_data(request: Request) -> HealthDataService:
    return request.app.state.health_data


def get_cursor(request: Request) -> SyncCursor:
    return request.app.state.cursor


def get_sessions(request: Request) -> SessionTracker:
    return request.app.state.sessions


def get_connections(request: Request) -> ConnectionRegistry:
    return request.app.state.connections


def get_transport(request: Request) -> FallbackTransport:
    return request.app.state.transport


# Annotated shortcuts for route signatures
AppSettings = Annotated[Settings, Depends(get_app_settings)]
Db = Annotated[Database, Depends(get_db)]
Store = Annotated[RecordStore, Depends(get_store)]
Registry = Annotated[DeviceRegistry, Depends(get_registry)]
Pipeline = Annotated[IngestionPipeline, Depends(get_pipeline)]
HealthData = Annotated[HealthDataService, Depends(get_health_data)]
Cursor = Annotated[SyncCursor, Depends(get_cursor)]
Sessions = Annotated[SessionTracker, Depends(get_sessions)]
Connections = Annotated[ConnectionRegistry, Depends(get_connections)]
Transport = Annotated[FallbackTransport, Depends(get_transport)]
