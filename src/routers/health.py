"""Health check endpoint."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter

from src.dependencies import AppSettings, Connections, Db, Store
from src.healthsync.base import now_ms
from src.healthsync.errors import StorageError

router = APIRouter(tags=["system"])
logger = logging.getLogger("healthsync.health")

DAY_MS = 86_400_000


@router.get("/health")
def health_check(settings: AppSettings, db: Db, store: Store, connections: Connections) -> dict:
    """Liveness probe. Returns 200 if the API process is up.

    Also performs a lightweight DB connectivity check, reports store-wide
    counters and lists the recently active devices.
    """
    metrics = None
    try:
        db.ping()
        now = now_ms()
        stats = store.stats(since=now - now % DAY_MS)
        metrics = {
            "activeDevices": stats.active_devices,
            "totalRecords": stats.total_records,
            "syncSessionsToday": stats.sessions_today,
        }
    except StorageError as exc:
        logger.warning("Health check DB probe failed: %s", exc)

    active = connections.snapshot()
    return {
        "status": "healthy" if metrics is not None else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "database": "connected" if metrics is not None else "unreachable",
        "metrics": metrics,
        "connectedDevices": len(active),
        "dataPointsToday": connections.data_points_today,
        "connections": [
            {
                "deviceId": entry.device_id,
                "deviceType": entry.device_type,
                "lastSeen": entry.last_seen,
                "dataPoints": entry.data_points,
            }
            for entry in active
        ],
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
