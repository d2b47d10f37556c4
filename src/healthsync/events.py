"""Structured, fire-and-forget event log for ingestion, sync and sessions.

Each event is one JSON object on a dedicated logger, so deployments can route
``healthsync.events.*`` to their own handlers (files, shippers) without the
core knowing about them.  Emitting an event never raises.

Event shape::

    {"action": "received", "deviceId": "w1", "dataType": "heart_rate",
     "recordCount": 2, "timestamp": "...", ...metadata}
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

health_data_logger = logging.getLogger("healthsync.events.health_data")
sync_logger = logging.getLogger("healthsync.events.sync")
transport_logger = logging.getLogger("healthsync.events.transport")


def _emit(target: logging.Logger, event: dict[str, Any]) -> None:
    event["timestamp"] = datetime.now(timezone.utc).isoformat()
    try:
        target.info(json.dumps(event, default=str))
    except (TypeError, ValueError) as exc:
        target.warning("Dropped unserializable event %r: %s", event.get("action"), exc)


def log_health_data(
    action: str,
    device_id: str,
    data_type: str,
    record_count: int,
    **metadata: Any,
) -> None:
    _emit(
        health_data_logger,
        {
            "action": action,
            "deviceId": device_id,
            "dataType": data_type,
            "recordCount": record_count,
            **metadata,
        },
    )


def log_sync_operation(
    operation: str, device_id: str, status: str, **details: Any
) -> None:
    _emit(
        sync_logger,
        {"action": operation, "deviceId": device_id, "status": status, **details},
    )


def log_transport_operation(
    operation: str, transport: str, status: str, **details: Any
) -> None:
    _emit(
        transport_logger,
        {"action": operation, "transport": transport, "status": status, **details},
    )
