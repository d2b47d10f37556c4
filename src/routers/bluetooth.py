"""Fallback (Bluetooth) transport endpoints.

On platforms without a BLE implementation every state change answers 501.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from src.dependencies import Transport, to_http_exception
from src.healthsync.errors import HealthSyncError
from src.models.devices import TransportStatusOut, TransportStatusResponse

router = APIRouter(prefix="/bluetooth", tags=["bluetooth"])


@router.get("/status", response_model=TransportStatusResponse)
def bluetooth_status(transport: Transport) -> Any:
    return TransportStatusResponse(
        bluetooth=TransportStatusOut.from_status(transport.status())
    )


@router.post("/start", response_model=TransportStatusResponse)
def bluetooth_start(transport: Transport) -> Any:
    try:
        status = transport.start()
    except HealthSyncError as exc:
        raise to_http_exception(exc) from exc
    return TransportStatusResponse(bluetooth=TransportStatusOut.from_status(status))


@router.post("/stop", response_model=TransportStatusResponse)
def bluetooth_stop(transport: Transport) -> Any:
    try:
        status = transport.stop()
    except HealthSyncError as exc:
        raise to_http_exception(exc) from exc
    return TransportStatusResponse(bluetooth=TransportStatusOut.from_status(status))


@router.post("/test")
def bluetooth_test(transport: Transport) -> dict:
    try:
        result = transport.test()
    except HealthSyncError as exc:
        raise to_http_exception(exc) from exc
    return {"success": True, "result": result}
