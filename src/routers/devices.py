"""Per-device settings endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from src.dependencies import Registry, to_http_exception
from src.healthsync.errors import HealthSyncError
from src.models.devices import (
    SettingOut,
    SettingResponse,
    SettingsListResponse,
    SettingUpdate,
)

router = APIRouter(prefix="/devices", tags=["devices"])


@router.get("/{device_id}/settings", response_model=SettingsListResponse)
def list_settings(device_id: str, registry: Registry) -> Any:
    try:
        settings = registry.list_settings(device_id)
    except HealthSyncError as exc:
        raise to_http_exception(exc) from exc
    return SettingsListResponse(
        device_id=device_id,
        settings=[SettingOut.from_setting(s) for s in settings],
    )


@router.get("/{device_id}/settings/{key}", response_model=SettingResponse)
def get_setting(device_id: str, key: str, registry: Registry) -> Any:
    try:
        setting = registry.get_setting(device_id, key)
    except HealthSyncError as exc:
        raise to_http_exception(exc) from exc
    return SettingResponse(setting=SettingOut.from_setting(setting))


@router.put("/{device_id}/settings/{key}", response_model=SettingResponse)
def put_setting(device_id: str, key: str, body: SettingUpdate, registry: Registry) -> Any:
    """Create or replace one setting value."""
    try:
        setting = registry.put_setting(device_id, key, body.value)
    except HealthSyncError as exc:
        raise to_http_exception(exc) from exc
    return SettingResponse(setting=SettingOut.from_setting(setting))
