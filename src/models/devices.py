"""Pydantic models for per-device settings and fallback transport status."""

from __future__ import annotations

from typing import Any

from src.healthsync.base import DeviceSetting
from src.healthsync.transports import TransportStatus
from src.models.base import HealthSyncBase, ResponseEnvelope


# ---------- Settings ----------

class SettingUpdate(HealthSyncBase):
    value: Any = None


class SettingOut(HealthSyncBase):
    device_id: str
    key: str
    value: Any = None
    updated_at: int

    @classmethod
    def from_setting(cls, setting: DeviceSetting) -> SettingOut:
        return cls.model_validate(setting)


class SettingResponse(ResponseEnvelope):
    setting: SettingOut


class SettingsListResponse(ResponseEnvelope):
    device_id: str
    settings: list[SettingOut]


# ---------- Fallback transport ----------

class TransportStatusOut(HealthSyncBase):
    transport: str
    enabled: bool
    implemented: bool
    advertising: bool
    connected_devices: list[str]
    service_uuid: str | None = None
    device_name: str | None = None
    last_error: str | None = None

    @classmethod
    def from_status(cls, status: TransportStatus) -> TransportStatusOut:
        return cls.model_validate(status)


class TransportStatusResponse(ResponseEnvelope):
    bluetooth: TransportStatusOut
