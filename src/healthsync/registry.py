"""Device registry: identity, liveness, cursor and per-device settings.

Two distinct write paths exist on purpose:

- ``touch()`` is the implicit upsert every ingest, sync read and session start
  performs.  It creates the device on first contact and otherwise only bumps
  ``last_seen_at``; it never overwrites name, type or metadata.
- ``register()`` is the explicit client call.  It may overwrite name, type and
  metadata and reactivates a soft-deactivated device.  It never touches the
  cursor.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from src.healthsync.base import (
    Device,
    DeviceSetting,
    DeviceStatus,
    DeviceSummary,
    DeviceType,
    Metadata,
    now_ms,
)
from src.healthsync.errors import (
    DeviceNotFoundError,
    InvalidRequestError,
    SettingNotFoundError,
)
from src.healthsync.events import log_sync_operation
from src.healthsync.record_store import RecordStore
from src.healthsync.validation import INT64_MAX, validate_device_identity

logger = logging.getLogger("healthsync.registry")

SETTING_KEY_MAX_LENGTH = 100


def parse_device_type(value: str | DeviceType) -> DeviceType:
    try:
        return DeviceType(value)
    except ValueError:
        raise InvalidRequestError('Device type must be either "wearos" or "ios"') from None


class DeviceRegistry:
    """Owns every write to the ``devices`` and ``device_settings`` tables."""

    def __init__(self, store: RecordStore, clock: Callable[[], int] = now_ms) -> None:
        self.store = store
        self._clock = clock

    # ------------------------------------------------------------------
    # Implicit and explicit upserts
    # ------------------------------------------------------------------

    def touch(
        self,
        device_id: str,
        device_type: str | DeviceType,
        name: str | None = None,
    ) -> Device:
        """Create the device if absent, else update ``last_seen_at`` only."""
        error = validate_device_identity(device_id)
        if error:
            raise InvalidRequestError(error)
        dtype = parse_device_type(device_type)
        now = self._clock()

        created = self.store.create_device_if_absent(
            device_id,
            name or f"{dtype.value} Device",
            dtype,
            {"auto_created": True},
            now,
        )
        if created:
            logger.info("Created new device: %s (%s)", device_id, dtype.value)
        else:
            self.store.touch_device(device_id, now)

        device = self.store.get_device(device_id)
        if device is None:  # deleted between statements
            raise DeviceNotFoundError(device_id)
        return device

    def register(
        self,
        device_id: str,
        name: str,
        device_type: str | DeviceType,
        metadata: Metadata | None = None,
    ) -> tuple[Device, bool]:
        """Explicit registration.  Returns ``(device, created)``."""
        error = validate_device_identity(device_id, name, check_name=True)
        if error:
            raise InvalidRequestError(error)
        dtype = parse_device_type(device_type)

        existed = self.store.get_device(device_id) is not None
        self.store.upsert_registration(device_id, name, dtype, metadata or {}, self._clock())
        device = self.store.get_device(device_id)
        if device is None:
            raise DeviceNotFoundError(device_id)

        log_sync_operation(
            "device_updated" if existed else "device_registered",
            device_id,
            "success",
            deviceName=name,
            deviceType=dtype.value,
            previouslyRegistered=existed,
        )
        return device, not existed

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, device_id: str) -> Device:
        device = self.store.get_device(device_id)
        if device is None:
            raise DeviceNotFoundError(device_id)
        return device

    def status(self, device_id: str) -> DeviceStatus:
        """Device row, latest session and per-type record stats.

        Three independent reads with no snapshot isolation between them; the
        result is advisory only.
        """
        device = self.get(device_id)
        latest = self.store.latest_session(device_id)
        stats = self.store.device_data_stats(device_id)
        return DeviceStatus(device=device, latest_session=latest, data_stats=stats)

    def list_devices(self) -> list[DeviceSummary]:
        return self.store.list_device_summaries()

    # ------------------------------------------------------------------
    # Cursor and lifecycle
    # ------------------------------------------------------------------

    def advance_cursor(self, device_id: str, timestamp: int) -> int:
        """Raise the cursor to ``timestamp`` unless it is already higher.

        Returns:
            The cursor value stored after the call.
        """
        if not 0 <= timestamp <= INT64_MAX:
            raise InvalidRequestError("Valid timestamp is required")
        now = self._clock()
        cursor = self.store.advance_cursor(device_id, timestamp, now)
        if cursor is None:
            raise DeviceNotFoundError(device_id)
        self.store.touch_device(device_id, now)
        return cursor

    def deactivate(self, device_id: str) -> Device:
        """Soft-delete: the row and its records stay, ``active`` goes False."""
        if not self.store.set_active(device_id, False, self._clock()):
            raise DeviceNotFoundError(device_id)
        device = self.get(device_id)
        log_sync_operation(
            "device_unregistered", device_id, "success", deviceName=device.name
        )
        return device

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def put_setting(self, device_id: str, key: str, value: Any) -> DeviceSetting:
        if not key or len(key) > SETTING_KEY_MAX_LENGTH:
            raise InvalidRequestError(
                f"Setting key must be between 1 and {SETTING_KEY_MAX_LENGTH} characters"
            )
        self.get(device_id)
        self.store.upsert_setting(device_id, key, value, self._clock())
        setting = self.store.get_setting(device_id, key)
        if setting is None:
            raise SettingNotFoundError(device_id, key)
        logger.info("Setting '%s' saved for device %s", key, device_id)
        return setting

    def get_setting(self, device_id: str, key: str) -> DeviceSetting:
        setting = self.store.get_setting(device_id, key)
        if setting is None:
            raise SettingNotFoundError(device_id, key)
        return setting

    def list_settings(self, device_id: str) -> list[DeviceSetting]:
        self.get(device_id)
        return self.store.list_settings(device_id)
