"""Fallback transports for HealthSync.

Available transports:
    UnsupportedBluetoothTransport — status only; state changes are not implemented
"""

from __future__ import annotations

from src.config import Settings
from src.healthsync.transports.base import FallbackTransport, TransportStatus
from src.healthsync.transports.bluetooth import UnsupportedBluetoothTransport

__all__ = [
    "FallbackTransport",
    "TransportStatus",
    "UnsupportedBluetoothTransport",
    "get_transport",
]

# Registry: platform slug → bluetooth transport class
TRANSPORT_REGISTRY: dict[str, type[FallbackTransport]] = {
    "unsupported": UnsupportedBluetoothTransport,
}


def get_transport(settings: Settings) -> FallbackTransport:
    """Build the bluetooth transport for ``settings.bluetooth_platform``.

    Raises:
        KeyError: If the platform is not registered.
    """
    platform = settings.bluetooth_platform
    if platform not in TRANSPORT_REGISTRY:
        raise KeyError(
            f"No bluetooth transport registered for platform '{platform}'. "
            f"Available: {list(TRANSPORT_REGISTRY)}"
        )
    return TRANSPORT_REGISTRY[platform](
        enabled=settings.bluetooth_enabled,
        device_name=settings.bluetooth_device_name,
        service_uuid=settings.bluetooth_service_uuid,
    )
