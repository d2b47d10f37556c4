"""Bluetooth fallback transport for platforms without a BLE peripheral stack."""

from __future__ import annotations

import logging
from typing import NoReturn

from src.healthsync.errors import ConfigurationError, TransportNotImplementedError
from src.healthsync.events import log_transport_operation
from src.healthsync.transports.base import FallbackTransport, TransportStatus

logger = logging.getLogger("healthsync.transports.bluetooth")


class UnsupportedBluetoothTransport(FallbackTransport):
    """Reports status honestly and refuses every state change.

    ``start()`` / ``stop()`` / ``test()`` raise ``ConfigurationError`` when the
    transport is disabled, else ``TransportNotImplementedError``.
    """

    NAME = "bluetooth"

    def __init__(
        self,
        enabled: bool = True,
        device_name: str | None = None,
        service_uuid: str | None = None,
    ) -> None:
        self.enabled = enabled
        self.device_name = device_name
        self.service_uuid = service_uuid
        self.last_error: str | None = None

    def _refuse(self, operation: str) -> NoReturn:
        if not self.enabled:
            log_transport_operation(operation, self.NAME, "disabled")
            raise ConfigurationError("Bluetooth is disabled in configuration")
        exc = TransportNotImplementedError(self.NAME, operation)
        self.last_error = str(exc)
        logger.warning("Bluetooth %s requested but not implemented on this platform", operation)
        log_transport_operation(operation, self.NAME, "not_implemented")
        raise exc

    def start(self) -> TransportStatus:
        self._refuse("start")

    def stop(self) -> TransportStatus:
        self._refuse("stop")

    def test(self) -> dict:
        self._refuse("test")

    def status(self) -> TransportStatus:
        return TransportStatus(
            transport=self.NAME,
            enabled=self.enabled,
            implemented=False,
            service_uuid=self.service_uuid,
            device_name=self.device_name,
            last_error=self.last_error,
        )
