"""Fallback transport capability.

A fallback transport is a short-range channel (e.g. Bluetooth LE) a device
can use when the primary HTTP path is unreachable.  The core only defines the
capability; platforms without a real implementation raise
``TransportNotImplementedError`` instead of pretending to succeed.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass
class TransportStatus:
    """Observable state of a fallback transport.

    Attributes:
        transport:         Transport slug (e.g. 'bluetooth').
        enabled:           Allowed by configuration.
        implemented:       A real implementation exists on this platform.
        advertising:       Currently accepting peers.
        connected_devices: Ids of peers connected over this transport.
        service_uuid:      Advertised service identifier.
        device_name:       Advertised local name.
        last_error:        Last failure message, if any.
    """

    transport: str
    enabled: bool
    implemented: bool
    advertising: bool = False
    connected_devices: list[str] = field(default_factory=list)
    service_uuid: str | None = None
    device_name: str | None = None
    last_error: str | None = None


class FallbackTransport(ABC):
    """Abstract base for fallback transports.

    Subclasses must implement ``start()``, ``stop()``, ``test()`` and
    ``status()``.
    """

    #: Slug used in configuration and events.
    NAME: str = "unknown"

    @abstractmethod
    def start(self) -> TransportStatus:
        """Begin advertising / accepting peers."""

    @abstractmethod
    def stop(self) -> TransportStatus:
        """Stop advertising and drop connected peers."""

    @abstractmethod
    def test(self) -> dict:
        """Run a self-test and return a result mapping."""

    @abstractmethod
    def status(self) -> TransportStatus:
        """Current state.  Never raises."""
