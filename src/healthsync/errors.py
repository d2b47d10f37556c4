"""Exception taxonomy for the sync core.

The core never produces transport-specific codes; the HTTP layer maps these
classes onto status codes.

    HealthSyncError
    ├── RecordValidationError        one record rejected, batch continues
    ├── NotFoundError                unknown device / session
    ├── StateError                   whole request rejected before persistence
    ├── StorageError                 storage engine failure
    ├── ConfigurationError           operation disabled by configuration
    └── TransportNotImplementedError fallback transport has no implementation
"""

from __future__ import annotations


class HealthSyncError(Exception):
    """Base class for every error raised by the sync core."""


class RecordValidationError(HealthSyncError):
    """A single record failed structural, freshness or domain checks."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


# ---------- Not found ----------


class NotFoundError(HealthSyncError):
    pass


class DeviceNotFoundError(NotFoundError):
    def __init__(self, device_id: str) -> None:
        super().__init__(f"Device not found: {device_id}")
        self.device_id = device_id


class SessionNotFoundError(NotFoundError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Sync session not found: {session_id}")
        self.session_id = session_id


class SettingNotFoundError(NotFoundError):
    def __init__(self, device_id: str, key: str) -> None:
        super().__init__(f"Setting '{key}' not found for device {device_id}")
        self.device_id = device_id
        self.key = key


# ---------- Request-level state errors ----------


class StateError(HealthSyncError):
    pass


class InvalidTransitionError(StateError):
    def __init__(self, session_id: str, status: str) -> None:
        super().__init__(f"Cannot complete session {session_id} with status: {status}")
        self.session_id = session_id
        self.status = status


class UnsupportedDataTypeError(StateError):
    def __init__(self, data_type: str, supported: list[str]) -> None:
        super().__init__(f"Unsupported data type: {data_type}")
        self.data_type = data_type
        self.supported = supported


class BatchTooLargeError(StateError):
    def __init__(self, size: int, max_size: int) -> None:
        super().__init__(
            f"Batch size exceeds maximum allowed ({max_size}): got {size}"
        )
        self.size = size
        self.max_size = max_size


class InvalidRequestError(StateError):
    pass


# ---------- Infrastructure ----------


class StorageError(HealthSyncError):
    pass


class ConfigurationError(HealthSyncError):
    pass


class TransportNotImplementedError(HealthSyncError, NotImplementedError):
    def __init__(self, transport: str, operation: str) -> None:
        super().__init__(f"{transport} transport does not implement '{operation}'")
        self.transport = transport
        self.operation = operation
