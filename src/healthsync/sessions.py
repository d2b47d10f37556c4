"""Sync session tracker.

Sessions are pure observability records: nothing in the core reads session
history to gate or retry a sync, and two sessions for the same device may be
open at once.  The only rule enforced is the lifecycle
``started → completed | failed``, exactly once.
"""

from __future__ import annotations

import logging
import uuid
from typing import Callable

from src.healthsync.base import (
    SessionKind,
    SessionStatus,
    SyncSession,
    now_ms,
)
from src.healthsync.errors import (
    InvalidRequestError,
    InvalidTransitionError,
    SessionNotFoundError,
)
from src.healthsync.events import log_sync_operation
from src.healthsync.record_store import RecordStore
from src.healthsync.registry import DeviceRegistry
from src.healthsync.validation import INT64_MAX

logger = logging.getLogger("healthsync.sessions")


class SessionTracker:
    def __init__(
        self,
        store: RecordStore,
        registry: DeviceRegistry,
        default_device_type: str = "wearos",
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.store = store
        self.registry = registry
        self.default_device_type = default_device_type
        self._clock = clock

    def start(self, device_id: str, kind: str | SessionKind = SessionKind.WIFI) -> SyncSession:
        """Open a session with status ``started``.  Touches the device."""
        try:
            session_kind = SessionKind(kind)
        except ValueError:
            raise InvalidRequestError(
                'Sync type must be either "wifi" or "bluetooth"'
            ) from None

        self.registry.touch(device_id, self.default_device_type)
        session = SyncSession(
            id=str(uuid.uuid4()),
            device_id=device_id,
            kind=session_kind,
            status=SessionStatus.STARTED,
            start_time=self._clock(),
        )
        self.store.insert_session(session)

        log_sync_operation(
            "sync_started", device_id, "started",
            sessionId=session.id, syncType=session_kind.value,
        )
        return session

    def complete(
        self,
        session_id: str,
        records_synced: int = 0,
        error: str | None = None,
    ) -> SyncSession:
        """Close a started session as completed, or failed when ``error`` is set.

        Raises:
            SessionNotFoundError:   Unknown session id.
            InvalidTransitionError: Session already completed or failed; the
                                    stored terminal state is left unchanged.
        """
        if not 0 <= records_synced <= INT64_MAX:
            raise InvalidRequestError("recordsSynced must be a non-negative integer")

        current = self.store.get_session(session_id)
        if current is None:
            raise SessionNotFoundError(session_id)
        if current.status.is_terminal:
            raise InvalidTransitionError(session_id, current.status.value)

        status = SessionStatus.FAILED if error else SessionStatus.COMPLETED
        closed = self.store.close_session(
            session_id, status, records_synced, error or None, self._clock()
        )
        updated = self.store.get_session(session_id)
        if updated is None:
            raise SessionNotFoundError(session_id)
        if not closed:
            # Lost a race with a concurrent completion.
            raise InvalidTransitionError(session_id, updated.status.value)

        if status is SessionStatus.FAILED:
            logger.warning("Sync session %s for %s failed: %s", session_id, updated.device_id, error)
        log_sync_operation(
            "sync_completed", updated.device_id, status.value,
            sessionId=session_id,
            syncType=updated.kind.value,
            recordsSynced=records_synced,
            errorMessage=error,
        )
        return updated

    def get(self, session_id: str) -> SyncSession:
        session = self.store.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def latest_for_device(self, device_id: str) -> SyncSession | None:
        return self.store.latest_session(device_id)

    def list_for_device(self, device_id: str, limit: int = 50, offset: int = 0) -> list[SyncSession]:
        if not 1 <= limit <= 100 or not 0 <= offset <= INT64_MAX:
            raise InvalidRequestError("limit must be 1..100 and offset non-negative")
        return self.store.list_sessions(device_id, limit, offset)
