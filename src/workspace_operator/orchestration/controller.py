"""Route delivered workspace request events into the reconciler."""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional

from ..errors import (
    CatalogResolutionError,
    PersistenceError,
    ReconcileCancelled,
    ReconcileError,
    ValidationError,
)
from ..events.models import AuditOutcome, EventType, WorkspaceRequestEvent
from ..events.publisher import AuditEventPublisher, WorkspaceEventPublisher
from ..services.record_store import WorkspaceRequestStore
from .models import WorkspaceRequest
from .reconciler import Reconciler

LOGGER = logging.getLogger(__name__)


@dataclass
class _NameLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    holders: int = 0


class WorkspaceController:
    """Primary entry point for delivering workspace requests to the reconciler.

    Deliveries of the same request are serialized; distinct requests may be
    handled concurrently by the consumer and resync threads.
    """

    def __init__(
        self,
        store: WorkspaceRequestStore,
        reconciler: Reconciler,
        event_publisher: WorkspaceEventPublisher,
        audit_publisher: AuditEventPublisher,
    ) -> None:
        self._store = store
        self._reconciler = reconciler
        self._event_publisher = event_publisher
        self._audit_publisher = audit_publisher
        self._stop_event = threading.Event()
        self._locks: Dict[str, _NameLock] = {}
        self._locks_guard = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def handle_event(self, event: WorkspaceRequestEvent) -> None:
        """Reconcile the request named by ``event``."""

        LOGGER.info("Handling workspace request event", extra={"event_type": event.type.value, "request": event.name})
        with self._serialized(event.name):
            if event.deleted:
                if event.record is not None:
                    self._reconciler.reconcile(event.record, deleted=True)
                return
            request = self._store.get(event.name)
            if request is None:
                LOGGER.info("Workspace request no longer exists", extra={"request": event.name})
                return
            self._reconcile(request)

    def resync(self) -> int:
        """Deliver every unfinished request once; returns how many were delivered."""

        delivered = 0
        for request in self._store.list():
            if self._stop_event.is_set():
                break
            if request.status.phase.is_terminal:
                continue
            self.handle_event(WorkspaceRequestEvent(type=EventType.REQUEST_RESYNC, name=request.name))
            delivered += 1
        LOGGER.debug("Resync pass finished", extra={"delivered": delivered})
        return delivered

    def stop(self) -> None:
        """Abort in-flight reconciliation and refuse new passes."""

        self._stop_event.set()

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------
    def _reconcile(self, request: WorkspaceRequest) -> Optional[WorkspaceRequest]:
        phase = request.status.phase.value
        if self._stop_event.is_set():
            LOGGER.info("Controller stopping; skipping reconciliation", extra={"request": request.name})
            return None
        try:
            updated = self._reconciler.reconcile(request, cancel_event=self._stop_event)
        except ReconcileError as exc:
            self._handle_failure(request, exc)
            return None
        if updated.metadata.resource_version == request.metadata.resource_version:
            LOGGER.debug("Workspace request unchanged", extra={"request": request.name, "phase": phase})
            return updated
        self._audit_publisher.record_reconcile(
            updated,
            AuditOutcome.SUCCESS,
            {"phase": phase, "nextPhase": updated.status.phase.value, "ready": updated.status.ready},
        )
        if not updated.status.phase.is_terminal:
            self._announce_update(updated.name)
        return updated

    def _handle_failure(self, request: WorkspaceRequest, error: ReconcileError) -> None:
        cause = error.cause
        extra = {"request": request.name, "phase": error.phase, "error": str(cause)}
        if isinstance(cause, ReconcileCancelled):
            LOGGER.info("Reconciliation cancelled", extra=extra)
            return
        if isinstance(cause, (ValidationError, CatalogResolutionError, PersistenceError)):
            LOGGER.warning("Reconciliation failed", extra=extra)
        else:
            LOGGER.error("Reconciliation failed", extra=extra, exc_info=error)
        self._audit_publisher.record_reconcile(
            request,
            AuditOutcome.FAILURE,
            {"phase": error.phase, "error": str(cause), "errorType": cause.__class__.__name__},
        )

    def _announce_update(self, name: str) -> None:
        try:
            self._event_publisher.publish_updated(name)
        except Exception:
            LOGGER.exception("Failed to announce workspace request update; resync will redeliver", extra={"request": name})

    # ------------------------------------------------------------------
    # Utilities
    # ------------------------------------------------------------------
    @contextmanager
    def _serialized(self, name: str) -> Iterator[None]:
        """Hold the per-name lock; the entry is dropped once no delivery holds or awaits it."""

        with self._locks_guard:
            entry = self._locks.setdefault(name, _NameLock())
            entry.holders += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._locks_guard:
                entry.holders -= 1
                if entry.holders == 0:
                    del self._locks[name]


__all__ = ["WorkspaceController"]
