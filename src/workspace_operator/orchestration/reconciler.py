"""Drive workspace requests through their provisioning phases."""
from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import Dict, Optional, Protocol

from ..errors import (
    InvariantViolation,
    ReconcileCancelled,
    ReconcileError,
    WorkspaceOperatorError,
)
from .codec import required_services
from .models import Phase, WorkspaceRequest
from .phases import PHASE_EXECUTORS, PhaseContext, PhaseExecutor

LOGGER = logging.getLogger(__name__)


class StatusWriter(Protocol):
    def update_status(self, request: WorkspaceRequest) -> WorkspaceRequest:
        """Persist ``request.status`` if the stored version still matches."""


class Reconciler:
    """Dispatch a request to its phase executor and persist the result."""

    def __init__(
        self,
        context: PhaseContext,
        store: StatusWriter,
        executors: Optional[Dict[Phase, PhaseExecutor]] = None,
    ) -> None:
        self._context = context
        self._store = store
        self._executors = dict(PHASE_EXECUTORS if executors is None else executors)

    def reconcile(
        self,
        request: WorkspaceRequest,
        deleted: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> WorkspaceRequest:
        """Run one reconciliation pass and return the request as now stored.

        Deleted requests and requests in a phase without an executor are
        returned unchanged. Any failure raises ``ReconcileError`` chained to the
        typed cause, and nothing is written.
        """

        phase = request.status.phase
        if deleted:
            LOGGER.debug("Ignoring deleted workspace request", extra={"request": request.name})
            return request
        executor = self._executors.get(phase)
        if executor is None:
            LOGGER.debug("No executor for phase", extra={"request": request.name, "phase": phase.value})
            return request

        LOGGER.info("Reconciling workspace request", extra={"request": request.name, "phase": phase.value})
        context = replace(self._context, cancel_event=cancel_event)
        try:
            updated = executor(request, context)
            if updated == request:
                return request
            self._check_invariants(request, updated)
            context.check_cancelled()
            stored = self._store.update_status(updated)
        except WorkspaceOperatorError as exc:
            log = LOGGER.info if isinstance(exc, ReconcileCancelled) else LOGGER.warning
            log(
                "Workspace request phase failed",
                extra={"request": request.name, "phase": phase.value, "error": str(exc)},
            )
            raise ReconcileError(request.name, phase.value, exc) from exc

        LOGGER.info(
            "Workspace request advanced",
            extra={
                "request": request.name,
                "phase": phase.value,
                "next_phase": stored.status.phase.value,
                "version": stored.metadata.resource_version,
            },
        )
        return stored

    @staticmethod
    def _check_invariants(before: WorkspaceRequest, after: WorkspaceRequest) -> None:
        if after.metadata != before.metadata or after.spec != before.spec:
            raise InvariantViolation("phase executors may only change the status")
        if after.status.phase.order < before.status.phase.order:
            raise InvariantViolation(
                f"phase regressed from {before.status.phase.value!r} to {after.status.phase.value!r}"
            )
        if before.status.namespace and after.status.namespace != before.status.namespace:
            raise InvariantViolation("namespace changed after being assigned")
        required = set(required_services(after.spec))
        unknown = set(after.status.provisioned_services) - required
        if unknown:
            raise InvariantViolation(f"provisioned services not requested: {sorted(unknown)}")
        if not set(before.status.provisioned_services.items()) <= set(after.status.provisioned_services.items()):
            raise InvariantViolation("provisioned services may only grow")
        if after.status.ready and (
            after.status.phase is not Phase.COMPLETE
            or required - set(after.status.provisioned_services)
        ):
            raise InvariantViolation("ready set before every required service was provisioned")


__all__ = ["Reconciler", "StatusWriter"]
