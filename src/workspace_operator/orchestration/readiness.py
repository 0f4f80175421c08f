"""Aggregate service instance readiness into a single verdict."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from ..errors import ReadinessQueryError, ResourceStoreError
from .stores import InstanceStatus, ServiceCatalogStore

LOGGER = logging.getLogger(__name__)

READY_CONDITION = "Ready"
FAILED_CONDITION = "Failed"


def condition_true(conditions: Optional[Iterable[Mapping[str, Any]]], condition_type: str) -> bool:
    """Return True when ``conditions`` holds ``condition_type`` with status ``True``."""

    for condition in conditions or ():
        if condition.get("type") == condition_type and condition.get("status") == "True":
            return True
    return False


def status_from_conditions(conditions: Optional[Iterable[Mapping[str, Any]]]) -> InstanceStatus:
    conditions = list(conditions or ())
    message = next(
        (c.get("message") for c in conditions if c.get("type") == READY_CONDITION and c.get("message")),
        None,
    )
    return InstanceStatus(
        ready=condition_true(conditions, READY_CONDITION),
        failed=condition_true(conditions, FAILED_CONDITION),
        message=message,
    )


@dataclass
class ReadinessReport:
    """Per-service readiness observed in one polling pass."""

    statuses: Dict[str, InstanceStatus] = field(default_factory=dict)

    @property
    def all_ready(self) -> bool:
        return all(status.ready for status in self.statuses.values())

    @property
    def pending(self) -> List[str]:
        return sorted(name for name, status in self.statuses.items() if not status.ready)

    @property
    def failed(self) -> List[str]:
        return sorted(name for name, status in self.statuses.items() if status.failed)


def evaluate_readiness(
    catalog: ServiceCatalogStore,
    namespace: str,
    instances: Mapping[str, str],
    before_call: Optional[Callable[[], None]] = None,
) -> ReadinessReport:
    """Query every instance in ``instances`` (service name -> instance id).

    A failed query raises ``ReadinessQueryError`` rather than counting as
    not ready, so the caller retries instead of waiting on a stale answer.
    """

    report = ReadinessReport()
    for service_name, instance_id in sorted(instances.items()):
        if before_call is not None:
            before_call()
        try:
            status = catalog.get_instance_status(namespace, instance_id)
        except ResourceStoreError as exc:
            raise ReadinessQueryError(
                f"failed to get status of service instance {instance_id!r} ({service_name})"
            ) from exc
        report.statuses[service_name] = status
        LOGGER.debug(
            "Service instance status",
            extra={"service": service_name, "instance": instance_id, "ready": status.ready},
        )
        if status.failed:
            LOGGER.warning(
                "Service instance reports a failed condition",
                extra={"service": service_name, "instance": instance_id, "reason": status.message},
            )
    return report


__all__ = [
    "READY_CONDITION",
    "FAILED_CONDITION",
    "condition_true",
    "status_from_conditions",
    "ReadinessReport",
    "evaluate_readiness",
]
