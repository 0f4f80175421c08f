"""Domain models for workspace request delivery and audit events."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from ..orchestration.codec import record_to_dict
from ..orchestration.models import WorkspaceRequest

EVENT_TYPE_HEADER = "x-event-type"
MESSAGE_ID_HEADER = "x-message-id"


class EventType(str, Enum):
    """Event types that trigger a reconciliation pass."""

    REQUEST_UPDATED = "workspace.request.updated"
    REQUEST_DELETED = "workspace.request.deleted"
    REQUEST_RESYNC = "workspace.request.resync"

    @property
    def routed(self) -> bool:
        """Whether the event travels through the broker; resync is in-process only."""

        return self is not EventType.REQUEST_RESYNC


class AuditOutcome(str, Enum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


@dataclass
class WorkspaceRequestEvent:
    """A delivery of one workspace request to the reconciler.

    Deleted events carry the last stored record, since the store no longer
    holds it by the time the event is consumed.
    """

    type: EventType
    name: str
    record: Optional[WorkspaceRequest] = None
    message_id: Optional[str] = None

    @property
    def deleted(self) -> bool:
        return self.type == EventType.REQUEST_DELETED

    @property
    def routing_key(self) -> str:
        return self.type.value

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"type": self.type.value, "name": self.name}
        if self.record is not None:
            payload["record"] = record_to_dict(self.record)
        return payload


__all__ = [
    "EVENT_TYPE_HEADER",
    "MESSAGE_ID_HEADER",
    "AuditOutcome",
    "EventType",
    "WorkspaceRequestEvent",
]
