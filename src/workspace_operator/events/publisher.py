"""RabbitMQ publishers for workspace request and audit events."""
from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import pika

from ..config import AppConfig
from ..orchestration.models import WorkspaceRequest
from .models import EVENT_TYPE_HEADER, MESSAGE_ID_HEADER, AuditOutcome, EventType, WorkspaceRequestEvent

LOGGER = logging.getLogger(__name__)

RECONCILE_ACTION = "RECONCILE"


class RabbitMQPublisher:
    """Publish persistent JSON messages to the workspace events exchange.

    Every message is stamped with a fresh message id, both as the AMQP
    property and as the ``x-message-id`` header the consumer logs against.
    """

    def __init__(self, config: AppConfig) -> None:
        self._exchange = config.rabbitmq.exchange
        self._parameters = pika.URLParameters(config.rabbitmq.url)

    def publish(
        self,
        routing_key: str,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Publish ``payload`` under ``routing_key`` and return its message id."""

        message_id = uuid.uuid4().hex
        connection: Optional[pika.BlockingConnection] = None
        try:
            connection = pika.BlockingConnection(self._parameters)
            channel = connection.channel()
            channel.basic_publish(
                exchange=self._exchange,
                routing_key=routing_key,
                body=json.dumps(payload).encode("utf-8"),
                properties=pika.BasicProperties(
                    content_type="application/json",
                    delivery_mode=2,
                    message_id=message_id,
                    headers={**(headers or {}), MESSAGE_ID_HEADER: message_id},
                ),
            )
            LOGGER.debug("Published event", extra={"routing_key": routing_key, "message_id": message_id})
        except pika.exceptions.AMQPError:
            LOGGER.exception("Failed to publish event", extra={"routing_key": routing_key})
            raise
        finally:
            if connection and connection.is_open:
                connection.close()
        return message_id


class WorkspaceEventPublisher:
    """Announce workspace request changes so the consumer delivers them again."""

    def __init__(self, publisher: RabbitMQPublisher) -> None:
        self._publisher = publisher

    def publish(self, event: WorkspaceRequestEvent) -> str:
        if not event.type.routed:
            raise ValueError(f"{event.type.value} events are delivered in-process, not through the broker")
        return self._publisher.publish(
            event.routing_key,
            event.to_payload(),
            headers={EVENT_TYPE_HEADER: event.type.value},
        )

    def publish_updated(self, name: str) -> str:
        return self.publish(WorkspaceRequestEvent(type=EventType.REQUEST_UPDATED, name=name))

    def publish_deleted(self, request: WorkspaceRequest) -> str:
        return self.publish(
            WorkspaceRequestEvent(type=EventType.REQUEST_DELETED, name=request.name, record=request)
        )


class AuditEventPublisher:
    """Publish one structured audit event per reconciliation outcome.

    Publishing is best effort: a broker failure is logged and never fails the
    reconciliation it describes.
    """

    def __init__(self, publisher: RabbitMQPublisher, routing_key: str = "audit.workspace.event") -> None:
        self._publisher = publisher
        self._routing_key = routing_key

    def record_reconcile(
        self,
        request: WorkspaceRequest,
        outcome: AuditOutcome,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        event = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "requestName": request.name,
            "resourceVersion": request.metadata.resource_version,
            "action": RECONCILE_ACTION,
            "outcome": outcome.value,
            "details": {key: value for key, value in (details or {}).items() if value is not None},
        }
        try:
            self._publisher.publish(self._routing_key, event)
        except Exception:
            LOGGER.exception(
                "Failed to publish audit event",
                extra={"request": request.name, "outcome": outcome.value},
            )


__all__ = ["RabbitMQPublisher", "WorkspaceEventPublisher", "AuditEventPublisher", "RECONCILE_ACTION"]
