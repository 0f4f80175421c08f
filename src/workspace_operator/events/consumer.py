"""RabbitMQ consumer delivering workspace request events to the controller."""
from __future__ import annotations

import json
import logging
import threading
from typing import Any, Callable, List, Optional

import pika

from ..config import AppConfig
from ..errors import RecordDecodeError
from ..orchestration.models import WorkspaceRequest
from .models import EVENT_TYPE_HEADER, MESSAGE_ID_HEADER, EventType, WorkspaceRequestEvent

LOGGER = logging.getLogger(__name__)

RECONNECT_DELAY_SECONDS = 5


class EventParseError(ValueError):
    """A message body could not be turned into a workspace request event."""


def parse_event(
    body: bytes, headers: Optional[dict] = None, message_id: Optional[str] = None
) -> Optional[WorkspaceRequestEvent]:
    """Decode a message, returning None for event types this service does not handle.

    The event type comes from the body, falling back to the ``x-event-type``
    header. Resync events are never accepted from the broker.
    """

    headers = headers or {}
    try:
        payload = json.loads(body.decode("utf-8")) if body else {}
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise EventParseError("Message body is not valid JSON") from exc
    if not isinstance(payload, dict):
        raise EventParseError("Message body is not a JSON object")
    event_type = payload.get("type") or headers.get(EVENT_TYPE_HEADER)
    if not event_type:
        raise EventParseError("Received message without event type")
    try:
        event_enum = EventType(event_type)
    except ValueError:
        LOGGER.debug("Ignoring unsupported event type", extra={"event_type": event_type})
        return None
    if not event_enum.routed:
        LOGGER.debug("Ignoring in-process event type from broker", extra={"event_type": event_type})
        return None
    name = payload.get("name")
    if not name:
        raise EventParseError("Event payload missing name")
    record = None
    if payload.get("record"):
        try:
            record = WorkspaceRequest.model_validate(payload["record"])
        except ValueError as exc:
            raise RecordDecodeError(f"Event carries an invalid record for {name!r}") from exc
        if record.name != name:
            raise EventParseError(f"Event for {name!r} carries the record of {record.name!r}")
    return WorkspaceRequestEvent(
        type=event_enum,
        name=str(name),
        record=record,
        message_id=headers.get(MESSAGE_ID_HEADER) or message_id,
    )


class EventConsumer:
    """Consume workspace request events on a daemon thread.

    Every message is acknowledged exactly once. Undecodable messages and
    messages whose handler failed are rejected without requeue; the resync
    loop redelivers any request that still needs work.
    """

    def __init__(self, config: AppConfig, handler: Callable[[WorkspaceRequestEvent], None]) -> None:
        self._config = config
        self._handler = handler
        self._connection: Optional[pika.BlockingConnection] = None
        self._channel: Optional[pika.adapters.blocking_connection.BlockingChannel] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    @property
    def routing_keys(self) -> List[str]:
        keys = list(self._config.event_bindings)
        unroutable = [key for key in keys if key == EventType.REQUEST_RESYNC.value]
        if unroutable:
            LOGGER.warning("Resync events are not bound to the queue", extra={"routing_keys": unroutable})
        return [key for key in keys if key not in unroutable]

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            LOGGER.debug("Event consumer already running")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="event-consumer", daemon=True)
        self._thread.start()
        LOGGER.info("Event consumer thread started")

    def stop(self) -> None:
        """Signal the consumer to stop and wait for termination."""

        self._stop_event.set()
        if self._connection and self._connection.is_open:
            self._connection.add_callback_threadsafe(self._connection.close)
        if self._thread:
            self._thread.join(timeout=5)
        LOGGER.info("Event consumer thread stopped")

    def dispatch(self, channel: Any, method: Any, properties: Any, body: bytes) -> bool:
        """Hand one message to the handler; returns True if it was acknowledged."""

        headers = getattr(properties, "headers", None) or {}
        message_id = getattr(properties, "message_id", None)
        try:
            event = parse_event(body, headers, message_id)
        except (EventParseError, RecordDecodeError) as exc:
            LOGGER.warning(
                "Rejecting undecodable workspace request event",
                extra={"message_id": message_id, "error": str(exc)},
            )
            channel.basic_nack(method.delivery_tag, requeue=False)
            return False
        if event is not None:
            try:
                self._handler(event)
            except Exception:
                LOGGER.exception(
                    "Failed to handle workspace request event",
                    extra={"request": event.name, "event_type": event.type.value, "message_id": event.message_id},
                )
                channel.basic_nack(method.delivery_tag, requeue=False)
                return False
        channel.basic_ack(method.delivery_tag)
        return True

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self._connect()
                self._consume()
            except pika.exceptions.AMQPConnectionError as exc:
                LOGGER.error("RabbitMQ connection error", exc_info=exc)
                self._stop_event.wait(RECONNECT_DELAY_SECONDS)
            except Exception as exc:
                LOGGER.exception("Unhandled exception in event consumer", exc_info=exc)
                self._stop_event.wait(RECONNECT_DELAY_SECONDS)
            finally:
                self._cleanup()

    def _connect(self) -> None:
        rabbitmq = self._config.rabbitmq
        self._connection = pika.BlockingConnection(pika.URLParameters(rabbitmq.url))
        self._channel = self._connection.channel()
        self._channel.basic_qos(prefetch_count=rabbitmq.prefetch_count)
        self._channel.exchange_declare(exchange=rabbitmq.exchange, exchange_type="topic", durable=True)
        self._channel.queue_declare(queue=rabbitmq.queue, durable=True)
        routing_keys = self.routing_keys
        for routing_key in routing_keys:
            self._channel.queue_bind(queue=rabbitmq.queue, exchange=rabbitmq.exchange, routing_key=routing_key)
        LOGGER.info("Connected to RabbitMQ", extra={"queue": rabbitmq.queue, "routing_keys": routing_keys})

    def _consume(self) -> None:
        assert self._channel is not None
        for method, properties, body in self._channel.consume(self._config.rabbitmq.queue):
            if self._stop_event.is_set():
                break
            self.dispatch(self._channel, method, properties, body)

    def _cleanup(self) -> None:
        if self._channel and self._channel.is_open:
            self._channel.close()
        if self._connection and self._connection.is_open:
            self._connection.close()
        self._channel = None
        self._connection = None


__all__ = ["EventConsumer", "EventParseError", "parse_event"]
