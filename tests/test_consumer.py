"""Tests for decoding workspace request events."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pika
import pytest

from workspace_operator.errors import RecordDecodeError
from workspace_operator.events.consumer import EventConsumer, EventParseError, parse_event
from workspace_operator.events.models import EventType, WorkspaceRequestEvent
from workspace_operator.orchestration.codec import record_to_dict

from conftest import make_request


def _body(payload):
    return json.dumps(payload).encode("utf-8")


def test_parses_update_event():
    event = parse_event(_body({"type": "workspace.request.updated", "name": "alice-dev"}), {"x-message-id": "m-1"})
    assert event.type is EventType.REQUEST_UPDATED
    assert event.name == "alice-dev"
    assert event.message_id == "m-1"
    assert event.record is None
    assert not event.deleted


def test_event_type_may_come_from_headers():
    event = parse_event(_body({"name": "alice-dev"}), {"x-event-type": "workspace.request.updated"})
    assert event.type is EventType.REQUEST_UPDATED


def test_deleted_event_carries_record():
    record = make_request()
    event = parse_event(
        _body({"type": "workspace.request.deleted", "name": "alice-dev", "record": record_to_dict(record)})
    )
    assert event.deleted
    assert event.record == record


def test_unknown_event_type_is_ignored():
    assert parse_event(_body({"type": "workspace.created", "name": "x"})) is None


@pytest.mark.parametrize(
    "body",
    [
        b"not json",
        _body({"name": "alice-dev"}),
        _body({"type": "workspace.request.updated"}),
    ],
)
def test_malformed_messages_raise(body):
    with pytest.raises(EventParseError):
        parse_event(body)


def test_invalid_record_raises_decode_error():
    with pytest.raises(RecordDecodeError):
        parse_event(_body({"type": "workspace.request.deleted", "name": "alice-dev", "record": {"spec": {}}}))


def test_resync_events_are_not_accepted_from_the_broker():
    assert parse_event(_body({"type": "workspace.request.resync", "name": "alice-dev"})) is None


def test_record_must_belong_to_the_named_request():
    record = make_request(name="bob-dev")
    with pytest.raises(EventParseError):
        parse_event(_body({"type": "workspace.request.deleted", "name": "alice-dev", "record": record_to_dict(record)}))


def test_message_id_falls_back_to_amqp_property():
    event = parse_event(_body({"type": "workspace.request.updated", "name": "alice-dev"}), {}, message_id="m-2")
    assert event.message_id == "m-2"


def test_published_payload_parses_back_to_the_same_event():
    record = make_request()
    event = WorkspaceRequestEvent(type=EventType.REQUEST_DELETED, name="alice-dev", record=record)
    assert parse_event(_body(event.to_payload())) == event


class TestDispatch:
    def _consumer(self, handler):
        config = MagicMock()
        config.event_bindings = ["workspace.request.updated", "workspace.request.resync"]
        return EventConsumer(config, handler)

    def _deliver(self, consumer, body):
        channel = MagicMock()
        method = MagicMock(delivery_tag=7)
        properties = pika.BasicProperties(headers={"x-message-id": "m-1"})
        acked = consumer.dispatch(channel, method, properties, body)
        return acked, channel

    def test_handled_event_is_acked(self):
        handler = MagicMock()
        acked, channel = self._deliver(
            self._consumer(handler), _body({"type": "workspace.request.updated", "name": "alice-dev"})
        )
        assert acked
        channel.basic_ack.assert_called_once_with(7)
        assert handler.call_args.args[0].name == "alice-dev"

    def test_unsupported_event_is_acked_without_handling(self):
        handler = MagicMock()
        acked, channel = self._deliver(self._consumer(handler), _body({"type": "permit.created", "name": "x"}))
        assert acked
        handler.assert_not_called()

    def test_undecodable_event_is_rejected(self):
        handler = MagicMock()
        acked, channel = self._deliver(self._consumer(handler), b"not json")
        assert not acked
        channel.basic_nack.assert_called_once_with(7, requeue=False)
        handler.assert_not_called()

    def test_handler_failure_is_rejected_without_requeue(self):
        handler = MagicMock(side_effect=RuntimeError("redis down"))
        acked, channel = self._deliver(
            self._consumer(handler), _body({"type": "workspace.request.updated", "name": "alice-dev"})
        )
        assert not acked
        channel.basic_nack.assert_called_once_with(7, requeue=False)
        channel.basic_ack.assert_not_called()

    def test_resync_routing_key_is_never_bound(self):
        assert self._consumer(MagicMock()).routing_keys == ["workspace.request.updated"]
