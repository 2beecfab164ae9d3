from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from azure.core.exceptions import HttpResponseError, ResourceExistsError, ResourceNotFoundError
from azure.servicebus.amqp import AmqpAnnotatedMessage, AmqpMessageBodyType
from azure.servicebus.exceptions import MessageLockLostError, ServiceBusServerBusyError

from adapters.servicebus_mapper import (
    NEVER_EXPIRES,
    broker_error_from,
    broker_reason_for,
    to_inbound_message,
    to_service_bus_message,
)
from core.errors import BrokerErrorReason, classify_failure
from core.forwarder import build_outbound
from core.models import BodyType, FailureClassification, InboundMessage, OutboundMessage


class DummyReceivedMessage:
    def __init__(self, **overrides) -> None:
        self.body = iter([b"hello ", b"world"])
        self.body_type = AmqpMessageBodyType.DATA
        self.message_id = "msg-1"
        self.correlation_id = ""
        self.content_type = None
        self.subject = "subject"
        self.partition_key = None
        self.reply_to = None
        self.reply_to_session_id = None
        self.session_id = None
        self.to = None
        self.enqueued_time_utc = datetime(2024, 1, 1, tzinfo=timezone.utc)
        self.time_to_live = timedelta(minutes=30)
        self.delivery_count = 2
        self.sequence_number = 99
        self.application_properties = {b"tenant": "acme", b"attempt": 3}
        for key, value in overrides.items():
            setattr(self, key, value)


def test_inbound_mapping_decodes_keys_and_joins_body() -> None:
    message = to_inbound_message(DummyReceivedMessage())

    assert message.body == b"hello world"
    assert message.application_properties == {"tenant": "acme", "attempt": 3}
    assert message.sequence_number == 99
    assert message.delivery_count == 2
    assert message.time_to_live == timedelta(minutes=30)


def test_inbound_mapping_keeps_null_and_empty_apart() -> None:
    message = to_inbound_message(DummyReceivedMessage())

    assert message.correlation_id == ""
    assert message.content_type is None


def test_inbound_mapping_treats_max_ttl_as_unbounded() -> None:
    assert to_inbound_message(DummyReceivedMessage(time_to_live=None)).time_to_live is None
    assert to_inbound_message(DummyReceivedMessage(time_to_live=NEVER_EXPIRES)).time_to_live is None


def test_outbound_mapping_carries_ttl_and_markers() -> None:
    outbound = OutboundMessage(
        body=b"payload",
        time_to_live=timedelta(minutes=20),
        application_properties={"replicated": 1, "repl-origin": "msg-1"},
        message_id="msg-1",
        correlation_id="corr-1",
        subject="orders",
    )

    message = to_service_bus_message(outbound)

    assert message.time_to_live == timedelta(minutes=20)
    assert message.message_id == "msg-1"
    assert message.correlation_id == "corr-1"
    assert message.subject == "orders"
    assert message.application_properties["replicated"] == 1
    assert message.application_properties["repl-origin"] == "msg-1"


@pytest.mark.parametrize("message_id", [None, ""])
def test_outbound_mapping_keeps_missing_message_id(message_id) -> None:
    inbound = InboundMessage(body=b"payload", message_id=message_id, sequence_number=1)

    message = to_service_bus_message(build_outbound(inbound, timedelta(minutes=20)))

    assert message.message_id == message_id
    assert message.raw_amqp_message.properties.message_id == message_id


def test_inbound_mapping_keeps_value_and_sequence_bodies() -> None:
    value = to_inbound_message(DummyReceivedMessage(body={"a": 1}, body_type=AmqpMessageBodyType.VALUE))
    sequence = to_inbound_message(
        DummyReceivedMessage(body=iter([[1, 2], ["x"]]), body_type=AmqpMessageBodyType.SEQUENCE)
    )

    assert value.body == {"a": 1}
    assert value.body_type is BodyType.VALUE
    assert sequence.body == [[1, 2], ["x"]]
    assert sequence.body_type is BodyType.SEQUENCE


def test_value_body_is_sent_as_amqp_value() -> None:
    inbound = InboundMessage(
        body={"a": 1},
        body_type=BodyType.VALUE,
        message_id="msg-1",
        subject="orders",
        sequence_number=5,
    )

    message = to_service_bus_message(build_outbound(inbound, timedelta(minutes=20)))

    assert isinstance(message, AmqpAnnotatedMessage)
    assert message.body_type is AmqpMessageBodyType.VALUE
    assert message.body == {"a": 1}
    assert message.properties.message_id == "msg-1"
    assert message.properties.subject == "orders"
    assert message.header.time_to_live == 20 * 60 * 1000
    assert message.application_properties["replicated"] == 1
    assert message.application_properties["repl-sequence"] == 5


def test_sequence_body_is_sent_as_amqp_sequence() -> None:
    inbound = InboundMessage(body=[[1, 2], ["x"]], body_type=BodyType.SEQUENCE, message_id=None)

    message = to_service_bus_message(build_outbound(inbound, timedelta(minutes=20)))

    assert isinstance(message, AmqpAnnotatedMessage)
    assert message.body_type is AmqpMessageBodyType.SEQUENCE
    assert list(message.body) == [[1, 2], ["x"]]
    assert message.properties.message_id is None


def test_server_busy_maps_to_transient() -> None:
    error = broker_error_from(ServiceBusServerBusyError(message="busy"))

    assert error.reason is BrokerErrorReason.SERVICE_BUSY
    assert classify_failure(error) is FailureClassification.TRANSIENT


def test_lock_lost_maps_to_fatal() -> None:
    error = broker_error_from(MessageLockLostError(message="lock lost"))

    assert error.reason is BrokerErrorReason.LOCK_LOST
    assert classify_failure(error) is FailureClassification.FATAL


def test_management_errors_map_to_provisioning_reasons() -> None:
    assert broker_reason_for(ResourceNotFoundError("missing")) is BrokerErrorReason.ENTITY_NOT_FOUND
    assert broker_reason_for(ResourceExistsError("exists")) is BrokerErrorReason.ENTITY_ALREADY_EXISTS
    assert broker_reason_for(ValueError("other")) is BrokerErrorReason.GENERAL


def test_throttled_http_response_is_service_busy() -> None:
    error = HttpResponseError("throttled")
    error.status_code = 429

    assert broker_reason_for(error) is BrokerErrorReason.SERVICE_BUSY
