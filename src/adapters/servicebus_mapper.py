"""Service Bus SDK-to-core mapping adapter.

This keeps azure-servicebus message and exception types out of the core.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Optional, Union

from azure.core.exceptions import (
    ClientAuthenticationError,
    HttpResponseError,
    ResourceExistsError,
    ResourceNotFoundError,
)
from azure.servicebus import ServiceBusMessage
from azure.servicebus.amqp import AmqpAnnotatedMessage, AmqpMessageBodyType
from azure.servicebus.exceptions import (
    MessageLockLostError,
    MessagingEntityAlreadyExistsError,
    MessagingEntityNotFoundError,
    ServiceBusAuthenticationError,
    ServiceBusAuthorizationError,
    ServiceBusServerBusyError,
    SessionLockLostError,
)

from core.errors import BrokerError, BrokerErrorReason
from core.models import BodyType, InboundMessage, OutboundMessage

# .NET publishers use TimeSpan.MaxValue for "never expires".
NEVER_EXPIRES = timedelta(days=10675199)

_THROTTLING_STATUS_CODES = {429, 503}


def _text(value: Any) -> Optional[str]:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


def _body(message: Any) -> tuple[Any, BodyType]:
    body = message.body
    body_type = getattr(message, "body_type", AmqpMessageBodyType.DATA)
    if body_type == AmqpMessageBodyType.VALUE:
        return body, BodyType.VALUE
    if body_type == AmqpMessageBodyType.SEQUENCE:
        # Received sequence bodies are a generator over the sections.
        return [list(section) for section in body], BodyType.SEQUENCE
    if isinstance(body, (bytes, bytearray)):
        return bytes(body), BodyType.DATA
    return b"".join(bytes(section) for section in body), BodyType.DATA


def _time_to_live(message: Any) -> Optional[timedelta]:
    ttl = message.time_to_live
    if ttl is None or ttl >= NEVER_EXPIRES:
        return None
    return ttl


def to_inbound_message(message: Any) -> InboundMessage:
    """Build a core InboundMessage from a ServiceBusReceivedMessage."""

    raw_properties = message.application_properties or {}
    # Received property keys arrive as bytes from the AMQP layer.
    properties = {_text(key): value for key, value in raw_properties.items()}
    body, body_type = _body(message)

    return InboundMessage(
        body=body,
        body_type=body_type,
        message_id=_text(message.message_id),
        correlation_id=_text(message.correlation_id),
        content_type=_text(message.content_type),
        subject=_text(message.subject),
        partition_key=_text(message.partition_key),
        reply_to=_text(message.reply_to),
        reply_to_session_id=_text(message.reply_to_session_id),
        session_id=_text(message.session_id),
        to=_text(message.to),
        enqueued_time_utc=message.enqueued_time_utc,
        time_to_live=_time_to_live(message),
        delivery_count=message.delivery_count or 0,
        sequence_number=message.sequence_number,
        application_properties=properties,
    )


def to_service_bus_message(message: OutboundMessage) -> Union[ServiceBusMessage, AmqpAnnotatedMessage]:
    """Build the SDK message sent to the target namespace.

    DATA bodies go out as a ServiceBusMessage. VALUE and SEQUENCE bodies have
    no ServiceBusMessage form, so they are sent as an AmqpAnnotatedMessage
    carrying the same header, properties and annotations.
    """

    data_body = message.body if message.body_type is BodyType.DATA else b""
    service_bus_message = ServiceBusMessage(
        data_body,
        application_properties=dict(message.application_properties),
        session_id=message.session_id,
        message_id=message.message_id,
        time_to_live=message.time_to_live,
        content_type=message.content_type,
        correlation_id=message.correlation_id,
        subject=message.subject,
        partition_key=message.partition_key,
        to=message.to,
        reply_to=message.reply_to,
        reply_to_session_id=message.reply_to_session_id,
    )
    # The SDK fills a missing message id with a random UUID while building
    # the message; the replica must carry the original value, None included.
    service_bus_message.message_id = message.message_id

    if message.body_type is BodyType.DATA:
        return service_bus_message

    raw = service_bus_message.raw_amqp_message
    if message.body_type is BodyType.VALUE:
        body = {"value_body": message.body}
    else:
        body = {"sequence_body": message.body}
    return AmqpAnnotatedMessage(
        header=raw.header,
        properties=raw.properties,
        application_properties=raw.application_properties,
        annotations=raw.annotations,
        **body,
    )


def broker_reason_for(exc: BaseException) -> BrokerErrorReason:
    """Map an azure-servicebus / azure-core exception onto a broker reason."""

    if isinstance(exc, BrokerError):
        return exc.reason
    if isinstance(exc, ServiceBusServerBusyError):
        return BrokerErrorReason.SERVICE_BUSY
    if isinstance(exc, (MessageLockLostError, SessionLockLostError)):
        return BrokerErrorReason.LOCK_LOST
    if isinstance(exc, (MessagingEntityNotFoundError, ResourceNotFoundError)):
        return BrokerErrorReason.ENTITY_NOT_FOUND
    if isinstance(exc, (MessagingEntityAlreadyExistsError, ResourceExistsError)):
        return BrokerErrorReason.ENTITY_ALREADY_EXISTS
    if isinstance(exc, (ServiceBusAuthorizationError, ServiceBusAuthenticationError, ClientAuthenticationError)):
        return BrokerErrorReason.UNAUTHORIZED
    if isinstance(exc, HttpResponseError) and exc.status_code in _THROTTLING_STATUS_CODES:
        return BrokerErrorReason.SERVICE_BUSY
    if isinstance(exc, PermissionError):
        return BrokerErrorReason.UNAUTHORIZED
    return BrokerErrorReason.GENERAL


def broker_error_from(exc: Exception) -> BrokerError:
    """Wrap an SDK exception so the core can classify it."""

    if isinstance(exc, BrokerError):
        return exc
    reason = broker_reason_for(exc)
    return BrokerError(reason, f"{type(exc).__name__}: {exc}")
