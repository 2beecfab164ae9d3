"""Per-message forwarding to the target namespace.

The forwarder strictly follows this order:
1) Recompute the remaining TTL from the original enqueue time
2) Copy body, addressing fields, and application properties verbatim
3) Stamp the replication markers
4) Send through a sender scoped to this single call
5) Classify any send failure as transient (broker busy) or fatal

There is no retry here: failures propagate so the worker withholds the
acknowledgement and the broker's redelivery takes over.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from core.config import ReplicationConfig
from core.errors import BrokerErrorReason, ForwardError, broker_reason, classify_failure
from core.models import (
    ENQUEUE_TIME_PROPERTY,
    ORIGIN_PROPERTY,
    REPLICATED_PROPERTY,
    SEQUENCE_PROPERTY,
    FailureClassification,
    InboundMessage,
    OutboundMessage,
)
from core.ports import BrokerMessagingPort

LOGGER = logging.getLogger(__name__)

# Replicas always get at least this long to be delivered on the target.
MIN_FORWARD_TTL = timedelta(minutes=4)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def remaining_ttl(message: InboundMessage, default_ttl: timedelta, now: datetime) -> timedelta:
    """Return the TTL the replica should carry.

    Messages that never expire get ``default_ttl``. The result is never
    shorter than MIN_FORWARD_TTL, even for messages already past expiry.
    """

    if message.time_to_live is None:
        remaining = default_ttl
    else:
        elapsed = timedelta(0)
        if message.enqueued_time_utc is not None:
            elapsed = now - message.enqueued_time_utc
        remaining = message.time_to_live - elapsed
    return max(remaining, MIN_FORWARD_TTL)


def build_outbound(message: InboundMessage, time_to_live: timedelta) -> OutboundMessage:
    """Copy an inbound message into a replica carrying the replication markers."""

    properties = dict(message.application_properties)
    properties[REPLICATED_PROPERTY] = 1
    properties[ORIGIN_PROPERTY] = message.message_id
    properties[ENQUEUE_TIME_PROPERTY] = message.enqueued_time_utc
    properties[SEQUENCE_PROPERTY] = message.sequence_number

    return OutboundMessage(
        body=message.body,
        time_to_live=time_to_live,
        application_properties=properties,
        message_id=message.message_id,
        correlation_id=message.correlation_id,
        content_type=message.content_type,
        subject=message.subject,
        partition_key=message.partition_key,
        reply_to=message.reply_to,
        reply_to_session_id=message.reply_to_session_id,
        session_id=message.session_id,
        to=message.to,
        body_type=message.body_type,
    )


class MessageForwarder:
    """Sends replicas of source messages to the same-named target topic."""

    def __init__(
        self,
        target: BrokerMessagingPort,
        config: ReplicationConfig,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._target = target
        self._default_ttl = config.default_ttl
        self._clock = clock

    async def forward(self, message: InboundMessage, topic_name: str) -> None:
        """Replicate one message; raises ForwardError on any send failure."""

        ttl = remaining_ttl(message, self._default_ttl, self._clock())
        outbound = build_outbound(message, ttl)
        message_id = message.message_id or "(no id)"

        LOGGER.info("Forwarding message %s from topic %s with TTL %s", message_id, topic_name, ttl)
        try:
            async with self._target.create_sender(topic_name) as sender:
                await sender.send(outbound)
        except Exception as exc:
            classification = classify_failure(exc)
            self._log_failure(classification, exc, message_id, topic_name)
            raise ForwardError(classification, topic_name, message.message_id, exc) from exc

        LOGGER.debug("Successfully forwarded message %s to topic %s", message_id, topic_name)

    @staticmethod
    def _log_failure(
        classification: FailureClassification,
        exc: Exception,
        message_id: str,
        topic_name: str,
    ) -> None:
        if classification is FailureClassification.TRANSIENT:
            LOGGER.warning(
                "Temporary error forwarding message %s to topic %s - leaving it for redelivery: %s",
                message_id,
                topic_name,
                exc,
            )
        elif broker_reason(exc) is BrokerErrorReason.UNAUTHORIZED:
            LOGGER.error(
                "Authorization failed forwarding message %s to topic %s. Verify the target connection string: %s",
                message_id,
                topic_name,
                exc,
            )
        else:
            LOGGER.error("Error forwarding message %s to topic %s: %s", message_id, topic_name, exc)
