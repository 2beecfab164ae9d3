"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any SDK-specific message types.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional

# Application property names stamped on every replica.
REPLICATED_PROPERTY = "replicated"
ORIGIN_PROPERTY = "repl-origin"
ENQUEUE_TIME_PROPERTY = "repl-enqueue-time"
SEQUENCE_PROPERTY = "repl-sequence"

REPLICATION_RULE_NAME = "ReplicationFilter"
DEFAULT_RULE_NAME = "$Default"
REPLICATION_FILTER = "replicated IS NULL"
REPLICATION_ACTION = "SET replicated = 1"


class FailureClassification(enum.Enum):
    """How a failed forward should be treated."""

    TRANSIENT = "transient"
    FATAL = "fatal"


class BodyType(enum.Enum):
    """AMQP body section a message was published with."""

    DATA = "data"
    VALUE = "value"
    SEQUENCE = "sequence"


class WorkerState(enum.Enum):
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


@dataclass(frozen=True)
class RuleSpec:
    """A SQL filter plus action attached to a subscription."""

    name: str = REPLICATION_RULE_NAME
    filter_expression: str = REPLICATION_FILTER
    action_expression: Optional[str] = REPLICATION_ACTION


@dataclass(frozen=True)
class SubscriptionSpec:
    """Shape of the dedicated replication subscription on one topic."""

    topic_name: str
    subscription_name: str
    max_delivery_count: int
    default_ttl: timedelta


@dataclass(frozen=True)
class InboundMessage:
    """Read-only view of a message delivered from the source namespace.

    ``time_to_live`` is None when the message never expires. Optional string
    fields keep the None / "" distinction exactly as the broker reported it.
    ``body`` is bytes for DATA bodies, the decoded AMQP value for VALUE
    bodies and a list of sections for SEQUENCE bodies.
    """

    body: Any
    message_id: Optional[str] = None
    correlation_id: Optional[str] = None
    content_type: Optional[str] = None
    subject: Optional[str] = None
    partition_key: Optional[str] = None
    reply_to: Optional[str] = None
    reply_to_session_id: Optional[str] = None
    session_id: Optional[str] = None
    to: Optional[str] = None
    enqueued_time_utc: Optional[datetime] = None
    time_to_live: Optional[timedelta] = None
    delivery_count: int = 0
    sequence_number: Optional[int] = None
    application_properties: dict[str, Any] = field(default_factory=dict)
    body_type: BodyType = BodyType.DATA


@dataclass(frozen=True)
class OutboundMessage:
    """Replica built for the target namespace; lives for one forward call."""

    body: Any
    time_to_live: timedelta
    application_properties: dict[str, Any]
    message_id: Optional[str] = None
    correlation_id: Optional[str] = None
    content_type: Optional[str] = None
    subject: Optional[str] = None
    partition_key: Optional[str] = None
    reply_to: Optional[str] = None
    reply_to_session_id: Optional[str] = None
    session_id: Optional[str] = None
    to: Optional[str] = None
    body_type: BodyType = BodyType.DATA


@dataclass(frozen=True)
class ProcessingError:
    """Error reported by a processor's receive loop or message handler."""

    topic_name: str
    subscription_name: str
    exception: BaseException
    source: str
