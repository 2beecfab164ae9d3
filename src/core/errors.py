"""Error taxonomy for the replication core."""

from __future__ import annotations

import enum
from typing import Optional

from core.models import FailureClassification


class BrokerErrorReason(enum.Enum):
    SERVICE_BUSY = "service_busy"
    ENTITY_NOT_FOUND = "entity_not_found"
    ENTITY_ALREADY_EXISTS = "entity_already_exists"
    LOCK_LOST = "lock_lost"
    UNAUTHORIZED = "unauthorized"
    GENERAL = "general"


class BrokerError(RuntimeError):
    """Raised by broker adapters; the reason drives retry classification."""

    def __init__(self, reason: BrokerErrorReason, message: str = "") -> None:
        super().__init__(message or reason.value)
        self.reason = reason


class ProvisionError(RuntimeError):
    """Raised when the replication subscription cannot be ensured on a topic."""

    def __init__(self, topic_name: str, cause: Exception) -> None:
        super().__init__(f"Failed to provision subscription on topic {topic_name}: {cause}")
        self.topic_name = topic_name


class StartupError(RuntimeError):
    """Raised when the engine cannot discover topics or start its workers."""


class ForwardError(RuntimeError):
    """Raised when a message could not be replicated to the target topic."""

    def __init__(
        self,
        classification: FailureClassification,
        topic_name: str,
        message_id: Optional[str],
        cause: Exception,
    ) -> None:
        super().__init__(
            f"{classification.value} failure forwarding {message_id or '(no id)'} to {topic_name}: {cause}"
        )
        self.classification = classification
        self.topic_name = topic_name
        self.message_id = message_id

    @property
    def is_transient(self) -> bool:
        return self.classification is FailureClassification.TRANSIENT


def broker_reason(exc: BaseException) -> Optional[BrokerErrorReason]:
    """Return the broker reason carried by an exception, if any."""

    if isinstance(exc, BrokerError):
        return exc.reason
    return None


def classify_failure(exc: BaseException) -> FailureClassification:
    """Only a busy/throttled broker is worth waiting out; everything else is fatal."""

    if broker_reason(exc) is BrokerErrorReason.SERVICE_BUSY:
        return FailureClassification.TRANSIENT
    return FailureClassification.FATAL
