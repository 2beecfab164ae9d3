"""Ports (interfaces) used by the replication core.

Ports define the minimal contracts for broker administration and messaging
so that the core can be driven by the Service Bus SDK in production and by
in-memory fakes in tests.
"""

from __future__ import annotations

from typing import AsyncContextManager, AsyncIterator, Awaitable, Callable, Optional, Protocol

from core.config import ProcessorOptions
from core.models import InboundMessage, OutboundMessage, ProcessingError, RuleSpec, SubscriptionSpec


class BrokerAdminPort(Protocol):
    """Administrative operations against the source namespace.

    Implementations raise ``core.errors.BrokerError`` with a reason so the
    core can tell "not found" and "already exists" apart from real failures.
    """

    def list_topics(self) -> AsyncIterator[str]:
        ...

    async def subscription_exists(self, topic_name: str, subscription_name: str) -> bool:
        ...

    async def create_subscription(self, spec: SubscriptionSpec, rule: RuleSpec) -> None:
        ...

    async def delete_rule(self, topic_name: str, subscription_name: str, rule_name: str) -> None:
        ...

    async def create_rule(self, topic_name: str, subscription_name: str, rule: RuleSpec) -> None:
        ...


class Delivery(Protocol):
    """A message handed to a processor callback, settled through the receiver."""

    @property
    def message(self) -> InboundMessage:
        ...

    async def complete(self) -> None:
        ...


MessageCallback = Callable[[Delivery], Awaitable[None]]
ErrorCallback = Callable[[ProcessingError], Awaitable[None]]


class Processor(Protocol):
    """Push-style receive loop bound to one topic subscription."""

    def on_message(self, callback: Optional[MessageCallback]) -> None:
        ...

    def on_error(self, callback: Optional[ErrorCallback]) -> None:
        ...

    async def start(self) -> None:
        ...

    async def stop(self) -> None:
        ...


class Sender(Protocol):
    async def send(self, message: OutboundMessage) -> None:
        ...


class BrokerMessagingPort(Protocol):
    """Messaging operations against one namespace."""

    def create_processor(self, topic_name: str, subscription_name: str, options: ProcessorOptions) -> Processor:
        ...

    def create_sender(self, topic_name: str) -> AsyncContextManager[Sender]:
        ...
