"""Service Bus messaging adapter.

Implements the core BrokerMessagingPort over the async ServiceBusClient:
processors run a peek-lock receive loop in a background task and push each
message to the registered callback; senders are scoped to one forward call.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import Any, AsyncIterator, Optional

from azure.servicebus import ServiceBusReceiveMode
from azure.servicebus.aio import ServiceBusClient, ServiceBusReceiver, ServiceBusSender

from adapters.servicebus_mapper import broker_error_from, to_inbound_message, to_service_bus_message
from core.config import ProcessorOptions
from core.models import InboundMessage, OutboundMessage, ProcessingError
from core.ports import ErrorCallback, MessageCallback

LOGGER = logging.getLogger(__name__)


class ServiceBusDelivery:
    """Received message plus the receiver that holds its lock."""

    def __init__(self, receiver: ServiceBusReceiver, raw: Any, message: InboundMessage) -> None:
        self._receiver = receiver
        self._raw = raw
        self._message = message

    @property
    def message(self) -> InboundMessage:
        return self._message

    async def complete(self) -> None:
        try:
            await self._receiver.complete_message(self._raw)
        except Exception as exc:
            raise broker_error_from(exc) from exc


class ServiceBusTopicProcessor:
    """Receive loop for one topic subscription.

    At most ``max_concurrent_calls`` messages are received per batch and the
    batch is dispatched concurrently, so that is the in-flight bound.
    """

    def __init__(
        self,
        client: ServiceBusClient,
        topic_name: str,
        subscription_name: str,
        options: ProcessorOptions,
    ) -> None:
        self._client = client
        self._topic_name = topic_name
        self._subscription_name = subscription_name
        self._options = options
        self._message_callback: Optional[MessageCallback] = None
        self._error_callback: Optional[ErrorCallback] = None
        self._receiver: Optional[ServiceBusReceiver] = None
        self._task: Optional[asyncio.Task] = None
        self._stopping = False
        self._in_flight = False

    def on_message(self, callback: Optional[MessageCallback]) -> None:
        self._message_callback = callback

    def on_error(self, callback: Optional[ErrorCallback]) -> None:
        self._error_callback = callback

    async def start(self) -> None:
        if self._task is not None:
            return
        if self._message_callback is None:
            raise RuntimeError("A message callback must be registered before start()")

        # Settlement is explicit: only the worker decides to complete.
        self._receiver = self._client.get_subscription_receiver(
            topic_name=self._topic_name,
            subscription_name=self._subscription_name,
            receive_mode=ServiceBusReceiveMode.PEEK_LOCK,
            prefetch_count=0,
        )
        self._stopping = False
        self._task = asyncio.create_task(self._run(), name=f"replicate:{self._topic_name}")

    async def stop(self) -> None:
        task, self._task = self._task, None
        self._stopping = True
        if task is not None:
            # Let a dispatched batch finish settling; only an idle receive is cancelled.
            if not self._in_flight:
                task.cancel()
            with suppress(asyncio.CancelledError):
                await task

        receiver, self._receiver = self._receiver, None
        if receiver is not None:
            await receiver.close()

    async def _run(self) -> None:
        receiver = self._receiver
        while not self._stopping:
            try:
                batch = await receiver.receive_messages(
                    max_message_count=self._options.max_concurrent_calls,
                    max_wait_time=self._options.max_wait_seconds,
                )
            except Exception as exc:
                await self._report(exc, "receive")
                await asyncio.sleep(self._options.error_delay_seconds)
                continue

            if not batch:
                continue
            self._in_flight = True
            try:
                await asyncio.gather(*(self._dispatch(receiver, raw) for raw in batch))
            finally:
                self._in_flight = False

    async def _dispatch(self, receiver: ServiceBusReceiver, raw: Any) -> None:
        callback = self._message_callback
        if callback is None:
            return
        try:
            await callback(ServiceBusDelivery(receiver, raw, to_inbound_message(raw)))
        except Exception as exc:
            await self._report(exc, "handler")

    async def _report(self, exc: Exception, source: str) -> None:
        error = ProcessingError(
            topic_name=self._topic_name,
            subscription_name=self._subscription_name,
            exception=exc,
            source=source,
        )
        callback = self._error_callback
        if callback is None:
            LOGGER.error("Unhandled %s error on %s/%s: %s", source, self._topic_name, self._subscription_name, exc)
            return
        try:
            await callback(error)
        except Exception:
            LOGGER.exception("Error callback failed for %s/%s", self._topic_name, self._subscription_name)


class ServiceBusTopicSender:
    def __init__(self, sender: ServiceBusSender) -> None:
        self._sender = sender

    async def send(self, message: OutboundMessage) -> None:
        try:
            await self._sender.send_messages(to_service_bus_message(message))
        except Exception as exc:
            raise broker_error_from(exc) from exc


class ServiceBusMessaging:
    """Messaging-client wrapper that satisfies the BrokerMessagingPort contract."""

    def __init__(self, client: ServiceBusClient) -> None:
        self._client = client

    def create_processor(
        self,
        topic_name: str,
        subscription_name: str,
        options: ProcessorOptions,
    ) -> ServiceBusTopicProcessor:
        return ServiceBusTopicProcessor(self._client, topic_name, subscription_name, options)

    @asynccontextmanager
    async def create_sender(self, topic_name: str) -> AsyncIterator[ServiceBusTopicSender]:
        sender = self._client.get_topic_sender(topic_name=topic_name)
        try:
            yield ServiceBusTopicSender(sender)
        finally:
            await sender.close()

    async def close(self) -> None:
        await self._client.close()
