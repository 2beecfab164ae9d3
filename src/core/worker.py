"""One processing loop per source topic.

The worker owns the acknowledgement decision: a message is completed only
after its replica was sent. Failed forwards are left unsettled so the broker
redelivers them once the lock expires and dead-letters them after the
subscription's max delivery count.
"""

from __future__ import annotations

import logging
from typing import Optional

from core.config import ProcessorOptions
from core.errors import ForwardError
from core.forwarder import MessageForwarder
from core.models import ProcessingError, WorkerState
from core.ports import BrokerMessagingPort, Delivery, Processor

LOGGER = logging.getLogger(__name__)


class TopicWorker:
    """Bridges a topic subscription's push delivery to the forwarder."""

    def __init__(
        self,
        topic_name: str,
        subscription_name: str,
        source: BrokerMessagingPort,
        forwarder: MessageForwarder,
        options: ProcessorOptions,
    ) -> None:
        self._topic_name = topic_name
        self._subscription_name = subscription_name
        self._source = source
        self._forwarder = forwarder
        self._options = options
        self._processor: Optional[Processor] = None
        self._state = WorkerState.IDLE

    @property
    def topic_name(self) -> str:
        return self._topic_name

    @property
    def state(self) -> WorkerState:
        return self._state

    async def start(self) -> None:
        if self._state is not WorkerState.IDLE:
            raise RuntimeError(f"Worker for topic {self._topic_name} cannot start from state {self._state.value}")

        self._state = WorkerState.STARTING
        processor = self._source.create_processor(self._topic_name, self._subscription_name, self._options)
        processor.on_message(self._handle_message)
        processor.on_error(self._handle_error)
        self._processor = processor
        try:
            await processor.start()
        except BaseException:
            await self.stop()
            raise

        self._state = WorkerState.RUNNING
        LOGGER.info("Started processing messages for topic %s", self._topic_name)

    async def stop(self) -> None:
        """Stop the loop and release the processor. Safe to call repeatedly."""

        if self._state in (WorkerState.STOPPING, WorkerState.STOPPED):
            return
        if self._state is WorkerState.IDLE:
            self._state = WorkerState.STOPPED
            return

        self._state = WorkerState.STOPPING
        processor, self._processor = self._processor, None
        try:
            if processor is not None:
                processor.on_message(None)
                processor.on_error(None)
                await processor.stop()
        finally:
            self._state = WorkerState.STOPPED
        LOGGER.info("Stopped processing messages for topic %s", self._topic_name)

    async def _handle_message(self, delivery: Delivery) -> None:
        message = delivery.message
        try:
            await self._forwarder.forward(message, self._topic_name)
        except ForwardError as exc:
            # The forwarder already logged at the matching severity; leaving the
            # message unsettled hands retry and dead-lettering to the broker.
            LOGGER.debug(
                "Leaving message %s on %s unsettled (delivery %s, %s)",
                message.message_id or "(no id)",
                self._topic_name,
                message.delivery_count,
                exc.classification.value,
            )
            return

        await delivery.complete()

    async def _handle_error(self, error: ProcessingError) -> None:
        LOGGER.error(
            "Error processing messages from %s/%s (%s): %s",
            error.topic_name,
            error.subscription_name,
            error.source,
            error.exception,
        )
